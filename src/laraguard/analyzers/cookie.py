"""Cookie security analyzer: session cookie flags and cookie encryption middleware."""

from __future__ import annotations

from laraguard.analysis.matchers.session import SessionConfigMatcher
from laraguard.analysis.middleware import (
    kernel_middleware_status,
    removes_middleware,
    replaces_default_stack,
    strip_line_comments,
)
from laraguard.analysis.models import AnalyzerMetadata, Issue, Severity
from laraguard.analyzers.base import Analyzer

SESSION_CONFIG = "config/session.php"
KERNEL = "app/Http/Kernel.php"
BOOTSTRAP = "bootstrap/app.php"


class CookieSecurityAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id="cookie",
        name="Cookie Security Analyzer",
        description="Ensures cookies are encrypted and session cookies use secure flags",
        severity=Severity.CRITICAL,
        time_to_fix=15,
        tags=("cookies", "session", "encryption", "security"),
    )
    passed_message = "Cookie security configuration is properly set"
    failed_message = "Found {count} cookie security issue{s}"
    skip_reason = "No session configuration or middleware files found to analyze"

    def should_run(self) -> bool:
        return any(self.context.exists(p) for p in (SESSION_CONFIG, KERNEL, BOOTSTRAP))

    def run(self) -> list[Issue]:
        issues: list[Issue] = []
        config = self.context.app_config
        if config.has_file("session"):
            content = self.context.read(SESSION_CONFIG)
            for match in SessionConfigMatcher().find(config):
                issues.append(self.issue_at(match, config.file_of("session"), content))

        if self.context.exists(KERNEL):
            issues.extend(self._kernel())
        elif self.context.exists(BOOTSTRAP):
            issues.extend(self._bootstrap())
        return issues

    def _kernel(self) -> list[Issue]:
        content = self.context.read(KERNEL)
        if content is None:
            return []
        status = kernel_middleware_status(content, ("EncryptCookies",))
        issues: list[Issue] = []
        if not status.registered:
            issues.append(
                Issue(
                    message="EncryptCookies middleware is not registered in HTTP Kernel",
                    severity=Severity.CRITICAL,
                    recommendation="Add \\App\\Http\\Middleware\\EncryptCookies::class to the "
                    "$middleware array in app/Http/Kernel.php",
                    file=KERNEL,
                    code="EncryptCookies",
                    metadata={"file": "Kernel.php", "middleware": "EncryptCookies", "status": "missing"},
                )
            )
        for line, _name in status.commented_lines:
            issues.append(
                Issue(
                    message="EncryptCookies middleware is commented out",
                    severity=Severity.CRITICAL,
                    recommendation="Uncomment the EncryptCookies middleware to enable cookie "
                    "encryption",
                    file=KERNEL,
                    line=line,
                    code="EncryptCookies",
                    metadata={
                        "file": "Kernel.php",
                        "middleware": "EncryptCookies",
                        "status": "commented",
                        "line": line,
                    },
                )
            )
        return issues

    def _bootstrap(self) -> list[Issue]:
        content = self.context.read(BOOTSTRAP)
        if content is None:
            return []
        # Laravel 11+ encrypts cookies by default; only a replaced stack or an
        # explicit removal drops it
        removed = removes_middleware(content, "EncryptCookies")
        if removed is not None:
            return [
                Issue(
                    message="EncryptCookies middleware is removed in bootstrap/app.php",
                    severity=Severity.CRITICAL,
                    recommendation="Do not remove EncryptCookies from the web middleware group",
                    file=BOOTSTRAP,
                    line=removed,
                    code="EncryptCookies",
                    metadata={
                        "file": BOOTSTRAP,
                        "middleware": "EncryptCookies",
                        "status": "removed",
                        "line": removed,
                    },
                )
            ]
        code = strip_line_comments(content).lower()
        if replaces_default_stack(content) and "encryptcookies" not in code:
            return [
                Issue(
                    message="EncryptCookies middleware may not be properly configured in "
                    "bootstrap/app.php",
                    severity=Severity.HIGH,
                    recommendation="Add EncryptCookies middleware using ->withMiddleware() in "
                    "bootstrap/app.php to enable cookie encryption",
                    file=BOOTSTRAP,
                    code="EncryptCookies",
                    metadata={
                        "file": BOOTSTRAP,
                        "middleware": "EncryptCookies",
                        "status": "missing",
                    },
                )
            ]
        return []
