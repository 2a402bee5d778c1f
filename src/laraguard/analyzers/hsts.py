"""HSTS header analyzer for HTTPS-only applications."""

from __future__ import annotations

import logging
import re

from laraguard.analysis.matchers.thresholds import Threshold, ThresholdMatcher
from laraguard.analysis.models import AnalyzerMetadata, Issue, Result, Severity
from laraguard.analyzers.base import AnalysisContext, Analyzer

logger = logging.getLogger(__name__)

MIDDLEWARE_DIR = "app/Http/Middleware"
SESSION_CONFIG = "config/session.php"
COMPOSER_JSON = "composer.json"
HSTS_HEADER = "Strict-Transport-Security"

SECURITY_HEADER_PACKAGES = (
    "bepsvpt/secure-headers",
    "spatie/laravel-csp",
    "beyondcode/laravel-secure-headers",
)

_MAX_AGE = re.compile(r"max-age\s*=\s*(\d+)", re.IGNORECASE)


class HstsHeaderAnalyzer(Analyzer):
    """HSTS middleware presence and directives, only when the app is HTTPS-only."""

    metadata = AnalyzerMetadata(
        id="hsts-header",
        name="HSTS Header Analyzer",
        description="Validates HTTP Strict Transport Security (HSTS) header configuration for "
        "HTTPS-only applications",
        severity=Severity.HIGH,
        time_to_fix=15,
        tags=("hsts", "https", "headers", "security", "ssl", "tls"),
    )
    passed_message = "HSTS header configuration is properly set"
    failed_message = "Found {count} HSTS header configuration issue{s}"
    skip_reason = "No session configuration, environment file or middleware found to analyze"

    def __init__(self, context: AnalysisContext) -> None:
        super().__init__(context)
        self.max_age = Threshold(
            name="max_age",
            minimum=self.settings.hsts_min_max_age,
            severity=Severity.MEDIUM,
            message="HSTS max-age ({value} seconds) is below recommended minimum of {minimum} "
            "seconds",
            recommendation="Set HSTS max-age to at least {minimum} (6 months) or 31536000 (1 year)",
        )

    def should_run(self) -> bool:
        ctx = self.context
        return (
            ctx.exists(SESSION_CONFIG) or ctx.exists(".env") or ctx.path(MIDDLEWARE_DIR).is_dir()
        )

    def run(self) -> list[Issue] | Result:
        if not self.is_https_only():
            return Result.passed(
                "HSTS not required for non-HTTPS-only applications", analyzer_id=self.id
            )
        if self._uses_security_header_package():
            return Result.passed(self.passed_message, analyzer_id=self.id)
        issues = self._middleware_issues()
        issues.extend(self._session_issues())
        return issues

    def is_https_only(self) -> bool:
        """Secure session cookies, an https APP_URL or FORCE_HTTPS mark an HTTPS-only app."""
        if self.context.app_config.get("session.secure") is True:
            return True
        env = self.context.env
        app_url = env.raw("APP_URL") or ""
        if app_url.lower().startswith("https:"):
            return True
        return env.get("FORCE_HTTPS") is True

    def _middleware_issues(self) -> list[Issue]:
        directory = self.context.path(MIDDLEWARE_DIR)
        found = False
        issues: list[Issue] = []
        if directory.is_dir():
            for path in sorted(directory.rglob("*.php")):
                content = self.context.walker.read(path)
                if content is None:
                    continue
                if HSTS_HEADER not in content and "HSTS" not in content:
                    continue
                found = True
                issues.extend(self._header_issues(self.context.relative(path), content))
        if not found:
            issues.append(
                Issue(
                    message="HTTPS-only application missing HSTS (Strict-Transport-Security) "
                    "header",
                    severity=Severity.HIGH,
                    recommendation="Add middleware to set Strict-Transport-Security header: "
                    '"max-age=31536000; includeSubDomains; preload"',
                    file=MIDDLEWARE_DIR,
                    line=1,
                    code="Missing HSTS header protection",
                )
            )
        return issues

    def _header_issues(self, relative: str, content: str) -> list[Issue]:
        issues: list[Issue] = []
        matcher = ThresholdMatcher()
        for number, line in enumerate(content.splitlines(), start=1):
            if HSTS_HEADER not in line:
                continue
            code = line.strip()
            m = _MAX_AGE.search(line)
            if m:
                match = matcher.check(self.max_age, m.group(1), number)
                if match is not None:
                    issues.append(match.to_issue(relative, code=code))
            if "includesubdomains" not in line.lower():
                issues.append(
                    Issue(
                        message='HSTS header missing "includeSubDomains" directive',
                        severity=Severity.LOW,
                        recommendation='Add "includeSubDomains" to HSTS header for complete '
                        "subdomain protection",
                        file=relative,
                        line=number,
                        code=code,
                    )
                )
            if self.settings.hsts_require_preload and "preload" not in line.lower():
                issues.append(
                    Issue(
                        message='HSTS header missing "preload" directive',
                        severity=Severity.LOW,
                        recommendation='Add "preload" to the HSTS header and submit the domain '
                        "to the browser preload list",
                        file=relative,
                        line=number,
                        code=code,
                    )
                )
        return issues

    def _session_issues(self) -> list[Issue]:
        entry = self.context.app_config.entry("session.secure")
        if entry is None or entry.value not in (False, 0):
            return []
        return [
            Issue(
                message="HTTPS-only application has secure cookies disabled",
                severity=Severity.HIGH,
                recommendation='Set "secure" => true in config/session.php for HTTPS-only '
                "applications",
                file=entry.file,
                line=entry.line,
            )
        ]

    def _uses_security_header_package(self) -> bool:
        if not self.context.exists(COMPOSER_JSON):
            return False
        content = self.context.read(COMPOSER_JSON) or ""
        return any(package in content for package in SECURITY_HEADER_PACKAGES)
