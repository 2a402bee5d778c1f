"""CSRF protection analyzer."""

from __future__ import annotations

import logging
from pathlib import Path

from laraguard.analysis.matchers.csrf import (
    CsrfMatcher,
    DEFAULT_ALLOWED_SERVICES,
    bootstrap_exceptions,
    find_unprotected_routes,
    middleware_exceptions,
    unprotected_route_table,
)
from laraguard.analysis.middleware import (
    global_stack,
    kernel_middleware_status,
    removes_middleware,
    replaces_default_stack,
)
from laraguard.analysis.models import AnalyzerMetadata, Issue, Severity
from laraguard.analysis.php import parse_php
from laraguard.analyzers.base import AnalysisContext, Analyzer

logger = logging.getLogger(__name__)

KERNEL = "app/Http/Kernel.php"
BOOTSTRAP = "bootstrap/app.php"
CSRF_MIDDLEWARE_FILES = (
    "app/Http/Middleware/VerifyCsrfToken.php",
    "app/Http/Middleware/ValidateCsrfToken.php",
)
_CSRF_NAMES = ("VerifyCsrfToken", "ValidateCsrfToken")


class CsrfAnalyzer(Analyzer):
    """Forms, AJAX calls, routes and middleware configuration lacking CSRF protection."""

    metadata = AnalyzerMetadata(
        id="csrf-protection",
        name="CSRF Protection Analyzer",
        description="Ensures CSRF protection is enabled for state-changing requests",
        severity=Severity.CRITICAL,
        time_to_fix=20,
        tags=("csrf", "cross-site-request-forgery", "security", "forms"),
    )
    passed_message = "No CSRF protection issues detected"
    failed_message = "Found {count} potential CSRF protection issue{s}"
    skip_reason = "No Blade templates, JavaScript files, routes, or CSRF middleware found to analyze"

    def __init__(self, context: AnalysisContext) -> None:
        super().__init__(context)
        self.matcher = CsrfMatcher(
            DEFAULT_ALLOWED_SERVICES + tuple(self.settings.csrf_allowed_exception_services)
        )

    def should_run(self) -> bool:
        ctx = self.context
        return (
            ctx.walker.has_files((".blade.php", ".js"))
            or bool(self._route_files())
            or bool(ctx.routes)
            or any(ctx.exists(p) for p in CSRF_MIDDLEWARE_FILES + (KERNEL, BOOTSTRAP))
        )

    def run(self) -> list[Issue]:
        issues: list[Issue] = []
        walker = self.context.walker

        for path in walker.files((".blade.php",)):
            content = walker.read(path)
            if content is None:
                continue
            for match in self.matcher.find_forms(content) + self.matcher.find_ajax(
                content, in_template=True
            ):
                issues.append(self.issue_at(match, path, content))

        for path in walker.files((".js",)):
            if path.name.endswith(".min.js"):
                continue
            content = walker.read(path)
            if content is None:
                continue
            for match in self.matcher.find_ajax(content, in_template=False):
                issues.append(self.issue_at(match, path, content))

        issues.extend(self._middleware_exceptions())
        if self.context.exists(KERNEL):
            issues.extend(self._kernel_registration())
        elif self.context.exists(BOOTSTRAP):
            issues.extend(self._bootstrap_registration())

        for path in self._route_files():
            if path.name in ("web.php", "api.php"):
                continue
            content = walker.read(path)
            if content is None:
                continue
            for match in find_unprotected_routes(content):
                issues.append(self.issue_at(match, path, content))

        if self.context.routes:
            for match in unprotected_route_table(
                self.context.routes, self.settings.csrf_ignored_middleware
            ):
                issues.append(match.to_issue(""))
        return issues

    def _route_files(self) -> list[Path]:
        routes_dir = self.context.path("routes")
        if not routes_dir.is_dir():
            return []
        return sorted(p for p in routes_dir.glob("*.php") if p.is_file())

    def _middleware_exceptions(self) -> list[Issue]:
        issues: list[Issue] = []
        for relative in CSRF_MIDDLEWARE_FILES:
            content = self.context.read(relative) if self.context.exists(relative) else None
            if content is None:
                continue
            tree = parse_php(content)
            if tree is None:
                continue
            for match in self.matcher.check_exceptions(middleware_exceptions(tree), "middleware"):
                issues.append(self.issue_at(match, relative, content))
            break
        if self.context.exists(BOOTSTRAP):
            content = self.context.read(BOOTSTRAP)
            tree = parse_php(content) if content else None
            if tree is not None:
                for match in self.matcher.check_exceptions(bootstrap_exceptions(tree), "bootstrap"):
                    issues.append(self.issue_at(match, BOOTSTRAP, content))
        return issues

    def _kernel_registration(self) -> list[Issue]:
        content = self.context.read(KERNEL)
        if content is None:
            return []
        status = kernel_middleware_status(content, _CSRF_NAMES)
        issues: list[Issue] = []
        if not status.registered:
            issues.append(
                Issue(
                    message="CSRF middleware is not registered in HTTP Kernel",
                    severity=Severity.CRITICAL,
                    recommendation="Add \\App\\Http\\Middleware\\VerifyCsrfToken::class to the "
                    "$middlewareGroups['web'] array",
                    file=KERNEL,
                    line=1,
                    metadata={"file": "Kernel.php", "middleware": "CSRF", "status": "missing"},
                )
            )
        for line, name in status.commented_lines:
            issues.append(
                Issue(
                    message=f"{name} middleware is commented out",
                    severity=Severity.CRITICAL,
                    recommendation=f"Uncomment the {name} middleware to enable CSRF protection",
                    file=KERNEL,
                    line=line,
                    metadata={
                        "file": "Kernel.php",
                        "middleware": name,
                        "status": "commented",
                        "line": line,
                    },
                )
            )
        return issues

    def _bootstrap_registration(self) -> list[Issue]:
        content = self.context.read(BOOTSTRAP)
        if content is None:
            return []
        issues: list[Issue] = []
        stack = global_stack(content)
        if stack is not None:
            line, body = stack
            if not any(name in body for name in _CSRF_NAMES):
                issues.append(
                    Issue(
                        message="Critical: ValidateCsrfToken missing from global middleware stack",
                        severity=Severity.CRITICAL,
                        recommendation="Add \\Illuminate\\Foundation\\Http\\Middleware\\"
                        "ValidateCsrfToken::class to the $middleware->use() array",
                        file=BOOTSTRAP,
                        line=line,
                        metadata={
                            "file": BOOTSTRAP,
                            "middleware": "ValidateCsrfToken",
                            "status": "missing_from_use",
                            "line": line,
                        },
                    )
                )
        elif replaces_default_stack(content) and not any(name in content for name in _CSRF_NAMES):
            issues.append(
                Issue(
                    message="CSRF middleware may not be properly configured",
                    severity=Severity.HIGH,
                    recommendation="Laravel includes ValidateCsrfToken in the web middleware "
                    "group by default; keep it when redefining the group",
                    file=BOOTSTRAP,
                    line=1,
                    metadata={"file": BOOTSTRAP, "middleware": "ValidateCsrfToken"},
                )
            )
        for name in _CSRF_NAMES:
            line = removes_middleware(content, name)
            if line is not None:
                issues.append(
                    Issue(
                        message=f"Critical: {name} removed from web middleware group",
                        severity=Severity.CRITICAL,
                        recommendation=f"Do not remove {name} from the web middleware group. "
                        "This disables CSRF protection for all web routes",
                        file=BOOTSTRAP,
                        line=line,
                        metadata={
                            "file": BOOTSTRAP,
                            "middleware": name,
                            "status": "removed_from_web",
                            "line": line,
                        },
                    )
                )
        return issues
