"""Brute force protection on login endpoints."""

from __future__ import annotations

import logging

from laraguard.analysis.matchers.auth import (
    login_methods,
    login_routes_without_throttle,
    unthrottled_login_route_table,
)
from laraguard.analysis.models import AnalyzerMetadata, Issue, Severity
from laraguard.analysis.php import parse_php
from laraguard.analyzers.authentication import route_files
from laraguard.analyzers.base import Analyzer

logger = logging.getLogger(__name__)

KERNEL = "app/Http/Kernel.php"
BOOTSTRAP = "bootstrap/app.php"
AUTH_CONTROLLERS = (
    "app/Http/Controllers/Auth/LoginController.php",
    "app/Http/Controllers/AuthController.php",
    "app/Http/Controllers/LoginController.php",
)
# AuthenticatesUsers pulls in ThrottlesLogins
CONTROLLER_THROTTLE_MARKERS = ("ThrottlesLogins", "RateLimiter", "throttle", "AuthenticatesUsers")


class LoginThrottlingAnalyzer(Analyzer):
    """Login routes and controller actions without rate limiting.

    Throttle middleware registered in the HTTP kernel (or ``bootstrap/app.php``)
    or any ``RateLimiter`` usage counts as project-wide throttling for route
    files. A supplied route table is checked route by route instead.
    """

    metadata = AnalyzerMetadata(
        id="login-throttling",
        name="Login Throttling Analyzer",
        description="Detects missing rate limiting on authentication endpoints to prevent brute "
        "force attacks",
        severity=Severity.HIGH,
        time_to_fix=20,
        tags=("authentication", "rate-limiting", "brute-force", "security", "throttling"),
    )
    passed_message = "Login throttling/rate limiting is properly configured"
    failed_message = "Found {count} login throttling issue{s}"
    skip_reason = "No routes or authentication controllers found to analyze"

    def should_run(self) -> bool:
        ctx = self.context
        return (
            bool(ctx.routes)
            or bool(route_files(ctx.path("routes")))
            or any(ctx.exists(p) for p in AUTH_CONTROLLERS)
        )

    def run(self) -> list[Issue]:
        issues: list[Issue] = []
        if self.context.routes:
            issues.extend(
                m.to_issue("") for m in unthrottled_login_route_table(self.context.routes)
            )
        elif not self._throttled_globally():
            for path in route_files(self.context.path("routes")):
                if path.name == "api.php":
                    continue
                content = self.context.walker.read(path)
                if content is None:
                    continue
                for match in login_routes_without_throttle(content):
                    issues.append(self.issue_at(match, path, content))
        issues.extend(self._controller_issues())
        return issues

    def _throttled_globally(self) -> bool:
        ctx = self.context
        if ctx.exists(KERNEL):
            content = ctx.read(KERNEL) or ""
            if "ThrottleRequests" in content or "\\throttle" in content:
                return True
        elif ctx.exists(BOOTSTRAP):
            content = ctx.read(BOOTSTRAP) or ""
            if "ThrottleRequests" in content or "throttle" in content:
                return True
        walker = ctx.walker
        for path in walker.files((".php",)):
            content = walker.read(path)
            if content is not None and "RateLimiter" in content:
                logger.debug("RateLimiter used in %s", path)
                return True
        return False

    def _controller_issues(self) -> list[Issue]:
        issues: list[Issue] = []
        for relative in AUTH_CONTROLLERS:
            if not self.context.exists(relative):
                continue
            content = self.context.read(relative)
            if content is None or any(m in content for m in CONTROLLER_THROTTLE_MARKERS):
                continue
            tree = parse_php(content)
            if tree is None:
                continue
            for match in login_methods(tree):
                issues.append(self.issue_at(match, relative, content))
        return issues
