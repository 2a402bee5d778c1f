"""Routes and controller actions reachable without authentication."""

from __future__ import annotations

import logging
from pathlib import Path

from laraguard.analysis.matchers.auth import (
    routes_without_auth,
    unauthenticated_route_table,
    unguarded_controller_methods,
    unsafe_auth_user,
)
from laraguard.analysis.models import AnalyzerMetadata, Issue, Severity
from laraguard.analysis.php import parse_php
from laraguard.analyzers.base import Analyzer

logger = logging.getLogger(__name__)


def route_files(routes_dir: Path) -> list[Path]:
    if not routes_dir.is_dir():
        return []
    return sorted(p for p in routes_dir.glob("*.php") if p.is_file())


def is_controller(relative: str) -> bool:
    return "/Controllers/" in relative or relative.endswith("Controller.php")


class AuthenticationAnalyzer(Analyzer):
    """Missing ``auth`` middleware on state-changing routes and controller actions.

    A supplied route table replaces the route file scan. ``routes/api.php``
    is skipped when it is token guarded by Sanctum or Passport.
    """

    metadata = AnalyzerMetadata(
        id="authentication-authorization",
        name="Authentication & Authorization Analyzer",
        description="Detects missing authentication and authorization protection on routes and "
        "controllers",
        severity=Severity.HIGH,
        time_to_fix=25,
        tags=("authentication", "authorization", "security", "middleware"),
    )
    passed_message = "No authentication/authorization issues detected"
    failed_message = "Found {count} potential authentication/authorization issue{s}"
    skip_reason = "No routes or controllers found to analyze"

    def should_run(self) -> bool:
        ctx = self.context
        return (
            bool(ctx.routes)
            or bool(route_files(ctx.path("routes")))
            or ctx.walker.has_files((".php",))
        )

    def run(self) -> list[Issue]:
        issues = self._route_issues()
        walker = self.context.walker
        for path in walker.files((".php",)):
            if path.name.endswith(".blade.php"):
                continue
            relative = self.context.relative(path)
            content = walker.read(path)
            if content is None:
                continue
            matches = unsafe_auth_user(content)
            if is_controller(relative):
                tree = parse_php(content)
                if tree is not None:
                    matches = unguarded_controller_methods(tree) + matches
            for match in matches:
                issues.append(self.issue_at(match, path, content))
        return issues

    def _route_issues(self) -> list[Issue]:
        if self.context.routes:
            return [m.to_issue("") for m in unauthenticated_route_table(self.context.routes)]
        issues: list[Issue] = []
        for path in route_files(self.context.path("routes")):
            content = self.context.walker.read(path)
            if content is None:
                continue
            if path.name == "api.php" and ("sanctum" in content or "passport" in content):
                continue
            for match in routes_without_auth(content):
                issues.append(self.issue_at(match, path, content))
        return issues
