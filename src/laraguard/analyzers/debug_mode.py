"""Debug mode analyzer: debug flags, debug helpers and debug packages."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from laraguard.analysis.matchers.base import Match, is_comment_line
from laraguard.analysis.models import AnalyzerMetadata, Issue, Severity
from laraguard.analysis.php import find_nodes, node_line, node_text, parse_php, simple_name
from laraguard.analyzers.base import Analyzer
from laraguard.project.composer import LineIndex

logger = logging.getLogger(__name__)

APP_CONFIG = "config/app.php"
COMPOSER_JSON = "composer.json"

LOCAL_ENVIRONMENTS = ("local", "development", "testing")
TRUTHY = ("true", "1", "yes", "on")

# function -> severity of a leftover call
DEBUG_FUNCTIONS = {
    "dd": Severity.HIGH,
    "dump": Severity.HIGH,
    "var_dump": Severity.HIGH,
    "print_r": Severity.HIGH,
    "ray": Severity.HIGH,
    "var_export": Severity.MEDIUM,
    "debug_backtrace": Severity.MEDIUM,
    "debug_print_backtrace": Severity.MEDIUM,
}

DEBUG_PACKAGES = {
    "barryvdh/laravel-debugbar": "Laravel Debugbar",
    "laravel/telescope": "Laravel Telescope",
    "spatie/laravel-ray": "Spatie Ray",
    "beyondcode/laravel-dump-server": "Laravel Dump Server",
}

_DEBUG_FROM_ENV = re.compile(r"[\"']debug[\"']\s*=>\s*env\s*\(", re.IGNORECASE)
_DEBUG_TRUE = re.compile(r"[\"']debug[\"']\s*=>\s*true\b", re.IGNORECASE)
_ERROR_REPORTING = re.compile(r"error_reporting\s*\(\s*(E_ALL|-1)", re.IGNORECASE)
_DISPLAY_ERRORS = re.compile(
    r"ini_set\s*\(\s*['\"]display_(startup_)?errors['\"]\s*,\s*['\"]?(1|true|on|yes)",
    re.IGNORECASE,
)
_DEVELOPMENT_SUFFIXES = ("Test.php", "Seeder.php", "Factory.php")


def is_development_file(relative: str) -> bool:
    """Tests, seeders and factories may call debug helpers freely."""
    return relative.endswith(_DEVELOPMENT_SUFFIXES) or any(
        segment in relative for segment in ("tests/", "Tests/", "database/seeders/", "database/factories/")
    )


def debug_calls(content: str) -> list[Match]:
    """Plain function calls to debug helpers; methods and static calls named ``dump`` are ignored."""
    tree = parse_php(content)
    if tree is None:
        return []
    matches: list[Match] = []
    for call in find_nodes(tree.root_node, "function_call_expression"):
        function = call.child_by_field_name("function")
        if function is None or function.type not in ("name", "qualified_name"):
            continue
        name = simple_name(node_text(function)).lower()
        severity = DEBUG_FUNCTIONS.get(name)
        if severity is None:
            continue
        matches.append(
            Match(
                message=f"Debug function {name}() found in production code",
                severity=severity,
                recommendation=f"Remove {name}() calls before deploying to production or "
                "replace with structured logging",
                line=node_line(call),
                metadata={"function": name},
            )
        )
    return matches


def error_display_settings(content: str) -> list[Match]:
    matches: list[Match] = []
    for number, line in enumerate(content.splitlines(), start=1):
        if is_comment_line(line):
            continue
        if _ERROR_REPORTING.search(line):
            matches.append(
                Match(
                    message="Verbose error reporting enabled",
                    severity=Severity.MEDIUM,
                    recommendation="Control error reporting via APP_DEBUG and framework "
                    "configuration",
                    line=number,
                    metadata={"function": "error_reporting"},
                )
            )
        if _DISPLAY_ERRORS.search(line):
            matches.append(
                Match(
                    message="PHP display_errors enabled",
                    severity=Severity.HIGH,
                    recommendation="Disable display_errors in production environments",
                    line=number,
                    metadata={"function": "ini_set", "parameter": "display_errors"},
                )
            )
    return matches


class DebugModeAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id="debug-mode",
        name="Debug Mode Analyzer",
        description="Detects debug mode enabled and debugging functions that expose sensitive "
        "information",
        severity=Severity.CRITICAL,
        time_to_fix=5,
        tags=("debug", "information-disclosure", "security", "configuration"),
    )
    passed_message = "No debug mode security issues detected"
    failed_message = "Found {count} debug mode security issue{s}"
    skip_reason = "No configuration files, environment files, or PHP code found to analyze"

    def should_run(self) -> bool:
        ctx = self.context
        return (
            ctx.exists(".env")
            or ctx.path("config").is_dir()
            or ctx.exists(COMPOSER_JSON)
            or ctx.walker.has_files((".php",))
        )

    def run(self) -> list[Issue]:
        issues = self._env_issues()
        issues.extend(self._config_issues())
        walker = self.context.walker
        for path in walker.files((".php",)):
            relative = self.context.relative(path)
            if path.name.endswith(".blade.php") or is_development_file(relative):
                continue
            content = walker.read(path)
            if content is None:
                continue
            for match in debug_calls(content) + error_display_settings(content):
                issues.append(self.issue_at(match, path, content))
        issues.extend(self._package_issues())
        return issues

    def _env_issues(self) -> list[Issue]:
        env = self.context.env
        if "APP_DEBUG" not in env:
            return []
        app_env = env.raw("APP_ENV")
        if app_env is not None and app_env.lower() in LOCAL_ENVIRONMENTS:
            return []
        debug = env.raw("APP_DEBUG") or ""
        if debug.lower() not in TRUTHY:
            return []
        line = env.lines.get("APP_DEBUG", 1)
        return [
            Issue(
                message=f"Debug mode is enabled (APP_DEBUG=true) in {app_env or 'unknown'} "
                "environment",
                severity=Severity.CRITICAL,
                recommendation="Set APP_DEBUG=false in production/staging environments to "
                "prevent information disclosure",
                file=".env",
                line=line,
                code=f"APP_DEBUG={debug}",
                metadata={"env_var": "APP_DEBUG", "value": "true", "app_env": app_env},
            )
        ]

    def _config_issues(self) -> list[Issue]:
        if not self.context.exists(APP_CONFIG):
            return []
        content = self.context.read(APP_CONFIG)
        if content is None:
            return []
        issues: list[Issue] = []
        for number, line in enumerate(content.splitlines(), start=1):
            if is_comment_line(line) or _DEBUG_FROM_ENV.search(line):
                continue
            if _DEBUG_TRUE.search(line):
                issues.append(
                    Issue(
                        message="Debug mode hardcoded to true in config/app.php",
                        severity=Severity.CRITICAL,
                        recommendation='Use env("APP_DEBUG", false) instead of hardcoded true',
                        file=APP_CONFIG,
                        line=number,
                        code=line.strip(),
                        metadata={"config_key": "debug", "value": "true"},
                    )
                )
        return issues

    def _package_issues(self) -> list[Issue]:
        path: Path = self.context.path(COMPOSER_JSON)
        if not path.is_file():
            return []
        try:
            manifest = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.debug("Skipping %s: %s", COMPOSER_JSON, e)
            return []
        require = manifest.get("require") if isinstance(manifest, dict) else None
        if not isinstance(require, dict):
            return []
        lines = LineIndex.from_file(path)
        issues: list[Issue] = []
        for package, name in DEBUG_PACKAGES.items():
            if package not in require:
                continue
            issues.append(
                Issue(
                    message=f"{name} package in 'require' section (should be in 'require-dev')",
                    severity=Severity.MEDIUM,
                    recommendation=f"Move {package} to 'require-dev' section to exclude from "
                    "production",
                    file=COMPOSER_JSON,
                    line=lines.key_line(package),
                    metadata={"package": package, "package_name": name},
                )
            )
        return issues
