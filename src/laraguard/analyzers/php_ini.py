"""PHP runtime configuration shipped with the project (php.ini, .user.ini)."""

from __future__ import annotations

import logging
from pathlib import Path

from laraguard.analysis.models import AnalyzerMetadata, Issue, Severity
from laraguard.analyzers.base import Analyzer
from laraguard.project.ini import IniFile, ini_flag, read_ini_file

logger = logging.getLogger(__name__)

RELEVANT_ENVIRONMENTS = ("production", "staging")

# directive -> value it must have
SECURE_SETTINGS: dict[str, bool] = {
    "allow_url_fopen": False,
    "allow_url_include": False,
    "expose_php": False,
    "display_errors": False,
    "display_startup_errors": False,
    "log_errors": True,
    "ignore_repeated_errors": False,
    "session.cookie_httponly": True,
}

SETTING_SEVERITY = {
    "allow_url_include": Severity.CRITICAL,
    "allow_url_fopen": Severity.HIGH,
    "display_errors": Severity.HIGH,
    "display_startup_errors": Severity.HIGH,
    "expose_php": Severity.HIGH,
}

# Built-in values PHP 8 uses when no ini file sets the directive
PHP_DEFAULTS = {
    "allow_url_fopen": True,
    "allow_url_include": False,
    "expose_php": True,
    "display_errors": True,
    "display_startup_errors": True,
    "log_errors": True,
    "ignore_repeated_errors": False,
    "session.cookie_httponly": False,
}


def _state(enabled: bool) -> str:
    return "enabled" if enabled else "disabled"


def _switch(enabled: bool) -> str:
    return "On" if enabled else "Off"


class PhpIniAnalyzer(Analyzer):
    """Insecure directives in the ini files deployed with the application.

    Files from ``settings.php_ini_paths`` are layered in order. A file named
    ``php.ini`` is a complete configuration, so directives it leaves out fall
    back to PHP's built-in defaults; ``.user.ini`` files only override.
    """

    metadata = AnalyzerMetadata(
        id="php-ini",
        name="PHP Configuration Analyzer",
        description="Validates that PHP ini settings are configured securely",
        severity=Severity.HIGH,
        time_to_fix=15,
        tags=("php", "configuration", "ini", "security", "server"),
    )
    passed_message = "PHP configuration is secure"
    failed_message = "Found {count} PHP configuration issue{s}"

    def _ini_files(self) -> list[IniFile]:
        files: list[IniFile] = []
        for relative in self.settings.php_ini_paths:
            path = Path(relative) if Path(relative).is_absolute() else self.context.path(relative)
            if not path.is_file():
                continue
            ini = read_ini_file(path, relative=relative)
            if ini is not None:
                files.append(ini)
        return files

    @property
    def environment(self) -> str:
        # Laravel falls back to production when APP_ENV is unset
        return (self.context.env.raw("APP_ENV") or "production").lower()

    def should_run(self) -> bool:
        return self.environment in RELEVANT_ENVIRONMENTS and bool(self._ini_files())

    def get_skip_reason(self) -> str:
        if self.environment not in RELEVANT_ENVIRONMENTS:
            return (
                f"Not relevant in '{self.environment}' environment (only relevant in: "
                f"{', '.join(RELEVANT_ENVIRONMENTS)})"
            )
        return "No php.ini or .user.ini file found"

    def run(self) -> list[Issue]:
        files = self._ini_files()
        main = next((f for f in files if Path(f.path).name == "php.ini"), None)
        issues: list[Issue] = []
        for setting, expected in SECURE_SETTINGS.items():
            source = next((f for f in reversed(files) if setting in f), None)
            if source is not None:
                issue = self._check_value(setting, expected, source)
            elif main is not None and PHP_DEFAULTS[setting] != expected:
                issue = self._missing(setting, expected, main)
            else:
                issue = None
            if issue is not None:
                issues.append(issue)
        return issues

    def _check_value(self, setting: str, expected: bool, ini: IniFile) -> Issue | None:
        raw = ini.values[setting]
        if not raw.strip():
            message = (
                f'PHP ini setting "{setting}" is set to empty string (ambiguous - could be '
                "misconfigured)"
            )
            issue_type = "ambiguous_value"
        else:
            actual = ini_flag(raw)
            if actual is expected:
                return None
            shown = _state(actual) if actual is not None else raw
            message = f'PHP ini setting "{setting}" should be {_state(expected)} but is {shown}'
            issue_type = "insecure_value"
        return self._issue(setting, expected, ini, message, issue_type, raw)

    def _missing(self, setting: str, expected: bool, ini: IniFile) -> Issue:
        message = (
            f'PHP ini setting "{setting}" is not configured and PHP defaults to '
            f"{_state(PHP_DEFAULTS[setting])}"
        )
        return self._issue(setting, expected, ini, message, "missing_setting", None)

    def _issue(
        self,
        setting: str,
        expected: bool,
        ini: IniFile,
        message: str,
        issue_type: str,
        actual: str | None,
    ) -> Issue:
        line = ini.line_of(setting)
        return Issue(
            message=message,
            severity=SETTING_SEVERITY.get(setting, Severity.MEDIUM),
            recommendation=f"Set {setting} = {_switch(expected)} in {Path(ini.path).name}",
            file=ini.path,
            line=line,
            code=ini.code_at(line),
            metadata={
                "setting": setting,
                "expected": _switch(expected),
                "actual": actual,
                "issue_type": issue_type,
            },
        )
