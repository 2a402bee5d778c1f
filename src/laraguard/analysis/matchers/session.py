"""Cookie and session configuration sinks."""

from __future__ import annotations

from typing import Any

from laraguard.analysis.matchers.base import Match
from laraguard.analysis.models import Severity
from laraguard.project.config_reader import ConfigEntry, ConfigRepository


def describe_value(value: Any) -> str:
    """Render a config value the way it would read in PHP."""
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, (int, float, str)):
        return str(value)
    return "unknown"


def _is_disabled(value: Any) -> bool:
    return value is False or (isinstance(value, int) and not isinstance(value, bool) and value == 0)


class SessionConfigMatcher:
    """Check ``config/session.php`` cookie flags.

    Keys that are absent are not reported, and an unresolvable value is
    never treated as insecure.
    """

    def find(self, config: ConfigRepository) -> list[Match]:
        matches: list[Match] = []

        http_only = config.entry("session.http_only")
        if http_only is not None and http_only.resolved and _is_disabled(http_only.value):
            matches.append(
                self._match(
                    http_only,
                    "http_only",
                    "Session cookies are not secured with HttpOnly flag",
                    Severity.CRITICAL,
                    'Set "http_only" => true in config/session.php to protect against XSS '
                    "attacks",
                )
            )

        secure = config.entry("session.secure")
        if secure is not None and secure.resolved and _is_disabled(secure.value):
            matches.append(
                self._match(
                    secure,
                    "secure",
                    "Session cookies are not restricted to HTTPS (secure flag disabled)",
                    Severity.HIGH,
                    'Set "secure" => env("SESSION_SECURE_COOKIE", true) for HTTPS-only '
                    "applications",
                )
            )

        same_site = config.entry("session.same_site")
        if same_site is not None and same_site.resolved and not self._indeterminate(same_site):
            value = same_site.value
            weak = value is None or (
                isinstance(value, str) and value.lower() in ("null", "none")
            )
            if weak:
                matches.append(
                    self._match(
                        same_site,
                        "same_site",
                        "Session cookies have weak SameSite protection",
                        Severity.MEDIUM,
                        'Use "same_site" => "lax" or "strict" to protect against CSRF attacks',
                    )
                )
        return matches

    @staticmethod
    def _indeterminate(entry: ConfigEntry) -> bool:
        """env() without a default whose variable is unset: decided only at runtime."""
        return entry.is_env_call and not entry.env_has_default and entry.value is None

    @staticmethod
    def _match(
        entry: ConfigEntry, key: str, message: str, severity: Severity, recommendation: str
    ) -> Match:
        return Match(
            message=message,
            severity=severity,
            recommendation=recommendation,
            line=entry.line,
            metadata={
                "file": "session.php",
                "config_key": key,
                "current_value": describe_value(entry.value),
            },
        )
