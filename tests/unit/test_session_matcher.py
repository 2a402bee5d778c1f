"""Tests for session cookie configuration matching."""

from __future__ import annotations

from laraguard.analysis.matchers.session import SessionConfigMatcher, describe_value
from laraguard.analysis.models import Severity
from laraguard.project.config_reader import ConfigEntry, ConfigRepository


def _find(session: dict):
    return SessionConfigMatcher().find(ConfigRepository.from_dict({"session": session}))


class TestSessionConfigMatcher:
    def test_all_flags_insecure(self):
        matches = _find({"http_only": False, "secure": False, "same_site": None})
        assert [(m.message, m.severity) for m in matches] == [
            ("Session cookies are not secured with HttpOnly flag", Severity.CRITICAL),
            ("Session cookies are not restricted to HTTPS (secure flag disabled)", Severity.HIGH),
            ("Session cookies have weak SameSite protection", Severity.MEDIUM),
        ]
        assert [m.metadata["current_value"] for m in matches] == ["false", "false", "null"]
        assert matches[0].metadata["config_key"] == "http_only"

    def test_secure_configuration(self):
        assert _find({"http_only": True, "secure": True, "same_site": "lax"}) == []

    def test_zero_counts_as_disabled(self):
        (match,) = _find({"secure": 0})
        assert match.metadata["current_value"] == "0"

    def test_same_site_none_string(self):
        (match,) = _find({"same_site": "none"})
        assert match.severity == Severity.MEDIUM

    def test_missing_keys_not_reported(self):
        assert _find({}) == []

    def test_unresolved_value_not_reported(self):
        config = ConfigRepository({"session.http_only": ConfigEntry(value=None, resolved=False)})
        assert SessionConfigMatcher().find(config) == []

    def test_env_without_default_is_indeterminate(self):
        entry = ConfigEntry(value=None, line=4, env_key="SESSION_SAME_SITE")
        config = ConfigRepository({"session.same_site": entry})
        assert SessionConfigMatcher().find(config) == []

    def test_env_with_null_default_is_weak(self):
        entry = ConfigEntry(value=None, line=4, env_key="SESSION_SAME_SITE", env_has_default=True)
        (match,) = SessionConfigMatcher().find(ConfigRepository({"session.same_site": entry}))
        assert match.line == 4


def test_describe_value():
    assert describe_value(None) == "null"
    assert describe_value(True) == "true"
    assert describe_value(False) == "false"
    assert describe_value(3) == "3"
    assert describe_value(["a"]) == "unknown"
