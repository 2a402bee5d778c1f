"""Tests for the analyzer manager."""

from __future__ import annotations

import pytest

from laraguard.analysis.models import Status
from laraguard.analyzers.manager import ANALYZER_IDS, AnalyzerManager
from laraguard.config import ScanConfig


def test_declaration_order():
    assert ANALYZER_IDS == (
        "sql-injection",
        "xss-vulnerabilities",
        "csrf-protection",
        "authentication-authorization",
        "login-throttling",
        "cookie",
        "hashing-strength",
        "app-key-security",
        "file-permissions",
        "env-file",
        "debug-mode",
        "php-ini",
        "env-http-accessibility",
        "hsts-header",
        "vulnerable-dependencies",
        "stable-dependencies",
        "up-to-date-dependencies",
    )


class TestSelection:
    def test_all_enabled_by_default(self, make_context):
        manager = AnalyzerManager(make_context({}))
        assert [a.id for a in manager.analyzers] == list(ANALYZER_IDS)

    def test_disabled_analyzers(self, make_context):
        config = ScanConfig(disabled_analyzers=["xss-vulnerabilities", "cookie"])
        manager = AnalyzerManager(make_context({}, config=config))
        ids = [a.id for a in manager.analyzers]
        assert "xss-vulnerabilities" not in ids
        assert "cookie" not in ids
        assert len(ids) == len(ANALYZER_IDS) - 2

    def test_only(self, make_context):
        manager = AnalyzerManager(make_context({}), only=["debug-mode", "sql-injection"])
        assert [a.id for a in manager.analyzers] == ["sql-injection", "debug-mode"]

    def test_unknown_disabled_id(self, make_context):
        config = ScanConfig(disabled_analyzers=["nope"])
        with pytest.raises(ValueError, match="Unknown analyzer id\\(s\\) in disabled_analyzers: nope"):
            AnalyzerManager(make_context({}, config=config))

    def test_unknown_selected_id(self, make_context):
        with pytest.raises(ValueError, match="analyzer selection"):
            AnalyzerManager(make_context({}), only=["sql-injection", "bogus"])


def test_run_returns_results_in_order(make_context):
    context = make_context({".env": "APP_ENV=production\nAPP_DEBUG=true\n"})
    results = AnalyzerManager(context, only=["debug-mode", "stable-dependencies"]).run()
    assert list(results) == ["debug-mode", "stable-dependencies"]
    assert results["debug-mode"].status == Status.FAILED
    assert results["debug-mode"].analyzer_id == "debug-mode"
    assert results["stable-dependencies"].status == Status.PASSED
