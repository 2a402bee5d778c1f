"""Tests for CLI commands using Click's CliRunner."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from laraguard.analysis.models import Issue, Result, Severity, Status
from laraguard.cli import main
from laraguard.cli.analyze import displayed_issues


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("LARAGUARD_BASE_URL", "LARAGUARD_HTTP_TIMEOUT", "LARAGUARD_FAIL_ON"):
        monkeypatch.delenv(name, raising=False)


def test_main_help():
    runner = CliRunner()
    result = runner.invoke(main, ["--help"])
    assert result.exit_code == 0
    assert "laraguard" in result.output
    assert "analyze" in result.output
    assert "list" in result.output


def test_main_version():
    runner = CliRunner()
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_list():
    runner = CliRunner()
    result = runner.invoke(main, ["list"])
    assert result.exit_code == 0
    assert "sql-injection" in result.output


def test_analyze_help():
    runner = CliRunner()
    result = runner.invoke(main, ["analyze", "--help"])
    assert result.exit_code == 0
    assert "ROOT" in result.output


class TestAnalyze:
    def test_clean_project_json(self, tmp_path):
        runner = CliRunner()
        result = runner.invoke(main, ["analyze", str(tmp_path), "--format", "json"])
        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert [r["analyzer"] for r in payload][0] == "sql-injection"
        assert len(payload) == 17
        assert all(r["issues"] == [] for r in payload)

    def test_critical_finding_exits_non_zero(self, tmp_path):
        (tmp_path / ".env").write_text("APP_ENV=production\nAPP_DEBUG=true\n")
        runner = CliRunner()
        result = runner.invoke(
            main, ["analyze", str(tmp_path), "--format", "json", "-a", "debug-mode"]
        )
        assert result.exit_code == 1
        (debug,) = json.loads(result.stdout)
        assert debug["status"] == "failed"
        assert debug["issues"][0]["severity"] == "critical"

    def test_fail_on_threshold(self, tmp_path):
        (tmp_path / "composer.json").write_text('{"require": {}}')
        runner = CliRunner()
        args = ["analyze", str(tmp_path), "--format", "json", "-a", "stable-dependencies"]
        assert runner.invoke(main, args).exit_code == 0
        assert runner.invoke(main, [*args, "--fail-on", "low"]).exit_code == 1

    def test_unknown_analyzer(self, tmp_path):
        runner = CliRunner()
        result = runner.invoke(main, ["analyze", str(tmp_path), "-a", "bogus"])
        assert result.exit_code == 1
        assert "Unknown analyzer id(s) in analyzer selection: bogus" in result.output

    def test_config_file(self, tmp_path):
        (tmp_path / ".env").write_text("APP_ENV=production\nAPP_DEBUG=true\n")
        config = tmp_path / "laraguard.yaml"
        config.write_text("disabled_analyzers:\n  - debug-mode\n")
        runner = CliRunner()
        result = runner.invoke(
            main,
            ["--config", str(config), "analyze", str(tmp_path), "--format", "json", "-a", "cookie"],
        )
        assert result.exit_code == 0
        assert json.loads(result.stdout)[0]["analyzer"] == "cookie"


class TestDisplayedIssues:
    def _result(self):
        issues = [
            Issue("low one", Severity.LOW, "fix", file="a.php", line=1),
            Issue("critical one", Severity.CRITICAL, "fix", file="b.php", line=2),
            Issue("medium one", Severity.MEDIUM, "fix", file="c.php", line=3),
        ]
        return Result.from_issues(issues, "ok", "Found {count} issue{s}")

    def test_limit_hides_least_severe(self):
        shown, hidden = displayed_issues(self._result(), limit=2)
        assert [i.message for i in shown] == ["critical one", "medium one"]
        assert hidden == 1

    def test_limit_leaves_result_untouched(self):
        result = self._result()
        displayed_issues(result, limit=1)
        assert result.status == Status.FAILED
        assert len(result.issues) == 3

    def test_zero_means_unlimited(self):
        shown, hidden = displayed_issues(self._result(), limit=0)
        assert len(shown) == 3
        assert hidden == 0

    def test_capped_table_run_still_fails(self, tmp_path):
        (tmp_path / "laraguard.yaml").write_text("max_issues_per_check: 1\n")
        app = tmp_path / "app"
        app.mkdir()
        (app / "A.php").write_text("<?php\nerror_reporting(E_ALL);\n")
        (app / "B.php").write_text("<?php\nvar_dump($x);\n")
        runner = CliRunner()
        result = runner.invoke(main, ["analyze", str(tmp_path), "-a", "debug-mode"])
        assert result.exit_code == 1
        assert "FAILED" in result.output
        assert "... and 1 more" in result.output
