"""Tests for the file permissions analyzer."""

from __future__ import annotations

import os

import pytest

from laraguard.analysis.models import Severity, Status
from laraguard.analyzers.file_permissions import FilePermissionsAnalyzer, permission_issue
from laraguard.config import DEFAULT_PERMISSION_RULES, PathRule

ENV_RULE = DEFAULT_PERMISSION_RULES[".env"]
CONFIG_RULE = DEFAULT_PERMISSION_RULES["config/app.php"]
DIR_RULE = DEFAULT_PERMISSION_RULES["app"]


class TestPermissionIssue:
    def test_world_writable(self):
        issue = permission_issue(".env", ENV_RULE, 0o666)
        assert issue.message == 'File ".env" is world-writable (permissions: 666)'
        assert issue.severity == Severity.CRITICAL
        assert issue.recommendation == "Change permissions to 600: chmod 600 .env"
        assert issue.metadata["world_writable"] is True

    def test_world_readable_critical_file(self):
        issue = permission_issue(".env", ENV_RULE, 0o644)
        assert issue.message == 'Critical file ".env" is world-readable (permissions: 644)'

    def test_exceeds_maximum(self):
        issue = permission_issue(".env", ENV_RULE, 0o640)
        assert issue.message == 'File ".env" has overly permissive permissions (640)'
        assert issue.severity == Severity.CRITICAL
        assert issue.metadata["exceeded_bits"] == "040"

    def test_exceeds_maximum_non_critical(self):
        issue = permission_issue("config/app.php", CONFIG_RULE, 0o664)
        assert issue.severity == Severity.HIGH

    def test_group_writable_critical_file(self):
        rule = PathRule("file", 0o660, 0o600, critical=True)
        issue = permission_issue(".env", rule, 0o660)
        assert issue.message == 'Critical file ".env" is group-writable (permissions: 660)'
        assert issue.severity == Severity.MEDIUM

    def test_unexpected_execute_bit(self):
        rule = PathRule("file", 0o755, 0o644)
        issue = permission_issue("config/app.php", rule, 0o744)
        assert issue.message == 'Non-executable file "config/app.php" has execute permissions (744)'
        assert issue.metadata["has_execute"] is True

    def test_world_writable_directory(self):
        issue = permission_issue("app", DIR_RULE, 0o777)
        assert issue.message == 'Directory "app" is world-writable (permissions: 777)'

    @pytest.mark.parametrize(
        ("relative", "mode"),
        [("app", 0o755), (".env", 0o600), ("config/app.php", 0o644), ("artisan", 0o755)],
    )
    def test_acceptable(self, relative, mode):
        assert permission_issue(relative, DEFAULT_PERMISSION_RULES[relative], mode) is None


@pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
class TestFilePermissionsAnalyzer:
    def test_insecure_env(self, make_context):
        context = make_context({".env": "APP_KEY=x\n", "config/app.php": "<?php return [];\n"})
        os.chmod(context.root / ".env", 0o644)
        os.chmod(context.root / "config", 0o755)
        os.chmod(context.root / "config/app.php", 0o644)
        result = FilePermissionsAnalyzer(context).analyze()
        assert result.status == Status.FAILED
        assert result.message == "Found 1 file permission security issue"
        (issue,) = result.issues
        assert issue.file == ".env"

    def test_secure_project(self, make_context):
        context = make_context({".env": "APP_KEY=x\n"})
        os.chmod(context.root / ".env", 0o600)
        result = FilePermissionsAnalyzer(context).analyze()
        assert result.status == Status.PASSED
        assert result.message == "File and directory permissions are secure"

    def test_skipped(self, make_context):
        result = FilePermissionsAnalyzer(make_context({})).analyze()
        assert result.status == Status.SKIPPED
