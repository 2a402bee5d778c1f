"""Tests for the environment file analyzer."""

from __future__ import annotations

import os

import pytest

from laraguard.analysis.models import Severity, Status
from laraguard.analyzers.env_file import EnvFileSecurityAnalyzer, looks_like_secret

GIT_LS_FILES = "git ls-files --error-unmatch .env"


def _context(make_context, files, mode=0o600, **kwargs):
    context = make_context(files, **kwargs)
    env = context.path(".env")
    if env.exists():
        env.chmod(mode)
    return context


def _messages(result):
    return [i.message for i in result.issues]


class TestLocation:
    def test_env_in_public_directory(self, make_context):
        context = _context(make_context, {"public/.env": "APP_KEY=x\n"})
        (issue,) = EnvFileSecurityAnalyzer(context).analyze().issues
        assert issue.message == ".env file found in publicly accessible directory"
        assert issue.file == "public/.env"
        assert issue.severity == Severity.CRITICAL

    def test_skipped_without_env_artifacts(self, make_context):
        result = EnvFileSecurityAnalyzer(make_context({"app/User.php": "<?php\n"})).analyze()
        assert result.status == Status.SKIPPED


class TestExample:
    def test_missing_example(self, make_context):
        context = _context(make_context, {".env": "APP_ENV=local\n"})
        result = EnvFileSecurityAnalyzer(context).analyze()
        (issue,) = result.issues
        assert issue.message == "Missing .env.example file"
        assert issue.severity == Severity.LOW
        assert result.status == Status.WARNING

    def test_real_credentials_in_example(self, make_context):
        example = (
            "APP_KEY=base64:c2VjcmV0c2VjcmV0c2VjcmV0c2VjcmV0c2VjcmV0MTI=\n"
            "DB_PASSWORD=Sup3rS3cretProductionPassw0rd\n"
            "MAIL_PASSWORD=your-mail-password-goes-here\n"
            "API_KEY=\n"
        )
        result = EnvFileSecurityAnalyzer(make_context({".env.example": example})).analyze()
        (issue,) = result.issues
        assert issue.message == 'Sensitive key "DB_PASSWORD" may contain real credentials in .env.example'
        assert (issue.file, issue.line, issue.code) == (".env.example", 2, "DB_PASSWORD")
        assert issue.metadata["value_length"] == 29


class TestGit:
    def test_env_not_ignored(self, make_context):
        result = EnvFileSecurityAnalyzer(make_context({".gitignore": "/vendor\n"})).analyze()
        assert _messages(result) == [".env file is not excluded in .gitignore"]
        assert result.status == Status.FAILED

    @pytest.mark.parametrize("pattern", [".env", "/.env", "*.env", ".env*"])
    def test_env_ignored(self, make_context, pattern):
        result = EnvFileSecurityAnalyzer(make_context({".gitignore": f"/vendor\n{pattern}\n"})).analyze()
        assert result.status == Status.PASSED

    def test_env_committed(self, make_context, fake_commands):
        runner = fake_commands({GIT_LS_FILES: ".env\n"})
        files = {".env": "APP_ENV=production\n", ".env.example": "", ".gitignore": ".env\n", ".git/HEAD": ""}
        context = _context(make_context, files, command_runner=runner)
        result = EnvFileSecurityAnalyzer(context).analyze()
        assert _messages(result) == [".env file is committed to git repository"]
        assert runner.calls == [GIT_LS_FILES.split()]

    def test_untracked_env(self, make_context, fake_commands):
        runner = fake_commands(error="git exited with code 1: error: pathspec '.env' did not match")
        files = {".env": "APP_ENV=production\n", ".env.example": "", ".gitignore": ".env\n", ".git/HEAD": ""}
        context = _context(make_context, files, command_runner=runner)
        assert EnvFileSecurityAnalyzer(context).analyze().status == Status.PASSED


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
class TestPermissions:
    @pytest.mark.parametrize(
        ("mode", "message", "severity"),
        [
            (0o644, ".env file has insecure permissions (644)", Severity.CRITICAL),
            (0o640, ".env file has overly permissive permissions (640)", Severity.MEDIUM),
        ],
    )
    def test_loose_permissions(self, make_context, mode, message, severity):
        context = _context(make_context, {".env": "A=1\n", ".env.example": "A=\n"}, mode=mode)
        (issue,) = EnvFileSecurityAnalyzer(context).analyze().issues
        assert (issue.message, issue.severity) == (message, severity)

    def test_owner_only(self, make_context):
        context = _context(make_context, {".env": "A=1\n", ".env.example": "A=\n"})
        assert EnvFileSecurityAnalyzer(context).analyze().status == Status.PASSED


def test_looks_like_secret():
    assert looks_like_secret("Sup3rS3cretProductionPassw0rd")
    assert not looks_like_secret("your-database-password-here")
    assert not looks_like_secret("short")
    assert not looks_like_secret("base64:AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA")
