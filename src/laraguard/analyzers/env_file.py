"""Environment file hygiene: location, template contents, git exclusion, permissions."""

from __future__ import annotations

import logging
import os
import re
import stat

from laraguard.analysis.models import AnalyzerMetadata, Issue, Severity
from laraguard.analyzers.base import Analyzer
from laraguard.errors import UpstreamError
from laraguard.project.commands import CommandRunner, SubprocessRunner
from laraguard.project.env import parse_env

logger = logging.getLogger(__name__)

PUBLIC_DIRS = ("public", "public_html", "www", "html")

SENSITIVE_KEYS = (
    "APP_KEY",
    "DB_PASSWORD",
    "AWS_SECRET_ACCESS_KEY",
    "MAIL_PASSWORD",
    "REDIS_PASSWORD",
    "SESSION_SECRET",
    "JWT_SECRET",
    "STRIPE_SECRET",
    "PUSHER_APP_SECRET",
    "DATABASE_URL",
    "API_KEY",
    "SECRET_KEY",
    "PRIVATE_KEY",
    "OAUTH_CLIENT_SECRET",
)
PLACEHOLDER_KEYWORDS = ("null", "your-", "change-", "example")
# Values at most this long are treated as placeholders
_PLACEHOLDER_LENGTH = 20

_GITIGNORED = re.compile(r"^\s*/?(?:\.env\*?|\*\.env)\s*$", re.MULTILINE)


def looks_like_secret(value: str) -> bool:
    """A long, non-placeholder value that is not a base64 app key."""
    lowered = value.lower()
    if any(keyword in lowered for keyword in PLACEHOLDER_KEYWORDS):
        return False
    return len(value) > _PLACEHOLDER_LENGTH and not value.startswith("base64:")


class EnvFileSecurityAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id="env-file",
        name="Environment File Analyzer",
        description="Validates .env file security, location, and prevents exposure of sensitive "
        "data",
        severity=Severity.CRITICAL,
        time_to_fix=10,
        tags=("env", "environment", "secrets", "security", "configuration"),
    )
    passed_message = "Environment files are properly secured"
    failed_message = "Found {count} environment file security issue{s}"
    skip_reason = "No environment files, git repository, or public directories found to analyze"

    def should_run(self) -> bool:
        ctx = self.context
        return (
            ctx.exists(".env")
            or ctx.exists(".env.example")
            or ctx.exists(".gitignore")
            or ctx.path(".git").is_dir()
            or any(ctx.path(d).is_dir() for d in PUBLIC_DIRS)
        )

    @property
    def runner(self) -> CommandRunner:
        if self.context.command_runner is not None:
            return self.context.command_runner
        return SubprocessRunner(timeout=10)

    def run(self) -> list[Issue]:
        issues = self._public_env_files()
        issues.extend(self._env_example())
        issues.extend(self._gitignore())
        issues.extend(self._permissions())
        return issues

    def _public_env_files(self) -> list[Issue]:
        issues: list[Issue] = []
        for directory in PUBLIC_DIRS:
            relative = f"{directory}/.env"
            if not self.context.exists(relative):
                continue
            issues.append(
                Issue(
                    message=".env file found in publicly accessible directory",
                    severity=Severity.CRITICAL,
                    recommendation="IMMEDIATELY remove .env from public directory. It should be in "
                    "the application root, one level above public/",
                    file=relative,
                    metadata={"path": relative},
                )
            )
        return issues

    def _env_example(self) -> list[Issue]:
        if not self.context.exists(".env.example"):
            if not self.context.exists(".env"):
                return []
            return [
                Issue(
                    message="Missing .env.example file",
                    severity=Severity.LOW,
                    recommendation="Create .env.example as a template for environment "
                    "configuration (without sensitive values)",
                    file=".env.example",
                    metadata={"file": ".env.example", "exists": False, "env_file_exists": True},
                )
            ]
        content = self.context.read(".env.example")
        if content is None:
            return []
        example = parse_env(content, path=".env.example")
        issues: list[Issue] = []
        for key in SENSITIVE_KEYS:
            value = example.raw(key)
            if not value or not looks_like_secret(value):
                continue
            issues.append(
                Issue(
                    message=f'Sensitive key "{key}" may contain real credentials in .env.example',
                    severity=Severity.HIGH,
                    recommendation="Replace with placeholder value. .env.example should not "
                    "contain real credentials",
                    file=".env.example",
                    line=example.lines[key],
                    code=key,
                    metadata={"key": key, "value_length": len(value), "file": ".env.example"},
                )
            )
        return issues

    def _gitignore(self) -> list[Issue]:
        if not self.context.exists(".gitignore"):
            return []
        content = self.context.read(".gitignore")
        if content is None:
            return []
        issues: list[Issue] = []
        if _GITIGNORED.search(content) is None:
            issues.append(
                Issue(
                    message=".env file is not excluded in .gitignore",
                    severity=Severity.CRITICAL,
                    recommendation='Add ".env" to .gitignore to prevent accidentally committing '
                    "secrets to version control",
                    file=".gitignore",
                    code=".env",
                    metadata={"file": ".gitignore", "missing_pattern": ".env"},
                )
            )
        if self.context.path(".git").is_dir() and self.context.exists(".env") and self._tracked(".env"):
            issues.append(
                Issue(
                    message=".env file is committed to git repository",
                    severity=Severity.CRITICAL,
                    recommendation='Remove .env from git: "git rm --cached .env" and ensure it\'s '
                    "in .gitignore",
                    file=".env",
                    code="git-tracked",
                    metadata={"file": ".env", "git_tracked": True},
                )
            )
        return issues

    def _tracked(self, relative: str) -> bool:
        try:
            output = self.runner.run(
                ["git", "ls-files", "--error-unmatch", relative], cwd=self.context.root
            )
        except UpstreamError as e:
            # ls-files exits non-zero for untracked paths
            logger.debug("%s is not tracked: %s", relative, e)
            return False
        return relative in output

    def _permissions(self) -> list[Issue]:
        path = self.context.path(".env")
        if os.name == "nt" or not path.is_file():
            return []
        try:
            mode = stat.S_IMODE(path.stat().st_mode)
        except OSError as e:
            logger.debug("Cannot stat %s: %s", path, e)
            return []
        octal = f"{mode:03o}"
        world_readable = bool(mode & stat.S_IROTH)
        world_writable = bool(mode & stat.S_IWOTH)
        if world_readable or world_writable:
            return [
                Issue(
                    message=f".env file has insecure permissions ({octal})",
                    severity=Severity.CRITICAL,
                    recommendation="Restrict .env permissions: chmod 600 .env",
                    file=".env",
                    code="permissions",
                    metadata={
                        "permissions": octal,
                        "world_readable": world_readable,
                        "world_writable": world_writable,
                    },
                )
            ]
        group_readable = bool(mode & stat.S_IRGRP)
        group_writable = bool(mode & stat.S_IWGRP)
        if group_readable or group_writable:
            return [
                Issue(
                    message=f".env file has overly permissive permissions ({octal})",
                    severity=Severity.MEDIUM,
                    recommendation="Consider restricting .env permissions: chmod 600 .env "
                    "(readable only by owner)",
                    file=".env",
                    code="permissions",
                    metadata={
                        "permissions": octal,
                        "group_readable": group_readable,
                        "group_writable": group_writable,
                    },
                )
            ]
        return []
