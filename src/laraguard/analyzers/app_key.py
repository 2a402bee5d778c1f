"""Application encryption key: APP_KEY in env files and the cipher in config/app.php."""

from __future__ import annotations

import base64
import binascii
import logging
import re

from laraguard.analysis.matchers.base import is_comment_line
from laraguard.analysis.models import AnalyzerMetadata, Issue, Severity
from laraguard.analyzers.base import Analyzer
from laraguard.project.env import read_env_file

logger = logging.getLogger(__name__)

APP_CONFIG = "config/app.php"
# .env.example is a template and is expected to ship an empty key
ENV_FILES = (".env", ".env.production", ".env.prod")

PLACEHOLDER_KEYS = ("base64:your-key-here", "somerandomstring", "null")
SUPPORTED_CIPHERS = ("aes-128-cbc", "aes-256-cbc", "aes-128-gcm", "aes-256-gcm")
# Decoded key length required by the AES-128 and AES-256 ciphers
KEY_LENGTHS = (16, 32)

_HARDCODED_KEY = re.compile(r"""["']key["']\s*=>\s*["']""", re.IGNORECASE)
_CIPHER = re.compile(r"""["']cipher["']\s*=>\s*["']([^"']+)["']""", re.IGNORECASE)

GENERATE = 'Run "php artisan key:generate" to generate a secure application key'


def malformed_key(value: str) -> bool:
    """A ``base64:`` key that does not decode to an AES key, or a short raw key."""
    if not value.startswith("base64:"):
        return len(value) < 32
    try:
        decoded = base64.b64decode(value[len("base64:") :], validate=True)
    except (binascii.Error, ValueError):
        return True
    return len(decoded) not in KEY_LENGTHS


class AppKeyAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id="app-key-security",
        name="Application Key Security Analyzer",
        description="Validates that the application encryption key is properly configured and "
        "secure",
        severity=Severity.CRITICAL,
        tags=("encryption", "app-key", "security", "configuration"),
    )
    passed_message = "Application encryption key is properly configured"
    failed_message = "Found {count} application key security issue{s}"
    skip_reason = "No environment files or config/app.php found"

    def should_run(self) -> bool:
        return any(self.context.exists(p) for p in ENV_FILES + (APP_CONFIG,))

    def run(self) -> list[Issue]:
        issues: list[Issue] = []
        for relative in ENV_FILES:
            if self.context.exists(relative):
                issues.extend(self._env_issues(relative))
        issues.extend(self._config_issues())
        return issues

    def _env_issues(self, relative: str) -> list[Issue]:
        env = read_env_file(self.context.path(relative))
        if "APP_KEY" not in env:
            return [
                Issue(
                    message="APP_KEY is not defined in environment file",
                    severity=Severity.CRITICAL,
                    recommendation='Add APP_KEY to your .env file and run "php artisan key:generate"',
                    file=relative,
                    line=1,
                    code="Missing APP_KEY configuration",
                )
            ]
        value = env.raw("APP_KEY") or ""
        line = env.lines["APP_KEY"]
        if not value.strip():
            message, severity, recommendation = (
                "APP_KEY is not set or is empty",
                Severity.CRITICAL,
                GENERATE,
            )
        elif value.lower() in PLACEHOLDER_KEYS:
            message, severity, recommendation = (
                "APP_KEY is set to a placeholder/example value",
                Severity.CRITICAL,
                GENERATE,
            )
        elif malformed_key(value):
            message, severity, recommendation = (
                "APP_KEY does not follow the expected format or is too short",
                Severity.HIGH,
                'Ensure APP_KEY is properly generated with "php artisan key:generate"',
            )
        else:
            return []
        # The key itself is a secret; keep it out of reports
        return [
            Issue(
                message=message,
                severity=severity,
                recommendation=recommendation,
                file=relative,
                line=line,
                code="APP_KEY=***" if value.strip() else "APP_KEY=",
                metadata={"env_var": "APP_KEY"},
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
            if is_comment_line(line):
                continue
            if _HARDCODED_KEY.search(line) and "env(" not in line:
                issues.append(
                    Issue(
                        message="Application key is hardcoded in config/app.php instead of using "
                        "environment variable",
                        severity=Severity.CRITICAL,
                        recommendation='Use env("APP_KEY") to reference the key from .env file',
                        file=APP_CONFIG,
                        line=number,
                        metadata={"config_key": "key"},
                    )
                )
            m = _CIPHER.search(line)
            if m is not None and m.group(1).lower() not in SUPPORTED_CIPHERS:
                cipher = m.group(1).lower()
                issues.append(
                    Issue(
                        message=f"Unsupported or weak cipher algorithm: {cipher}",
                        severity=Severity.HIGH,
                        recommendation='Use "AES-256-CBC" or "AES-128-CBC" cipher',
                        file=APP_CONFIG,
                        line=number,
                        code=line.strip(),
                        metadata={"cipher": cipher},
                    )
                )
        return issues
