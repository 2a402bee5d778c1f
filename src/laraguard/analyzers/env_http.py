"""Live probe: is the .env file served over HTTP?"""

from __future__ import annotations

import logging
import re

import httpx

from laraguard.analysis.models import AnalyzerMetadata, Issue, Severity
from laraguard.analyzers.base import Analyzer
from laraguard.errors import FetchError
from laraguard.project.http import is_local_url

logger = logging.getLogger(__name__)

ENV_PROBE_PATHS = (
    ".env",
    "../.env",
    "../../.env",
    "../../../.env",
    "storage/.env",
    "public/.env",
    "app/.env",
    "config/.env",
)

ENV_INDICATORS = (
    "APP_NAME=",
    "APP_ENV=",
    "APP_KEY=",
    "DB_CONNECTION=",
    "DB_HOST=",
    "DB_DATABASE=",
    "DB_USERNAME=",
    "DB_PASSWORD=",
)

_ENV_LINE = re.compile(r"^[A-Z_][A-Z0-9_]*\s*=\s*.+$", re.MULTILINE)


def base_url(url: str) -> str:
    """Scheme, host and port of *url*; the path is dropped."""
    parsed = httpx.URL(url)
    port = f":{parsed.port}" if parsed.port else ""
    return f"{parsed.scheme or 'https'}://{parsed.host}{port}"


def env_indicators(body: str) -> list[str]:
    """What makes a response body look like an env file; empty when it does not.

    Two well-known keys are enough; otherwise any KEY=VALUE line counts.
    """
    found = [indicator for indicator in ENV_INDICATORS if indicator in body]
    if len(found) >= 2:
        return found
    if _ENV_LINE.search(body):
        return ["KEY=VALUE pattern detected"]
    return []


def probe_severity(path: str) -> Severity:
    if "public/" in path or path in (".env", "../.env"):
        return Severity.CRITICAL
    if any(part in path for part in ("storage/", "app/", "config/")):
        return Severity.HIGH
    return Severity.MEDIUM


def probe_recommendation(path: str) -> str:
    prefix = "IMMEDIATE ACTION REQUIRED: "
    if "public/" in path:
        return (
            prefix + "Remove .env from the public directory immediately. The .env file must "
            "never be in a publicly accessible directory. Serve only from public/ and keep "
            ".env one level above."
        )
    if path in (".env", "../.env"):
        return (
            prefix + "Configure your web server to block access to .env files. Apache: "
            '"RewriteRule ^\\.env$ - [F,L]"; nginx: "location ~ /\\.env { deny all; }". '
            "Also ensure your document root is set to the public/ directory."
        )
    return (
        prefix + "Configure your web server to block directory traversal and access to .env "
        "files."
    )


class EnvHttpAccessibilityAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id="env-http-accessibility",
        name="Environment File HTTP Accessibility Check",
        description="Verifies the .env file is not accessible via HTTP requests to the web server",
        severity=Severity.CRITICAL,
        time_to_fix=20,
        tags=("env", "http", "security", "runtime", "web-server", "deployment"),
    )
    passed_message = ".env file is not accessible via HTTP - web server properly configured"
    failed_message = ".env file is publicly accessible at {count} location{s}"

    def should_run(self) -> bool:
        url = self.context.config.base_url
        return bool(url) and self.context.fetcher is not None and not is_local_url(url)

    def get_skip_reason(self) -> str:
        if not self.context.config.base_url:
            return "No base URL configured for HTTP accessibility check"
        if self.context.fetcher is None:
            return "No HTTP client available for HTTP accessibility check"
        return "Skipped for localhost URLs (local development environment)"

    def run(self) -> list[Issue]:
        fetcher = self.context.fetcher
        if fetcher is None:
            return []
        root = base_url(self.context.config.base_url or "")
        issues: list[Issue] = []
        tested: set[str] = set()
        for path in ENV_PROBE_PATHS:
            url = f"{root.rstrip('/')}/{path.lstrip('/')}"
            if url in tested:
                continue
            tested.add(url)
            try:
                response = fetcher.fetch(url)
            except FetchError as e:
                # Unreachable is inconclusive, not exposed
                logger.debug("Probe of %s inconclusive: %s", url, e)
                continue
            if response.status != 200:
                continue
            indicators = env_indicators(response.text)
            if not indicators:
                continue
            issues.append(
                Issue(
                    message=f".env file is publicly accessible via HTTP at: {url}",
                    severity=probe_severity(path),
                    recommendation=probe_recommendation(path),
                    file=".env",
                    line=1,
                    metadata={
                        "url": url,
                        "path": path,
                        "accessible": True,
                        "indicators_found": indicators,
                    },
                )
            )
        return issues
