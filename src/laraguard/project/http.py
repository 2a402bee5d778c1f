"""HTTP probing capability used by the live-site analyzers."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from laraguard.errors import FetchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Response:
    """The parts of an HTTP response the analyzers look at."""

    status: int
    text: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


class Fetcher(Protocol):
    """Anything that can GET a URL. Transport failures raise FetchError."""

    def fetch(self, url: str) -> Response: ...


class HttpxFetcher:
    """Fetcher backed by httpx. Redirects are not followed."""

    def __init__(self, timeout: float = 5.0, verify: bool = True) -> None:
        self.timeout = timeout
        self.verify = verify

    def fetch(self, url: str) -> Response:
        try:
            with httpx.Client(
                timeout=self.timeout, follow_redirects=False, verify=self.verify
            ) as client:
                r = client.get(url)
        except httpx.HTTPError as e:
            logger.debug("Probe of %s failed: %s", url, e)
            raise FetchError(url, str(e) or type(e).__name__) from e
        return Response(status=r.status_code, text=r.text, headers=dict(r.headers))


def is_local_url(url: str) -> bool:
    """Local development hosts (and unparseable URLs) are never probed."""
    try:
        host = (httpx.URL(url).host or "").lower()
    except httpx.InvalidURL:
        return True
    if not host:
        return True
    return host in ("localhost", "127.0.0.1", "::1", "0.0.0.0") or host.endswith(
        (".localhost", ".test", ".local")
    )
