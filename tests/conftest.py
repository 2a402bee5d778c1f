"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import pytest

from laraguard.analyzers.base import AnalysisContext
from laraguard.config import ScanConfig
from laraguard.errors import FetchError, UpstreamError
from laraguard.project.http import Response


class FakeFetcher:
    """Serves canned responses by URL; unknown URLs fail like a refused connection."""

    def __init__(self, responses: Mapping[str, Response] | None = None) -> None:
        self.responses = dict(responses or {})
        self.requested: list[str] = []

    def fetch(self, url: str) -> Response:
        self.requested.append(url)
        if url not in self.responses:
            raise FetchError(url, "connection refused")
        return self.responses[url]


class FakeAdvisoryFetcher:
    def __init__(
        self,
        advisories: dict[str, list[dict[str, Any]]] | None = None,
        error: str | None = None,
    ) -> None:
        self.advisories = advisories or {}
        self.error = error
        self.calls: list[Mapping[str, Any]] = []

    def fetch(self, dependencies: Mapping[str, Mapping[str, Any]]) -> dict[str, list[dict[str, Any]]]:
        self.calls.append(dependencies)
        if self.error is not None:
            raise UpstreamError(self.error)
        return self.advisories


class FakeCommandRunner:
    """Answers commands from a table keyed by their joined arguments."""

    def __init__(self, outputs: Mapping[str, str] | None = None, error: str | None = None) -> None:
        self.outputs = dict(outputs or {})
        self.error = error
        self.calls: list[list[str]] = []

    def run(self, args: list[str], cwd: Path) -> str:
        self.calls.append(list(args))
        if self.error is not None:
            raise UpstreamError(self.error)
        return self.outputs.get(" ".join(args), "")


@pytest.fixture
def make_project(tmp_path: Path) -> Callable[[dict[str, str]], Path]:
    """Write ``{relative path: content}`` under a temporary project root."""

    def _make(files: dict[str, str]) -> Path:
        for relative, content in files.items():
            path = tmp_path / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return tmp_path

    return _make


@pytest.fixture
def make_context(make_project) -> Callable[..., AnalysisContext]:
    """Build an AnalysisContext over a temporary project."""

    def _make(files: dict[str, str], config: ScanConfig | None = None, **kwargs: Any) -> AnalysisContext:
        root = make_project(files)
        return AnalysisContext(root, config=config or ScanConfig(), **kwargs)

    return _make


@pytest.fixture
def fake_fetcher() -> type[FakeFetcher]:
    return FakeFetcher


@pytest.fixture
def fake_advisories() -> type[FakeAdvisoryFetcher]:
    return FakeAdvisoryFetcher


@pytest.fixture
def fake_commands() -> type[FakeCommandRunner]:
    return FakeCommandRunner
