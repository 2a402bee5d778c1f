"""Shared match record and matcher protocol."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from tree_sitter import Tree

from laraguard.analysis.models import Issue, Severity


@dataclass(frozen=True)
class Match:
    """A confirmed detection, not yet bound to a file."""

    message: str
    severity: Severity
    recommendation: str
    line: int | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_issue(self, file: str, code: str = "") -> Issue:
        return Issue(
            message=self.message,
            severity=self.severity,
            recommendation=self.recommendation,
            file=file,
            line=self.line,
            metadata=self.metadata,
            code=code,
        )


class SinkMatcher(Protocol):
    """Protocol for per-file sink matchers."""

    def find(self, content: str, file_path: str, tree: Tree | None = None) -> list[Match]:
        """Return the detections in one file. Must not raise on bad input."""
        ...


def is_comment_line(line: str) -> bool:
    """Whether a source line is a PHP/JS single-line or block comment line."""
    stripped = line.lstrip()
    return stripped.startswith(("//", "#", "/*", "*"))
