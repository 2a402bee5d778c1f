"""Analysis data models: severities, issues and analyzer results."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any


class Severity(enum.Enum):
    """Issue severity level, ordered critical > high > medium > low."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class Status(enum.Enum):
    """Aggregate outcome of one analyzer run."""

    PASSED = "passed"
    WARNING = "warning"
    FAILED = "failed"
    ERROR = "error"
    SKIPPED = "skipped"


class Category(enum.Enum):
    SECURITY = "security"


@dataclass(frozen=True)
class AnalyzerMetadata:
    """Fixed identifying metadata an analyzer declares for reporting."""

    id: str
    name: str
    description: str
    severity: Severity
    category: Category = Category.SECURITY
    time_to_fix: int = 30
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class Issue:
    """A single finding produced by a matcher or a direct content check."""

    message: str
    severity: Severity
    recommendation: str
    file: str = ""
    line: int | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    code: str = ""

    def __post_init__(self) -> None:
        if self.line is not None and self.line < 1:
            raise ValueError(f"Issue line must be >= 1, got {self.line}")
        # Freeze a private copy so callers cannot mutate the issue afterwards
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def key(self) -> tuple[str, str, int | None]:
        """Deduplication key: same message at the same location."""
        return (self.message, self.file, self.line)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "severity": self.severity.value,
            "file": self.file,
            "line": self.line,
            "recommendation": self.recommendation,
            "metadata": dict(self.metadata),
            "code": self.code,
        }


def worst_severity(issues: Iterable[Issue]) -> Severity | None:
    """Return the highest severity among *issues*, or None if there are none."""
    worst: Severity | None = None
    for issue in issues:
        if worst is None or issue.severity > worst:
            worst = issue.severity
    return worst


def roll_up(issues: Iterable[Issue], medium_fails: bool = False) -> Status:
    """Map the worst issue severity to an aggregate status.

    No issues is PASSED, HIGH or CRITICAL is FAILED, LOW is WARNING.
    MEDIUM is WARNING unless the analyzer opts into *medium_fails*.
    """
    worst = worst_severity(issues)
    if worst is None:
        return Status.PASSED
    if worst >= Severity.HIGH:
        return Status.FAILED
    if worst == Severity.MEDIUM and medium_fails:
        return Status.FAILED
    return Status.WARNING


def deduplicate(issues: Iterable[Issue]) -> list[Issue]:
    """Drop repeated (message, file, line) detections, keeping the first."""
    seen: set[tuple[str, str, int | None]] = set()
    unique: list[Issue] = []
    for issue in issues:
        if issue.key in seen:
            continue
        seen.add(issue.key)
        unique.append(issue)
    return unique


def pluralize(count: int, word: str, plural: str | None = None) -> str:
    """Format a count with the singular or plural form of *word*."""
    if count == 1:
        return f"1 {word}"
    return f"{count} {plural or word + 's'}"


@dataclass(frozen=True)
class Result:
    """Outcome of one analyzer run. Status is derived, never set freely."""

    status: Status
    message: str
    issues: tuple[Issue, ...] = ()
    analyzer_id: str = ""

    @classmethod
    def from_issues(
        cls,
        issues: Iterable[Issue],
        passed_message: str,
        failed_message: str,
        medium_fails: bool = False,
        analyzer_id: str = "",
    ) -> Result:
        """Roll up *issues* into a result.

        *failed_message* may contain ``{count}`` and ``{s}`` placeholders,
        filled with the issue count and a plural suffix.
        """
        unique = tuple(deduplicate(issues))
        status = roll_up(unique, medium_fails=medium_fails)
        if status == Status.PASSED:
            message = passed_message
        else:
            count = len(unique)
            message = failed_message.format(count=count, s="" if count == 1 else "s")
        return cls(status=status, message=message, issues=unique, analyzer_id=analyzer_id)

    @classmethod
    def passed(cls, message: str, analyzer_id: str = "") -> Result:
        return cls(status=Status.PASSED, message=message, analyzer_id=analyzer_id)

    @classmethod
    def skipped(cls, reason: str, analyzer_id: str = "") -> Result:
        return cls(status=Status.SKIPPED, message=reason, analyzer_id=analyzer_id)

    @classmethod
    def error(cls, message: str, analyzer_id: str = "") -> Result:
        return cls(status=Status.ERROR, message=message, analyzer_id=analyzer_id)

    @property
    def worst_severity(self) -> Severity | None:
        return worst_severity(self.issues)

    def to_dict(self) -> dict[str, Any]:
        return {
            "analyzer": self.analyzer_id,
            "status": self.status.value,
            "message": self.message,
            "issues": [issue.to_dict() for issue in self.issues],
        }
