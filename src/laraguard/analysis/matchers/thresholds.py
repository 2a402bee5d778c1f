"""Numeric-threshold sinks: cost factors and durations compared to a floor."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from laraguard.analysis.matchers.base import Match
from laraguard.analysis.models import Severity


@dataclass(frozen=True)
class Threshold:
    """A minimum acceptable value and how to report falling below it.

    ``message`` is formatted with ``value`` and ``minimum``.
    """

    name: str
    minimum: int
    severity: Severity
    message: str
    recommendation: str
    metadata: Mapping[str, Any] = field(default_factory=dict)


def as_int(value: Any) -> int | None:
    """Coerce a config or header value to int; None when it is not numeric."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
    return None


class ThresholdMatcher:
    """Compare detected numeric values against their floors."""

    def check(self, threshold: Threshold, value: Any, line: int | None = None) -> Match | None:
        number = as_int(value)
        if number is None or number >= threshold.minimum:
            return None
        metadata = {threshold.name: number, "minimum": threshold.minimum}
        metadata.update(threshold.metadata)
        return Match(
            message=threshold.message.format(value=number, minimum=threshold.minimum),
            severity=threshold.severity,
            recommendation=threshold.recommendation.format(
                value=number, minimum=threshold.minimum
            ),
            line=line,
            metadata=metadata,
        )
