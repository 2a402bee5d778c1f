"""Inline ``@laraguard-ignore`` comments.

``// @laraguard-ignore`` silences every analyzer for the line it is on and
the line below it; ``// @laraguard-ignore sql-injection,xss-vulnerabilities``
silences only the listed analyzers.
"""

from __future__ import annotations

import re
from pathlib import Path

_MARKER = re.compile(r"@laraguard-ignore(?:[ \t]+([\w,-]+))?", re.IGNORECASE)


def line_suppresses(line: str, analyzer_id: str) -> bool:
    m = _MARKER.search(line)
    if m is None:
        return False
    if m.group(1) is None:
        return True
    return analyzer_id in {part.strip() for part in m.group(1).split(",")}


class SuppressionIndex:
    """Answers whether an issue location is suppressed, caching file lines."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self._lines: dict[str, list[str]] = {}

    def is_suppressed(self, file: str, line: int | None, analyzer_id: str) -> bool:
        if not file or line is None or line < 1:
            return False
        lines = self._file_lines(file)
        for index in (line - 1, line - 2):
            if 0 <= index < len(lines) and line_suppresses(lines[index], analyzer_id):
                return True
        return False

    def _file_lines(self, file: str) -> list[str]:
        if file not in self._lines:
            try:
                text = (self.root / file).read_text(encoding="utf-8", errors="ignore")
            except OSError:
                text = ""
            self._lines[file] = text.split("\n")
        return self._lines[file]
