"""composer.json / composer.lock loading."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockedPackage:
    """One installed package from composer.lock."""

    name: str
    version: str
    dev: bool = False
    time: str | None = None
    abandoned: bool | str = False


def load_json(path: str | Path) -> dict[str, Any]:
    """Read a Composer manifest. Invalid JSON or a non-object document raises ValueError."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ValueError(f"Unable to read {path.name}: {e}") from e
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"{path.name} file is invalid JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise ValueError(f"{path.name} must contain a JSON object")
    return data


def normalize_version(version: str) -> str:
    """Composer tags are often prefixed with ``v``."""
    return version.lstrip("v")


def locked_packages(lock: dict[str, Any]) -> list[LockedPackage]:
    """Packages from both ``packages`` and ``packages-dev``, in file order.

    Entries without a name or version are dropped; this list feeds version
    matching, which needs both.
    """
    packages: list[LockedPackage] = []
    for section, dev in (("packages", False), ("packages-dev", True)):
        entries = lock.get(section)
        if not isinstance(entries, list):
            continue
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            name, version = entry.get("name"), entry.get("version")
            if not isinstance(name, str) or not isinstance(version, str):
                continue
            time = entry.get("time")
            packages.append(
                LockedPackage(
                    name=name,
                    version=normalize_version(version),
                    dev=dev,
                    time=time if isinstance(time, str) else None,
                    abandoned=_abandoned(entry),
                )
            )
    return packages


def raw_lock_entries(lock: dict[str, Any]) -> list[dict[str, Any]]:
    """Every package entry as written, malformed ones included."""
    entries: list[dict[str, Any]] = []
    for section in ("packages", "packages-dev"):
        values = lock.get(section)
        if isinstance(values, list):
            entries.extend(e for e in values if isinstance(e, dict))
    return entries


def dependencies(lock: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """``{name: {"version": ..., "time": ...}}`` as consumed by advisory lookups."""
    return {p.name: {"version": p.version, "time": p.time} for p in locked_packages(lock)}


def _abandoned(entry: dict[str, Any]) -> bool | str:
    value = entry.get("abandoned", False)
    if isinstance(value, str):
        return value or True
    return bool(value)


class LineIndex:
    """Line lookups in a JSON manifest, cached per package name."""

    def __init__(self, text: str) -> None:
        self._lines = text.splitlines()
        self._cache: dict[str, int] = {}

    @classmethod
    def from_file(cls, path: str | Path) -> LineIndex:
        try:
            return cls(Path(path).read_text(encoding="utf-8", errors="ignore"))
        except OSError as e:
            logger.debug("Cannot read %s: %s", path, e)
            return cls("")

    def package_line(self, name: str) -> int:
        """Line of ``"name": "<package>"`` in a lock file; 1 when absent."""
        if name not in self._cache:
            pattern = re.compile(r'"name"\s*:\s*"' + re.escape(name) + '"', re.IGNORECASE)
            self._cache[name] = self._find(pattern)
        return self._cache[name]

    def key_line(self, key: str) -> int:
        """Line where ``"<key>":`` first appears (composer.json requirements, flags)."""
        return self._find(re.compile(r'"' + re.escape(key) + r'"\s*:'))

    def _find(self, pattern: re.Pattern[str]) -> int:
        for number, line in enumerate(self._lines, start=1):
            if pattern.search(line):
                return number
        return 1
