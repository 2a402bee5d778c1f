"""Parse ``.env`` files the way Laravel's env() helper reads them."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_LINE = re.compile(r"^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_.]*)\s*=\s*(.*?)\s*$")

# Laravel casts these literal env strings
_SPECIAL_VALUES: dict[str, Any] = {
    "true": True,
    "(true)": True,
    "false": False,
    "(false)": False,
    "empty": "",
    "(empty)": "",
    "null": None,
    "(null)": None,
}


@dataclass
class EnvFile:
    """Raw values of one env file with the line each key is defined on."""

    path: str = ".env"
    values: dict[str, str] = field(default_factory=dict)
    lines: dict[str, int] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        """Value cast like Laravel's env(): true/false/null/empty become Python values."""
        if key not in self.values:
            return default
        return cast_env_value(self.values[key])

    def raw(self, key: str) -> str | None:
        return self.values.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self.values


def cast_env_value(raw: str) -> Any:
    lowered = raw.lower()
    if lowered in _SPECIAL_VALUES:
        return _SPECIAL_VALUES[lowered]
    return raw


def parse_env(text: str, path: str = ".env") -> EnvFile:
    """Parse KEY=VALUE lines. Later definitions win, comments and blanks are ignored."""
    env = EnvFile(path=path)
    for number, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        m = _LINE.match(line)
        if m is None:
            continue
        key, value = m.group(1), m.group(2)
        env.values[key] = _unquote(value)
        env.lines[key] = number
    return env


def read_env_file(path: str | Path) -> EnvFile:
    """Read an env file; a missing or unreadable file yields an empty EnvFile."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8", errors="ignore")
    except OSError as e:
        logger.debug("Cannot read env file %s: %s", path, e)
        return EnvFile(path=path.name)
    return parse_env(text, path=path.name)


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    # Inline comment after an unquoted value
    if " #" in value:
        value = value.split(" #", 1)[0].rstrip()
    return value
