"""Read PHP ini files (php.ini, .user.ini) as flat directive tables."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

_DIRECTIVE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_.\-]*)\s*=\s*(.*?)\s*$")
_COMMENTED = re.compile(r"^\s*[;#]+\s*([A-Za-z_][A-Za-z0-9_.\-]*)\s*=")

ENABLED_VALUES = ("1", "on", "yes", "true")
DISABLED_VALUES = ("0", "off", "no", "false")


@dataclass
class IniFile:
    """Directives of one ini file; sections are flattened, later definitions win."""

    path: str
    values: dict[str, str] = field(default_factory=dict)
    lines: dict[str, int] = field(default_factory=dict)
    commented: dict[str, int] = field(default_factory=dict)
    source: list[str] = field(default_factory=list)

    def __contains__(self, key: str) -> bool:
        return key in self.values

    def line_of(self, key: str) -> int:
        """Line defining *key*, else where it appears commented out, else 1."""
        return self.lines.get(key) or self.commented.get(key) or 1

    def code_at(self, line: int) -> str:
        if 1 <= line <= len(self.source):
            return self.source[line - 1].strip()
        return ""


def ini_flag(raw: str) -> bool | None:
    """On/Off style value as a bool; anything else is None."""
    lowered = raw.strip().lower()
    if lowered in ENABLED_VALUES:
        return True
    if lowered in DISABLED_VALUES:
        return False
    return None


def parse_ini(text: str, path: str = "php.ini") -> IniFile:
    ini = IniFile(path=path, source=text.splitlines())
    for number, line in enumerate(ini.source, start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("["):
            continue
        if stripped.startswith((";", "#")):
            m = _COMMENTED.match(line)
            if m is not None:
                ini.commented.setdefault(m.group(1), number)
            continue
        m = _DIRECTIVE.match(line)
        if m is None:
            continue
        ini.values[m.group(1)] = _value(m.group(2))
        ini.lines[m.group(1)] = number
    return ini


def read_ini_file(path: str | Path, relative: str | None = None) -> IniFile | None:
    """Parse an ini file; unreadable files yield None."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8", errors="ignore")
    except OSError as e:
        logger.debug("Cannot read ini file %s: %s", path, e)
        return None
    return parse_ini(text, path=relative or path.name)


def _value(raw: str) -> str:
    if raw and raw[0] in "\"'":
        end = raw.find(raw[0], 1)
        if end != -1:
            return raw[1:end]
    # Inline comment after an unquoted value
    return raw.split(";", 1)[0].strip()
