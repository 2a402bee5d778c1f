"""Static reader for Laravel ``config/*.php`` files.

Each config file returns a PHP array literal. The reader evaluates that
literal with tree-sitter, resolving ``env('KEY', default)`` against the
project's ``.env`` file, and records the line of every key so findings can
point at the setting itself.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tree_sitter import Node

from laraguard.analysis.php import (
    array_elements,
    call_arguments,
    call_name,
    find_nodes,
    node_line,
    node_text,
    parse_php,
    string_literal_value,
    unwrap,
)
from laraguard.project.env import EnvFile, cast_env_value, read_env_file

logger = logging.getLogger(__name__)

_UNRESOLVED = object()


@dataclass(frozen=True)
class ConfigEntry:
    """One config key: its effective value and where it was declared."""

    value: Any
    file: str = ""
    line: int | None = None
    env_key: str = ""
    env_has_default: bool = False
    resolved: bool = True

    @property
    def is_env_call(self) -> bool:
        return bool(self.env_key)


class ConfigRepository:
    """Dotted-key access (``session.secure``) over statically read config values."""

    def __init__(self, entries: Mapping[str, ConfigEntry] | None = None) -> None:
        self._entries: dict[str, ConfigEntry] = dict(entries or {})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], file_prefix: str = "config") -> ConfigRepository:
        """Build a repository from nested dicts keyed by config file name."""
        entries: dict[str, ConfigEntry] = {}
        for name, values in data.items():
            _flatten(entries, name, values, f"{file_prefix}/{name}.php")
        return cls(entries)

    @classmethod
    def from_project(cls, root: str | Path, env: EnvFile | None = None) -> ConfigRepository:
        """Read every ``config/*.php`` under *root*."""
        root = Path(root)
        if env is None:
            env = read_env_file(root / ".env")
        entries: dict[str, ConfigEntry] = {}
        config_dir = root / "config"
        if config_dir.is_dir():
            for path in sorted(config_dir.glob("*.php")):
                entries.update(read_config_file(path, env, f"config/{path.name}"))
        return cls(entries)

    def entry(self, key: str) -> ConfigEntry | None:
        return self._entries.get(key)

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None or not entry.resolved:
            return default
        return entry.value

    def has(self, key: str) -> bool:
        return key in self._entries

    def has_file(self, name: str) -> bool:
        """Whether any key from config file *name* (``session``) was read."""
        return name in self._entries

    def file_of(self, name: str) -> str:
        entry = self._entries.get(name)
        return entry.file if entry is not None else f"config/{name}.php"


def read_config_file(path: Path, env: EnvFile, relative: str) -> dict[str, ConfigEntry]:
    """Evaluate one config file; unparseable files contribute nothing."""
    try:
        source = path.read_text(encoding="utf-8", errors="ignore")
    except OSError as e:
        logger.debug("Cannot read config file %s: %s", path, e)
        return {}
    tree = parse_php(source)
    if tree is None:
        logger.debug("Skipping unparseable config file %s", path)
        return {}

    returned: Node | None = None
    for statement in find_nodes(tree.root_node, "return_statement"):
        if statement.named_children:
            returned = unwrap(statement.named_children[0])
            break
    if returned is None or returned.type != "array_creation_expression":
        return {}

    evaluator = _Evaluator(env, relative)
    name = path.stem
    # The file-level entry carries the whole evaluated array
    entries = {name: ConfigEntry(value=evaluator.value(returned), file=relative, line=1)}
    evaluator.collect(returned, name, entries)
    return entries


class _Evaluator:
    def __init__(self, env: EnvFile, relative: str) -> None:
        self._env = env
        self._relative = relative

    def collect(self, array: Node, prefix: str, entries: dict[str, ConfigEntry]) -> None:
        for key_node, value_node in array_elements(array):
            if key_node is None:
                continue
            key = self._key(key_node)
            if key is None:
                continue
            dotted = f"{prefix}.{key}"
            entries[dotted] = self.entry(value_node, node_line(key_node))
            value_node = unwrap(value_node)
            if value_node.type == "array_creation_expression":
                self.collect(value_node, dotted, entries)

    def entry(self, node: Node, line: int) -> ConfigEntry:
        node = unwrap(node)
        env_call = _env_call(node)
        if env_call is not None:
            args = call_arguments(env_call)
            env_key = string_literal_value(args[0]) if args else None
            has_default = len(args) > 1
            value = self.value(node)
            return ConfigEntry(
                value=None if value is _UNRESOLVED else value,
                file=self._relative,
                line=line,
                env_key=env_key or "",
                env_has_default=has_default,
                resolved=value is not _UNRESOLVED,
            )
        value = self.value(node)
        return ConfigEntry(
            value=None if value is _UNRESOLVED else value,
            file=self._relative,
            line=line,
            resolved=value is not _UNRESOLVED,
        )

    def value(self, node: Node) -> Any:
        node = unwrap(node)
        kind = node.type
        literal = string_literal_value(node)
        if literal is not None:
            return literal
        if kind == "integer":
            return _parse_int(node_text(node))
        if kind == "float":
            return float(node_text(node).replace("_", ""))
        if kind == "boolean":
            return node_text(node).lower() == "true"
        if kind == "null":
            return None
        if kind == "unary_op_expression" and node_text(node).startswith("-"):
            inner = self.value(node.named_children[-1])
            return -inner if isinstance(inner, (int, float)) else _UNRESOLVED
        if kind == "cast_expression":
            inner_node = node.child_by_field_name("value")
            inner = self.value(inner_node) if inner_node is not None else _UNRESOLVED
            cast = node_text(node.child_by_field_name("type")).strip("() ").lower()
            return _cast(inner, cast)
        if kind == "array_creation_expression":
            pairs = array_elements(node)
            if pairs and all(k is None for k, _ in pairs):
                return [self._plain(v) for _, v in pairs]
            result: dict[Any, Any] = {}
            for key_node, value_node in pairs:
                key = self._key(key_node) if key_node is not None else len(result)
                if key is not None:
                    result[key] = self._plain(value_node)
            return result
        env_call = _env_call(node)
        if env_call is not None:
            args = call_arguments(env_call)
            env_key = string_literal_value(args[0]) if args else None
            if env_key and env_key in self._env:
                return cast_env_value(self._env.values[env_key])
            if len(args) > 1:
                return self.value(args[1])
            return None
        return _UNRESOLVED

    def _plain(self, node: Node) -> Any:
        value = self.value(node)
        return None if value is _UNRESOLVED else value

    def _key(self, node: Node) -> str | int | None:
        literal = string_literal_value(node)
        if literal is not None:
            return literal
        if node.type == "integer":
            return _parse_int(node_text(node))
        return None


def _env_call(node: Node) -> Node | None:
    if node.type == "function_call_expression" and call_name(node) == "env":
        return node
    return None


def _parse_int(text: str) -> int | Any:
    try:
        return int(text.replace("_", ""), 0)
    except ValueError:
        return _UNRESOLVED


def _cast(value: Any, cast: str) -> Any:
    if value is _UNRESOLVED:
        return value
    try:
        if cast in ("int", "integer"):
            return int(value)
        if cast in ("bool", "boolean"):
            return bool(value)
        if cast in ("float", "double"):
            return float(value)
        if cast == "string":
            return str(value)
    except (TypeError, ValueError):
        return _UNRESOLVED
    return value


def _flatten(entries: dict[str, ConfigEntry], key: str, value: Any, file: str) -> None:
    entries[key] = ConfigEntry(value=value, file=file)
    if isinstance(value, Mapping):
        for child_key, child_value in value.items():
            _flatten(entries, f"{key}.{child_key}", child_value, file)
