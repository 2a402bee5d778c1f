"""Route table supplied by the host application."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, NamedTuple

logger = logging.getLogger(__name__)


class Route(NamedTuple):
    method: str
    path: str
    middleware: tuple[str, ...] = ()


def routes_from_list(entries: list[Any]) -> list[Route]:
    """Flatten ``php artisan route:list --json`` entries.

    ``GET|HEAD`` style methods become one route per verb.
    """
    routes: list[Route] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        methods = entry.get("method", "")
        path = entry.get("uri", entry.get("path", ""))
        middleware = entry.get("middleware") or []
        if isinstance(middleware, str):
            middleware = [middleware]
        if not isinstance(methods, str) or not isinstance(path, str):
            continue
        names = tuple(m for m in middleware if isinstance(m, str))
        for method in methods.split("|"):
            if method:
                routes.append(Route(method.upper(), path.lstrip("/"), names))
    return routes


def load_route_table(path: str | Path) -> list[Route]:
    """Read a route:list JSON dump; invalid JSON raises ValueError."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"{path.name} is not a valid route list: {e.msg}") from e
    if not isinstance(data, list):
        raise ValueError(f"{path.name} must contain a JSON list of routes")
    routes = routes_from_list(data)
    logger.debug("Loaded %d routes from %s", len(routes), path)
    return routes
