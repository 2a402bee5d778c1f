"""Security advisories for Composer packages.

``OsvAdvisoryFetcher`` asks the OSV database about every locked package in a
single batch request, ``AdvisoryIndex`` keeps the advisories whose affected
version constraints cover the installed version.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

import httpx
from packaging.version import InvalidVersion, Version

from laraguard.errors import UpstreamError

logger = logging.getLogger(__name__)

OSV_BATCH_URL = "https://api.osv.dev/v1/querybatch"

_OPERATOR = re.compile(r"^(<=|>=|<|>|==|=|!=)?\s*v?([0-9][0-9A-Za-z.\-]*)$")
_OPERATOR_SPACE = re.compile(r"(<=|>=|<|>|==|=|!=|\^|~)\s+")


def parse_version(text: str) -> Version | None:
    try:
        return Version(text.lstrip("v"))
    except InvalidVersion:
        return None


class VersionConstraintMatcher:
    """Decide whether a version satisfies Composer-style constraints.

    Supported forms: comparisons (``<1.2.3``, ``>=2.0``), caret (``^1.2``),
    tilde (``~1.2``), wildcards (``1.2.*``, ``1.x``), ``*`` and the empty
    constraint (everything). ``||`` separates alternatives, and
    comma or space separated parts must all hold. A list of constraints
    matches when any of them does.
    """

    def matches(self, version: str, constraints: str | Iterable[str]) -> bool:
        if isinstance(constraints, str):
            constraints = [constraints]
        for constraint in constraints:
            for alternative in re.split(r"\|\|?", str(constraint)):
                if self._matches_all(version, alternative):
                    return True
        return False

    def _matches_all(self, version: str, constraint: str) -> bool:
        constraint = _OPERATOR_SPACE.sub(r"\1", constraint.strip())
        if constraint in ("", "*"):
            return True
        parts = [p for p in re.split(r"[,\s]+", constraint) if p]
        return all(self._matches_one(version, part) for part in parts)

    def _matches_one(self, version: str, constraint: str) -> bool:
        if constraint == "*":
            return True
        if constraint.startswith("^"):
            return self._caret(version, constraint[1:].strip())
        if constraint.startswith("~"):
            return self._tilde(version, constraint[1:].strip())
        if "*" in constraint or constraint.endswith(".x"):
            return self._wildcard(version, constraint)
        return self._operator(version, constraint)

    def _operator(self, version: str, constraint: str) -> bool:
        m = _OPERATOR.match(constraint)
        if m is None:
            return False
        operator = m.group(1) or "=="
        current, target = parse_version(version), parse_version(m.group(2))
        if current is None or target is None:
            return False
        if operator in ("==", "="):
            return current == target
        if operator == "!=":
            return current != target
        if operator == "<":
            return current < target
        if operator == "<=":
            return current <= target
        if operator == ">":
            return current > target
        return current >= target

    def _caret(self, version: str, base: str) -> bool:
        if not base:
            return False
        major = _leading_int(base.split(".")[0])
        return self._between(version, base, f"{major + 1}.0.0")

    def _tilde(self, version: str, base: str) -> bool:
        if not base:
            return False
        parts = base.split(".")
        major = _leading_int(parts[0])
        if len(parts) >= 2:
            upper = f"{major}.{_leading_int(parts[1]) + 1}.0"
        else:
            upper = f"{major + 1}.0.0"
        return self._between(version, base, upper)

    @staticmethod
    def _between(version: str, lower: str, upper: str) -> bool:
        current, low, high = parse_version(version), parse_version(lower), parse_version(upper)
        if current is None or low is None or high is None:
            return False
        return low <= current < high

    @staticmethod
    def _wildcard(version: str, constraint: str) -> bool:
        prefix = constraint.replace("*", "").replace("x", "").rstrip(".")
        version = version.lstrip("v")
        return not prefix or version == prefix or version.startswith(prefix + ".")


def _leading_int(text: str) -> int:
    m = re.match(r"\d+", text)
    return int(m.group(0)) if m else 0


class AdvisoryFetcher(Protocol):
    """Returns ``{package: [advisory, ...]}`` for the given dependencies.

    Each advisory is a mapping with ``title``, ``cve``, ``link`` and
    ``affected_versions``. Failures raise UpstreamError.
    """

    def fetch(self, dependencies: Mapping[str, Mapping[str, Any]]) -> dict[str, list[dict[str, Any]]]: ...


class AdvisoryIndex:
    """Match installed package versions against advisories."""

    def __init__(self, matcher: VersionConstraintMatcher | None = None) -> None:
        self.matcher = matcher or VersionConstraintMatcher()

    def analyze(
        self,
        dependencies: Mapping[str, Mapping[str, Any]],
        advisories: Mapping[str, Iterable[Any]],
    ) -> dict[str, dict[str, Any]]:
        """``{package: {"version": ..., "advisories": [...]}}`` for affected packages only."""
        results: dict[str, dict[str, Any]] = {}
        for package, info in dependencies.items():
            version = info.get("version")
            if package not in advisories or not isinstance(version, str):
                continue
            matched: list[dict[str, Any]] = []
            for advisory in advisories[package]:
                if not isinstance(advisory, Mapping):
                    continue
                affected = self._affected(advisory)
                if not self.matcher.matches(version, affected):
                    continue
                matched.append(
                    {
                        "title": _string_or(advisory.get("title"), "Known vulnerability"),
                        "cve": _string_or(advisory.get("cve"), None),
                        "link": _string_or(advisory.get("link"), None),
                        "affected_versions": affected,
                    }
                )
            if matched:
                results[package] = {"version": version, "advisories": matched}
        return results

    @staticmethod
    def _affected(advisory: Mapping[str, Any]) -> str | list[str]:
        source = advisory.get("affected_versions", advisory.get("affectedVersions", []))
        if isinstance(source, str):
            return source
        if isinstance(source, (list, tuple)):
            return [v for v in source if isinstance(v, str)]
        return []


def _string_or(value: Any, default: str | None) -> str | None:
    return value if isinstance(value, str) else default


class OsvAdvisoryFetcher:
    """Query https://osv.dev for Packagist advisories in one batch request."""

    def __init__(
        self,
        url: str = OSV_BATCH_URL,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._client = client

    def fetch(self, dependencies: Mapping[str, Mapping[str, Any]]) -> dict[str, list[dict[str, Any]]]:
        queries = self._build_queries(dependencies)
        if not queries:
            return {}

        try:
            if self._client is not None:
                response = self._client.post(
                    self.url, json={"queries": queries}, timeout=self.timeout
                )
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(self.url, json={"queries": queries})
        except httpx.HTTPError as e:
            logger.warning("Failed to fetch security advisories: %s", e)
            raise UpstreamError(str(e) or type(e).__name__) from e

        if response.status_code != 200:
            raise UpstreamError(f"advisory service returned HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError("advisory service returned invalid JSON") from e
        results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            raise UpstreamError("advisory service response has no results")
        return self._map_results(results, queries)

    @staticmethod
    def _build_queries(dependencies: Mapping[str, Mapping[str, Any]]) -> list[dict[str, Any]]:
        queries = []
        for package, info in dependencies.items():
            version = info.get("version")
            if not package or not isinstance(version, str):
                continue
            queries.append(
                {"package": {"name": package, "ecosystem": "Packagist"}, "version": version}
            )
        return queries

    def _map_results(
        self, results: list[Any], queries: list[dict[str, Any]]
    ) -> dict[str, list[dict[str, Any]]]:
        advisories: dict[str, list[dict[str, Any]]] = {}
        for query, result in zip(queries, results):
            vulns = result.get("vulns") if isinstance(result, dict) else None
            if not isinstance(vulns, list):
                continue
            package, version = query["package"]["name"], query["version"]
            for vuln in vulns:
                if isinstance(vuln, dict):
                    advisories.setdefault(package, []).append(self._format(vuln, version))
        return advisories

    @staticmethod
    def _format(vuln: dict[str, Any], version: str) -> dict[str, Any]:
        cve = next(
            (a for a in vuln.get("aliases") or [] if isinstance(a, str) and a.startswith("CVE-")),
            None,
        )
        link = next(
            (
                r["url"]
                for r in vuln.get("references") or []
                if isinstance(r, dict) and isinstance(r.get("url"), str)
            ),
            None,
        )
        summary = vuln.get("summary")
        title = summary if isinstance(summary, str) else vuln.get("id", "Known vulnerability")
        return {"title": title, "cve": cve, "link": link, "affected_versions": [version]}
