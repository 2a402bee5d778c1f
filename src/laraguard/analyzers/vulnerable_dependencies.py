"""Known-vulnerable and abandoned Composer packages."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from laraguard.analysis.models import AnalyzerMetadata, Issue, Result, Severity
from laraguard.analyzers.base import Analyzer
from laraguard.errors import UpstreamError
from laraguard.project.advisories import AdvisoryFetcher, AdvisoryIndex, OsvAdvisoryFetcher
from laraguard.project.composer import LineIndex, dependencies, load_json, raw_lock_entries

logger = logging.getLogger(__name__)

COMPOSER_LOCK = "composer.lock"


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


def aggregated_recommendation(package: str, version: str, advisories: list[Mapping[str, Any]]) -> str:
    """One recommendation covering every advisory of a package."""
    text = f'Update "{package}" (currently {version}) to a patched version.'
    cves = _unique([a["cve"] for a in advisories if a.get("cve")])
    if cves:
        text += f" Known CVEs: {', '.join(cves)}."
    titles = [a["title"] for a in advisories if isinstance(a.get("title"), str)]
    if titles:
        text += " Vulnerabilities: " + "; ".join(titles[:3])
        if len(titles) > 3:
            text += f" (and {len(titles) - 3} more)"
        text += "."
    link = next((a["link"] for a in advisories if a.get("link")), None)
    if link:
        text += f" See {link} for details."
    return text.strip()


class VulnerableDependencyAnalyzer(Analyzer):
    """Installed packages matched against published security advisories."""

    metadata = AnalyzerMetadata(
        id="vulnerable-dependencies",
        name="Vulnerable Dependencies Analyzer",
        description="Scans Composer dependencies for known security vulnerabilities",
        severity=Severity.CRITICAL,
        time_to_fix=30,
        tags=("dependencies", "composer", "vulnerabilities", "security", "cve"),
    )
    passed_message = "No vulnerable dependencies detected"
    failed_message = "Found {count} dependency security issue{s}"
    skip_reason = "No composer.lock file found"

    def should_run(self) -> bool:
        return self.context.exists(COMPOSER_LOCK)

    @property
    def advisory_fetcher(self) -> AdvisoryFetcher:
        if self.context.advisory_fetcher is not None:
            return self.context.advisory_fetcher
        return OsvAdvisoryFetcher(timeout=max(self.context.config.http_timeout, 10.0))

    def run(self) -> list[Issue] | Result:
        try:
            lock = load_json(self.context.path(COMPOSER_LOCK))
        except ValueError as e:
            return Result.error(f"Unable to read composer.lock: {e}", analyzer_id=self.id)

        deps = dependencies(lock)
        advisories: dict[str, list[dict[str, Any]]] = {}
        if deps:
            try:
                advisories = self.advisory_fetcher.fetch(deps)
            except UpstreamError as e:
                raise UpstreamError(f"Unable to fetch security advisories: {e}") from e

        lines = LineIndex.from_file(self.context.path(COMPOSER_LOCK))
        issues: list[Issue] = []
        for package, details in AdvisoryIndex().analyze(deps, advisories).items():
            version = details["version"]
            found = details["advisories"]
            if len(found) == 1:
                message = f'Package "{package}" ({version}) has a known vulnerability'
            else:
                message = f'Package "{package}" ({version}) has {len(found)} known vulnerabilities'
            issues.append(
                Issue(
                    message=message,
                    severity=Severity.CRITICAL,
                    recommendation=aggregated_recommendation(package, version, found),
                    file=COMPOSER_LOCK,
                    line=lines.package_line(package),
                    code=f'"name": "{package}"',
                    metadata={
                        "package": package,
                        "version": version,
                        "vulnerability_count": len(found),
                        "cves": _unique([a["cve"] for a in found if a.get("cve")]),
                        "links": _unique([a["link"] for a in found if a.get("link")]),
                        "advisories": found,
                    },
                )
            )

        issues.extend(self._abandoned(lock, lines))
        return issues

    @staticmethod
    def _abandoned(lock: dict[str, Any], lines: LineIndex) -> list[Issue]:
        issues: list[Issue] = []
        for entry in raw_lock_entries(lock):
            abandoned = entry.get("abandoned")
            if not abandoned:
                continue
            name = entry.get("name")
            name = name if isinstance(name, str) and name else "Unknown"
            replacement = abandoned if isinstance(abandoned, str) else None
            if replacement:
                recommendation = f'Replace with "{replacement}": composer require {replacement}'
            else:
                recommendation = f'Find an alternative package and remove "{name}"'
            issues.append(
                Issue(
                    message=f'Package "{name}" is abandoned and no longer maintained',
                    severity=Severity.MEDIUM,
                    recommendation=recommendation,
                    file=COMPOSER_LOCK,
                    line=lines.package_line(name),
                    metadata={"package": name, "replacement": replacement},
                )
            )
        return issues
