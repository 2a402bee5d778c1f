"""Composer stability settings and unstable package versions."""

from __future__ import annotations

import logging
import re
from typing import Any

from laraguard.analysis.models import AnalyzerMetadata, Issue, Result, Severity
from laraguard.analyzers.base import Analyzer
from laraguard.project.composer import LineIndex, load_json

logger = logging.getLogger(__name__)

COMPOSER_JSON = "composer.json"
COMPOSER_LOCK = "composer.lock"

_STABILITY_FLAG = re.compile(r"@(dev|alpha|beta|rc)", re.IGNORECASE)
_PRERELEASE = re.compile(r"(alpha|beta|rc)", re.IGNORECASE)


def is_platform_requirement(package: str) -> bool:
    return package == "php" or package.startswith(("ext-", "lib-"))


def unstable_version(version: str) -> bool:
    return version.startswith("dev-") or bool(_PRERELEASE.search(version))


class StableDependencyAnalyzer(Analyzer):
    metadata = AnalyzerMetadata(
        id="stable-dependencies",
        name="Stable Dependency Analyzer",
        description="Validates that all dependencies use stable versions rather than "
        "dev/alpha/beta releases",
        severity=Severity.LOW,
        time_to_fix=15,
        tags=("dependencies", "composer", "stability", "versions", "production"),
    )
    passed_message = "All dependencies are using stable versions"
    failed_message = "Found {count} dependency stability issue{s}"

    def run(self) -> list[Issue] | Result:
        if not self.context.exists(COMPOSER_JSON):
            return Result.passed(
                "No composer.json found - skipping stability check", analyzer_id=self.id
            )
        issues: list[Issue] = []
        try:
            manifest = load_json(self.context.path(COMPOSER_JSON))
        except ValueError as e:
            logger.debug("Skipping composer.json checks: %s", e)
        else:
            issues.extend(self._manifest_issues(manifest))

        if self.context.exists(COMPOSER_LOCK):
            try:
                lock = load_json(self.context.path(COMPOSER_LOCK))
            except ValueError as e:
                logger.debug("Skipping composer.lock checks: %s", e)
            else:
                issue = self._lock_issue(lock)
                if issue is not None:
                    issues.append(issue)
        return issues

    def _manifest_issues(self, manifest: dict[str, Any]) -> list[Issue]:
        lines = LineIndex.from_file(self.context.path(COMPOSER_JSON))
        issues: list[Issue] = []

        minimum = manifest.get("minimum-stability", "stable")
        if minimum != "stable":
            issues.append(
                Issue(
                    message=f'Composer minimum-stability is set to "{minimum}" instead of "stable"',
                    severity=Severity.MEDIUM,
                    recommendation='Set "minimum-stability": "stable" in composer.json to prefer '
                    "stable package versions",
                    file=COMPOSER_JSON,
                    line=lines.key_line("minimum-stability"),
                    code=f'"minimum-stability": "{minimum}"',
                    metadata={"minimum_stability": minimum},
                )
            )

        if manifest.get("prefer-stable") is not True:
            issues.append(
                Issue(
                    message="Composer prefer-stable is not enabled",
                    severity=Severity.LOW,
                    recommendation='Set "prefer-stable": true in composer.json to prefer stable '
                    "versions when possible",
                    file=COMPOSER_JSON,
                    line=lines.key_line("prefer-stable"),
                    code='Missing "prefer-stable": true',
                )
            )

        require = manifest.get("require")
        if not isinstance(require, dict):
            return issues
        for package, constraint in require.items():
            if is_platform_requirement(package) or not isinstance(constraint, str):
                continue
            code = f'"{package}": "{constraint}"'
            if "dev-" in constraint.lower():
                issues.append(
                    Issue(
                        message=f'Package "{package}" requires unstable dev version: {constraint}',
                        severity=Severity.MEDIUM,
                        recommendation=f'Update "{package}" to use a stable version constraint',
                        file=COMPOSER_JSON,
                        line=lines.key_line(package),
                        code=code,
                        metadata={"package": package, "constraint": constraint},
                    )
                )
            m = _STABILITY_FLAG.search(constraint)
            if m:
                issues.append(
                    Issue(
                        message=f'Package "{package}" requires unstable version: {constraint}',
                        severity=Severity.MEDIUM,
                        recommendation=f'Remove @{m.group(1)} flag and use stable version for '
                        f'"{package}"',
                        file=COMPOSER_JSON,
                        line=lines.key_line(package),
                        code=code,
                        metadata={"package": package, "constraint": constraint},
                    )
                )
        return issues

    @staticmethod
    def _lock_issue(lock: dict[str, Any]) -> Issue | None:
        packages = lock.get("packages")
        if not isinstance(packages, list):
            return None
        unstable: list[str] = []
        for entry in packages:
            if not isinstance(entry, dict):
                continue
            version = entry.get("version")
            if isinstance(version, str) and unstable_version(version):
                unstable.append(f"{entry.get('name') or 'Unknown'} ({version})")
        if not unstable:
            return None
        count = len(unstable)
        examples = ", ".join(unstable[:3])
        more = f" and {count - 3} more" if count > 3 else ""
        return Issue(
            message=f"Found {count} unstable package versions installed",
            severity=Severity.LOW,
            recommendation=f'Update to stable versions: {examples}{more}. Run "composer update '
            '--prefer-stable"',
            file=COMPOSER_LOCK,
            line=1,
            code=f"Unstable packages: {examples}",
            metadata={"packages": unstable},
        )
