"""Composer dependencies lagging behind their lock-compatible releases."""

from __future__ import annotations

import logging

from laraguard.analysis.models import AnalyzerMetadata, Issue, Result, Severity
from laraguard.analyzers.base import Analyzer
from laraguard.errors import UpstreamError
from laraguard.project.commands import CommandRunner, SubprocessRunner

logger = logging.getLogger(__name__)

COMPOSER_JSON = "composer.json"
COMPOSER_LOCK = "composer.lock"

# Phrases composer prints when a dry-run install has nothing to do
NOTHING_TO_UPDATE = ("Nothing to install or update", "Nothing to install, update or remove")

BOTH_RECOMMENDATION = (
    "Your application's production and development dependencies are not up-to-date. "
    "These may include bug fixes and/or security patches. "
    'Run "composer update" to update all dependencies within your version constraints. '
    "Review the changes before deploying to production."
)
PRODUCTION_RECOMMENDATION = (
    "Your application's production dependencies are not up-to-date. "
    "These may include bug fixes and/or security patches. "
    'Run "composer update --no-dev" to update production dependencies only, '
    'or "composer update" to update all dependencies. '
    "Review the changes before deploying to production."
)
DEV_RECOMMENDATION = (
    "Your application's development dependencies are not up-to-date. "
    "While these don't affect production, keeping them updated helps maintain a healthy "
    "development environment. "
    'Run "composer update" to update all dependencies.'
)


def is_up_to_date(output: str) -> bool:
    return any(phrase in output for phrase in NOTHING_TO_UPDATE)


class UpToDateDependencyAnalyzer(Analyzer):
    """Compares ``composer install --dry-run`` with and without dev packages."""

    metadata = AnalyzerMetadata(
        id="up-to-date-dependencies",
        name="Up-to-Date Dependencies Analyzer",
        description="Checks if dependencies are up-to-date with available bug fixes and "
        "security patches",
        severity=Severity.LOW,
        time_to_fix=60,
        tags=("dependencies", "composer", "updates", "maintenance", "security-patches"),
    )
    passed_message = "All dependencies are up-to-date"
    failed_message = "Found {count} dependency update issue{s}"
    skip_reason = "No composer.json file found"

    def should_run(self) -> bool:
        return self.context.exists(COMPOSER_LOCK) or self.context.exists(COMPOSER_JSON)

    @property
    def runner(self) -> CommandRunner:
        if self.context.command_runner is not None:
            return self.context.command_runner
        return SubprocessRunner()

    def run(self) -> list[Issue] | Result:
        if not self.context.exists(COMPOSER_LOCK):
            missing = Issue(
                message="composer.lock file is missing",
                severity=Severity.MEDIUM,
                recommendation='Run "composer install" to generate composer.lock for '
                "dependency tracking.",
                file=COMPOSER_LOCK,
                line=1,
            )
            # Without a lock file nothing pins the installed versions
            return Result.from_issues(
                [missing],
                passed_message=self.passed_message,
                failed_message="composer.lock file not found",
                medium_fails=True,
                analyzer_id=self.id,
            )

        try:
            production = self._dry_run("--no-dev")
            everything = self._dry_run()
        except UpstreamError as e:
            raise UpstreamError(f"Unable to check dependency status: {e}") from e

        production_current = is_up_to_date(production)
        if not production_current and everything != production:
            return [
                self._issue(
                    "Production and development dependencies are not up-to-date",
                    Severity.MEDIUM,
                    BOTH_RECOMMENDATION,
                    scope="production and dev",
                    check="install --dry-run",
                )
            ]
        if not production_current:
            return [
                self._issue(
                    "Production dependencies are not up-to-date",
                    Severity.MEDIUM,
                    PRODUCTION_RECOMMENDATION,
                    scope="production",
                    check="install --dry-run --no-dev",
                )
            ]
        if not is_up_to_date(everything):
            return [
                self._issue(
                    "Development dependencies are not up-to-date",
                    Severity.LOW,
                    DEV_RECOMMENDATION,
                    scope="dev",
                    check="install --dry-run",
                )
            ]
        return []

    def _dry_run(self, *flags: str) -> str:
        args = ["composer", "install", "--dry-run", "--no-interaction", "--no-ansi", *flags]
        return self.runner.run(args, cwd=self.context.root)

    def _issue(self, message: str, severity: Severity, recommendation: str, scope: str, check: str) -> Issue:
        lines = (self.context.read(COMPOSER_LOCK) or "").splitlines()
        return Issue(
            message=message,
            severity=severity,
            recommendation=recommendation,
            file=COMPOSER_LOCK,
            line=1,
            code=lines[0].strip() if lines else "",
            metadata={"scope": scope, "composer_version_check": f"composer {check}"},
        )
