"""Analyzer base class and the shared per-scan context."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from functools import cached_property
from pathlib import Path

from laraguard.analysis.matchers.base import Match
from laraguard.analysis.models import AnalyzerMetadata, Issue, Result, deduplicate
from laraguard.analysis.suppression import SuppressionIndex
from laraguard.config import AnalyzerSettings, ScanConfig
from laraguard.errors import UpstreamError, sanitize_error_message
from laraguard.project.advisories import AdvisoryFetcher
from laraguard.project.commands import CommandRunner
from laraguard.project.config_reader import ConfigRepository
from laraguard.project.env import EnvFile, read_env_file
from laraguard.project.http import Fetcher
from laraguard.project.routes import Route
from laraguard.project.walker import FileWalker

logger = logging.getLogger(__name__)


class AnalysisContext:
    """Read-only view of one project shared by every analyzer in a scan."""

    def __init__(
        self,
        root: str | Path,
        config: ScanConfig | None = None,
        fetcher: Fetcher | None = None,
        advisory_fetcher: AdvisoryFetcher | None = None,
        routes: list[Route] | None = None,
        command_runner: CommandRunner | None = None,
    ) -> None:
        self.root = Path(root).resolve()
        self.config = config or ScanConfig()
        self.fetcher = fetcher
        self.advisory_fetcher = advisory_fetcher
        self.routes = routes
        self.command_runner = command_runner

    @property
    def settings(self) -> AnalyzerSettings:
        return self.config.settings

    @cached_property
    def walker(self) -> FileWalker:
        return FileWalker(
            self.root,
            paths=self.config.paths,
            excluded=self.config.excluded,
            ignored_segments=self.config.ignored_segments,
        )

    @cached_property
    def env(self) -> EnvFile:
        return read_env_file(self.root / ".env")

    @cached_property
    def app_config(self) -> ConfigRepository:
        return ConfigRepository.from_project(self.root, self.env)

    def path(self, relative: str) -> Path:
        return self.root / relative

    def exists(self, relative: str) -> bool:
        return (self.root / relative).exists()

    def relative(self, path: str | Path) -> str:
        path = Path(path)
        if not path.is_absolute():
            return path.as_posix()
        return self.walker.relative(path)

    def read(self, relative: str) -> str | None:
        return self.walker.read(self.root / relative)


class Analyzer:
    """One vulnerability class.

    Subclasses set ``metadata`` and the summary messages, override
    ``should_run`` for their prerequisites and implement ``run``, which
    returns issues (rolled up here) or a finished Result.
    ``failed_message`` may use ``{count}`` and ``{s}``.
    """

    metadata: AnalyzerMetadata
    passed_message = "No issues detected"
    failed_message = "Found {count} issue{s}"
    skip_reason = "Analyzer prerequisites not found"
    medium_fails = False

    def __init__(self, context: AnalysisContext) -> None:
        self.context = context

    @property
    def id(self) -> str:
        return self.metadata.id

    @property
    def settings(self) -> AnalyzerSettings:
        return self.context.settings

    def should_run(self) -> bool:
        return True

    def get_skip_reason(self) -> str:
        return self.skip_reason

    def analyze(self) -> Result:
        if not self.should_run():
            return Result.skipped(self.get_skip_reason(), analyzer_id=self.id)
        try:
            outcome = self.run()
        except UpstreamError as e:
            logger.warning("Analyzer %s failed: %s", self.id, e)
            return Result.error(sanitize_error_message(str(e)), analyzer_id=self.id)
        if isinstance(outcome, Result):
            return outcome
        return self.result(outcome)

    def run(self) -> list[Issue] | Result:
        raise NotImplementedError

    def result(self, issues: Iterable[Issue]) -> Result:
        """Apply inline suppressions, then roll up every remaining issue."""
        suppressions = SuppressionIndex(self.context.root)
        kept = [
            issue
            for issue in deduplicate(issues)
            if not suppressions.is_suppressed(issue.file, issue.line, self.id)
        ]
        return Result.from_issues(
            kept,
            passed_message=self.passed_message,
            failed_message=self.failed_message,
            medium_fails=self.medium_fails,
            analyzer_id=self.id,
        )

    def issue_at(self, match: Match, path: str | Path, content: str | None = None) -> Issue:
        """Bind a match to a project file, attaching the offending line as the snippet."""
        code = ""
        if content is not None and match.line is not None:
            lines = content.splitlines()
            if match.line <= len(lines):
                code = lines[match.line - 1].strip()
        return match.to_issue(self.context.relative(path), code=code)
