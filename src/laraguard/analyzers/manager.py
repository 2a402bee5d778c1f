"""Analyzer manager: builds the analyzer set and runs it over one project."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from laraguard.analysis.models import Result
from laraguard.analyzers.app_key import AppKeyAnalyzer
from laraguard.analyzers.authentication import AuthenticationAnalyzer
from laraguard.analyzers.base import AnalysisContext, Analyzer
from laraguard.analyzers.cookie import CookieSecurityAnalyzer
from laraguard.analyzers.csrf import CsrfAnalyzer
from laraguard.analyzers.debug_mode import DebugModeAnalyzer
from laraguard.analyzers.env_file import EnvFileSecurityAnalyzer
from laraguard.analyzers.env_http import EnvHttpAccessibilityAnalyzer
from laraguard.analyzers.file_permissions import FilePermissionsAnalyzer
from laraguard.analyzers.hashing import HashingStrengthAnalyzer
from laraguard.analyzers.hsts import HstsHeaderAnalyzer
from laraguard.analyzers.login_throttling import LoginThrottlingAnalyzer
from laraguard.analyzers.php_ini import PhpIniAnalyzer
from laraguard.analyzers.sql_injection import SqlInjectionAnalyzer
from laraguard.analyzers.stable_dependencies import StableDependencyAnalyzer
from laraguard.analyzers.up_to_date_dependencies import UpToDateDependencyAnalyzer
from laraguard.analyzers.vulnerable_dependencies import VulnerableDependencyAnalyzer
from laraguard.analyzers.xss import XssAnalyzer

logger = logging.getLogger(__name__)

# Run order
ANALYZER_CLASSES: tuple[type[Analyzer], ...] = (
    SqlInjectionAnalyzer,
    XssAnalyzer,
    CsrfAnalyzer,
    AuthenticationAnalyzer,
    LoginThrottlingAnalyzer,
    CookieSecurityAnalyzer,
    HashingStrengthAnalyzer,
    AppKeyAnalyzer,
    FilePermissionsAnalyzer,
    EnvFileSecurityAnalyzer,
    DebugModeAnalyzer,
    PhpIniAnalyzer,
    EnvHttpAccessibilityAnalyzer,
    HstsHeaderAnalyzer,
    VulnerableDependencyAnalyzer,
    StableDependencyAnalyzer,
    UpToDateDependencyAnalyzer,
)

ANALYZER_IDS = tuple(cls.metadata.id for cls in ANALYZER_CLASSES)


def _check_ids(ids: Iterable[str], source: str) -> None:
    unknown = sorted(set(ids) - set(ANALYZER_IDS))
    if unknown:
        raise ValueError(f"Unknown analyzer id(s) in {source}: {', '.join(unknown)}")


class AnalyzerManager:
    """Runs the enabled analyzers in declaration order."""

    def __init__(self, context: AnalysisContext, only: Iterable[str] | None = None) -> None:
        self.context = context
        disabled = set(context.config.disabled_analyzers)
        _check_ids(disabled, "disabled_analyzers")
        selected = set(only) if only else None
        if selected is not None:
            _check_ids(selected, "analyzer selection")
        self.analyzers: list[Analyzer] = [
            cls(context)
            for cls in ANALYZER_CLASSES
            if cls.metadata.id not in disabled
            and (selected is None or cls.metadata.id in selected)
        ]

    def run(self) -> dict[str, Result]:
        results: dict[str, Result] = {}
        for analyzer in self.analyzers:
            logger.debug("Running %s", analyzer.id)
            results[analyzer.id] = analyzer.analyze()
            logger.debug("%s: %s", analyzer.id, results[analyzer.id].status.value)
        return results
