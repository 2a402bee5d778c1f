"""SQL injection analyzer."""

from __future__ import annotations

from laraguard.analysis.matchers.sql import SqlSinkMatcher
from laraguard.analysis.models import AnalyzerMetadata, Issue, Severity
from laraguard.analysis.php import parse_php
from laraguard.analyzers.base import AnalysisContext, Analyzer


class SqlInjectionAnalyzer(Analyzer):
    """Raw SQL built from strings or request data, and native driver usage."""

    metadata = AnalyzerMetadata(
        id="sql-injection",
        name="SQL Injection Analyzer",
        description="Detects potential SQL injection vulnerabilities in raw queries",
        severity=Severity.CRITICAL,
        time_to_fix=30,
        tags=("sql", "injection", "database", "security"),
    )
    passed_message = "No SQL injection vulnerabilities detected"
    failed_message = "Found {count} potential SQL injection issue{s}"
    skip_reason = "No PHP files found to analyze"

    def __init__(self, context: AnalysisContext) -> None:
        super().__init__(context)
        self.matcher = SqlSinkMatcher()

    def should_run(self) -> bool:
        return self.context.walker.has_files((".php",))

    def run(self) -> list[Issue]:
        issues: list[Issue] = []
        walker = self.context.walker
        for path in walker.files((".php",)):
            if path.name.endswith(".blade.php"):
                continue
            content = walker.read(path)
            if content is None:
                continue
            tree = parse_php(content)
            if tree is None:
                continue
            for match in self.matcher.find(content, str(path), tree):
                issues.append(self.issue_at(match, path, content))
        return issues
