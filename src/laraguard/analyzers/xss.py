"""XSS analyzer: unescaped output in PHP and Blade, plus the live CSP header."""

from __future__ import annotations

import logging
import re

from laraguard.analysis.matchers.output import OutputSinkMatcher
from laraguard.analysis.models import AnalyzerMetadata, Issue, Severity
from laraguard.analysis.php import parse_php
from laraguard.analyzers.base import AnalysisContext, Analyzer
from laraguard.errors import FetchError
from laraguard.project.http import is_local_url

logger = logging.getLogger(__name__)

_META_CSP = re.compile(
    r"""<meta[^>]+http-equiv=(["'])Content-Security-Policy\1[^>]+content=(["'])(.+?)\2""",
    re.IGNORECASE,
)


def is_valid_csp(policy: str) -> bool:
    """A policy protects against XSS when it restricts scripts without unsafe sources."""
    if "default-src" not in policy and "script-src" not in policy:
        return False
    return "unsafe-eval" not in policy and "unsafe-inline" not in policy


def csp_from_meta(html: str) -> str:
    m = _META_CSP.search(html)
    return m.group(3) if m else ""


class XssAnalyzer(Analyzer):
    """Templates and PHP code emitting request data without escaping."""

    metadata = AnalyzerMetadata(
        id="xss-vulnerabilities",
        name="XSS Vulnerabilities Analyzer",
        description="Detects XSS vulnerabilities via code analysis and HTTP header verification",
        severity=Severity.HIGH,
        time_to_fix=30,
        tags=("xss", "cross-site-scripting", "security", "blade", "csp", "headers"),
    )
    passed_message = "No XSS vulnerabilities detected"
    failed_message = "Found {count} XSS issue{s}"
    skip_reason = "No PHP or Blade files found to analyze"

    def __init__(self, context: AnalysisContext) -> None:
        super().__init__(context)
        self.matcher = OutputSinkMatcher()

    def should_run(self) -> bool:
        return self.context.walker.has_files((".php",))

    def run(self) -> list[Issue]:
        issues = self._code_issues()
        issues.extend(self._header_issues())
        return issues

    def _code_issues(self) -> list[Issue]:
        issues: list[Issue] = []
        walker = self.context.walker
        for path in walker.files((".php",)):
            content = walker.read(path)
            if content is None:
                continue
            tree = None
            if not path.name.endswith(".blade.php"):
                tree = parse_php(content)
                if tree is None:
                    continue
            for match in self.matcher.find(content, str(path), tree):
                issues.append(self.issue_at(match, path, content))
        return issues

    def _header_issues(self) -> list[Issue]:
        url = self.context.config.base_url
        fetcher = self.context.fetcher
        if not url or fetcher is None or is_local_url(url):
            return []
        try:
            response = fetcher.fetch(url)
        except FetchError as e:
            logger.debug("CSP probe inconclusive: %s", e)
            return []

        policies = [response.header("Content-Security-Policy") or ""]
        if not policies[0]:
            meta = csp_from_meta(response.text)
            if not meta:
                return [
                    Issue(
                        message="HTTP XSS: Content-Security-Policy header not set",
                        severity=Severity.HIGH,
                        recommendation=(
                            "Set Content-Security-Policy header with script-src or default-src "
                            "directive without unsafe-eval or unsafe-inline. Example: "
                            "\"default-src 'self'; script-src 'self'\""
                        ),
                        metadata={"url": url},
                    )
                ]
            policies = [meta]

        if any(is_valid_csp(p) for p in policies):
            return []
        return [
            Issue(
                message="HTTP XSS: Content-Security-Policy header is inadequate for XSS protection",
                severity=Severity.HIGH,
                recommendation=(
                    'Set a "script-src" or "default-src" policy directive without '
                    '"unsafe-eval" or "unsafe-inline"'
                ),
                metadata={"url": url, "current_csp": "; ".join(policies)},
            )
        ]
