"""CSRF sinks: unprotected forms and AJAX calls, and CSRF exception lists."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from tree_sitter import Tree

from laraguard.analysis.matchers.base import Match, is_comment_line
from laraguard.analysis.models import Severity
from laraguard.analysis.php import (
    array_elements,
    call_arguments,
    call_name,
    find_nodes,
    named_argument,
    node_line,
    node_text,
    string_literal_value,
)
from laraguard.analysis.templates import TemplateScanner, line_at
from laraguard.project.routes import Route

logger = logging.getLogger(__name__)

STATE_CHANGING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

DEFAULT_ALLOWED_SERVICES = (
    "stripe",
    "mailgun",
    "mailslurp",
    "twilio",
    "slack",
    "github",
    "gitlab",
    "bitbucket",
    "webhooks",
    "paddle",
    "paypal",
    "braintree",
    "plaid",
)

_TOKEN_MARKER = re.compile(
    r"@csrf\b|<x-csrf\s*/?>|csrf_field\s*\(\s*\)|"
    r"<input[^>]*name\s*=\s*[\"']_token[\"']",
    re.IGNORECASE,
)
_FORM_CLOSE = re.compile(r"</form\s*>", re.IGNORECASE)

_AJAX_START = re.compile(
    r"\$\.ajax\s*\(|\bfetch\s*\(|\baxios\.(post|put|patch|delete)\s*\(", re.IGNORECASE
)
_AJAX_METHOD = re.compile(
    r"(?:method|type)\s*:\s*[\"']?\s*(POST|PUT|PATCH|DELETE)\b", re.IGNORECASE
)
_AJAX_TOKEN = re.compile(r"X-CSRF-TOKEN|X-XSRF-TOKEN|csrf[-_]?token|_token|@csrf", re.IGNORECASE)
_GLOBAL_TOKEN_SETUP = re.compile(
    r"ajaxSetup\s*\(\s*\{[^}]*X-CSRF-TOKEN|axios\.defaults\.headers\.common\[\s*[\"']X-(CSRF|XSRF)-TOKEN",
    re.IGNORECASE | re.DOTALL,
)

_MAX_AJAX_LINES = 30


class CsrfMatcher:
    """Find state-changing requests without a CSRF token and risky exceptions."""

    def __init__(self, allowed_services: Iterable[str] = DEFAULT_ALLOWED_SERVICES) -> None:
        self._allowed_services = tuple(allowed_services)

    # Blade forms

    def find_forms(self, content: str) -> list[Match]:
        """Forms with a state-changing method and no token before ``</form>``."""
        scanner = TemplateScanner(content)
        text = scanner.content
        matches: list[Match] = []
        for tag in scanner.tags:
            if tag.name != "form":
                continue
            method = "GET"
            for attribute in tag.attributes:
                if attribute.name == "method":
                    method = text[attribute.value_start : attribute.value_end].strip().upper()
            if method not in STATE_CHANGING_METHODS:
                continue
            closing = _FORM_CLOSE.search(text, tag.end)
            body = text[tag.end : closing.start() if closing else len(text)]
            if _TOKEN_MARKER.search(body):
                continue
            line = line_at(text, tag.start)
            matches.append(
                Match(
                    message="Form without CSRF protection - missing @csrf directive",
                    severity=Severity.HIGH,
                    recommendation="Add @csrf or <x-csrf /> inside the form, or use "
                    "{{ csrf_field() }}",
                    line=line,
                    metadata={"form_method": method, "line": line},
                )
            )
        return matches

    # AJAX calls

    def find_ajax(self, content: str, in_template: bool) -> list[Match]:
        """State-changing AJAX calls that send no token.

        Template calls are High. Standalone scripts are Medium because they
        may rely on a global token setup configured elsewhere.
        """
        if _GLOBAL_TOKEN_SETUP.search(content):
            return []
        lines = content.splitlines()
        matches: list[Match] = []
        for index, line in enumerate(lines):
            if is_comment_line(line):
                continue
            start = _AJAX_START.search(line)
            if start is None:
                continue
            explicit = start.group(1)
            has_method = bool(explicit)
            has_token = False
            depth = 0
            opened = False
            for offset in range(index, min(index + _MAX_AJAX_LINES, len(lines))):
                current = lines[offset]
                if _AJAX_METHOD.search(current):
                    has_method = True
                if _AJAX_TOKEN.search(current):
                    has_token = True
                depth += current.count("(") - current.count(")")
                opened = opened or "(" in current
                if opened and depth <= 0 and ";" in current:
                    break
            if not has_method or has_token:
                continue
            library = "axios" if explicit else ("fetch" if "fetch" in start.group(0) else "jQuery")
            if in_template:
                matches.append(
                    Match(
                        message="AJAX request without CSRF token",
                        severity=Severity.HIGH,
                        recommendation='Add an X-CSRF-TOKEN header: headers: { "X-CSRF-TOKEN": '
                        'document.querySelector("meta[name=csrf-token]").content }',
                        line=index + 1,
                        metadata={"ajax_type": library, "line": index + 1},
                    )
                )
            else:
                matches.append(
                    Match(
                        message="JavaScript AJAX request may be missing CSRF token",
                        severity=Severity.MEDIUM,
                        recommendation="Add the CSRF token to request headers or configure it "
                        "globally with $.ajaxSetup() / axios defaults",
                        line=index + 1,
                        metadata={"ajax_library": library, "line": index + 1},
                    )
                )
        return matches

    # Exception lists

    def is_broad_exception(self, pattern: str) -> bool:
        """Single-segment wildcard exceptions such as ``admin/*`` are broad.

        API prefixes, known webhook providers and patterns with two or more
        fixed segments are scoped narrowly enough to be accepted.
        """
        clean = pattern.strip("/")
        if clean.startswith("api/"):
            return False
        if any(clean.startswith(service + "/") for service in self._allowed_services):
            return False
        segments = [s for s in pattern.replace("*", "").split("/") if s]
        return len(segments) < 2

    def exception_severity(self, pattern: str) -> Severity | None:
        """Critical for a catch-all, High for a broad wildcard, else not flagged."""
        if pattern in ("*", "/*"):
            return Severity.CRITICAL
        if "*" in pattern and self.is_broad_exception(pattern):
            return Severity.HIGH
        return None

    def check_exceptions(
        self, exceptions: list[tuple[str, int]], source: str
    ) -> list[Match]:
        """Classify (pattern, line) exceptions declared in *source*.

        *source* is ``"middleware"`` for a ``$except`` property or
        ``"bootstrap"`` for ``validateCsrfTokens(except: [...])``.
        """
        matches: list[Match] = []
        for pattern, line in exceptions:
            severity = self.exception_severity(pattern)
            if severity is None:
                continue
            if severity == Severity.CRITICAL:
                message = (
                    "Critical: All routes excluded from CSRF protection in bootstrap/app.php"
                    if source == "bootstrap"
                    else "Critical: All routes excluded from CSRF protection with wildcard"
                )
                recommendation = (
                    "Remove wildcard CSRF exceptions and list only the exact URIs that "
                    "need to be excluded"
                )
            else:
                message = (
                    f"Broad CSRF exception pattern in bootstrap/app.php: {pattern}"
                    if source == "bootstrap"
                    else f"Broad CSRF exception pattern: {pattern}"
                )
                recommendation = (
                    'Use more specific route patterns for CSRF exceptions (e.g., '
                    '"service/webhooks/*" instead of "webhooks/*")'
                )
            matches.append(
                Match(
                    message=message,
                    severity=severity,
                    recommendation=recommendation,
                    line=line,
                    metadata={"exception": pattern, "source": source, "line": line},
                )
            )
        return matches


def middleware_exceptions(tree: Tree) -> list[tuple[str, int]]:
    """String entries of a ``protected $except = [...]`` property."""
    found: list[tuple[str, int]] = []
    for element in find_nodes(tree.root_node, "property_element"):
        names = [c for c in element.named_children if c.type == "variable_name"]
        if not names or node_text(names[0]) != "$except":
            continue
        arrays = find_nodes(element, "array_creation_expression")
        if not arrays:
            continue
        for _key, value in array_elements(arrays[0]):
            literal = string_literal_value(value)
            if literal is not None:
                found.append((literal, node_line(value)))
    return found


def bootstrap_exceptions(tree: Tree) -> list[tuple[str, int]]:
    """String entries passed to ``->validateCsrfTokens(except: [...])``."""
    found: list[tuple[str, int]] = []
    for call in find_nodes(tree.root_node, "member_call_expression"):
        if call_name(call) != "validateCsrfTokens":
            continue
        target = named_argument(call, "except")
        if target is None:
            args = call_arguments(call)
            target = args[0] if args else None
        if target is None:
            continue
        for _key, value in array_elements(target):
            literal = string_literal_value(value)
            if literal is not None:
                found.append((literal, node_line(value)))
    return found


_ROUTE_GROUP = re.compile(r"Route::group\s*\(\s*\[")
_GROUP_WEB = re.compile(r"""['"]middleware['"]\s*=>\s*\[?\s*['"]\s*web\s*['"]""")
_GROUP_END = re.compile(r"^\s*\}\s*\)\s*;\s*$")
_STATE_ROUTE = re.compile(r"Route::(post|put|patch|delete)\s*\(", re.IGNORECASE)
_ROUTE_WEB = re.compile(r"""->middleware\s*\(\s*\[?\s*['"]\s*web\s*['"]""")
_LOOKAHEAD = 10


def find_unprotected_routes(content: str) -> list[Match]:
    """State-changing routes in a custom route file that never get ``web`` middleware.

    ``routes/web.php`` gets the web group from the framework and
    ``routes/api.php`` is token authenticated, so callers skip both files.
    """
    lines = content.splitlines()
    matches: list[Match] = []
    depth = 0
    for index, line in enumerate(lines):
        if is_comment_line(line):
            continue
        if _ROUTE_GROUP.search(line):
            for ahead in lines[index : index + _LOOKAHEAD]:
                if _GROUP_WEB.search(ahead):
                    depth += 1
                    break
                if "]," in ahead:
                    break
        if depth and _GROUP_END.match(line):
            depth -= 1

        m = _STATE_ROUTE.search(line)
        if m is None or depth:
            continue
        protected = False
        for ahead in lines[index : index + _LOOKAHEAD]:
            if _ROUTE_WEB.search(ahead):
                protected = True
                break
            if ";" in ahead:
                break
        if protected:
            continue
        method = m.group(1).upper()
        matches.append(
            Match(
                message=f'{method} route in custom route file missing CSRF protection - '
                'no "web" middleware detected',
                severity=Severity.HIGH,
                recommendation="Add ->middleware('web') to the route or wrap it in "
                "Route::group(['middleware' => 'web'], ...)",
                line=index + 1,
                metadata={"method": method, "line": index + 1},
            )
        )
    return matches


_CSRF_MIDDLEWARE = ("web", "VerifyCsrfToken", "ValidateCsrfToken")


def unprotected_route_table(routes: Iterable[Route], ignored_middleware: Iterable[str]) -> list[Match]:
    """State-changing routes from the host's route table without CSRF middleware.

    Routes under ``api/`` or carrying an ignored middleware (``api`` by
    default) are token authenticated and skipped.
    """
    ignored = set(ignored_middleware)
    matches: list[Match] = []
    for route in routes:
        if route.method.upper() not in STATE_CHANGING_METHODS:
            continue
        path = route.path.lstrip("/")
        if path == "api" or path.startswith("api/"):
            continue
        if any(m in ignored for m in route.middleware):
            continue
        if any(marker in m for m in route.middleware for marker in _CSRF_MIDDLEWARE):
            continue
        matches.append(
            Match(
                message=f"{route.method.upper()} route /{path} has no CSRF middleware",
                severity=Severity.HIGH,
                recommendation="Register the route inside the 'web' middleware group or "
                "attach VerifyCsrfToken/ValidateCsrfToken",
                metadata={
                    "method": route.method.upper(),
                    "path": path,
                    "middleware": list(route.middleware),
                },
            )
        )
    return matches
