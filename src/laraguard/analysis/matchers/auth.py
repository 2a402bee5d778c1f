"""Authentication and login throttling gaps in routes and controllers.

Route files are scanned line by line: a route is covered when its own
statement or an enclosing ``->group()`` closure attaches the middleware.
Controllers are inspected with tree-sitter.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable

from tree_sitter import Node, Tree

from laraguard.analysis.matchers.base import Match, is_comment_line
from laraguard.analysis.matchers.csrf import STATE_CHANGING_METHODS
from laraguard.analysis.models import Severity
from laraguard.analysis.php import call_arguments, call_name, call_scope, find_nodes, node_line, node_text
from laraguard.project.routes import Route

logger = logging.getLogger(__name__)

# Route paths that are meant to be reachable without a session
PUBLIC_ROUTE_MARKERS = (
    "login",
    "register",
    "password",
    "forgot-password",
    "reset-password",
    "verify",
    "health",
    "status",
)
SENSITIVE_CONTROLLER_METHODS = ("destroy", "delete", "update", "edit", "store", "create")
LOGIN_METHODS = ("login", "authenticate", "postLogin", "attempt")
_GATE_CHECKS = ("authorize", "allows", "denies", "check", "any", "none")
_POLICY_CHECKS = ("authorize", "can", "cannot")

_ROUTE = re.compile(r"Route::(get|post|put|patch|delete|resource|apiResource)\s*\(", re.IGNORECASE)
_ROUTE_GROUP = re.compile(r"Route::group\s*\(", re.IGNORECASE)
_GROUP_CALL = re.compile(r"(?:->|::)group\s*\(")
_LOGIN_ROUTE = re.compile(
    r"""Route::(post|any)\s*\(\s*['"]([^'"]*(?:login|signin|auth|authenticate)[^'"]*)['"]""",
    re.IGNORECASE,
)
_LOGIN_PATH = re.compile(r"login|signin|auth|authenticate", re.IGNORECASE)
_AUTH_MIDDLEWARE = re.compile(
    r"""middleware[^;]*?(?:['"]auth(?::[\w,.-]+)?['"]|Authenticate::class)""", re.IGNORECASE
)
_THROTTLE_MIDDLEWARE = re.compile(
    r"""middleware[^;]*?(?:['"]throttle[:'"]|ThrottleRequests)""", re.IGNORECASE
)
_AUTH_NAME = re.compile(r"""['"]auth(?::[\w,.-]+)?['"]|Authenticate::class""")
_QUOTED = re.compile(r"'[^']*'|\"[^\"]*\"")
_AUTH_USER = (
    (re.compile(r"Auth::user\(\)->", re.IGNORECASE), "Auth::user()", "Auth::check()"),
    (re.compile(r"auth\(\)->user\(\)->", re.IGNORECASE), "auth()->user()", "auth()->check()"),
)
_AUTH_NULL_CHECK = re.compile(
    r"Auth::check\(\)|auth\(\)->check\(\)|if\s*\(\s*Auth::user\(\)|if\s*\(\s*auth\(\)->user\(\)",
    re.IGNORECASE,
)
_STATEMENT_LOOKAHEAD = 10
_FLAGGED_ROUTE_METHODS = STATE_CHANGING_METHODS | {"RESOURCE", "APIRESOURCE"}


def has_auth_middleware(text: str) -> bool:
    return _AUTH_MIDDLEWARE.search(text) is not None


def has_throttle_middleware(text: str) -> bool:
    return _THROTTLE_MIDDLEWARE.search(text) is not None


def is_public_route(text: str) -> bool:
    return any(marker in text for marker in PUBLIC_ROUTE_MARKERS)


def _statement(lines: list[str], index: int, limit: int = _STATEMENT_LOOKAHEAD) -> str:
    """Source of the route statement starting at *index*, up to its semicolon."""
    parts: list[str] = []
    for line in lines[index : index + limit]:
        parts.append(line)
        if ";" in line:
            break
    return "\n".join(parts)


def _group_header(lines: list[str], index: int) -> str:
    """The chain before a ``group(`` call plus a ``Route::group([...])`` options array."""
    start = index
    while start > 0 and index - start < 4:
        previous = lines[start - 1].rstrip()
        if not previous or previous.endswith((";", "{", "}")):
            break
        start -= 1
    end = index
    while end < len(lines) - 1 and end - index < 4 and "function" not in lines[end]:
        end += 1
    return "\n".join(lines[start : end + 1])


def grouped_lines(lines: list[str], covered: Callable[[str], bool]) -> set[int]:
    """Indices of lines inside ``group()`` closures whose middleware satisfies *covered*."""
    inside: set[int] = set()
    # [brace level when the group started, whether its closure has opened]
    stack: list[list[int | bool]] = []
    level = 0
    for index, line in enumerate(lines):
        if stack:
            inside.add(index)
        if not is_comment_line(line) and _GROUP_CALL.search(line):
            if covered(_group_header(lines, index)):
                stack.append([level, False])
        code = _QUOTED.sub("", line)
        level += code.count("{") - code.count("}")
        while stack:
            start, opened = stack[-1]
            if level > start:
                stack[-1][1] = True
                break
            if opened or ";" in code:
                stack.pop()
                continue
            break
    return inside


def routes_without_auth(content: str) -> list[Match]:
    """State-changing routes and route groups defined without ``auth`` middleware."""
    lines = content.splitlines()
    protected = grouped_lines(lines, has_auth_middleware)
    matches: list[Match] = []
    for index, line in enumerate(lines):
        if is_comment_line(line) or index in protected or is_public_route(line):
            continue
        m = _ROUTE.search(line)
        if m is not None:
            method = m.group(1).upper()
            if method not in _FLAGGED_ROUTE_METHODS:
                continue
            if has_auth_middleware(_statement(lines, index)):
                continue
            matches.append(
                Match(
                    message=f"{method} route without authentication middleware",
                    severity=Severity.HIGH,
                    recommendation='Add ->middleware("auth") or wrap in '
                    'Route::middleware(["auth"])->group()',
                    line=index + 1,
                    metadata={"method": method},
                )
            )
        elif _ROUTE_GROUP.search(line) and not has_auth_middleware(_group_header(lines, index)):
            matches.append(
                Match(
                    message="Route group without authentication middleware",
                    severity=Severity.MEDIUM,
                    recommendation='Add "middleware" => "auth" to route group configuration',
                    line=index + 1,
                    metadata={"route_type": "group"},
                )
            )
    return matches


def login_routes_without_throttle(content: str) -> list[Match]:
    lines = content.splitlines()
    throttled = grouped_lines(lines, has_throttle_middleware)
    matches: list[Match] = []
    for index, line in enumerate(lines):
        if is_comment_line(line) or index in throttled:
            continue
        m = _LOGIN_ROUTE.search(line)
        if m is None or has_throttle_middleware(_statement(lines, index, limit=5)):
            continue
        uri = m.group(2)
        matches.append(
            Match(
                message=f'Login route "{uri}" lacks rate limiting protection',
                severity=Severity.HIGH,
                recommendation='Add ->middleware("throttle:5,1") or similar rate limiting to '
                "prevent brute force attacks",
                line=index + 1,
                metadata={"uri": uri, "method": m.group(1).upper()},
            )
        )
    return matches


def _middleware_name(name: str) -> str:
    """``Illuminate\\Auth\\Middleware\\Authenticate:sanctum`` -> ``Authenticate``."""
    return name.split(":", 1)[0].rsplit("\\", 1)[-1]


def is_auth_middleware(name: str) -> bool:
    base = _middleware_name(name)
    return base in ("auth", "auth.basic", "Authenticate", "AuthenticateWithBasicAuth")


def is_throttle_middleware(name: str) -> bool:
    base = _middleware_name(name)
    return base == "throttle" or base.startswith("ThrottleRequests")


def unauthenticated_route_table(routes: Iterable[Route]) -> list[Match]:
    """State-changing routes from the host's route table with no authentication middleware."""
    matches: list[Match] = []
    for route in routes:
        method = route.method.upper()
        if method not in STATE_CHANGING_METHODS or is_public_route(route.path):
            continue
        if any(is_auth_middleware(m) for m in route.middleware):
            continue
        matches.append(
            Match(
                message=f"{method} route /{route.path} has no authentication middleware",
                severity=Severity.HIGH,
                recommendation="Attach the auth middleware to the route or its group",
                metadata={"method": method, "path": route.path, "middleware": list(route.middleware)},
            )
        )
    return matches


def unthrottled_login_route_table(routes: Iterable[Route]) -> list[Match]:
    matches: list[Match] = []
    for route in routes:
        if route.method.upper() != "POST" or not _LOGIN_PATH.search(route.path):
            continue
        if any(is_throttle_middleware(m) for m in route.middleware):
            continue
        matches.append(
            Match(
                message=f'Login route "{route.path}" lacks rate limiting protection',
                severity=Severity.HIGH,
                recommendation='Add ->middleware("throttle:5,1") or similar rate limiting to '
                "prevent brute force attacks",
                metadata={"uri": route.path, "method": "POST", "middleware": list(route.middleware)},
            )
        )
    return matches


def class_methods(tree: Tree) -> list[tuple[str, Node]]:
    """(class name, method node) for every method of every class, in source order."""
    methods: list[tuple[str, Node]] = []
    for cls in find_nodes(tree.root_node, "class_declaration"):
        name = node_text(cls.child_by_field_name("name")) or "Unknown"
        body = cls.child_by_field_name("body")
        if body is None:
            continue
        for member in body.named_children:
            if member.type == "method_declaration":
                methods.append((name, member))
    return methods


def method_name(method: Node) -> str:
    return node_text(method.child_by_field_name("name"))


def is_public(method: Node) -> bool:
    for child in method.children:
        if child.type == "visibility_modifier":
            return node_text(child) == "public"
    return True


def _calls(node: Node | None) -> list[Node]:
    if node is None:
        return []
    return find_nodes(
        node, "member_call_expression", "nullsafe_member_call_expression", "scoped_call_expression"
    )


def has_authorization_check(method: Node) -> bool:
    """``$this->authorize()``, ``$user->can()`` or a ``Gate::`` check anywhere in the body."""
    for call in _calls(method.child_by_field_name("body")):
        name = call_name(call)
        if call.type == "scoped_call_expression":
            if call_scope(call) == "Gate" and name in _GATE_CHECKS:
                return True
        elif name in _POLICY_CHECKS:
            return True
    return False


def constructor_requires_auth(methods: list[Node]) -> bool:
    """Auth middleware registered in the constructor or a static ``middleware()`` definition."""
    for method in methods:
        name = method_name(method)
        body = method.child_by_field_name("body")
        if name == "middleware" and _AUTH_NAME.search(node_text(body)):
            return True
        if name != "__construct":
            continue
        for call in _calls(body):
            if call_name(call) == "authorizeResource":
                return True
            if call_name(call) == "middleware" and any(
                _AUTH_NAME.search(node_text(arg)) for arg in call_arguments(call)
            ):
                return True
    return False


def unguarded_controller_methods(tree: Tree) -> list[Match]:
    """Public create/update/delete style actions with no authentication or authorization."""
    by_class: dict[str, list[Node]] = {}
    for class_name, method in class_methods(tree):
        by_class.setdefault(class_name, []).append(method)
    matches: list[Match] = []
    for class_name, methods in by_class.items():
        if constructor_requires_auth(methods):
            continue
        for method in methods:
            name = method_name(method)
            if name not in SENSITIVE_CONTROLLER_METHODS or not is_public(method):
                continue
            if has_authorization_check(method):
                continue
            matches.append(
                Match(
                    message=f"Sensitive method {class_name}::{name}() without authentication check",
                    severity=Severity.HIGH,
                    recommendation='Add $this->middleware("auth") in constructor or use '
                    "authorization checks",
                    line=node_line(method),
                    metadata={"class": class_name, "method": name},
                )
            )
    return matches


def login_methods(tree: Tree) -> list[Match]:
    """Login actions of a controller; the caller decides whether throttling covers them."""
    matches: list[Match] = []
    for class_name, method in class_methods(tree):
        name = method_name(method)
        if name not in LOGIN_METHODS:
            continue
        matches.append(
            Match(
                message=f"Authentication method {class_name}::{name}() lacks rate limiting",
                severity=Severity.HIGH,
                recommendation="Implement rate limiting using RateLimiter facade or throttle "
                "middleware to prevent brute force attacks",
                line=node_line(method),
                metadata={"class": class_name, "method": name},
            )
        )
    return matches


def unsafe_auth_user(content: str) -> list[Match]:
    """``Auth::user()->x`` without a nearby ``Auth::check()`` or null guard."""
    lines = content.splitlines()
    matches: list[Match] = []
    for index, line in enumerate(lines):
        if is_comment_line(line):
            continue
        for pattern, accessor, check in _AUTH_USER:
            if pattern.search(line) is None:
                continue
            window = lines[max(0, index - 3) : index + 1]
            if any(_AUTH_NULL_CHECK.search(previous) for previous in window):
                continue
            matches.append(
                Match(
                    message=f"Unsafe {accessor} usage without null check",
                    severity=Severity.MEDIUM,
                    recommendation=f"Check if user is authenticated before accessing: if ({check}) "
                    f"or use {accessor}?->property",
                    line=index + 1,
                    metadata={"method": accessor, "check_method": check},
                )
            )
    return matches
