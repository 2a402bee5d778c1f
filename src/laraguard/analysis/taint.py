"""Taint classification of PHP expressions.

The classifier answers one question for a syntax-tree node: could the value
it denotes be controlled by an HTTP client? It is deliberately local. Variables
are resolved only through assignments that precede the use inside the same
function body; values that flow in from other functions, files or the
database are not tracked and classify as ``UNKNOWN``.
"""

from __future__ import annotations

import enum
import logging
import re
from collections.abc import Iterable

from tree_sitter import Node

from laraguard.analysis.php import (
    CALL_TYPES,
    call_arguments,
    call_name,
    call_receiver,
    call_scope,
    concatenation_operands,
    enclosing_scope,
    find_nodes,
    interpolated_parts,
    is_concatenation,
    node_text,
    parse_php_expression,
    unwrap,
)

logger = logging.getLogger(__name__)


class TaintKind(enum.Enum):
    """Provenance of an expression, from safest to most dangerous."""

    LITERAL = "literal"
    INTERNAL_VARIABLE = "internal_variable"
    UNKNOWN = "unknown"
    EXTERNAL_INPUT = "external_input"

    @property
    def is_external(self) -> bool:
        return self is TaintKind.EXTERNAL_INPUT


_ORDER = {
    TaintKind.LITERAL: 0,
    TaintKind.INTERNAL_VARIABLE: 1,
    TaintKind.UNKNOWN: 2,
    TaintKind.EXTERNAL_INPUT: 3,
}


def join(kinds: Iterable[TaintKind]) -> TaintKind:
    """Combine operand classifications: the most dangerous one wins."""
    result = TaintKind.LITERAL
    for kind in kinds:
        if _ORDER[kind] > _ORDER[result]:
            result = kind
    return result


SUPERGLOBALS = frozenset(
    {"$_GET", "$_POST", "$_REQUEST", "$_COOKIE", "$_FILES", "$_SERVER"}
)

# Methods on a request object that return client-supplied data
REQUEST_ACCESSORS = frozenset(
    {
        "input",
        "get",
        "all",
        "query",
        "post",
        "cookie",
        "header",
        "route",
        "only",
        "except",
        "json",
        "string",
        "str",
        "integer",
        "boolean",
        "validated",
        "safe",
        "file",
        "getContent",
        "fullUrl",
        "path",
    }
)

# Facade-style static accessors, keyed by class
FACADE_ACCESSORS = {
    "Request": frozenset(
        {"input", "get", "all", "query", "post", "cookie", "header", "route", "only", "except"}
    ),
    "Input": frozenset({"get", "all", "only", "except"}),
}

# Helper functions returning client-supplied data when given a key
INPUT_FUNCTIONS = frozenset({"request", "old"})

SAFE_FUNCTIONS = frozenset(
    {
        "e",
        "htmlspecialchars",
        "htmlentities",
        "strip_tags",
        "intval",
        "floatval",
        "boolval",
        "abs",
        "count",
        "bcrypt",
        "md5",
        "sha1",
        "hash",
        "password_hash",
        "url",
        "route",
        "asset",
        "csrf_token",
        "now",
        "config",
        "__",
        "trans",
    }
)

SAFE_METHODS = frozenset({"getTable", "getKeyName", "getQualifiedKeyName", "getConnectionName"})

SAFE_STATIC_CALLS = frozenset(
    {
        ("Hash", "make"),
        ("Crypt", "encrypt"),
        ("Crypt", "encryptString"),
        ("Str", "uuid"),
        ("Str", "random"),
        ("Auth", "id"),
        ("DB", "getTablePrefix"),
    }
)

_NUMERIC_CASTS = {"int", "integer", "float", "double", "bool", "boolean"}

_LITERAL_TYPES = {
    "string",
    "nowdoc",
    "integer",
    "float",
    "boolean",
    "null",
    "name",
    "class_constant_access_expression",
}

_REQUEST_RECEIVER_NAMES = {"$request", "$req", "$httpRequest", "$this->request"}


class TaintClassifier:
    """Classify PHP expression nodes into a :class:`TaintKind`."""

    def classify(self, node: Node) -> TaintKind:
        return self._classify(node, frozenset())

    def classify_all(self, nodes: Iterable[Node]) -> TaintKind:
        return join(self.classify(n) for n in nodes)

    def is_request_object(self, node: Node) -> bool:
        """Whether *node* denotes the current HTTP request object."""
        node = unwrap(node)
        text = node_text(node).replace(" ", "")
        if text in _REQUEST_RECEIVER_NAMES:
            return True
        if node.type == "function_call_expression" and call_name(node) == "request":
            return not call_arguments(node)
        if node.type == "scoped_call_expression":
            return call_scope(node) == "Request" and call_name(node) in ("instance", "capture")
        if node.type == "variable_name":
            return _parameter_type(node) in ("Request", "FormRequest")
        return False

    def _classify(self, node: Node, seen: frozenset[int]) -> TaintKind:
        node = unwrap(node)
        kind = node.type

        if kind in _LITERAL_TYPES:
            return TaintKind.LITERAL

        if kind in ("encapsed_string", "heredoc"):
            parts = interpolated_parts(node)
            if not parts:
                return TaintKind.LITERAL
            return join([TaintKind.INTERNAL_VARIABLE] + [self._classify(p, seen) for p in parts])

        if is_concatenation(node):
            return join(self._classify(op, seen) for op in concatenation_operands(node))

        if kind == "variable_name":
            return self._classify_variable(node, seen)

        if kind == "dynamic_variable_name":
            return TaintKind.UNKNOWN

        if kind == "subscript_expression":
            base = node.named_children[0] if node.named_children else None
            if base is None:
                return TaintKind.UNKNOWN
            return self._classify(base, seen)

        if kind in ("member_access_expression", "nullsafe_member_access_expression"):
            obj = node.child_by_field_name("object")
            if obj is None:
                return TaintKind.UNKNOWN
            if self.is_request_object(obj):
                # Dynamic request properties: $request->email
                return TaintKind.EXTERNAL_INPUT
            if node_text(obj) == "$this":
                return TaintKind.INTERNAL_VARIABLE
            inner = self._classify(obj, seen)
            return TaintKind.EXTERNAL_INPUT if inner.is_external else TaintKind.UNKNOWN

        if kind in CALL_TYPES:
            return self._classify_call(node, seen)

        if kind == "cast_expression":
            cast = node_text(node.child_by_field_name("type")).strip("() ").lower()
            if cast in _NUMERIC_CASTS:
                return TaintKind.INTERNAL_VARIABLE
            value = node.child_by_field_name("value")
            return self._classify(value, seen) if value is not None else TaintKind.UNKNOWN

        if kind == "conditional_expression":
            branches = [
                node.child_by_field_name("body") or node.child_by_field_name("condition"),
                node.child_by_field_name("alternative"),
            ]
            return join(self._classify(b, seen) for b in branches if b is not None)

        if kind in ("binary_expression", "array_creation_expression", "array_element_initializer"):
            return join(
                [TaintKind.INTERNAL_VARIABLE]
                + [self._classify(c, seen) for c in node.named_children if c.type != "comment"]
            )

        if kind == "unary_op_expression":
            return TaintKind.INTERNAL_VARIABLE

        return TaintKind.UNKNOWN

    def _classify_call(self, call: Node, seen: frozenset[int]) -> TaintKind:
        name = call_name(call)
        args = call_arguments(call)

        if call.type == "function_call_expression":
            if name in INPUT_FUNCTIONS and args:
                return TaintKind.EXTERNAL_INPUT
            if name in SAFE_FUNCTIONS:
                return TaintKind.INTERNAL_VARIABLE
            return join([TaintKind.INTERNAL_VARIABLE] + [self._classify(a, seen) for a in args])

        if call.type == "scoped_call_expression":
            scope = call_scope(call)
            if name in FACADE_ACCESSORS.get(scope, ()):
                return TaintKind.EXTERNAL_INPUT
            if (scope, name) in SAFE_STATIC_CALLS:
                return TaintKind.INTERNAL_VARIABLE
            return join([TaintKind.INTERNAL_VARIABLE] + [self._classify(a, seen) for a in args])

        receiver = call_receiver(call)
        if receiver is not None and self.is_request_object(receiver):
            if name in REQUEST_ACCESSORS:
                return TaintKind.EXTERNAL_INPUT
            return TaintKind.INTERNAL_VARIABLE
        if name in SAFE_METHODS:
            return TaintKind.INTERNAL_VARIABLE
        kinds = [self._classify(a, seen) for a in args]
        if receiver is not None:
            kinds.append(self._classify(receiver, seen))
        if any(k.is_external for k in kinds):
            return TaintKind.EXTERNAL_INPUT
        return TaintKind.UNKNOWN

    def _classify_variable(self, node: Node, seen: frozenset[int]) -> TaintKind:
        name = node_text(node)
        if name in SUPERGLOBALS:
            return TaintKind.EXTERNAL_INPUT
        if name == "$this":
            return TaintKind.INTERNAL_VARIABLE
        if node.start_byte in seen:
            return TaintKind.UNKNOWN
        seen = seen | {node.start_byte}

        resolved: TaintKind | None = None
        for candidate, value in self._bindings(node):
            if candidate.type == "augmented_assignment_expression" and resolved is not None:
                resolved = join([resolved, self._classify(value, seen)])
            else:
                resolved = self._classify(value, seen)

        if resolved is not None:
            return resolved
        if _parameter_type(node) in ("Request", "FormRequest"):
            return TaintKind.EXTERNAL_INPUT
        return TaintKind.UNKNOWN

    def definition(self, variable: Node) -> Node | None:
        """Right-hand side of the last plain assignment to *variable* before its use."""
        found: Node | None = None
        for candidate, value in self._bindings(variable):
            if candidate.type == "assignment_expression":
                found = unwrap(value)
        return found

    def _bindings(self, variable: Node) -> list[tuple[Node, Node]]:
        """(binding node, bound value) pairs for *variable*, in source order."""
        name = node_text(variable)
        scope = enclosing_scope(variable)
        pairs: list[tuple[Node, Node]] = []
        for candidate in find_nodes(
            scope, "assignment_expression", "augmented_assignment_expression", "foreach_statement"
        ):
            if candidate.start_byte >= variable.start_byte:
                break
            if _scope_key(enclosing_scope(candidate)) != _scope_key(scope):
                continue
            value = self._assigned_value(candidate, name, variable)
            if value is not None:
                pairs.append((candidate, value))
        return pairs

    @staticmethod
    def _assigned_value(candidate: Node, name: str, use: Node) -> Node | None:
        """Right-hand side bound to *name* by *candidate*, if it binds it."""
        if candidate.type == "foreach_statement":
            # foreach ($source as $key => $value): only the loop body sees it
            if use.start_byte >= candidate.end_byte:
                return None
            named = [c for c in candidate.named_children if c.type != "comment"]
            if len(named) < 2:
                return None
            source, binding = named[0], named[1]
            if binding.type == "pair":
                binding = binding.named_children[-1]
            if node_text(binding).lstrip("&") == name:
                return source
            return None
        if candidate.end_byte > use.start_byte:
            return None
        left = candidate.child_by_field_name("left")
        if left is None or node_text(left) != name:
            return None
        return candidate.child_by_field_name("right")


def _scope_key(node: Node) -> tuple[int, int]:
    return (node.start_byte, node.end_byte)


def _parameter_type(variable: Node) -> str:
    """Declared class of the enclosing function's parameter named like *variable*."""
    scope = enclosing_scope(variable)
    params = scope.child_by_field_name("parameters")
    if params is None:
        return ""
    name = node_text(variable)
    for param in params.named_children:
        param_name = param.child_by_field_name("name")
        if param_name is None or node_text(param_name) != name:
            continue
        type_node = param.child_by_field_name("type")
        return node_text(type_node).rsplit("\\", 1)[-1].lstrip("?")
    return ""


_default_classifier = TaintClassifier()


def classify(node: Node) -> TaintKind:
    """Classify *node* with the default classifier."""
    return _default_classifier.classify(node)


def classify_source(expression: str) -> TaintKind:
    """Classify a PHP expression given as text; unparseable text is UNKNOWN."""
    node = parse_php_expression(expression)
    if node is None:
        logger.debug("Could not parse expression %r", expression)
        return TaintKind.UNKNOWN
    return _default_classifier.classify(node)


_SAFE_NAME_TOKENS = frozenset(
    {"safe", "html", "sanitized", "purified", "trusted", "escaped", "rendered", "clean", "svg"}
)

_USER_NAME_TOKENS = frozenset(
    {
        "input",
        "query",
        "search",
        "q",
        "term",
        "keyword",
        "keywords",
        "comment",
        "comments",
        "message",
        "msg",
        "param",
        "params",
        "bio",
        "feedback",
        "review",
        "userinput",
        "payload",
    }
)

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def _name_tokens(expression: str) -> set[str]:
    tokens: set[str] = set()
    for identifier in _IDENTIFIER.findall(expression):
        spaced = _CAMEL_BOUNDARY.sub("_", identifier)
        tokens.update(t.lower() for t in spaced.split("_") if t)
    return tokens


def looks_user_controlled(expression: str) -> bool:
    """Naming heuristic for values whose origin cannot be resolved.

    ``$comment`` or ``$post->searchQuery`` look user controlled; ``$safeHtml``
    or ``$sanitizedBody`` do not. A heuristic only: it has both false positives
    and false negatives.
    """
    tokens = _name_tokens(expression)
    if tokens & _SAFE_NAME_TOKENS:
        return False
    return bool(tokens & _USER_NAME_TOKENS)
