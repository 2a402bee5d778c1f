"""PHP syntax tree helpers built on tree-sitter."""

from __future__ import annotations

import logging

import tree_sitter_php as tsphp
from tree_sitter import Language, Node, Parser, Tree

logger = logging.getLogger(__name__)

PHP_LANGUAGE = Language(tsphp.language_php())

# Nodes that open a new variable scope
SCOPE_TYPES = {
    "function_definition",
    "method_declaration",
    "anonymous_function",
    "anonymous_function_creation_expression",
    "arrow_function",
    "program",
}

# Literal text pieces inside interpolated strings
_STRING_TEXT_TYPES = {
    "string_content",
    "string_value",
    "escape_sequence",
    "text",
    "heredoc_start",
    "heredoc_end",
    "nowdoc_string",
}

CALL_TYPES = {
    "function_call_expression",
    "member_call_expression",
    "nullsafe_member_call_expression",
    "scoped_call_expression",
}


def parse_php(source: str) -> Tree | None:
    """Parse PHP source, returning None when the tree contains syntax errors."""
    parser = Parser(PHP_LANGUAGE)
    tree = parser.parse(source.encode("utf-8"))
    if tree.root_node.has_error:
        return None
    return tree


def parse_php_expression(expression: str) -> Node | None:
    """Parse a bare PHP expression and return its node, or None."""
    tree = parse_php(f"<?php {expression};")
    if tree is None:
        return None
    for statement in tree.root_node.named_children:
        if statement.type == "expression_statement" and statement.named_children:
            return statement.named_children[0]
    return None


def node_text(node: Node | None) -> str:
    """Get the source text of a node."""
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def node_line(node: Node) -> int:
    """Get 1-based line number."""
    return node.start_point[0] + 1


def find_nodes(node: Node, *types: str) -> list[Node]:
    """Collect descendants (including *node*) of the given types, in source order."""
    wanted = set(types)
    found: list[Node] = []
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type in wanted:
            found.append(current)
        stack.extend(reversed(current.children))
    return found


def is_inside(node: Node, *types: str) -> bool:
    """Whether any ancestor of *node* has one of the given types."""
    parent = node.parent
    while parent is not None:
        if parent.type in types:
            return True
        parent = parent.parent
    return False


def enclosing_scope(node: Node) -> Node:
    """Return the nearest function, method, closure or program node."""
    parent = node.parent
    while parent is not None:
        if parent.type in SCOPE_TYPES:
            return parent
        parent = parent.parent
    return node


def simple_name(text: str) -> str:
    """Strip namespace qualification: ``\\Illuminate\\Support\\Facades\\DB`` -> ``DB``."""
    return text.rsplit("\\", 1)[-1]


def call_name(call: Node) -> str:
    """Name of the function or method invoked by a call node."""
    if call.type == "function_call_expression":
        return simple_name(node_text(call.child_by_field_name("function")))
    return node_text(call.child_by_field_name("name"))


def call_scope(call: Node) -> str:
    """Class part of a static call (``DB`` for ``DB::select``)."""
    if call.type != "scoped_call_expression":
        return ""
    return simple_name(node_text(call.child_by_field_name("scope")))


def call_receiver(call: Node) -> Node | None:
    if call.type in ("member_call_expression", "nullsafe_member_call_expression"):
        return call.child_by_field_name("object")
    return None


def call_arguments(call: Node) -> list[Node]:
    """Argument value nodes of a call, skipping punctuation and comments."""
    args = call.child_by_field_name("arguments")
    if args is None:
        for child in call.children:
            if child.type == "arguments":
                args = child
                break
    if args is None:
        return []
    values: list[Node] = []
    for child in args.named_children:
        if child.type == "comment":
            continue
        if child.type == "argument":
            # Named arguments carry a leading name child; the value is last
            named = [c for c in child.named_children if c.type != "comment"]
            if named:
                values.append(named[-1])
            continue
        values.append(child)
    return values


def named_argument(call: Node, name: str) -> Node | None:
    """Value of a named argument (``except: [...]``), or None."""
    args = call.child_by_field_name("arguments")
    if args is None:
        return None
    for child in args.named_children:
        if child.type != "argument":
            continue
        label = child.child_by_field_name("name")
        if label is not None and node_text(label) == name:
            return child.named_children[-1]
    return None


def is_string_literal(node: Node) -> bool:
    """A string with no interpolation (single-quoted, nowdoc or plain double-quoted)."""
    if node.type in ("string", "nowdoc"):
        return True
    if node.type in ("encapsed_string", "heredoc"):
        return not interpolated_parts(node)
    return False


def string_literal_value(node: Node | None) -> str | None:
    """Unquoted value of a literal string node, or None if not a literal."""
    if node is None or not is_string_literal(node):
        return None
    text = node_text(node)
    if node.type in ("string", "encapsed_string") and len(text) >= 2:
        return text[1:-1]
    parts = [node_text(n) for n in find_nodes(node, "string_content", "string_value")]
    return "".join(parts)


def interpolated_parts(node: Node) -> list[Node]:
    """Expressions interpolated into a double-quoted string or heredoc."""
    if node.type == "encapsed_string":
        containers = [node]
    elif node.type == "heredoc":
        containers = [c for c in node.children if c.type == "heredoc_body"]
    else:
        return []
    parts: list[Node] = []
    for container in containers:
        for child in container.named_children:
            if child.type not in _STRING_TEXT_TYPES:
                parts.append(child)
    return parts


def is_concatenation(node: Node) -> bool:
    """Whether *node* is a ``.`` string concatenation."""
    if node.type != "binary_expression":
        return False
    operator = node.child_by_field_name("operator")
    if operator is not None:
        return node_text(operator) == "."
    return any(not c.is_named and node_text(c) == "." for c in node.children)


def concatenation_operands(node: Node) -> list[Node]:
    """Flatten a chain of ``.`` concatenations into its operands."""
    if not is_concatenation(node):
        return [node]
    operands: list[Node] = []
    for side in ("left", "right"):
        child = node.child_by_field_name(side)
        if child is not None:
            operands.extend(concatenation_operands(child))
    return operands


def builds_string(node: Node) -> bool:
    """Whether *node* builds a string dynamically (concatenation or interpolation)."""
    current = unwrap(node)
    if is_concatenation(current):
        return True
    if current.type in ("encapsed_string", "heredoc"):
        return bool(interpolated_parts(current))
    if current.type == "function_call_expression" and call_name(current) in (
        "sprintf",
        "vsprintf",
        "implode",
        "str_replace",
    ):
        return True
    return False


def unwrap(node: Node) -> Node:
    """Strip surrounding parentheses."""
    while node.type == "parenthesized_expression" and node.named_children:
        node = node.named_children[0]
    return node


def array_elements(node: Node) -> list[tuple[Node | None, Node]]:
    """(key, value) pairs of an array literal; key is None for list items."""
    node = unwrap(node)
    if node.type != "array_creation_expression":
        return []
    pairs: list[tuple[Node | None, Node]] = []
    for element in node.named_children:
        if element.type != "array_element_initializer":
            continue
        named = [c for c in element.named_children if c.type != "comment"]
        if len(named) >= 2:
            pairs.append((named[0], named[-1]))
        elif named:
            pairs.append((None, named[0]))
    return pairs
