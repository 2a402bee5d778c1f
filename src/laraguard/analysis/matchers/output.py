"""XSS sinks: PHP echo/print, raw responses and Blade output in HTML contexts."""

from __future__ import annotations

import logging

from tree_sitter import Node, Tree

from laraguard.analysis.matchers.base import Match
from laraguard.analysis.models import Severity
from laraguard.analysis.php import (
    call_arguments,
    call_name,
    call_scope,
    concatenation_operands,
    find_nodes,
    interpolated_parts,
    node_line,
    node_text,
    parse_php,
    parse_php_expression,
    unwrap,
)
from laraguard.analysis.taint import (
    SUPERGLOBALS,
    TaintClassifier,
    TaintKind,
    classify_source,
    looks_user_controlled,
)
from laraguard.analysis.templates import OutputContext, TemplateOutput, TemplateScanner

logger = logging.getLogger(__name__)


def is_blade_file(path: str) -> bool:
    return path.endswith(".blade.php")


class OutputSinkMatcher:
    """Find unescaped client data reaching HTML output."""

    def __init__(self, classifier: TaintClassifier | None = None) -> None:
        self._classifier = classifier or TaintClassifier()

    def find(self, content: str, file_path: str, tree: Tree | None = None) -> list[Match]:
        matches: list[Match] = []
        if "<?" in content or not is_blade_file(file_path):
            if tree is None:
                tree = parse_php(content)
            if tree is None:
                logger.debug("Skipping PHP sinks in unparseable file %s", file_path)
            else:
                matches.extend(self._php_sinks(tree.root_node))
        if is_blade_file(file_path):
            matches.extend(self.template_sinks(content))
        matches.sort(key=lambda m: m.line or 0)
        return matches

    # PHP statements

    def _php_sinks(self, root: Node) -> list[Match]:
        matches: list[Match] = []
        for node in find_nodes(
            root, "echo_statement", "print_intrinsic", "scoped_call_expression", "function_call_expression"
        ):
            if node.type in ("echo_statement", "print_intrinsic"):
                match = self._check_echo(node)
            else:
                match = self._check_response(node)
            if match is not None:
                matches.append(match)
        return matches

    def _check_echo(self, node: Node) -> Match | None:
        values: list[Node] = []
        for child in node.named_children:
            if child.type == "comment":
                continue
            if child.type == "sequence_expression":
                values.extend(c for c in child.named_children if c.type != "comment")
            else:
                values.append(child)
        if not values:
            return None

        if any(_is_direct_superglobal(v) for v in values):
            return Match(
                message="Critical XSS: Direct echo of superglobal without escaping",
                severity=Severity.CRITICAL,
                recommendation='Always escape output: echo htmlspecialchars($_GET["var"], '
                'ENT_QUOTES, "UTF-8")',
                line=node_line(node),
                metadata={"sink": "echo", "context": "php"},
            )
        if self._classifier.classify_all(values).is_external:
            return Match(
                message="Potential XSS: Echo of request data without escaping",
                severity=Severity.HIGH,
                recommendation="Use the e() helper or htmlspecialchars() to escape output",
                line=node_line(node),
                metadata={"sink": "echo", "context": "php"},
            )
        return None

    def _check_response(self, call: Node) -> Match | None:
        name = call_name(call)
        if call.type == "scoped_call_expression":
            if not (call_scope(call) == "Response" and name == "make"):
                return None
            sink = "Response::make()"
        elif name == "response":
            sink = "response()"
        else:
            return None
        args = call_arguments(call)
        if not args or not self._classifier.classify(args[0]).is_external:
            return None
        return Match(
            message=f"Potential XSS: {sink} with possible unescaped user input",
            severity=Severity.HIGH,
            recommendation="Escape user input before rendering or use response()->json() "
            "for JSON responses",
            line=node_line(call),
            metadata={"sink": sink, "context": "php"},
        )

    # Blade templates

    def template_sinks(self, content: str) -> list[Match]:
        matches: list[Match] = []
        for output in TemplateScanner(content).outputs():
            match = self._check_output(output)
            if match is not None:
                matches.append(match)
        return matches

    def _check_output(self, output: TemplateOutput) -> Match | None:
        context = output.context
        if context in (OutputContext.TEXT, OutputContext.TAG, OutputContext.ATTRIBUTE):
            # Auto-escaped output is safe in element text and plain attributes
            if not output.raw or not is_tainted_expression(output.expression):
                return None
            return self._output_match(
                output,
                "Potential XSS: Unescaped blade output with possible user input",
                "Use {{ $var }} instead of {!! $var !!}, or sanitize with e() or an "
                "HTML purifier",
            )

        if context == OutputContext.SCRIPT and is_js_encoded(output.expression):
            return None
        if not is_tainted_expression(output.expression):
            return None

        if context == OutputContext.URL_ATTRIBUTE:
            return self._output_match(
                output,
                f"Potential XSS: User input in {output.attribute} attribute URL",
                "Validate URLs against an allow-list of schemes (http/https) or build "
                "them with url()/route(); escaping does not block javascript: URLs",
            )
        if context == OutputContext.EVENT_ATTRIBUTE:
            return self._output_match(
                output,
                f"Potential XSS: User input in {output.attribute} event handler attribute",
                "Never render user data inside inline event handlers; pass it through "
                "a data attribute and read it from a script",
            )
        if context == OutputContext.DATA_ATTRIBUTE:
            if not output.raw:
                return None
            return self._output_match(
                output,
                f"Potential XSS: Unescaped output in {output.attribute} attribute",
                "Use {{ $var }} for attribute values so quotes are escaped",
            )
        return self._output_match(
            output,
            "Potential XSS: User data in JavaScript without proper encoding",
            "Use the @json() directive or Js::from() to pass data to JavaScript",
        )

    @staticmethod
    def _output_match(output: TemplateOutput, message: str, recommendation: str) -> Match:
        return Match(
            message=message,
            severity=Severity.HIGH,
            recommendation=recommendation,
            line=output.line,
            metadata={
                "context": output.context.value,
                "attribute": output.attribute,
                "raw": output.raw,
                "expression": output.expression,
            },
        )


def is_tainted_expression(expression: str) -> bool:
    """Template expression taint: resolved provenance first, then naming."""
    kind = classify_source(expression)
    if kind is TaintKind.UNKNOWN:
        return looks_user_controlled(expression)
    return kind.is_external


def is_js_encoded(expression: str) -> bool:
    """``Js::from(...)`` and ``json_encode(..., JSON_HEX_TAG ...)`` are safe inside a script."""
    node = parse_php_expression(expression)
    if node is None:
        return False
    node = unwrap(node)
    if node.type == "scoped_call_expression":
        return call_scope(node) == "Js" and call_name(node) == "from"
    if node.type == "function_call_expression" and call_name(node) == "json_encode":
        args = call_arguments(node)
        return len(args) > 1 and "JSON_HEX_TAG" in node_text(args[1])
    return False


def _is_direct_superglobal(node: Node) -> bool:
    """Whether *node* or one of its string pieces reads a superglobal unfiltered."""
    node = unwrap(node)
    pieces = concatenation_operands(node)
    expanded: list[Node] = []
    for piece in pieces:
        piece = unwrap(piece)
        expanded.extend(interpolated_parts(piece) or [piece])
    for piece in expanded:
        base = piece
        while base.type == "subscript_expression" and base.named_children:
            base = base.named_children[0]
        if base.type == "variable_name" and node_text(base) in SUPERGLOBALS:
            return True
    return False
