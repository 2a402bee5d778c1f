"""SQL injection sinks: DB facade queries, raw query-builder clauses, native drivers."""

from __future__ import annotations

import logging

from tree_sitter import Node, Tree

from laraguard.analysis.matchers.base import Match
from laraguard.analysis.models import Severity
from laraguard.analysis.php import (
    builds_string,
    call_arguments,
    call_name,
    call_scope,
    find_nodes,
    node_line,
    node_text,
    parse_php,
    simple_name,
    unwrap,
)
from laraguard.analysis.taint import TaintClassifier

logger = logging.getLogger(__name__)

# DB facade methods that execute SQL text directly: any string building is flagged
STRICT_FACADE_METHODS = frozenset(
    {
        "select",
        "selectOne",
        "scalar",
        "cursor",
        "insert",
        "update",
        "delete",
        "statement",
        "affectingStatement",
        "raw",
    }
)

# Query builder clauses taking raw SQL: only client input is flagged
RAW_CLAUSE_METHODS = frozenset(
    {
        "whereRaw",
        "orWhereRaw",
        "havingRaw",
        "orHavingRaw",
        "orderByRaw",
        "selectRaw",
        "groupByRaw",
        "fromRaw",
        "raw",
    }
)

NATIVE_FUNCTIONS = frozenset(
    {
        "mysql_query",
        "mysqli_connect",
        "mysqli_real_connect",
        "mysqli_query",
        "mysqli_real_query",
        "mysqli_multi_query",
        "mysqli_prepare",
        "mysqli_stmt_prepare",
        "mysqli_execute",
        "mysqli_stmt_execute",
        "pg_connect",
        "pg_pconnect",
        "pg_query",
        "pg_query_params",
        "pg_prepare",
        "pg_execute",
        "pg_send_query",
        "pg_send_query_params",
        "pg_select",
        "pg_insert",
        "pg_delete",
    }
)

NATIVE_CLASSES = frozenset({"PDO", "mysqli"})

_MESSAGE = "Potential SQL injection: {sink} with string concatenation or user input"


class SqlSinkMatcher:
    """Find SQL sinks reached by dynamically built or client-supplied SQL.

    Only the SQL text argument is examined. Values passed in a bindings array
    are parameterized by the driver and never make a call unsafe, while
    tainted SQL text is unsafe even when bindings are also supplied.
    """

    def __init__(
        self,
        classifier: TaintClassifier | None = None,
        native_functions: frozenset[str] = NATIVE_FUNCTIONS,
    ) -> None:
        self._classifier = classifier or TaintClassifier()
        self._native_functions = native_functions

    def find(self, content: str, file_path: str, tree: Tree | None = None) -> list[Match]:
        if tree is None:
            tree = parse_php(content)
        if tree is None:
            logger.debug("Skipping unparseable file %s", file_path)
            return []

        matches: list[Match] = []
        root = tree.root_node
        for node in find_nodes(
            root,
            "scoped_call_expression",
            "member_call_expression",
            "nullsafe_member_call_expression",
            "function_call_expression",
            "object_creation_expression",
        ):
            match = self._check(node)
            if match is not None:
                matches.append(match)
        return matches

    def _check(self, node: Node) -> Match | None:
        if node.type == "object_creation_expression":
            return self._check_native_class(node)
        if node.type == "function_call_expression":
            return self._check_native_function(node)

        name = call_name(node)
        if node.type == "scoped_call_expression" and call_scope(node) == "DB":
            if name == "unprepared":
                return self._match(
                    node,
                    "DB::unprepared()",
                    "Avoid DB::unprepared(); use DB::select(), DB::insert() or "
                    "DB::statement() with parameter binding",
                    mode="strict",
                )
            if name in STRICT_FACADE_METHODS:
                return self._check_strict(node, name)
        if name in RAW_CLAUSE_METHODS:
            return self._check_lenient(node, name)
        return None

    def _check_strict(self, call: Node, method: str) -> Match | None:
        sql = self._sql_argument(call)
        if sql is None:
            return None
        if self._builds_sql(sql) or self._classifier.classify(sql).is_external:
            return self._match(
                call,
                f"DB::{method}()",
                f"Use parameter binding with placeholders: "
                f"DB::{method}('... where id = ?', [$id])",
                mode="strict",
            )
        return None

    def _check_lenient(self, call: Node, method: str) -> Match | None:
        sql = self._sql_argument(call)
        if sql is None:
            return None
        if not self._classifier.classify(sql).is_external:
            return None
        return self._match(
            call,
            f"{method}()",
            f"Use parameter binding: ->{method}('column = ?', [$value]) "
            "instead of building the clause from request data",
            mode="lenient",
        )

    def _check_native_function(self, call: Node) -> Match | None:
        name = call_name(call)
        if name not in self._native_functions:
            return None
        return self._match(
            call,
            f"{name}()",
            "Avoid native PHP database functions. Use Laravel's DB facade or "
            "Eloquent ORM for parameter binding",
            mode="native",
        )

    def _check_native_class(self, node: Node) -> Match | None:
        class_name = ""
        for child in node.named_children:
            if child.type in ("name", "qualified_name"):
                class_name = simple_name(node_text(child))
                break
        if class_name not in NATIVE_CLASSES:
            return None
        return self._match(
            node,
            f"new {class_name}()",
            "Avoid direct PDO/mysqli usage. Use Laravel's DB facade or Eloquent ORM",
            mode="native",
        )

    def _sql_argument(self, call: Node) -> Node | None:
        args = call_arguments(call)
        return unwrap(args[0]) if args else None

    def _builds_sql(self, sql: Node) -> bool:
        if builds_string(sql):
            return True
        if sql.type == "variable_name":
            definition = self._classifier.definition(sql)
            return definition is not None and builds_string(definition)
        return False

    @staticmethod
    def _match(node: Node, sink: str, recommendation: str, mode: str) -> Match:
        return Match(
            message=_MESSAGE.format(sink=sink),
            severity=Severity.CRITICAL,
            recommendation=recommendation,
            line=node_line(node),
            metadata={"sink": sink, "mode": mode},
        )
