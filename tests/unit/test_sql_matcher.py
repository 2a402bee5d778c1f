"""Tests for SQL injection sink matching."""

from __future__ import annotations

import pytest

from laraguard.analysis.matchers.sql import SqlSinkMatcher
from laraguard.analysis.models import Severity


def _find(body: str):
    return SqlSinkMatcher().find(f"<?php\n{body}\n", "app/Demo.php")


def _sinks(body: str) -> list[str]:
    return [m.metadata["sink"] for m in _find(body)]


class TestFacadeStrict:
    def test_concatenated_select(self):
        matches = _find("DB::select('select * from users where id = ' . $id);")
        assert len(matches) == 1
        match = matches[0]
        assert match.severity == Severity.CRITICAL
        assert match.message == (
            "Potential SQL injection: DB::select() with string concatenation or user input"
        )
        assert match.metadata == {"sink": "DB::select()", "mode": "strict"}
        assert match.line == 2

    def test_interpolated_statement(self):
        assert _sinks('DB::statement("drop table $table");') == ["DB::statement()"]

    def test_variable_built_by_concatenation(self):
        body = """function q($name) {
    $sql = "select * from users where name = '" . $name . "'";
    return DB::select($sql);
}"""
        assert _sinks(body) == ["DB::select()"]

    def test_literal_with_bindings_is_safe(self):
        assert _find("DB::select('select * from users where id = ?', [$request->input('id')]);") == []

    def test_tainted_sql_with_bindings_is_flagged(self):
        assert _sinks("DB::select('select * from t where id = ' . $_GET['id'], [$y]);") == [
            "DB::select()"
        ]

    def test_request_input_as_sql(self):
        assert _sinks("DB::select($request->input('sql'));") == ["DB::select()"]

    def test_raw_facade_is_strict(self):
        assert _sinks("DB::raw('count(' . $column . ')');") == ["DB::raw()"]

    def test_unprepared_always_flagged(self):
        matches = _find("DB::unprepared('create table t (id int)');")
        assert [m.metadata for m in matches] == [{"sink": "DB::unprepared()", "mode": "strict"}]

    def test_sprintf_counts_as_building(self):
        assert _sinks("DB::update(sprintf('update t set a = %s', $a));") == ["DB::update()"]


class TestRawClausesLenient:
    def test_where_raw_with_request_input(self):
        matches = _find("User::query()->whereRaw('name = ' . $request->input('name'))->get();")
        assert [m.metadata for m in matches] == [{"sink": "whereRaw()", "mode": "lenient"}]

    def test_where_raw_with_bindings_and_tainted_sql(self):
        assert _sinks("$query->whereRaw('a = ' . $_GET['a'], [$b]);") == ["whereRaw()"]

    def test_where_raw_tainted_binding_is_safe(self):
        assert _find("$query->whereRaw('a = ?', [$_GET['a']]);") == []

    def test_where_raw_with_internal_concatenation_is_accepted(self):
        assert _find("User::query()->whereRaw('deleted_at is ' . $state)->get();") == []

    def test_order_by_raw_with_superglobal(self):
        assert _sinks("$query->orderByRaw($_GET['sort']);") == ["orderByRaw()"]

    def test_literal_clause(self):
        assert _find("$query->whereRaw('active = 1');") == []


class TestNative:
    @pytest.mark.parametrize("call", ["mysqli_query($conn, $sql);", "pg_query($sql);"])
    def test_native_functions(self, call):
        matches = _find(call)
        assert len(matches) == 1
        assert matches[0].metadata["mode"] == "native"
        assert matches[0].severity == Severity.CRITICAL

    def test_new_pdo(self):
        assert _sinks("$pdo = new PDO($dsn, $user, $pass);") == ["new PDO()"]

    def test_unrelated_class(self):
        assert _find("$c = new Collection([]);") == []


def test_unparseable_file_yields_nothing():
    assert SqlSinkMatcher().find("<?php DB::select('a' . ;", "broken.php") == []


def test_one_match_per_call_on_multiple_lines():
    body = """DB::select('a' . $x);
DB::select('b' . $y);"""
    matches = _find(body)
    assert [m.line for m in matches] == [2, 3]
