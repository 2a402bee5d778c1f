"""Tests for routes, HTTP helpers, suppression comments and error sanitizing."""

from __future__ import annotations

import json

import pytest

from laraguard.analysis.suppression import SuppressionIndex, line_suppresses
from laraguard.errors import FetchError, sanitize_error_message
from laraguard.project.http import Response, is_local_url
from laraguard.project.routes import Route, load_route_table


class TestRouteTable:
    def test_load(self, tmp_path):
        path = tmp_path / "routes.json"
        path.write_text(json.dumps([{"method": "POST", "uri": "contact", "middleware": ["web"]}]))
        assert load_route_table(path) == [Route("POST", "contact", ("web",))]

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "routes.json"
        path.write_text("nope")
        with pytest.raises(ValueError, match="not a valid route list"):
            load_route_table(path)

    def test_not_a_list(self, tmp_path):
        path = tmp_path / "routes.json"
        path.write_text("{}")
        with pytest.raises(ValueError, match="JSON list"):
            load_route_table(path)


class TestHttp:
    @pytest.mark.parametrize(
        "url",
        ["http://localhost", "http://127.0.0.1:8000", "https://shop.test", "http://app.local", "not a url"],
    )
    def test_local_urls(self, url):
        assert is_local_url(url)

    def test_public_url(self):
        assert not is_local_url("https://example.com")

    def test_header_lookup_is_case_insensitive(self):
        response = Response(200, headers={"Content-Security-Policy": "default-src 'self'"})
        assert response.header("content-security-policy") == "default-src 'self'"
        assert response.header("x-frame-options") is None

    def test_fetch_error_message(self):
        error = FetchError("https://example.com/.env", "timed out")
        assert str(error) == "https://example.com/.env: timed out"
        assert error.reason == "timed out"


class TestSuppression:
    def test_line_suppresses(self):
        assert line_suppresses("$x = 1; // @laraguard-ignore", "sql-injection")
        assert line_suppresses("// @laraguard-ignore sql-injection,xss-vulnerabilities", "xss-vulnerabilities")
        assert not line_suppresses("// @laraguard-ignore csrf-protection", "sql-injection")
        assert not line_suppresses("$x = 1;", "sql-injection")

    def test_index_checks_line_and_line_above(self, tmp_path):
        (tmp_path / "a.php").write_text("<?php\n// @laraguard-ignore\nDB::select($q);\n\nDB::select($r);\n")
        index = SuppressionIndex(tmp_path)
        assert index.is_suppressed("a.php", 3, "sql-injection")
        assert index.is_suppressed("a.php", 2, "sql-injection")
        assert not index.is_suppressed("a.php", 5, "sql-injection")

    def test_missing_file_or_line(self, tmp_path):
        index = SuppressionIndex(tmp_path)
        assert not index.is_suppressed("missing.php", 1, "sql-injection")
        assert not index.is_suppressed("a.php", None, "sql-injection")
        assert not index.is_suppressed("", 1, "sql-injection")


class TestSanitize:
    def test_credentials_redacted(self):
        message = sanitize_error_message("connect mysql://root:hunter2@db/app failed password=abc")
        assert "hunter2" not in message
        assert "abc" not in message
        assert "***" in message

    def test_private_addresses(self):
        assert sanitize_error_message("refused by 10.0.0.12") == "refused by ***.*.*.*"

    def test_tokens(self):
        assert sanitize_error_message("Authorization: Bearer abc.def") == "Authorization: bearer ***"

    def test_truncation(self):
        message = sanitize_error_message("x" * 300, max_length=50)
        assert message == "x" * 50 + "..."
