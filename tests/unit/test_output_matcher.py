"""Tests for XSS output sink matching in PHP and Blade."""

from __future__ import annotations

from laraguard.analysis.matchers.output import (
    OutputSinkMatcher,
    is_blade_file,
    is_js_encoded,
    is_tainted_expression,
)
from laraguard.analysis.models import Severity


def _php(body: str):
    return OutputSinkMatcher().find(f"<?php\n{body}\n", "app/Http/Controllers/Demo.php")


def _blade(content: str):
    return OutputSinkMatcher().find(content, "resources/views/demo.blade.php")


class TestPhpSinks:
    def test_direct_superglobal_echo_is_critical(self):
        (match,) = _php("echo $_GET['name'];")
        assert match.severity == Severity.CRITICAL
        assert match.message == "Critical XSS: Direct echo of superglobal without escaping"
        assert match.line == 2

    def test_superglobal_in_concatenation(self):
        (match,) = _php("echo 'Hello ' . $_POST['name'];")
        assert match.severity == Severity.CRITICAL

    def test_request_input_echo_is_high(self):
        (match,) = _php("echo $request->input('q');")
        assert match.severity == Severity.HIGH
        assert match.message == "Potential XSS: Echo of request data without escaping"

    def test_escaped_echo_is_safe(self):
        assert _php("echo e($request->input('q'));") == []
        assert _php("echo htmlspecialchars($_GET['q']);") == []

    def test_literal_echo_is_safe(self):
        assert _php("echo 'static';") == []

    def test_response_with_request_input(self):
        (match,) = _php("return response($request->input('html'));")
        assert match.message == "Potential XSS: response() with possible unescaped user input"

    def test_response_make(self):
        (match,) = _php("return Response::make($_GET['body']);")
        assert match.metadata["sink"] == "Response::make()"

    def test_response_with_literal(self):
        assert _php("return response('ok');") == []


class TestBladeSinks:
    def test_escaped_text_output_is_safe(self):
        assert _blade("<p>{{ $comment }}</p>") == []

    def test_raw_output_of_user_data(self):
        (match,) = _blade("<p>{!! $comment !!}</p>")
        assert match.message == "Potential XSS: Unescaped blade output with possible user input"
        assert match.severity == Severity.HIGH
        assert match.metadata["raw"] is True
        assert match.metadata["context"] == "text"

    def test_raw_output_of_sanitized_value(self):
        assert _blade("<div>{!! $sanitizedHtml !!}</div>") == []

    def test_raw_output_of_request_input(self):
        (match,) = _blade("<div>{!! request('bio') !!}</div>")
        assert match.metadata["expression"] == "request('bio')"

    def test_escaped_output_in_href_is_flagged(self):
        (match,) = _blade('<a href="{{ $request->input(\'next\') }}">next</a>')
        assert match.message == "Potential XSS: User input in href attribute URL"

    def test_escaped_output_in_event_handler(self):
        (match,) = _blade("<button onclick=\"go('{{ $search }}')\">go</button>")
        assert match.message == "Potential XSS: User input in onclick event handler attribute"

    def test_script_context(self):
        (match,) = _blade("<script>\nconst q = '{{ $query }}';\n</script>")
        assert match.message == "Potential XSS: User data in JavaScript without proper encoding"
        assert match.line == 2

    def test_script_context_with_js_encoders(self):
        content = (
            "<script>\n"
            "const a = {{ Js::from($comment) }};\n"
            "const b = @json($comment);\n"
            "const c = {!! json_encode($comment, JSON_HEX_TAG | JSON_HEX_AMP) !!};\n"
            "const d = {{ \\Illuminate\\Support\\Js::from($query) }};\n"
            "</script>"
        )
        assert _blade(content) == []

    def test_escaped_data_attribute_is_safe(self):
        assert _blade('<div data-q="{{ $query }}"></div>') == []

    def test_raw_data_attribute(self):
        (match,) = _blade('<div data-q="{!! $query !!}"></div>')
        assert match.message == "Potential XSS: Unescaped output in data-q attribute"

    def test_href_with_internal_value(self):
        assert _blade('<a href="{{ route(\'home\') }}">home</a>') == []

    def test_sinks_sorted_by_line(self):
        content = "<p>{!! $comment !!}</p>\n<p>ok</p>\n<p>{!! $message !!}</p>"
        assert [m.line for m in _blade(content)] == [1, 3]


def test_is_blade_file():
    assert is_blade_file("resources/views/a.blade.php")
    assert not is_blade_file("app/Models/User.php")


def test_is_tainted_expression_prefers_resolved_kind():
    # A literal is never tainted, whatever it is called
    assert not is_tainted_expression("'comment'")
    assert is_tainted_expression("$_GET['x']")
    assert is_tainted_expression("$comment")


def test_is_js_encoded():
    assert is_js_encoded("Js::from($comment)")
    assert is_js_encoded("json_encode($comment, JSON_HEX_TAG)")
    assert not is_js_encoded("json_encode($comment)")
    assert not is_js_encoded("Str::from($comment)")
    assert not is_js_encoded("$comment")
