"""Tests for CSRF form, AJAX, exception and route matching."""

from __future__ import annotations

import pytest

from laraguard.analysis.matchers.csrf import (
    CsrfMatcher,
    bootstrap_exceptions,
    find_unprotected_routes,
    middleware_exceptions,
    unprotected_route_table,
)
from laraguard.analysis.models import Severity
from laraguard.analysis.php import parse_php
from laraguard.project.routes import Route, routes_from_list


class TestForms:
    def test_post_form_without_token(self):
        content = '<form method="POST" action="/profile">\n<input name="a">\n</form>'
        (match,) = CsrfMatcher().find_forms(content)
        assert match.message == "Form without CSRF protection - missing @csrf directive"
        assert match.severity == Severity.HIGH
        assert match.line == 1
        assert match.metadata["form_method"] == "POST"

    @pytest.mark.parametrize(
        "token",
        ["@csrf", "<x-csrf />", "{{ csrf_field() }}", '<input type="hidden" name="_token" value="x">'],
    )
    def test_token_markers(self, token):
        content = f'<form method="post">\n{token}\n</form>'
        assert CsrfMatcher().find_forms(content) == []

    def test_get_form_is_ignored(self):
        assert CsrfMatcher().find_forms('<form method="GET"></form>') == []
        assert CsrfMatcher().find_forms("<form action=\"/search\"></form>") == []

    def test_token_belongs_to_its_own_form(self):
        content = (
            '<form method="POST">\n@csrf\n</form>\n'
            '<form method="POST">\n<button>Go</button>\n</form>'
        )
        (match,) = CsrfMatcher().find_forms(content)
        assert match.line == 4


class TestAjax:
    def test_jquery_post_in_template(self):
        content = """<script>
$.ajax({
    url: '/items',
    type: 'POST',
    data: {a: 1}
});
</script>"""
        (match,) = CsrfMatcher().find_ajax(content, in_template=True)
        assert match.message == "AJAX request without CSRF token"
        assert match.severity == Severity.HIGH
        assert match.line == 2
        assert match.metadata["ajax_type"] == "jQuery"

    def test_axios_in_script_is_medium(self):
        (match,) = CsrfMatcher().find_ajax("axios.post('/items', data);", in_template=False)
        assert match.message == "JavaScript AJAX request may be missing CSRF token"
        assert match.severity == Severity.MEDIUM
        assert match.metadata["ajax_library"] == "axios"

    def test_header_token_is_accepted(self):
        content = """fetch('/items', {
    method: 'POST',
    headers: {'X-CSRF-TOKEN': token},
});"""
        assert CsrfMatcher().find_ajax(content, in_template=False) == []

    def test_global_setup_disables_check(self):
        content = (
            "axios.defaults.headers.common['X-CSRF-TOKEN'] = token;\n"
            "axios.post('/items', data);"
        )
        assert CsrfMatcher().find_ajax(content, in_template=False) == []

    def test_get_request_is_ignored(self):
        assert CsrfMatcher().find_ajax("fetch('/items');", in_template=False) == []


class TestExceptions:
    @pytest.mark.parametrize(
        ("pattern", "expected"),
        [
            ("*", Severity.CRITICAL),
            ("/*", Severity.CRITICAL),
            ("admin/*", Severity.HIGH),
            ("stripe/*", None),
            ("api/*", None),
            ("webhooks/stripe/*", None),
            ("admin/reports", None),
        ],
    )
    def test_exception_severity(self, pattern, expected):
        assert CsrfMatcher().exception_severity(pattern) == expected

    def test_custom_allowed_services(self):
        assert CsrfMatcher(allowed_services=["acme"]).exception_severity("acme/*") is None
        assert CsrfMatcher(allowed_services=["acme"]).exception_severity("stripe/*") == Severity.HIGH

    def test_check_exceptions_bootstrap_messages(self):
        matches = CsrfMatcher().check_exceptions(
            [("*", 3), ("admin/*", 4), ("stripe/*", 5)], "bootstrap"
        )
        assert [m.message for m in matches] == [
            "Critical: All routes excluded from CSRF protection in bootstrap/app.php",
            "Broad CSRF exception pattern in bootstrap/app.php: admin/*",
        ]
        assert [m.line for m in matches] == [3, 4]

    def test_check_exceptions_middleware_message(self):
        (match,) = CsrfMatcher().check_exceptions([("admin/*", 7)], "middleware")
        assert match.message == "Broad CSRF exception pattern: admin/*"
        assert match.metadata == {"exception": "admin/*", "source": "middleware", "line": 7}

    def test_middleware_exceptions(self):
        tree = parse_php(
            """<?php
class VerifyCsrfToken extends Middleware
{
    protected $except = [
        'stripe/*',
        'admin/*',
    ];
}
"""
        )
        assert middleware_exceptions(tree) == [("stripe/*", 5), ("admin/*", 6)]

    def test_bootstrap_exceptions(self):
        tree = parse_php(
            """<?php
return Application::configure(basePath: dirname(__DIR__))
    ->withMiddleware(function (Middleware $middleware) {
        $middleware->validateCsrfTokens(except: [
            'stripe/*',
            '*',
        ]);
    })->create();
"""
        )
        assert bootstrap_exceptions(tree) == [("stripe/*", 5), ("*", 6)]


class TestCustomRouteFiles:
    def test_routes_without_web_middleware(self):
        content = """<?php
Route::post('/hook', [HookController::class, 'store']);
Route::post('/safe', [SafeController::class, 'store'])->middleware('web');
Route::group(['middleware' => ['web']], function () {
    Route::delete('/inside', [InsideController::class, 'destroy']);
});
Route::get('/read', fn () => 1);
"""
        (match,) = find_unprotected_routes(content)
        assert match.line == 2
        assert match.message == (
            'POST route in custom route file missing CSRF protection - no "web" middleware detected'
        )

    def test_route_after_group_is_checked(self):
        content = """<?php
Route::group(['middleware' => 'web'], function () {
    Route::put('/a', fn () => 1);
});
Route::patch('/b', fn () => 1);
"""
        (match,) = find_unprotected_routes(content)
        assert match.metadata == {"method": "PATCH", "line": 5}


class TestRouteTable:
    def test_only_unprotected_state_changing_routes(self):
        routes = [
            Route("POST", "contact", ("web",)),
            Route("POST", "api/items", ()),
            Route("DELETE", "admin/users/{id}", ("auth",)),
            Route("GET", "home", ()),
            Route("PUT", "hooks", ("api",)),
            Route("PATCH", "legacy", ("Illuminate\\Foundation\\Http\\Middleware\\ValidateCsrfToken",)),
        ]
        (match,) = unprotected_route_table(routes, ["api"])
        assert match.message == "DELETE route /admin/users/{id} has no CSRF middleware"
        assert match.line is None
        assert match.metadata["middleware"] == ["auth"]

    def test_routes_from_list_splits_methods(self):
        routes = routes_from_list(
            [
                {"method": "GET|HEAD", "uri": "/x", "middleware": "web"},
                {"method": "POST", "uri": "y", "middleware": ["web", 3]},
                "not a route",
            ]
        )
        assert routes == [
            Route("GET", "x", ("web",)),
            Route("HEAD", "x", ("web",)),
            Route("POST", "y", ("web",)),
        ]
