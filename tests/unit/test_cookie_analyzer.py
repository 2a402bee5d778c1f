"""Tests for the cookie security analyzer."""

from __future__ import annotations

from laraguard.analysis.models import Severity, Status
from laraguard.analyzers.cookie import CookieSecurityAnalyzer

INSECURE_SESSION = """<?php

return [
    'driver' => env('SESSION_DRIVER', 'file'),
    'secure' => env('SESSION_SECURE_COOKIE', false),
    'http_only' => false,
    'same_site' => null,
];
"""

SECURE_SESSION = """<?php

return [
    'secure' => env('SESSION_SECURE_COOKIE', true),
    'http_only' => true,
    'same_site' => 'lax',
];
"""

KERNEL = """<?php
class Kernel extends HttpKernel
{
    protected $middlewareGroups = [
        'web' => [
            \\App\\Http\\Middleware\\EncryptCookies::class,
        ],
    ];
}
"""


def _run(make_context, files):
    return CookieSecurityAnalyzer(make_context(files)).analyze()


class TestSessionConfig:
    def test_insecure_flags(self, make_context):
        result = _run(make_context, {"config/session.php": INSECURE_SESSION})
        assert result.status == Status.FAILED
        assert result.message == "Found 3 cookie security issues"
        assert [(i.line, i.severity) for i in result.issues] == [
            (6, Severity.CRITICAL),
            (5, Severity.HIGH),
            (7, Severity.MEDIUM),
        ]
        assert result.issues[0].file == "config/session.php"
        assert result.issues[0].code == "'http_only' => false,"

    def test_env_overrides_default(self, make_context):
        files = {"config/session.php": INSECURE_SESSION, ".env": "SESSION_SECURE_COOKIE=true\n"}
        messages = [i.message for i in _run(make_context, files).issues]
        assert "Session cookies are not restricted to HTTPS (secure flag disabled)" not in messages

    def test_secure_config(self, make_context):
        result = _run(make_context, {"config/session.php": SECURE_SESSION, "app/Http/Kernel.php": KERNEL})
        assert result.status == Status.PASSED
        assert result.message == "Cookie security configuration is properly set"


class TestEncryptCookies:
    def test_kernel_missing(self, make_context):
        kernel = "<?php\nclass Kernel extends HttpKernel\n{\n}\n"
        (issue,) = _run(make_context, {"app/Http/Kernel.php": kernel}).issues
        assert issue.message == "EncryptCookies middleware is not registered in HTTP Kernel"
        assert issue.line is None

    def test_kernel_commented(self, make_context):
        kernel = KERNEL.replace("            \\App", "            // \\App")
        (issue,) = _run(make_context, {"app/Http/Kernel.php": kernel}).issues
        assert issue.message == "EncryptCookies middleware is commented out"
        assert issue.line == 6

    def test_bootstrap_removal(self, make_context):
        bootstrap = """<?php
return Application::configure(basePath: dirname(__DIR__))
    ->withMiddleware(function (Middleware $middleware) {
        $middleware->web(remove: [EncryptCookies::class]);
    })->create();
"""
        (issue,) = _run(make_context, {"bootstrap/app.php": bootstrap}).issues
        assert issue.message == "EncryptCookies middleware is removed in bootstrap/app.php"
        assert issue.line == 4

    def test_bootstrap_replaced_stack(self, make_context):
        bootstrap = """<?php
return Application::configure(basePath: dirname(__DIR__))
    ->withMiddleware(function (Middleware $middleware) {
        $middleware->use([
            TrustProxies::class,
        ]);
    })->create();
"""
        (issue,) = _run(make_context, {"bootstrap/app.php": bootstrap}).issues
        assert issue.severity == Severity.HIGH

    def test_default_bootstrap(self, make_context):
        bootstrap = "<?php\nreturn Application::configure(basePath: dirname(__DIR__))->create();\n"
        assert _run(make_context, {"bootstrap/app.php": bootstrap}).status == Status.PASSED


def test_skipped(make_context):
    result = _run(make_context, {"app/Models/User.php": "<?php\n"})
    assert result.status == Status.SKIPPED
    assert result.message == "No session configuration or middleware files found to analyze"
