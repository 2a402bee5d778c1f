"""Tests for the HSTS header analyzer."""

from __future__ import annotations

import json

from laraguard.analysis.models import Severity, Status
from laraguard.analyzers.hsts import HstsHeaderAnalyzer
from laraguard.config import AnalyzerSettings, ScanConfig

HTTPS_ENV = "APP_URL=https://shop.example.com\n"


def _middleware(header: str) -> str:
    return f"""<?php
class SecurityHeaders
{{
    public function handle($request, Closure $next)
    {{
        $response = $next($request);
        $response->headers->set('Strict-Transport-Security', '{header}');
        return $response;
    }}
}}
"""


def _run(make_context, files, config=None):
    return HstsHeaderAnalyzer(make_context(files, config=config)).analyze()


class TestHttpsDetection:
    def test_not_https_only(self, make_context):
        result = _run(make_context, {".env": "APP_URL=http://shop.example.com\n"})
        assert result.status == Status.PASSED
        assert result.message == "HSTS not required for non-HTTPS-only applications"

    def test_force_https_flag(self, make_context):
        result = _run(make_context, {".env": "FORCE_HTTPS=true\n"})
        assert result.status == Status.FAILED

    def test_secure_session_cookie(self, make_context):
        session = "<?php\n\nreturn [\n    'secure' => true,\n];\n"
        result = _run(make_context, {"config/session.php": session})
        assert result.status == Status.FAILED


class TestMiddleware:
    def test_missing_header(self, make_context):
        result = _run(make_context, {".env": HTTPS_ENV})
        assert result.message == "Found 1 HSTS header configuration issue"
        (issue,) = result.issues
        assert issue.message == "HTTPS-only application missing HSTS (Strict-Transport-Security) header"
        assert issue.file == "app/Http/Middleware"
        assert issue.line == 1

    def test_complete_header(self, make_context):
        files = {
            ".env": HTTPS_ENV,
            "app/Http/Middleware/SecurityHeaders.php": _middleware("max-age=31536000; includeSubDomains"),
        }
        result = _run(make_context, files)
        assert result.status == Status.PASSED
        assert result.message == "HSTS header configuration is properly set"

    def test_weak_header(self, make_context):
        files = {
            ".env": HTTPS_ENV,
            "app/Http/Middleware/SecurityHeaders.php": _middleware("max-age=3600"),
        }
        result = _run(make_context, files)
        assert result.status == Status.WARNING
        assert [(i.severity, i.line) for i in result.issues] == [
            (Severity.MEDIUM, 7),
            (Severity.LOW, 7),
        ]
        assert result.issues[0].message == (
            "HSTS max-age (3600 seconds) is below recommended minimum of 15768000 seconds"
        )
        assert result.issues[1].file == "app/Http/Middleware/SecurityHeaders.php"

    def test_preload_required(self, make_context):
        files = {
            ".env": HTTPS_ENV,
            "app/Http/Middleware/SecurityHeaders.php": _middleware("max-age=31536000; includeSubDomains"),
        }
        config = ScanConfig(settings=AnalyzerSettings(hsts_require_preload=True))
        (issue,) = _run(make_context, files, config).issues
        assert issue.message == 'HSTS header missing "preload" directive'

    def test_security_header_package(self, make_context):
        files = {
            ".env": HTTPS_ENV,
            "composer.json": json.dumps({"require": {"bepsvpt/secure-headers": "^7.0"}}),
        }
        assert _run(make_context, files).status == Status.PASSED


def test_insecure_session_cookie_on_https_app(make_context):
    session = "<?php\n\nreturn [\n    'secure' => false,\n];\n"
    files = {
        ".env": HTTPS_ENV,
        "config/session.php": session,
        "app/Http/Middleware/SecurityHeaders.php": _middleware("max-age=31536000; includeSubDomains"),
    }
    (issue,) = _run(make_context, files).issues
    assert issue.message == "HTTPS-only application has secure cookies disabled"
    assert issue.file == "config/session.php"
    assert issue.line == 4


def test_skipped(make_context):
    assert _run(make_context, {}).status == Status.SKIPPED
