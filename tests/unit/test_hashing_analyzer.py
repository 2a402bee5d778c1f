"""Tests for the password hashing strength analyzer."""

from __future__ import annotations

from laraguard.analysis.models import Severity, Status
from laraguard.analyzers.hashing import HashingStrengthAnalyzer
from laraguard.config import AnalyzerSettings, ScanConfig

HASHING = """<?php

return [
    'driver' => 'bcrypt',
    'bcrypt' => [
        'rounds' => env('BCRYPT_ROUNDS', 10),
    ],
    'argon' => [
        'memory' => 1024,
        'threads' => 2,
        'time' => 2,
    ],
];
"""


def _run(make_context, files, config=None):
    return HashingStrengthAnalyzer(make_context(files, config=config)).analyze()


class TestConfig:
    def test_weak_cost_factors(self, make_context):
        result = _run(make_context, {"config/hashing.php": HASHING})
        assert result.status == Status.FAILED
        assert [(i.message, i.line) for i in result.issues] == [
            ("Bcrypt rounds (10) is below recommended minimum of 12", 6),
            ("Argon2 memory (1024 KB) is below recommended minimum of 65536 KB", 9),
        ]
        assert result.issues[0].metadata == {
            "rounds": 10,
            "minimum": 12,
            "issue_type": "weak_bcrypt_rounds",
        }
        assert result.issues[0].file == "config/hashing.php"

    def test_env_value_used(self, make_context):
        files = {"config/hashing.php": HASHING, ".env": "BCRYPT_ROUNDS=12\n"}
        result = _run(make_context, files)
        assert [i.metadata["issue_type"] for i in result.issues] == ["weak_argon2_memory"]

    def test_configurable_minimum(self, make_context):
        config = ScanConfig(settings=AnalyzerSettings(bcrypt_min_rounds=10, argon_min_memory=1024))
        assert _run(make_context, {"config/hashing.php": HASHING}, config).status == Status.PASSED

    def test_weak_driver(self, make_context):
        hashing = "<?php\n\nreturn [\n    'driver' => 'md5',\n];\n"
        (issue,) = _run(make_context, {"config/hashing.php": hashing}).issues
        assert issue.message == 'Weak hashing driver "md5" configured'
        assert issue.line == 4
        assert issue.severity == Severity.CRITICAL


class TestCode:
    def test_weak_function_in_code(self, make_context):
        source = "<?php\nclass Legacy\n{\n    public function store($password)\n    {\n        return md5($password);\n    }\n}\n"
        (issue,) = _run(make_context, {"app/Services/Legacy.php": source}).issues
        assert issue.file == "app/Services/Legacy.php"
        assert issue.line == 6
        assert issue.code == "return md5($password);"

    def test_clean_project(self, make_context):
        source = "<?php\n$user->password = Hash::make($request->password);\n"
        result = _run(make_context, {"app/Actions/Register.php": source})
        assert result.status == Status.PASSED
        assert result.message == "Password hashing configuration is secure"


def test_skipped(make_context):
    result = _run(make_context, {})
    assert result.status == Status.SKIPPED
    assert result.message == "No hashing configuration file found and no PHP files to scan"
