"""Password hashing strength analyzer."""

from __future__ import annotations

from laraguard.analysis.matchers.hashing import WeakHashMatcher
from laraguard.analysis.matchers.thresholds import Threshold, ThresholdMatcher
from laraguard.analysis.models import AnalyzerMetadata, Issue, Severity
from laraguard.analyzers.base import AnalysisContext, Analyzer

HASHING_CONFIG = "config/hashing.php"
WEAK_DRIVERS = ("md5", "sha1", "sha256")


class HashingStrengthAnalyzer(Analyzer):
    """Hashing driver, cost factors in config/hashing.php, and weak hashing in code."""

    metadata = AnalyzerMetadata(
        id="hashing-strength",
        name="Password Hashing Strength Analyzer",
        description="Validates that password hashing configuration uses secure parameters",
        severity=Severity.CRITICAL,
        time_to_fix=15,
        tags=("hashing", "passwords", "bcrypt", "argon2", "security"),
    )
    passed_message = "Password hashing configuration is secure"
    failed_message = "Found {count} password hashing security issue{s}"
    skip_reason = "No hashing configuration file found and no PHP files to scan"

    def __init__(self, context: AnalysisContext) -> None:
        super().__init__(context)
        s = self.settings
        self.thresholds = {
            "rounds": Threshold(
                name="rounds",
                minimum=s.bcrypt_min_rounds,
                severity=Severity.CRITICAL,
                message="Bcrypt rounds ({value}) is below recommended minimum of {minimum}",
                recommendation="Set bcrypt rounds to at least {minimum} for better protection "
                "against brute-force attacks",
                metadata={"issue_type": "weak_bcrypt_rounds"},
            ),
            "memory": Threshold(
                name="memory",
                minimum=s.argon_min_memory,
                severity=Severity.CRITICAL,
                message="Argon2 memory ({value} KB) is below recommended minimum of {minimum} KB",
                recommendation="Set argon2 memory to at least {minimum} KB",
                metadata={"issue_type": "weak_argon2_memory"},
            ),
            "time": Threshold(
                name="time",
                minimum=s.argon_min_time,
                severity=Severity.MEDIUM,
                message="Argon2 time cost ({value}) is below recommended minimum of {minimum}",
                recommendation="Set argon2 time cost to at least {minimum}",
                metadata={"issue_type": "weak_argon2_time"},
            ),
            "threads": Threshold(
                name="threads",
                minimum=s.argon_min_threads,
                severity=Severity.LOW,
                message="Argon2 threads ({value}) is below recommended minimum of {minimum}",
                recommendation="Set argon2 threads to at least {minimum}",
                metadata={"issue_type": "weak_argon2_threads"},
            ),
        }
        self.code_matcher = WeakHashMatcher(s.weak_hash_allowed_patterns)

    def should_run(self) -> bool:
        return self.context.exists(HASHING_CONFIG) or self.context.walker.has_files((".php",))

    def run(self) -> list[Issue]:
        issues = self._config_issues()
        walker = self.context.walker
        for path in walker.files((".php",)):
            content = walker.read(path)
            if content is None:
                continue
            for match in self.code_matcher.find(content, str(path)):
                issues.append(self.issue_at(match, path, content))
        return issues

    def _config_issues(self) -> list[Issue]:
        config = self.context.app_config
        if not config.has_file("hashing"):
            return []
        content = self.context.read(HASHING_CONFIG)
        issues: list[Issue] = []

        driver = config.entry("hashing.driver")
        if driver is not None and isinstance(driver.value, str):
            name = driver.value.lower()
            if name in WEAK_DRIVERS:
                issues.append(
                    Issue(
                        message=f'Weak hashing driver "{name}" configured',
                        severity=Severity.CRITICAL,
                        recommendation='Use "bcrypt" or "argon2id" as the hashing driver',
                        file=HASHING_CONFIG,
                        line=driver.line,
                        metadata={"driver": name, "issue_type": "weak_driver"},
                    )
                )

        checks = [("bcrypt", "rounds")]
        argon = "argon" if config.has("hashing.argon") else "argon2id"
        checks += [(argon, "memory"), (argon, "time"), (argon, "threads")]
        matcher = ThresholdMatcher()
        for section, key in checks:
            entry = config.entry(f"hashing.{section}.{key}")
            if entry is None or not entry.resolved:
                continue
            match = matcher.check(self.thresholds[key], entry.value, entry.line)
            if match is not None:
                issues.append(self.issue_at(match, HASHING_CONFIG, content))
        return issues
