"""Scan configuration: defaults, laraguard.yaml, env vars."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from laraguard.analysis.models import Severity
from laraguard.project.walker import DEFAULT_IGNORED_SEGMENTS

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "laraguard.yaml"


@dataclass(frozen=True)
class PathRule:
    """Permission policy for one project path; modes are permission bits (0o755)."""

    type: str
    max: int
    recommended: int
    critical: bool = False
    executable: bool = False


def _directory(max_mode: int = 0o775, recommended: int = 0o755) -> PathRule:
    return PathRule("directory", max_mode, recommended)


DEFAULT_PERMISSION_RULES: dict[str, PathRule] = {
    "app": _directory(),
    "config": _directory(),
    "database": _directory(),
    "resources": _directory(),
    "routes": _directory(),
    "bootstrap": _directory(),
    "public": _directory(),
    # Storage has to stay writable by the web server group
    "storage": _directory(recommended=0o775),
    "storage/app": _directory(recommended=0o775),
    "storage/framework": _directory(recommended=0o775),
    "storage/logs": _directory(recommended=0o775),
    ".env": PathRule("file", 0o600, 0o600, critical=True),
    ".env.production": PathRule("file", 0o600, 0o600, critical=True),
    ".env.prod": PathRule("file", 0o600, 0o600, critical=True),
    "config/app.php": PathRule("file", 0o644, 0o644),
    "config/database.php": PathRule("file", 0o644, 0o644),
    "config/services.php": PathRule("file", 0o644, 0o644),
    "artisan": PathRule("file", 0o775, 0o755, executable=True),
}


@dataclass
class AnalyzerSettings:
    """Tunable thresholds and lists consumed by individual analyzers."""

    bcrypt_min_rounds: int = 12
    argon_min_memory: int = 65536
    argon_min_time: int = 2
    argon_min_threads: int = 2
    weak_hash_allowed_patterns: tuple[str, ...] = ("cache", "fingerprint", "checksum", "etag")
    hsts_min_max_age: int = 15768000
    hsts_require_preload: bool = False
    csrf_allowed_exception_services: tuple[str, ...] = ()
    csrf_ignored_middleware: tuple[str, ...] = ("api",)
    # Checked in order; later files override earlier ones like PHP scan dirs
    php_ini_paths: tuple[str, ...] = ("php.ini", ".user.ini", "public/.user.ini")
    file_permissions: dict[str, PathRule] = field(
        default_factory=lambda: dict(DEFAULT_PERMISSION_RULES)
    )


@dataclass
class ScanConfig:
    """Everything a scan needs besides the project root."""

    paths: list[str] = field(
        default_factory=lambda: ["app", "config", "database", "routes", "resources"]
    )
    excluded: list[str] = field(default_factory=list)
    ignored_segments: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORED_SEGMENTS))
    disabled_analyzers: list[str] = field(default_factory=list)
    fail_on: Severity = Severity.HIGH
    max_issues_per_check: int = 0
    base_url: str | None = None
    http_timeout: float = 5.0
    settings: AnalyzerSettings = field(default_factory=AnalyzerSettings)

    @classmethod
    def load(cls, root: str | Path = ".", path: str | Path | None = None) -> ScanConfig:
        """Defaults, then ``laraguard.yaml`` (or *path*), then LARAGUARD_* env vars."""
        config = cls()

        config_file = Path(path) if path is not None else Path(root) / CONFIG_FILENAME
        if path is not None or config_file.is_file():
            config = config.merge(load_config_file(config_file))

        env_url = os.environ.get("LARAGUARD_BASE_URL")
        if env_url:
            config.base_url = env_url

        env_timeout = os.environ.get("LARAGUARD_HTTP_TIMEOUT")
        if env_timeout:
            config.http_timeout = float(env_timeout)

        env_fail_on = os.environ.get("LARAGUARD_FAIL_ON")
        if env_fail_on:
            config.fail_on = Severity(env_fail_on.lower())

        return config

    def merge(self, overrides: ConfigFile) -> ScanConfig:
        """Apply the fields set in a validated config document."""
        data = {
            k: v for k, v in overrides.model_dump(exclude_unset=True).items() if v is not None
        }
        settings_data = {
            k: v for k, v in (data.pop("settings", None) or {}).items() if v is not None
        }
        merged = replace(self, **data)
        if "fail_on" in data:
            merged.fail_on = Severity(data["fail_on"])
        if settings_data:
            settings_data.pop("file_permissions", None)
            rules = overrides.settings.file_permissions if overrides.settings else None
            settings = replace(
                self.settings,
                **{k: tuple(v) if isinstance(v, list) else v for k, v in settings_data.items()},
            )
            if rules:
                settings.file_permissions = {
                    **settings.file_permissions,
                    **{name: PathRule(**rule.model_dump()) for name, rule in rules.items()},
                }
            merged.settings = settings
        return merged


class PathRuleModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["file", "directory"] = "file"
    max: int
    recommended: int
    critical: bool = False
    executable: bool = False

    @field_validator("max", "recommended", mode="before")
    @classmethod
    def _octal(cls, value: Any) -> Any:
        # "0644" / "644" in YAML mean octal modes
        if isinstance(value, str):
            return int(value, 8)
        return value


class SettingsModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    bcrypt_min_rounds: int | None = None
    argon_min_memory: int | None = None
    argon_min_time: int | None = None
    argon_min_threads: int | None = None
    weak_hash_allowed_patterns: list[str] | None = None
    hsts_min_max_age: int | None = None
    hsts_require_preload: bool | None = None
    csrf_allowed_exception_services: list[str] | None = None
    csrf_ignored_middleware: list[str] | None = None
    php_ini_paths: list[str] | None = None
    file_permissions: dict[str, PathRuleModel] | None = None


class ConfigFile(BaseModel):
    """Schema of ``laraguard.yaml``."""

    model_config = ConfigDict(extra="forbid")

    paths: list[str] | None = None
    excluded: list[str] | None = None
    ignored_segments: list[str] | None = None
    disabled_analyzers: list[str] | None = None
    fail_on: Literal["critical", "high", "medium", "low"] | None = None
    max_issues_per_check: int | None = None
    base_url: str | None = None
    http_timeout: float | None = None
    settings: SettingsModel | None = None


def load_config_file(path: str | Path) -> ConfigFile:
    """Parse and validate a YAML config document."""
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path.name}: {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Config YAML must be a mapping")
    try:
        return ConfigFile.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid config file {path.name}: {e}") from e
