"""File and directory permission analyzer."""

from __future__ import annotations

import logging
import stat
from typing import Any

from laraguard.analysis.models import AnalyzerMetadata, Issue, Severity
from laraguard.analyzers.base import Analyzer
from laraguard.config import PathRule

logger = logging.getLogger(__name__)

_WORLD_WRITABLE = stat.S_IWOTH
_WORLD_READABLE = stat.S_IROTH
_GROUP_WRITABLE = stat.S_IWGRP
_GROUP_READABLE = stat.S_IRGRP
_ANY_EXECUTE = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


def permission_issue(relative: str, rule: PathRule, mode: int) -> Issue | None:
    """The single most specific permission problem for one path, if any.

    Checks run from most to least specific and stop at the first hit:
    world-writable, world-readable critical file, bits beyond the allowed
    maximum, group-writable critical file, unexpected execute bit.
    """
    mode &= 0o777
    octal = f"{mode:03o}"
    kind = rule.type.capitalize()
    recommended = f"{rule.recommended:o}"
    base: dict[str, Any] = {
        "path": relative,
        "permissions": octal,
        "numeric_permissions": mode,
        "type": rule.type,
    }

    def flags(**overrides: bool) -> dict[str, Any]:
        values = {
            "world_writable": bool(mode & _WORLD_WRITABLE),
            "world_readable": bool(mode & _WORLD_READABLE),
            "group_writable": bool(mode & _GROUP_WRITABLE),
            "group_readable": bool(mode & _GROUP_READABLE),
        }
        values.update(overrides)
        return values

    if mode & _WORLD_WRITABLE:
        return Issue(
            message=f'{kind} "{relative}" is world-writable (permissions: {octal})',
            severity=Severity.CRITICAL,
            recommendation=f"Change permissions to {recommended}: chmod {recommended} {relative}",
            file=relative,
            metadata={**base, **flags()},
        )

    if rule.critical and mode & _WORLD_READABLE:
        return Issue(
            message=f'Critical file "{relative}" is world-readable (permissions: {octal})',
            severity=Severity.CRITICAL,
            recommendation=f"Remove world read permissions: chmod {recommended} {relative}",
            file=relative,
            metadata={**base, **flags()},
        )

    exceeded = mode & ~rule.max & 0o777
    if exceeded:
        return Issue(
            message=f'{kind} "{relative}" has overly permissive permissions ({octal})',
            severity=Severity.CRITICAL if rule.critical else Severity.HIGH,
            recommendation=f"Change permissions to {rule.max:o} or {recommended}: "
            f"chmod {recommended} {relative}",
            file=relative,
            metadata={
                **base,
                "max_allowed": rule.max,
                "recommended": rule.recommended,
                "exceeded_bits": f"{exceeded:03o}",
                **flags(),
            },
        )

    if rule.critical and mode & _GROUP_WRITABLE:
        return Issue(
            message=f'Critical file "{relative}" is group-writable (permissions: {octal})',
            severity=Severity.MEDIUM,
            recommendation=f"Remove group write permissions: chmod {recommended} {relative}",
            file=relative,
            metadata={**base, **flags()},
        )

    if rule.type == "file" and not rule.executable and mode & _ANY_EXECUTE:
        return Issue(
            message=f'Non-executable file "{relative}" has execute permissions ({octal})',
            severity=Severity.MEDIUM,
            recommendation=f"Remove execute permissions: chmod {recommended} {relative}",
            file=relative,
            metadata={**base, "has_execute": True, "should_be_executable": False, **flags()},
        )
    return None


class FilePermissionsAnalyzer(Analyzer):
    """Checks the permission bits of the paths in the configured permission table."""

    metadata = AnalyzerMetadata(
        id="file-permissions",
        name="File Permissions Analyzer",
        description="Validates that project files and directories use secure permissions",
        severity=Severity.CRITICAL,
        time_to_fix=15,
        tags=("permissions", "file-security", "security", "access-control"),
    )
    passed_message = "File and directory permissions are secure"
    failed_message = "Found {count} file permission security issue{s}"
    skip_reason = "No configured files or directories found to analyze"

    def should_run(self) -> bool:
        return any(self.context.exists(p) for p in self.settings.file_permissions)

    def run(self) -> list[Issue]:
        issues: list[Issue] = []
        for relative, rule in self.settings.file_permissions.items():
            path = self.context.path(relative)
            try:
                mode = path.stat().st_mode
            except OSError as e:
                logger.debug("Skipping %s: %s", relative, e)
                continue
            issue = permission_issue(relative, rule, stat.S_IMODE(mode))
            if issue is not None:
                issues.append(issue)
        return issues
