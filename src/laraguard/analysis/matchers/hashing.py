"""Weak password hashing in PHP code."""

from __future__ import annotations

import re
from collections.abc import Iterable

from tree_sitter import Tree

from laraguard.analysis.matchers.base import Match, is_comment_line
from laraguard.analysis.models import Severity

WEAK_HASH_FUNCTIONS = ("md5", "sha1")

_INLINE_COMMENT = re.compile(r"//.*$")
_WEAK_ALGORITHM = re.compile(r"password_hash\s*\([^,]+,\s*PASSWORD_(MD5|SHA1|SHA256)", re.IGNORECASE)
_PLAIN_ASSIGNMENT = re.compile(r"password[\"']?\s*=\s*\$(?:password|_POST|_GET|request)", re.IGNORECASE)
_COMPARISON = re.compile(r"[=!]==?")
_HASHED_NAME = re.compile(r"\$(hashed|encrypted|encoded|hash)Password", re.IGNORECASE)


def _password_argument(function: str) -> re.Pattern[str]:
    return re.compile(
        r"\b" + function + r"\s*\(\s*\$(?:password|(?:request|_POST|_GET)(?:->|\[).*password)",
        re.IGNORECASE,
    )


_PASSWORD_HASHES = {name: _password_argument(name) for name in WEAK_HASH_FUNCTIONS}


class WeakHashMatcher:
    """Line-oriented checks for weak password hashing.

    Lines mentioning one of *allowed_patterns* (``cache``, ``etag``, ...)
    use md5/sha1 for fingerprints, not passwords, and are not reported.
    """

    def __init__(self, allowed_patterns: Iterable[str] = ()) -> None:
        self._allowed = tuple(p.lower() for p in allowed_patterns)

    def find(self, content: str, file_path: str, tree: Tree | None = None) -> list[Match]:
        matches: list[Match] = []
        for number, line in enumerate(content.splitlines(), start=1):
            if is_comment_line(line):
                continue
            code = _INLINE_COMMENT.sub("", line)

            if not self._allowed_context(code):
                for function, pattern in _PASSWORD_HASHES.items():
                    if pattern.search(code):
                        matches.append(
                            Match(
                                message=f"Weak hashing function {function}() used for password",
                                severity=Severity.CRITICAL,
                                recommendation="Use Hash::make() or bcrypt() for password hashing",
                                line=number,
                                metadata={"function": function, "issue_type": "weak_hash_function"},
                            )
                        )

            m = _WEAK_ALGORITHM.search(code)
            if m:
                algorithm = f"PASSWORD_{m.group(1).upper()}"
                matches.append(
                    Match(
                        message=f"Weak password_hash algorithm {algorithm} used",
                        severity=Severity.CRITICAL,
                        recommendation="Use PASSWORD_BCRYPT or PASSWORD_ARGON2ID",
                        line=number,
                        metadata={"algorithm": algorithm, "issue_type": "weak_password_hash_algorithm"},
                    )
                )

            if self._stores_plain_text(code):
                matches.append(
                    Match(
                        message="Potential plain-text password storage detected",
                        severity=Severity.CRITICAL,
                        recommendation="Always hash passwords using Hash::make() or bcrypt()",
                        line=number,
                        metadata={"issue_type": "plain_text_password"},
                    )
                )
        return matches

    def _allowed_context(self, code: str) -> bool:
        lowered = code.lower()
        return any(pattern in lowered for pattern in self._allowed)

    @staticmethod
    def _stores_plain_text(code: str) -> bool:
        if _COMPARISON.search(code) or _HASHED_NAME.search(code):
            return False
        if "Hash::" in code or "bcrypt(" in code or "password_hash(" in code:
            return False
        return bool(_PLAIN_ASSIGNMENT.search(code))
