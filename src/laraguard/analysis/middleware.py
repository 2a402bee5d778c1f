"""Static checks of middleware registration in the HTTP kernel and bootstrap file."""

from __future__ import annotations

import re
from dataclasses import dataclass

_LINE_COMMENT = re.compile(r"^\s*(//|#)")


@dataclass(frozen=True)
class MiddlewareStatus:
    """Whether any of a middleware's class names is mentioned, and where it is commented out."""

    registered: bool
    commented_lines: tuple[tuple[int, str], ...] = ()


def kernel_middleware_status(content: str, names: tuple[str, ...]) -> MiddlewareStatus:
    """Inspect ``app/Http/Kernel.php`` text for middleware class *names*.

    ``commented_lines`` holds (line, matched name) for every single-line comment
    mentioning one of the names.
    """
    registered = any(name in content for name in names)
    commented: list[tuple[int, str]] = []
    for number, line in enumerate(content.splitlines(), start=1):
        if not _LINE_COMMENT.match(line):
            continue
        for name in names:
            if name in line:
                commented.append((number, name))
                break
    return MiddlewareStatus(registered=registered, commented_lines=tuple(commented))


def strip_line_comments(content: str) -> str:
    """Drop ``//`` and ``#`` comment lines, keeping line numbering."""
    return "\n".join(
        "" if _LINE_COMMENT.match(line) else line for line in content.splitlines()
    )


def replaces_default_stack(content: str) -> bool:
    """Whether bootstrap/app.php replaces Laravel's default global or web stacks."""
    code = strip_line_comments(content)
    return bool(
        re.search(r"\$middleware\s*->\s*use\s*\(", code)
        or re.search(r"\$middleware\s*->\s*group\s*\(\s*['\"]web['\"]", code)
    )


def removes_middleware(content: str, name: str) -> int | None:
    """Line of a ``->remove(...)`` / ``web(remove: ...)`` call dropping *name*, if any."""
    code = strip_line_comments(content)
    for m in re.finditer(r"(?:->\s*remove\s*\(|remove\s*:\s*)", code):
        window = code[m.end() : m.end() + 400]
        closing = window.find(")")
        if closing != -1:
            window = window[:closing]
        if name in window:
            return code.count("\n", 0, m.start()) + 1
    return None


def global_stack(content: str) -> tuple[int, str] | None:
    """Line and array text of a ``$middleware->use([...])`` call in bootstrap/app.php."""
    code = strip_line_comments(content)
    m = re.search(r"\$middleware\s*->\s*use\s*\(\s*\[", code)
    if m is None:
        return None
    closing = code.find("]", m.end())
    body = code[m.end() : closing if closing != -1 else len(code)]
    return code.count("\n", 0, m.start()) + 1, body
