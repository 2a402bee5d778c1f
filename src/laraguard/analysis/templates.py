"""Span-aware scanner for Blade templates.

Blade output tags (``{{ }}`` escaped, ``{!! !!}`` raw) are located by byte
offset and then placed in their HTML context: element text, a specific
attribute value, the inside of a tag, or a ``<script>`` block. Context is
decided by spans, not by lines, so text that merely shares a line with an
``href`` is still text.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

_BLADE_COMMENT = re.compile(r"\{\{--.*?--\}\}", re.DOTALL)
_RAW_OUTPUT = re.compile(r"\{!!(.*?)!!\}", re.DOTALL)
_ESCAPED_OUTPUT = re.compile(r"(?<!@)\{\{(?!--)(.*?)\}\}", re.DOTALL)
_TAG_OPEN = re.compile(r"<([a-zA-Z][\w:.-]*)")
_SCRIPT_BLOCK = re.compile(r"<script\b[^>]*>(.*?)</script\s*>", re.DOTALL | re.IGNORECASE)

URL_ATTRIBUTES = frozenset(
    {"href", "src", "action", "formaction", "xlink:href", "poster", "background", "srcset"}
)


class OutputContext(enum.Enum):
    """Where in the HTML document an output tag is rendered."""

    TEXT = "text"
    URL_ATTRIBUTE = "url_attribute"
    EVENT_ATTRIBUTE = "event_attribute"
    DATA_ATTRIBUTE = "data_attribute"
    ATTRIBUTE = "attribute"
    TAG = "tag"
    SCRIPT = "script"


@dataclass(frozen=True)
class Attribute:
    name: str
    value_start: int
    value_end: int

    def contains(self, start: int, end: int) -> bool:
        return self.value_start <= start and end <= self.value_end


@dataclass(frozen=True)
class Tag:
    name: str
    start: int
    end: int
    attributes: tuple[Attribute, ...]


@dataclass(frozen=True)
class TemplateOutput:
    """One ``{{ }}`` or ``{!! !!}`` occurrence with its rendering context."""

    expression: str
    raw: bool
    start: int
    end: int
    line: int
    context: OutputContext
    attribute: str = ""
    tag: str = ""


def strip_comments(content: str) -> str:
    """Blank out Blade comments, keeping offsets and line numbers intact."""
    return _BLADE_COMMENT.sub(lambda m: re.sub(r"[^\n]", " ", m.group(0)), content)


def line_at(content: str, offset: int) -> int:
    return content.count("\n", 0, offset) + 1


class TemplateScanner:
    """Tokenizes a Blade template into outputs, tags and script blocks."""

    def __init__(self, content: str) -> None:
        self.content = strip_comments(content)
        self._output_spans = self._find_output_spans()
        self.script_blocks = [
            (m.start(1), m.end(1)) for m in _SCRIPT_BLOCK.finditer(self.content)
        ]
        self.tags = self._find_tags()

    def outputs(self) -> list[TemplateOutput]:
        """All output tags in document order, each with its context."""
        results: list[TemplateOutput] = []
        for start, end, expression, raw in self._output_spans:
            context, attribute, tag = self._context_of(start, end)
            results.append(
                TemplateOutput(
                    expression=expression.strip(),
                    raw=raw,
                    start=start,
                    end=end,
                    line=line_at(self.content, start),
                    context=context,
                    attribute=attribute,
                    tag=tag,
                )
            )
        return results

    def in_script(self, offset: int) -> bool:
        return any(start <= offset < end for start, end in self.script_blocks)

    def _find_output_spans(self) -> list[tuple[int, int, str, bool]]:
        spans: list[tuple[int, int, str, bool]] = []
        for m in _RAW_OUTPUT.finditer(self.content):
            spans.append((m.start(), m.end(), m.group(1), True))
        for m in _ESCAPED_OUTPUT.finditer(self.content):
            if any(s <= m.start() < e for s, e, _, _ in spans):
                continue
            spans.append((m.start(), m.end(), m.group(1), False))
        spans.sort()
        return spans

    def _output_end_at(self, offset: int) -> int | None:
        for start, end, _, _ in self._output_spans:
            if start == offset:
                return end
        return None

    def _find_tags(self) -> list[Tag]:
        tags: list[Tag] = []
        pos = 0
        while True:
            m = _TAG_OPEN.search(self.content, pos)
            if m is None:
                break
            if self.in_script(m.start()) or self._inside_output(m.start()):
                pos = m.end()
                continue
            tag, pos = self._read_tag(m.group(1).lower(), m.start(), m.end())
            tags.append(tag)
        return tags

    def _inside_output(self, offset: int) -> bool:
        return any(s < offset < e for s, e, _, _ in self._output_spans)

    def _skip_output(self, pos: int) -> int:
        end = self._output_end_at(pos)
        return end if end is not None else pos

    def _read_tag(self, name: str, start: int, pos: int) -> tuple[Tag, int]:
        text = self.content
        length = len(text)
        attributes: list[Attribute] = []
        while pos < length:
            skipped = self._skip_output(pos)
            if skipped != pos:
                pos = skipped
                continue
            char = text[pos]
            if char == ">":
                return Tag(name, start, pos + 1, tuple(attributes)), pos + 1
            if char.isspace() or char == "/":
                pos += 1
                continue

            name_start = pos
            while pos < length and not text[pos].isspace() and text[pos] not in "=>/":
                if self._output_end_at(pos) is not None:
                    break
                pos += 1
            attr_name = text[name_start:pos].lower()
            if not attr_name:
                pos += 1
                continue

            look = pos
            while look < length and text[look].isspace():
                look += 1
            if look >= length or text[look] != "=":
                continue
            pos = look + 1
            while pos < length and text[pos].isspace():
                pos += 1
            if pos >= length:
                break

            quote = text[pos] if text[pos] in "\"'" else ""
            if quote:
                pos += 1
            value_start = pos
            while pos < length:
                skipped = self._skip_output(pos)
                if skipped != pos:
                    pos = skipped
                    continue
                if quote and text[pos] == quote:
                    break
                if not quote and (text[pos].isspace() or text[pos] == ">"):
                    break
                pos += 1
            attributes.append(Attribute(attr_name, value_start, pos))
            if quote and pos < length:
                pos += 1
        return Tag(name, start, length, tuple(attributes)), length

    def _context_of(self, start: int, end: int) -> tuple[OutputContext, str, str]:
        if self.in_script(start):
            return OutputContext.SCRIPT, "", "script"
        for tag in self.tags:
            if not (tag.start <= start and end <= tag.end):
                continue
            for attribute in tag.attributes:
                if attribute.contains(start, end):
                    return _attribute_context(attribute.name), attribute.name, tag.name
            return OutputContext.TAG, "", tag.name
        return OutputContext.TEXT, "", ""


def _attribute_context(name: str) -> OutputContext:
    if name in URL_ATTRIBUTES:
        return OutputContext.URL_ATTRIBUTE
    if name.startswith("on"):
        return OutputContext.EVENT_ATTRIBUTE
    if name.startswith("data-"):
        return OutputContext.DATA_ATTRIBUTE
    return OutputContext.ATTRIBUTE
