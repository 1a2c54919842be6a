"""Prompt segments and smart spacing.

A think prompt is an ordered list of segments appended in call order:
literal text, interpolated values (``str()`` or ``repr()``) and inline tool
references. Rendering folds the list left to right and asks the spacing
policy, per adjacent pair, whether a single space goes between them.

    >>> render_segments([LiteralSegment("Hello,"), LiteralSegment("Alice"),
    ...                  LiteralSegment(". How are you?")])
    'Hello, Alice. How are you?'
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Iterable, Union

TOOL_TAG_OPEN = "<mcp_tool>"
TOOL_TAG_CLOSE = "</mcp_tool>"

# No space after text ending in an opening bracket (or any whitespace).
_NO_SPACE_AFTER = frozenset("([{")
# No space before text starting with closing punctuation.
_NO_SPACE_BEFORE = frozenset(".,:;!?)]}")


class SpacingMode(enum.Enum):
    SMART = "smart"
    EXPLICIT = "explicit"


class RenderMode(enum.Enum):
    DISPLAY = "display"
    DEBUG = "debug"


@dataclass(frozen=True)
class LiteralSegment:
    text: str

    def render(self) -> str:
        return self.text


@dataclass(frozen=True)
class RenderedSegment:
    """An interpolated value, already converted to text when appended."""

    text: str
    mode: RenderMode = RenderMode.DISPLAY

    @classmethod
    def of(cls, value: Any, mode: RenderMode = RenderMode.DISPLAY) -> "RenderedSegment":
        text = repr(value) if mode is RenderMode.DEBUG else str(value)
        return cls(text, mode)

    def render(self) -> str:
        return self.text


@dataclass(frozen=True)
class ToolReferenceSegment:
    name: str

    def render(self) -> str:
        return format_tool_reference(self.name)


Segment = Union[LiteralSegment, RenderedSegment, ToolReferenceSegment]


def format_tool_reference(name: str) -> str:
    """Inline form of a tool mention, distinct from literal prose."""
    return f"{TOOL_TAG_OPEN}{name}{TOOL_TAG_CLOSE}"


def needs_space(prev_tail: str, next_head: str) -> bool:
    """Decide whether a separator goes between two rendered segments.

    Only consulted in SMART mode, and only with final rendered text, so a
    value that renders with a leading comma still suppresses the space.
    """
    if not prev_tail or prev_tail[-1].isspace() or prev_tail[-1] in _NO_SPACE_AFTER:
        return False
    if not next_head or next_head[0] in _NO_SPACE_BEFORE:
        return False
    return True


def render_segments(
    segments: Iterable[Segment],
    mode: SpacingMode = SpacingMode.SMART,
) -> str:
    """Render segments to one prompt string."""
    parts: list[str] = []
    tail = ""
    for segment in segments:
        text = segment.render()
        if not text:
            continue
        if mode is SpacingMode.SMART and needs_space(tail, text):
            parts.append(" ")
        parts.append(text)
        tail = text
    return "".join(parts)


def referenced_tools(segments: Iterable[Segment]) -> list[str]:
    """Tool names referenced inline, in first-mention order."""
    seen: dict[str, None] = {}
    for segment in segments:
        if isinstance(segment, ToolReferenceSegment):
            seen.setdefault(segment.name, None)
    return list(seen)
