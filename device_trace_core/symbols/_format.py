"""Format-string templates as emitted by the device instrumentation.

Placeholders follow the device convention: ``{=type}``, ``{=type:hint}`` or a
bare ``{}``. ``{{`` and ``}}`` are literal braces. Templates are parsed once and
cached by format string.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, TypeAlias

_TOKEN_RE = re.compile(r"\{\{|\}\}|\{(?:=(?P<type>[a-z0-9]+))?(?::(?P<hint>[^{}]*))?\}")

SUPPORTED_HINTS: frozenset[str] = frozenset({"", "x", "X", "#x", "#X", "b", "#b", "o", "?"})


@dataclass(frozen=True, slots=True)
class Placeholder:
    """One ``{...}`` slot in a template."""

    type_name: str | None
    hint: str


Segment: TypeAlias = str | Placeholder


@lru_cache(maxsize=4096)
def parse_format(format_string: str) -> tuple[Segment, ...]:
    """Split a template into literal text and placeholders."""
    segments: list[Segment] = []
    literal: list[str] = []
    pos = 0
    for match in _TOKEN_RE.finditer(format_string):
        literal.append(format_string[pos : match.start()])
        token = match.group(0)
        if token == "{{":
            literal.append("{")
        elif token == "}}":
            literal.append("}")
        else:
            if literal:
                segments.append("".join(literal))
                literal = []
            segments.append(Placeholder(type_name=match.group("type"), hint=match.group("hint") or ""))
        pos = match.end()
    literal.append(format_string[pos:])
    text = "".join(literal)
    if text:
        segments.append(text)
    return tuple(seg for seg in segments if seg != "")


def placeholders(format_string: str) -> list[Placeholder]:
    """Return the placeholders of a template in order."""
    return [seg for seg in parse_format(format_string) if isinstance(seg, Placeholder)]


def _render_value(value: Any, hint: str) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if hint == "?":
        return repr(value)
    if isinstance(value, int) and hint:
        return format(value, hint)
    if isinstance(value, bytes):
        if hint in {"x", "X", "#x", "#X"}:
            return "[" + ", ".join(format(b, hint) for b in value) + "]"
        return "[" + ", ".join(str(b) for b in value) + "]"
    return str(value)


def render(format_string: str, arguments: tuple[Any, ...]) -> str:
    """Render a template with positional argument values.

    Raises:
        ValueError: If the argument count differs from the placeholder count.
    """
    parts: list[str] = []
    index = 0
    for seg in parse_format(format_string):
        if isinstance(seg, str):
            parts.append(seg)
            continue
        if index >= len(arguments):
            raise ValueError(f"template needs more than {len(arguments)} arguments")
        parts.append(_render_value(arguments[index], seg.hint))
        index += 1
    if index != len(arguments):
        raise ValueError(f"template takes {index} arguments, got {len(arguments)}")
    return "".join(parts)
