"""Record classifier: span markers versus plain log events.

Span-marker convention, version 1 (``SPAN_MARKER_CONVENTION``), shared with the
device instrumentation and declared as ``marker_convention`` in every symbol
manifest:

* A template whose format string starts with ``span_enter: `` marks a span
  enter; ``span_exit: `` marks a span exit. The prefix is matched against the
  template, never against rendered argument text.
* The span name is either literal, ``span_enter: read_sensor(channel={=u8})``,
  taken as the text after the prefix up to the first ``(``; or dynamic,
  ``span_enter: {=str}``, taken from the first argument.
* Enter attributes are the ``key={...}`` placeholders after the name, bound
  to their argument values. Placeholders without a key become ``arg<N>``.

Classification is a pure function and never fails: a marker whose name cannot
be extracted is classified as a log event carrying ``decode_warning``.
"""

import re
from typing import Any

from device_trace_core.decoding import DecodedRecord
from device_trace_core.symbols import Placeholder, parse_format

from ._types import AttributeValue, ClassifiedRecord, RecordKind

SPAN_ENTER_PREFIX = "span_enter: "
SPAN_EXIT_PREFIX = "span_exit: "

_NAME_RE = re.compile(r"^[A-Za-z_][\w:.<>\-]*$")
_KEY_RE = re.compile(r"([A-Za-z_]\w*)\s*=\s*$")


class _MalformedMarker(ValueError):
    pass


def marker_kind(format_string: str) -> RecordKind:
    """Classify a template by its format string alone."""
    if format_string.startswith(SPAN_ENTER_PREFIX):
        return RecordKind.SPAN_ENTER
    if format_string.startswith(SPAN_EXIT_PREFIX):
        return RecordKind.SPAN_EXIT
    return RecordKind.LOG


def _parse_marker(record: DecodedRecord, prefix: str) -> tuple[str, dict[str, AttributeValue]]:
    """Extract (name, attributes) from a marker record."""
    segments = list(parse_format(record.format_string))
    head = segments[0]
    assert isinstance(head, str)
    segments[0] = head[len(prefix) :]
    if segments[0] == "":
        segments.pop(0)

    arguments: list[Any] = list(record.arguments)
    if segments and isinstance(segments[0], Placeholder):
        if not arguments or not isinstance(arguments[0], str):
            raise _MalformedMarker("dynamic span name argument is not a string")
        name = arguments.pop(0).strip()
        segments.pop(0)
    else:
        text = segments.pop(0) if segments else ""
        assert isinstance(text, str)
        name, paren, rest = text.partition("(")
        name = name.strip()
        if paren and rest:
            segments.insert(0, rest)
    if not _NAME_RE.match(name):
        raise _MalformedMarker(f"invalid span name {name!r}")

    attributes: dict[str, AttributeValue] = {}
    pending_key: str | None = None
    for segment in segments:
        if isinstance(segment, str):
            match = _KEY_RE.search(segment)
            pending_key = match.group(1) if match else None
            continue
        value = arguments.pop(0)
        key = pending_key or f"arg{len(record.arguments) - len(arguments) - 1}"
        attributes[key] = value
        pending_key = None
    return name, attributes


def classify(record: DecodedRecord) -> ClassifiedRecord:
    """Classify a decoded record as a log event, span enter or span exit."""
    kind = marker_kind(record.format_string)
    if kind is RecordKind.LOG:
        return ClassifiedRecord(record=record)

    prefix = SPAN_ENTER_PREFIX if kind is RecordKind.SPAN_ENTER else SPAN_EXIT_PREFIX
    try:
        name, attributes = _parse_marker(record, prefix)
    except (_MalformedMarker, IndexError) as e:
        return ClassifiedRecord(record=record, decode_warning=f"malformed {kind.value} marker: {e}")

    if kind is RecordKind.SPAN_EXIT:
        return ClassifiedRecord(record=record, kind=kind, span_name=name)
    return ClassifiedRecord(record=record, kind=kind, span_name=name, attributes=attributes)
