"""Data types shared by the classifier, the span tracker and the trace adapter."""

from collections.abc import Mapping
from typing import TypeAlias
from dataclasses import dataclass, field
from enum import StrEnum

from device_trace_core.decoding import DecodedRecord, TimestampSource
from device_trace_core.symbols import LogLevel

AttributeValue: TypeAlias = int | float | bool | str | bytes


class RecordKind(StrEnum):
    """Classification of a decoded record."""

    LOG = "log"
    SPAN_ENTER = "span_enter"
    SPAN_EXIT = "span_exit"


class CloseReason(StrEnum):
    """Why a span was closed."""

    EXIT = "exit"  # its own exit marker
    MISSING_EXIT = "missing_exit"  # an outer span's exit arrived first
    SESSION_END = "session_end"


class WarningKind(StrEnum):
    """Recoverable span-structure problems seen by the tracker."""

    IMPLICIT_CLOSE = "implicit_close"
    UNMATCHED_EXIT = "unmatched_exit"
    DEPTH_EXCEEDED = "depth_exceeded"
    OPEN_AT_SESSION_END = "open_at_session_end"


@dataclass(frozen=True, slots=True)
class ClassifiedRecord:
    """A decoded record tagged as a log event or a span marker."""

    record: DecodedRecord
    kind: RecordKind = RecordKind.LOG
    span_name: str | None = None
    attributes: Mapping[str, AttributeValue] = field(default_factory=dict)
    decode_warning: str | None = None

    @property
    def sequence_no(self) -> int:
        return self.record.sequence_no

    @property
    def timestamp_ns(self) -> int:
        return self.record.timestamp_ns


@dataclass(frozen=True, slots=True)
class SpanEvent:
    """A log record attached to a span, in arrival order."""

    timestamp_ns: int
    level: LogLevel
    message: str
    file: str
    line: int
    sequence_no: int
    decode_warning: str | None = None


@dataclass
class OpenSpan:
    """A span entered but not yet exited. Owned by exactly one SpanTracker."""

    span_id: int
    name: str
    parent_span_id: int | None
    start_sequence_no: int
    start_timestamp_ns: int
    timestamp_source: TimestampSource = "host"
    attributes: dict[str, AttributeValue] = field(default_factory=dict)
    file: str = ""
    line: int = 0
    module: str = ""
    events: list[SpanEvent] = field(default_factory=list)


@dataclass(frozen=True)
class ReconstructedSpan:
    """A completed span, handed to the trace adapter and never mutated."""

    span_id: int
    parent_span_id: int | None
    name: str
    start_timestamp_ns: int
    end_timestamp_ns: int
    session_id: str = ""
    attributes: Mapping[str, AttributeValue] = field(default_factory=dict)
    events: tuple[SpanEvent, ...] = ()
    implicitly_closed: bool = False
    is_session_root: bool = False
    close_reason: CloseReason = CloseReason.EXIT
    start_sequence_no: int = 0
    end_sequence_no: int = 0
    timestamp_source: TimestampSource = "host"
    file: str = ""
    line: int = 0
    module: str = ""

    @property
    def duration_ns(self) -> int:
        return self.end_timestamp_ns - self.start_timestamp_ns


@dataclass(frozen=True, slots=True)
class TrackerWarning:
    """One recoverable problem, kept for operational visibility."""

    kind: WarningKind
    span_name: str | None
    sequence_no: int
    detail: str = ""
