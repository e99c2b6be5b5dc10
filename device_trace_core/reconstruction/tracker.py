"""Span tracker: the per-session state machine that rebuilds the span hierarchy.

The session's open spans live on an explicit stack (innermost last). Exits are
matched by name with a linear scan from the top, so a lost exit frame costs
only the precision of the spans it left open, never the structure of the rest
of the trace:

* exit matches the top span: pop it and emit it;
* exit matches a span below the top: every span above it is force-closed at
  the exit's timestamp (``implicitly_closed``), then the match is closed;
* exit matches nothing: it is discarded with an ``unmatched_exit`` warning.

Log records are buffered on the innermost open span, or on a lazily created
session root span when no span is open. ``finish()`` closes whatever remains.

Records must arrive in decode order; the tracker never reorders.
"""

from collections import Counter

from device_trace_core.exceptions import DepthExceededError, OutOfOrderRecordError, TrackerError
from device_trace_core.logging import get_pipeline_logger

from ._types import (
    ClassifiedRecord,
    CloseReason,
    OpenSpan,
    ReconstructedSpan,
    RecordKind,
    SpanEvent,
    TrackerWarning,
    WarningKind,
)

logger = get_pipeline_logger(__name__)

DEFAULT_MAX_SPAN_DEPTH = 64
SESSION_ROOT_SPAN_NAME = "device_session"


class Session:
    """Mutable state of one device session. Owned by exactly one SpanTracker."""

    def __init__(self, session_id: str, firmware_version: str = "") -> None:
        self.session_id = session_id
        self.firmware_version = firmware_version
        self.stack: list[OpenSpan] = []
        self.root: OpenSpan | None = None
        self.last_sequence_no = 0
        self.last_timestamp_ns: int | None = None
        self.finished = False
        self._next_span_id = 1

    def allocate_span_id(self) -> int:
        span_id = self._next_span_id
        self._next_span_id += 1
        return span_id

    @property
    def top(self) -> OpenSpan | None:
        return self.stack[-1] if self.stack else None


class SpanTracker:
    """Consumes classified records of one session and emits completed spans."""

    def __init__(
        self,
        session_id: str,
        firmware_version: str = "",
        *,
        max_span_depth: int = DEFAULT_MAX_SPAN_DEPTH,
        root_span_name: str = SESSION_ROOT_SPAN_NAME,
    ) -> None:
        if max_span_depth < 1:
            raise ValueError("max_span_depth must be at least 1")
        self._session = Session(session_id, firmware_version)
        self._max_span_depth = max_span_depth
        self._root_span_name = root_span_name
        self._rejected: Counter[str] = Counter()
        self.warnings: list[TrackerWarning] = []
        self.warning_counts: Counter[WarningKind] = Counter()

    @property
    def session(self) -> Session:
        return self._session

    @property
    def session_id(self) -> str:
        return self._session.session_id

    @property
    def depth(self) -> int:
        """Number of open spans, excluding the session root."""
        return len(self._session.stack)

    @property
    def open_span_names(self) -> list[str]:
        """Names of open spans, outermost first."""
        return [span.name for span in self._session.stack]

    @property
    def max_span_depth(self) -> int:
        return self._max_span_depth

    @property
    def finished(self) -> bool:
        return self._session.finished

    def feed(self, classified: ClassifiedRecord) -> list[ReconstructedSpan]:
        """Apply one record; return the spans it completed, innermost first.

        Raises:
            OutOfOrderRecordError: If the sequence number does not increase.
            TrackerError: If the session has already finished.
        """
        session = self._session
        if session.finished:
            raise TrackerError(f"Session {session.session_id} already finished")
        if classified.sequence_no <= session.last_sequence_no:
            raise OutOfOrderRecordError(f"Record {classified.sequence_no} arrived after {session.last_sequence_no} in session {session.session_id}")
        session.last_sequence_no = classified.sequence_no
        timestamp = classified.timestamp_ns
        if session.last_timestamp_ns is None or timestamp > session.last_timestamp_ns:
            session.last_timestamp_ns = timestamp

        if classified.kind is RecordKind.SPAN_ENTER:
            self._on_enter(classified)
            return []
        if classified.kind is RecordKind.SPAN_EXIT:
            return self._on_exit(classified)
        self._buffer_event(classified)
        return []

    def finish(self, flush_timestamp_ns: int | None = None) -> list[ReconstructedSpan]:
        """Session end: force-close open spans top to bottom, then the root span.

        ``flush_timestamp_ns`` defaults to the last observed record timestamp.
        Calling finish() again returns an empty list.
        """
        session = self._session
        if session.finished:
            return []
        session.finished = True
        end = flush_timestamp_ns if flush_timestamp_ns is not None else session.last_timestamp_ns
        closed: list[ReconstructedSpan] = []
        while session.stack:
            span = session.stack.pop()
            self._warn(WarningKind.OPEN_AT_SESSION_END, span.name, session.last_sequence_no, "closed at session end")
            closed.append(self._close(span, end, CloseReason.SESSION_END, implicit=True))
        if session.root is not None:
            closed.append(self._close(session.root, end, CloseReason.SESSION_END, implicit=False, is_root=True))
            session.root = None
        self._rejected.clear()
        return closed

    # --- Transitions ---

    def _on_enter(self, classified: ClassifiedRecord) -> None:
        session = self._session
        record = classified.record
        name = classified.span_name or ""
        try:
            self._push(
                OpenSpan(
                    span_id=0,
                    name=name,
                    parent_span_id=session.top.span_id if session.top else None,
                    start_sequence_no=record.sequence_no,
                    start_timestamp_ns=record.timestamp_ns,
                    timestamp_source=record.timestamp_source,
                    attributes=dict(classified.attributes),
                    file=record.file,
                    line=record.line,
                    module=record.module,
                )
            )
        except DepthExceededError as e:
            self._rejected[name] += 1
            self._warn(WarningKind.DEPTH_EXCEEDED, name, record.sequence_no, str(e))
            self._buffer_event(classified, decode_warning=str(e))

    def _push(self, span: OpenSpan) -> None:
        session = self._session
        if len(session.stack) >= self._max_span_depth:
            raise DepthExceededError(f"span {span.name!r} would exceed max depth {self._max_span_depth}")
        span.span_id = session.allocate_span_id()
        session.stack.append(span)

    def _on_exit(self, classified: ClassifiedRecord) -> list[ReconstructedSpan]:
        session = self._session
        name = classified.span_name or ""
        sequence_no = classified.sequence_no
        if self._rejected[name] > 0:
            self._rejected[name] -= 1
            self._buffer_event(classified, decode_warning=f"exit of span {name!r} rejected at depth ceiling")
            return []

        match_index = self._find_open(name)
        if match_index is None:
            self._warn(WarningKind.UNMATCHED_EXIT, name, sequence_no, "no open span with this name")
            return []

        end = classified.timestamp_ns
        closed: list[ReconstructedSpan] = []
        while len(session.stack) - 1 > match_index:
            span = session.stack.pop()
            self._warn(WarningKind.IMPLICIT_CLOSE, span.name, sequence_no, f"closed by exit of enclosing span {name!r}")
            closed.append(self._close(span, end, CloseReason.MISSING_EXIT, implicit=True, end_sequence_no=sequence_no))
        closed.append(self._close(session.stack.pop(), end, CloseReason.EXIT, implicit=False, end_sequence_no=sequence_no))
        self._rejected.clear()
        return closed

    def _find_open(self, name: str) -> int | None:
        """Index of the innermost open span called ``name``."""
        stack = self._session.stack
        for index in range(len(stack) - 1, -1, -1):
            if stack[index].name == name:
                return index
        return None

    def _buffer_event(self, classified: ClassifiedRecord, decode_warning: str | None = None) -> None:
        session = self._session
        record = classified.record
        target = session.top
        if target is None:
            if session.root is None:
                session.root = OpenSpan(
                    span_id=session.allocate_span_id(),
                    name=self._root_span_name,
                    parent_span_id=None,
                    start_sequence_no=record.sequence_no,
                    start_timestamp_ns=record.timestamp_ns,
                    timestamp_source=record.timestamp_source,
                )
            target = session.root
        target.events.append(
            SpanEvent(
                timestamp_ns=record.timestamp_ns,
                level=record.level,
                message=record.decoded_message,
                file=record.file,
                line=record.line,
                sequence_no=record.sequence_no,
                decode_warning=decode_warning or classified.decode_warning,
            )
        )

    def _close(
        self,
        span: OpenSpan,
        end_timestamp_ns: int | None,
        reason: CloseReason,
        *,
        implicit: bool,
        is_root: bool = False,
        end_sequence_no: int | None = None,
    ) -> ReconstructedSpan:
        start = span.start_timestamp_ns
        end = start if end_timestamp_ns is None else max(end_timestamp_ns, start)
        if span.events:
            end = max(end, span.events[-1].timestamp_ns)
        return ReconstructedSpan(
            span_id=span.span_id,
            parent_span_id=span.parent_span_id,
            name=span.name,
            start_timestamp_ns=start,
            end_timestamp_ns=end,
            session_id=self._session.session_id,
            attributes=dict(span.attributes),
            events=tuple(span.events),
            implicitly_closed=implicit,
            is_session_root=is_root,
            close_reason=reason,
            start_sequence_no=span.start_sequence_no,
            end_sequence_no=end_sequence_no if end_sequence_no is not None else self._session.last_sequence_no,
            timestamp_source=span.timestamp_source,
            file=span.file,
            line=span.line,
            module=span.module,
        )

    def _warn(self, kind: WarningKind, span_name: str | None, sequence_no: int, detail: str) -> None:
        self.warnings.append(TrackerWarning(kind=kind, span_name=span_name, sequence_no=sequence_no, detail=detail))
        self.warning_counts[kind] += 1
        logger.warning(f"[{self._session.session_id}] {kind.value} span={span_name!r} seq={sequence_no}: {detail}")
