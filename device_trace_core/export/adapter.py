"""Trace adapter: converts reconstructed spans to OpenTelemetry spans and delivers them."""

import hashlib
from collections.abc import Iterable

from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import Event, ReadableSpan
from opentelemetry.sdk.util.instrumentation import InstrumentationScope
from opentelemetry.trace import SpanContext, SpanKind, Status, StatusCode, TraceFlags
from opentelemetry.util.types import AttributeValue as OtelAttributeValue

from device_trace_core.logging import get_pipeline_logger
from device_trace_core.reconstruction import AttributeValue, ReconstructedSpan, SpanEvent
from device_trace_core.symbols import LogLevel

from .sinks import SpanSink

logger = get_pipeline_logger(__name__)

INSTRUMENTATION_SCOPE = InstrumentationScope("device_trace_core")

ATTR_SESSION_ID = "device.session_id"
ATTR_FIRMWARE_VERSION = "device.firmware_version"
ATTR_IMPLICIT_CLOSE = "device.span.implicit_close"
ATTR_CLOSE_REASON = "device.span.close_reason"
ATTR_SESSION_ROOT = "device.span.session_root"
ATTR_TIMESTAMP_SOURCE = "device.timestamp_source"
ATTR_SEQUENCE_NO = "device.sequence_no"
ATTR_DECODE_WARNING = "device.decode_warning"
LOG_EVENT_NAME = "log"


def trace_id_for_session(session_id: str) -> int:
    """Stable 128-bit trace id for a session."""
    trace_id = int.from_bytes(hashlib.sha256(session_id.encode("utf-8")).digest()[:16], "big")
    return trace_id or 1


def span_id_for(session_id: str, local_span_id: int) -> int:
    """Stable, non-zero 64-bit span id for a tracker-local span id."""
    digest = hashlib.sha256(f"{session_id}:{local_span_id}".encode()).digest()
    return int.from_bytes(digest[:8], "big") or 1


def _attribute_value(value: AttributeValue) -> OtelAttributeValue:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    return value


def _event_to_otel(event: SpanEvent) -> Event:
    attributes: dict[str, OtelAttributeValue] = {
        "log.level": event.level.value,
        "log.message": event.message,
        "code.filepath": event.file,
        "code.lineno": event.line,
        ATTR_SEQUENCE_NO: event.sequence_no,
    }
    if event.decode_warning:
        attributes[ATTR_DECODE_WARNING] = event.decode_warning
    return Event(LOG_EVENT_NAME, attributes=attributes, timestamp=event.timestamp_ns)


class TraceAdapter:
    """Per-session conversion of ReconstructedSpan to ReadableSpan.

    Delivery problems never propagate: a sink that raises or returns False is
    logged and counted in ``failures``, and ``export`` returns False.
    """

    def __init__(
        self,
        sink: SpanSink,
        session_id: str,
        firmware_version: str = "",
        *,
        service_name: str = "embedded-device",
    ) -> None:
        self._sink = sink
        self._session_id = session_id
        self._firmware_version = firmware_version
        self._trace_id = trace_id_for_session(session_id)
        self._resource = Resource.create({
            "service.name": service_name,
            ATTR_SESSION_ID: session_id,
            ATTR_FIRMWARE_VERSION: firmware_version,
        })
        self.exported = 0
        self.failures = 0

    @property
    def sink(self) -> SpanSink:
        return self._sink

    @property
    def firmware_version(self) -> str:
        return self._firmware_version

    @property
    def trace_id(self) -> int:
        return self._trace_id

    @property
    def resource(self) -> Resource:
        return self._resource

    def _context(self, local_span_id: int) -> SpanContext:
        return SpanContext(
            trace_id=self._trace_id,
            span_id=span_id_for(self._session_id, local_span_id),
            is_remote=False,
            trace_flags=TraceFlags(TraceFlags.SAMPLED),
        )

    def _attributes(self, span: ReconstructedSpan) -> dict[str, OtelAttributeValue]:
        attributes: dict[str, OtelAttributeValue] = {key: _attribute_value(value) for key, value in span.attributes.items()}
        attributes["code.function"] = span.name
        if span.file:
            attributes["code.filepath"] = span.file
            attributes["code.lineno"] = span.line
        if span.module:
            attributes["code.namespace"] = span.module
        attributes[ATTR_IMPLICIT_CLOSE] = span.implicitly_closed
        attributes[ATTR_CLOSE_REASON] = span.close_reason.value
        attributes[ATTR_SESSION_ROOT] = span.is_session_root
        attributes[ATTR_TIMESTAMP_SOURCE] = span.timestamp_source
        return attributes

    @staticmethod
    def _status(span: ReconstructedSpan) -> Status:
        errors = [event for event in span.events if event.level is LogLevel.ERROR]
        if errors:
            return Status(StatusCode.ERROR, errors[-1].message)
        return Status(StatusCode.UNSET)

    def to_readable_span(self, span: ReconstructedSpan) -> ReadableSpan:
        """Build the OpenTelemetry representation of a completed span."""
        parent = self._context(span.parent_span_id) if span.parent_span_id is not None else None
        return ReadableSpan(
            name=span.name,
            context=self._context(span.span_id),
            parent=parent,
            resource=self._resource,
            attributes=self._attributes(span),
            events=tuple(_event_to_otel(event) for event in span.events),
            kind=SpanKind.INTERNAL,
            status=self._status(span),
            start_time=span.start_timestamp_ns,
            end_time=span.end_timestamp_ns,
            instrumentation_scope=INSTRUMENTATION_SCOPE,
        )

    def export(self, span: ReconstructedSpan) -> bool:
        """Convert and deliver one span. Returns False on delivery failure."""
        otel_span = self.to_readable_span(span)
        try:
            ok = self._sink.deliver(otel_span)
        except Exception as e:
            self.failures += 1
            logger.warning(f"[{self._session_id}] Failed to export span {span.name!r}: {e}")
            return False
        if not ok:
            self.failures += 1
            logger.warning(f"[{self._session_id}] Sink rejected span {span.name!r}")
            return False
        self.exported += 1
        return True

    def export_all(self, spans: Iterable[ReconstructedSpan]) -> int:
        """Export spans in order; return how many were delivered."""
        return sum(1 for span in spans if self.export(span))
