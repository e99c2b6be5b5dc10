"""Tests for TraceAdapter: ReconstructedSpan to OpenTelemetry ReadableSpan."""

from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from device_trace_core.export import ExporterSpanSink, TraceAdapter, span_id_for, trace_id_for_session
from device_trace_core.reconstruction import CloseReason, ReconstructedSpan, SpanEvent
from device_trace_core.symbols import LogLevel


def _event(sequence_no: int, level: LogLevel = LogLevel.INFO, warning: str | None = None) -> SpanEvent:
    return SpanEvent(
        timestamp_ns=1_000 + sequence_no,
        level=level,
        message=f"message {sequence_no}",
        file="main.c",
        line=sequence_no,
        sequence_no=sequence_no,
        decode_warning=warning,
    )


def _span(**overrides: object) -> ReconstructedSpan:
    fields: dict[str, object] = {
        "span_id": 2,
        "parent_span_id": 1,
        "name": "read_sensor",
        "start_timestamp_ns": 1_000,
        "end_timestamp_ns": 5_000,
        "session_id": "s1",
        "attributes": {"channel": 3, "raw": b"\x01\xab"},
        "file": "sensors.c",
        "line": 88,
        "module": "app::sensors",
    }
    fields.update(overrides)
    return ReconstructedSpan(**fields)  # type: ignore[arg-type]


class FailingSink:
    def __init__(self, *, raise_error: bool) -> None:
        self.raise_error = raise_error

    def deliver(self, span: ReadableSpan) -> bool:
        if self.raise_error:
            raise ConnectionError("collector unreachable")
        return False

    def flush(self) -> bool:
        return True

    def shutdown(self) -> None:
        pass


class TestIds:
    def test_trace_id_is_stable_per_session(self):
        assert trace_id_for_session("s1") == trace_id_for_session("s1")
        assert trace_id_for_session("s1") != trace_id_for_session("s2")
        assert 0 < trace_id_for_session("s1") < 2**128

    def test_span_ids_are_non_zero_64_bit(self):
        ids = {span_id_for("s1", n) for n in range(1, 50)}
        assert len(ids) == 49
        assert all(0 < i < 2**64 for i in ids)


class TestToReadableSpan:
    def test_context_and_parent(self, sink: ExporterSpanSink):
        adapter = TraceAdapter(sink, "s1", "fw-1")
        otel = adapter.to_readable_span(_span())
        assert otel.context is not None and otel.parent is not None
        assert otel.context.trace_id == trace_id_for_session("s1")
        assert otel.context.span_id == span_id_for("s1", 2)
        assert otel.parent.span_id == span_id_for("s1", 1)
        assert otel.parent.trace_id == otel.context.trace_id
        assert (otel.start_time, otel.end_time) == (1_000, 5_000)

    def test_root_span_has_no_parent(self, sink: ExporterSpanSink):
        otel = TraceAdapter(sink, "s1").to_readable_span(_span(parent_span_id=None))
        assert otel.parent is None

    def test_attributes(self, sink: ExporterSpanSink):
        otel = TraceAdapter(sink, "s1").to_readable_span(_span(implicitly_closed=True, close_reason=CloseReason.MISSING_EXIT))
        attrs = dict(otel.attributes or {})
        assert attrs["channel"] == 3
        assert attrs["raw"] == "01ab"
        assert attrs["code.function"] == "read_sensor"
        assert attrs["code.filepath"] == "sensors.c"
        assert attrs["code.lineno"] == 88
        assert attrs["code.namespace"] == "app::sensors"
        assert attrs["device.span.implicit_close"] is True
        assert attrs["device.span.close_reason"] == "missing_exit"
        assert attrs["device.span.session_root"] is False

    def test_resource(self, sink: ExporterSpanSink):
        otel = TraceAdapter(sink, "s1", "fw-1", service_name="thermostat").to_readable_span(_span())
        resource = dict(otel.resource.attributes)
        assert resource["service.name"] == "thermostat"
        assert resource["device.session_id"] == "s1"
        assert resource["device.firmware_version"] == "fw-1"

    def test_events_preserve_order_and_timestamps(self, sink: ExporterSpanSink):
        span = _span(events=(_event(3), _event(4, warning="exit rejected")))
        otel = TraceAdapter(sink, "s1").to_readable_span(span)
        assert [e.name for e in otel.events] == ["log", "log"]
        assert [e.timestamp for e in otel.events] == [1_003, 1_004]
        first, second = (dict(e.attributes or {}) for e in otel.events)
        assert first["log.message"] == "message 3"
        assert first["log.level"] == "info"
        assert first["device.sequence_no"] == 3
        assert "device.decode_warning" not in first
        assert second["device.decode_warning"] == "exit rejected"

    def test_error_event_sets_error_status(self, sink: ExporterSpanSink):
        span = _span(events=(_event(1), _event(2, LogLevel.ERROR)))
        otel = TraceAdapter(sink, "s1").to_readable_span(span)
        assert otel.status.status_code is StatusCode.ERROR
        assert otel.status.description == "message 2"

    def test_status_unset_without_errors(self, sink: ExporterSpanSink):
        otel = TraceAdapter(sink, "s1").to_readable_span(_span(events=(_event(1, LogLevel.WARN),)))
        assert otel.status.status_code is StatusCode.UNSET


class TestExport:
    def test_delivers_to_exporter(self, exporter: InMemorySpanExporter, sink: ExporterSpanSink):
        adapter = TraceAdapter(sink, "s1")
        assert adapter.export(_span())
        (finished,) = exporter.get_finished_spans()
        assert finished.name == "read_sensor"
        assert adapter.exported == 1
        assert adapter.failures == 0

    def test_sink_exception_is_counted_not_raised(self):
        adapter = TraceAdapter(FailingSink(raise_error=True), "s1")
        assert adapter.export(_span()) is False
        assert adapter.failures == 1

    def test_sink_rejection_is_counted(self):
        adapter = TraceAdapter(FailingSink(raise_error=False), "s1")
        assert adapter.export_all([_span(), _span(span_id=3)]) == 0
        assert adapter.failures == 2
        assert adapter.exported == 0
