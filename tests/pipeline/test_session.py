"""End-to-end tests for SessionPipeline: bytes in, OpenTelemetry spans out."""

import asyncio
import io
from collections.abc import Callable
from typing import TypeAlias

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from device_trace_core.decoding import DecodedRecord, SessionClock, encode_frame, encode_payload
from device_trace_core.exceptions import TrackerError
from device_trace_core.export import ExporterSpanSink, QueuedSpanSink
from device_trace_core.pipeline import SessionPipeline
from device_trace_core.symbols import SymbolTable
from tests.support.helpers import (
    ENTER_A,
    ENTER_B,
    ENTER_DYNAMIC,
    ENTER_SENSOR,
    EXIT_A,
    EXIT_DYNAMIC,
    EXIT_SENSOR,
    FAILURE,
    LOG,
    VALUE,
    spans_by_name,
)

Frame: TypeAlias = Callable[..., bytes]


@pytest.fixture
def pipeline(table: SymbolTable, sink: ExporterSpanSink, clock: SessionClock) -> SessionPipeline:
    return SessionPipeline(table, sink, "session-1", clock=clock, idle_timeout=0)


def _device_trace(frame: Frame) -> bytes:
    """A device that reads a sensor inside an uplink span."""
    return b"".join([
        frame(LOG, ts=0),
        frame(ENTER_DYNAMIC, "uplink", 1, ts=100),
        frame(ENTER_SENSOR, 2, True, ts=200),
        frame(VALUE, 3300, ts=250),
        frame(EXIT_SENSOR, ts=300),
        frame(FAILURE, -5, ts=350),
        frame(EXIT_DYNAMIC, "uplink", ts=400),
    ])


class TestRun:
    def test_round_trip(self, pipeline: SessionPipeline, exporter: InMemorySpanExporter, frame: Frame):
        """Frames encoded against a table decode and reconstruct into the expected tree."""
        stats = pipeline.run(io.BytesIO(_device_trace(frame)))

        spans = spans_by_name(exporter.get_finished_spans())
        assert set(spans) == {"read_sensor", "uplink", "device_session"}
        sensor, uplink, root = spans["read_sensor"], spans["uplink"], spans["device_session"]
        assert sensor.parent is not None and uplink.context is not None
        assert sensor.parent.span_id == uplink.context.span_id
        assert uplink.parent is None
        assert dict(sensor.attributes or {})["channel"] == 2
        assert dict(uplink.attributes or {})["attempt"] == 1
        assert (sensor.end_time or 0) - (sensor.start_time or 0) == 100_000
        assert [dict(e.attributes or {})["log.message"] for e in sensor.events] == ["value 3300"]
        assert uplink.status.status_code.name == "ERROR"
        assert [dict(e.attributes or {})["log.message"] for e in root.events] == ["boot ok"]

        assert stats.closed
        assert stats.end_reason == "eof"
        assert stats.records_decoded == 7
        assert stats.spans_completed == 3
        assert stats.spans_exported == 3
        assert stats.warning_total == 0
        assert stats.bytes_received == len(_device_trace(frame))

    def test_resync_after_bad_frame(self, pipeline: SessionPipeline, exporter: InMemorySpanExporter, frame: Frame):
        data = frame(ENTER_A, ts=0) + frame(VALUE, 1, ts=10) + b"\x07\x01\x02\x00" + frame(VALUE, 2, ts=20) + frame(EXIT_A, ts=30)
        stats = pipeline.run(io.BytesIO(data))
        (span,) = exporter.get_finished_spans()
        assert [dict(e.attributes or {})["log.message"] for e in span.events] == ["value 1", "value 2"]
        assert stats.decode_errors == {"CorruptFrameError": 1}

    def test_unknown_template_is_skipped(self, pipeline: SessionPipeline, exporter: InMemorySpanExporter, frame: Frame):
        data = frame(ENTER_A, ts=0) + encode_frame(encode_payload(0x7777, device_timestamp=5)) + frame(EXIT_A, ts=10)
        stats = pipeline.run(io.BytesIO(data))
        (span,) = exporter.get_finished_spans()
        assert span.name == "A"
        assert span.events == ()
        assert stats.decode_errors == {"UnknownTemplateError": 1}

    def test_session_end_flushes_open_spans(self, pipeline: SessionPipeline, exporter: InMemorySpanExporter, frame: Frame):
        stats = pipeline.run(io.BytesIO(frame(ENTER_A, ts=0) + frame(ENTER_B, ts=10) + frame(LOG, ts=20)))
        names = [s.name for s in exporter.get_finished_spans()]
        assert names == ["B", "A"]
        assert all(dict(s.attributes or {})["device.span.implicit_close"] for s in exporter.get_finished_spans())
        assert stats.tracker_warnings == {"open_at_session_end": 2}
        assert stats.open_spans == 0

    def test_implicit_close_through_pipeline(self, pipeline: SessionPipeline, exporter: InMemorySpanExporter, frame: Frame):
        stats = pipeline.run(io.BytesIO(frame(ENTER_A, ts=0) + frame(ENTER_B, ts=10) + frame(EXIT_A, ts=50)))
        b, a = exporter.get_finished_spans()
        assert dict(b.attributes or {})["device.span.close_reason"] == "missing_exit"
        assert b.end_time == a.end_time
        assert stats.tracker_warnings == {"implicit_close": 1}

    def test_run_twice_is_rejected(self, pipeline: SessionPipeline, frame: Frame):
        pipeline.run(io.BytesIO(frame(LOG)))
        with pytest.raises(TrackerError):
            pipeline.run(io.BytesIO(frame(LOG)))

    def test_cancel_during_run_stops_cleanly(self, pipeline: SessionPipeline, exporter: InMemorySpanExporter, frame: Frame):
        def chunks():
            yield frame(ENTER_A, ts=0)
            pipeline.cancel()
            yield frame(EXIT_A, ts=10) + frame(LOG, ts=20)

        stats = pipeline.run(chunks())
        assert stats.end_reason == "cancelled"
        assert stats.records_decoded == 1
        (span,) = exporter.get_finished_spans()
        assert dict(span.attributes or {})["device.span.close_reason"] == "session_end"

    def test_close_during_run_stops_cleanly(self, pipeline: SessionPipeline, frame: Frame):
        def chunks():
            yield frame(LOG, ts=0)
            pipeline.close()
            yield frame(LOG, ts=10)

        stats = pipeline.run(chunks())
        assert stats.closed
        assert stats.end_reason == "closed"
        assert stats.records_decoded == 1

    def test_on_record_sees_decoded_records(self, table: SymbolTable, sink: ExporterSpanSink, frame: Frame):
        seen: list[DecodedRecord] = []
        pipeline = SessionPipeline(table, sink, "echo", on_record=seen.append)
        pipeline.run(io.BytesIO(frame(LOG, ts=0) + frame(VALUE, 42, ts=5) + b"\x07\x01\x02\x00"))
        assert [r.decoded_message for r in seen] == ["boot ok", "value 42"]
        assert [r.level.value for r in seen] == ["info", "debug"]


class TestFeedAndClose:
    def test_feed_returns_completed_spans(self, pipeline: SessionPipeline, frame: Frame):
        data = frame(ENTER_A, ts=0) + frame(EXIT_A, ts=5)
        assert pipeline.feed(data[:3]) == []
        (span,) = pipeline.feed(data[3:])
        assert span.name == "A"

    def test_close_is_idempotent(self, pipeline: SessionPipeline, exporter: InMemorySpanExporter, frame: Frame):
        pipeline.feed(frame(ENTER_A, ts=0))
        assert len(pipeline.close()) == 1
        assert pipeline.close() == []
        assert pipeline.closed
        assert len(exporter.get_finished_spans()) == 1

    def test_close_reports_truncated_tail(self, pipeline: SessionPipeline, frame: Frame):
        pipeline.feed(frame(LOG)[:-1])
        pipeline.close()
        assert pipeline.stats.decode_errors == {"TruncatedFrameError": 1}

    def test_feed_after_close(self, pipeline: SessionPipeline, frame: Frame):
        pipeline.close()
        with pytest.raises(TrackerError):
            pipeline.feed(frame(LOG))

    def test_on_close_called_once(self, table: SymbolTable, sink: ExporterSpanSink):
        closed: list[str] = []
        pipeline = SessionPipeline(table, sink, "s", on_close=lambda p: closed.append(p.session_id))
        pipeline.close()
        pipeline.cancel()
        assert closed == ["s"]

    def test_generated_session_id(self, table: SymbolTable, sink: ExporterSpanSink):
        assert SessionPipeline(table, sink).session_id != SessionPipeline(table, sink).session_id

    def test_queued_sink_drops_reported(self, table: SymbolTable, exporter: InMemorySpanExporter, frame: Frame):
        queued = QueuedSpanSink(ExporterSpanSink(exporter))
        pipeline = SessionPipeline(table, queued, "q")
        pipeline.run(io.BytesIO(frame(ENTER_A, ts=0) + frame(EXIT_A, ts=1)))
        queued.shutdown()
        assert pipeline.stats.export_drops == 0
        assert [s.name for s in exporter.get_finished_spans()] == ["A"]


class TestRunStream:
    @pytest.mark.asyncio
    async def test_eof_ends_session(self, pipeline: SessionPipeline, exporter: InMemorySpanExporter, frame: Frame):
        reader = asyncio.StreamReader()
        data = frame(ENTER_A, ts=0) + frame(EXIT_A, ts=10)
        reader.feed_data(data[:4])
        reader.feed_data(data[4:])
        reader.feed_eof()
        stats = await pipeline.run_stream(reader)
        assert stats.end_reason == "eof"
        assert [s.name for s in exporter.get_finished_spans()] == ["A"]

    @pytest.mark.asyncio
    async def test_idle_timeout_ends_session(self, pipeline: SessionPipeline, exporter: InMemorySpanExporter, frame: Frame):
        reader = asyncio.StreamReader()
        reader.feed_data(frame(ENTER_A, ts=0))
        stats = await pipeline.run_stream(reader, idle_timeout=0.05)
        assert stats.end_reason == "idle_timeout"
        (span,) = exporter.get_finished_spans()
        assert dict(span.attributes or {})["device.span.close_reason"] == "session_end"

    @pytest.mark.asyncio
    async def test_cancel_ends_session_gracefully(self, pipeline: SessionPipeline, exporter: InMemorySpanExporter, frame: Frame):
        reader = asyncio.StreamReader()
        reader.feed_data(frame(ENTER_A, ts=0))
        task = asyncio.create_task(pipeline.run_stream(reader))
        await asyncio.sleep(0.01)
        pipeline.cancel()
        stats = await task
        assert stats.end_reason == "cancelled"
        assert pipeline.closed
        assert len(exporter.get_finished_spans()) == 1

    @pytest.mark.asyncio
    async def test_task_cancellation_still_flushes(self, pipeline: SessionPipeline, exporter: InMemorySpanExporter, frame: Frame):
        reader = asyncio.StreamReader()
        reader.feed_data(frame(ENTER_A, ts=0))
        task = asyncio.create_task(pipeline.run_stream(reader))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert pipeline.closed
        assert len(exporter.get_finished_spans()) == 1
