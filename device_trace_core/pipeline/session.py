"""One device session: decoder, classifier, tracker and adapter wired in sequence."""

import asyncio
from collections import Counter
from collections.abc import Callable, Iterator
from uuid import uuid4

from device_trace_core.decoding import ByteSource, DecodedRecord, DecodeResult, FrameDecoder, SessionClock
from device_trace_core.exceptions import DecodeError, TrackerError
from device_trace_core.export import QueuedSpanSink, SpanSink, TraceAdapter
from device_trace_core.logging import get_pipeline_logger
from device_trace_core.reconstruction import ReconstructedSpan, SpanTracker, classify
from device_trace_core.settings import Settings, settings
from device_trace_core.symbols import SymbolTable

from ._stats import EndReason, SessionStats

logger = get_pipeline_logger(__name__)

DEFAULT_READ_SIZE = 4096


class SessionPipeline:
    """Reconstructs the trace of one device session.

    Feed bytes with ``feed()`` (push), ``run()`` (blocking source) or
    ``run_stream()`` (asyncio reader). Whichever way the session ends (end of
    stream, idle timeout, ``cancel()``, task cancellation or an explicit
    ``close()``), the session-end transition runs exactly once: open spans
    are force-closed, exported and the sink is flushed.

    ``on_record`` sees every decoded record before span reconstruction,
    e.g. to echo device logs.

    A pipeline is not thread-safe; give each session its own.
    """

    def __init__(
        self,
        table: SymbolTable,
        sink: SpanSink,
        session_id: str | None = None,
        *,
        max_span_depth: int | None = None,
        max_frame_size: int | None = None,
        idle_timeout: float | None = None,
        service_name: str | None = None,
        clock: SessionClock | None = None,
        config: Settings = settings,
        on_close: Callable[["SessionPipeline"], None] | None = None,
        on_record: Callable[[DecodedRecord], None] | None = None,
    ) -> None:
        self._session_id = session_id or uuid4().hex
        self._table = table
        self._sink = sink
        self._idle_timeout = config.idle_timeout_seconds if idle_timeout is None else idle_timeout
        self._decoder = FrameDecoder(
            table,
            self._session_id,
            clock=clock,
            max_frame_size=max_frame_size or config.max_frame_size,
        )
        self._tracker = SpanTracker(
            self._session_id,
            table.firmware_version,
            max_span_depth=max_span_depth or config.max_span_depth,
        )
        self._adapter = TraceAdapter(
            sink,
            self._session_id,
            table.firmware_version,
            service_name=service_name or config.service_name,
        )
        self._on_close = on_close
        self._on_record = on_record
        self._bytes_received = 0
        self._records_decoded = 0
        self._spans_completed = 0
        self._decode_errors: Counter[str] = Counter()
        self._closed = False
        self._end_reason: EndReason | None = None
        self._cancel_requested = False
        self._running = False
        self._stream_task: asyncio.Task[SessionStats] | None = None

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def firmware_version(self) -> str:
        return self._table.firmware_version

    @property
    def tracker(self) -> SpanTracker:
        return self._tracker

    @property
    def adapter(self) -> TraceAdapter:
        return self._adapter

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def stats(self) -> SessionStats:
        return SessionStats(
            session_id=self._session_id,
            firmware_version=self._table.firmware_version,
            bytes_received=self._bytes_received,
            records_decoded=self._records_decoded,
            decode_errors=dict(self._decode_errors),
            tracker_warnings={kind.value: count for kind, count in self._tracker.warning_counts.items()},
            spans_completed=self._spans_completed,
            spans_exported=self._adapter.exported,
            export_failures=self._adapter.failures,
            export_drops=self._sink.dropped if isinstance(self._sink, QueuedSpanSink) else 0,
            open_spans=self._tracker.depth,
            closed=self._closed,
            end_reason=self._end_reason,
        )

    # --- Feeding ---

    def feed(self, data: bytes) -> list[ReconstructedSpan]:
        """Push a chunk of the byte stream; return the spans it completed.

        Raises:
            TrackerError: If the session is already closed.
        """
        if self._closed:
            raise TrackerError(f"Session {self._session_id} is closed")
        self._bytes_received += len(data)
        return self._process(self._decoder.received(data))

    def _process(self, results: list[DecodeResult]) -> list[ReconstructedSpan]:
        completed: list[ReconstructedSpan] = []
        for result in results:
            completed.extend(self._apply(result))
        return completed

    def _apply(self, result: DecodeResult) -> list[ReconstructedSpan]:
        if isinstance(result, DecodeError):
            self._decode_errors[type(result).__name__] += 1
            logger.warning(f"[{self._session_id}] Dropped frame {result.frame_index}: {result}")
            return []
        self._records_decoded += 1
        if self._on_record is not None:
            self._on_record(result)
        spans = self._tracker.feed(classify(result))
        self._emit(spans)
        return spans

    def _emit(self, spans: list[ReconstructedSpan]) -> None:
        self._spans_completed += len(spans)
        self._adapter.export_all(spans)

    def _read_chunks(self, source: ByteSource, read_size: int) -> Iterator[bytes]:
        """Yield chunks from a blocking source, counting the bytes read."""
        read = getattr(source, "read", None)
        chunks = iter(lambda: read(read_size), b"") if read is not None else iter(source)  # type: ignore[arg-type]
        for chunk in chunks:
            if chunk:
                self._bytes_received += len(chunk)
                yield bytes(chunk)

    # --- Session end ---

    def close(self, flush_timestamp_ns: int | None = None, *, reason: EndReason = "closed") -> list[ReconstructedSpan]:
        """End the session. Later calls return an empty list."""
        if self._closed:
            return []
        self._closed = True
        self._end_reason = reason
        spans = self._process(self._decoder.finish())
        final = self._tracker.finish(flush_timestamp_ns)
        self._emit(final)
        spans.extend(final)
        try:
            if not self._sink.flush():
                logger.warning(f"[{self._session_id}] Span sink did not flush completely")
        except Exception as e:
            logger.warning(f"[{self._session_id}] Span sink flush failed: {e}")
        stats = self.stats
        logger.info(
            f"[{self._session_id}] Session ended ({reason}): {stats.records_decoded} records, "
            f"{stats.spans_completed} spans, {stats.decode_error_total} decode errors, "
            f"{sum(stats.tracker_warnings.values())} tracker warnings"
        )
        if self._on_close is not None:
            self._on_close(self)
        return spans

    def cancel(self) -> None:
        """End the session from any thread.

        A running ``run_stream()`` task is cancelled on its own event loop and
        a running ``run()`` stops before its next record; either way the
        owning driver performs the session-end transition. An idle session is
        closed immediately.
        """
        self._cancel_requested = True
        task = self._stream_task
        if task is not None and not task.done():
            loop = task.get_loop()
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                task.cancel()
            else:
                loop.call_soon_threadsafe(task.cancel)
            return
        if self._running:
            return
        self.close(reason="cancelled")

    # --- Drivers ---

    def run(self, source: ByteSource, read_size: int = DEFAULT_READ_SIZE) -> SessionStats:
        """Decode a blocking byte source to exhaustion, then end the session.

        Stops early, without error, when the session is cancelled or closed
        while running.
        """
        if self._closed:
            raise TrackerError(f"Session {self._session_id} is closed")
        self._running = True
        reason: EndReason = "closed"
        try:
            for result in self._decoder.decode(self._read_chunks(source, read_size)):
                if self._cancel_requested or self._closed:
                    reason = "cancelled"
                    break
                self._apply(result)
            else:
                reason = "eof"
        finally:
            self._running = False
            self.close(reason=reason)
        return self.stats

    async def run_stream(
        self,
        reader: asyncio.StreamReader,
        idle_timeout: float | None = None,
        read_size: int = DEFAULT_READ_SIZE,
    ) -> SessionStats:
        """Consume an asyncio stream until EOF, idle timeout or cancellation.

        ``idle_timeout`` is the longest wait for the next chunk, in seconds;
        None uses the configured default and 0 waits forever.
        """
        if self._closed:
            raise TrackerError(f"Session {self._session_id} is closed")
        timeout = self._idle_timeout if idle_timeout is None else idle_timeout
        self._stream_task = asyncio.current_task()  # type: ignore[assignment]
        reason: EndReason = "cancelled"
        try:
            while not self._cancel_requested and not self._closed:
                try:
                    chunk = await asyncio.wait_for(reader.read(read_size), timeout=timeout or None)
                except TimeoutError:
                    logger.warning(f"[{self._session_id}] No data for {timeout:.1f}s, ending session")
                    reason = "idle_timeout"
                    break
                if not chunk:
                    reason = "eof"
                    break
                if self._cancel_requested or self._closed:
                    break
                self.feed(chunk)
        except asyncio.CancelledError:
            if not self._cancel_requested:
                raise
            task = asyncio.current_task()
            if task is not None:
                task.uncancel()
        finally:
            self._stream_task = None
            self.close(reason=reason)
        return self.stats
