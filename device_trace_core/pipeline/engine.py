"""Trace engine: opens sessions against shared symbol tables and tracks the live ones."""

import asyncio
from threading import Lock

from device_trace_core.exceptions import SymbolTableError
from device_trace_core.export import SpanSink
from device_trace_core.logging import get_pipeline_logger
from device_trace_core.settings import Settings, settings
from device_trace_core.symbols import SymbolResolver

from ._stats import SessionStats
from .session import SessionPipeline

logger = get_pipeline_logger(__name__)


class TraceEngine:
    """Entry point for reconstructing many concurrent device sessions.

    Symbol tables come from the resolver's cache, so sessions on the same
    firmware share one immutable table. All sessions deliver to one sink,
    which must therefore be thread-safe when sessions run on several
    threads (``QueuedSpanSink`` and the OpenTelemetry exporters are).
    """

    def __init__(self, resolver: SymbolResolver, sink: SpanSink, config: Settings = settings) -> None:
        self._resolver = resolver
        self._sink = sink
        self._config = config
        self._sessions: dict[str, SessionPipeline] = {}
        self._lock = Lock()
        self._shutdown = False

    @property
    def sink(self) -> SpanSink:
        return self._sink

    @property
    def active_sessions(self) -> dict[str, SessionPipeline]:
        with self._lock:
            return dict(self._sessions)

    def open_session(self, firmware_version: str, session_id: str | None = None) -> SessionPipeline:
        """Create a pipeline for a new session.

        Raises:
            SymbolTableError: If no usable symbol table exists for the
                firmware version; the session is refused.
            ValueError: If the session id is already active.
        """
        if self._shutdown:
            raise RuntimeError("TraceEngine has been shut down")
        try:
            table = self._resolver.load(firmware_version)
        except SymbolTableError as e:
            logger.error(f"Refusing session for firmware {firmware_version!r}: {e}")
            raise
        pipeline = SessionPipeline(table, self._sink, session_id, config=self._config, on_close=self._forget)
        with self._lock:
            if pipeline.session_id in self._sessions:
                raise ValueError(f"Session {pipeline.session_id} is already active")
            self._sessions[pipeline.session_id] = pipeline
        logger.info(f"Opened session {pipeline.session_id} (firmware {firmware_version})")
        return pipeline

    def _forget(self, pipeline: SessionPipeline) -> None:
        with self._lock:
            self._sessions.pop(pipeline.session_id, None)

    async def serve_stream(
        self,
        reader: asyncio.StreamReader,
        firmware_version: str,
        session_id: str | None = None,
        idle_timeout: float | None = None,
    ) -> SessionStats:
        """Reconstruct one session from an asyncio stream until it ends."""
        pipeline = self.open_session(firmware_version, session_id)
        return await pipeline.run_stream(reader, idle_timeout)

    def close_all(self) -> list[SessionStats]:
        """Cancel every active session; return a stats snapshot of each.

        Idle sessions end immediately. Sessions inside ``run()`` or
        ``run_stream()`` are cancelled and end on their own driver, so a
        snapshot may still show them open.
        """
        with self._lock:
            pipelines = list(self._sessions.values())
        results: list[SessionStats] = []
        for pipeline in pipelines:
            pipeline.cancel()
            results.append(pipeline.stats)
        return results

    def shutdown(self) -> None:
        """Cancel all sessions and shut the sink down."""
        if self._shutdown:
            return
        self._shutdown = True
        self.close_all()
        if still_running := self.active_sessions:
            logger.warning(f"Shutting down the span sink while {len(still_running)} session(s) are still ending")
        self._sink.shutdown()
