"""Bounded background delivery for span sinks."""

import asyncio
from collections import deque
from threading import Condition, Event, Thread

from opentelemetry.sdk.trace import ReadableSpan

from device_trace_core.exceptions import SinkError
from device_trace_core.logging import get_pipeline_logger
from device_trace_core.settings import OverflowPolicy, Settings, settings

from .sinks import SpanSink

logger = get_pipeline_logger(__name__)

_SENTINEL = object()


class QueuedSpanSink:
    """Decouples span production from a slow sink with a bounded queue.

    Uses a dedicated thread with its own asyncio event loop. The bound is
    enforced in the caller's thread: ``deliver()`` appends to a lock-guarded
    deque and wakes the loop with ``loop.call_soon_threadsafe()`` (at most
    one wake-up is outstanding). When the queue is full the ``drop_oldest``
    policy discards the oldest queued span and counts it in ``dropped``; the
    ``block`` policy makes ``deliver()`` wait for one free slot.

    Queue size and policy default to ``export_queue_size`` and
    ``export_overflow_policy`` from settings.

    Failures of the inner sink are logged and counted in ``failed``.
    """

    def __init__(
        self,
        inner: SpanSink,
        *,
        max_queue_size: int | None = None,
        overflow_policy: OverflowPolicy | None = None,
        config: Settings = settings,
        start: bool = True,
    ) -> None:
        max_queue_size = config.export_queue_size if max_queue_size is None else max_queue_size
        overflow_policy = overflow_policy or config.export_overflow_policy
        if max_queue_size < 1:
            raise ValueError("max_queue_size must be at least 1")
        if overflow_policy not in {"drop_oldest", "block"}:
            raise ValueError(f"Unknown overflow policy: {overflow_policy!r}")
        self._inner = inner
        self._max_queue_size = max_queue_size
        self._overflow_policy: OverflowPolicy = overflow_policy

        self._pending: deque[ReadableSpan | object] = deque()
        self._cond = Condition()
        self._busy = False
        self._wake_scheduled = False

        self._loop: asyncio.AbstractEventLoop | None = None
        self._wakeup: asyncio.Event | None = None
        self._thread: Thread | None = None
        self._shutdown = False
        self._ready = Event()

        self.delivered = 0
        self.dropped = 0
        self.failed = 0
        if start:
            self.start()

    @property
    def inner(self) -> SpanSink:
        return self._inner

    @property
    def max_queue_size(self) -> int:
        return self._max_queue_size

    @property
    def overflow_policy(self) -> OverflowPolicy:
        return self._overflow_policy

    @property
    def pending(self) -> int:
        """Spans queued and not yet handed to the inner sink."""
        with self._cond:
            return sum(1 for item in self._pending if item is not _SENTINEL)

    def start(self) -> None:
        """Start the background delivery thread."""
        if self._thread is not None:
            return
        self._thread = Thread(target=self._thread_main, name="span-export", daemon=True)
        self._thread.start()
        if not self._ready.wait(timeout=10.0):
            logger.warning("Span export thread did not start within 10 seconds")

    def _thread_main(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._wakeup = asyncio.Event()
        self._ready.set()
        try:
            self._loop.run_until_complete(self._run())
        finally:
            self._loop.close()
            self._loop = None

    async def _run(self) -> None:
        assert self._wakeup is not None, "_run() must be called after _wakeup is initialized"
        while True:
            await self._wakeup.wait()
            self._wakeup.clear()
            if not self._drain():
                return

    def _drain(self) -> bool:
        """Deliver everything queued. Returns False once the sentinel is reached."""
        while True:
            with self._cond:
                if not self._pending:
                    self._wake_scheduled = False
                    return True
                item = self._pending.popleft()
                self._busy = item is not _SENTINEL
                self._cond.notify_all()
            if item is _SENTINEL:
                return False
            try:
                self._deliver_inner(item)  # type: ignore[arg-type]
            finally:
                with self._cond:
                    self._busy = False
                    self._cond.notify_all()

    def _deliver_inner(self, span: ReadableSpan) -> None:
        try:
            ok = self._inner.deliver(span)
        except Exception as e:
            logger.warning(f"Span sink failed to deliver {span.name!r}: {e}")
            self.failed += 1
            return
        if ok:
            self.delivered += 1
        else:
            logger.warning(f"Span sink rejected {span.name!r}")
            self.failed += 1

    def _schedule_wakeup(self) -> None:
        """Wake the export loop. Caller holds ``_cond``."""
        if self._wake_scheduled:
            return
        loop, wakeup = self._loop, self._wakeup
        if loop is None or wakeup is None:
            raise SinkError("export thread is not running")
        try:
            loop.call_soon_threadsafe(wakeup.set)
        except RuntimeError as e:
            raise SinkError(f"export thread stopped: {e}") from e
        self._wake_scheduled = True

    def deliver(self, span: ReadableSpan) -> bool:
        """Enqueue a span. Thread-safe; must not be called from the export thread."""
        with self._cond:
            if self._shutdown:
                raise SinkError("deliver() called after shutdown()")
            if len(self._pending) >= self._max_queue_size:
                if self._overflow_policy == "block":
                    self._cond.wait_for(lambda: self._shutdown or len(self._pending) < self._max_queue_size)
                    if self._shutdown:
                        raise SinkError("sink shut down while waiting for queue space")
                else:
                    dropped = self._pending.popleft()
                    self.dropped += 1
                    name = dropped.name if isinstance(dropped, ReadableSpan) else "?"
                    logger.warning(f"Export queue full ({self._max_queue_size}), dropped span {name!r}")
            self._schedule_wakeup()
            self._pending.append(span)
        return True

    def flush(self, timeout: float = 30.0) -> bool:
        """Block until every queued span has been handed to the inner sink."""
        if self._loop is None:
            return self._inner.flush()
        with self._cond:
            drained = self._cond.wait_for(lambda: not self._pending and not self._busy, timeout=timeout)
        if not drained:
            logger.warning(f"Export queue did not drain within {timeout:.0f}s")
            return False
        return self._inner.flush()

    def shutdown(self, timeout: float = 60.0) -> None:
        """Drain the queue, stop the thread and shut the inner sink down."""
        with self._cond:
            if self._shutdown:
                return
            self._shutdown = True
            self._cond.notify_all()
            if self._loop is not None:
                try:
                    self._schedule_wakeup()
                    self._pending.append(_SENTINEL)
                except SinkError as e:
                    logger.warning(f"Could not stop span export thread cleanly: {e}")
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning(f"Span export thread still running after {timeout:.0f}s")
        self._inner.shutdown()
        logger.debug(f"Export queue stopped: delivered={self.delivered} dropped={self.dropped} failed={self.failed}")
