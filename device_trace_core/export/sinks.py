"""Span sinks: where converted OpenTelemetry spans are delivered."""

import json
import threading
from pathlib import Path
from typing import IO, Protocol, runtime_checkable

from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

from device_trace_core.exceptions import SinkError
from device_trace_core.logging import get_pipeline_logger

logger = get_pipeline_logger(__name__)


@runtime_checkable
class SpanSink(Protocol):
    """Destination for completed spans.

    ``deliver`` returns False when the span could not be delivered. Sinks
    may also raise; the trace adapter treats both the same way.
    """

    def deliver(self, span: ReadableSpan) -> bool: ...

    def flush(self) -> bool: ...

    def shutdown(self) -> None: ...


class ExporterSpanSink:
    """Adapts any OpenTelemetry ``SpanExporter`` (console, in-memory, OTLP)."""

    def __init__(self, exporter: SpanExporter) -> None:
        self._exporter = exporter
        self._closed = False

    @property
    def exporter(self) -> SpanExporter:
        return self._exporter

    def deliver(self, span: ReadableSpan) -> bool:
        if self._closed:
            raise SinkError("deliver() called after shutdown()")
        return self._exporter.export([span]) is SpanExportResult.SUCCESS

    def flush(self) -> bool:
        if self._closed:
            return True
        return self._exporter.force_flush()

    def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._exporter.shutdown()


def _span_to_dict(span: ReadableSpan) -> dict[str, object]:
    return json.loads(span.to_json(indent=None))


class JsonLinesSpanSink:
    """Writes one compact JSON object per span to a text stream or file.

    When given a path the file is opened in append mode and owned by the
    sink; a stream passed in is flushed but never closed.
    """

    def __init__(self, target: Path | str | IO[str]) -> None:
        if isinstance(target, (str, Path)):
            path = Path(target)
            path.parent.mkdir(parents=True, exist_ok=True)
            self._stream: IO[str] = path.open("a", encoding="utf-8")
            self._owns_stream = True
        else:
            self._stream = target
            self._owns_stream = False
        self._lock = threading.Lock()
        self._closed = False
        self.written = 0

    def deliver(self, span: ReadableSpan) -> bool:
        line = json.dumps(_span_to_dict(span), separators=(",", ":"), default=str)
        with self._lock:
            if self._closed:
                raise SinkError("deliver() called after shutdown()")
            self._stream.write(line + "\n")
            self.written += 1
        return True

    def flush(self) -> bool:
        with self._lock:
            if not self._closed:
                self._stream.flush()
        return True

    def shutdown(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._stream.flush()
            if self._owns_stream:
                self._stream.close()
        logger.debug(f"JSON lines sink closed after {self.written} spans")
