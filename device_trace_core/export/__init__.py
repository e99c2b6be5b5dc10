"""OpenTelemetry export: the trace adapter and span sinks.

@public
"""

from ._queue import QueuedSpanSink
from .adapter import INSTRUMENTATION_SCOPE, TraceAdapter, span_id_for, trace_id_for_session
from .sinks import ExporterSpanSink, JsonLinesSpanSink, SpanSink

__all__ = [
    "INSTRUMENTATION_SCOPE",
    "ExporterSpanSink",
    "JsonLinesSpanSink",
    "QueuedSpanSink",
    "SpanSink",
    "TraceAdapter",
    "span_id_for",
    "trace_id_for_session",
]
