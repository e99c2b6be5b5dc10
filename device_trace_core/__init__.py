"""Device Trace Core - trace reconstruction for deferred-formatting embedded logs.

@public

Embedded firmware logs compact binary frames (a template id plus raw argument
bytes) instead of formatted text. device-trace-core turns such a stream back
into hierarchical OpenTelemetry spans:

    bytes -> FrameDecoder -> classify -> SpanTracker -> TraceAdapter -> SpanSink

Core Capabilities:
    - **Symbol Resolution**: Firmware-version symbol manifests validated with Pydantic
    - **Frame Decoding**: COBS-framed records with resync after corrupt frames
    - **Span Reconstruction**: Enter/exit markers rebuilt into a span tree,
      tolerant of lost exits and unmatched markers
    - **Export**: OpenTelemetry ReadableSpans delivered to any SpanExporter,
      JSON lines or a bounded background queue

Quick Start:
    >>> from device_trace_core import SessionPipeline, SymbolResolver, LocalSymbolSource, ExporterSpanSink
    >>> from opentelemetry.sdk.trace.export import ConsoleSpanExporter
    >>>
    >>> table = SymbolResolver(LocalSymbolSource()).load("1.4.2")
    >>> pipeline = SessionPipeline(table, ExporterSpanSink(ConsoleSpanExporter()))
    >>> with open("capture.bin", "rb") as f:
    ...     stats = pipeline.run(f)

Environment Variables:
    - DEVICE_TRACE_SYMBOL_DIR: Directory with <firmware_version>.yml manifests
    - DEVICE_TRACE_LOG_LEVEL: Log level of the device_trace_core loggers
"""

from .decoding import DecodedRecord, FrameDecoder, SessionClock, encode_record
from .exceptions import (
    ArgumentMismatchError,
    CorruptFrameError,
    DecodeError,
    DepthExceededError,
    DeviceTraceError,
    MalformedSymbolSourceError,
    OutOfOrderRecordError,
    ResolveError,
    SinkError,
    SymbolSourceNotFoundError,
    SymbolTableError,
    TrackerError,
    TruncatedFrameError,
    UnknownFirmwareVersionError,
    UnknownTemplateError,
)
from .export import ExporterSpanSink, JsonLinesSpanSink, QueuedSpanSink, SpanSink, TraceAdapter
from .logging import get_pipeline_logger, setup_logging
from .pipeline import SessionPipeline, SessionStats, TraceEngine
from .reconstruction import ClassifiedRecord, ReconstructedSpan, RecordKind, SpanTracker, classify
from .settings import Settings, settings
from .symbols import (
    LocalSymbolSource,
    MemorySymbolSource,
    SymbolResolver,
    SymbolSource,
    SymbolTable,
    TemplateEntry,
    load_symbol_table,
    resolve,
)

__version__ = "0.1.0"

__all__ = [
    "ArgumentMismatchError",
    "ClassifiedRecord",
    "CorruptFrameError",
    "DecodeError",
    "DecodedRecord",
    "DepthExceededError",
    "DeviceTraceError",
    "ExporterSpanSink",
    "FrameDecoder",
    "JsonLinesSpanSink",
    "LocalSymbolSource",
    "MalformedSymbolSourceError",
    "MemorySymbolSource",
    "OutOfOrderRecordError",
    "QueuedSpanSink",
    "ReconstructedSpan",
    "RecordKind",
    "ResolveError",
    "SessionClock",
    "SessionPipeline",
    "SessionStats",
    "Settings",
    "SinkError",
    "SpanSink",
    "SpanTracker",
    "SymbolResolver",
    "SymbolSource",
    "SymbolSourceNotFoundError",
    "SymbolTable",
    "SymbolTableError",
    "TemplateEntry",
    "TraceAdapter",
    "TraceEngine",
    "TrackerError",
    "TruncatedFrameError",
    "UnknownFirmwareVersionError",
    "UnknownTemplateError",
    "classify",
    "encode_record",
    "get_pipeline_logger",
    "load_symbol_table",
    "resolve",
    "settings",
    "setup_logging",
]
