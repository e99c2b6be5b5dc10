"""Common test fixtures: a demo firmware manifest, its symbol table and in-memory span sinks."""

import itertools
from collections.abc import Callable, Generator, Sequence

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from device_trace_core.decoding import DecodedRecord, SessionClock, encode_record
from device_trace_core.export import ExporterSpanSink
from device_trace_core.reconstruction import ClassifiedRecord, classify
from device_trace_core.symbols import MemorySymbolSource, SymbolResolver, SymbolTable, parse_symbol_manifest

from tests.support.helpers import FIRMWARE, MANIFEST, FakeWallClock


@pytest.fixture
def manifest_bytes() -> bytes:
    return MANIFEST.encode()


@pytest.fixture
def table(manifest_bytes: bytes) -> SymbolTable:
    return parse_symbol_manifest(manifest_bytes, FIRMWARE)


@pytest.fixture
def resolver(manifest_bytes: bytes) -> SymbolResolver:
    return SymbolResolver(MemorySymbolSource({FIRMWARE: manifest_bytes}))


@pytest.fixture
def clock() -> SessionClock:
    return SessionClock(wall_clock_ns=FakeWallClock())


@pytest.fixture
def exporter() -> Generator[InMemorySpanExporter]:
    exporter = InMemorySpanExporter()
    yield exporter
    exporter.clear()


@pytest.fixture
def sink(exporter: InMemorySpanExporter) -> ExporterSpanSink:
    return ExporterSpanSink(exporter)


@pytest.fixture
def frame(table: SymbolTable) -> Callable[..., bytes]:
    """Encode one wire frame: ``frame(template_id, *args, ts=device_us)``."""

    def build(template_id: int, *args: object, ts: int | None = None) -> bytes:
        return encode_record(table.templates[template_id], args, ts)

    return build


@pytest.fixture
def record_factory(table: SymbolTable) -> Callable[..., ClassifiedRecord]:
    """Build classified records directly, bypassing the wire.

    ``record_factory(template_id, *args, ts_ns=None)``; sequence numbers and
    default timestamps increase by one per call.
    """
    counter = itertools.count(1)

    def build(template_id: int, *args: object, ts_ns: int | None = None) -> ClassifiedRecord:
        entry = table.templates[template_id]
        sequence_no = next(counter)
        arguments: Sequence[object] = args
        record = DecodedRecord(
            session_id="test-session",
            sequence_no=sequence_no,
            template_id=template_id,
            level=entry.level,
            decoded_message=entry.format_string,
            format_string=entry.format_string,
            file=entry.file,
            line=entry.line,
            module=entry.module,
            timestamp_ns=ts_ns if ts_ns is not None else sequence_no * 1_000,
            timestamp_source="device",
            arguments=tuple(arguments),  # type: ignore[arg-type]
        )
        return classify(record)

    return build
