#!/usr/bin/env python3
"""Device simulator showcase: runs standalone without a real device.

Demonstrates:
  - Encoding frames exactly as the device instrumentation does
  - Loading a symbol manifest with SymbolResolver and LocalSymbolSource
  - Reconstructing spans with SessionPipeline (blocking source)
  - A lost exit frame and a corrupt frame, and how the trace survives them
  - Serving a session over an asyncio stream with TraceEngine
  - Writing a capture file for ``device-trace reconstruct``

Usage:
  python examples/simulate_device.py [--write-capture capture.bin]
"""

import argparse
import asyncio
import io
from pathlib import Path

from opentelemetry.sdk.trace.export import ConsoleSpanExporter
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from device_trace_core import (
    ExporterSpanSink,
    LocalSymbolSource,
    QueuedSpanSink,
    SessionPipeline,
    SymbolResolver,
    SymbolTable,
    TraceEngine,
    encode_record,
)

SYMBOL_DIR = Path(__file__).parent / "symbols"
FIRMWARE = "demo-1.0.0"


# ---------------------------------------------------------------------------
# Simulated firmware
# ---------------------------------------------------------------------------


def simulate_boot(table: SymbolTable, *, lose_exit: bool = False, corrupt: bool = False) -> bytes:
    """Bytes a device running the demo firmware would emit during one boot."""
    t = table.templates
    us = 1_000
    frames = [
        encode_record(t[1], [0x04], us),
        encode_record(t[5], ["uplink", 3], us + 100),
        encode_record(t[2], [2, True], us + 150),
        encode_record(t[4], [3300, 2], us + 400),
        encode_record(t[8], [21.5], us + 450),
    ]
    if not lose_exit:
        frames.append(encode_record(t[3], [], us + 500))
    if corrupt:
        frames.append(b"\x05\xff\xff\x00\x00")
    frames += [
        encode_record(t[7], ["timeout", -97], us + 900),
        encode_record(t[6], ["uplink"], us + 1_000),
    ]
    return b"".join(frames)


# ---------------------------------------------------------------------------
# 1. Blocking reconstruction
# ---------------------------------------------------------------------------


def demo_blocking(table: SymbolTable) -> None:
    """Reconstruct a clean boot and a boot that lost an exit frame."""
    print("\n=== SessionPipeline.run() ===\n")
    for label, kwargs in [("clean", {}), ("lost exit + corrupt frame", {"lose_exit": True, "corrupt": True})]:
        exporter = InMemorySpanExporter()
        pipeline = SessionPipeline(table, ExporterSpanSink(exporter), f"demo-{label.split()[0]}")
        stats = pipeline.run(io.BytesIO(simulate_boot(table, **kwargs)))
        print(f"[{label}] {stats.records_decoded} records, {stats.spans_completed} spans, decode errors {stats.decode_errors}, warnings {stats.tracker_warnings}")
        for span in exporter.get_finished_spans():
            attrs = span.attributes or {}
            print(f"  {span.name:<12} {(span.end_time or 0) - (span.start_time or 0):>9} ns  close={attrs.get('device.span.close_reason')}  status={span.status.status_code.name}")


# ---------------------------------------------------------------------------
# 2. Streaming reconstruction
# ---------------------------------------------------------------------------


async def demo_stream(resolver: SymbolResolver) -> None:
    """Feed a session through an asyncio stream in small chunks."""
    print("\n=== TraceEngine.serve_stream() ===\n")
    engine = TraceEngine(resolver, QueuedSpanSink(ExporterSpanSink(ConsoleSpanExporter())))
    data = simulate_boot(resolver.load(FIRMWARE))
    reader = asyncio.StreamReader()

    async def device() -> None:
        for start in range(0, len(data), 7):
            reader.feed_data(data[start : start + 7])
            await asyncio.sleep(0)
        reader.feed_eof()

    stats, _ = await asyncio.gather(engine.serve_stream(reader, FIRMWARE, "demo-stream", idle_timeout=5.0), device())
    engine.shutdown()
    print(f"\nstream session ended ({stats.end_reason}): {stats.spans_exported} spans exported, {stats.export_drops} dropped")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--write-capture", type=Path, default=None, help="Also write a raw capture file")
    args = parser.parse_args()

    resolver = SymbolResolver(LocalSymbolSource(SYMBOL_DIR))
    table = resolver.load(FIRMWARE)
    demo_blocking(table)
    asyncio.run(demo_stream(resolver))

    if args.write_capture is not None:
        args.write_capture.write_bytes(simulate_boot(table, lose_exit=True))
        print(f"\nWrote capture to {args.write_capture}; try:")
        print(f"  device-trace reconstruct --firmware {FIRMWARE} --symbols {SYMBOL_DIR} --input {args.write_capture} --summary")


if __name__ == "__main__":
    main()
