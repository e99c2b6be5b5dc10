"""Command-line tool for offline trace reconstruction and symbol manifest inspection."""

import argparse
import json
import logging
import sys
from pathlib import Path

from opentelemetry.sdk.trace.export import ConsoleSpanExporter

from .decoding import DecodedRecord
from .exceptions import DeviceTraceError, SymbolTableError
from .export import ExporterSpanSink, JsonLinesSpanSink, SpanSink
from .logging import get_pipeline_logger, setup_logging
from .pipeline import SessionPipeline
from .reconstruction import marker_kind
from .settings import settings
from .symbols import LocalSymbolSource, LogLevel, SymbolResolver

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_SYMBOLS = 2

device_logger = get_pipeline_logger("device_trace_core.device")

_ECHO_LEVELS = {
    LogLevel.TRACE: logging.DEBUG,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


def _print_table(headers: list[str], rows: list[list[str]]) -> None:
    """Print an aligned text table."""
    if not rows:
        return
    widths = [max(len(h), *(len(row[i]) for row in rows)) for i, h in enumerate(headers)]
    print("  ".join(h.ljust(w) for h, w in zip(headers, widths, strict=True)))
    print("  ".join("-" * w for w in widths))
    for row in rows:
        print("  ".join(val.ljust(w) for val, w in zip(row, widths, strict=True)))


def _resolver(args: argparse.Namespace) -> SymbolResolver:
    return SymbolResolver(LocalSymbolSource(args.symbols))


def _build_sink(args: argparse.Namespace) -> SpanSink:
    if args.output == "console":
        return ExporterSpanSink(ConsoleSpanExporter(out=sys.stdout))
    if args.output_file is not None:
        return JsonLinesSpanSink(args.output_file)
    return JsonLinesSpanSink(sys.stdout)


def _echo_record(record: DecodedRecord) -> None:
    """Log a decoded device message at its own level."""
    location = f"{record.file}:{record.line} " if record.file else ""
    device_logger.log(_ECHO_LEVELS[record.level], f"[{record.session_id}] {location}{record.decoded_message}")


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_reconstruct(args: argparse.Namespace) -> int:
    """Decode a captured byte stream and write the reconstructed spans."""
    try:
        table = _resolver(args).load(args.firmware)
    except SymbolTableError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_SYMBOLS

    sink = _build_sink(args)
    pipeline = SessionPipeline(
        table,
        sink,
        args.session_id,
        max_span_depth=args.max_depth,
        on_record=_echo_record if args.echo else None,
    )
    try:
        if args.input == "-":
            stats = pipeline.run(sys.stdin.buffer)
        else:
            with Path(args.input).open("rb") as source:
                stats = pipeline.run(source)
    except (OSError, DeviceTraceError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    finally:
        sink.shutdown()

    if args.summary:
        print(json.dumps(stats.model_dump(), indent=2), file=sys.stderr)
    return EXIT_OK


def _cmd_symbols(args: argparse.Namespace) -> int:
    """Validate a symbol manifest and list its templates."""
    try:
        table = _resolver(args).load(args.firmware)
    except SymbolTableError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_SYMBOLS

    headers = ["Id", "Level", "Kind", "Args", "Location", "Format"]
    rows = [
        [
            str(entry.template_id),
            entry.level.value,
            marker_kind(entry.format_string).value,
            ",".join(arg.value for arg in entry.argument_schema) or "-",
            f"{entry.file}:{entry.line}" if entry.file else "-",
            entry.format_string,
        ]
        for entry in sorted(table.templates.values(), key=lambda e: e.template_id)
    ]
    print(f"firmware {table.firmware_version}: {len(table)} template(s), marker convention v{table.marker_convention}\n")
    _print_table(headers, rows)
    return EXIT_OK


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for device trace reconstruction."""
    log_help = "Log level for device_trace_core loggers (default: INFO)"
    # Accepted before or after the subcommand; SUPPRESS keeps the subparser from resetting it.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--log-level", type=str.upper, default=argparse.SUPPRESS, help=log_help)

    parser = argparse.ArgumentParser(prog="device-trace", description="Reconstruct traces from device log streams")
    parser.add_argument("--log-level", type=str.upper, default=None, help=log_help)
    subparsers = parser.add_subparsers(dest="command")

    # reconstruct
    reconstruct_parser = subparsers.add_parser("reconstruct", parents=[common], help="Decode a captured stream into spans")
    reconstruct_parser.add_argument("--firmware", required=True, help="Firmware version of the capturing device")
    reconstruct_parser.add_argument("--symbols", type=Path, default=settings.symbol_dir, help="Directory of symbol manifests")
    reconstruct_parser.add_argument("--input", default="-", help="Captured byte stream file, '-' for stdin")
    reconstruct_parser.add_argument("--output", choices=["jsonl", "console"], default="jsonl", help="Span output format")
    reconstruct_parser.add_argument("--output-file", type=Path, default=None, help="Append JSON lines here instead of stdout")
    reconstruct_parser.add_argument("--session-id", default=None, help="Session id (default: random)")
    reconstruct_parser.add_argument("--max-depth", type=int, default=None, help="Override the span depth ceiling")
    reconstruct_parser.add_argument("--summary", action="store_true", help="Print session stats to stderr")
    reconstruct_parser.add_argument("--echo", action="store_true", help="Log every decoded device message")

    # symbols
    symbols_parser = subparsers.add_parser("symbols", parents=[common], help="Validate a symbol manifest and list its templates")
    symbols_parser.add_argument("--firmware", required=True, help="Firmware version to load")
    symbols_parser.add_argument("--symbols", type=Path, default=settings.symbol_dir, help="Directory of symbol manifests")

    args = parser.parse_args(argv)

    handlers = {"reconstruct": _cmd_reconstruct, "symbols": _cmd_symbols}
    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return EXIT_FAILURE

    setup_logging(level=args.log_level)
    return handler(args)


if __name__ == "__main__":
    sys.exit(main())


__all__ = ["main"]
