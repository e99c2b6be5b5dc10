"""Shared test data: a small firmware manifest and helpers built on it."""

from collections.abc import Iterable

from opentelemetry.sdk.trace import ReadableSpan

FIRMWARE = "fw-1.0.0"

MANIFEST = f"""
firmware_version: "{FIRMWARE}"
marker_convention: 1
templates:
  - {{id: 1, format: "boot ok", level: info, file: main.c, line: 10, module: app}}
  - {{id: 2, format: "value {{=u32}}", args: [u32], level: debug, file: main.c, line: 20}}
  - {{id: 3, format: "failure code {{=i16}}", args: [i16], level: error, file: main.c, line: 30}}
  - {{id: 10, format: "span_enter: A", level: debug, file: a.c, line: 1, module: "app::a"}}
  - {{id: 11, format: "span_exit: A", level: debug, file: a.c, line: 2}}
  - {{id: 12, format: "span_enter: B", level: debug, file: b.c, line: 1}}
  - {{id: 13, format: "span_exit: B", level: debug, file: b.c, line: 2}}
  - {{id: 14, format: "span_enter: C", level: debug, file: c.c, line: 1}}
  - {{id: 15, format: "span_exit: C", level: debug, file: c.c, line: 2}}
  - {{id: 20, format: "span_enter: read_sensor(channel={{=u8}}, fast={{=bool}})", args: [u8, bool], file: s.c, line: 5}}
  - {{id: 21, format: "span_exit: read_sensor", file: s.c, line: 9}}
  - {{id: 22, format: "span_enter: {{=str}} attempt={{=u8}}", args: [str, u8], file: n.c, line: 3}}
  - {{id: 23, format: "span_exit: {{=str}}", args: [str], file: n.c, line: 4}}
  - {{id: 24, format: "span_enter: {{=u8}}", args: [u8], file: bad.c, line: 1}}
  - {{id: 30, format: "blob {{=bytes:x}} name {{=str}} ok {{=bool}}", args: [bytes, str, bool]}}
  - {{id: 31, format: "ratio {{=f64}} temp {{=f32}}", args: [f64, f32]}}
"""

# Template ids by role
LOG, VALUE, FAILURE = 1, 2, 3
ENTER_A, EXIT_A, ENTER_B, EXIT_B, ENTER_C, EXIT_C = 10, 11, 12, 13, 14, 15
ENTER_SENSOR, EXIT_SENSOR, ENTER_DYNAMIC, EXIT_DYNAMIC, ENTER_BAD = 20, 21, 22, 23, 24
BLOB, FLOATS = 30, 31


class FakeWallClock:
    """Deterministic host clock: advances 1 µs per reading."""

    def __init__(self, start_ns: int = 1_700_000_000_000_000_000) -> None:
        self.now = start_ns

    def __call__(self) -> int:
        self.now += 1_000
        return self.now


def spans_by_name(spans: Iterable[ReadableSpan]) -> dict[str, ReadableSpan]:
    """Index exported spans by name (names must be unique in the test)."""
    result: dict[str, ReadableSpan] = {}
    for span in spans:
        assert span.name not in result, f"duplicate span name {span.name}"
        result[span.name] = span
    return result
