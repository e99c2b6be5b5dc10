"""Decoded record model and the per-session clock."""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal, TypeAlias

from device_trace_core.symbols import LogLevel

TimestampSource: TypeAlias = Literal["device", "host"]
ArgumentValue: TypeAlias = int | float | bool | str | bytes


@dataclass(frozen=True, slots=True)
class DecodedRecord:
    """One successfully decoded frame.

    ``timestamp_ns`` is the host wall-clock position of the record. When the
    frame carried a device timestamp it is derived from it; otherwise it is
    the host arrival time and ``timestamp_source`` is ``"host"``. Arrival
    time includes transport buffering jitter, so spans measured from host
    stamps are lower fidelity than device-stamped ones.
    """

    session_id: str
    sequence_no: int
    template_id: int
    level: LogLevel
    decoded_message: str
    format_string: str
    file: str
    line: int
    module: str
    timestamp_ns: int
    timestamp_source: TimestampSource
    device_timestamp: int | None = None
    arguments: tuple[ArgumentValue, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict view for logging and JSON output."""
        return {
            "session_id": self.session_id,
            "sequence_no": self.sequence_no,
            "template_id": self.template_id,
            "level": self.level.value,
            "message": self.decoded_message,
            "file": self.file,
            "line": self.line,
            "timestamp_ns": self.timestamp_ns,
            "timestamp_source": self.timestamp_source,
            "device_timestamp": self.device_timestamp,
        }


class SessionClock:
    """Maps device timestamps (µs since boot) onto the host wall clock.

    The first device-stamped record anchors device time to the host time at
    which it arrived; later device stamps are offsets from that anchor.
    """

    def __init__(self, wall_clock_ns: Callable[[], int] = time.time_ns) -> None:
        self._wall_clock_ns = wall_clock_ns
        self._anchor: tuple[int, int] | None = None

    def now_ns(self) -> int:
        """Current host wall-clock time in nanoseconds."""
        return self._wall_clock_ns()

    @property
    def anchored(self) -> bool:
        return self._anchor is not None

    def place(self, device_timestamp_us: int | None) -> tuple[int, TimestampSource]:
        """Return the wall-clock ns for a record and which clock produced it."""
        if device_timestamp_us is None:
            return self._wall_clock_ns(), "host"
        if self._anchor is None:
            self._anchor = (device_timestamp_us, self._wall_clock_ns())
        device_origin, wall_origin = self._anchor
        return wall_origin + (device_timestamp_us - device_origin) * 1000, "device"
