"""Per-session counters."""

from typing import Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field

EndReason: TypeAlias = Literal["eof", "idle_timeout", "cancelled", "closed"]


class SessionStats(BaseModel):
    """Snapshot of one session's counters.

    Decode errors are keyed by exception class name, tracker warnings by
    warning kind.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    firmware_version: str
    bytes_received: int = 0
    records_decoded: int = 0
    decode_errors: dict[str, int] = Field(default_factory=dict)
    tracker_warnings: dict[str, int] = Field(default_factory=dict)
    spans_completed: int = 0
    spans_exported: int = 0
    export_failures: int = 0
    export_drops: int = 0
    open_spans: int = 0
    closed: bool = False
    end_reason: EndReason | None = None

    @property
    def decode_error_total(self) -> int:
        return sum(self.decode_errors.values())

    @property
    def warning_total(self) -> int:
        """Tracker warnings plus decode errors."""
        return sum(self.tracker_warnings.values()) + self.decode_error_total
