"""Exception hierarchy for device-trace-core.

All exceptions inherit from DeviceTraceError. Decode errors are also used as
values: the frame decoder yields them alongside decoded records instead of
raising, so one bad frame never ends a stream.
"""


class DeviceTraceError(Exception):
    """Base exception for all device-trace-core errors."""


class SymbolTableError(DeviceTraceError):
    """Raised when a firmware symbol table cannot be loaded. Fatal for the session."""


class UnknownFirmwareVersionError(SymbolTableError):
    """Raised when no debug-symbol source matches the firmware version id."""


class MalformedSymbolSourceError(SymbolTableError):
    """Raised when debug-symbol data cannot be parsed or fails validation."""


class SymbolSourceNotFoundError(DeviceTraceError):
    """Raised by a symbol source that holds nothing for the requested version."""


class ResolveError(DeviceTraceError):
    """Base exception for template lookups."""


class DecodeError(DeviceTraceError):
    """Base exception for a single frame that could not be decoded.

    Attributes:
        frame_index: Zero-based index of the frame within the session stream.
    """

    def __init__(self, message: str, *, frame_index: int = -1) -> None:
        super().__init__(message)
        self.frame_index = frame_index


class TruncatedFrameError(DecodeError):
    """Raised for an incomplete frame at end of stream or a payload shorter than its header."""


class CorruptFrameError(DecodeError):
    """Raised for a frame with bad encoding or content."""


class UnknownTemplateError(CorruptFrameError, ResolveError):
    """Raised when a template id is absent from the symbol table."""

    def __init__(self, template_id: int, *, frame_index: int = -1) -> None:
        super().__init__(f"Unknown template id {template_id}", frame_index=frame_index)
        self.template_id = template_id


class ArgumentMismatchError(CorruptFrameError):
    """Raised when argument bytes do not match the template's argument schema."""


class TrackerError(DeviceTraceError):
    """Base exception for span tracker state violations."""


class DepthExceededError(TrackerError):
    """Raised when a span enter would push the stack past the depth ceiling."""


class OutOfOrderRecordError(TrackerError):
    """Raised when a record's sequence number does not increase."""


class SinkError(DeviceTraceError):
    """Raised when a span sink is used after shutdown."""
