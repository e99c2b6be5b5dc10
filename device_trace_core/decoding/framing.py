"""Wire framing contract shared with the device instrumentation (version 1).

Every record travels as one frame::

    COBS(payload) 0x00

COBS (Consistent Overhead Byte Stuffing) removes every zero byte from the
payload, so ``0x00`` only ever appears as the frame terminator and a receiver
can always resynchronize on the next one. Zero-length frames (consecutive
terminators) are idle fill and are ignored.

Decoded payload layout, all integers little-endian::

    Offset  Size  Field
    0       2     template id (uint16)
    2       1     flags: bit 0 = device timestamp present, bits 1-7 reserved (0)
    3       8     device timestamp in microseconds since boot (uint64), only if bit 0
    3 / 11  n     arguments, positional per the template's argument schema

Argument encoding::

    u8/u16/u32/u64, i8/i16/i32/i64   fixed width, two's complement for signed
    f32/f64                          IEEE-754
    bool                             1 byte, 0 or 1
    str                              uint16 byte length + UTF-8 bytes
    bytes                            uint16 byte length + raw bytes

There is no checksum: COBS structure, the header checks and exact
consumption of the argument schema are what detect damaged frames.
"""

import struct
from dataclasses import dataclass

from device_trace_core.exceptions import CorruptFrameError
from device_trace_core.symbols import ArgumentType

FRAME_DELIMITER = 0x00
WIRE_FORMAT_VERSION = 1

HEADER = struct.Struct("<HB")
TIMESTAMP = struct.Struct("<Q")
LENGTH_PREFIX = struct.Struct("<H")

FLAG_TIMESTAMP = 0x01
RESERVED_FLAGS = 0xFE

_COBS_BLOCK = 254


def cobs_encode(data: bytes) -> bytes:
    """COBS-encode a payload (without the trailing delimiter)."""
    out = bytearray()
    block = bytearray()
    for byte in data:
        if byte == 0:
            out.append(len(block) + 1)
            out += block
            block.clear()
            continue
        block.append(byte)
        if len(block) == _COBS_BLOCK:
            out.append(0xFF)
            out += block
            block.clear()
    out.append(len(block) + 1)
    out += block
    return bytes(out)


def cobs_decode(data: bytes) -> bytes:
    """Decode one COBS frame body (delimiter already stripped).

    Raises:
        CorruptFrameError: If the body is not valid COBS.
    """
    out = bytearray()
    index = 0
    size = len(data)
    while index < size:
        code = data[index]
        if code == 0:
            raise CorruptFrameError("zero byte inside COBS frame")
        index += 1
        end = index + code - 1
        if end > size:
            raise CorruptFrameError(f"COBS code {code} runs past end of frame")
        out += data[index:end]
        index = end
        if code != 0xFF and index < size:
            out.append(0)
    return bytes(out)


def max_encoded_size(max_payload_size: int) -> int:
    """Largest COBS body a payload of ``max_payload_size`` bytes can produce."""
    return max_payload_size + max_payload_size // _COBS_BLOCK + 1


@dataclass(frozen=True, slots=True)
class RawFrame:
    """One delimited frame body; ``discarded`` > 0 marks an oversize frame that was dropped."""

    body: bytes
    discarded: int = 0


class FrameSplitter:
    """Splits a continuous byte stream into COBS frame bodies.

    Bytes are buffered until a delimiter arrives. A frame growing past the
    size limit is dropped and the splitter skips to the next delimiter.
    """

    def __init__(self, max_frame_size: int = 4096) -> None:
        self._limit = max_encoded_size(max_frame_size)
        self._buffer = bytearray()
        self._discarding = 0

    @property
    def pending(self) -> int:
        """Bytes buffered for the current, unterminated frame."""
        return len(self._buffer) + self._discarding

    def feed(self, data: bytes) -> list[RawFrame]:
        """Accept more bytes; return every frame completed by them."""
        frames: list[RawFrame] = []
        start = 0
        while start <= len(data):
            end = data.find(FRAME_DELIMITER, start)
            chunk = data[start:] if end < 0 else data[start:end]
            self._append(chunk)
            if end < 0:
                break
            if self._discarding:
                frames.append(RawFrame(body=b"", discarded=self._discarding))
            elif self._buffer:
                frames.append(RawFrame(body=bytes(self._buffer)))
            self._buffer.clear()
            self._discarding = 0
            start = end + 1
        return frames

    def _append(self, chunk: bytes) -> None:
        if self._discarding:
            self._discarding += len(chunk)
            return
        self._buffer += chunk
        if len(self._buffer) > self._limit:
            self._discarding = len(self._buffer)
            self._buffer.clear()

    def finish(self) -> int:
        """End of stream: return the number of unterminated bytes left over, and reset."""
        leftover = self.pending
        self._buffer.clear()
        self._discarding = 0
        return leftover


FIXED_WIDTH_CODECS: dict[ArgumentType, struct.Struct] = {
    ArgumentType.U8: struct.Struct("<B"),
    ArgumentType.U16: struct.Struct("<H"),
    ArgumentType.U32: struct.Struct("<I"),
    ArgumentType.U64: struct.Struct("<Q"),
    ArgumentType.I8: struct.Struct("<b"),
    ArgumentType.I16: struct.Struct("<h"),
    ArgumentType.I32: struct.Struct("<i"),
    ArgumentType.I64: struct.Struct("<q"),
    ArgumentType.F32: struct.Struct("<f"),
    ArgumentType.F64: struct.Struct("<d"),
}
