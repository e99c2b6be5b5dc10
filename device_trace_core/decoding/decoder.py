"""Frame decoder: byte stream in, DecodedRecord or DecodeError values out.

Decode errors are yielded, not raised. A bad frame costs exactly that frame;
the next delimiter resynchronizes the stream.
"""

from collections.abc import Iterable, Iterator
from typing import BinaryIO, TypeAlias

from device_trace_core.exceptions import (
    ArgumentMismatchError,
    CorruptFrameError,
    DecodeError,
    TruncatedFrameError,
)
from device_trace_core.symbols import ArgumentType, SymbolTable, TemplateEntry, render, resolve

from ._records import ArgumentValue, DecodedRecord, SessionClock
from .framing import FIXED_WIDTH_CODECS, FLAG_TIMESTAMP, HEADER, LENGTH_PREFIX, RESERVED_FLAGS, TIMESTAMP, FrameSplitter, RawFrame, cobs_decode

DecodeResult: TypeAlias = DecodedRecord | DecodeError
ByteSource: TypeAlias = BinaryIO | Iterable[bytes]

DEFAULT_READ_SIZE = 4096


def decode_arguments(entry: TemplateEntry, data: bytes) -> tuple[ArgumentValue, ...]:
    """Interpret raw argument bytes positionally using the template schema.

    Raises:
        ArgumentMismatchError: If the bytes run out early or are left over.
        CorruptFrameError: If a value is invalid for its type.
    """
    values: list[ArgumentValue] = []
    offset = 0
    for position, arg_type in enumerate(entry.argument_schema):
        if arg_type in FIXED_WIDTH_CODECS:
            codec = FIXED_WIDTH_CODECS[arg_type]
            if offset + codec.size > len(data):
                raise ArgumentMismatchError(f"template {entry.template_id}: argument {position} ({arg_type}) truncated")
            values.append(codec.unpack_from(data, offset)[0])
            offset += codec.size
        elif arg_type is ArgumentType.BOOL:
            if offset + 1 > len(data):
                raise ArgumentMismatchError(f"template {entry.template_id}: argument {position} (bool) truncated")
            raw = data[offset]
            if raw > 1:
                raise CorruptFrameError(f"template {entry.template_id}: argument {position} has invalid bool byte {raw:#04x}")
            values.append(raw == 1)
            offset += 1
        else:
            if offset + LENGTH_PREFIX.size > len(data):
                raise ArgumentMismatchError(f"template {entry.template_id}: argument {position} ({arg_type}) length truncated")
            (length,) = LENGTH_PREFIX.unpack_from(data, offset)
            offset += LENGTH_PREFIX.size
            if offset + length > len(data):
                raise ArgumentMismatchError(f"template {entry.template_id}: argument {position} ({arg_type}) declares {length} bytes, {len(data) - offset} left")
            chunk = bytes(data[offset : offset + length])
            offset += length
            if arg_type is ArgumentType.STR:
                try:
                    values.append(chunk.decode("utf-8"))
                except UnicodeDecodeError as e:
                    raise CorruptFrameError(f"template {entry.template_id}: argument {position} is not valid UTF-8") from e
            else:
                values.append(chunk)
    if offset != len(data):
        raise ArgumentMismatchError(f"template {entry.template_id}: {len(data) - offset} unexpected bytes after {len(entry.argument_schema)} arguments")
    return tuple(values)


class FrameDecoder:
    """Decodes one session's byte stream against a shared, read-only SymbolTable.

    Two ways to drive it:

    * ``decode(source)`` returns a lazy iterator over a blocking byte source.
      Each call starts fresh framing state; sequence numbers keep counting.
    * ``received(data)`` / ``finish()`` push chunks as they arrive, for
      asyncio readers.
    """

    def __init__(
        self,
        table: SymbolTable,
        session_id: str,
        *,
        clock: SessionClock | None = None,
        max_frame_size: int = 4096,
    ) -> None:
        self._table = table
        self._session_id = session_id
        self._clock = clock or SessionClock()
        self._max_frame_size = max_frame_size
        self._splitter = FrameSplitter(max_frame_size)
        self._sequence_no = 0
        self._frame_index = 0

    @property
    def table(self) -> SymbolTable:
        return self._table

    @property
    def clock(self) -> SessionClock:
        return self._clock

    @property
    def last_sequence_no(self) -> int:
        """Sequence number of the most recent decoded record (0 before the first)."""
        return self._sequence_no

    def decode(self, source: ByteSource, read_size: int = DEFAULT_READ_SIZE) -> Iterator[DecodeResult]:
        """Lazily decode every frame from ``source`` until it is exhausted."""
        splitter = FrameSplitter(self._max_frame_size)
        for chunk in _iter_chunks(source, read_size):
            for raw in splitter.feed(chunk):
                yield self._decode_raw(raw)
        leftover = splitter.finish()
        if leftover:
            yield self._truncated_tail(leftover)

    def received(self, data: bytes) -> list[DecodeResult]:
        """Push bytes; return results for every frame they complete."""
        return [self._decode_raw(raw) for raw in self._splitter.feed(data)]

    def finish(self) -> list[DecodeResult]:
        """Signal end of stream for the push API."""
        leftover = self._splitter.finish()
        return [self._truncated_tail(leftover)] if leftover else []

    def _truncated_tail(self, leftover: int) -> TruncatedFrameError:
        index = self._next_frame_index()
        return TruncatedFrameError(f"stream ended inside a frame ({leftover} bytes without delimiter)", frame_index=index)

    def _next_frame_index(self) -> int:
        index = self._frame_index
        self._frame_index += 1
        return index

    def _decode_raw(self, raw: RawFrame) -> DecodeResult:
        index = self._next_frame_index()
        if raw.discarded:
            return CorruptFrameError(f"frame of {raw.discarded} bytes exceeds limit of {self._max_frame_size}", frame_index=index)
        try:
            return self.decode_payload(cobs_decode(raw.body))
        except DecodeError as e:
            e.frame_index = index
            return e

    def decode_payload(self, payload: bytes) -> DecodedRecord:
        """Decode one un-stuffed frame payload.

        Raises:
            DecodeError: Subclass describing why the payload was rejected.
        """
        if len(payload) < HEADER.size:
            raise TruncatedFrameError(f"payload of {len(payload)} bytes is shorter than the {HEADER.size}-byte header")
        template_id, flags = HEADER.unpack_from(payload, 0)
        if flags & RESERVED_FLAGS:
            raise CorruptFrameError(f"reserved flag bits set: {flags:#04x}")
        offset = HEADER.size
        device_timestamp: int | None = None
        if flags & FLAG_TIMESTAMP:
            if len(payload) < offset + TIMESTAMP.size:
                raise TruncatedFrameError("frame flags a device timestamp but is too short to carry one")
            (device_timestamp,) = TIMESTAMP.unpack_from(payload, offset)
            offset += TIMESTAMP.size

        entry = resolve(self._table, template_id)
        arguments = decode_arguments(entry, payload[offset:])
        try:
            message = render(entry.format_string, arguments)
        except ValueError as e:
            raise ArgumentMismatchError(f"template {template_id}: {e}") from e

        timestamp_ns, source = self._clock.place(device_timestamp)
        self._sequence_no += 1
        return DecodedRecord(
            session_id=self._session_id,
            sequence_no=self._sequence_no,
            template_id=template_id,
            level=entry.level,
            decoded_message=message,
            format_string=entry.format_string,
            file=entry.file,
            line=entry.line,
            module=entry.module,
            timestamp_ns=timestamp_ns,
            timestamp_source=source,
            device_timestamp=device_timestamp,
            arguments=arguments,
        )


def _iter_chunks(source: ByteSource, read_size: int) -> Iterator[bytes]:
    """Yield byte chunks from a file-like object or an iterable of chunks."""
    read = getattr(source, "read", None)
    if read is None:
        for chunk in source:  # type: ignore[union-attr]
            if chunk:
                yield bytes(chunk)
        return
    while True:
        chunk = read(read_size)
        if not chunk:
            return
        yield bytes(chunk)
