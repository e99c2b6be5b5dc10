"""Device-side wire encoder.

Produces frames exactly as the device instrumentation does. Used by the test
suite and the device simulator to build streams; the engine itself only
decodes.
"""

from collections.abc import Sequence

from device_trace_core.symbols import ArgumentType, TemplateEntry

from .framing import FIXED_WIDTH_CODECS, FLAG_TIMESTAMP, HEADER, LENGTH_PREFIX, TIMESTAMP, cobs_encode


def encode_arguments(schema: Sequence[ArgumentType], values: Sequence[object]) -> bytes:
    """Serialize argument values for a schema.

    Raises:
        ValueError: If the value count differs from the schema length.
    """
    if len(schema) != len(values):
        raise ValueError(f"schema has {len(schema)} arguments, got {len(values)} values")
    out = bytearray()
    for arg_type, value in zip(schema, values, strict=True):
        if arg_type in FIXED_WIDTH_CODECS:
            out += FIXED_WIDTH_CODECS[arg_type].pack(value)
        elif arg_type is ArgumentType.BOOL:
            out.append(1 if value else 0)
        else:
            raw = value.encode("utf-8") if isinstance(value, str) else bytes(value)  # type: ignore[arg-type]
            out += LENGTH_PREFIX.pack(len(raw))
            out += raw
    return bytes(out)


def encode_payload(template_id: int, argument_bytes: bytes = b"", device_timestamp: int | None = None) -> bytes:
    """Build an un-stuffed frame payload."""
    flags = 0 if device_timestamp is None else FLAG_TIMESTAMP
    out = bytearray(HEADER.pack(template_id, flags))
    if device_timestamp is not None:
        out += TIMESTAMP.pack(device_timestamp)
    out += argument_bytes
    return bytes(out)


def encode_frame(payload: bytes) -> bytes:
    """COBS-stuff a payload and append the frame delimiter."""
    return cobs_encode(payload) + b"\x00"


def encode_record(entry: TemplateEntry, values: Sequence[object] = (), device_timestamp: int | None = None) -> bytes:
    """Encode one complete wire frame for a template."""
    payload = encode_payload(entry.template_id, encode_arguments(entry.argument_schema, values), device_timestamp)
    return encode_frame(payload)
