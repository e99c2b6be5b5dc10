"""Binary frame decoding against a firmware symbol table.

@public
"""

from ._records import DecodedRecord, SessionClock, TimestampSource
from .decoder import ByteSource, DecodeResult, FrameDecoder, decode_arguments
from .encoder import encode_arguments, encode_frame, encode_payload, encode_record
from .framing import WIRE_FORMAT_VERSION, FrameSplitter, cobs_decode, cobs_encode

__all__ = [
    "WIRE_FORMAT_VERSION",
    "ByteSource",
    "DecodeResult",
    "DecodedRecord",
    "FrameDecoder",
    "FrameSplitter",
    "SessionClock",
    "TimestampSource",
    "cobs_decode",
    "cobs_encode",
    "decode_arguments",
    "encode_arguments",
    "encode_frame",
    "encode_payload",
    "encode_record",
]
