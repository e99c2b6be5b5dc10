"""Tests for COBS framing and stream splitting."""

import pytest

from device_trace_core.decoding import FrameSplitter, cobs_decode, cobs_encode
from device_trace_core.exceptions import CorruptFrameError


class TestCobs:
    @pytest.mark.parametrize(
        ("payload", "encoded"),
        [
            (b"", b"\x01"),
            (b"\x00", b"\x01\x01"),
            (b"\x11\x22\x00\x33", b"\x03\x11\x22\x02\x33"),
            (b"\x11\x00\x00\x00", b"\x02\x11\x01\x01\x01"),
        ],
    )
    def test_known_vectors(self, payload: bytes, encoded: bytes):
        assert cobs_encode(payload) == encoded
        assert cobs_decode(encoded) == payload

    def test_encoding_never_contains_zero(self):
        payload = bytes(range(256)) * 3
        assert 0 not in cobs_encode(payload)

    def test_long_run_uses_full_blocks(self):
        payload = bytes([0x42]) * 254
        encoded = cobs_encode(payload)
        assert encoded[0] == 0xFF
        assert cobs_decode(encoded) == payload

    def test_code_past_end_is_corrupt(self):
        with pytest.raises(CorruptFrameError, match="runs past"):
            cobs_decode(b"\x05\x11\x22")

    def test_zero_inside_body_is_corrupt(self):
        with pytest.raises(CorruptFrameError):
            cobs_decode(b"\x00\x01")


class TestFrameSplitter:
    def test_frames_split_across_chunks(self):
        splitter = FrameSplitter()
        assert splitter.feed(b"\x02\x41") == []
        assert splitter.pending == 2
        frames = splitter.feed(b"\x00\x02\x42\x00")
        assert [f.body for f in frames] == [b"\x02\x41", b"\x02\x42"]
        assert splitter.pending == 0

    def test_empty_frames_are_ignored(self):
        frames = FrameSplitter().feed(b"\x00\x00\x02\x41\x00\x00")
        assert [f.body for f in frames] == [b"\x02\x41"]

    def test_oversize_frame_is_discarded_and_stream_resyncs(self):
        splitter = FrameSplitter(max_frame_size=16)
        frames = splitter.feed(b"\x01" * 100 + b"\x00" + b"\x02\x41\x00")
        assert frames[0].discarded == 100
        assert frames[0].body == b""
        assert frames[1].body == b"\x02\x41"

    def test_oversize_frame_across_chunks(self):
        splitter = FrameSplitter(max_frame_size=16)
        assert splitter.feed(b"\x01" * 30) == []
        frames = splitter.feed(b"\x01" * 30 + b"\x00")
        assert frames[0].discarded == 60

    def test_finish_reports_leftover(self):
        splitter = FrameSplitter()
        splitter.feed(b"\x03\x41")
        assert splitter.finish() == 2
        assert splitter.pending == 0
        assert splitter.finish() == 0
