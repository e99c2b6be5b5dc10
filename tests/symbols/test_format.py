"""Tests for format-string parsing and rendering."""

import pytest

from device_trace_core.symbols import Placeholder, parse_format, placeholders, render


class TestParseFormat:
    def test_literal_only(self):
        assert parse_format("boot ok") == ("boot ok",)

    def test_typed_placeholder_with_hint(self):
        assert parse_format("reg {=u32:#x} set") == ("reg ", Placeholder("u32", "#x"), " set")

    def test_bare_placeholder(self):
        assert placeholders("a {} b") == [Placeholder(None, "")]

    def test_escaped_braces_are_literal(self):
        segments = parse_format("{{literal}} {=u8}")
        assert segments == ("{literal} ", Placeholder("u8", ""))

    def test_adjacent_placeholders(self):
        assert placeholders("{=u8}{=u16}") == [Placeholder("u8", ""), Placeholder("u16", "")]


class TestRender:
    def test_integers_and_hints(self):
        assert render("v={=u8} h={=u32:#x} b={=u8:b}", (7, 255, 5)) == "v=7 h=0xff b=101"

    def test_bool_renders_lowercase(self):
        assert render("ok {=bool}", (True,)) == "ok true"

    def test_bytes_render_as_list(self):
        assert render("{=bytes}", (b"\x01\x02",)) == "[1, 2]"
        assert render("{=bytes:x}", (b"\x0a\xff",)) == "[a, ff]"

    def test_debug_hint_uses_repr(self):
        assert render("{=str:?}", ("hi",)) == "'hi'"

    def test_too_few_arguments(self):
        with pytest.raises(ValueError, match="more than"):
            render("{=u8} {=u8}", (1,))

    def test_too_many_arguments(self):
        with pytest.raises(ValueError, match="takes 1"):
            render("{=u8}", (1, 2))
