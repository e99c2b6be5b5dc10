"""Firmware symbol tables: loading, sharing and template resolution.

@public
"""

from ._format import Placeholder, parse_format, placeholders, render
from ._models import (
    SPAN_MARKER_CONVENTION,
    ArgumentType,
    LogLevel,
    SymbolManifest,
    SymbolTable,
    TemplateEntry,
    TemplateSpec,
)
from .resolver import SymbolResolver, load_symbol_table, parse_symbol_manifest, resolve
from .sources import LocalSymbolSource, MemorySymbolSource, SymbolSource, create_symbol_source

__all__ = [
    "SPAN_MARKER_CONVENTION",
    "ArgumentType",
    "LocalSymbolSource",
    "LogLevel",
    "MemorySymbolSource",
    "Placeholder",
    "SymbolManifest",
    "SymbolResolver",
    "SymbolSource",
    "SymbolTable",
    "TemplateEntry",
    "TemplateSpec",
    "create_symbol_source",
    "load_symbol_table",
    "parse_format",
    "parse_symbol_manifest",
    "placeholders",
    "render",
    "resolve",
]
