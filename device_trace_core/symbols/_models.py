"""Symbol table models and the on-disk symbol manifest schema."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict, Field

SPAN_MARKER_CONVENTION = 1
"""Version of the span-marker convention understood by the record classifier."""


class LogLevel(StrEnum):
    """Device log level, ordered from most to least verbose."""

    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class ArgumentType(StrEnum):
    """Wire type of one template argument."""

    U8 = "u8"
    U16 = "u16"
    U32 = "u32"
    U64 = "u64"
    I8 = "i8"
    I16 = "i16"
    I32 = "i32"
    I64 = "i64"
    F32 = "f32"
    F64 = "f64"
    BOOL = "bool"
    STR = "str"
    BYTES = "bytes"


class TemplateEntry(BaseModel):
    """A compile-time format string and its argument schema."""

    model_config = ConfigDict(frozen=True)

    template_id: int = Field(ge=0, le=0xFFFF)
    format_string: str
    argument_schema: tuple[ArgumentType, ...] = ()
    file: str = ""
    line: int = 0
    level: LogLevel = LogLevel.INFO
    module: str = ""


@dataclass(frozen=True, eq=False)
class SymbolTable:
    """Immutable template table for one firmware version.

    Shared by reference across every session running that firmware; nothing
    in decoding mutates it.
    """

    firmware_version: str
    templates: Mapping[int, TemplateEntry] = field(default_factory=dict)
    marker_convention: int = SPAN_MARKER_CONVENTION

    def __post_init__(self) -> None:
        object.__setattr__(self, "templates", MappingProxyType(dict(self.templates)))

    def __len__(self) -> int:
        return len(self.templates)

    def __contains__(self, template_id: object) -> bool:
        return template_id in self.templates


# --- Manifest schema ---


class TemplateSpec(BaseModel):
    """One template as written in a symbol manifest."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    id: int = Field(ge=0, le=0xFFFF)
    format: str
    args: tuple[ArgumentType, ...] = ()
    level: LogLevel = LogLevel.INFO
    file: str = ""
    line: int = Field(default=0, ge=0)
    module: str = ""

    def to_entry(self) -> TemplateEntry:
        return TemplateEntry(
            template_id=self.id,
            format_string=self.format,
            argument_schema=self.args,
            file=self.file,
            line=self.line,
            level=self.level,
            module=self.module,
        )


class SymbolManifest(BaseModel):
    """Top-level document of a symbol manifest file."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    firmware_version: str = Field(min_length=1)
    marker_convention: int = SPAN_MARKER_CONVENTION
    templates: tuple[TemplateSpec, ...] = ()
