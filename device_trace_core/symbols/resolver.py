"""Symbol table loading and template resolution.

A symbol manifest is produced from the firmware's debug symbols at build time
and stored next to the firmware artifact, keyed by firmware version id. It is
parsed with PyYAML (JSON manifests are valid YAML) and validated with pydantic
before a SymbolTable is built.
"""

from threading import Lock

import yaml
from pydantic import ValidationError

from device_trace_core.exceptions import (
    MalformedSymbolSourceError,
    SymbolSourceNotFoundError,
    UnknownFirmwareVersionError,
    UnknownTemplateError,
)
from device_trace_core.logging import get_pipeline_logger

from ._format import SUPPORTED_HINTS, placeholders
from ._models import SPAN_MARKER_CONVENTION, SymbolManifest, SymbolTable, TemplateEntry, TemplateSpec
from .sources import SymbolSource

logger = get_pipeline_logger(__name__)


def _validate_template(spec: TemplateSpec) -> None:
    """Check that a template's placeholders agree with its argument schema."""
    slots = placeholders(spec.format)
    if len(slots) != len(spec.args):
        raise MalformedSymbolSourceError(f"Template {spec.id}: format has {len(slots)} placeholders but {len(spec.args)} args are declared")
    for position, (slot, arg_type) in enumerate(zip(slots, spec.args, strict=True)):
        if slot.type_name is not None and slot.type_name != arg_type.value:
            raise MalformedSymbolSourceError(f"Template {spec.id}: placeholder {position} is {{={slot.type_name}}} but args declare {arg_type.value}")
        if slot.hint not in SUPPORTED_HINTS:
            raise MalformedSymbolSourceError(f"Template {spec.id}: unsupported display hint {slot.hint!r}")


def parse_symbol_manifest(data: bytes, firmware_version: str) -> SymbolTable:
    """Parse and validate raw manifest bytes into a SymbolTable.

    Raises:
        MalformedSymbolSourceError: If the data is not a valid manifest for the version.
    """
    try:
        document = yaml.safe_load(data)
    except yaml.YAMLError as e:
        raise MalformedSymbolSourceError(f"Symbol manifest for {firmware_version!r} is not valid YAML/JSON: {e}") from e
    if not isinstance(document, dict):
        raise MalformedSymbolSourceError(f"Symbol manifest for {firmware_version!r} must be a mapping")
    try:
        manifest = SymbolManifest.model_validate(document)
    except ValidationError as e:
        raise MalformedSymbolSourceError(f"Symbol manifest for {firmware_version!r} failed validation: {e}") from e

    if manifest.firmware_version != firmware_version:
        raise MalformedSymbolSourceError(f"Symbol manifest declares firmware {manifest.firmware_version!r}, expected {firmware_version!r}")
    if manifest.marker_convention != SPAN_MARKER_CONVENTION:
        raise MalformedSymbolSourceError(f"Unsupported span marker convention {manifest.marker_convention} (supported: {SPAN_MARKER_CONVENTION})")

    templates: dict[int, TemplateEntry] = {}
    for spec in manifest.templates:
        if spec.id in templates:
            raise MalformedSymbolSourceError(f"Duplicate template id {spec.id}")
        _validate_template(spec)
        templates[spec.id] = spec.to_entry()

    return SymbolTable(
        firmware_version=manifest.firmware_version,
        templates=templates,
        marker_convention=manifest.marker_convention,
    )


def load_symbol_table(firmware_version: str, source: SymbolSource) -> SymbolTable:
    """Load the symbol table for a firmware version.

    Raises:
        UnknownFirmwareVersionError: If the source has nothing for the version.
        MalformedSymbolSourceError: If the source data cannot be parsed.
    """
    try:
        data = source.fetch(firmware_version)
    except SymbolSourceNotFoundError as e:
        raise UnknownFirmwareVersionError(str(e)) from e
    table = parse_symbol_manifest(data, firmware_version)
    logger.info(f"Loaded {len(table)} templates for firmware {firmware_version}")
    return table


def resolve(table: SymbolTable, template_id: int) -> TemplateEntry:
    """Look up a template by id. Raises UnknownTemplateError when absent."""
    try:
        return table.templates[template_id]
    except KeyError:
        raise UnknownTemplateError(template_id) from None


class SymbolResolver:
    """Loads symbol tables once per firmware version and shares them by reference.

    Thread-safe. Failed loads are not cached, so a manifest published after a
    failure is picked up by the next session.
    """

    def __init__(self, source: SymbolSource) -> None:
        self._source = source
        self._tables: dict[str, SymbolTable] = {}
        self._lock = Lock()

    def load(self, firmware_version: str) -> SymbolTable:
        """Return the cached table for a version, loading it on first use."""
        with self._lock:
            table = self._tables.get(firmware_version)
            if table is None:
                table = load_symbol_table(firmware_version, self._source)
                self._tables[firmware_version] = table
            return table

    def loaded_versions(self) -> list[str]:
        """Firmware versions currently cached."""
        with self._lock:
            return sorted(self._tables)

    def evict(self, firmware_version: str) -> None:
        """Drop a cached table; sessions already holding it keep their reference."""
        with self._lock:
            self._tables.pop(firmware_version, None)
