"""Debug-symbol sources: where symbol manifests for a firmware version come from.

Implementations: LocalSymbolSource (directory of manifests, CLI and
deployments) and MemorySymbolSource (testing).
"""

import re
from pathlib import Path
from typing import Protocol, runtime_checkable

from device_trace_core.exceptions import SymbolSourceNotFoundError
from device_trace_core.settings import Settings

MANIFEST_SUFFIXES: tuple[str, ...] = (".yml", ".yaml", ".json")

_SAFE_VERSION_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._+-]*$")


@runtime_checkable
class SymbolSource(Protocol):
    """Protocol for debug-symbol providers keyed by firmware version id."""

    def fetch(self, firmware_version: str) -> bytes:
        """Return raw manifest bytes. Raises SymbolSourceNotFoundError if absent."""
        ...


class MemorySymbolSource:
    """Dict-backed symbol source for unit tests."""

    def __init__(self, manifests: dict[str, bytes | str] | None = None) -> None:
        self._manifests: dict[str, bytes] = {}
        for version, data in (manifests or {}).items():
            self.add(version, data)

    def add(self, firmware_version: str, data: bytes | str) -> None:
        """Register manifest data for a firmware version."""
        self._manifests[firmware_version] = data.encode("utf-8") if isinstance(data, str) else data

    def fetch(self, firmware_version: str) -> bytes:
        try:
            return self._manifests[firmware_version]
        except KeyError:
            raise SymbolSourceNotFoundError(f"No symbols registered for firmware {firmware_version!r}") from None


class LocalSymbolSource:
    """Reads ``{base_path}/{firmware_version}{.yml|.yaml|.json}``."""

    def __init__(self, base_path: Path | None = None) -> None:
        self._base_path = base_path or Path.cwd()

    @property
    def base_path(self) -> Path:
        """Directory searched for manifests."""
        return self._base_path

    def path_for(self, firmware_version: str) -> Path | None:
        """Return the manifest path for a version, or None when no file exists."""
        if not _SAFE_VERSION_RE.match(firmware_version):
            return None
        for suffix in MANIFEST_SUFFIXES:
            candidate = self._base_path / f"{firmware_version}{suffix}"
            if candidate.is_file():
                return candidate
        return None

    def fetch(self, firmware_version: str) -> bytes:
        path = self.path_for(firmware_version)
        if path is None:
            raise SymbolSourceNotFoundError(f"No symbol manifest for firmware {firmware_version!r} in {self._base_path}")
        return path.read_bytes()


def create_symbol_source(settings: Settings) -> SymbolSource:
    """Create the symbol source configured in settings."""
    return LocalSymbolSource(settings.symbol_dir)
