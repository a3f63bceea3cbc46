"""
Parsed PE Image
================

:class:`PEImage` owns the raw file bytes and the decoded header graph.
It is produced by a single :meth:`PEImage.parse` call and never changes
afterwards; a modified file needs a fresh parse.

The import and export tables are decoded on request.  Each walk is a
pure function of the immutable buffer, so several walks may run in
parallel against one image.

Usage::

    image = PEImage.from_path("notepad.exe")
    image.architecture()           # "x64 (64-bit)"
    for entry in image.imports():
        print(entry.dll_name, len(entry.functions))
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pelens.core.errors import PEIOError
from pelens.parsers.directories import (
    ExportDirectory,
    ExportTable,
    ImportEntry,
    parse_export_directory,
    parse_export_table,
    parse_import_table,
)
from pelens.parsers.headers import (
    CoffFileHeader,
    DataDirectory,
    DosHeader,
    NtHeaders,
    OptionalHeader,
    parse_headers,
)
from pelens.parsers.sections import (
    SectionHeader,
    find_section,
    parse_section_table,
    rva_to_offset,
    section_data,
)

logger = logging.getLogger(__name__)

# Machine types
IMAGE_FILE_MACHINE_I386: int = 0x14C
IMAGE_FILE_MACHINE_ARM: int = 0x1C0
IMAGE_FILE_MACHINE_AMD64: int = 0x8664
IMAGE_FILE_MACHINE_ARM64: int = 0xAA64

IMAGE_FILE_DLL: int = 0x2000

UNKNOWN_ARCHITECTURE: str = "Unknown architecture"

_ARCHITECTURE_LABELS: dict[int, str] = {
    IMAGE_FILE_MACHINE_I386: "x86 (32-bit)",
    IMAGE_FILE_MACHINE_AMD64: "x64 (64-bit)",
    IMAGE_FILE_MACHINE_ARM: "ARM",
    IMAGE_FILE_MACHINE_ARM64: "ARM64",
}


class PEImage:
    """An immutable, fully header-decoded PE image."""

    __slots__ = ("_data", "_headers", "_sections")

    def __init__(
        self,
        data: bytes,
        headers: NtHeaders,
        sections: tuple[SectionHeader, ...],
    ) -> None:
        self._data = data
        self._headers = headers
        self._sections = sections

    # ------------------------------------------------------------------ #
    #  Construction
    # ------------------------------------------------------------------ #

    @classmethod
    def parse(cls, data: bytes) -> PEImage:
        """Decode headers and section table from *data*.

        Raises:
            PEError: The first structural invariant that failed.
        """
        data = bytes(data)
        headers = parse_headers(data)
        sections = parse_section_table(
            data,
            headers.section_table_offset,
            headers.coff.number_of_sections,
        )
        return cls(data, headers, sections)

    @classmethod
    def from_path(cls, path: str | Path) -> PEImage:
        """Read *path* and :meth:`parse` it.

        Raises:
            PEIOError: The file could not be read.
        """
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            raise PEIOError(str(path), exc) from exc
        logger.debug("Read %d bytes from %s", len(data), path)
        return cls.parse(data)

    # ------------------------------------------------------------------ #
    #  Raw structures
    # ------------------------------------------------------------------ #

    @property
    def data(self) -> bytes:
        return self._data

    @property
    def headers(self) -> NtHeaders:
        return self._headers

    @property
    def dos_header(self) -> DosHeader:
        return self._headers.dos

    @property
    def file_header(self) -> CoffFileHeader:
        return self._headers.coff

    @property
    def optional_header(self) -> OptionalHeader:
        return self._headers.optional

    @property
    def e_lfanew(self) -> int:
        return self._headers.e_lfanew

    @property
    def sections(self) -> tuple[SectionHeader, ...]:
        return self._sections

    # ------------------------------------------------------------------ #
    #  COFF accessors
    # ------------------------------------------------------------------ #

    @property
    def machine(self) -> int:
        return self._headers.coff.machine

    def architecture(self) -> str:
        """Human-readable architecture label for the COFF machine type."""
        return _ARCHITECTURE_LABELS.get(self.machine, UNKNOWN_ARCHITECTURE)

    def number_of_sections(self) -> int:
        return self._headers.coff.number_of_sections

    @property
    def timestamp(self) -> datetime:
        """Link time from the COFF header, as an aware UTC datetime."""
        return datetime.fromtimestamp(self._headers.coff.time_date_stamp, tz=timezone.utc)

    @property
    def characteristics(self) -> int:
        return self._headers.coff.characteristics

    def is_dll(self) -> bool:
        return bool(self.characteristics & IMAGE_FILE_DLL)

    # ------------------------------------------------------------------ #
    #  Optional-header accessors
    # ------------------------------------------------------------------ #

    def is_64bit(self) -> bool:
        return self._headers.optional.is_64bit

    @property
    def entry_point(self) -> int:
        return self._headers.optional.address_of_entry_point

    @property
    def image_base(self) -> int:
        return self._headers.optional.image_base

    @property
    def base_of_data(self) -> Optional[int]:
        return self._headers.optional.base_of_data

    @property
    def size_of_image(self) -> int:
        return self._headers.optional.size_of_image

    @property
    def size_of_headers(self) -> int:
        return self._headers.optional.size_of_headers

    @property
    def section_alignment(self) -> int:
        return self._headers.optional.section_alignment

    @property
    def file_alignment(self) -> int:
        return self._headers.optional.file_alignment

    @property
    def subsystem(self) -> int:
        return self._headers.optional.subsystem

    @property
    def dll_characteristics(self) -> int:
        return self._headers.optional.dll_characteristics

    @property
    def linker_version(self) -> tuple[int, int]:
        oh = self._headers.optional
        return oh.major_linker_version, oh.minor_linker_version

    @property
    def os_version(self) -> tuple[int, int]:
        oh = self._headers.optional
        return oh.major_os_version, oh.minor_os_version

    @property
    def image_version(self) -> tuple[int, int]:
        oh = self._headers.optional
        return oh.major_image_version, oh.minor_image_version

    @property
    def subsystem_version(self) -> tuple[int, int]:
        oh = self._headers.optional
        return oh.major_subsystem_version, oh.minor_subsystem_version

    def data_directory(self, index: int) -> DataDirectory:
        return self._headers.optional.data_directory(index)

    # ------------------------------------------------------------------ #
    #  Sections and tables
    # ------------------------------------------------------------------ #

    def rva_to_offset(self, rva: int) -> Optional[int]:
        """File offset of *rva*, or ``None`` if no section contains it."""
        return rva_to_offset(self._sections, rva)

    def get_section(self, name: str) -> Optional[SectionHeader]:
        return find_section(self._sections, name)

    def section_data(self, name: str) -> Optional[bytes]:
        """Raw bytes of the first section called *name*, or ``None``."""
        section = find_section(self._sections, name)
        if section is None:
            return None
        return section_data(self._data, section)

    def imports(self) -> tuple[ImportEntry, ...]:
        """Decode the import directory (empty when absent)."""
        return parse_import_table(self._data, self._sections, self._headers.optional)

    def export_directory(self) -> Optional[ExportDirectory]:
        """Decode only the 40-byte export directory header."""
        return parse_export_directory(self._data, self._sections, self._headers.optional)

    def exports(self) -> Optional[ExportTable]:
        """Decode and resolve the export directory (``None`` when absent)."""
        return parse_export_table(self._data, self._sections, self._headers.optional)

    def __repr__(self) -> str:
        return (
            f"PEImage(arch={self.architecture()!r}, "
            f"layout={self._headers.optional.kind.value}, "
            f"sections={len(self._sections)})"
        )


def parse(data: bytes) -> PEImage:
    """Module-level shorthand for :meth:`PEImage.parse`."""
    return PEImage.parse(data)
