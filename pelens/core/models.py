"""
PeLens Data Models
===================

Pydantic models describing a decoded PE image for presentation: console
tables, JSON reports and the CLI.  They are built from a
:class:`~pelens.PEImage` by :mod:`pelens.core.engine` and carry
display-ready values (hex strings, flag names), never raw buffers.

References:
    - Pydantic v2 documentation. https://docs.pydantic.dev/latest/
    - Microsoft. (2024). PE Format. Microsoft Learn.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def hex_str(value: int) -> str:
    """Format *value* as ``0x``-prefixed upper-case hex."""
    return f"0x{value:X}"


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

class SectionView(BaseModel):
    """A section header rendered for display.

    Attributes:
        name: Section name with NUL padding removed.
        virtual_size: Size in memory (hex).
        virtual_address: RVA of the first byte (hex).
        size_of_raw_data: Size on disk (hex).
        pointer_to_raw_data: File offset of the section data (hex).
        characteristics: Raw characteristics bitmask (hex).
        flags: Decoded characteristic names.
    """
    name: str = ""
    virtual_size: str = "0x0"
    virtual_address: str = "0x0"
    size_of_raw_data: str = "0x0"
    pointer_to_raw_data: str = "0x0"
    pointer_to_relocations: str = "0x0"
    pointer_to_linenumbers: str = "0x0"
    number_of_relocations: int = 0
    number_of_linenumbers: int = 0
    characteristics: str = "0x0"
    flags: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Imports / exports
# ---------------------------------------------------------------------------

class ImportedFunctionView(BaseModel):
    """One imported symbol; *name* is empty for by-ordinal imports."""
    name: str = ""
    ordinal: Optional[int] = None
    hint: Optional[int] = None
    thunk_rva: str = "0x0"


class ImportView(BaseModel):
    """A linked DLL and what is imported from it."""
    dll_name: str = ""
    original_first_thunk: str = "0x0"
    first_thunk: str = "0x0"
    time_date_stamp: int = 0
    forwarder_chain: int = 0
    functions: list[ImportedFunctionView] = Field(default_factory=list)


class ExportView(BaseModel):
    """One exported ordinal."""
    ordinal: int = 0
    rva: str = "0x0"
    name: Optional[str] = None
    forwarder: Optional[str] = None


class ExportTableView(BaseModel):
    dll_name: str = ""
    base: int = 0
    number_of_functions: int = 0
    number_of_names: int = 0
    time_date_stamp: int = 0
    version: str = "0.0"
    entries: list[ExportView] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Whole-image views
# ---------------------------------------------------------------------------

class ImageSummary(BaseModel):
    """Compact identification of an image."""
    model_config = ConfigDict(extra="ignore")

    path: str = ""
    size: int = 0
    architecture: str = ""
    layout: str = ""
    entry_point: str = "0x0"
    image_base: str = "0x0"
    timestamp: str = ""
    subsystem: str = ""


class ImageReport(ImageSummary):
    """Detailed view of an image, the default CLI and JSON output.

    Attributes:
        file_type: Guess from the file extension.
        number_of_sections: Count declared in the COFF header.
        base_of_data: PE32 only; ``None`` for PE32+.
        linker_version / os_version / image_version / subsystem_version:
            ``"major.minor"`` strings.
        characteristics: Decoded COFF characteristic names.
        dll_characteristics: Decoded DLL characteristic names.
        import_table: ``None`` when not decoded or when decoding failed.
        export_table: ``None`` when absent, not decoded or failed.
        table_errors: Decoding error per table name for failed tables.
    """
    file_type: Optional[str] = None
    number_of_sections: int = 0
    base_of_data: Optional[str] = None
    size_of_image: str = "0x0"
    size_of_headers: str = "0x0"
    section_alignment: str = "0x0"
    file_alignment: str = "0x0"
    linker_version: str = "0.0"
    os_version: str = "0.0"
    image_version: str = "0.0"
    subsystem_version: str = "0.0"
    characteristics: list[str] = Field(default_factory=list)
    dll_characteristics: list[str] = Field(default_factory=list)
    sections: list[SectionView] = Field(default_factory=list)
    import_table: Optional[list[ImportView]] = None
    export_table: Optional[ExportTableView] = None
    table_errors: dict[str, str] = Field(default_factory=dict)

    def summary(self) -> ImageSummary:
        """Project this report down to an :class:`ImageSummary`."""
        return ImageSummary.model_validate(self.model_dump(include=set(ImageSummary.model_fields)))
