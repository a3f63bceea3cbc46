"""
Section Table Parser and Address Translator
============================================

The section table is an array of 40-byte IMAGE_SECTION_HEADER records
that starts right after the optional header.  Its declaration order is
kept: lookups return the first matching section.

Address translation policy
--------------------------
An RVA belongs to a section when it lies in the half-open range
``[virtual_address, virtual_address + virtual_size)``: the first byte of
a section is inside it, the byte at ``virtual_address + virtual_size`` is
not.  RVAs owned by no section (including the header region) translate
to ``None``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from pelens.core.errors import InvalidTableOffsetError
from pelens.parsers.reader import read_bytes, read_struct

logger = logging.getLogger(__name__)

SECTION_HEADER_SIZE: int = 40
SECTION_NAME_SIZE: int = 8

_SECTION_FORMAT = "<8sIIIIIIHHI"


@dataclass(frozen=True, slots=True)
class SectionHeader:
    """IMAGE_SECTION_HEADER.

    ``raw_name`` keeps the eight on-disk bytes; ``name`` is the display
    form with NUL padding removed.
    """
    raw_name: bytes
    virtual_size: int
    virtual_address: int
    size_of_raw_data: int
    pointer_to_raw_data: int
    pointer_to_relocations: int
    pointer_to_linenumbers: int
    number_of_relocations: int
    number_of_linenumbers: int
    characteristics: int

    @property
    def name(self) -> str:
        # An 8-character name has no terminator; split() leaves it whole.
        return self.raw_name.split(b"\x00", 1)[0].decode("utf-8", errors="replace")

    @property
    def virtual_end(self) -> int:
        return self.virtual_address + self.virtual_size

    def contains_rva(self, rva: int) -> bool:
        return self.virtual_address <= rva < self.virtual_end


def parse_section_header(buf: bytes, offset: int) -> SectionHeader:
    """Decode one 40-byte section header at *offset*."""
    return SectionHeader(*read_struct(buf, offset, _SECTION_FORMAT))


def parse_section_table(buf: bytes, offset: int, count: int) -> tuple[SectionHeader, ...]:
    """Decode *count* section headers starting at *offset*.

    Each record is bounds-checked on its own, so a truncated table fails
    on the first record that is missing.

    Raises:
        OutOfBoundsError: A record extends past the end of *buf*.
    """
    sections = tuple(
        parse_section_header(buf, offset + i * SECTION_HEADER_SIZE)
        for i in range(count)
    )
    logger.debug("Section table at 0x%X: %d entries", offset, len(sections))
    return sections


def rva_to_offset(sections: Sequence[SectionHeader], rva: int) -> Optional[int]:
    """Translate *rva* to a file offset, or ``None`` when no section owns it."""
    for section in sections:
        if section.contains_rva(rva):
            return section.pointer_to_raw_data + (rva - section.virtual_address)
    return None


def resolve_rva(sections: Sequence[SectionHeader], rva: int, buf_len: int) -> int:
    """Like :func:`rva_to_offset` but failing loudly.

    Raises:
        InvalidTableOffsetError: No owning section, or the translated
            offset is not inside the buffer.
    """
    offset = rva_to_offset(sections, rva)
    if offset is None:
        raise InvalidTableOffsetError(rva, "no section contains this RVA")
    if offset >= buf_len:
        raise InvalidTableOffsetError(rva, f"file offset 0x{offset:X} beyond end of file")
    return offset


def find_section(sections: Sequence[SectionHeader], name: str) -> Optional[SectionHeader]:
    """Return the first section called *name*."""
    for section in sections:
        if section.name == name:
            return section
    return None


def section_data(buf: bytes, section: SectionHeader) -> bytes:
    """Return the raw on-disk bytes of *section*."""
    return read_bytes(buf, section.pointer_to_raw_data, section.size_of_raw_data)
