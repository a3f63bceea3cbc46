"""
PE Header Chain Parser
=======================

Decodes the chained headers at the front of a Portable Executable image::

    DOS header (64 bytes, "MZ")
      └─ e_lfanew ─► "PE\\0\\0" signature
                     COFF file header (20 bytes)
                     Optional header (PE32 or PE32+), 16 data directories
                     Section table  ──► see :mod:`pelens.parsers.sections`

Each step validates its own slice through :mod:`pelens.parsers.reader`
before trusting any field, and the first failure ends the parse.

The PE32 / PE32+ split is resolved once here into a single
:class:`OptionalHeader` whose accessors are identical for both layouts;
code downstream never looks at the magic again.

References:
    - Microsoft. (2024). PE Format. Microsoft Learn.
      https://learn.microsoft.com/en-us/windows/win32/debug/pe-format
    - Pietrek, M. (1994). Peering Inside the PE: A Tour of the Win32
      Portable Executable File Format. Microsoft Systems Journal.
"""

from __future__ import annotations

import enum
import logging
import struct
from dataclasses import dataclass
from typing import Optional

from pelens.core.errors import (
    InvalidMagicError,
    InvalidPeSignatureError,
    OutOfBoundsError,
    UnsupportedOptionalHeaderError,
)
from pelens.parsers.reader import read_struct, read_u16, read_u32

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# PE Constants
# ---------------------------------------------------------------------------

DOS_MAGIC: int = 0x5A4D           # "MZ"
PE_SIGNATURE: int = 0x00004550    # "PE\0\0"

PE32_MAGIC: int = 0x10B
PE32PLUS_MAGIC: int = 0x20B

DOS_HEADER_SIZE: int = 64
E_LFANEW_OFFSET: int = 0x3C
PE_SIGNATURE_SIZE: int = 4
COFF_HEADER_SIZE: int = 20
DATA_DIRECTORY_SIZE: int = 8
NUMBER_OF_DIRECTORY_ENTRIES: int = 16

IMAGE_DIRECTORY_ENTRY_EXPORT: int = 0
IMAGE_DIRECTORY_ENTRY_IMPORT: int = 1

_DOS_FORMAT = "<14H4HHH10HI"
_COFF_FORMAT = "<HHIIIHH"

# Standard fields (PE32 carries base_of_data, PE32+ does not)
_PE32_STD_FORMAT = "<HBBIIIIII"
_PE32PLUS_STD_FORMAT = "<HBBIIIII"

# Windows-specific fields; image base and stack/heap sizes widen to 64 bit
_PE32_WIN_FORMAT = "<IIIHHHHHHIIIIHHIIIIII"
_PE32PLUS_WIN_FORMAT = "<QIIHHHHHHIIIIHHQQQQII"


# ---------------------------------------------------------------------------
# Header structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class DosHeader:
    """IMAGE_DOS_HEADER.

    Only ``e_magic`` and ``e_lfanew`` matter to a PE loader; the rest is
    legacy real-mode loader data carried for completeness.
    """
    e_magic: int
    e_cblp: int
    e_cp: int
    e_crlc: int
    e_cparhdr: int
    e_minalloc: int
    e_maxalloc: int
    e_ss: int
    e_sp: int
    e_csum: int
    e_ip: int
    e_cs: int
    e_lfarlc: int
    e_ovno: int
    e_res: tuple[int, ...]
    e_oemid: int
    e_oeminfo: int
    e_res2: tuple[int, ...]
    e_lfanew: int


@dataclass(frozen=True, slots=True)
class CoffFileHeader:
    """IMAGE_FILE_HEADER (20 bytes following the PE signature)."""
    machine: int
    number_of_sections: int
    time_date_stamp: int
    pointer_to_symbol_table: int
    number_of_symbols: int
    size_of_optional_header: int
    characteristics: int


@dataclass(frozen=True, slots=True)
class DataDirectory:
    """One ``(virtual_address, size)`` slot of the optional header.

    A zero *size* means the table is absent.
    """
    virtual_address: int = 0
    size: int = 0

    @property
    def present(self) -> bool:
        return self.size != 0


class OptionalHeaderKind(str, enum.Enum):
    """Physical layout of the optional header."""
    PE32 = "PE32"
    PE32_PLUS = "PE32+"


@dataclass(frozen=True, slots=True)
class OptionalHeader:
    """IMAGE_OPTIONAL_HEADER32 / IMAGE_OPTIONAL_HEADER64 behind one surface.

    Address-sized fields are plain ints regardless of layout.
    ``base_of_data`` is ``None`` for PE32+, which has no such field.
    """
    kind: OptionalHeaderKind
    magic: int
    major_linker_version: int
    minor_linker_version: int
    size_of_code: int
    size_of_initialized_data: int
    size_of_uninitialized_data: int
    address_of_entry_point: int
    base_of_code: int
    base_of_data: Optional[int]
    image_base: int
    section_alignment: int
    file_alignment: int
    major_os_version: int
    minor_os_version: int
    major_image_version: int
    minor_image_version: int
    major_subsystem_version: int
    minor_subsystem_version: int
    win32_version_value: int
    size_of_image: int
    size_of_headers: int
    checksum: int
    subsystem: int
    dll_characteristics: int
    size_of_stack_reserve: int
    size_of_stack_commit: int
    size_of_heap_reserve: int
    size_of_heap_commit: int
    loader_flags: int
    number_of_rva_and_sizes: int
    data_directories: tuple[DataDirectory, ...]

    @property
    def is_64bit(self) -> bool:
        return self.kind is OptionalHeaderKind.PE32_PLUS

    @property
    def pointer_size(self) -> int:
        """Width in bytes of thunks and other image-sized pointers."""
        return 8 if self.is_64bit else 4

    @property
    def ordinal_flag(self) -> int:
        """High bit of a thunk marking an import by ordinal."""
        return 1 << (self.pointer_size * 8 - 1)

    def data_directory(self, index: int) -> DataDirectory:
        """Return directory slot *index* (0 = export, 1 = import)."""
        if not 0 <= index < NUMBER_OF_DIRECTORY_ENTRIES:
            raise IndexError(f"Data directory index out of range: {index}")
        return self.data_directories[index]


@dataclass(frozen=True, slots=True)
class NtHeaders:
    """Result of the header chain: the three headers and where sections start."""
    dos: DosHeader
    coff: CoffFileHeader
    optional: OptionalHeader
    e_lfanew: int
    section_table_offset: int


# ---------------------------------------------------------------------------
# Parsing steps
# ---------------------------------------------------------------------------

def parse_dos_header(buf: bytes) -> DosHeader:
    """Validate the ``MZ`` magic and decode the 64-byte DOS header."""
    if len(buf) < DOS_HEADER_SIZE:
        raise OutOfBoundsError(0, DOS_HEADER_SIZE, len(buf))

    magic = read_u16(buf, 0)
    if magic != DOS_MAGIC:
        raise InvalidMagicError(magic)

    f = read_struct(buf, 0, _DOS_FORMAT)
    return DosHeader(
        e_magic=f[0], e_cblp=f[1], e_cp=f[2], e_crlc=f[3],
        e_cparhdr=f[4], e_minalloc=f[5], e_maxalloc=f[6], e_ss=f[7],
        e_sp=f[8], e_csum=f[9], e_ip=f[10], e_cs=f[11],
        e_lfarlc=f[12], e_ovno=f[13],
        e_res=tuple(f[14:18]),
        e_oemid=f[18], e_oeminfo=f[19],
        e_res2=tuple(f[20:30]),
        e_lfanew=f[30],
    )


def verify_pe_signature(buf: bytes, e_lfanew: int) -> None:
    """Require ``PE\\0\\0`` at *e_lfanew*."""
    signature = read_u32(buf, e_lfanew)
    if signature != PE_SIGNATURE:
        raise InvalidPeSignatureError(signature)


def parse_coff_header(buf: bytes, offset: int) -> CoffFileHeader:
    """Decode the 20-byte COFF file header at *offset*."""
    return CoffFileHeader(*read_struct(buf, offset, _COFF_FORMAT))


def parse_data_directories(
    buf: bytes, offset: int, count: int
) -> tuple[DataDirectory, ...]:
    """Decode up to 16 directory slots; slots beyond *count* are absent."""
    count = min(count, NUMBER_OF_DIRECTORY_ENTRIES)
    slots: list[DataDirectory] = []
    for i in range(count):
        rva, size = read_struct(buf, offset + i * DATA_DIRECTORY_SIZE, "<II")
        slots.append(DataDirectory(rva, size))
    slots.extend(DataDirectory() for _ in range(NUMBER_OF_DIRECTORY_ENTRIES - count))
    return tuple(slots)


def parse_optional_header(buf: bytes, offset: int) -> OptionalHeader:
    """Dispatch on the optional-header magic and decode the matching layout.

    Raises:
        UnsupportedOptionalHeaderError: Magic is neither 0x10B nor 0x20B.
    """
    magic = read_u16(buf, offset)

    if magic == PE32_MAGIC:
        kind = OptionalHeaderKind.PE32
        std = read_struct(buf, offset, _PE32_STD_FORMAT)
        base_of_data: Optional[int] = std[8]
        win_offset = offset + struct.calcsize(_PE32_STD_FORMAT)
        win_format = _PE32_WIN_FORMAT
    elif magic == PE32PLUS_MAGIC:
        kind = OptionalHeaderKind.PE32_PLUS
        std = read_struct(buf, offset, _PE32PLUS_STD_FORMAT)
        base_of_data = None
        win_offset = offset + struct.calcsize(_PE32PLUS_STD_FORMAT)
        win_format = _PE32PLUS_WIN_FORMAT
    else:
        raise UnsupportedOptionalHeaderError(magic)

    win = read_struct(buf, win_offset, win_format)
    directories = parse_data_directories(
        buf, win_offset + struct.calcsize(win_format), win[20]
    )

    return OptionalHeader(
        kind=kind,
        magic=std[0],
        major_linker_version=std[1],
        minor_linker_version=std[2],
        size_of_code=std[3],
        size_of_initialized_data=std[4],
        size_of_uninitialized_data=std[5],
        address_of_entry_point=std[6],
        base_of_code=std[7],
        base_of_data=base_of_data,
        image_base=win[0],
        section_alignment=win[1],
        file_alignment=win[2],
        major_os_version=win[3],
        minor_os_version=win[4],
        major_image_version=win[5],
        minor_image_version=win[6],
        major_subsystem_version=win[7],
        minor_subsystem_version=win[8],
        win32_version_value=win[9],
        size_of_image=win[10],
        size_of_headers=win[11],
        checksum=win[12],
        subsystem=win[13],
        dll_characteristics=win[14],
        size_of_stack_reserve=win[15],
        size_of_stack_commit=win[16],
        size_of_heap_reserve=win[17],
        size_of_heap_commit=win[18],
        loader_flags=win[19],
        number_of_rva_and_sizes=win[20],
        data_directories=directories,
    )


def parse_headers(buf: bytes) -> NtHeaders:
    """Run the full header chain over *buf*.

    Returns:
        :class:`NtHeaders` including the file offset of the section table.

    Raises:
        OutOfBoundsError: The buffer ends before a header does.
        InvalidMagicError: No ``MZ`` at offset 0.
        InvalidPeSignatureError: No ``PE\\0\\0`` at ``e_lfanew``.
        UnsupportedOptionalHeaderError: Unknown optional-header magic.
    """
    dos = parse_dos_header(buf)
    e_lfanew = dos.e_lfanew
    verify_pe_signature(buf, e_lfanew)

    coff_offset = e_lfanew + PE_SIGNATURE_SIZE
    coff = parse_coff_header(buf, coff_offset)

    optional_offset = coff_offset + COFF_HEADER_SIZE
    optional = parse_optional_header(buf, optional_offset)

    section_table_offset = optional_offset + coff.size_of_optional_header
    logger.debug(
        "Headers decoded: e_lfanew=0x%X machine=0x%04X sections=%d layout=%s",
        e_lfanew, coff.machine, coff.number_of_sections, optional.kind.value,
    )

    return NtHeaders(
        dos=dos,
        coff=coff,
        optional=optional,
        e_lfanew=e_lfanew,
        section_table_offset=section_table_offset,
    )
