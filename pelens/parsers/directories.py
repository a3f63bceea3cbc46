"""
Directory Table Walker
=======================

Decodes the import and export directories referenced by data-directory
slots 1 and 0.  Both follow the same shape:

    1. translate the slot's RVA to a file offset via the section table;
    2. bounds-check ``size`` bytes at that offset;
    3. decode fixed-size records from the checked region.

Import directory
    An array of 20-byte IMAGE_IMPORT_DESCRIPTOR records.  The walk ends
    at the first all-zero descriptor or at the end of the declared size,
    whichever comes first.  Each descriptor's DLL name and thunk array
    are resolved; thunks are pointer-sized (4 bytes for PE32, 8 for
    PE32+) and end at a zero thunk.

Export directory
    A single 40-byte IMAGE_EXPORT_DIRECTORY whose three arrays (function
    RVAs, name RVAs, name ordinals) are resolved into one entry per
    exported ordinal.

Any offset or length that does not fit the buffer aborts the whole
table with :class:`~pelens.core.errors.InvalidTableOffsetError`; a table
is never returned half-decoded.

References:
    - Microsoft. (2024). PE Format, "The .idata Section" and
      "The .edata Section". Microsoft Learn.
"""

from __future__ import annotations

import logging
import struct
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Sequence

from pelens.core.errors import InvalidTableOffsetError, OutOfBoundsError
from pelens.parsers.headers import (
    IMAGE_DIRECTORY_ENTRY_EXPORT,
    IMAGE_DIRECTORY_ENTRY_IMPORT,
    DataDirectory,
    OptionalHeader,
)
from pelens.parsers.reader import (
    read_cstring,
    read_struct,
    read_u16,
    read_uint,
)
from pelens.parsers.sections import SectionHeader, resolve_rva

logger = logging.getLogger(__name__)

IMPORT_DESCRIPTOR_SIZE: int = 20
EXPORT_DIRECTORY_SIZE: int = 40

_IMPORT_DESCRIPTOR_FORMAT = "<IIIII"
_EXPORT_DIRECTORY_FORMAT = "<IIHHIIIIIII"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ImportDescriptor:
    """IMAGE_IMPORT_DESCRIPTOR."""
    original_first_thunk: int
    time_date_stamp: int
    forwarder_chain: int
    name_rva: int
    first_thunk: int

    @property
    def is_terminator(self) -> bool:
        return not (
            self.original_first_thunk or self.time_date_stamp
            or self.forwarder_chain or self.name_rva or self.first_thunk
        )


@dataclass(frozen=True, slots=True)
class ImportedFunction:
    """One thunk of an import lookup table.

    Exactly one of *name* / *ordinal* is set; *hint* accompanies *name*.
    """
    thunk_rva: int
    name: Optional[str] = None
    hint: Optional[int] = None
    ordinal: Optional[int] = None

    @property
    def by_ordinal(self) -> bool:
        return self.ordinal is not None


@dataclass(frozen=True, slots=True)
class ImportEntry:
    """A linked DLL with the functions imported from it."""
    dll_name: str
    descriptor: ImportDescriptor
    functions: tuple[ImportedFunction, ...]


@dataclass(frozen=True, slots=True)
class ExportDirectory:
    """IMAGE_EXPORT_DIRECTORY."""
    characteristics: int
    time_date_stamp: int
    major_version: int
    minor_version: int
    name_rva: int
    base: int
    number_of_functions: int
    number_of_names: int
    address_of_functions: int
    address_of_names: int
    address_of_name_ordinals: int


@dataclass(frozen=True, slots=True)
class ExportEntry:
    """An exported ordinal.

    *name* is ``None`` for ordinal-only exports; *forwarder* holds the
    ``"DLL.Symbol"`` target when the export is forwarded elsewhere.
    """
    ordinal: int
    rva: int
    name: Optional[str] = None
    forwarder: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ExportTable:
    dll_name: str
    directory: ExportDirectory
    entries: tuple[ExportEntry, ...]


# ---------------------------------------------------------------------------
# Generic walking helpers
# ---------------------------------------------------------------------------

@contextmanager
def table_bounds(rva: int) -> Iterator[None]:
    """Re-raise primitive bounds failures as a failure of the table at *rva*."""
    try:
        yield
    except OutOfBoundsError as exc:
        raise InvalidTableOffsetError(rva, str(exc)) from exc


def directory_region(
    buf: bytes,
    sections: Sequence[SectionHeader],
    directory: DataDirectory,
) -> int:
    """Translate *directory* to a file offset and check its full extent fits.

    Returns:
        File offset of the first byte of the table.
    """
    offset = resolve_rva(sections, directory.virtual_address, len(buf))
    if offset + directory.size > len(buf):
        raise InvalidTableOffsetError(
            directory.virtual_address,
            f"{directory.size} bytes at 0x{offset:X} exceed file size {len(buf)}",
        )
    return offset


def iter_records(
    buf: bytes,
    offset: int,
    size: int,
    fmt: str,
    stop: Optional[Callable[[tuple], bool]] = None,
) -> Iterator[tuple]:
    """Yield fixed-size records from ``buf[offset:offset + size]``.

    Iteration ends when fewer than one record's bytes remain in the region
    or when *stop* returns true for a record (that record is not yielded).
    """
    record_size = struct.calcsize(fmt)
    position = offset
    end = offset + size
    while position + record_size <= end:
        record = read_struct(buf, position, fmt)
        if stop is not None and stop(record):
            return
        yield record
        position += record_size


def read_rva_string(buf: bytes, sections: Sequence[SectionHeader], rva: int) -> str:
    """Read the NUL-terminated string at *rva*."""
    return read_cstring(buf, resolve_rva(sections, rva, len(buf)))


# ---------------------------------------------------------------------------
# Import directory
# ---------------------------------------------------------------------------

def iter_import_descriptors(
    buf: bytes,
    sections: Sequence[SectionHeader],
    directory: DataDirectory,
) -> Iterator[ImportDescriptor]:
    """Yield import descriptors up to the null terminator or declared size."""
    offset = directory_region(buf, sections, directory)
    for record in iter_records(
        buf, offset, directory.size, _IMPORT_DESCRIPTOR_FORMAT,
        stop=lambda r: ImportDescriptor(*r).is_terminator,
    ):
        yield ImportDescriptor(*record)


def parse_thunks(
    buf: bytes,
    sections: Sequence[SectionHeader],
    optional: OptionalHeader,
    thunk_rva: int,
) -> tuple[ImportedFunction, ...]:
    """Decode the zero-terminated thunk array starting at *thunk_rva*."""
    if thunk_rva == 0:
        return ()

    width = optional.pointer_size
    ordinal_flag = optional.ordinal_flag
    offset = resolve_rva(sections, thunk_rva, len(buf))
    functions: list[ImportedFunction] = []

    with table_bounds(thunk_rva):
        index = 0
        while True:
            value = read_uint(buf, offset + index * width, width)
            if value == 0:
                break
            entry_rva = thunk_rva + index * width
            if value & ordinal_flag:
                functions.append(ImportedFunction(entry_rva, ordinal=value & 0xFFFF))
            else:
                hint_offset = resolve_rva(sections, value & 0x7FFFFFFF, len(buf))
                functions.append(ImportedFunction(
                    entry_rva,
                    name=read_cstring(buf, hint_offset + 2),
                    hint=read_u16(buf, hint_offset),
                ))
            index += 1

    return tuple(functions)


def parse_import_table(
    buf: bytes,
    sections: Sequence[SectionHeader],
    optional: OptionalHeader,
) -> tuple[ImportEntry, ...]:
    """Decode the import directory into one :class:`ImportEntry` per DLL.

    Returns an empty tuple when the import directory is absent.

    Raises:
        InvalidTableOffsetError: A descriptor, name or thunk is unreachable.
        InvalidDllNameError: A DLL or function name is not valid UTF-8.
    """
    directory = optional.data_directory(IMAGE_DIRECTORY_ENTRY_IMPORT)
    if not directory.present:
        return ()

    entries: list[ImportEntry] = []
    # Descriptors may share a lookup table; each distinct one is decoded once.
    thunk_cache: dict[int, tuple[ImportedFunction, ...]] = {}
    with table_bounds(directory.virtual_address):
        for descriptor in iter_import_descriptors(buf, sections, directory):
            dll_name = read_rva_string(buf, sections, descriptor.name_rva)
            lookup_rva = descriptor.original_first_thunk or descriptor.first_thunk
            functions = thunk_cache.get(lookup_rva)
            if functions is None:
                functions = parse_thunks(buf, sections, optional, lookup_rva)
                thunk_cache[lookup_rva] = functions
            entries.append(ImportEntry(dll_name, descriptor, functions))

    logger.debug("Import table: %d DLLs", len(entries))
    return tuple(entries)


# ---------------------------------------------------------------------------
# Export directory
# ---------------------------------------------------------------------------

def parse_export_directory(
    buf: bytes,
    sections: Sequence[SectionHeader],
    optional: OptionalHeader,
) -> Optional[ExportDirectory]:
    """Decode the 40-byte export directory header, or ``None`` if absent."""
    directory = optional.data_directory(IMAGE_DIRECTORY_ENTRY_EXPORT)
    if not directory.present:
        return None

    offset = directory_region(buf, sections, directory)
    if directory.size < EXPORT_DIRECTORY_SIZE:
        raise InvalidTableOffsetError(
            directory.virtual_address,
            f"export directory size {directory.size} is smaller than its header",
        )
    with table_bounds(directory.virtual_address):
        return ExportDirectory(*read_struct(buf, offset, _EXPORT_DIRECTORY_FORMAT))


def _read_array(
    buf: bytes,
    sections: Sequence[SectionHeader],
    rva: int,
    count: int,
    code: str,
) -> tuple[int, ...]:
    """Read *count* integers of struct type *code* at *rva* in one checked span."""
    if count == 0:
        return ()
    offset = resolve_rva(sections, rva, len(buf))
    with table_bounds(rva):
        return read_struct(buf, offset, f"<{count}{code}")


def parse_export_table(
    buf: bytes,
    sections: Sequence[SectionHeader],
    optional: OptionalHeader,
) -> Optional[ExportTable]:
    """Resolve the export directory into named / ordinal / forwarded entries.

    Returns ``None`` when the export directory is absent.  Entries are in
    ordinal order; unused (zero) function slots are skipped.

    Raises:
        InvalidTableOffsetError: An array or name lies outside the file,
            or a name ordinal indexes past the function array.
        InvalidDllNameError: A name is not valid UTF-8.
    """
    header = parse_export_directory(buf, sections, optional)
    if header is None:
        return None
    directory = optional.data_directory(IMAGE_DIRECTORY_ENTRY_EXPORT)

    with table_bounds(directory.virtual_address):
        dll_name = read_rva_string(buf, sections, header.name_rva) if header.name_rva else ""

        function_rvas = _read_array(
            buf, sections, header.address_of_functions, header.number_of_functions, "I"
        )
        name_rvas = _read_array(
            buf, sections, header.address_of_names, header.number_of_names, "I"
        )
        name_ordinals = _read_array(
            buf, sections, header.address_of_name_ordinals, header.number_of_names, "H"
        )

        names: dict[int, str] = {}
        for name_rva, index in zip(name_rvas, name_ordinals):
            if index >= len(function_rvas):
                raise InvalidTableOffsetError(
                    header.address_of_name_ordinals,
                    f"name ordinal {index} exceeds {len(function_rvas)} functions",
                )
            names.setdefault(index, read_rva_string(buf, sections, name_rva))

        entries: list[ExportEntry] = []
        export_start = directory.virtual_address
        export_end = export_start + directory.size
        for index, rva in enumerate(function_rvas):
            if rva == 0:
                continue
            forwarder = None
            if export_start <= rva < export_end:
                forwarder = read_rva_string(buf, sections, rva)
            entries.append(ExportEntry(
                ordinal=header.base + index,
                rva=rva,
                name=names.get(index),
                forwarder=forwarder,
            ))

    logger.debug("Export table %r: %d entries", dll_name, len(entries))
    return ExportTable(dll_name, header, tuple(entries))
