"""Unit tests for pelens/parsers/directories.py: import and export table walks."""
import struct

import pytest

from pelens.core.errors import (
    InvalidDllNameError,
    InvalidTableOffsetError,
    OutOfBoundsError,
)
from pelens.parsers.directories import iter_records, table_bounds
from pelens.parsers.pe_image import PEImage
from tests.pe_builder import (
    ImageSpec,
    Section,
    build_export_section,
    build_import_section,
    build_pe,
)

IMPORTS = {
    "KERNEL32.dll": ["ExitProcess", "GetStdHandle", 17],
    "USER32.dll": ["MessageBoxA"],
}


def _import_image(data, directory, is64=True):
    spec = ImageSpec(
        is64=is64,
        machine=0x8664 if is64 else 0x14C,
        sections=[Section(b".idata", 0x2000, data)],
        directories={1: directory},
    )
    return PEImage.parse(build_pe(spec))


def _export_image(data, directory):
    spec = ImageSpec(
        sections=[
            Section(b".text", 0x1000, b"\xC3" * 0x40, 0x60000020),
            Section(b".edata", 0x3000, data),
        ],
        directories={0: directory},
    )
    return PEImage.parse(build_pe(spec))


def _patch(data, offset, fmt, value):
    buf = bytearray(data)
    struct.pack_into(fmt, buf, offset, value)
    return bytes(buf)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestHelpers:
    def test_iter_records_stops_at_region_end(self):
        buf = struct.pack("<5I", 1, 2, 3, 4, 5)
        assert list(iter_records(buf, 0, 18, "<I")) == [(1,), (2,), (3,), (4,)]

    def test_iter_records_stop_predicate(self):
        buf = struct.pack("<4I", 1, 2, 0, 4)
        assert list(iter_records(buf, 0, 16, "<I", stop=lambda r: r[0] == 0)) == [(1,), (2,)]

    def test_table_bounds_converts_out_of_bounds(self):
        with pytest.raises(InvalidTableOffsetError) as info:
            with table_bounds(0x2000):
                raise OutOfBoundsError(0x10, 4, 0)
        assert info.value.rva == 0x2000
        assert isinstance(info.value.__cause__, OutOfBoundsError)


# ---------------------------------------------------------------------------
# Imports
# ---------------------------------------------------------------------------

class TestImportTable:
    @pytest.mark.parametrize("is64", [True, False])
    def test_names_and_ordinals(self, is64):
        data, rva, size = build_import_section(0x2000, IMPORTS, is64=is64)
        entries = _import_image(data, (rva, size), is64=is64).imports()

        assert [e.dll_name for e in entries] == ["KERNEL32.dll", "USER32.dll"]
        kernel32 = entries[0].functions
        assert [f.name for f in kernel32] == ["ExitProcess", "GetStdHandle", None]
        assert kernel32[2].ordinal == 17
        assert kernel32[2].by_ordinal
        assert kernel32[2].hint is None
        assert not kernel32[0].by_ordinal
        assert entries[1].functions[0].name == "MessageBoxA"
        assert entries[1].functions[0].hint == 1

    def test_thunk_rvas_step_by_pointer_width(self):
        data, rva, size = build_import_section(0x2000, IMPORTS, is64=True)
        functions = _import_image(data, (rva, size)).imports()[0].functions
        first = functions[0].thunk_rva
        assert [f.thunk_rva - first for f in functions] == [0, 8, 16]

    def test_absent_directory_gives_empty_tuple(self):
        image = PEImage.parse(build_pe(ImageSpec()))
        assert image.imports() == ()

    def test_terminator_ends_walk_before_declared_size(self):
        data, rva, _ = build_import_section(0x2000, IMPORTS)
        entries = _import_image(data, (rva, len(data))).imports()
        assert len(entries) == 2

    def test_declared_size_ends_walk_without_terminator(self):
        data, rva, _ = build_import_section(0x2000, IMPORTS)
        entries = _import_image(data, (rva, 20)).imports()
        assert [e.dll_name for e in entries] == ["KERNEL32.dll"]

    def test_first_thunk_used_when_lookup_table_missing(self):
        data, rva, size = build_import_section(0x2000, IMPORTS)
        data = _patch(data, 0, "<I", 0)
        entries = _import_image(data, (rva, size)).imports()
        assert entries[0].descriptor.original_first_thunk == 0
        assert len(entries[0].functions) == 3

    def test_shared_lookup_table_decoded_once(self):
        data, rva, size = build_import_section(0x2000, IMPORTS)
        kernel32_ilt = struct.unpack_from("<I", data, 0)[0]
        data = _patch(data, 20, "<I", kernel32_ilt)
        entries = _import_image(data, (rva, size)).imports()
        assert entries[1].dll_name == "USER32.dll"
        assert entries[1].functions is entries[0].functions

    def test_directory_outside_every_section(self):
        data, _, size = build_import_section(0x2000, IMPORTS)
        with pytest.raises(InvalidTableOffsetError) as info:
            _import_image(data, (0x9000, size)).imports()
        assert info.value.rva == 0x9000

    def test_directory_size_past_end_of_file(self):
        data, rva, _ = build_import_section(0x2000, IMPORTS)
        with pytest.raises(InvalidTableOffsetError):
            _import_image(data, (rva, 0x100000)).imports()

    def test_unreachable_dll_name(self):
        data, rva, size = build_import_section(0x2000, IMPORTS)
        data = _patch(data, 12, "<I", 0x7000)
        with pytest.raises(InvalidTableOffsetError):
            _import_image(data, (rva, size)).imports()

    def test_invalid_utf8_dll_name(self):
        data, rva, size = build_import_section(0x2000, IMPORTS)
        data = data.replace(b"USER32.dll", b"\xffSER32.dll")
        with pytest.raises(InvalidDllNameError):
            _import_image(data, (rva, size)).imports()


# ---------------------------------------------------------------------------
# Exports
# ---------------------------------------------------------------------------

FUNCTIONS = [("Alpha", 0x1000), (None, 0x1010), ("Beta", 0x1020), ("Fwd", "OTHER.Target")]


class TestExportTable:
    def test_entries(self, dll64):
        table = dll64.exports()
        assert table.dll_name == "sample.dll"
        assert table.directory.number_of_functions == 4
        assert table.directory.number_of_names == 3

        by_ordinal = {e.ordinal: e for e in table.entries}
        assert sorted(by_ordinal) == [1, 2, 3, 4]
        assert by_ordinal[1].name == "Alpha"
        assert by_ordinal[1].rva == 0x1000
        assert by_ordinal[1].forwarder is None
        assert by_ordinal[2].name is None
        assert by_ordinal[3].name == "Beta"
        assert by_ordinal[4].name == "Fwd"
        assert by_ordinal[4].forwarder == "OTHER.Target"

    def test_export_directory_only(self, dll64):
        directory = dll64.export_directory()
        assert directory.base == 1
        assert directory.time_date_stamp == 0x12345678

    def test_absent(self, pe64):
        assert pe64.exports() is None
        assert pe64.export_directory() is None

    def test_ordinal_base(self):
        data, rva, size = build_export_section(0x3000, "x.dll", FUNCTIONS, ordinal_base=10)
        ordinals = [e.ordinal for e in _export_image(data, (rva, size)).exports().entries]
        assert ordinals == [10, 11, 12, 13]

    def test_zero_function_slots_skipped(self):
        data, rva, size = build_export_section(0x3000, "x.dll", [("A", 0x1000), (None, 0), ("B", 0x1004)])
        entries = _export_image(data, (rva, size)).exports().entries
        assert [(e.ordinal, e.name) for e in entries] == [(1, "A"), (3, "B")]

    def test_missing_dll_name(self):
        data, rva, size = build_export_section(0x3000, "x.dll", FUNCTIONS)
        data = _patch(data, 12, "<I", 0)
        assert _export_image(data, (rva, size)).exports().dll_name == ""

    def test_directory_smaller_than_header(self):
        data, rva, _ = build_export_section(0x3000, "x.dll", FUNCTIONS)
        with pytest.raises(InvalidTableOffsetError):
            _export_image(data, (rva, 20)).exports()

    def test_name_ordinal_past_function_array(self):
        data, rva, size = build_export_section(0x3000, "x.dll", FUNCTIONS)
        ordinals_offset = 40 + 4 * len(FUNCTIONS) + 4 * 3
        data = _patch(data, ordinals_offset, "<H", 99)
        with pytest.raises(InvalidTableOffsetError):
            _export_image(data, (rva, size)).exports()

    def test_function_array_past_end_of_file(self):
        data, rva, size = build_export_section(0x3000, "x.dll", FUNCTIONS)
        # NumberOfFunctions inflated so the array overruns the file.
        data = _patch(data, 20, "<I", 0x100000)
        with pytest.raises(InvalidTableOffsetError):
            _export_image(data, (rva, size)).exports()
