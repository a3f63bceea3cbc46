"""Unit tests for pelens/parsers/headers.py: the DOS -> PE -> optional header chain."""
import struct

import pytest

from pelens.core.errors import (
    InvalidMagicError,
    InvalidPeSignatureError,
    OutOfBoundsError,
    UnsupportedOptionalHeaderError,
)
from pelens.parsers.headers import (
    NUMBER_OF_DIRECTORY_ENTRIES,
    DataDirectory,
    OptionalHeaderKind,
    parse_dos_header,
    parse_headers,
)
from tests.pe_builder import E_LFANEW, ImageSpec, build_pe


def _patch(buf, offset, payload):
    data = bytearray(buf)
    data[offset:offset + len(payload)] = payload
    return bytes(data)


class TestDosHeader:
    def test_empty_input_is_out_of_bounds(self):
        with pytest.raises(OutOfBoundsError) as info:
            parse_dos_header(b"")
        assert info.value.expected == 64
        assert info.value.found == 0

    def test_short_input_checked_before_magic(self):
        # 63 bytes starting with garbage: the length failure wins.
        with pytest.raises(OutOfBoundsError):
            parse_dos_header(b"XX" + bytes(61))

    def test_bad_magic(self, pe64_bytes):
        with pytest.raises(InvalidMagicError) as info:
            parse_headers(_patch(pe64_bytes, 0, b"ZM"))
        assert info.value.magic == 0x4D5A
        assert "0x4D5A" in str(info.value)

    def test_fields_decoded(self, pe64_bytes):
        dos = parse_dos_header(pe64_bytes)
        assert dos.e_magic == 0x5A4D
        assert dos.e_lfanew == E_LFANEW
        assert len(dos.e_res) == 4
        assert len(dos.e_res2) == 10


class TestSignatureAndCoff:
    def test_bad_pe_signature(self, pe64_bytes):
        with pytest.raises(InvalidPeSignatureError) as info:
            parse_headers(_patch(pe64_bytes, E_LFANEW, b"NE\x00\x00"))
        assert info.value.signature == 0x0000454E

    def test_e_lfanew_past_end(self, pe64_bytes):
        patched = _patch(pe64_bytes, 0x3C, struct.pack("<I", 0xFFFFFF))
        with pytest.raises(OutOfBoundsError):
            parse_headers(patched)

    def test_truncated_coff_header(self, pe64_bytes):
        with pytest.raises(OutOfBoundsError):
            parse_headers(pe64_bytes[:E_LFANEW + 4 + 10])

    def test_coff_fields(self, pe64_bytes):
        headers = parse_headers(pe64_bytes)
        assert headers.coff.machine == 0x8664
        assert headers.coff.number_of_sections == 2
        assert headers.coff.size_of_optional_header == 240
        assert headers.e_lfanew == E_LFANEW


class TestOptionalHeader:
    def test_pe32_plus_layout(self, pe64_bytes):
        optional = parse_headers(pe64_bytes).optional
        assert optional.kind is OptionalHeaderKind.PE32_PLUS
        assert optional.is_64bit
        assert optional.pointer_size == 8
        assert optional.ordinal_flag == 1 << 63
        assert optional.base_of_data is None
        assert optional.image_base == 0x140000000
        assert optional.address_of_entry_point == 0x1000

    def test_pe32_layout(self, pe32_bytes):
        optional = parse_headers(pe32_bytes).optional
        assert optional.kind is OptionalHeaderKind.PE32
        assert not optional.is_64bit
        assert optional.pointer_size == 4
        assert optional.ordinal_flag == 1 << 31
        assert optional.base_of_data == 0x2000
        assert optional.image_base == 0x400000

    def test_unknown_magic(self):
        with pytest.raises(UnsupportedOptionalHeaderError) as info:
            parse_headers(build_pe(ImageSpec(optional_magic=0x0000)))
        assert info.value.magic == 0

    def test_rom_magic_is_unsupported(self):
        with pytest.raises(UnsupportedOptionalHeaderError):
            parse_headers(build_pe(ImageSpec(optional_magic=0x107)))

    def test_section_table_follows_optional_header(self, pe64_bytes, pe32_bytes):
        assert parse_headers(pe64_bytes).section_table_offset == E_LFANEW + 24 + 240
        assert parse_headers(pe32_bytes).section_table_offset == E_LFANEW + 24 + 224


class TestDataDirectories:
    def test_sixteen_slots(self, pe64_bytes):
        optional = parse_headers(pe64_bytes).optional
        assert len(optional.data_directories) == NUMBER_OF_DIRECTORY_ENTRIES
        assert optional.data_directory(1).present
        assert not optional.data_directory(0).present

    def test_short_count_pads_with_absent_slots(self):
        spec = ImageSpec(
            directories={0: (0x3000, 0x40), 5: (0x5000, 0x10)},
            number_of_rva_and_sizes=2,
        )
        optional = parse_headers(build_pe(spec)).optional
        assert len(optional.data_directories) == NUMBER_OF_DIRECTORY_ENTRIES
        assert optional.data_directory(0) == DataDirectory(0x3000, 0x40)
        assert optional.data_directory(5) == DataDirectory()

    def test_oversized_count_is_capped(self):
        spec = ImageSpec(number_of_rva_and_sizes=0x1000)
        optional = parse_headers(build_pe(spec)).optional
        assert len(optional.data_directories) == NUMBER_OF_DIRECTORY_ENTRIES

    def test_index_out_of_range(self, pe64_bytes):
        optional = parse_headers(pe64_bytes).optional
        with pytest.raises(IndexError):
            optional.data_directory(16)
