"""Unit tests for pelens/parsers/pe_image.py: the PEImage facade."""
from datetime import datetime, timezone

import pytest

import pelens
from pelens.core.errors import PEError, PEIOError
from pelens.parsers.pe_image import PEImage, parse
from tests.pe_builder import MACHINE_ARM64, ImageSpec, Section, build_pe


class TestIdentification:
    def test_x64(self, pe64):
        assert pe64.architecture() == "x64 (64-bit)"
        assert pe64.is_64bit()
        assert pe64.base_of_data is None

    def test_x86(self, pe32):
        assert pe32.architecture() == "x86 (32-bit)"
        assert not pe32.is_64bit()
        assert pe32.base_of_data == 0x2000

    @pytest.mark.parametrize("machine, label", [
        (0x1C0, "ARM"),
        (MACHINE_ARM64, "ARM64"),
        (0x1234, "Unknown architecture"),
        (0x0000, "Unknown architecture"),
    ])
    def test_architecture_labels(self, machine, label):
        image = PEImage.parse(build_pe(ImageSpec(machine=machine)))
        assert image.architecture() == label

    def test_number_of_sections(self, pe64):
        assert pe64.number_of_sections() == 2
        assert len(pe64.sections) == 2

    def test_text_section_present(self, pe64):
        text = pe64.get_section(".text")
        assert text is not None
        assert text.virtual_size > 0

    def test_is_dll(self, pe64, dll64):
        assert not pe64.is_dll()
        assert dll64.is_dll()

    def test_timestamp_is_utc(self, pe64):
        assert pe64.timestamp == datetime.fromtimestamp(0x5F5E1000, tz=timezone.utc)

    def test_versions(self, pe64):
        assert pe64.linker_version == (14, 29)
        assert pe64.os_version == (6, 0)
        assert pe64.subsystem_version == (6, 0)
        assert pe64.subsystem == 3

    def test_repr(self, pe64):
        assert repr(pe64) == "PEImage(arch='x64 (64-bit)', layout=PE32+, sections=2)"


class TestAddressing:
    def test_entry_point_translates_into_text(self, pe64):
        assert pe64.rva_to_offset(pe64.entry_point) == pe64.get_section(".text").pointer_to_raw_data

    def test_untranslatable_rva(self, pe64):
        assert pe64.rva_to_offset(0x50) is None

    def test_section_data(self, pe64):
        data = pe64.section_data(".text")
        assert data.startswith(b"\xC3" * 0x40)
        assert pe64.section_data(".bss") is None

    def test_data_directory(self, pe64):
        assert pe64.data_directory(1).virtual_address == 0x2000


class TestConstruction:
    def test_module_level_parse(self, pe64_bytes):
        assert parse(pe64_bytes).architecture() == "x64 (64-bit)"
        assert pelens.parse(pe64_bytes).number_of_sections() == 2

    def test_accepts_bytearray(self, pe64_bytes):
        image = PEImage.parse(bytearray(pe64_bytes))
        assert isinstance(image.data, bytes)

    def test_from_path(self, tmp_path, pe32_bytes):
        path = tmp_path / "app.exe"
        path.write_bytes(pe32_bytes)
        assert PEImage.from_path(path).architecture() == "x86 (32-bit)"

    def test_from_missing_path(self, tmp_path):
        with pytest.raises(PEIOError) as info:
            PEImage.from_path(tmp_path / "missing.exe")
        assert isinstance(info.value.cause, OSError)
        assert isinstance(info.value, PEError)

    def test_truncated_section_table_fails_whole_parse(self):
        buf = build_pe(ImageSpec(
            sections=[Section(b".text", 0x1000, b"\x90")],
            number_of_sections=40,
        ))
        with pytest.raises(pelens.OutOfBoundsError):
            PEImage.parse(buf[:0x400])
