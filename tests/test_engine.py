"""Unit tests for pelens/core/engine.py: report construction from decoded images."""
import struct

import pytest

from pelens.core.engine import PELensEngine
from pelens.core.errors import InvalidMagicError, PEIOError
from pelens.core.models import ImageSummary, hex_str
from shared.config import PeLensConfig
from shared.logger import ToolLogger
from tests.pe_builder import ImageSpec, Section, build_pe


@pytest.fixture
def engine():
    return PELensEngine(logger=ToolLogger("test", console_output=False))


def _engine_with(**parser):
    config = PeLensConfig()
    for key, value in parser.items():
        setattr(config.parser, key, value)
    return PELensEngine(config=config, logger=ToolLogger("test", console_output=False))


class TestAnalyze:
    def test_report_fields(self, engine, tmp_path, pe64_bytes):
        path = tmp_path / "tool.exe"
        path.write_bytes(pe64_bytes)
        report = engine.analyze(path)

        assert report.path == str(path)
        assert report.size == len(pe64_bytes)
        assert report.architecture == "x64 (64-bit)"
        assert report.layout == "PE32+"
        assert report.entry_point == "0x1000"
        assert report.image_base == "0x140000000"
        assert report.subsystem == "Windows Console (3)"
        assert report.file_type == "Executable (EXE)"
        assert report.number_of_sections == 2
        assert report.base_of_data is None
        assert report.linker_version == "14.29"
        assert "EXECUTABLE_IMAGE" in report.characteristics
        assert "NX_COMPAT (DEP)" in report.dll_characteristics
        assert report.table_errors == {}

    def test_sections(self, engine, pe64_bytes):
        report = engine.analyze_data(pe64_bytes)
        text = report.sections[0]
        assert text.name == ".text"
        assert text.virtual_address == "0x1000"
        assert text.pointer_to_raw_data == "0x400"
        assert {"CODE", "EXECUTE", "READ"} <= set(text.flags)

    def test_imports(self, engine, pe32_bytes):
        report = engine.analyze_data(pe32_bytes, "app.exe")
        assert report.base_of_data == "0x2000"
        assert [i.dll_name for i in report.import_table] == ["KERNEL32.dll", "USER32.dll"]
        by_ordinal = report.import_table[0].functions[2]
        assert by_ordinal.name == ""
        assert by_ordinal.ordinal == 17

    def test_exports(self, engine, dll64_bytes):
        report = engine.analyze_data(dll64_bytes, "sample.dll")
        assert report.file_type == "Dynamic-Link Library (DLL)"
        assert report.export_table.dll_name == "sample.dll"
        assert [e.ordinal for e in report.export_table.entries] == [1, 2, 3, 4]
        assert report.export_table.entries[3].forwarder == "OTHER.Target"

    def test_no_export_directory(self, engine, pe64_bytes):
        assert engine.analyze_data(pe64_bytes).export_table is None

    def test_broken_import_table_is_reported_not_raised(self, engine):
        spec = ImageSpec(
            sections=[Section(b".text", 0x1000, b"\xC3" * 16, 0x60000020)],
            directories={1: (0x8000, 40)},
        )
        report = engine.analyze_data(build_pe(spec))
        assert report.import_table is None
        assert "0x8000" in report.table_errors["import_table"]
        assert len(report.sections) == 1

    def test_table_walks_disabled(self, dll64_bytes):
        report = _engine_with(resolve_imports=False, resolve_exports=False).analyze_data(dll64_bytes)
        assert report.import_table is None
        assert report.export_table is None

    def test_header_failure_raises(self, engine, tmp_path, pe64_bytes):
        path = tmp_path / "bad.exe"
        path.write_bytes(b"ZM" + pe64_bytes[2:])
        with pytest.raises(InvalidMagicError):
            engine.analyze(path)


class TestLoad:
    def test_missing_file(self, engine, tmp_path):
        with pytest.raises(PEIOError):
            engine.load(tmp_path / "nope.exe")

    def test_size_limit(self, tmp_path, pe64_bytes):
        path = tmp_path / "big.exe"
        path.write_bytes(pe64_bytes)
        with pytest.raises(PEIOError) as info:
            _engine_with(max_file_size=100).load(path)
        assert "too large" in str(info.value)


class TestSummary:
    def test_summarize(self, engine, tmp_path, pe32_bytes):
        path = tmp_path / "app.exe"
        path.write_bytes(pe32_bytes)
        summary = engine.summarize(path)
        assert type(summary) is ImageSummary
        assert summary.architecture == "x86 (32-bit)"
        assert summary.image_base == "0x400000"

    def test_report_projects_to_summary(self, engine, pe64_bytes):
        report = engine.analyze_data(pe64_bytes)
        summary = report.summary()
        assert set(summary.model_dump()) == set(ImageSummary.model_fields)
        assert summary.timestamp == report.timestamp


def test_hex_str():
    assert hex_str(0) == "0x0"
    assert hex_str(0x140000000) == "0x140000000"
    assert hex_str(struct.unpack("<I", b"\xef\xbe\xad\xde")[0]) == "0xDEADBEEF"
