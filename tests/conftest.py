"""Shared fixtures for the PeLens test-suite."""
import pytest

from pelens.parsers.pe_image import PEImage
from tests.pe_builder import sample_image


@pytest.fixture
def pe64_bytes():
    """PE32+ executable with .text and an import table."""
    return sample_image(is64=True)


@pytest.fixture
def pe32_bytes():
    """PE32 executable with .text and an import table."""
    return sample_image(is64=False)


@pytest.fixture
def dll64_bytes():
    """PE32+ DLL with imports and an export table."""
    return sample_image(is64=True, with_exports=True)


@pytest.fixture
def pe64(pe64_bytes):
    return PEImage.parse(pe64_bytes)


@pytest.fixture
def pe32(pe32_bytes):
    return PEImage.parse(pe32_bytes)


@pytest.fixture
def dll64(dll64_bytes):
    return PEImage.parse(dll64_bytes)


@pytest.fixture
def quiet_config(tmp_path):
    """A TOML config that keeps log output off the console."""
    path = tmp_path / "pelens.toml"
    path.write_text(
        '[global]\nlog_level = "ERROR"\n\n[output]\nshow_banner = false\n',
        encoding="utf-8",
    )
    return path
