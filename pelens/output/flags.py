"""
PE Flag and Name Tables
========================

Translates the raw numeric fields exposed by :class:`~pelens.PEImage`
into display strings: subsystem names, DLL-characteristics bits, COFF
file-characteristics bits, section-characteristics bits and a guess at
the file type from its extension.

None of this participates in decoding; it only labels bitmasks the
decoder already produced.

References:
    - Microsoft. (2024). PE Format, "Characteristics", "Windows Subsystem",
      "DLL Characteristics", "Section Flags". Microsoft Learn.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

SUBSYSTEM_NAMES: dict[int, str] = {
    0: "Unknown",
    1: "Native",
    2: "Windows GUI",
    3: "Windows Console",
    5: "OS/2 Console",
    7: "POSIX Console",
    8: "Native Win9x Driver",
    9: "Windows CE GUI",
    10: "EFI Application",
    11: "EFI Boot Service Driver",
    12: "EFI Runtime Driver",
    13: "EFI ROM",
    14: "Xbox",
    16: "Windows Boot Application",
}

DLL_CHARACTERISTICS: list[tuple[int, str]] = [
    (0x0020, "HIGH_ENTROPY_VA"),
    (0x0040, "DYNAMIC_BASE (ASLR)"),
    (0x0080, "FORCE_INTEGRITY"),
    (0x0100, "NX_COMPAT (DEP)"),
    (0x0200, "NO_ISOLATION"),
    (0x0400, "NO_SEH"),
    (0x0800, "NO_BIND"),
    (0x1000, "APPCONTAINER"),
    (0x2000, "WDM_DRIVER"),
    (0x4000, "GUARD_CF"),
    (0x8000, "TERMINAL_SERVER_AWARE"),
]

FILE_CHARACTERISTICS: list[tuple[int, str]] = [
    (0x0001, "RELOCS_STRIPPED"),
    (0x0002, "EXECUTABLE_IMAGE"),
    (0x0004, "LINE_NUMS_STRIPPED"),
    (0x0008, "LOCAL_SYMS_STRIPPED"),
    (0x0010, "AGGRESSIVE_WS_TRIM"),
    (0x0020, "LARGE_ADDRESS_AWARE"),
    (0x0040, "RESERVED"),
    (0x0080, "BYTES_REVERSED_LO"),
    (0x0100, "32BIT_MACHINE"),
    (0x0200, "DEBUG_STRIPPED"),
    (0x0400, "REMOVABLE_RUN_FROM_SWAP"),
    (0x0800, "NET_RUN_FROM_SWAP"),
    (0x1000, "SYSTEM"),
    (0x2000, "DLL"),
    (0x4000, "UP_SYSTEM_ONLY"),
    (0x8000, "BYTES_REVERSED_HI"),
]

SECTION_CHARACTERISTICS: list[tuple[int, str]] = [
    (0x00000008, "NO_PAD"),
    (0x00000020, "CODE"),
    (0x00000040, "INITIALIZED_DATA"),
    (0x00000080, "UNINITIALIZED_DATA"),
    (0x00000100, "LNK_OTHER"),
    (0x00000200, "LNK_INFO"),
    (0x00000800, "LNK_REMOVE"),
    (0x00001000, "LNK_COMDAT"),
    (0x00004000, "NO_DEFER_SPEC_EXC"),
    (0x00008000, "GPREL"),
    (0x01000000, "LNK_NRELOC_OVFL"),
    (0x02000000, "DISCARDABLE"),
    (0x04000000, "NOT_CACHED"),
    (0x08000000, "NOT_PAGED"),
    (0x10000000, "SHARED"),
    (0x20000000, "EXECUTE"),
    (0x40000000, "READ"),
    (0x80000000, "WRITE"),
]

# The alignment field is a 4-bit number in bits 20-23, not a set of flags.
_SECTION_ALIGN_MASK: int = 0x00F00000
_SECTION_ALIGN_SHIFT: int = 20

FILE_TYPES: dict[str, str] = {
    "exe": "Executable (EXE)",
    "dll": "Dynamic-Link Library (DLL)",
    "sys": "System Driver (SYS)",
    "ocx": "ActiveX Control (OCX)",
    "scr": "Screensaver (SCR)",
    "cpl": "Control Panel Applet (CPL)",
    "efi": "UEFI Application (EFI)",
}


def decode_flags(value: int, table: Sequence[tuple[int, str]]) -> list[str]:
    """Return the names of every bit in *table* that is set in *value*."""
    return [name for mask, name in table if value & mask]


def subsystem_name(value: int) -> str:
    return f"{SUBSYSTEM_NAMES.get(value, 'Unknown')} ({value})"


def dll_characteristic_names(value: int) -> list[str]:
    return decode_flags(value, DLL_CHARACTERISTICS)


def file_characteristic_names(value: int) -> list[str]:
    return decode_flags(value, FILE_CHARACTERISTICS)


def section_flag_names(value: int) -> list[str]:
    """Decode section characteristics, including the alignment nibble."""
    names = decode_flags(value, SECTION_CHARACTERISTICS)
    align = (value & _SECTION_ALIGN_MASK) >> _SECTION_ALIGN_SHIFT
    if align:
        names.append(f"ALIGN_{1 << (align - 1)}BYTES")
    return names


def detect_file_type(path: str | Path) -> Optional[str]:
    """Best-effort file type from the extension; ``None`` without one."""
    ext = Path(path).suffix.lstrip(".").lower()
    if not ext:
        return None
    return FILE_TYPES.get(ext, ext)
