"""
PeLens -- PE/COFF Structure Decoder
====================================

PeLens decodes the on-disk layout of Windows Portable Executable images
without executing them: DOS stub, COFF file header, PE32/PE32+ optional
header, section table, and the import and export directories.

Every read goes through a bounds-checked primitive layer, so a truncated
or hostile file produces a typed :class:`~pelens.core.errors.PEError`
instead of an out-of-range access.

Usage::

    from pelens import PEImage

    image = PEImage.from_path("app.exe")
    print(image.architecture(), hex(image.entry_point))

References:
    - Microsoft. (2024). PE Format. Microsoft Learn.
    - Pietrek, M. (1994). Peering Inside the PE.
"""

from pelens.parsers import PEImage, parse
from pelens.core.errors import (
    InvalidDllNameError,
    InvalidMagicError,
    InvalidPeSignatureError,
    InvalidTableOffsetError,
    OutOfBoundsError,
    PEError,
    PEIOError,
    UnsupportedOptionalHeaderError,
)

__version__ = "1.0.0"
__all__ = [
    "PEImage",
    "parse",
    "PEError",
    "InvalidMagicError",
    "InvalidPeSignatureError",
    "UnsupportedOptionalHeaderError",
    "OutOfBoundsError",
    "InvalidTableOffsetError",
    "InvalidDllNameError",
    "PEIOError",
]
