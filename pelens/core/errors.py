"""
PeLens Error Taxonomy
======================

Every decoding step raises a subclass of :class:`PEError`.  Each class
names exactly one structural invariant, so a caller can tell *which*
part of the image was malformed from the exception type alone.

Nothing in the decoder recovers locally: a failed step propagates
unchanged and the parse produces no result.
"""

from __future__ import annotations

from typing import Optional


class PEError(Exception):
    """Base class for all PE decoding failures."""


class InvalidMagicError(PEError):
    """DOS header magic is not ``MZ`` (0x5A4D)."""

    def __init__(self, magic: int) -> None:
        self.magic = magic
        super().__init__(f"Bad DOS magic: 0x{magic:04X}")


class InvalidPeSignatureError(PEError):
    """The four bytes at ``e_lfanew`` are not ``PE\\0\\0`` (0x00004550)."""

    def __init__(self, signature: int) -> None:
        self.signature = signature
        super().__init__(f"Bad PE signature: 0x{signature:08X}")


class UnsupportedOptionalHeaderError(PEError):
    """Optional-header magic is neither PE32 (0x10B) nor PE32+ (0x20B)."""

    def __init__(self, magic: int) -> None:
        self.magic = magic
        super().__init__(f"Unknown optional-header magic: 0x{magic:04X}")


class OutOfBoundsError(PEError):
    """A read of *expected* bytes at *offset* does not fit the buffer.

    Attributes:
        offset:   Requested file offset.
        expected: Width of the requested read in bytes.
        found:    Bytes actually available from *offset* (0 when past the end).
    """

    def __init__(self, offset: int, expected: int, found: int) -> None:
        self.offset = offset
        self.expected = expected
        self.found = found
        super().__init__(
            f"Expected at least {expected} bytes at offset 0x{offset:X}, found {found}"
        )


class InvalidTableOffsetError(PEError):
    """An RVA has no owning section, or a table does not fit the buffer."""

    def __init__(self, rva: int, reason: str = "") -> None:
        self.rva = rva
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Table offset for RVA 0x{rva:X} is out of bounds{detail}")


class InvalidDllNameError(PEError):
    """A NUL-terminated name region is not valid UTF-8 text."""

    def __init__(self, offset: int, raw: bytes = b"") -> None:
        self.offset = offset
        self.raw = raw
        super().__init__(f"Couldn't read name at offset 0x{offset:X}")


class PEIOError(PEError):
    """The image file could not be read."""

    def __init__(self, path: str, cause: Optional[BaseException] = None) -> None:
        self.path = path
        self.cause = cause
        reason = f": {cause}" if cause is not None else ""
        super().__init__(f"I/O error reading {path}{reason}")
