"""
Bounds-Checked Primitive Reader
================================

Little-endian integer, byte-run and string extraction over an untrusted
image buffer.  Every other decoder reads the buffer through this module;
each helper verifies ``offset + width <= len(buf)`` before touching a byte
and raises :class:`~pelens.core.errors.OutOfBoundsError` otherwise.

Multi-field records go through :func:`read_struct`, which checks the full
``struct.calcsize`` span up front and only then calls
:func:`struct.unpack_from`.
"""

from __future__ import annotations

import struct

from pelens.core.errors import InvalidDllNameError, OutOfBoundsError

_UINT_FORMATS: dict[int, str] = {1: "<B", 2: "<H", 4: "<I", 8: "<Q"}


def ensure_range(buf: bytes, offset: int, width: int) -> None:
    """Raise :class:`OutOfBoundsError` unless ``buf[offset:offset + width]`` exists."""
    if offset < 0 or width < 0 or offset + width > len(buf):
        remaining = max(len(buf) - offset, 0) if offset >= 0 else 0
        raise OutOfBoundsError(offset, width, remaining)


def read_uint(buf: bytes, offset: int, width: int) -> int:
    """Read an unsigned little-endian integer of *width* bytes (1, 2, 4 or 8)."""
    fmt = _UINT_FORMATS.get(width)
    if fmt is None:
        raise ValueError(f"Unsupported integer width: {width}")
    ensure_range(buf, offset, width)
    return struct.unpack_from(fmt, buf, offset)[0]


def read_u8(buf: bytes, offset: int) -> int:
    return read_uint(buf, offset, 1)


def read_u16(buf: bytes, offset: int) -> int:
    return read_uint(buf, offset, 2)


def read_u32(buf: bytes, offset: int) -> int:
    return read_uint(buf, offset, 4)


def read_u64(buf: bytes, offset: int) -> int:
    return read_uint(buf, offset, 8)


def read_bytes(buf: bytes, offset: int, size: int) -> bytes:
    """Return exactly *size* bytes starting at *offset*."""
    ensure_range(buf, offset, size)
    return bytes(buf[offset:offset + size])


def read_struct(buf: bytes, offset: int, fmt: str) -> tuple:
    """Unpack a :mod:`struct` format at *offset* after a full-span length check."""
    ensure_range(buf, offset, struct.calcsize(fmt))
    return struct.unpack_from(fmt, buf, offset)


def read_cstring(buf: bytes, offset: int) -> str:
    """Read a NUL-terminated UTF-8 string starting at *offset*.

    The terminator is located by a linear scan; when none exists the run
    extends to the end of the buffer.  Bytes that are not valid UTF-8 are
    reported, never replaced.

    Raises:
        OutOfBoundsError: *offset* lies outside the buffer.
        InvalidDllNameError: The byte run does not decode as UTF-8.
    """
    ensure_range(buf, offset, 1)
    end = buf.find(b"\x00", offset)
    if end == -1:
        end = len(buf)
    raw = bytes(buf[offset:end])
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidDllNameError(offset, raw) from exc
