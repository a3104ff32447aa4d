"""Helpers for reading packed little-endian archive fields."""

from __future__ import annotations

from typing import Iterator, Literal

from .exceptions import TruncatedReadError

Endian = Literal["little", "big"]


def read_uint(data: bytes, offset: int, size: int, *, endian: Endian = "little") -> int:
    """Return an unsigned integer read from ``data`` starting at ``offset``.

    Unlike a lenient reader, missing bytes raise :class:`TruncatedReadError`:
    every size reported by this package must come from bytes that exist.
    """

    if size <= 0:
        return 0
    if offset < 0:
        raise TruncatedReadError(f"negative offset {offset}")
    end = offset + size
    if end > len(data):
        raise TruncatedReadError(
            f"read of {size} bytes at 0x{offset:x} exceeds buffer of {len(data)} bytes"
        )
    return int.from_bytes(data[offset:end], endian, signed=False)


def read_u16(data: bytes, offset: int) -> int:
    return read_uint(data, offset, 2)


def read_u32(data: bytes, offset: int) -> int:
    return read_uint(data, offset, 4)


def read_i32(data: bytes, offset: int) -> int:
    value = read_u32(data, offset)
    return sign_extend(value, 32)


def sign_extend(value: int, bits: int) -> int:
    """Sign extend ``value`` with ``bits`` significant bits."""

    if bits <= 0:
        return value
    mask = 1 << (bits - 1)
    return (value ^ mask) - mask


def iter_set_bits(value: int, width: int = 32) -> Iterator[int]:
    """Yield the indexes of set bits in ``value`` from low to high."""

    for bit in range(width):
        if (value >> bit) & 1:
            yield bit


class ByteReader:
    """Sequential cursor over a byte buffer."""

    def __init__(self, data: bytes, offset: int = 0) -> None:
        self.data = data
        self.offset = offset

    def u32(self) -> int:
        value = read_u32(self.data, self.offset)
        self.offset += 4
        return value

    def i32(self) -> int:
        value = read_i32(self.data, self.offset)
        self.offset += 4
        return value

    def take(self, size: int) -> bytes:
        end = self.offset + size
        if size < 0 or end > len(self.data):
            raise TruncatedReadError(
                f"read of {size} bytes at 0x{self.offset:x} exceeds buffer of {len(self.data)} bytes"
            )
        chunk = bytes(self.data[self.offset : end])
        self.offset = end
        return chunk

    def string(self) -> str:
        """Read a u32 length-prefixed UTF-8 string."""

        length = self.u32()
        return self.take(length).decode("utf-8", errors="replace")


__all__ = [
    "ByteReader",
    "iter_set_bits",
    "read_i32",
    "read_u16",
    "read_u32",
    "read_uint",
    "sign_extend",
]
