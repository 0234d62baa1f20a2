"""A simulated memory system: a fixed arena with a growable break pointer."""

from __future__ import annotations

import mmap

MAX_HEAP = 20 * (1 << 20)
ALIGNMENT = 8
HEAP_BASE = 0x10000

_WORD = 4
_WORD_MASK = 0xFFFFFFFF


class OutOfMemoryError(MemoryError):
    """Raised when the simulated heap cannot be grown as requested."""


class MemLib:
    """A model of the heap: an arena of max_heap bytes whose break only grows.

    Addresses are plain integers starting at HEAP_BASE, so they can be
    stored in 32-bit words inside the heap itself.
    """

    def __init__(self, max_heap: int = MAX_HEAP) -> None:
        if max_heap < 0:
            raise ValueError("max_heap must not be negative")
        self.max_heap = max_heap
        self._data = bytearray(max_heap)
        self._brk = 0

    def reset_brk(self) -> None:
        """Empty the heap by moving the break back to the start."""
        self._brk = 0

    def sbrk(self, incr: int) -> int:
        """Grow the heap by incr bytes and return the start of the new area."""
        if incr < 0 or self._brk + incr > self.max_heap:
            raise OutOfMemoryError("mem_sbrk failed. Ran out of memory...")
        old_brk = HEAP_BASE + self._brk
        self._brk += incr
        return old_brk

    def heap_lo(self) -> int:
        """Address of the first heap byte."""
        return HEAP_BASE

    def heap_hi(self) -> int:
        """Address of the last heap byte."""
        return HEAP_BASE + self._brk - 1

    def heapsize(self) -> int:
        """Current heap size in bytes."""
        return self._brk

    def pagesize(self) -> int:
        """Page size of the host system."""
        return mmap.PAGESIZE

    def _offset(self, addr: int, size: int) -> int:
        offset = addr - HEAP_BASE
        if size < 0 or offset < 0 or offset + size > self.max_heap:
            raise IndexError(
                f"access of {size} bytes at {addr:#x} lies outside the arena"
            )
        return offset

    def read_word(self, addr: int) -> int:
        """Read an unsigned 32-bit little-endian word."""
        offset = self._offset(addr, _WORD)
        return int.from_bytes(self._data[offset:offset + _WORD], "little")

    def write_word(self, addr: int, value: int) -> None:
        """Write the low 32 bits of value as a little-endian word."""
        offset = self._offset(addr, _WORD)
        self._data[offset:offset + _WORD] = (value & _WORD_MASK).to_bytes(
            _WORD, "little"
        )

    def read(self, addr: int, size: int) -> bytes:
        """Read size bytes starting at addr."""
        offset = self._offset(addr, size)
        return bytes(self._data[offset:offset + size])

    def write(self, addr: int, data: bytes) -> None:
        """Copy data into memory starting at addr."""
        offset = self._offset(addr, len(data))
        self._data[offset:offset + len(data)] = data

    def fill(self, addr: int, value: int, size: int) -> None:
        """Set size bytes starting at addr to the low byte of value."""
        offset = self._offset(addr, size)
        self._data[offset:offset + size] = bytes([value & 0xFF]) * size