"""A first-fit allocator that keeps free blocks on an explicit doubly linked list."""

from __future__ import annotations

from typing import Iterator, Optional, Tuple

from cslabs.implicit import AllocatorInitError
from cslabs.memlib import MemLib, OutOfMemoryError

WSIZE = 4
DSIZE = 8
ALIGNMENT = 8
# header(4) + next(4) + prev(4) + payload(1) + footer(4) = 17, rounded to 24
MIN_BLOCK = 24
CHUNKSIZE = 1 << 12

_NULL = 0


def _align(size: int) -> int:
    return (size + (ALIGNMENT - 1)) & ~0x7


def _pack(size: int, alloc: int) -> int:
    return size | alloc


class ExplicitAllocator:
    """Allocator whose every block carries a header, two link words and a footer.

    The payload pointer sits after the header and the next/prev link words.
    A permanently allocated sentinel block at the start of the heap is the
    head of the free list. Free blocks are inserted at the head (LIFO),
    found first-fit and coalesced with free neighbours on release.
    """

    def __init__(self, mem: MemLib) -> None:
        self.mem = mem
        self._heap_list: Optional[int] = None

    # -- word helpers -------------------------------------------------

    def _get(self, p: int) -> int:
        return self.mem.read_word(p)

    def _put(self, p: int, value: int) -> None:
        self.mem.write_word(p, value)

    def _size_at(self, p: int) -> int:
        return self._get(p) & ~0x7

    def _alloc_at(self, p: int) -> int:
        return self._get(p) & 0x1

    @staticmethod
    def _hdrp(bp: int) -> int:
        return bp - 3 * WSIZE

    def _ftrp(self, bp: int) -> int:
        return bp + self._size_at(self._hdrp(bp)) - 4 * WSIZE

    @staticmethod
    def _next_ptr(bp: int) -> int:
        return bp - 2 * WSIZE

    @staticmethod
    def _prev_ptr(bp: int) -> int:
        return bp - WSIZE

    def _next_free(self, bp: int) -> int:
        return self._get(self._next_ptr(bp))

    def _prev_free(self, bp: int) -> int:
        return self._get(self._prev_ptr(bp))

    def _next_blkp(self, bp: int) -> int:
        return bp + self._size_at(self._hdrp(bp))

    def _prev_blkp(self, bp: int) -> int:
        return bp - self._size_at(self._hdrp(bp) - WSIZE)

    def _require_init(self) -> int:
        if self._heap_list is None:
            raise RuntimeError("allocator used before init()")
        return self._heap_list

    # -- public interface ---------------------------------------------

    def init(self) -> None:
        """Create the free-list head block and a first free chunk."""
        try:
            start = self.mem.sbrk(MIN_BLOCK + WSIZE)
        except OutOfMemoryError as exc:
            raise AllocatorInitError("mm_init failed") from exc
        # skip one padding word so payloads stay 8-byte aligned
        head = start + WSIZE + 3 * WSIZE
        self._heap_list = head
        self._put(self._prev_ptr(head), _NULL)
        self._put(self._next_ptr(head), _NULL)
        self._put(self._hdrp(head), _pack(MIN_BLOCK, 1))
        self._put(self._ftrp(head), _pack(MIN_BLOCK, 1))
        try:
            self._allocate_from_heap(CHUNKSIZE)
        except OutOfMemoryError as exc:
            raise AllocatorInitError("mm_init failed") from exc

    def malloc(self, size: int) -> Optional[int]:
        """Allocate a block with at least size payload bytes.

        Returns the payload address, or None for a zero-byte request.
        Raises OutOfMemoryError when the heap cannot grow enough.
        """
        self._require_init()
        if size < 0:
            raise ValueError("size must not be negative")
        if size == 0:
            return None
        asize = _align(2 * DSIZE + size)
        bp = self._find_fit(asize)
        if bp is None:
            bp = self._allocate_from_heap(asize)
        self._place(bp, asize)
        return bp

    def free(self, ptr: Optional[int]) -> None:
        """Release the block at ptr and merge it with free neighbours."""
        if ptr is None:
            return
        self._require_init()
        size = self._size_at(self._hdrp(ptr))
        self._put(self._hdrp(ptr), _pack(size, 0))
        self._put(self._ftrp(ptr), _pack(size, 0))
        self._coalesce(ptr)

    def realloc(self, ptr: Optional[int], size: int) -> Optional[int]:
        """Move the block at ptr into a new block of size bytes, keeping its data."""
        if ptr is None:
            return self.malloc(size)
        newptr = self.malloc(size)
        if newptr is None:
            return None
        copy_size = min(size, self._size_at(self._hdrp(ptr)))
        self.mem.write(newptr, self.mem.read(ptr, copy_size))
        self.free(ptr)
        return newptr

    def free_blocks(self) -> Iterator[Tuple[int, int]]:
        """Yield (payload address, block size) for each block on the free list."""
        bp = self._next_free(self._require_init())
        while bp != _NULL and (size := self._size_at(self._hdrp(bp))) > 0:
            yield bp, size
            bp = self._next_free(bp)

    def block_size(self, ptr: int) -> int:
        """Size in bytes of the whole block whose payload starts at ptr."""
        self._require_init()
        return self._size_at(self._hdrp(ptr))

    # -- internals ----------------------------------------------------

    def _allocate_from_heap(self, size: int) -> int:
        bp = self._extend_heap(max(size, CHUNKSIZE) // WSIZE)
        self._insert(bp)
        return bp

    def _extend_heap(self, words: int) -> int:
        size = (words + 1) * WSIZE if words % 2 else words * WSIZE
        bp = self.mem.sbrk(size) + 3 * WSIZE
        self._put(self._hdrp(bp), _pack(size, 0))
        self._put(self._ftrp(bp), _pack(size, 0))
        return bp

    def _insert(self, bp: int) -> None:
        head = self._require_init()
        first = self._next_free(head)
        self._put(self._next_ptr(bp), first)
        self._put(self._prev_ptr(bp), head)
        self._put(self._next_ptr(head), bp)
        if first != _NULL:
            self._put(self._prev_ptr(first), bp)

    def _unlink(self, bp: int) -> None:
        prev_block = self._prev_free(bp)
        next_block = self._next_free(bp)
        self._put(self._next_ptr(prev_block), next_block)
        if next_block != _NULL:
            self._put(self._prev_ptr(next_block), prev_block)

    def _delete(self, bp: int) -> None:
        self._unlink(bp)
        self._put(self._prev_ptr(bp), _NULL)
        self._put(self._next_ptr(bp), _NULL)

    def _find_fit(self, asize: int) -> Optional[int]:
        return next(
            (bp for bp, size in self.free_blocks()
             if not self._alloc_at(self._hdrp(bp)) and asize <= size),
            None,
        )

    def _place(self, bp: int, asize: int) -> None:
        origin_size = self._size_at(self._hdrp(bp))
        remain_size = origin_size - asize
        if remain_size >= MIN_BLOCK:
            rest = bp + asize
            self._put(self._hdrp(rest), _pack(remain_size, 0))
            self._put(self._ftrp(rest), _pack(remain_size, 0))
            prev_block = self._prev_free(bp)
            next_block = self._next_free(bp)
            self._put(self._prev_ptr(rest), prev_block)
            self._put(self._next_ptr(rest), next_block)
            self._put(self._next_ptr(prev_block), rest)
            if next_block != _NULL:
                self._put(self._prev_ptr(next_block), rest)

            self._put(self._hdrp(bp), _pack(asize, 1))
            self._put(self._ftrp(bp), _pack(asize, 1))
            self._put(self._next_ptr(bp), _NULL)
            self._put(self._prev_ptr(bp), _NULL)
        else:
            self._put(self._hdrp(bp), _pack(origin_size, 1))
            self._put(self._ftrp(bp), _pack(origin_size, 1))
            self._delete(bp)

    def _coalesce(self, bp: int) -> int:
        prev_block = self._prev_blkp(bp)
        next_block = self._next_blkp(bp)
        heap_end = self.mem.heap_hi() + 1
        prev_alloc = self._alloc_at(self._hdrp(prev_block))
        next_alloc = 1 if next_block >= heap_end else self._alloc_at(
            self._hdrp(next_block)
        )

        if prev_alloc and next_alloc:
            self._insert(bp)
            return bp

        if prev_alloc:
            size = self._size_at(self._hdrp(bp)) + self._size_at(
                self._hdrp(next_block)
            )
            self._put(self._hdrp(bp), _pack(size, 0))
            self._put(self._ftrp(next_block), _pack(size, 0))
            self._unlink(next_block)
            self._insert(bp)
            return bp

        if next_alloc:
            size = self._size_at(self._hdrp(bp)) + self._size_at(
                self._hdrp(prev_block)
            )
            self._put(self._hdrp(prev_block), _pack(size, 0))
            self._put(self._ftrp(bp), _pack(size, 0))
            self._unlink(prev_block)
            self._insert(prev_block)
            return prev_block

        size = (
            self._size_at(self._hdrp(prev_block))
            + self._size_at(self._hdrp(bp))
            + self._size_at(self._hdrp(next_block))
        )
        self._put(self._hdrp(prev_block), _pack(size, 0))
        self._put(self._ftrp(next_block), _pack(size, 0))
        self._unlink(prev_block)
        self._unlink(next_block)
        self._insert(prev_block)
        return prev_block