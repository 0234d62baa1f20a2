"""A first-fit allocator over an implicit list of boundary-tagged blocks."""

from __future__ import annotations

from typing import Iterator, Optional, Tuple

from cslabs.memlib import MemLib, OutOfMemoryError

WSIZE = 4
DSIZE = 8
CHUNKSIZE = 1 << 12


class AllocatorInitError(RuntimeError):
    """Raised when the allocator cannot set up its initial heap."""


def _pack(size: int, alloc: int) -> int:
    return size | alloc


class ImplicitAllocator:
    """Allocator whose blocks carry a header and footer of size and allocated bit.

    The heap starts with a padding word, an allocated 8-byte prologue block
    and ends with a zero-size allocated epilogue header. Free blocks are
    found by walking every block from the start (first fit) and are
    coalesced with free neighbours immediately.
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
        return bp - WSIZE

    def _ftrp(self, bp: int) -> int:
        return bp + self._size_at(self._hdrp(bp)) - DSIZE

    def _next_blkp(self, bp: int) -> int:
        return bp + self._size_at(bp - WSIZE)

    def _prev_blkp(self, bp: int) -> int:
        return bp - self._size_at(bp - DSIZE)

    def _require_init(self) -> int:
        if self._heap_list is None:
            raise RuntimeError("allocator used before init()")
        return self._heap_list

    # -- public interface ---------------------------------------------

    def init(self) -> None:
        """Lay out the prologue and epilogue and add a first free chunk."""
        try:
            start = self.mem.sbrk(4 * WSIZE)
        except OutOfMemoryError as exc:
            raise AllocatorInitError("mm_init failed") from exc
        self._put(start, 0)
        self._put(start + WSIZE, _pack(DSIZE, 1))
        self._put(start + 2 * WSIZE, _pack(DSIZE, 1))
        self._put(start + 3 * WSIZE, _pack(0, 1))
        self._heap_list = start + 2 * WSIZE
        try:
            self._extend_heap(CHUNKSIZE // WSIZE)
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
        if size <= DSIZE:
            asize = 2 * DSIZE
        else:
            asize = DSIZE * ((size + DSIZE + (DSIZE - 1)) // DSIZE)

        bp = self._find_fit(asize)
        if bp is None:
            bp = self._extend_heap(max(asize, CHUNKSIZE) // WSIZE)
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

    def blocks(self) -> Iterator[Tuple[int, int, bool]]:
        """Yield (payload address, block size, allocated) for every block in order."""
        bp = self._next_blkp(self._require_init())
        while (size := self._size_at(self._hdrp(bp))) > 0:
            yield bp, size, bool(self._alloc_at(self._hdrp(bp)))
            bp += size

    # -- internals ----------------------------------------------------

    def _extend_heap(self, words: int) -> int:
        size = (words + 1) * WSIZE if words % 2 else words * WSIZE
        bp = self.mem.sbrk(size)
        self._put(self._hdrp(bp), _pack(size, 0))
        self._put(self._ftrp(bp), _pack(size, 0))
        self._put(self._hdrp(self._next_blkp(bp)), _pack(0, 1))
        return self._coalesce(bp)

    def _find_fit(self, asize: int) -> Optional[int]:
        return next(
            (bp for bp, size, allocated in self.blocks()
             if not allocated and asize <= size),
            None,
        )

    def _place(self, bp: int, asize: int) -> None:
        origin_size = self._size_at(self._hdrp(bp))
        remain_size = origin_size - asize
        if remain_size >= 2 * DSIZE:
            self._put(self._hdrp(bp), _pack(asize, 1))
            self._put(self._ftrp(bp), _pack(asize, 1))
            rest = self._next_blkp(bp)
            self._put(self._hdrp(rest), _pack(remain_size, 0))
            self._put(self._ftrp(rest), _pack(remain_size, 0))
        else:
            self._put(self._hdrp(bp), _pack(origin_size, 1))
            self._put(self._ftrp(bp), _pack(origin_size, 1))

    def _coalesce(self, bp: int) -> int:
        prev_alloc = self._alloc_at(self._hdrp(self._prev_blkp(bp)))
        next_alloc = self._alloc_at(self._hdrp(self._next_blkp(bp)))
        size = self._size_at(self._hdrp(bp))

        if prev_alloc and next_alloc:
            return bp
        if prev_alloc:
            next_block = self._next_blkp(bp)
            size += self._size_at(self._hdrp(next_block))
            self._put(self._hdrp(bp), _pack(size, 0))
            self._put(self._ftrp(bp), _pack(size, 0))
            return bp
        prev_block = self._prev_blkp(bp)
        if next_alloc:
            size += self._size_at(self._hdrp(prev_block))
        else:
            next_block = self._next_blkp(bp)
            size += self._size_at(self._hdrp(prev_block))
            size += self._size_at(self._hdrp(next_block))
        self._put(self._hdrp(prev_block), _pack(size, 0))
        self._put(self._ftrp(prev_block), _pack(size, 0))
        return prev_block