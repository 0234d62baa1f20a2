import random

import pytest

from cslabs.implicit import CHUNKSIZE, AllocatorInitError, ImplicitAllocator
from cslabs.memlib import ALIGNMENT, MemLib, OutOfMemoryError

# padding word + prologue header/footer + epilogue header
OVERHEAD = 16


def make(size=1 << 20):
    mem = MemLib(size)
    alloc = ImplicitAllocator(mem)
    alloc.init()
    return mem, alloc


def check_heap(mem, alloc):
    blocks = list(alloc.blocks())
    assert sum(size for _, size, _ in blocks) == mem.heapsize() - OVERHEAD
    for bp, size, _ in blocks:
        assert size % ALIGNMENT == 0
        assert size >= 16
        assert mem.read_word(bp - 4) == mem.read_word(bp + size - 8)
    for (_, _, a1), (_, _, a2) in zip(blocks, blocks[1:]):
        assert a1 or a2, "two adjacent free blocks"
    return blocks


def _seed_live(mem, alloc, rng):
    size = rng.randint(1, 300)
    p = alloc.malloc(size)
    mem.fill(p, 255, size)
    return {p: (size, 255)}


def test_init_creates_one_free_chunk():
    mem, alloc = make()
    blocks = check_heap(mem, alloc)
    assert blocks == [(mem.heap_lo() + OVERHEAD, CHUNKSIZE, False)]


def test_malloc_zero_returns_none():
    _, alloc = make()
    assert alloc.malloc(0) is None


def test_malloc_negative_raises():
    _, alloc = make()
    with pytest.raises(ValueError):
        alloc.malloc(-1)


def test_use_before_init_raises():
    alloc = ImplicitAllocator(MemLib(1024))
    with pytest.raises(RuntimeError):
        alloc.malloc(8)


@pytest.mark.parametrize("size", [1, 7, 8, 9, 24, 100, 1000])
def test_malloc_aligned_and_inside_heap(size):
    mem, alloc = make()
    p = alloc.malloc(size)
    assert p % ALIGNMENT == 0
    assert mem.heap_lo() <= p
    assert p + size - 1 <= mem.heap_hi()
    blocks = check_heap(mem, alloc)
    assert (p, blocks[0][1], True) == blocks[0]
    assert blocks[0][1] >= size + 8


def test_small_request_gets_minimum_block():
    mem, alloc = make()
    p = alloc.malloc(1)
    sizes = {bp: size for bp, size, _ in alloc.blocks()}
    assert sizes[p] == 16


def test_allocations_do_not_overlap():
    mem, alloc = make()
    ptrs = [(alloc.malloc(n), n) for n in (10, 30, 5, 200)]
    spans = sorted((p, p + n) for p, n in ptrs)
    assert all(end <= start for (_, end), (start, _) in zip(spans, spans[1:]))
    check_heap(mem, alloc)


def test_free_then_malloc_reuses_block():
    mem, alloc = make()
    p = alloc.malloc(40)
    alloc.malloc(40)
    alloc.free(p)
    assert alloc.malloc(40) == p
    check_heap(mem, alloc)


def test_freeing_everything_coalesces_to_one_block():
    mem, alloc = make()
    ptrs = [alloc.malloc(n) for n in (16, 64, 8, 120)]
    for p in (ptrs[1], ptrs[3], ptrs[0], ptrs[2]):
        alloc.free(p)
    blocks = check_heap(mem, alloc)
    assert len(blocks) == 1
    assert blocks[0][2] is False


def test_free_none_is_harmless():
    mem, alloc = make()
    before = list(alloc.blocks())
    alloc.free(None)
    assert list(alloc.blocks()) == before


def test_large_request_grows_heap():
    mem, alloc = make()
    start = mem.heapsize()
    p = alloc.malloc(3 * CHUNKSIZE)
    assert mem.heapsize() > start
    assert p + 3 * CHUNKSIZE - 1 <= mem.heap_hi()
    check_heap(mem, alloc)


def test_realloc_grow_preserves_data():
    mem, alloc = make()
    p = alloc.malloc(20)
    data = bytes(range(20))
    mem.write(p, data)
    q = alloc.realloc(p, 100)
    assert mem.read(q, 20) == data
    check_heap(mem, alloc)


def test_realloc_shrink_preserves_prefix():
    mem, alloc = make()
    p = alloc.malloc(50)
    mem.write(p, b"abcdefghij" * 5)
    q = alloc.realloc(p, 5)
    assert mem.read(q, 5) == b"abcde"
    check_heap(mem, alloc)


def test_realloc_none_allocates():
    mem, alloc = make()
    q = alloc.realloc(None, 12)
    assert any(bp == q and allocated for bp, _, allocated in alloc.blocks())


def test_init_fails_when_arena_too_small_for_prologue():
    alloc = ImplicitAllocator(MemLib(8))
    with pytest.raises(AllocatorInitError):
        alloc.init()


def test_init_fails_when_arena_too_small_for_chunk():
    alloc = ImplicitAllocator(MemLib(100))
    with pytest.raises(AllocatorInitError):
        alloc.init()


def test_malloc_out_of_memory_raises():
    _, alloc = make(2 * CHUNKSIZE)
    with pytest.raises(OutOfMemoryError):
        alloc.malloc(4 * CHUNKSIZE)


def test_reinit_after_reset():
    mem, alloc = make()
    alloc.malloc(500)
    mem.reset_brk()
    alloc.init()
    blocks = check_heap(mem, alloc)
    assert len(blocks) == 1


def test_random_workload_keeps_data_and_invariants():
    mem, alloc = make()
    rng = random.Random(1234)
    live = _seed_live(mem, alloc, rng)
    for step in range(300):
        choice = rng.random()
        if choice < 0.35 and len(live) > 1:
            p = rng.choice(list(live))
            size, byte = live.pop(p)
            assert mem.read(p, size) == bytes([byte]) * size
            alloc.free(p)
        elif choice < 0.5:
            p = rng.choice(list(live))
            size, byte = live.pop(p)
            new_size = rng.randint(1, 300)
            q = alloc.realloc(p, new_size)
            kept = min(size, new_size)
            assert mem.read(q, kept) == bytes([byte]) * kept
            mem.fill(q, step, new_size)
            live[q] = (new_size, step & 0xFF)
        else:
            size = rng.randint(1, 300)
            p = alloc.malloc(size)
            mem.fill(p, step, size)
            live[p] = (size, step & 0xFF)
    check_heap(mem, alloc)
    assert len(live) >= 1
    assert all(
        mem.read(p, size) == bytes([byte]) * size
        for p, (size, byte) in live.items()
    )
    spans = sorted((p, p + size) for p, (size, _) in live.items())
    assert all(end <= start for (_, end), (start, _) in zip(spans, spans[1:]))