"""Shared helpers for the cache simulator and the matrix transpose driver."""

from __future__ import annotations

import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple, Union

MAX_TRANS_FUNCS = 100
RAND_MAX = 2**31 - 1
RESULTS_FILE = ".csim_results"

Matrix = List[List[int]]
TransFunc = Callable[[int, int, Matrix, Matrix], None]


@dataclass
class TransFunction:
    """A registered transpose function and the results recorded for it."""

    func: TransFunc
    description: str
    correct: bool = False
    num_hits: int = 0
    num_misses: int = 0
    num_evictions: int = 0


class TransRegistry:
    """An ordered, bounded collection of transpose functions under test."""

    def __init__(self, capacity: int = MAX_TRANS_FUNCS) -> None:
        if capacity < 0:
            raise ValueError("capacity must not be negative")
        self.capacity = capacity
        self._entries: List[TransFunction] = []

    def register(self, func: TransFunc, description: str) -> TransFunction:
        """Add a transpose function; raises OverflowError when the registry is full."""
        if len(self._entries) >= self.capacity:
            raise OverflowError(
                f"cannot register more than {self.capacity} transpose functions"
            )
        entry = TransFunction(func, description)
        self._entries.append(entry)
        return entry

    def __iter__(self) -> Iterator[TransFunction]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> TransFunction:
        return self._entries[index]


def print_summary(
    hits: int,
    misses: int,
    evictions: int,
    results_path: Union[str, Path] = RESULTS_FILE,
) -> None:
    """Print the simulation statistics and record them in the results file."""
    print(f"hits:{hits} misses:{misses} evictions:{evictions}")
    Path(results_path).write_text(f"{hits} {misses} {evictions}\n")


def _default_rng(rng: Optional[random.Random]) -> random.Random:
    return rng if rng is not None else random.Random(int(time.time()))


def init_matrix(
    m: int, n: int, rng: Optional[random.Random] = None
) -> Tuple[Matrix, Matrix]:
    """Return a random n-by-m matrix A and a random m-by-n matrix B."""
    rng = _default_rng(rng)
    a = [[0] * m for _ in range(n)]
    b = [[0] * n for _ in range(m)]
    for i in range(n):
        for j in range(m):
            a[i][j] = rng.randint(0, RAND_MAX)
            b[j][i] = rng.randint(0, RAND_MAX)
    return a, b


def rand_matrix(m: int, n: int, rng: Optional[random.Random] = None) -> Matrix:
    """Return a random n-by-m matrix."""
    rng = _default_rng(rng)
    return [[rng.randint(0, RAND_MAX) for _ in range(m)] for _ in range(n)]


def correct_trans(m: int, n: int, a: Matrix) -> Matrix:
    """Return the m-by-n transpose of the n-by-m matrix A."""
    return [[a[i][j] for i in range(n)] for j in range(m)]