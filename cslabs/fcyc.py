"""Estimate the running time of a function in cycles with the K-best scheme."""

from __future__ import annotations

import bisect
import functools
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Protocol

from cslabs.clock import CompensatedCounter, CycleCounter


class Counter(Protocol):
    def start(self) -> None: ...

    def get(self) -> float: ...


@dataclass
class FcycConfig:
    """Parameters of the K-best measurement."""

    k: int = 3
    maxsamples: int = 20
    epsilon: float = 0.01
    compensate: bool = False
    clear_cache: bool = False
    cache_bytes: int = 1 << 19
    cache_block: int = 32


class KBestSampler:
    """Keeps the k smallest samples seen, in ascending order."""

    def __init__(self, k: int = 3, epsilon: float = 0.01) -> None:
        if k < 1:
            raise ValueError("k must be at least 1")
        self.k = k
        self.epsilon = epsilon
        self.samplecount = 0
        self._values: List[float] = []

    def add(self, value: float) -> None:
        """Record one sample."""
        if len(self._values) < self.k:
            bisect.insort_right(self._values, value)
        elif value < self._values[-1]:
            self._values.pop()
            bisect.insort_right(self._values, value)
        self.samplecount += 1

    def has_converged(self) -> bool:
        """Whether the k smallest samples lie within epsilon of each other."""
        return (
            self.samplecount >= self.k
            and (1 + self.epsilon) * self._values[0] >= self._values[self.k - 1]
        )

    def best(self) -> float:
        """The smallest sample seen."""
        if not self._values:
            raise ValueError("no samples recorded")
        return self._values[0]

    def values(self) -> List[float]:
        """The kept samples, smallest first."""
        return list(self._values)


_sink = 0


@functools.lru_cache(maxsize=1)
def _cache_buffer(size: int) -> bytearray:
    return bytearray(size)


def _clear_cache(config: FcycConfig) -> None:
    global _sink
    buf = _cache_buffer(config.cache_bytes)
    _sink += sum(buf[:: max(config.cache_block, 1)])


def fcyc(
    f: Callable[[Any], Any],
    argp: Any = None,
    config: Optional[FcycConfig] = None,
    counter: Optional[Counter] = None,
) -> float:
    """Run f(argp) until the K-best samples converge and return the best cycle count."""
    config = config if config is not None else FcycConfig()
    if counter is None:
        counter = CompensatedCounter() if config.compensate else CycleCounter()
    sampler = KBestSampler(config.k, config.epsilon)
    while True:
        if config.clear_cache:
            _clear_cache(config)
        counter.start()
        f(argp)
        sampler.add(counter.get())
        if sampler.has_converged() or sampler.samplecount >= config.maxsamples:
            break
    return sampler.best()