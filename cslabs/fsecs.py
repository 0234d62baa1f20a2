"""High-level timing: the running time of a function in seconds."""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Optional

from cslabs.clock import CompensatedCounter, CycleCounter
from cslabs.fcyc import FcycConfig, fcyc
from cslabs.ftimer import ftimer_gettod, ftimer_itimer

_RUNS = 10


class TimingMethod(Enum):
    """How running time is measured."""

    FCYC = "fcyc"
    ITIMER = "itimer"
    GETTOD = "gettod"


class Timer:
    """Measures the running time of functions with one timing method."""

    def __init__(
        self, method: TimingMethod = TimingMethod.GETTOD, verbose: int = 0
    ) -> None:
        self.method = method
        self.verbose = verbose
        self.mhz = 0.0
        self.config: Optional[FcycConfig] = None
        self._counter: Optional[CompensatedCounter] = None

        if method is TimingMethod.FCYC:
            if verbose:
                print("Measuring performance with a cycle counter.")
            self.config = FcycConfig(
                maxsamples=20, clear_cache=True, compensate=True, epsilon=0.01, k=3
            )
            cycles = CycleCounter()
            self._counter = CompensatedCounter(cycles)
            self.mhz = cycles.mhz(verbose > 0)
        elif method is TimingMethod.ITIMER:
            if verbose:
                print("Measuring performance with the interval timer.")
        elif verbose:
            print("Measuring performance with gettimeofday().")

    def fsecs(self, f: Callable[[Any], Any], argp: Any = None) -> float:
        """Return the running time of f(argp) in seconds."""
        if self.method is TimingMethod.FCYC:
            cycles = fcyc(f, argp, self.config, self._counter)
            return cycles / (self.mhz * 1e6)
        if self.method is TimingMethod.ITIMER:
            return ftimer_itimer(f, argp, _RUNS)
        return ftimer_gettod(f, argp, _RUNS)