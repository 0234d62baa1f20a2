"""Cycle counters and clock-rate estimation built on a monotonic tick source."""

from __future__ import annotations

import os
import sys
import time
from typing import Callable, Optional

NEVENT = 100
THRESHOLD = 1000
RECORDTHRESH = 3000


def _clock_ticks_per_second() -> int:
    try:
        return int(os.sysconf("SC_CLK_TCK"))
    except (AttributeError, ValueError, OSError):
        return 100


_CLK_TCK = _clock_ticks_per_second()


def _user_ticks() -> int:
    """User CPU time of this process in clock ticks."""
    return int(os.times().user * _CLK_TCK)


class CycleCounter:
    """Counts elapsed cycles of a source since the last start().

    The default source is the nanosecond performance counter, so one
    "cycle" is one nanosecond.
    """

    def __init__(self, source: Optional[Callable[[], int]] = None) -> None:
        self.source = source if source is not None else time.perf_counter_ns
        self._start = 0

    def start(self) -> None:
        """Record the current value of the counter."""
        self._start = self.source()

    def get(self) -> float:
        """Return the number of cycles since the last call to start()."""
        result = float(self.source() - self._start)
        if result < 0:
            print(f"Error: counter returns neg value: {result:.0f}", file=sys.stderr)
        return result

    def overhead(self) -> float:
        """Measure the cost of a start/get pair, taking the second of two runs."""
        result = 0.0
        for _ in range(2):
            self.start()
            result = self.get()
        return result

    def mhz_full(self, verbose: bool = False, sleeptime: float = 2) -> float:
        """Estimate the clock rate in MHz by counting cycles over a sleep."""
        if sleeptime <= 0:
            raise ValueError("sleeptime must be positive")
        self.start()
        time.sleep(sleeptime)
        rate = self.get() / (1e6 * sleeptime)
        if verbose:
            print(f"Processor clock rate ~= {rate:.1f} MHz")
        return rate

    def mhz(self, verbose: bool = False) -> float:
        """Estimate the clock rate in MHz using a two-second sleep."""
        return self.mhz_full(verbose, 2)


class CompensatedCounter:
    """A cycle counter that subtracts the estimated cost of timer interrupts."""

    def __init__(
        self,
        counter: Optional[CycleCounter] = None,
        ticks: Optional[Callable[[], int]] = None,
    ) -> None:
        self.counter = counter if counter is not None else CycleCounter()
        self.ticks = ticks if ticks is not None else _user_ticks
        self.cyc_per_tick = 0.0
        self._start_tick = 0

    def calibrate(self, verbose: bool = False) -> None:
        """Estimate how many cycles one timer tick costs."""
        oldc = self.ticks()
        self.counter.start()
        oldt = self.counter.get()
        events = 0
        while events < NEVENT:
            newt = self.counter.get()
            if newt - oldt >= THRESHOLD:
                newc = self.ticks()
                if newc > oldc:
                    cpt = (newt - oldt) / (newc - oldc)
                    if (
                        self.cyc_per_tick == 0.0 or self.cyc_per_tick > cpt
                    ) and cpt > RECORDTHRESH:
                        self.cyc_per_tick = cpt
                    events += 1
                    oldc = newc
                oldt = newt
        if verbose:
            print(f"Setting cyc_per_tick to {self.cyc_per_tick:f}")

    def start(self) -> None:
        """Start counting, calibrating first if that has not been done."""
        if self.cyc_per_tick == 0.0:
            self.calibrate(False)
        self._start_tick = self.ticks()
        self.counter.start()

    def get(self) -> float:
        """Return cycles since start() minus the estimated tick overhead."""
        elapsed = self.counter.get()
        ticks = self.ticks() - self._start_tick
        return elapsed - ticks * self.cyc_per_tick