"""Estimate the running time of a function in seconds."""

from __future__ import annotations

import signal
import time
from typing import Any, Callable

MAX_ETIME = 86400

_HAS_ITIMER = hasattr(signal, "setitimer")


def _check_runs(n: int) -> None:
    if n <= 0:
        raise ValueError("n must be positive")


def _elapsed_real() -> float:
    remaining, _ = signal.getitimer(signal.ITIMER_REAL)
    return MAX_ETIME - remaining


def ftimer_itimer(f: Callable[[Any], Any], argp: Any = None, n: int = 1) -> float:
    """Average seconds per run of f(argp) over n runs, timed by the interval timer."""
    _check_runs(n)
    if not _HAS_ITIMER:
        # no interval timers on this platform; use a monotonic clock instead
        start = time.monotonic()
        for _ in range(n):
            f(argp)
        return (time.monotonic() - start) / n

    timers = (signal.ITIMER_VIRTUAL, signal.ITIMER_REAL, signal.ITIMER_PROF)
    for which in timers:
        signal.setitimer(which, MAX_ETIME)
    try:
        start = _elapsed_real()
        for _ in range(n):
            f(argp)
        tmeas = _elapsed_real() - start
    finally:
        for which in timers:
            signal.setitimer(which, 0)
    return tmeas / n


def ftimer_gettod(f: Callable[[Any], Any], argp: Any = None, n: int = 1) -> float:
    """Average seconds per run of f(argp) over n runs, timed by the wall clock."""
    _check_runs(n)
    start = time.time()
    for _ in range(n):
        f(argp)
    return (time.time() - start) / n