"""An LRU cache simulator driven by memory-access traces."""

from __future__ import annotations

import getopt
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, TextIO, Tuple, Union

from cslabs.cachelab import print_summary

_ADDRESS_MASK = 0xFFFFFFFF

_HELP = """\
** A Cache Simulator by Deconx
Usage: ./csim-ref [-hv] -s <num> -E <num> -b <num> -t <file>
Options:
-h         Print this help message.
-v         Optional verbose flag.
-s <num>   Number of set index bits.
-E <num>   Number of lines per set.
-b <num>   Number of block offset bits.
-t <file>  Trace file.


Examples:
linux>  ./csim -s 4 -E 1 -b 4 -t traces/yi.trace
linux>  ./csim -v -s 8 -E 2 -b 4 -t traces/yi.trace"""


class Outcome(Enum):
    """Result of one cache access; the value is its verbose text."""

    HIT = "hit"
    MISS = "miss "
    MISS_EVICTION = "miss eviction"


@dataclass(frozen=True)
class TraceRecord:
    """One line of a memory trace."""

    op: str
    address: int
    size: int


@dataclass
class _Line:
    valid: bool = False
    tag: int = 0
    time_stamp: int = 0


class CacheSimulator:
    """A cache of 2**s sets, e lines per set and 2**b-byte blocks, with LRU eviction."""

    def __init__(self, s: int, e: int, b: int) -> None:
        if s < 0 or b < 0 or s + b > 32:
            raise ValueError("set and block bits must be non-negative and fit 32 bits")
        if e < 1:
            raise ValueError("a set needs at least one line")
        self.s = s
        self.e = e
        self.b = b
        self.sets = [[_Line() for _ in range(e)] for _ in range(1 << s)]
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    @property
    def counts(self) -> Tuple[int, int, int]:
        return self.hits, self.misses, self.evictions

    def _locate(self, address: int) -> Tuple[int, int]:
        address &= _ADDRESS_MASK
        tag = address >> (self.s + self.b)
        set_index = (address >> self.b) & ((1 << self.s) - 1)
        return tag, set_index

    @staticmethod
    def _touch(lines: List[_Line], used: _Line) -> None:
        for line in lines:
            if line.valid:
                line.time_stamp += 1
        used.time_stamp = 0

    def access(self, address: int) -> Outcome:
        """Access one address and return what happened."""
        tag, set_index = self._locate(address)
        lines = self.sets[set_index]
        found = next((line for line in lines if line.valid and line.tag == tag), None)
        if found is not None:
            self.hits += 1
            self._touch(lines, found)
            return Outcome.HIT

        self.misses += 1
        outcome = Outcome.MISS
        target = next((line for line in lines if not line.valid), None)
        if target is None:
            self.evictions += 1
            outcome = Outcome.MISS_EVICTION
            target = max(lines, key=lambda line: line.time_stamp)
        target.valid = True
        target.tag = tag
        self._touch(lines, target)
        return outcome

    def apply(self, record: TraceRecord) -> List[Outcome]:
        """Apply a trace record: a modify is a load then a store; others are ignored."""
        if record.op == "M":
            return [self.access(record.address), self.access(record.address)]
        if record.op in ("L", "S"):
            return [self.access(record.address)]
        return []

    def run(
        self,
        records: Iterable[TraceRecord],
        verbose: bool = False,
        out: Optional[TextIO] = None,
    ) -> Tuple[int, int, int]:
        """Apply every record and return (hits, misses, evictions)."""
        out = out if out is not None else sys.stdout
        for record in records:
            for outcome in self.apply(record):
                if verbose:
                    out.write(outcome.value)
        return self.counts


def parse_trace(lines: Iterable[str]) -> Iterator[TraceRecord]:
    """Yield the records of a trace such as " L 10,1"; raises ValueError on bad lines."""
    for number, raw in enumerate(lines, start=1):
        text = raw.strip()
        if not text:
            continue
        op = text[0]
        addr_text, sep, size_text = text[1:].strip().partition(",")
        if not sep:
            raise ValueError(f"malformed trace line {number}: {raw.rstrip()!r}")
        try:
            address = int(addr_text.strip(), 16) & _ADDRESS_MASK
            size = int(size_text.strip())
        except ValueError as exc:
            raise ValueError(f"malformed trace line {number}: {raw.rstrip()!r}") from exc
        yield TraceRecord(op, address, size)


def simulate_file(
    path: Union[str, Path],
    s: int,
    e: int,
    b: int,
    verbose: bool = False,
    out: Optional[TextIO] = None,
) -> Tuple[int, int, int]:
    """Simulate a trace file and return (hits, misses, evictions)."""
    simulator = CacheSimulator(s, e, b)
    with open(path) as fh:
        return simulator.run(parse_trace(fh), verbose=verbose, out=out)


def _print_help() -> None:
    print(_HELP)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    try:
        opts, _ = getopt.getopt(args, "hvs:E:b:t:")
    except getopt.GetoptError:
        _print_help()
        return 1

    verbose = False
    params = {}
    trace = None
    for opt, value in opts:
        if opt == "-h":
            _print_help()
            return 0
        if opt == "-v":
            verbose = True
        elif opt == "-t":
            trace = value
        else:
            try:
                params[opt] = int(value)
            except ValueError:
                _print_help()
                return 1

    if trace is None or not all(key in params for key in ("-s", "-E", "-b")):
        _print_help()
        return 1

    try:
        hits, misses, evictions = simulate_file(
            trace, params["-s"], params["-E"], params["-b"], verbose=verbose
        )
    except OSError:
        print(f"No such file: {trace}")
        return 1
    except ValueError as exc:
        print(exc)
        return 1

    print_summary(hits, misses, evictions)
    return 0


if __name__ == "__main__":
    sys.exit(main())