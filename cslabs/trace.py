"""Allocator trace files and the payload range bookkeeping used to check them."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Union

from cslabs.memlib import ALIGNMENT

HDRLINES = 4


def _linenum(opnum: int) -> int:
    """Line number (origin 1) in the trace file of request opnum."""
    return opnum + HDRLINES + 1


class OpType(Enum):
    """Kind of allocator request."""

    ALLOC = "a"
    FREE = "f"
    REALLOC = "r"


@dataclass(frozen=True)
class TraceOp:
    """One allocator request in a trace."""

    type: OpType
    index: int
    size: int = 0


@dataclass
class Trace:
    """The contents of one trace file, plus room for the blocks it allocates."""

    sugg_heapsize: int
    num_ids: int
    num_ops: int
    weight: int
    ops: List[TraceOp]
    name: str = ""
    blocks: List[Optional[int]] = field(default_factory=list)
    block_sizes: List[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.blocks:
            self.blocks = [None] * self.num_ids
        if not self.block_sizes:
            self.block_sizes = [0] * self.num_ids


class TraceError(ValueError):
    """Raised when a trace file cannot be read or is malformed."""


class MallocError(Exception):
    """An error made by the allocator under test while running a trace."""

    def __init__(self, tracenum: int, opnum: int, message: str) -> None:
        self.tracenum = tracenum
        self.opnum = opnum
        self.message = message
        self.line = _linenum(opnum)
        super().__init__(f"ERROR [trace {tracenum}, line {self.line}]: {message}")


@dataclass(frozen=True)
class Range:
    """The extent of one allocated payload, both ends inclusive."""

    lo: int
    hi: int

    @property
    def size(self) -> int:
        return self.hi - self.lo + 1


class RangeList:
    """Extents of every allocated payload, used to detect bad or overlapping blocks.

    Ranges are visited newest first.
    """

    def __init__(self) -> None:
        self._ranges: List[Range] = []

    def add(
        self,
        lo: int,
        size: int,
        heap_lo: int,
        heap_hi: int,
        alignment: int = ALIGNMENT,
    ) -> Range:
        """Check a new payload and remember it; raises ValueError if it is bad."""
        if size <= 0:
            raise ValueError("payload size must be positive")
        hi = lo + size - 1

        if lo % alignment != 0:
            raise ValueError(
                f"Payload address ({lo:#x}) not aligned to {alignment} bytes"
            )

        if lo < heap_lo or lo > heap_hi or hi < heap_lo or hi > heap_hi:
            raise ValueError(
                f"Payload ({lo:#x}:{hi:#x}) lies outside heap "
                f"({heap_lo:#x}:{heap_hi:#x})"
            )

        for other in self:
            if other.lo <= lo <= other.hi or other.lo <= hi <= other.hi:
                raise ValueError(
                    f"Payload ({lo:#x}:{hi:#x}) overlaps another payload "
                    f"({other.lo:#x}:{other.hi:#x})"
                )

        new = Range(lo, hi)
        self._ranges.append(new)
        return new

    def remove(self, lo: int) -> None:
        """Forget the newest range starting at lo, if there is one."""
        for pos in range(len(self._ranges) - 1, -1, -1):
            if self._ranges[pos].lo == lo:
                del self._ranges[pos]
                return

    def clear(self) -> None:
        """Forget every range."""
        self._ranges.clear()

    def __iter__(self) -> Iterator[Range]:
        return reversed(self._ranges)

    def __len__(self) -> int:
        return len(self._ranges)


def _parse_count(token: str, what: str, name: str) -> int:
    try:
        value = int(token)
    except ValueError as exc:
        raise TraceError(f"bad {what} {token!r} in tracefile {name}") from exc
    if value < 0:
        raise TraceError(f"negative {what} {value} in tracefile {name}")
    return value


def parse_trace(text: str, name: str = "<trace>") -> Trace:
    """Parse the text of a trace file: four header numbers, then requests."""
    tokens = iter(text.split())

    def take(what: str) -> int:
        token = next(tokens, None)
        if token is None:
            raise TraceError(f"tracefile {name} ends while reading {what}")
        return _parse_count(token, what, name)

    sugg_heapsize = take("suggested heap size")
    num_ids = take("number of ids")
    num_ops = take("number of ops")
    weight = take("weight")

    ops: List[TraceOp] = []
    max_index = 0
    for token in tokens:
        kind = token[0]
        if kind in ("a", "r"):
            index = take("block index")
            size = take("block size")
            op_type = OpType.ALLOC if kind == "a" else OpType.REALLOC
            ops.append(TraceOp(op_type, index, size))
            max_index = max(max_index, index)
        elif kind == "f":
            ops.append(TraceOp(OpType.FREE, take("block index")))
        else:
            raise TraceError(f"Bogus type character ({kind}) in tracefile {name}")

    if max_index != num_ids - 1:
        raise TraceError(
            f"tracefile {name} declares {num_ids} ids but its largest index is "
            f"{max_index}"
        )
    if num_ops != len(ops):
        raise TraceError(
            f"tracefile {name} declares {num_ops} ops but holds {len(ops)}"
        )

    return Trace(sugg_heapsize, num_ids, num_ops, weight, ops, name=name)


def read_trace(tracedir: Union[str, Path], filename: str) -> Trace:
    """Read and parse the trace file filename inside tracedir."""
    path = Path(tracedir) / filename
    try:
        text = path.read_text()
    except OSError as exc:
        raise TraceError(f"Could not open {path} in read_trace") from exc
    return parse_trace(text, str(path))