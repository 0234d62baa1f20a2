"""Driver that checks an allocator against trace files and scores it."""

from __future__ import annotations

import getopt
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple

from cslabs.explicit import ExplicitAllocator
from cslabs.fsecs import Timer, TimingMethod
from cslabs.implicit import AllocatorInitError
from cslabs.memlib import MemLib, OutOfMemoryError
from cslabs.trace import (
    MallocError,
    OpType,
    RangeList,
    Trace,
    TraceError,
    read_trace,
)

TRACEDIR = "./traces/"

DEFAULT_TRACEFILES = (
    "amptjp-bal.rep",
    "cccp-bal.rep",
    "cp-decl-bal.rep",
    "expr-bal.rep",
    "coalescing-bal.rep",
    "random-bal.rep",
    "random2-bal.rep",
    "binary-bal.rep",
    "binary2-bal.rep",
    "realloc-bal.rep",
    "realloc2-bal.rep",
)

# Throughput of libc malloc on the reference system; caps the throughput score.
AVG_LIBC_THRUPUT = 600e3
# Share of the performance index given to space utilization.
UTIL_WEIGHT = 0.60

_USAGE = """\
Usage: mdriver [-hvVal] [-f <file>] [-t <dir>]
Options
\t-a         Don't check the team structure.
\t-f <file>  Use <file> as the trace file.
\t-g         Generate summary info for autograder.
\t-h         Print this message.
\t-l         Run libc malloc as well.
\t-t <dir>   Directory to find default traces.
\t-v         Print per-trace performance breakdowns.
\t-V         Print additional debug info."""


class Allocator(Protocol):
    def init(self) -> None: ...

    def malloc(self, size: int) -> Optional[int]: ...

    def free(self, ptr: Optional[int]) -> None: ...

    def realloc(self, ptr: Optional[int], size: int) -> Optional[int]: ...


AllocatorFactory = Callable[[MemLib], Allocator]


@dataclass(frozen=True)
class Team:
    """The team that wrote the allocator under test."""

    teamname: str
    name1: str
    id1: str
    name2: str = ""
    id2: str = ""


DEFAULT_TEAM = Team("WTF", "Team member", "member@example.com")


@dataclass
class Stats:
    """Results of one allocator on one trace; secs and util count only if valid."""

    ops: float = 0.0
    valid: bool = False
    secs: float = 0.0
    util: float = 0.0


def check_team(team: Team) -> List[str]:
    """Return the lines describing a team; raises ValueError if it is incomplete."""
    if not team.teamname:
        raise ValueError(
            "ERROR: Please provide the information about your team in mm.c."
        )
    lines = [f"Team Name:{team.teamname}"]
    if not team.name1 or not team.id1:
        raise ValueError("ERROR.  You must fill in all team member 1 fields!")
    lines.append(f"Member 1 :{team.name1}:{team.id1}")
    if bool(team.name2) != bool(team.id2):
        raise ValueError(
            "ERROR.  You must fill in all or none of the team member 2 ID fields!"
        )
    if team.name2:
        lines.append(f"Member 2 :{team.name2}:{team.id2}")
    return lines


class Driver:
    """Runs an allocator over traces on a simulated heap, counting its errors."""

    def __init__(
        self,
        allocator_factory: AllocatorFactory = ExplicitAllocator,
        verbose: int = 0,
    ) -> None:
        self.allocator_factory = allocator_factory
        self.verbose = verbose
        self.mem = MemLib()
        self.errors = 0

    def _fresh_allocator(self) -> Allocator:
        self.mem.reset_brk()
        allocator = self.allocator_factory(self.mem)
        allocator.init()
        return allocator

    def _initialised(self, context: str) -> Allocator:
        try:
            return self._fresh_allocator()
        except (AllocatorInitError, OutOfMemoryError) as exc:
            raise RuntimeError(f"mm_init failed in {context}") from exc

    @staticmethod
    def _attempt(call: Callable[..., Optional[int]], *args: Any) -> Optional[int]:
        try:
            return call(*args)
        except OutOfMemoryError:
            return None

    def _add_range(
        self, ranges: RangeList, lo: int, size: int, tracenum: int, opnum: int
    ) -> None:
        try:
            ranges.add(lo, size, self.mem.heap_lo(), self.mem.heap_hi())
        except ValueError as exc:
            raise MallocError(tracenum, opnum, str(exc)) from exc

    def _check(self, trace: Trace, tracenum: int, ranges: RangeList) -> None:
        ranges.clear()
        try:
            allocator = self._fresh_allocator()
        except (AllocatorInitError, OutOfMemoryError) as exc:
            raise MallocError(tracenum, 0, "mm_init failed.") from exc

        for opnum, op in enumerate(trace.ops):
            index, size = op.index, op.size
            fill = index & 0xFF
            if op.type is OpType.ALLOC:
                p = self._attempt(allocator.malloc, size)
                if p is None:
                    raise MallocError(tracenum, opnum, "mm_malloc failed.")
                self._add_range(ranges, p, size, tracenum, opnum)
                self.mem.fill(p, fill, size)
                trace.blocks[index] = p
                trace.block_sizes[index] = size
            elif op.type is OpType.REALLOC:
                oldp = trace.blocks[index]
                newp = self._attempt(allocator.realloc, oldp, size)
                if newp is None:
                    raise MallocError(tracenum, opnum, "mm_realloc failed.")
                ranges.remove(oldp)
                self._add_range(ranges, newp, size, tracenum, opnum)
                kept = min(trace.block_sizes[index], size)
                if any(byte != fill for byte in self.mem.read(newp, kept)):
                    raise MallocError(
                        tracenum,
                        opnum,
                        "mm_realloc did not preserve the data from old block",
                    )
                self.mem.fill(newp, fill, size)
                trace.blocks[index] = newp
                trace.block_sizes[index] = size
            else:
                p = trace.blocks[index]
                ranges.remove(p)
                allocator.free(p)

    def eval_mm_valid(
        self, trace: Trace, tracenum: int, ranges: Optional[RangeList] = None
    ) -> bool:
        """Check the allocator for correctness on a trace, reporting any error."""
        ranges = ranges if ranges is not None else RangeList()
        try:
            self._check(trace, tracenum, ranges)
        except MallocError as err:
            self.errors += 1
            print(err)
            return False
        return True

    def eval_mm_util(self, trace: Trace) -> float:
        """Peak total payload divided by the final heap size."""
        allocator = self._initialised("eval_mm_util")
        total_size = 0
        max_total_size = 0
        for op in trace.ops:
            index = op.index
            if op.type is OpType.ALLOC:
                p = self._attempt(allocator.malloc, op.size)
                if p is None:
                    raise RuntimeError("mm_malloc failed in eval_mm_util")
                trace.blocks[index] = p
                trace.block_sizes[index] = op.size
                total_size += op.size
            elif op.type is OpType.REALLOC:
                oldsize = trace.block_sizes[index]
                newp = self._attempt(allocator.realloc, trace.blocks[index], op.size)
                if newp is None:
                    raise RuntimeError("mm_realloc failed in eval_mm_util")
                trace.blocks[index] = newp
                trace.block_sizes[index] = op.size
                total_size += op.size - oldsize
            else:
                allocator.free(trace.blocks[index])
                total_size -= trace.block_sizes[index]
            max_total_size = max(max_total_size, total_size)
        heapsize = self.mem.heapsize()
        return max_total_size / heapsize if heapsize else 0.0

    def eval_mm_speed(self, trace: Trace) -> None:
        """Run the trace through the allocator without checks, for timing."""
        allocator = self._initialised("eval_mm_speed")
        for op in trace.ops:
            index = op.index
            if op.type is OpType.ALLOC:
                p = self._attempt(allocator.malloc, op.size)
                if p is None:
                    raise RuntimeError("mm_malloc error in eval_mm_speed")
                trace.blocks[index] = p
            elif op.type is OpType.REALLOC:
                newp = self._attempt(allocator.realloc, trace.blocks[index], op.size)
                if newp is None:
                    raise RuntimeError("mm_realloc error in eval_mm_speed")
                trace.blocks[index] = newp
            else:
                allocator.free(trace.blocks[index])


def _run_native(trace: Trace) -> List[Optional[bytearray]]:
    blocks: List[Optional[bytearray]] = [None] * trace.num_ids
    for op in trace.ops:
        if op.type is OpType.ALLOC:
            blocks[op.index] = bytearray(op.size)
        elif op.type is OpType.REALLOC:
            old = blocks[op.index] or bytearray()
            new = old[: op.size]
            new.extend(bytes(op.size - len(new)))
            blocks[op.index] = new
        else:
            blocks[op.index] = None
    return blocks


def eval_libc_valid(trace: Trace) -> bool:
    """Check that the host allocator can run the trace to completion."""
    _run_native(trace)
    return True


def eval_libc_speed(trace: Trace) -> None:
    """Run the trace through the host allocator, for timing."""
    _run_native(trace)


def _kops(ops: float, secs: float) -> float:
    return (ops / 1e3) / secs if secs else float("inf")


def format_results(stats: Sequence[Stats], errors: int = 0) -> str:
    """Render a per-trace performance table with a total line."""
    lines = [
        "%5s%7s %5s%8s%10s%6s" % ("trace", " valid", "util", "ops", "secs", "Kops")
    ]
    secs = ops = util = 0.0
    for i, st in enumerate(stats):
        if st.valid:
            lines.append(
                "%2d%10s%5.0f%%%8.0f%10.6f%6.0f"
                % (i, "yes", st.util * 100.0, st.ops, st.secs, _kops(st.ops, st.secs))
            )
            secs += st.secs
            ops += st.ops
            util += st.util
        else:
            lines.append("%2d%10s%6s%8s%10s%6s" % (i, "no", "-", "-", "-", "-"))
    if errors == 0:
        avg_util = util / len(stats) if stats else 0.0
        lines.append(
            "%12s%5.0f%%%8.0f%10.6f%6.0f"
            % ("Total       ", avg_util * 100.0, ops, secs, _kops(ops, secs))
        )
    else:
        lines.append("%12s%6s%8s%10s%6s" % ("Total       ", "-", "-", "-", "-"))
    return "\n".join(lines)


def performance_index(stats: Sequence[Stats]) -> Tuple[float, float, float]:
    """Return (utilization score, throughput score, total), each out of 100."""
    if not stats:
        raise ValueError("no statistics to score")
    secs = sum(st.secs for st in stats)
    ops = sum(st.ops for st in stats)
    avg_util = sum(st.util for st in stats) / len(stats)
    throughput = ops / secs if secs else float("inf")
    p1 = UTIL_WEIGHT * avg_util
    if throughput > AVG_LIBC_THRUPUT:
        p2 = 1.0 - UTIL_WEIGHT
    else:
        p2 = (1.0 - UTIL_WEIGHT) * (throughput / AVG_LIBC_THRUPUT)
    return p1 * 100, p2 * 100, (p1 + p2) * 100.0


def _usage() -> None:
    print(_USAGE, file=sys.stderr)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    try:
        opts, _ = getopt.getopt(args, "f:t:hvVgal")
    except getopt.GetoptError:
        _usage()
        return 1

    tracedir: Path = Path(TRACEDIR)
    tracefiles: Optional[List[str]] = None
    team_check = True
    run_libc = False
    autograder = False
    verbose = 0

    for opt, value in opts:
        if opt == "-g":
            autograder = True
        elif opt == "-f":
            tracedir = Path("./")
            tracefiles = [value]
        elif opt == "-t":
            if tracefiles is None:
                tracedir = Path(value)
        elif opt == "-a":
            team_check = False
        elif opt == "-l":
            run_libc = True
        elif opt == "-v":
            verbose = 1
        elif opt == "-V":
            verbose = 2
        elif opt == "-h":
            _usage()
            return 0

    if team_check:
        try:
            print("\n".join(check_team(DEFAULT_TEAM)))
        except ValueError as exc:
            print(exc)
            return 1

    if tracefiles is None:
        tracefiles = list(DEFAULT_TRACEFILES)
        print(f"Using default tracefiles in {tracedir}/")

    timer = Timer(TimingMethod.GETTOD, verbose)

    def load(name: str) -> Trace:
        if verbose > 1:
            print(f"Reading tracefile: {name}")
        return read_trace(tracedir, name)

    try:
        if run_libc:
            if verbose > 1:
                print("\nTesting libc malloc")
            libc_stats = []
            for name in tracefiles:
                trace = load(name)
                st = Stats(ops=trace.num_ops)
                st.valid = eval_libc_valid(trace)
                if st.valid:
                    st.secs = timer.fsecs(eval_libc_speed, trace)
                libc_stats.append(st)
            if verbose:
                print("\nResults for libc malloc:")
                print(format_results(libc_stats))

        if verbose > 1:
            print("\nTesting mm malloc")
        driver = Driver(ExplicitAllocator, verbose)
        ranges = RangeList()
        mm_stats = []
        for i, name in enumerate(tracefiles):
            trace = load(name)
            st = Stats(ops=trace.num_ops)
            st.valid = driver.eval_mm_valid(trace, i, ranges)
            if st.valid:
                st.util = driver.eval_mm_util(trace)
                st.secs = timer.fsecs(driver.eval_mm_speed, trace)
            mm_stats.append(st)
    except TraceError as exc:
        print(exc)
        return 1
    except RuntimeError as exc:
        print(exc)
        return 1

    if verbose:
        print("\nResults for mm malloc:")
        print(format_results(mm_stats, driver.errors))
        print()

    numcorrect = sum(1 for st in mm_stats if st.valid)
    if driver.errors == 0:
        p1, p2, perfindex = performance_index(mm_stats)
        print(f"Perf index = {p1:.0f} (util) + {p2:.0f} (thru) = {perfindex:.0f}/100")
    else:
        perfindex = 0.0
        print(f"Terminated with {driver.errors} errors")

    if autograder:
        print(f"correct:{numcorrect}")
        print(f"perfidx:{perfindex:.0f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())