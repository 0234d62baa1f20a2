# cslabs

Tools for two classic systems-programming labs:

- **Cache lab**: a set-associative LRU cache simulator that replays memory
  traces, plus helpers for registering and checking matrix transpose
  functions.
- **Malloc lab**: a simulated heap, two allocators (an implicit free list
  and an explicit LIFO free list), and a driver that replays allocation
  traces. The driver checks correctness, measures space utilisation and
  throughput, and reports a performance index.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Cache simulator

Replay a trace of `L` (load), `S` (store) and `M` (modify: a load then a
store) accesses through a cache with `2**s` sets, `E` lines per set and
`2**b`-byte blocks:

```
csim -s 4 -E 1 -b 4 -t traces/yi.trace
csim -v -s 8 -E 2 -b 4 -t traces/yi.trace
```

Each trace line has the form ` L 10,1`: an operation letter, a hexadecimal
address and a size. Lines with other operation letters are ignored.

The command prints `hits:<n> misses:<n> evictions:<n>` and also writes
those counts to `.csim_results` in the current directory. `-v` prints
`hit`, `miss ` or `miss eviction` for every access, and `-h` shows the
usage text. A missing trace file is reported as `No such file: <path>`.

From Python:

```python
from cslabs.csim import CacheSimulator, parse_trace, simulate_file

sim = CacheSimulator(4, 1, 4)
hits, misses, evictions = sim.run(parse_trace([" L 10,1", " M 20,1"]))
```

`CacheSimulator.access(address)` returns an `Outcome` for a single access,
and `simulate_file(path, s, e, b)` runs a whole trace file.

## Transpose helpers

- `cslabs.cachelab.TransRegistry` collects transpose functions under a
  description (at most 100 by default; registering more raises
  `OverflowError`).
- `cslabs.cachelab.print_summary` prints cache counts and writes them to
  `.csim_results`.
- `cslabs.cachelab.init_matrix`, `rand_matrix` and `correct_trans` build
  random matrices and a reference transpose.
- `cslabs.transpose` holds `transpose_submit` (a blocked transpose),
  `trans` (a row-wise scan), `is_transpose`, `register_functions` and
  `validate`, which prints the first mismatch against the reference
  transpose.

## Malloc driver

Replay allocation traces against the explicit-list allocator:

```
mdriver -v -t path/to/traces
mdriver -f single-trace.rep
```

Options:

- `-f <file>`: use one trace file, relative to the current directory
- `-t <dir>`: directory that holds the default trace files (default
  `./traces/`; ignored once `-f` has been given)
- `-a`: do not check the team information
- `-l`: also replay each trace through a plain Python model of allocation,
  as a reference
- `-g`: print `correct:` and `perfidx:` summary lines
- `-v` / `-V`: per-trace breakdown / additional debug output
- `-h`: print the usage text

A trace file starts with four header numbers (suggested heap size, number
of block ids, number of operations, weight). After the header each line
is one request: `a <id> <size>`, `r <id> <size>` or `f <id>`. Trace files
can be read with `cslabs.trace.read_trace` or `parse_trace`.

The allocators work on a `cslabs.memlib.MemLib`, a simulated heap that
grows only through `sbrk`:

```python
from cslabs.memlib import MemLib
from cslabs.explicit import ExplicitAllocator

mem = MemLib(20 * (1 << 20))
heap = ExplicitAllocator(mem)
heap.init()
p = heap.malloc(100)
p = heap.realloc(p, 200)
heap.free(p)
```

`cslabs.implicit.ImplicitAllocator` has the same interface and walks the
whole heap with first fit. `cslabs.mdriver.Driver` takes either allocator
class as its factory; `format_results` and `performance_index` render and
score the per-trace `Stats`.

## Timing helpers

`cslabs.fsecs.Timer` times a function in seconds with the method chosen by
`cslabs.fsecs.TimingMethod` (wall clock by default, the interval timer, or
cycle counting, which first spends two seconds estimating the clock rate).
`cslabs.fcyc` provides the K-best sampling scheme, and `cslabs.clock`
provides cycle counters built on a clock source.

## What this package does not do

- It does not generate memory traces of the transpose functions, nor run
  them through the simulator to count their misses; cache traces must be
  supplied.
- No trace files are included; point `csim` and `mdriver` at your own.