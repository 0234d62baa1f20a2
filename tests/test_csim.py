import io

import pytest

from cslabs.csim import (
    CacheSimulator,
    Outcome,
    TraceRecord,
    main,
    parse_trace,
    simulate_file,
)

YI_TRACE = """\
 L 10,1
 M 20,1
 L 22,1
 S 18,1
 L 110,1
 L 210,1
 M 12,1
"""


@pytest.fixture
def yi_path(tmp_path):
    path = tmp_path / "yi.trace"
    path.write_text(YI_TRACE)
    return path


def test_yi_direct_mapped(yi_path):
    assert simulate_file(yi_path, 4, 1, 4) == (4, 5, 3)


def test_yi_two_way(yi_path):
    assert simulate_file(yi_path, 4, 2, 4) == (4, 5, 2)


def test_lru_eviction_order():
    sim = CacheSimulator(0, 2, 0)
    outcomes = [sim.access(addr) for addr in (0, 1, 0, 2, 1, 2)]
    assert outcomes == [
        Outcome.MISS,
        Outcome.MISS,
        Outcome.HIT,
        Outcome.MISS_EVICTION,
        Outcome.MISS_EVICTION,
        Outcome.HIT,
    ]


def test_counts_match_outcomes():
    sim = CacheSimulator(2, 1, 2)
    addresses = [0, 4, 16, 64, 0, 80, 4, 256]
    outcomes = [sim.access(a) for a in addresses]
    hits, misses, evictions = sim.counts
    assert hits + misses == len(addresses)
    assert hits == outcomes.count(Outcome.HIT)
    assert evictions == outcomes.count(Outcome.MISS_EVICTION)


def test_modify_is_load_then_store():
    sim = CacheSimulator(1, 1, 1)
    outcomes = sim.apply(TraceRecord("M", 0x40, 4))
    assert len(outcomes) == 2
    assert outcomes[1] is Outcome.HIT


def test_instruction_records_ignored():
    sim = CacheSimulator(1, 1, 1)
    assert sim.apply(TraceRecord("I", 0x400, 8)) == []
    assert sim.counts == (0, 0, 0)


def test_same_block_hits():
    sim = CacheSimulator(2, 1, 4)
    assert sim.access(0x100) is Outcome.MISS
    assert sim.access(0x10F) is Outcome.HIT


def test_invalid_geometry():
    with pytest.raises(ValueError):
        CacheSimulator(-1, 1, 1)
    with pytest.raises(ValueError):
        CacheSimulator(1, 0, 1)


def test_parse_trace_records():
    records = list(parse_trace([" L 10,1\n", "I  0400d7d4,8\n", "\n"]))
    assert records == [TraceRecord("L", 0x10, 1), TraceRecord("I", 0x0400D7D4, 8)]


def test_parse_trace_malformed():
    with pytest.raises(ValueError):
        list(parse_trace([" L 10\n"]))
    with pytest.raises(ValueError):
        list(parse_trace([" L zz,1\n"]))


def test_verbose_output_matches_counts():
    sim = CacheSimulator(4, 1, 4)
    out = io.StringIO()
    hits, misses, evictions = sim.run(parse_trace(YI_TRACE.splitlines()), True, out)
    text = out.getvalue()
    assert text.count("hit") == hits
    assert text.count("miss") == misses
    assert text.count("eviction") == evictions


def test_quiet_run_writes_nothing():
    out = io.StringIO()
    CacheSimulator(4, 1, 4).run(parse_trace(YI_TRACE.splitlines()), False, out)
    assert out.getvalue() == ""


def test_main_writes_summary(yi_path, tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main(["-s", "4", "-E", "1", "-b", "4", "-t", str(yi_path)]) == 0
    assert "hits:4 misses:5 evictions:3" in capsys.readouterr().out
    assert (tmp_path / ".csim_results").read_text() == "4 5 3\n"


def test_main_missing_file(tmp_path, capsys):
    missing = tmp_path / "absent.trace"
    assert main(["-s", "1", "-E", "1", "-b", "1", "-t", str(missing)]) != 0
    assert f"No such file: {missing}" in capsys.readouterr().out


def test_main_help(capsys):
    assert main(["-h"]) == 0
    assert "Usage:" in capsys.readouterr().out


def test_main_missing_arguments(capsys):
    assert main(["-s", "4"]) != 0
    assert "Usage:" in capsys.readouterr().out


def test_main_bad_option(capsys):
    assert main(["-x"]) != 0
    assert "Usage:" in capsys.readouterr().out