import pytest

from cslabs.explicit import ExplicitAllocator
from cslabs.implicit import AllocatorInitError, ImplicitAllocator
from cslabs.mdriver import (
    Driver,
    Stats,
    Team,
    check_team,
    eval_libc_valid,
    format_results,
    main,
    performance_index,
)
from cslabs.trace import RangeList, parse_trace

SIMPLE = "0 2 4 1\na 0 10\na 1 20\nf 0\nf 1\n"
REALLOC = "0 2 6 1\na 0 10\na 1 300\nr 0 200\nr 1 5\nf 0\nf 1\n"


class _Misaligned(ExplicitAllocator):
    def malloc(self, size):
        return super().malloc(size) + 1


class _ForgetfulRealloc(ExplicitAllocator):
    def realloc(self, ptr, size):
        newptr = self.malloc(size)
        self.mem.fill(newptr, 0xEE, size)
        self.free(ptr)
        return newptr


class _BrokenInit(ExplicitAllocator):
    def init(self):
        raise AllocatorInitError("no heap")


def test_check_team_lines():
    lines = check_team(Team("WTF", "Alice", "alice@example.com"))
    assert lines == ["Team Name:WTF", "Member 1 :Alice:alice@example.com"]


def test_check_team_second_member():
    lines = check_team(Team("T", "A", "a@example.com", "B", "b@example.com"))
    assert lines[-1] == "Member 2 :B:b@example.com"


@pytest.mark.parametrize(
    "team",
    [
        Team("", "A", "a@example.com"),
        Team("T", "", "a@example.com"),
        Team("T", "A", ""),
        Team("T", "A", "a@example.com", "B", ""),
        Team("T", "A", "a@example.com", "", "b@example.com"),
    ],
)
def test_check_team_incomplete(team):
    with pytest.raises(ValueError):
        check_team(team)


@pytest.mark.parametrize("factory", [ExplicitAllocator, ImplicitAllocator])
@pytest.mark.parametrize("text", [SIMPLE, REALLOC])
def test_valid_allocators(factory, text):
    driver = Driver(factory)
    ranges = RangeList()
    assert driver.eval_mm_valid(parse_trace(text), 0, ranges) is True
    assert driver.errors == 0
    assert len(ranges) == 0


def test_misaligned_payload_is_reported(capsys):
    driver = Driver(_Misaligned)
    assert driver.eval_mm_valid(parse_trace(SIMPLE), 3) is False
    assert driver.errors == 1
    out = capsys.readouterr().out
    assert "ERROR [trace 3, line 5]" in out
    assert "not aligned to 8 bytes" in out


def test_realloc_must_preserve_data(capsys):
    driver = Driver(_ForgetfulRealloc)
    assert driver.eval_mm_valid(parse_trace(REALLOC), 0) is False
    assert "mm_realloc did not preserve the data from old block" in (
        capsys.readouterr().out
    )


def test_init_failure_is_reported(capsys):
    driver = Driver(_BrokenInit)
    assert driver.eval_mm_valid(parse_trace(SIMPLE), 1) is False
    assert "mm_init failed." in capsys.readouterr().out


def test_init_failure_in_util_raises():
    driver = Driver(_BrokenInit)
    with pytest.raises(RuntimeError):
        driver.eval_mm_util(parse_trace(SIMPLE))


@pytest.mark.parametrize("text", [SIMPLE, REALLOC])
def test_util_is_a_fraction(text):
    util = Driver(ExplicitAllocator).eval_mm_util(parse_trace(text))
    assert 0.0 < util <= 1.0


def test_speed_run_grows_heap():
    driver = Driver(ExplicitAllocator)
    driver.eval_mm_speed(parse_trace(REALLOC))
    assert driver.mem.heapsize() > 0


def test_libc_valid():
    assert eval_libc_valid(parse_trace(REALLOC)) is True


def test_performance_index_caps_throughput():
    p1, p2, total = performance_index([Stats(ops=1e9, valid=True, secs=1.0, util=1.0)])
    assert p1 == pytest.approx(60.0)
    assert p2 == pytest.approx(40.0)
    assert total == pytest.approx(100.0)


def test_performance_index_slow_allocator():
    p1, p2, total = performance_index([Stats(ops=10, valid=True, secs=1.0, util=0.5)])
    assert p2 < 40.0
    assert total == pytest.approx(p1 + p2)


def test_performance_index_needs_stats():
    with pytest.raises(ValueError):
        performance_index([])


def test_format_results_rows():
    table = format_results(
        [Stats(ops=4, valid=True, secs=0.5, util=0.5), Stats(ops=4)], errors=0
    ).splitlines()
    assert len(table) == 4
    assert table[0].startswith("trace")
    assert "yes" in table[1]
    assert "no" in table[2]
    assert table[3].startswith("Total")


def test_format_results_with_errors():
    last = format_results([Stats(ops=4)], errors=1).splitlines()[-1]
    assert last.startswith("Total")
    assert last.rstrip().endswith("-")


def test_main_runs_single_trace(tmp_path, monkeypatch, capsys):
    (tmp_path / "t.rep").write_text(REALLOC)
    monkeypatch.chdir(tmp_path)
    assert main(["-a", "-g", "-f", "t.rep"]) == 0
    out = capsys.readouterr().out
    assert "Perf index" in out
    assert "correct:1" in out


def test_main_prints_team(tmp_path, monkeypatch, capsys):
    (tmp_path / "t.rep").write_text(SIMPLE)
    monkeypatch.chdir(tmp_path)
    assert main(["-l", "-v", "-f", "t.rep"]) == 0
    out = capsys.readouterr().out
    assert "Team Name:" in out
    assert "Results for libc malloc:" in out


def test_main_missing_trace(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert main(["-a", "-f", "absent.rep"]) == 1


def test_main_help_and_bad_option():
    assert main(["-h"]) == 0
    assert main(["-z"]) == 1