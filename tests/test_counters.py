"""Tests for the counter sources and their parsers."""

import pytest

from nodeagent.counters import (
    ProcFsCounterSource,
    PsutilCounterSource,
    create_counter_source,
    kb_to_mb,
    parse_meminfo,
    parse_proc_stat,
    parse_uptime,
)
from nodeagent.errors import ConfigError, ReadError

PROC_STAT = """\
cpu  300 20 100 1000 50 5 5 0 0 0
cpu0 100 10 50 500 20 3 2 0 0 0
cpu1 200 10 50 500 30 2 3 0 0 0
intr 12345 0 0
ctxt 987654
btime 1700000000
processes 4242
"""

MEMINFO = """\
MemTotal:        2097152 kB
MemFree:          512000 kB
MemAvailable:    1024000 kB
Buffers:           10240 kB
"""


@pytest.fixture
def proc_root(tmp_path):
    """A fake procfs directory."""
    (tmp_path / "stat").write_text(PROC_STAT)
    (tmp_path / "meminfo").write_text(MEMINFO)
    (tmp_path / "uptime").write_text("12345.67 40000.00\n")
    return tmp_path


class TestParseProcStat:
    """Tests for parse_proc_stat."""

    def test_active_excludes_idle_and_iowait(self):
        cores = parse_proc_stat(PROC_STAT)

        assert len(cores) == 2
        # cpu0: user+nice+system+irq+softirq+steal = 100+10+50+3+2+0
        assert cores[0].active_ticks == 165
        assert cores[0].total_ticks == 685
        assert cores[1].active_ticks == 265
        assert cores[1].total_ticks == 795

    def test_skips_aggregate_row(self):
        cores = parse_proc_stat("cpu  1 1 1 1\ncpu0 1 2 3 4\n")

        assert len(cores) == 1
        assert cores[0].total_ticks == 10

    def test_ignores_guest_columns(self):
        cores = parse_proc_stat("cpu0 10 0 10 80 0 0 0 0 999 999\n")

        assert cores[0].total_ticks == 100
        assert cores[0].active_ticks == 20

    def test_older_kernel_without_iowait(self):
        cores = parse_proc_stat("cpu0 10 0 10 80\n")

        assert cores[0].active_ticks == 20
        assert cores[0].total_ticks == 100

    def test_rows_ordered_by_core_index(self):
        cores = parse_proc_stat("cpu1 2 0 0 8\ncpu0 1 0 0 9\n")

        assert [c.active_ticks for c in cores] == [1, 2]

    def test_non_numeric_field(self):
        with pytest.raises(ReadError):
            parse_proc_stat("cpu0 10 abc 10 80 0 0 0 0\n")

    def test_too_few_fields(self):
        with pytest.raises(ReadError):
            parse_proc_stat("cpu0 10 0 10\n")

    def test_no_core_rows(self):
        with pytest.raises(ReadError):
            parse_proc_stat("cpu  1 2 3 4\nintr 0\n")

    def test_missing_expected_core(self):
        with pytest.raises(ReadError):
            parse_proc_stat(PROC_STAT, core_count=4)

    def test_offline_cores_are_skipped(self):
        """Test offline cores (absent rows) do not break parsing."""
        cores = parse_proc_stat("cpu0 1 0 0 9\ncpu2 2 0 0 8\n")

        assert len(cores) == 2
        assert [c.active_ticks for c in cores] == [1, 2]

    def test_offline_cores_with_expected_count(self):
        stat = "cpu0 1 0 0 9\ncpu3 1 0 0 9\ncpu4 1 0 0 9\ncpu5 1 0 0 9\n"

        assert len(parse_proc_stat(stat, core_count=4)) == 4
        with pytest.raises(ReadError):
            parse_proc_stat(stat, core_count=6)

    def test_expected_core_count_matches(self):
        assert len(parse_proc_stat(PROC_STAT, core_count=2)) == 2


class TestMemoryAndUptime:
    """Tests for meminfo/uptime parsing and unit conversion."""

    def test_parse_meminfo(self):
        assert parse_meminfo(MEMINFO, "MemTotal") == 2097152
        assert parse_meminfo(MEMINFO, "MemFree") == 512000

    def test_parse_meminfo_does_not_match_prefix(self):
        # MemFree must not match a hypothetical MemFreeX key
        with pytest.raises(ReadError):
            parse_meminfo("MemFreeX: 10 kB\n", "MemFree")

    def test_parse_meminfo_missing_key(self):
        with pytest.raises(ReadError):
            parse_meminfo("MemTotal: 1 kB\n", "MemFree")

    def test_parse_meminfo_non_numeric(self):
        with pytest.raises(ReadError):
            parse_meminfo("MemFree: lots kB\n", "MemFree")

    def test_kb_to_mb_truncates(self):
        assert kb_to_mb(512000) == 500
        assert kb_to_mb(2097152) == 2048
        assert kb_to_mb(1023) == 0

    def test_parse_uptime(self):
        assert parse_uptime("12345.67 40000.00\n") == pytest.approx(12345.67)

    def test_parse_uptime_malformed(self):
        with pytest.raises(ReadError):
            parse_uptime("")
        with pytest.raises(ReadError):
            parse_uptime("soon 1.0")


class TestProcFsCounterSource:
    """Tests for the procfs-backed counter source."""

    def test_capture(self, proc_root):
        source = ProcFsCounterSource(proc_root)

        sample = source.capture()

        assert sample.active() == [165, 265]
        assert sample.total() == [685, 795]

    def test_core_count(self, proc_root):
        assert ProcFsCounterSource(proc_root).core_count() == 2

    def test_memory(self, proc_root):
        source = ProcFsCounterSource(proc_root)

        assert source.total_memory_mb() == 2048
        assert source.free_memory_mb() == 500

    def test_uptime(self, proc_root):
        assert ProcFsCounterSource(proc_root).uptime_seconds() == pytest.approx(12345.67)

    def test_unreadable_source(self, tmp_path):
        source = ProcFsCounterSource(tmp_path / "missing")

        with pytest.raises(ReadError):
            source.capture()
        with pytest.raises(ReadError):
            source.free_memory_mb()


class TestPsutilCounterSource:
    """Tests for the psutil-backed counter source against the real host."""

    def test_capture_matches_core_count(self):
        source = PsutilCounterSource()

        sample = source.capture()

        assert len(sample.cores) == source.core_count()
        for core in sample.cores:
            assert 0 <= core.active_ticks <= core.total_ticks

    def test_memory_and_uptime(self):
        source = PsutilCounterSource()

        assert source.total_memory_mb() > 0
        assert 0 <= source.free_memory_mb() <= source.total_memory_mb()
        assert source.uptime_seconds() > 0


def test_create_counter_source(tmp_path):
    assert isinstance(create_counter_source("procfs", tmp_path), ProcFsCounterSource)
    assert isinstance(create_counter_source("psutil"), PsutilCounterSource)

    with pytest.raises(ConfigError):
        create_counter_source("wmi")
