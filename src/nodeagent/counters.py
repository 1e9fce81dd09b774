"""Counter sources: raw cumulative CPU, memory and uptime readings."""

import re
import time
from pathlib import Path
from typing import Protocol

import psutil

from nodeagent.errors import ConfigError, ReadError
from nodeagent.models import CoreCounterSample, CoreCounters

# user nice system idle iowait irq softirq steal
STAT_FIELDS = 8
IDLE_FIELD = 3
IOWAIT_FIELD = 4

# psutil reports seconds; convert to USER_HZ ticks like /proc/stat
TICKS_PER_SECOND = 100

_CORE_ROW = re.compile(r"^cpu(\d+)\s")


class CounterSource(Protocol):
    """Where the sampler gets its raw readings from."""

    def capture(self) -> CoreCounterSample: ...

    def core_count(self) -> int: ...

    def total_memory_mb(self) -> int: ...

    def free_memory_mb(self) -> int: ...

    def uptime_seconds(self) -> float: ...


def kb_to_mb(kb: int) -> int:
    """Convert kilobytes to megabytes, truncating."""
    return kb // 1024


def parse_proc_stat(text: str, core_count: int | None = None) -> tuple[CoreCounters, ...]:
    """
    Parse the per-core rows of /proc/stat.

    The aggregate ``cpu`` row is skipped. Columns beyond steal (guest,
    guest_nice) are ignored since the kernel already counts them in user/nice.

    Args:
        text: Contents of /proc/stat.
        core_count: If given, exactly this many core rows must be present.
            Rows need not be contiguous: offline cores are absent from the file.

    Raises:
        ReadError: On a wrong row count or non-numeric fields.
    """
    rows: dict[int, CoreCounters] = {}

    for line in text.splitlines():
        match = _CORE_ROW.match(line)
        if match is None:
            continue

        index = int(match.group(1))
        fields = line.split()[1 : STAT_FIELDS + 1]
        if len(fields) <= IDLE_FIELD:
            raise ReadError(f"cpu{index}: expected at least {IDLE_FIELD + 1} fields, got {len(fields)}")

        try:
            values = [int(field) for field in fields]
        except ValueError as e:
            raise ReadError(f"cpu{index}: non-numeric field in {line!r}") from e

        total = sum(values)
        idle = sum(value for i, value in enumerate(values) if i in (IDLE_FIELD, IOWAIT_FIELD))
        rows[index] = CoreCounters(active_ticks=total - idle, total_ticks=total)

    if not rows:
        raise ReadError("no per-core rows found in stat output")

    # Offline cores have no row; the present ones are kept in index order
    if core_count is not None and len(rows) != core_count:
        raise ReadError(f"expected {core_count} cores, found {len(rows)}")

    return tuple(rows[i] for i in sorted(rows))


def parse_meminfo(text: str, key: str) -> int:
    """Return the kB value for ``key`` (e.g. MemTotal, MemFree) from /proc/meminfo."""
    for line in text.splitlines():
        name, sep, rest = line.partition(":")
        if not sep or name.strip() != key:
            continue
        value = rest.strip().removesuffix("kB").strip()
        try:
            return int(value)
        except ValueError as e:
            raise ReadError(f"{key}: non-numeric value {value!r}") from e
    raise ReadError(f"{key} not found in meminfo output")


def parse_uptime(text: str) -> float:
    """Return seconds since boot from /proc/uptime."""
    fields = text.split()
    if not fields:
        raise ReadError("empty uptime output")
    try:
        return float(fields[0])
    except ValueError as e:
        raise ReadError(f"non-numeric uptime {fields[0]!r}") from e


class ProcFsCounterSource:
    """Counter source backed by the Linux procfs text tables."""

    def __init__(self, root: str | Path = "/proc") -> None:
        self._root = Path(root)

    def _read(self, name: str) -> str:
        path = self._root / name
        try:
            return path.read_text()
        except OSError as e:
            raise ReadError(f"cannot read {path}: {e}") from e

    def capture(self) -> CoreCounterSample:
        # One read of the stat file per capture so all cores share an instant
        text = self._read("stat")
        return CoreCounterSample(cores=parse_proc_stat(text), captured_at=time.monotonic())

    def core_count(self) -> int:
        return len(parse_proc_stat(self._read("stat")))

    def total_memory_mb(self) -> int:
        return kb_to_mb(parse_meminfo(self._read("meminfo"), "MemTotal"))

    def free_memory_mb(self) -> int:
        return kb_to_mb(parse_meminfo(self._read("meminfo"), "MemFree"))

    def uptime_seconds(self) -> float:
        return parse_uptime(self._read("uptime"))


class PsutilCounterSource:
    """Counter source backed by psutil, for hosts without procfs."""

    def capture(self) -> CoreCounterSample:
        try:
            per_cpu = psutil.cpu_times(percpu=True)
        except (psutil.Error, OSError) as e:
            raise ReadError(f"psutil.cpu_times failed: {e}") from e
        if not per_cpu:
            raise ReadError("psutil.cpu_times returned no cores")

        return CoreCounterSample(
            cores=tuple(self._to_counters(times) for times in per_cpu),
            captured_at=time.monotonic(),
        )

    @staticmethod
    def _to_counters(times) -> CoreCounters:
        fields = times._asdict()
        # guest time is already included in user/nice on Linux
        fields.pop("guest", None)
        fields.pop("guest_nice", None)
        total = sum(fields.values())
        idle = fields.get("idle", 0.0) + fields.get("iowait", 0.0)
        return CoreCounters(
            active_ticks=round((total - idle) * TICKS_PER_SECOND),
            total_ticks=round(total * TICKS_PER_SECOND),
        )

    def core_count(self) -> int:
        count = psutil.cpu_count(logical=True)
        if not count:
            raise ReadError("unable to determine logical core count")
        return count

    def total_memory_mb(self) -> int:
        try:
            return kb_to_mb(psutil.virtual_memory().total // 1024)
        except (psutil.Error, OSError) as e:
            raise ReadError(f"psutil.virtual_memory failed: {e}") from e

    def free_memory_mb(self) -> int:
        try:
            return kb_to_mb(psutil.virtual_memory().free // 1024)
        except (psutil.Error, OSError) as e:
            raise ReadError(f"psutil.virtual_memory failed: {e}") from e

    def uptime_seconds(self) -> float:
        try:
            return time.time() - psutil.boot_time()
        except (psutil.Error, OSError) as e:
            raise ReadError(f"psutil.boot_time failed: {e}") from e


def create_counter_source(name: str, proc_root: str | Path = "/proc") -> CounterSource:
    """Build the counter source named in the configuration."""
    if name == "procfs":
        return ProcFsCounterSource(proc_root)
    if name == "psutil":
        return PsutilCounterSource()
    raise ConfigError(f"unknown counter source {name!r} (expected 'procfs' or 'psutil')")
