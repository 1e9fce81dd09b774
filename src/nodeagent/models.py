"""Data models for nodeagent."""

from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(slots=True, frozen=True)
class CoreCounters:
    """Cumulative time-accounting counters for one logical core."""

    active_ticks: int  # Everything except idle and iowait
    total_ticks: int


@dataclass(slots=True, frozen=True)
class CoreCounterSample:
    """Immutable capture of every core's counters at a single instant."""

    cores: tuple[CoreCounters, ...]
    captured_at: float  # time.monotonic()

    def active(self) -> list[int]:
        return [core.active_ticks for core in self.cores]

    def total(self) -> list[int]:
        return [core.total_ticks for core in self.cores]


@dataclass(slots=True, frozen=True)
class UtilizationSnapshot:
    """Complete result of one resample cycle."""

    per_core_percent: tuple[float, ...]  # 0.0 - 100.0 per core
    memory_used_mb: int
    memory_total_mb: int
    uptime_seconds: float
    sampled_at: datetime
    cycle: int = 0

    @classmethod
    def initial(cls, core_count: int, memory_total_mb: int) -> "UtilizationSnapshot":
        """Snapshot held by NodeState before the first resample completes."""
        return cls(
            per_core_percent=(0.0,) * core_count,
            memory_used_mb=0,
            memory_total_mb=memory_total_mb,
            uptime_seconds=0.0,
            sampled_at=datetime.now(timezone.utc),
            cycle=0,
        )

    @property
    def core_count(self) -> int:
        return len(self.per_core_percent)

    def to_dict(self) -> dict:
        return {
            "per_core_percent": list(self.per_core_percent),
            "memory_used_mb": self.memory_used_mb,
            "memory_total_mb": self.memory_total_mb,
            "uptime_seconds": self.uptime_seconds,
            "sampled_at": self.sampled_at.isoformat(),
            "cycle": self.cycle,
        }


@dataclass(slots=True, frozen=True)
class NodeIdentity:
    """Static facts about the node, fixed at startup."""

    node_id: str
    cluster_id: str
    core_count: int
    host_name: str
    os_name: str

    def to_dict(self) -> dict:
        return {
            "node_id": self.node_id,
            "cluster_id": self.cluster_id,
            "core_count": self.core_count,
            "host_name": self.host_name,
            "os_name": self.os_name,
        }
