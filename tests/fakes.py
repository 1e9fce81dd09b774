"""Test doubles for nodeagent."""

import itertools
import time

from nodeagent.models import CoreCounterSample, CoreCounters, NodeIdentity, UtilizationSnapshot


def make_sample(pairs: list[tuple[int, int]]) -> CoreCounterSample:
    """Build a CoreCounterSample from (active, total) pairs."""
    return CoreCounterSample(
        cores=tuple(CoreCounters(active_ticks=a, total_ticks=t) for a, t in pairs),
        captured_at=time.monotonic(),
    )


def make_identity(core_count: int = 2) -> NodeIdentity:
    return NodeIdentity(
        node_id="node-1",
        cluster_id="cluster-a",
        core_count=core_count,
        host_name="jetson-01",
        os_name="Linux-test",
    )


class FakeCounterSource:
    """
    Replays scripted captures.

    Each entry in ``captures`` is a list of (active, total) pairs or an
    exception instance to raise. Once the script runs out, counters keep
    advancing by ``step`` per capture on every core.
    """

    def __init__(
        self,
        captures: list | None = None,
        core_count: int = 2,
        total_mb: int = 2048,
        free_mb: int = 1024,
        uptime: float = 3600.0,
        step: tuple[int, int] = (50, 100),
    ) -> None:
        self._captures = list(captures or [])
        self._core_count = core_count
        self._total_mb = total_mb
        self.free_mb = free_mb
        self.uptime = uptime
        self._step = step
        self._ticks = itertools.count(1)
        self.capture_calls = 0
        self.capture_times: list[float] = []

    def capture(self) -> CoreCounterSample:
        self.capture_calls += 1
        self.capture_times.append(time.monotonic())
        if self._captures:
            item = self._captures.pop(0)
            if isinstance(item, Exception):
                raise item
            return make_sample(item)
        n = next(self._ticks)
        return make_sample([(n * self._step[0], n * self._step[1])] * self._core_count)

    def core_count(self) -> int:
        return self._core_count

    def total_memory_mb(self) -> int:
        return self._total_mb

    def free_memory_mb(self) -> int:
        if isinstance(self.free_mb, Exception):
            raise self.free_mb
        return self.free_mb

    def uptime_seconds(self) -> float:
        return self.uptime


class RecordingPublisher:
    """Keeps every published snapshot; optionally fails."""

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.published: list[tuple[NodeIdentity, UtilizationSnapshot]] = []
        self.fail_with = fail_with
        self.attempts = 0

    def publish(self, identity: NodeIdentity, snapshot: UtilizationSnapshot) -> None:
        self.attempts += 1
        if self.fail_with is not None:
            raise self.fail_with
        self.published.append((identity, snapshot))

    @property
    def cycles(self) -> list[int]:
        return [snapshot.cycle for _, snapshot in self.published]

