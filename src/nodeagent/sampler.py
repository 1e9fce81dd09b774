"""Utilization sampler: turns cumulative counters into per-core percentages."""

import logging
import threading
import time
from collections.abc import Sequence
from datetime import datetime, timezone

from nodeagent.counters import CounterSource
from nodeagent.errors import ReadError
from nodeagent.models import CoreCounterSample, UtilizationSnapshot
from nodeagent.state import NodeState

log = logging.getLogger(__name__)


def compute_core_percentages(
    first: CoreCounterSample,
    second: CoreCounterSample,
    previous: Sequence[float],
) -> tuple[tuple[float, ...], list[int]]:
    """
    Difference two counter captures into per-core utilization.

    A core whose total did not advance, or whose counters went backwards
    (reset or wraparound), has no defined utilization for this window and
    keeps its value from ``previous``.

    Returns:
        The per-core percentages and the indices of cores that were held over.
    """
    if not (len(first.cores) == len(second.cores) == len(previous)):
        raise ValueError(
            f"core count mismatch: {len(first.cores)}, {len(second.cores)}, {len(previous)}"
        )

    percents: list[float] = []
    held: list[int] = []

    for i, (before, after) in enumerate(zip(first.cores, second.cores)):
        delta_active = after.active_ticks - before.active_ticks
        delta_total = after.total_ticks - before.total_ticks

        if delta_total <= 0 or delta_active < 0:
            percents.append(previous[i])
            held.append(i)
            continue

        percent = 100.0 * delta_active / delta_total
        percents.append(min(100.0, percent))

    return tuple(percents), held


def memory_used_mb(total_mb: int, free_mb: int) -> int:
    """Used memory, clamped at zero when the free reading exceeds total."""
    return max(0, total_mb - free_mb)


class UtilizationSampler:
    """
    Runs one resample cycle: capture, wait out the sampling window, capture
    again, diff, and swap the new snapshot into NodeState.
    """

    def __init__(
        self,
        source: CounterSource,
        state: NodeState,
        window: float,
        memory_total_mb: int,
    ) -> None:
        """
        Initialize the UtilizationSampler.

        Args:
            source: Where counter readings come from.
            state: Shared node state; this sampler is its only writer.
            window: Seconds between the two captures (half the interval).
            memory_total_mb: Total memory, queried once at startup.
        """
        if window < 0:
            raise ValueError("sampling window must not be negative")
        self._source = source
        self._state = state
        self._window = window
        self._memory_total_mb = memory_total_mb

    @property
    def window(self) -> float:
        return self._window

    def run_cycle(self, cancel: threading.Event | None = None) -> UtilizationSnapshot | None:
        """
        Run a full resample cycle.

        Args:
            cancel: If set while waiting between captures, the cycle is
                discarded and NodeState is left untouched.

        Returns:
            The new snapshot, or None if the cycle was aborted.
        """
        expected = self._state.identity.core_count
        try:
            first = self._capture(expected)
            if cancel is not None:
                if cancel.wait(timeout=self._window):
                    log.debug("Resample cancelled during sampling window")
                    return None
            else:
                time.sleep(self._window)
            second = self._capture(expected)
            free_mb = self._source.free_memory_mb()
            uptime = self._source.uptime_seconds()
        except ReadError as e:
            log.warning("Resample cycle skipped: %s", e)
            return None

        previous = self._state.current()
        percents, held = compute_core_percentages(first, second, previous.per_core_percent)
        if held:
            log.debug("Utilization undefined this cycle for cores %s, holding previous values", held)

        snapshot = UtilizationSnapshot(
            per_core_percent=percents,
            memory_used_mb=memory_used_mb(self._memory_total_mb, free_mb),
            memory_total_mb=self._memory_total_mb,
            uptime_seconds=uptime,
            sampled_at=datetime.now(timezone.utc),
            cycle=previous.cycle + 1,
        )
        self._state.replace(snapshot)
        return snapshot

    def _capture(self, expected: int) -> CoreCounterSample:
        sample = self._source.capture()
        if len(sample.cores) != expected:
            raise ReadError(f"captured {len(sample.cores)} cores, expected {expected}")
        return sample
