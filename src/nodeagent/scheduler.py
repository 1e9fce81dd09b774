"""Dual-cadence scheduler: resample and publish on independent timers."""

import logging
import threading
import time
from collections.abc import Callable

from nodeagent.errors import TransmitError
from nodeagent.publisher import Publisher
from nodeagent.sampler import UtilizationSampler
from nodeagent.state import NodeState

log = logging.getLogger(__name__)


class DualCadenceScheduler:
    """
    Drives the resample and publish activities against one NodeState.

    Both run every ``interval`` seconds in their own daemon thread. Resample
    fires first at t=0; publish is phase-offset by one interval, so each
    publish sees the snapshot of the resample that started half an interval
    (one sampling window) before it and finished in the meantime.

    Failures inside a tick are logged and absorbed; the scheduler keeps
    running until stop() is called.
    """

    def __init__(
        self,
        sampler: UtilizationSampler,
        state: NodeState,
        publisher: Publisher,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._sampler = sampler
        self._state = state
        self._publisher = publisher
        self._interval = interval
        self._clock = clock
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._started_at = 0.0
        self.resample_count = 0
        self.publish_count = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        """Check if either timer thread is alive."""
        return any(thread.is_alive() for thread in self._threads)

    def start(self) -> None:
        """Start both timers."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._started_at = self._clock()
        self._threads = [
            threading.Thread(
                target=self._run_periodic,
                args=(0.0, self.resample_once),
                daemon=True,
                name="resample",
            ),
            threading.Thread(
                target=self._run_periodic,
                args=(self._interval, self.publish_once),
                daemon=True,
                name="publish",
            ),
        ]
        for thread in self._threads:
            thread.start()
        log.info("Scheduler running: resample and publish every %.3fs", self._interval)

    def request_stop(self) -> None:
        """Ask both timers to stop without waiting for them; safe from signal handlers."""
        self._stop_event.set()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop both timers.

        A resample that is inside its sampling window is interrupted and its
        result discarded, so NodeState keeps the last complete snapshot.

        Args:
            timeout: How long to wait for each thread to stop (seconds).
        """
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout=timeout)

        # A thread stuck in a tick stays tracked so start() cannot run a duplicate
        self._threads = [thread for thread in self._threads if thread.is_alive()]
        if self._threads:
            log.warning(
                "Timer threads still running after stop: %s",
                ", ".join(thread.name for thread in self._threads),
            )

    def wait(self, timeout: float | None = None) -> bool:
        """Block until a stop is requested. Returns True if it was."""
        return self._stop_event.wait(timeout=timeout)

    def resample_once(self) -> None:
        snapshot = self._sampler.run_cycle(cancel=self._stop_event)
        if snapshot is not None:
            self.resample_count += 1

    def publish_once(self) -> None:
        snapshot = self._state.current()
        try:
            self._publisher.publish(self._state.identity, snapshot)
        except TransmitError as e:
            log.warning("Publish of cycle %d failed: %s", snapshot.cycle, e)
            return
        self.publish_count += 1

    def _run_periodic(self, offset: float, tick: Callable[[], None]) -> None:
        """Fire ``tick`` at started_at + offset + n * interval until stopped."""
        origin = self._started_at + offset
        slot = 0

        while not self._stop_event.is_set():
            delay = origin + slot * self._interval - self._clock()
            if delay > 0 and self._stop_event.wait(timeout=delay):
                break

            try:
                tick()
            except Exception:
                log.exception("%s tick failed", threading.current_thread().name)

            # Skip any slots missed while the tick ran instead of bursting
            elapsed = self._clock() - origin
            slot = max(slot + 1, int(elapsed // self._interval) + 1)
