"""
PUMP CASINO — Timer Scheduler

Engine-initiated transitions (crash countdown/launch/crash, dealer draws,
idle timeouts) are deadlines in one heap keyed by round. Scheduling a key
again replaces its previous deadline; stale heap entries are skipped.

Callbacks receive the deadline they were scheduled for, not the wall time at
which they happened to run, so a late tick replays exactly what should have
happened. A callback may reschedule itself; `run_pending` keeps going until
nothing is due.

The clock is injectable: MonotonicClock for live play, ManualClock for tests
and simulation.

Usage:
    sched = Scheduler()
    sched.schedule("r1", clock.now() + 0.8, lambda at: print("due", at))
    sched.run_pending(clock.now())
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger("pumpcasino.scheduler")


class MonotonicClock:
    def now(self) -> float:
        return time.monotonic()


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> float:
        with self._lock:
            self._now += seconds
            return self._now

    def set(self, value: float) -> None:
        with self._lock:
            self._now = float(value)


class Scheduler:
    """Single-fire deadlines, at most one live deadline per key."""

    def __init__(self):
        self._heap: list[tuple[float, int, str]] = []
        self._entries: dict[str, tuple[float, int, Callable[[float], None]]] = {}
        self._seq = itertools.count()
        self._lock = threading.Lock()

    def schedule(self, key: str, due_at: float, callback: Callable[[float], None]) -> None:
        with self._lock:
            seq = next(self._seq)
            self._entries[key] = (due_at, seq, callback)
            heapq.heappush(self._heap, (due_at, seq, key))

    def cancel(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def next_due(self) -> Optional[float]:
        with self._lock:
            self._drop_stale()
            return self._heap[0][0] if self._heap else None

    def pending(self) -> int:
        with self._lock:
            return len(self._entries)

    def _drop_stale(self) -> None:
        while self._heap:
            due_at, seq, key = self._heap[0]
            entry = self._entries.get(key)
            if entry is not None and entry[1] == seq:
                return
            heapq.heappop(self._heap)

    def run_pending(self, now: float) -> int:
        """Fire every deadline <= now, in deadline order. Returns the count."""
        fired = 0
        while True:
            with self._lock:
                self._drop_stale()
                if not self._heap or self._heap[0][0] > now:
                    return fired
                due_at, seq, key = heapq.heappop(self._heap)
                _, _, callback = self._entries.pop(key)
            fired += 1
            try:
                callback(due_at)
            except Exception as e:
                # one broken timer must not stall every other round
                logger.exception(f"Timer {key} failed at {due_at:.3f}: {e}")


class SchedulerThread(threading.Thread):
    """Daemon loop polling the scheduler against a clock."""

    def __init__(self, scheduler: Scheduler, clock, interval: float = 0.05):
        super().__init__(name="pumpcasino-scheduler", daemon=True)
        self.scheduler = scheduler
        self.clock = clock
        self.interval = interval
        self._stop_event = threading.Event()

    def run(self) -> None:
        logger.info(f"Scheduler started (interval={self.interval}s)")
        while not self._stop_event.wait(self.interval):
            self.scheduler.run_pending(self.clock.now())
        logger.info("Scheduler stopped")

    def stop(self, timeout: float = 2.0) -> None:
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout=timeout)
