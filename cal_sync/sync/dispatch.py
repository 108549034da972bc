"""
Serial work queue acting as the engine's single coordination context.

Anything that touches engine state runs on the thread that drains this queue.
Background threads (the store's reminder fetch, access request callbacks)
never call into the engine directly; their callbacks are wrapped with
:meth:`MainQueue.handoff` and run on the next drain.
"""

from __future__ import annotations

import heapq
import itertools
import threading
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Deque, List, Optional, Tuple
import logging

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimerHandle:
    """Handle returned by :meth:`MainQueue.call_later`."""

    def __init__(self, due: datetime):
        self.due = due
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class Handoff:
    """One-shot callback that re-joins the owner thread through the queue."""

    def __init__(self, queue: MainQueue, fn: Callable[..., Any]):
        self._queue = queue
        self._fn = fn
        self._settled = False
        self._lock = threading.Lock()

    def _claim(self) -> bool:
        with self._lock:
            if self._settled:
                return False
            self._settled = True
            return True

    def __call__(self, *args: Any) -> None:
        if self._claim():
            fn = self._fn
            self._queue._settle(lambda: fn(*args))

    def abandon(self) -> None:
        """Give up on the callback, e.g. when the call that owned it raised."""
        if self._claim():
            self._queue._settle(None)


class MainQueue:
    """Thread-safe queue of callables, drained by one owner thread."""

    def __init__(self, clock: Optional[Clock] = None, logger: Optional[logging.Logger] = None):
        self.clock = clock or _utc_now
        self.logger = logger or logging.getLogger(__name__)
        self._cond = threading.Condition(threading.Lock())
        self._ready: Deque[Callable[[], Any]] = deque()
        self._timers: List[Tuple[datetime, int, TimerHandle, Callable[[], Any]]] = []
        self._seq = itertools.count()
        self._outstanding = 0

    # ------------------------------------------------------------------
    # Scheduling (any thread)
    # ------------------------------------------------------------------
    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        with self._cond:
            self._ready.append(lambda: fn(*args))
            self._cond.notify_all()

    def call_later(self, delay: timedelta, fn: Callable[[], Any]) -> TimerHandle:
        handle = TimerHandle(self.clock() + delay)
        with self._cond:
            heapq.heappush(self._timers, (handle.due, next(self._seq), handle, fn))
            self._cond.notify_all()
        return handle

    def handoff(self, fn: Callable[..., Any]) -> Handoff:
        """Wrap a callback so that invoking it from any thread posts ``fn``.

        Until the wrapper is called (or abandoned) the queue counts it as
        outstanding work for :meth:`run_until_idle`.
        """
        with self._cond:
            self._outstanding += 1
        return Handoff(self, fn)

    def _settle(self, task: Optional[Callable[[], Any]]) -> None:
        with self._cond:
            self._outstanding -= 1
            if task is not None:
                self._ready.append(task)
            self._cond.notify_all()

    # ------------------------------------------------------------------
    # Draining (owner thread)
    # ------------------------------------------------------------------
    @property
    def has_pending(self) -> bool:
        with self._cond:
            return bool(self._ready or self._live_timers() or self._outstanding)

    def next_deadline(self) -> Optional[datetime]:
        with self._cond:
            live = self._live_timers()
            return min(entry[0] for entry in live) if live else None

    def _live_timers(self):
        return [entry for entry in self._timers if not entry[2].cancelled]

    def _take_due(self) -> List[Callable[[], Any]]:
        now = self.clock()
        batch = list(self._ready)
        self._ready.clear()
        while self._timers and self._timers[0][0] <= now:
            _, _, handle, fn = heapq.heappop(self._timers)
            if not handle.cancelled:
                batch.append(fn)
        return batch

    def run_pending(self) -> int:
        """Run everything ready or due now; returns the number of callables run."""
        with self._cond:
            batch = self._take_due()
        for fn in batch:
            try:
                fn()
            except Exception:
                self.logger.exception("Queued task failed")
        return len(batch)

    def run_until_idle(self, timeout: float = 30.0) -> bool:
        """Drain until no work is ready, scheduled or outstanding.

        Blocks the calling thread, waking for posts and timer deadlines.
        Returns False if ``timeout`` seconds pass first.
        """
        deadline = _utc_now() + timedelta(seconds=timeout)
        while True:
            self.run_pending()
            with self._cond:
                if not (self._ready or self._live_timers() or self._outstanding):
                    return True
                if self._ready:
                    continue
                remaining = (deadline - _utc_now()).total_seconds()
                if remaining <= 0:
                    return False
                live = self._live_timers()
                if live:
                    until_timer = (min(e[0] for e in live) - self.clock()).total_seconds()
                    remaining = min(remaining, max(until_timer, 0.0))
                if remaining > 0:
                    self._cond.wait(remaining)
