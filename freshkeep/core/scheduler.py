"""Timer facilities used by the TTL store to schedule expiry callbacks.

Every scheduler works in milliseconds and also acts as the store's clock, so
"now" and "when the timer fires" are always measured on the same timeline.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import os
import threading
import time
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger("freshkeep.scheduler")


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay_ms: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class ThreadScheduler:
    """Runs each callback on its own daemon ``threading.Timer``."""

    name = "thread"

    def now(self) -> float:
        return time.monotonic() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[..., Any], *args: Any) -> threading.Timer:
        timer = threading.Timer(max(0.0, delay_ms) / 1000.0, callback, args=args)
        timer.daemon = True
        timer.start()
        return timer


class AsyncioScheduler:
    """Schedules callbacks on an asyncio event loop.

    Args:
        loop: Loop to schedule on. Defaults to the running loop, so the
            scheduler must be created from inside a coroutine in that case.
    """

    name = "asyncio"

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop or asyncio.get_running_loop()

    def now(self) -> float:
        return self._loop.time() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return self._loop.call_later(max(0.0, delay_ms) / 1000.0, callback, *args)


class _ManualTimer:
    __slots__ = ("deadline", "callback", "args", "cancelled")

    def __init__(self, deadline: float, callback: Callable[..., Any], args: tuple[Any, ...]):
        self.deadline = deadline
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual clock whose timers only fire when :meth:`advance` is called.

    Timers due within an ``advance`` window fire in deadline order (ties in
    scheduling order) with the clock set to each deadline as it fires.

    Args:
        start_ms: Initial value of the virtual clock.
    """

    name = "manual"

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)
        self._queue: list[tuple[float, int, _ManualTimer]] = []
        self._seq = itertools.count()
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[..., Any], *args: Any) -> _ManualTimer:
        timer = _ManualTimer(self._now + max(0.0, delay_ms), callback, args)
        with self._lock:
            heapq.heappush(self._queue, (timer.deadline, next(self._seq), timer))
        return timer

    def advance(self, ms: float) -> int:
        """Move the clock forward by ``ms`` and fire due timers. Returns how many fired."""
        if ms < 0:
            raise ValueError("Cannot move a manual clock backwards")
        target = self._now + ms
        fired = 0
        while True:
            timer = self._pop_due(target)
            if timer is None:
                break
            self._now = timer.deadline
            timer.callback(*timer.args)
            fired += 1
        self._now = target
        return fired

    def pending(self) -> int:
        with self._lock:
            return sum(1 for _, _, timer in self._queue if not timer.cancelled)

    def _pop_due(self, target: float) -> Optional[_ManualTimer]:
        with self._lock:
            while self._queue:
                deadline, _, timer = self._queue[0]
                if deadline > target:
                    return None
                heapq.heappop(self._queue)
                if not timer.cancelled:
                    return timer
            return None


_SCHEDULERS: dict[str, Callable[[], Scheduler]] = {
    ThreadScheduler.name: ThreadScheduler,
    AsyncioScheduler.name: AsyncioScheduler,
    ManualScheduler.name: ManualScheduler,
}


def make_scheduler(name: Optional[str] = None) -> Scheduler:
    """Build a scheduler by name, falling back to ``FRESHKEEP_SCHEDULER`` (default: thread).

    The ``asyncio`` scheduler binds to the running loop, so selecting it
    outside a coroutine raises ``ValueError``.
    """
    key = (name or os.getenv("FRESHKEEP_SCHEDULER", "thread")).strip().lower()
    factory = _SCHEDULERS.get(key)
    if factory is None:
        raise ValueError(
            f"Unknown scheduler '{key}' (expected one of: {', '.join(sorted(_SCHEDULERS))})"
        )
    try:
        scheduler = factory()
    except RuntimeError as exc:
        raise ValueError(
            f"Scheduler '{key}' (from name or FRESHKEEP_SCHEDULER) needs a running event loop"
        ) from exc
    logger.debug("Using %s scheduler", key)
    return scheduler
