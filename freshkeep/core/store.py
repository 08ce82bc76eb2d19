"""In-memory TTL store with expiry callbacks and stale-read rehydration."""

from __future__ import annotations

import logging
import math
import numbers
import threading
from typing import Any, Callable, Generic, Optional, TypeVar

from .models import NO_EXPIRY, Record, RecordState, ScheduledExpiry
from .scheduler import Scheduler, make_scheduler

logger = logging.getLogger("freshkeep.store")

V = TypeVar("V")


class TTLStore(Generic[V]):
    """Thread-safe key/value store whose entries go stale after a TTL.

    Expiry is lazy: a stale entry stays readable (and listed by :meth:`keys`)
    until it is overwritten, deleted or cleared. Reading a stale entry with a
    ``rehydrate`` callback triggers that callback once; the callback is
    expected to :meth:`put` a fresh value eventually.

    Args:
        scheduler: Timer facility and clock. Defaults to :func:`make_scheduler`.
    """

    def __init__(self, scheduler: Optional[Scheduler] = None):
        self._scheduler = scheduler if scheduler is not None else make_scheduler()
        self._records: dict[str, Record[V]] = {}
        self._lock = threading.RLock()

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    def put(
        self,
        key: str,
        value: V,
        ttl_ms: Optional[float] = None,
        on_expire: Optional[Callable[[str, V], Any]] = None,
    ) -> V:
        """Store ``value`` under ``key``, replacing any previous record and its timer.

        Args:
            key: Cache key.
            value: Payload, returned unchanged.
            ttl_ms: Time-to-live in milliseconds. ``None``, NaN, infinity or
                a value that is not a number means the entry never goes stale.
            on_expire: Called once as ``on_expire(key, value)`` when the TTL
                elapses, unless the record is replaced or removed first.

        Raises:
            InvalidTTL: ``ttl_ms`` converts to a number ``<= 0`` or is a bool.
            InvalidCallback: ``on_expire`` is given but not callable.
        """
        ttl = _validate_ttl(ttl_ms)
        if on_expire is not None and not callable(on_expire):
            raise InvalidCallback(f"on_expire must be callable, got {type(on_expire).__name__}")

        with self._lock:
            now = self._scheduler.now()
            record: Record[V] = Record(value=value)
            if ttl is not None:
                record.expire_at = now + ttl
                task: ScheduledExpiry[V] = ScheduledExpiry(key=key, value=value, on_expire=on_expire)
                task.handle = self._scheduler.call_later(ttl, self._fire_expiry, task)
                record.pending = task

            previous = self._records.get(key)
            if previous is not None:
                _cancel_pending(previous)
            self._records[key] = record

        logger.debug("put %r (ttl_ms=%s, replaced=%s)", key, ttl, previous is not None)
        return value

    def get(self, key: str, rehydrate: Optional[Callable[[], Any]] = None) -> Optional[V]:
        """Return the value under ``key`` or ``None`` if absent.

        A stale hit still returns the last known value. When ``rehydrate`` is
        given and the record is not already rehydrating, the record is marked
        and ``rehydrate()`` is called before returning; its result is ignored.

        Raises:
            InvalidCallback: ``rehydrate`` is given but not callable.
        """
        if rehydrate is not None and not callable(rehydrate):
            raise InvalidCallback(f"rehydrate must be callable, got {type(rehydrate).__name__}")

        with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            value = record.value
            trigger = rehydrate is not None and self._is_due(record)
            if trigger:
                record.rehydrating = True

        if trigger:
            logger.debug("rehydrating stale key %r", key)
            rehydrate()
        return value

    def should_rehydrate(self, key: str) -> bool:
        """True iff ``key`` is present, past its expiry and not already rehydrating."""
        with self._lock:
            record = self._records.get(key)
            return record is not None and self._is_due(record)

    def is_expired(self, key: str) -> bool:
        """Like :meth:`should_rehydrate`, but an absent key also counts as expired."""
        with self._lock:
            record = self._records.get(key)
            return record is None or self._is_due(record)

    def state(self, key: str) -> Optional[RecordState]:
        with self._lock:
            record = self._records.get(key)
            return None if record is None else record.state(self._scheduler.now())

    def delete(self, key: str) -> bool:
        """Remove ``key`` and cancel its timer.

        A record already past its expiry is not removed: its timer is
        cancelled, ``False`` is returned and the entry stays until the next
        :meth:`put` or :meth:`clear`.
        """
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return False
            _cancel_pending(record)
            if record.is_past(self._scheduler.now()):
                logger.debug("delete %r skipped: already expired", key)
                return False
            del self._records[key]

        logger.debug("deleted %r", key)
        return True

    def clear(self) -> None:
        with self._lock:
            for record in self._records.values():
                _cancel_pending(record)
            count = len(self._records)
            self._records = {}
        logger.debug("cleared %d record(s)", count)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._records)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _is_due(self, record: Record[V]) -> bool:
        return not record.rehydrating and record.is_past(self._scheduler.now())

    def _fire_expiry(self, task: ScheduledExpiry[V]) -> None:
        # Timer.cancel() can lose the race with a timer thread that already
        # started, so the cancelled flag is re-checked under the store lock.
        with self._lock:
            if task.cancelled or task.fired:
                return
            task.fired = True

        logger.debug("expired %r", task.key)
        if task.on_expire is not None:
            task.on_expire(task.key, task.value)


def _validate_ttl(ttl_ms: Any) -> Optional[float]:
    """Return the TTL in ms, or ``None`` when the entry should never expire.

    Values that do not convert to a number (``"time"``, ``[100]``) never
    expire, like NaN. Anything that converts to a number ``<= 0`` is rejected.
    """
    if ttl_ms is None:
        return None
    if isinstance(ttl_ms, bool):
        raise InvalidTTL(f"ttl_ms must be a number, got {type(ttl_ms).__name__}")
    try:
        ttl = float(ttl_ms)
    except (TypeError, ValueError):
        return None
    if math.isnan(ttl):
        return None
    if ttl <= 0:
        raise InvalidTTL(f"ttl_ms must be a positive number, got {ttl_ms!r}")
    if ttl == NO_EXPIRY or not isinstance(ttl_ms, numbers.Number):
        return None
    return ttl


def _cancel_pending(record: Record[Any]) -> None:
    if record.pending is not None:
        record.pending.cancel()
        record.pending = None


_default_store: Optional[TTLStore[Any]] = None
_default_lock = threading.Lock()


def get_default_store() -> TTLStore[Any]:
    """Return a lazily created process-wide store for callers that want one."""
    global _default_store
    with _default_lock:
        if _default_store is None:
            _default_store = TTLStore()
        return _default_store


class CacheError(Exception):
    """Base class for errors raised by the TTL store."""


class InvalidTTL(CacheError, ValueError):
    """Raised when a TTL is not a positive number."""


class InvalidCallback(CacheError, TypeError):
    """Raised when a callback argument is not callable."""
