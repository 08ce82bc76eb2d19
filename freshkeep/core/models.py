"""Record types held by the TTL store."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

from .scheduler import TimerHandle

V = TypeVar("V")

NO_EXPIRY = math.inf


class RecordState(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    REHYDRATING = "rehydrating"


@dataclass
class ScheduledExpiry(Generic[V]):
    """One pending expiry: the key and value it was scheduled for, plus its timer."""

    key: str
    value: V
    on_expire: Optional[Callable[[str, V], Any]]
    handle: Optional[TimerHandle] = None
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True
        if self.handle is not None:
            self.handle.cancel()


@dataclass
class Record(Generic[V]):
    value: V
    expire_at: float = NO_EXPIRY
    rehydrating: bool = False
    pending: Optional[ScheduledExpiry[V]] = None

    @property
    def expires(self) -> bool:
        return not math.isinf(self.expire_at)

    def is_past(self, now: float) -> bool:
        return self.expires and self.expire_at < now

    def state(self, now: float) -> RecordState:
        if self.rehydrating:
            return RecordState.REHYDRATING
        if self.is_past(now):
            return RecordState.STALE
        return RecordState.FRESH
