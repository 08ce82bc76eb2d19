from .models import Record, RecordState, ScheduledExpiry
from .scheduler import AsyncioScheduler, ManualScheduler, Scheduler, ThreadScheduler, make_scheduler
from .store import CacheError, InvalidCallback, InvalidTTL, TTLStore, get_default_store

__all__ = [
    "TTLStore",
    "Record",
    "RecordState",
    "ScheduledExpiry",
    "Scheduler",
    "ThreadScheduler",
    "AsyncioScheduler",
    "ManualScheduler",
    "make_scheduler",
    "get_default_store",
    "CacheError",
    "InvalidTTL",
    "InvalidCallback",
]
