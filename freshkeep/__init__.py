"""freshkeep — in-process TTL cache with stale-while-rehydrate reads."""

from .core import (
    CacheError,
    InvalidCallback,
    InvalidTTL,
    ManualScheduler,
    RecordState,
    TTLStore,
    get_default_store,
    make_scheduler,
)
from .core.logging_config import configure_logging

configure_logging()

__all__ = [
    "TTLStore",
    "RecordState",
    "ManualScheduler",
    "make_scheduler",
    "get_default_store",
    "CacheError",
    "InvalidTTL",
    "InvalidCallback",
]
__version__ = "0.1.0"
