"""Shared fixtures for the freshkeep test suite."""

from __future__ import annotations

from typing import Any

import pytest

from freshkeep.core.scheduler import ManualScheduler
from freshkeep.core.store import TTLStore


@pytest.fixture()
def clock() -> ManualScheduler:
    """Virtual clock starting at t=0 ms; timers fire only on advance()."""
    return ManualScheduler()


@pytest.fixture()
def store(clock: ManualScheduler) -> TTLStore[Any]:
    return TTLStore(scheduler=clock)
