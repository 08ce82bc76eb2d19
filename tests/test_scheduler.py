"""Tests for the timer facilities backing the TTL store."""

from __future__ import annotations

import asyncio
import threading
import time
from unittest.mock import MagicMock

import pytest

from freshkeep.core.scheduler import (
    AsyncioScheduler,
    ManualScheduler,
    ThreadScheduler,
    make_scheduler,
)
from freshkeep.core.store import TTLStore


class TestManualScheduler:
    def test_fires_in_deadline_order(self):
        clock = ManualScheduler()
        order: list[str] = []
        clock.call_later(30, order.append, "late")
        clock.call_later(10, order.append, "early")
        clock.call_later(10, order.append, "early-second")

        assert clock.advance(50) == 3
        assert order == ["early", "early-second", "late"]

    def test_clock_set_to_deadline_while_firing(self):
        clock = ManualScheduler(start_ms=100)
        seen: list[float] = []
        clock.call_later(25, lambda: seen.append(clock.now()))

        clock.advance(1000)
        assert seen == [125]
        assert clock.now() == 1100

    def test_timer_scheduled_while_advancing_fires_in_window(self):
        clock = ManualScheduler()
        inner = MagicMock()
        clock.call_later(10, lambda: clock.call_later(10, inner))

        clock.advance(25)
        inner.assert_called_once_with()

    def test_cancelled_timer_skipped(self):
        clock = ManualScheduler()
        callback = MagicMock()
        handle = clock.call_later(10, callback)
        assert clock.pending() == 1

        handle.cancel()
        assert clock.pending() == 0
        assert clock.advance(20) == 0
        callback.assert_not_called()

    def test_cannot_go_backwards(self):
        with pytest.raises(ValueError):
            ManualScheduler().advance(-1)


class TestThreadScheduler:
    def test_store_expiry_fires_on_timer_thread(self):
        store: TTLStore[str] = TTLStore(ThreadScheduler())
        fired = threading.Event()
        calls: list[tuple[str, str]] = []

        def on_expire(key, value):
            calls.append((key, value))
            fired.set()

        store.put("k", "v", 20, on_expire)
        assert fired.wait(timeout=2.0)
        assert calls == [("k", "v")]

    def test_deleted_record_never_fires(self):
        store: TTLStore[str] = TTLStore(ThreadScheduler())
        callback = MagicMock()
        store.put("k", "v", 50, callback)
        assert store.delete("k") is True

        time.sleep(0.15)
        callback.assert_not_called()

    def test_clock_is_monotonic_milliseconds(self):
        scheduler = ThreadScheduler()
        before = scheduler.now()
        time.sleep(0.01)
        assert scheduler.now() - before >= 5


class TestAsyncioScheduler:
    def test_store_expiry_fires_on_loop(self):
        async def scenario():
            store: TTLStore[str] = TTLStore(AsyncioScheduler())
            fired = asyncio.Event()
            calls: list[tuple[str, str]] = []

            def on_expire(key, value):
                calls.append((key, value))
                fired.set()

            store.put("k", "v", 10, on_expire)
            await asyncio.wait_for(fired.wait(), timeout=2.0)
            return calls

        assert asyncio.run(scenario()) == [("k", "v")]

    def test_cleared_record_never_fires(self):
        async def scenario():
            store: TTLStore[str] = TTLStore(AsyncioScheduler())
            callback = MagicMock()
            store.put("k", "v", 10, callback)
            store.clear()
            await asyncio.sleep(0.05)
            return callback

        asyncio.run(scenario()).assert_not_called()

    def test_stale_read_rehydrates_on_loop(self):
        async def scenario():
            store: TTLStore[str] = TTLStore(AsyncioScheduler())
            store.put("k", "v1", 10)
            await asyncio.sleep(0.05)

            async def refresh():
                store.put("k", "v2", 1000)

            tasks: list[asyncio.Task] = []
            stale = store.get("k", lambda: tasks.append(asyncio.ensure_future(refresh())))
            await asyncio.gather(*tasks)
            return stale, store.get("k")

        assert asyncio.run(scenario()) == ("v1", "v2")


class TestMakeScheduler:
    def test_defaults_to_thread(self, monkeypatch):
        monkeypatch.delenv("FRESHKEEP_SCHEDULER", raising=False)
        assert isinstance(make_scheduler(), ThreadScheduler)

    def test_reads_env(self, monkeypatch):
        monkeypatch.setenv("FRESHKEEP_SCHEDULER", " Manual ")
        assert isinstance(make_scheduler(), ManualScheduler)

    def test_explicit_name_wins(self, monkeypatch):
        monkeypatch.setenv("FRESHKEEP_SCHEDULER", "manual")
        assert isinstance(make_scheduler("thread"), ThreadScheduler)

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown scheduler"):
            make_scheduler("cron")

    def test_asyncio_outside_loop_names_env_var(self, monkeypatch):
        monkeypatch.setenv("FRESHKEEP_SCHEDULER", "asyncio")
        with pytest.raises(ValueError, match="FRESHKEEP_SCHEDULER"):
            TTLStore()

    def test_asyncio_inside_loop(self, monkeypatch):
        monkeypatch.setenv("FRESHKEEP_SCHEDULER", "asyncio")

        async def build():
            return make_scheduler()

        assert isinstance(asyncio.run(build()), AsyncioScheduler)

    def test_store_uses_configured_scheduler(self, monkeypatch):
        monkeypatch.setenv("FRESHKEEP_SCHEDULER", "manual")
        assert isinstance(TTLStore().scheduler, ManualScheduler)
