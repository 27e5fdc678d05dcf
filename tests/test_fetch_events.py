"""
Tests for the fetch coordinator: de-duplication, throttling, forced refresh and debounce.
"""

from __future__ import annotations

import asyncio
from datetime import date

from bookingdesk.application.exceptions import NetworkUnavailable
from bookingdesk.application.use_cases.fetch_events import FetchEventsUseCase, FetchState, month_window, range_key
from bookingdesk.application.utils.background import TaskRegistry
from bookingdesk.domain.entities.blocked_range import BlockedRange
from bookingdesk.domain.entities.booking import Booking, CoarseStatus
from bookingdesk.infrastructure.booking_api.mock_booking_store import InMemoryBookingStore
from bookingdesk.infrastructure.notify.logging_notifier import LoggingNotifier
from bookingdesk.infrastructure.store.memory_event_cache import MemoryEventCache

JUNE = (date(2025, 6, 1), date(2025, 6, 30))


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _bookings() -> list[Booking]:
    return [
        Booking(id="b1", name="A", date_booked=date(2025, 6, 2), time_booked="10:00", booking_slot=1, coarse_status=CoarseStatus.BOOKED),
        Booking(id="b2", name="B", date_booked=date(2025, 6, 3), time_booked="11:00", booking_slot=2, coarse_status=CoarseStatus.BOOKED),
        Booking(id="b3", name="Outside", date_booked=date(2025, 7, 3), time_booked="11:00", booking_slot=2, coarse_status=CoarseStatus.BOOKED),
        Booking(id="b4", name="Waiting", coarse_status=CoarseStatus.BOOKED),
    ]


def _fetcher(store, clock=None, debounce=5.0, min_interval=3.0):
    cache = MemoryEventCache()
    notifier = LoggingNotifier()
    fetcher = FetchEventsUseCase(
        store,
        cache,
        TaskRegistry(),
        notifier,
        min_interval=min_interval,
        debounce=debounce,
        clock=clock or FakeClock(),
        today=lambda: date(2025, 6, 15),
    )
    return fetcher, cache, notifier


def test_month_window_and_key():
    assert month_window(date(2024, 2, 10)) == (date(2024, 2, 1), date(2024, 2, 29))
    assert range_key(*JUNE) == "2025-06-01_2025-06-30"


def test_default_visible_range_is_current_month():
    fetcher, _, _ = _fetcher(InMemoryBookingStore())
    assert fetcher.visible_key == "2025-06-01_2025-06-30"


def test_fetch_loads_range_then_skips():
    """A loaded range is not read again until it is invalidated."""

    async def main():
        store = InMemoryBookingStore(_bookings(), [BlockedRange(date=date(2025, 6, 4))])
        clock = FakeClock()
        fetcher, cache, _ = _fetcher(store, clock)

        first = await fetcher.request_fetch()
        assert first.performed and first.count == 3
        assert {e.id for e in cache.snapshot()} == {"b1", "b2", "b4"}
        assert len(cache.blocked_ranges()) == 1
        assert fetcher.loaded_ranges == {"2025-06-01_2025-06-30"}

        assert (await fetcher.request_fetch()).reason == "throttled"
        clock.now += 10
        assert (await fetcher.request_fetch()).reason == "already_loaded"
        assert store.read_count == 1
        assert fetcher.state is FetchState.IDLE

    asyncio.run(main())


def test_concurrent_requests_issue_one_read():
    async def main():
        store = InMemoryBookingStore(_bookings(), latency=0.01)
        fetcher, _, _ = _fetcher(store)
        first, second = await asyncio.gather(fetcher.request_fetch(), fetcher.request_fetch())
        assert first.performed
        assert second.reason == "in_flight"
        assert store.read_count == 1

    asyncio.run(main())


def test_forced_fetch_discards_stale_response():
    """A response that started before a forced refresh never reaches the cache."""

    async def main():
        store = InMemoryBookingStore(_bookings(), latency=0.01)
        fetcher, cache, _ = _fetcher(store)

        stale_task = asyncio.create_task(fetcher.request_fetch())
        await asyncio.sleep(0)
        assert fetcher.state is FetchState.IN_FLIGHT

        forced = await fetcher.request_fetch(force=True)
        stale = await stale_task

        assert forced.performed
        assert stale.reason == "stale"
        assert len(cache.snapshot()) == 3
        assert fetcher.state is FetchState.IDLE

    asyncio.run(main())


def test_forced_fetch_replaces_cache():
    async def main():
        store = InMemoryBookingStore(_bookings())
        fetcher, cache, _ = _fetcher(store)
        await fetcher.request_fetch()
        cache.remove("b1")

        result = await fetcher.request_fetch(force=True)
        assert result.performed
        assert cache.get("b1") is not None
        assert store.read_count == 2

    asyncio.run(main())


def test_failed_fetch_keeps_cache_and_unlocks():
    async def main():
        store = InMemoryBookingStore(_bookings())
        clock = FakeClock()
        fetcher, cache, notifier = _fetcher(store, clock)
        await fetcher.request_fetch()

        fetcher.set_visible_range(date(2025, 7, 1), date(2025, 7, 31))
        store.fail_next(NetworkUnavailable("offline"))
        clock.now += 10
        result = await fetcher.request_fetch()

        assert result.reason == "failed"
        assert fetcher.state is FetchState.IDLE
        assert len(cache.snapshot()) == 3
        assert notifier.messages[-1]["level"] == "network"

        clock.now += 10
        assert (await fetcher.request_fetch()).performed

    asyncio.run(main())


def test_schedule_refresh_is_debounced():
    """Several refresh requests inside the debounce window produce one read."""

    async def main():
        store = InMemoryBookingStore(_bookings())
        fetcher, _, _ = _fetcher(store, clock=lambda: 0.0, debounce=0.02, min_interval=0.0)
        await fetcher.request_fetch()

        fetcher.schedule_refresh()
        fetcher.schedule_refresh()
        fetcher.schedule_refresh()
        assert fetcher.state is FetchState.PENDING

        await asyncio.sleep(0.06)
        assert store.read_count == 2
        assert fetcher.state is FetchState.IDLE

    asyncio.run(main())


def test_cancel_drops_pending_refresh():
    async def main():
        store = InMemoryBookingStore(_bookings())
        fetcher, _, _ = _fetcher(store, debounce=0.01)
        fetcher.schedule_refresh()
        fetcher.cancel()
        await asyncio.sleep(0.03)
        assert store.read_count == 0

    asyncio.run(main())


class RecordingCache(MemoryEventCache):
    def __init__(self) -> None:
        super().__init__()
        self.replaced = 0

    def replace(self, incoming) -> None:
        self.replaced += 1
        super().replace(incoming)


def test_forced_fetch_writes_through_replace():
    async def main():
        store = InMemoryBookingStore(_bookings())
        cache = RecordingCache()
        fetcher = FetchEventsUseCase(
            store, cache, TaskRegistry(), min_interval=0.0, clock=FakeClock(), today=lambda: date(2025, 6, 15)
        )
        await fetcher.request_fetch()
        assert cache.replaced == 0

        result = await fetcher.request_fetch(force=True)
        assert cache.replaced == 1
        assert result.count == len(cache.snapshot()) == 3

    asyncio.run(main())
