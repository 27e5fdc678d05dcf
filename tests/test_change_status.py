"""
Tests for optimistic status changes: broadcast, commit, rollback and offline retry.
"""

from __future__ import annotations

import asyncio
from datetime import date

import pytest

from bookingdesk.application.exceptions import (
    AuthExpired,
    NetworkUnavailable,
    PermissionDenied,
    ServerError,
    ValidationError,
)
from bookingdesk.application.session import CalendarSession
from bookingdesk.application.use_cases.change_status import MutationOutcome
from bookingdesk.application.utils.status_transitions import ReviewSlot
from bookingdesk.domain.entities.booking import Booking, CoarseStatus, FineStatus
from bookingdesk.domain.entities.display_status import DisplayStatus
from bookingdesk.domain.entities.push_event import PushEventKind
from bookingdesk.domain.entities.user import CurrentUser, Role
from bookingdesk.infrastructure.booking_api.mock_booking_store import InMemoryBookingStore
from bookingdesk.infrastructure.notify.logging_notifier import LoggingNotifier
from bookingdesk.infrastructure.push.loopback_channel import LoopbackPushHub
from bookingdesk.infrastructure.store.memory_event_cache import MemoryEventCache

DAY = date(2025, 6, 2)
ADMIN = CurrentUser(id="admin-1", role=Role.ADMIN)


def _store(latency: float = 0.0) -> InMemoryBookingStore:
    return InMemoryBookingStore(
        [
            Booking(id="b1", name="Jane", date_booked=DAY, time_booked="10:00", booking_slot=1,
                    coarse_status=CoarseStatus.BOOKED, is_confirmed=False, assigned_owner_id="owner"),
            Booking(id="b2", name="Sam", date_booked=DAY, time_booked="14:00", booking_slot=2,
                    coarse_status=CoarseStatus.BOOKED, assigned_owner_id="booker-1"),
        ],
        latency=latency,
    )


async def _session(store, hub, user=ADMIN) -> CalendarSession:
    session = CalendarSession(
        user=user,
        store=store,
        push=hub.channel(user.id),
        cache=MemoryEventCache(),
        notifier=LoggingNotifier(),
        min_fetch_interval=0.0,
        push_debounce=10.0,
        offline_retry_delay=0.01,
    )
    session.fetcher.set_visible_range(date(2025, 6, 1), date(2025, 6, 30))
    await session.start()
    return session


def _peer(hub):
    received = []

    async def _record(event):
        received.append(event)

    hub.channel("peer").subscribe(_record)
    return received


def test_change_is_visible_before_server_answers():
    async def main():
        store, hub = _store(latency=0.01), LoopbackPushHub()
        received = _peer(hub)
        session = await _session(store, hub)

        ticket = await session.apply_status_change("b1", "Confirmed")

        assert session.cache.get("b1").extended_props.display_status is DisplayStatus.CONFIRMED
        assert store.get("b1").is_confirmed is False
        assert received[0].kind is PushEventKind.STATUS_CHANGED
        assert received[0].payload["booking"]["id"] == "b1"

        assert await ticket.wait() is MutationOutcome.COMMITTED
        assert store.get("b1").is_confirmed is True
        assert session.cache.get("b1").extended_props.is_pending is False
        await session.close()

    asyncio.run(main())


def test_server_error_restores_exact_snapshot():
    """Rollback puts back the identical cached entry and tells peers about it."""

    async def main():
        store, hub = _store(), LoopbackPushHub()
        received = _peer(hub)
        session = await _session(store, hub)
        before = session.cache.get("b1")

        store.fail_next(ServerError("boom", status_code=500))
        ticket = await session.apply_status_change("b1", "Arrived")
        assert session.cache.get("b1").booking.fine_status is FineStatus.ARRIVED

        assert await ticket.wait() is MutationOutcome.ROLLED_BACK
        assert session.cache.get("b1") is before
        assert [e.payload["booking"]["booking_status"] for e in received] == ["Arrived", None]
        assert session.notifier.messages[-1]["level"] == "server"
        await session.close()

    asyncio.run(main())


@pytest.mark.parametrize(
    "error",
    [ValidationError("bad field"), PermissionDenied("nope"), AuthExpired("token expired")],
)
def test_non_network_failures_roll_back(error):
    async def main():
        store, hub = _store(), LoopbackPushHub()
        session = await _session(store, hub)
        before = session.cache.get("b1")

        store.fail_next(error)
        ticket = await session.apply_status_change("b1", "No Show")
        assert await ticket.wait() is MutationOutcome.ROLLED_BACK
        assert session.cache.get("b1") is before
        await session.close()

    asyncio.run(main())


def test_permission_denied_touches_nothing():
    async def main():
        store, hub = _store(), LoopbackPushHub()
        received = _peer(hub)
        session = await _session(store, hub, CurrentUser(id="booker-1", role=Role.BOOKER))
        before = session.cache.get("b1")

        with pytest.raises(PermissionDenied):
            await session.apply_status_change("b1", "Arrived")

        assert session.cache.get("b1") is before
        assert received == []
        assert store.writes == []

        # Cancelling a foreign booking and touching an own one are both allowed
        assert await (await session.apply_status_change("b1", "Cancelled")).wait() is MutationOutcome.COMMITTED
        assert await (await session.apply_status_change("b2", "Arrived")).wait() is MutationOutcome.COMMITTED
        await session.close()

    asyncio.run(main())


def test_network_failure_keeps_change_and_retries_once():
    async def main():
        store, hub = _store(), LoopbackPushHub()
        session = await _session(store, hub)

        store.fail_next(NetworkUnavailable("offline"))
        ticket = await session.apply_status_change("b1", "Confirmed")
        assert await ticket.wait() is MutationOutcome.PENDING_OFFLINE

        pending = session.cache.get("b1")
        assert pending.extended_props.is_pending is True
        assert pending.extended_props.display_status is DisplayStatus.CONFIRMED

        await asyncio.sleep(0.03)
        await session.drain()
        assert store.get("b1").is_confirmed is True
        assert session.cache.get("b1").extended_props.is_pending is False
        await session.close()

    asyncio.run(main())


def test_cancel_frees_slot_and_hides_event():
    async def main():
        store, hub = _store(), LoopbackPushHub()
        session = await _session(store, hub)
        assert ("10:00", 1) not in session.available_slots(DAY)

        ticket = await session.apply_status_change("b1", "Cancelled")
        cancelled = session.cache.get("b1").booking
        assert cancelled.coarse_status is CoarseStatus.CANCELLED
        assert (cancelled.date_booked, cancelled.time_booked, cancelled.booking_slot, cancelled.is_confirmed) == (
            None, None, None, None,
        )
        assert ("10:00", 1) in session.available_slots(DAY)
        assert "b1" not in {e.id for e in session.current_events()}
        assert "b1" in {e.id for e in session.current_events(include_hidden=True)}
        await ticket.wait()
        await session.close()

    asyncio.run(main())


def test_review_needs_a_free_slot():
    async def main():
        store, hub = _store(), LoopbackPushHub()
        session = await _session(store, hub)

        with pytest.raises(ValidationError):
            await session.apply_status_change("b1", "Review")
        with pytest.raises(ValidationError):
            await session.apply_status_change("b1", "Review", ReviewSlot(DAY, "14:00", 2))

        ticket = await session.apply_status_change("b1", "Review", ReviewSlot(DAY, "15:00", 3))
        assert await ticket.wait() is MutationOutcome.COMMITTED
        slots = session.available_slots(DAY)
        assert ("15:00", 3) not in slots
        assert ("10:00", 1) not in slots
        await session.close()

    asyncio.run(main())


def test_unknown_booking_is_a_validation_error():
    async def main():
        session = await _session(_store(), LoopbackPushHub())
        with pytest.raises(ValidationError):
            await session.apply_status_change("missing", "Confirmed")
        await session.close()

    asyncio.run(main())


def test_late_failure_does_not_undo_newer_change():
    async def main():
        store, hub = _store(latency=0.01), LoopbackPushHub()
        session = await _session(store, hub)

        store.fail_next(ServerError("boom", status_code=500))
        first = await session.apply_status_change("b1", "Confirmed")
        second = await session.apply_status_change("b1", "Arrived")

        assert await first.wait() is MutationOutcome.FAILED
        assert await second.wait() is MutationOutcome.COMMITTED
        assert session.cache.get("b1").booking.fine_status is FineStatus.ARRIVED
        await session.close()

    asyncio.run(main())


class SlowWriteStore(InMemoryBookingStore):
    """Reads answer at once, writes land only after `write_delay`."""

    def __init__(self, *args, write_delay: float = 0.05, **kwargs):
        super().__init__(*args, **kwargs)
        self.write_delay = write_delay

    async def update_booking(self, booking_id, data):
        await asyncio.sleep(self.write_delay)
        return await super().update_booking(booking_id, data)


def test_forced_refresh_during_write_keeps_acknowledged_change():
    """A refresh that reads the old row before the write lands must not hide the saved change."""
    async def main():
        base = _store()
        store = SlowWriteStore([base.get("b1"), base.get("b2")])
        hub = LoopbackPushHub()
        session = await _session(store, hub)

        ticket = await session.apply_status_change("b1", "Confirmed")
        forced = await session.request_fetch(force=True)
        assert forced.performed
        assert store.get("b1").is_confirmed is False
        assert session.cache.get("b1").extended_props.display_status is DisplayStatus.CONFIRMED

        assert await ticket.wait() is MutationOutcome.COMMITTED
        assert store.get("b1").is_confirmed is True
        event = session.cache.get("b1")
        assert event.extended_props.display_status is DisplayStatus.CONFIRMED
        assert event.extended_props.is_pending is False
        await session.close()

    asyncio.run(main())


def test_offline_retry_after_forced_refresh_still_reconciles():
    async def main():
        store, hub = _store(), LoopbackPushHub()
        session = await _session(store, hub)

        store.fail_next(NetworkUnavailable("offline"))
        ticket = await session.apply_status_change("b1", "Confirmed")
        assert await ticket.wait() is MutationOutcome.PENDING_OFFLINE

        await session.request_fetch(force=True)
        assert session.cache.get("b1").extended_props.is_pending is True

        await asyncio.sleep(0.03)
        await session.drain()
        event = session.cache.get("b1")
        assert store.get("b1").is_confirmed is True
        assert event.extended_props.display_status is DisplayStatus.CONFIRMED
        assert event.extended_props.is_pending is False
        assert session._change_status._retry_timers == {}
        await session.close()

    asyncio.run(main())
