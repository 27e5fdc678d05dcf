#!/usr/bin/env python3
"""
Local two-desk simulation (no HTTP, no real backend).

Usage:
  python3 scripts/simulate_calendar.py [--day 2025-06-02] [--offline]

What it does:
- Starts two calendar sessions on one in-memory store and a loopback push hub
- Books a slot from desk A, confirms it, and shows desk B picking up the change
- With --offline the first create fails with a network error and is retried
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bookingdesk.application.exceptions import NetworkUnavailable
from bookingdesk.application.session import CalendarSession
from bookingdesk.application.use_cases.create_booking import BookingDraft
from bookingdesk.domain.entities.user import CurrentUser, Role
from bookingdesk.infrastructure.booking_api.mock_booking_store import InMemoryBookingStore
from bookingdesk.infrastructure.notify.logging_notifier import LoggingNotifier
from bookingdesk.infrastructure.push.loopback_channel import LoopbackPushHub
from bookingdesk.infrastructure.store.memory_event_cache import MemoryEventCache


def _session(user: CurrentUser, store: InMemoryBookingStore, hub: LoopbackPushHub) -> CalendarSession:
    return CalendarSession(
        user=user,
        store=store,
        push=hub.channel(user.id),
        cache=MemoryEventCache(),
        notifier=LoggingNotifier(),
        min_fetch_interval=0.0,
        push_debounce=0.1,
        offline_retry_delay=0.2,
    )


def _print_events(label: str, session: CalendarSession) -> None:
    print(f"\n[{label}]")
    events = session.current_events()
    if not events:
        print("  (no events)")
    for event in events:
        start = event.start.strftime("%Y-%m-%d %H:%M") if event.start else "unscheduled"
        print(f"  {event.id:<20} {start}  {event.title}  {event.color}")


async def run(day: date, offline: bool) -> None:
    store = InMemoryBookingStore()
    hub = LoopbackPushHub()
    desk_a = _session(CurrentUser(id="admin-1", role=Role.ADMIN, name="Desk A"), store, hub)
    desk_b = _session(CurrentUser(id="booker-1", role=Role.BOOKER, name="Desk B"), store, hub)
    for desk in (desk_a, desk_b):
        desk.fetcher.set_visible_range(day, day)
        await desk.start()

    if offline:
        store.fail_next(NetworkUnavailable("simulated outage"))

    ticket = await desk_a.create_or_reschedule_booking(
        BookingDraft(date=day, time_slot="10:00", slot_number=1, name="Jane Doe", phone="07700900000")
    )
    print(f"create -> {(await ticket.wait()).value}")
    await desk_a.drain()
    if offline:
        await asyncio.sleep(0.3)
        await desk_a.drain()

    booking_id = next(e.id for e in desk_a.current_events())
    ticket = await desk_a.apply_status_change(booking_id, "Confirmed")
    print(f"confirm -> {(await ticket.wait()).value}")

    await asyncio.sleep(0.2)
    await desk_b.drain()

    _print_events("desk A", desk_a)
    _print_events("desk B", desk_b)
    print(f"\nfree slots on {day}: {len(desk_a.available_slots(day))}")

    for desk in (desk_a, desk_b):
        await desk.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate two calendar desks sharing one backend")
    parser.add_argument("--day", type=date.fromisoformat, default=date.today())
    parser.add_argument("--offline", action="store_true", help="fail the first create with a network error")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    asyncio.run(run(args.day, args.offline))


if __name__ == "__main__":
    main()
