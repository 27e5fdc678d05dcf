from __future__ import annotations

from datetime import date
from typing import Iterable

from bookingdesk.application.utils.slot_grid import DEFAULT_SLOT_GRID, SlotGrid
from bookingdesk.domain.entities.blocked_range import BlockedRange
from bookingdesk.domain.entities.booking import Booking, FineStatus


def occupied_slots(day: date, bookings: Iterable[Booking], exclude_id: str | None = None) -> set[tuple[str, int]]:
    """
    Collect the (time, slot) pairs held on `day` by live bookings.

    A booking under review holds its original slot and its review slot.
    """
    taken: set[tuple[str, int]] = set()
    for booking in bookings:
        if not booking.occupies_slots or booking.id == exclude_id:
            continue
        if booking.date_booked == day and booking.time_booked and booking.booking_slot:
            taken.add((booking.time_booked, booking.booking_slot))
        if (
            booking.fine_status is FineStatus.REVIEW
            and booking.review_date == day
            and booking.review_time
            and booking.review_slot
        ):
            taken.add((booking.review_time, booking.review_slot))
    return taken


def is_blocked(day: date, time_slot: str, slot_number: int, blocked_ranges: Iterable[BlockedRange]) -> bool:
    return any(block.matches(day, time_slot, slot_number) for block in blocked_ranges)


def available_slots(
    day: date,
    blocked_ranges: Iterable[BlockedRange],
    bookings: Iterable[Booking],
    grid: SlotGrid = DEFAULT_SLOT_GRID,
    exclude_id: str | None = None,
) -> list[tuple[str, int]]:
    """Open (time, slot) pairs on `day`, ordered by time then slot."""
    day_blocks = [block for block in blocked_ranges if block.date == day]
    taken = occupied_slots(day, bookings, exclude_id=exclude_id)
    return [
        (time_slot, slot_number)
        for time_slot, slot_number in grid.pairs()
        if (time_slot, slot_number) not in taken and not is_blocked(day, time_slot, slot_number, day_blocks)
    ]
