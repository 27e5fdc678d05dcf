from __future__ import annotations

import logging
from typing import Iterable

from bookingdesk.domain.entities.blocked_range import BlockedRange
from bookingdesk.domain.entities.calendar_event import CalendarEvent

logger = logging.getLogger(__name__)


def dedupe_batch(incoming: Iterable[CalendarEvent]) -> tuple[CalendarEvent, ...]:
    """Drop repeated ids inside one batch; the first occurrence wins."""
    seen: set[str] = set()
    unique: list[CalendarEvent] = []
    for event in incoming:
        if event.id in seen:
            logger.warning("Duplicate event in batch dropped", extra={"booking_id": event.id})
            continue
        seen.add(event.id)
        unique.append(event)
    return tuple(unique)


def merge_events(existing: Iterable[CalendarEvent], incoming: Iterable[CalendarEvent]) -> tuple[CalendarEvent, ...]:
    """
    Append incoming events whose id is not cached yet.

    Cached entries win, so optimistic local changes survive a fetch that was
    started before the server saw them.
    """
    current = tuple(existing)
    known = {event.id for event in current}
    fresh = tuple(event for event in dedupe_batch(incoming) if event.id not in known)
    if not fresh:
        return current
    return current + fresh


def replace_events(existing: Iterable[CalendarEvent], incoming: Iterable[CalendarEvent]) -> tuple[CalendarEvent, ...]:
    """Forced refresh: forget `existing` entirely."""
    return dedupe_batch(incoming)


def merge_blocked_ranges(existing: Iterable[BlockedRange], incoming: Iterable[BlockedRange]) -> tuple[BlockedRange, ...]:
    current = tuple(existing)
    known = {block.key for block in current}
    merged = list(current)
    for block in incoming:
        if block.key in known:
            continue
        known.add(block.key)
        merged.append(block)
    return tuple(merged)
