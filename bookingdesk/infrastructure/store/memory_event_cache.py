from __future__ import annotations

import logging
from typing import Callable, Iterable

from bookingdesk.application.ports.event_cache import CacheListener, EventCachePort
from bookingdesk.application.utils.event_merge import merge_blocked_ranges, merge_events, replace_events
from bookingdesk.domain.entities.blocked_range import BlockedRange
from bookingdesk.domain.entities.calendar_event import CalendarEvent


class MemoryEventCache(EventCachePort):
    """
    Copy-on-write event cache. Every write swaps in a new tuple, so a
    snapshot handed out earlier never changes under its holder.
    """

    def __init__(self) -> None:
        self._events: tuple[CalendarEvent, ...] = ()
        self._blocked: tuple[BlockedRange, ...] = ()
        self._listeners: list[CacheListener] = []
        self._logger = logging.getLogger(__name__)

    def snapshot(self) -> tuple[CalendarEvent, ...]:
        return self._events

    def get(self, event_id: str) -> CalendarEvent | None:
        for event in self._events:
            if event.id == event_id:
                return event
        return None

    def merge(self, incoming: Iterable[CalendarEvent]) -> int:
        before = len(self._events)
        merged = merge_events(self._events, incoming)
        added = len(merged) - before
        if added:
            self._commit(merged)
        self._logger.debug("Merged events", extra={"reason": f"added={added} total={len(merged)}"})
        return added

    def replace(self, incoming: Iterable[CalendarEvent]) -> None:
        self._commit(replace_events(self._events, incoming))

    def apply(self, event: CalendarEvent) -> None:
        if self.get(event.id) is None:
            self._commit(self._events + (event,))
            return
        self._commit(tuple(event if e.id == event.id else e for e in self._events))

    def restore(self, event_id: str, snapshot: CalendarEvent | None) -> None:
        if snapshot is None:
            self.remove(event_id)
            return
        self.apply(snapshot)

    def remove(self, event_id: str) -> bool:
        remaining = tuple(e for e in self._events if e.id != event_id)
        if len(remaining) == len(self._events):
            return False
        self._commit(remaining)
        return True

    def swap_id(self, old_id: str, event: CalendarEvent) -> None:
        updated: list[CalendarEvent] = []
        placed = False
        for existing in self._events:
            if existing.id in (old_id, event.id):
                if not placed:
                    updated.append(event)
                    placed = True
                continue
            updated.append(existing)
        if not placed:
            updated.append(event)
        self._commit(tuple(updated))

    def clear(self) -> None:
        self._events = ()
        self._blocked = ()
        self._notify()

    def blocked_ranges(self) -> tuple[BlockedRange, ...]:
        return self._blocked

    def merge_blocked_ranges(self, incoming: Iterable[BlockedRange]) -> None:
        self._blocked = merge_blocked_ranges(self._blocked, incoming)
        self._notify()

    def put_blocked_range(self, block: BlockedRange) -> None:
        kept = tuple(b for b in self._blocked if b.key != block.key)
        self._blocked = kept + (block,)
        self._notify()

    def drop_blocked_range(self, range_id: str) -> bool:
        kept = tuple(b for b in self._blocked if b.id != range_id)
        if len(kept) == len(self._blocked):
            return False
        self._blocked = kept
        self._notify()
        return True

    def add_listener(self, listener: CacheListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _commit(self, events: tuple[CalendarEvent, ...]) -> None:
        self._events = events
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._events)
            except Exception:
                self._logger.exception("Cache listener failed")
