from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Iterable

from bookingdesk.domain.entities.blocked_range import BlockedRange
from bookingdesk.domain.entities.calendar_event import CalendarEvent

CacheListener = Callable[[tuple[CalendarEvent, ...]], None]


class EventCachePort(ABC):
    """
    Sole owner of the session's calendar events. Every write goes through
    one of these operations so dedup and rollback stay enforceable.
    """

    @abstractmethod
    def snapshot(self) -> tuple[CalendarEvent, ...]:
        raise NotImplementedError

    @abstractmethod
    def get(self, event_id: str) -> CalendarEvent | None:
        raise NotImplementedError

    @abstractmethod
    def merge(self, incoming: Iterable[CalendarEvent]) -> int:
        """Add unseen events. Returns how many were added."""
        raise NotImplementedError

    @abstractmethod
    def replace(self, incoming: Iterable[CalendarEvent]) -> None:
        raise NotImplementedError

    @abstractmethod
    def apply(self, event: CalendarEvent) -> None:
        """Insert or overwrite the entry with `event.id`."""
        raise NotImplementedError

    @abstractmethod
    def restore(self, event_id: str, snapshot: CalendarEvent | None) -> None:
        """Put back a snapshot entry; None means the entry did not exist."""
        raise NotImplementedError

    @abstractmethod
    def remove(self, event_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def swap_id(self, old_id: str, event: CalendarEvent) -> None:
        """Replace the entry `old_id` (and any entry already holding `event.id`) with `event`."""
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def blocked_ranges(self) -> tuple[BlockedRange, ...]:
        raise NotImplementedError

    @abstractmethod
    def merge_blocked_ranges(self, incoming: Iterable[BlockedRange]) -> None:
        raise NotImplementedError

    @abstractmethod
    def put_blocked_range(self, block: BlockedRange) -> None:
        raise NotImplementedError

    @abstractmethod
    def drop_blocked_range(self, range_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def add_listener(self, listener: CacheListener) -> Callable[[], None]:
        raise NotImplementedError
