from __future__ import annotations

from datetime import date

from bookingdesk.application.ports.event_cache import EventCachePort
from bookingdesk.application.utils.slot_availability import available_slots
from bookingdesk.application.utils.slot_grid import DEFAULT_SLOT_GRID, SlotGrid


class FindAvailableSlotsUseCase:
    def __init__(self, cache: EventCachePort, grid: SlotGrid = DEFAULT_SLOT_GRID) -> None:
        self._cache = cache
        self._grid = grid

    def execute(self, day: date, exclude_id: str | None = None) -> list[tuple[str, int]]:
        """Free slots on `day` according to what the cache currently holds."""
        bookings = [event.booking for event in self._cache.snapshot()]
        return available_slots(day, self._cache.blocked_ranges(), bookings, self._grid, exclude_id=exclude_id)
