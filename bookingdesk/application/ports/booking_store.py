from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Any

from bookingdesk.domain.entities.blocked_range import BlockedRange
from bookingdesk.domain.entities.booking import Booking


class BookingStorePort(ABC):
    @abstractmethod
    async def list_bookings(self, start: date, end: date) -> list[Booking]:
        """Read bookings whose calendar date falls in [start, end]."""
        raise NotImplementedError

    @abstractmethod
    async def create_booking(self, data: dict[str, Any]) -> Booking:
        """
        Create a booking, or update it when `data` carries the id of an
        existing one. Returns the stored booking with its server id.
        """
        raise NotImplementedError

    @abstractmethod
    async def update_booking(self, booking_id: str, data: dict[str, Any]) -> Booking:
        """Replace the booking fields. Returns the normalized stored booking."""
        raise NotImplementedError

    @abstractmethod
    async def list_blocked_ranges(self, start: date, end: date) -> list[BlockedRange]:
        raise NotImplementedError

    @abstractmethod
    async def create_blocked_range(self, block: BlockedRange, created_by: str | None = None) -> BlockedRange:
        raise NotImplementedError

    @abstractmethod
    async def delete_blocked_range(self, range_id: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None
