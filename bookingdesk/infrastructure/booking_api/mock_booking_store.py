from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Any, Iterable

from bookingdesk.application.dto.booking_payload import parse_booking
from bookingdesk.application.exceptions import BookingError, ValidationError
from bookingdesk.application.ports.booking_store import BookingStorePort
from bookingdesk.domain.entities.blocked_range import BlockedRange
from bookingdesk.domain.entities.booking import Booking, CoarseStatus


class InMemoryBookingStore(BookingStorePort):
    """Stand-in for the booking API, used in dev mode and tests."""

    def __init__(
        self,
        bookings: Iterable[Booking] = (),
        blocked_ranges: Iterable[BlockedRange] = (),
        latency: float = 0.0,
    ) -> None:
        self._bookings: dict[str, Booking] = {b.id: b for b in bookings}
        self._blocked: dict[str, BlockedRange] = {}
        self._next_id = 1
        for block in blocked_ranges:
            self._put_block(block)
        self._failures: list[BookingError] = []
        self._latency = latency
        self.read_count = 0
        self.writes: list[tuple[str, str | None]] = []
        self._logger = logging.getLogger(__name__)

    def fail_next(self, error: BookingError, times: int = 1) -> None:
        self._failures.extend([error] * times)

    def get(self, booking_id: str) -> Booking | None:
        return self._bookings.get(booking_id)

    async def _enter(self) -> None:
        if self._latency:
            await asyncio.sleep(self._latency)
        if self._failures:
            raise self._failures.pop(0)

    def _new_id(self, prefix: str) -> str:
        value = f"{prefix}_{self._next_id}"
        self._next_id += 1
        return value

    def _check_slot_free(self, booking: Booking) -> None:
        if not booking.occupies_slots or booking.date_booked is None or not booking.time_booked:
            return
        for other in self._bookings.values():
            if other.id == booking.id or not other.occupies_slots:
                continue
            if (other.date_booked, other.time_booked, other.booking_slot) == (
                booking.date_booked,
                booking.time_booked,
                booking.booking_slot,
            ):
                raise ValidationError(
                    f"Slot {booking.time_booked} #{booking.booking_slot} on {booking.date_booked} is already booked"
                )

    async def list_bookings(self, start: date, end: date) -> list[Booking]:
        self.read_count += 1
        await self._enter()
        return [
            b
            for b in self._bookings.values()
            if (b.date_booked is not None and start <= b.date_booked <= end)
            or (b.date_booked is None and b.coarse_status is CoarseStatus.BOOKED)
        ]

    async def create_booking(self, data: dict[str, Any]) -> Booking:
        await self._enter()
        existing_id = data.get("id")
        if existing_id and existing_id in self._bookings:
            return self._store(existing_id, data, "update")
        return self._store(self._new_id("bk"), data, "create")

    async def update_booking(self, booking_id: str, data: dict[str, Any]) -> Booking:
        await self._enter()
        if booking_id not in self._bookings:
            raise ValidationError(f"Booking {booking_id} not found")
        return self._store(booking_id, data, "update")

    def _store(self, booking_id: str, data: dict[str, Any], action: str) -> Booking:
        booking = parse_booking({**data, "id": booking_id})
        booking = replace(booking, updated_at=datetime.now(timezone.utc))
        self._check_slot_free(booking)
        self._bookings[booking_id] = booking
        self.writes.append((action, booking_id))
        self._logger.info("Mock booking stored", extra={"booking_id": booking_id, "reason": action})
        return booking

    async def list_blocked_ranges(self, start: date, end: date) -> list[BlockedRange]:
        await self._enter()
        return [b for b in self._blocked.values() if start <= b.date <= end]

    async def create_blocked_range(self, block: BlockedRange, created_by: str | None = None) -> BlockedRange:
        await self._enter()
        if any(existing.key == block.key for existing in self._blocked.values()):
            raise ValidationError("This slot is already blocked")
        stored = self._put_block(block)
        self.writes.append(("block", stored.id))
        return stored

    async def delete_blocked_range(self, range_id: str) -> None:
        await self._enter()
        if self._blocked.pop(range_id, None) is None:
            raise ValidationError(f"Blocked slot {range_id} not found")
        self.writes.append(("unblock", range_id))

    def _put_block(self, block: BlockedRange) -> BlockedRange:
        stored = block if block.id else replace(block, id=self._new_id("blk"))
        self._blocked[stored.id] = stored
        return stored
