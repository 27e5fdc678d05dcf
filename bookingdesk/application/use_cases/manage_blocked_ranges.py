from __future__ import annotations

import logging
from datetime import date

from bookingdesk.application.exceptions import PermissionDenied, ValidationError
from bookingdesk.application.ports.booking_store import BookingStorePort
from bookingdesk.application.ports.event_cache import EventCachePort
from bookingdesk.application.utils.slot_grid import DEFAULT_SLOT_GRID, SlotGrid, normalize_time
from bookingdesk.domain.entities.blocked_range import BlockedRange
from bookingdesk.domain.entities.user import CurrentUser, Role


class ManageBlockedRangesUseCase:
    """Admin-only blocking of days, times and single slots. Not optimistic: the store answers first."""

    def __init__(
        self,
        store: BookingStorePort,
        cache: EventCachePort,
        user: CurrentUser,
        grid: SlotGrid = DEFAULT_SLOT_GRID,
    ) -> None:
        self._store = store
        self._cache = cache
        self._user = user
        self._grid = grid
        self._logger = logging.getLogger(__name__)

    def _ensure_admin(self) -> None:
        if self._user.role is not Role.ADMIN:
            raise PermissionDenied(
                f"Role {self._user.role.value} may not manage blocked slots",
                user_message="Only admins can block or unblock slots.",
            )

    async def block_slot(
        self,
        day: date,
        time_slot: str | None = None,
        slot_number: int | None = None,
        reason: str | None = None,
    ) -> BlockedRange:
        self._ensure_admin()
        normalized = None
        if time_slot:
            normalized = normalize_time(time_slot)
            if not self._grid.has_time(normalized):
                raise ValidationError(f"Time {time_slot!r} is not on the slot grid", user_message="Pick a valid time.")
        if slot_number is not None and not self._grid.has_slot(slot_number):
            raise ValidationError(
                f"Slot {slot_number!r} is outside 1..{self._grid.slots_per_time}",
                user_message="Pick a valid slot.",
            )

        block = BlockedRange(date=day, time_slot=normalized, slot_number=slot_number, reason=reason or "Unavailable")
        if any(existing.key == block.key for existing in self._cache.blocked_ranges()):
            raise ValidationError(f"{block.key} is already blocked", user_message="This slot is already blocked")

        stored = await self._store.create_blocked_range(block, created_by=self._user.id)
        self._cache.put_blocked_range(stored)
        self._logger.info("Slot blocked", extra={"reason": f"{day} {normalized or 'all day'} #{slot_number or 'all'}"})
        return stored

    async def unblock_slot(self, range_id: str) -> None:
        self._ensure_admin()
        await self._store.delete_blocked_range(range_id)
        self._cache.drop_blocked_range(range_id)
        self._logger.info("Slot unblocked", extra={"reason": range_id})
