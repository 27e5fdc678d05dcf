from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from bookingdesk.application.dto.booking_payload import booking_to_wire
from bookingdesk.application.exceptions import BookingError, NetworkUnavailable, ValidationError
from bookingdesk.application.ports.booking_store import BookingStorePort
from bookingdesk.application.ports.event_cache import EventCachePort
from bookingdesk.application.ports.notifier import NotifierPort
from bookingdesk.application.ports.push_channel import PushChannelPort
from bookingdesk.application.utils.background import OwnedTimer, TaskRegistry
from bookingdesk.application.utils.event_projection import rebuild_event
from bookingdesk.application.utils.slot_availability import available_slots
from bookingdesk.application.utils.slot_grid import DEFAULT_SLOT_GRID, SlotGrid
from bookingdesk.application.utils.status_transitions import (
    ReviewSlot,
    Transition,
    apply_transition,
    ensure_can_apply,
    parse_transition,
)
from bookingdesk.domain.entities.booking import Booking
from bookingdesk.domain.entities.calendar_event import CalendarEvent
from bookingdesk.domain.entities.push_event import PushEvent, PushEventKind
from bookingdesk.domain.entities.user import CurrentUser


class MutationOutcome(str, Enum):
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    PENDING_OFFLINE = "pending_offline"
    FAILED = "failed"  # remote failed, but the entry had already moved on so nothing was restored


@dataclass(frozen=True)
class MutationTicket:
    event: CalendarEvent
    completion: asyncio.Task[MutationOutcome]

    async def wait(self) -> MutationOutcome:
        return await self.completion


async def broadcast(push: PushChannelPort, kind: PushEventKind, booking: Booking, logger: logging.Logger) -> None:
    try:
        await push.emit(PushEvent(kind=kind, payload={"booking": booking_to_wire(booking)}))
    except Exception as e:
        # Peers catch up on their next refresh
        logger.warning("Push emit failed", extra={"booking_id": booking.id, "event_type": kind.value, "error": str(e)})


class ChangeStatusUseCase:
    def __init__(
        self,
        store: BookingStorePort,
        cache: EventCachePort,
        push: PushChannelPort,
        notifier: NotifierPort,
        registry: TaskRegistry,
        user: CurrentUser,
        *,
        grid: SlotGrid = DEFAULT_SLOT_GRID,
        retry_delay: float = 5.0,
    ) -> None:
        self._store = store
        self._cache = cache
        self._push = push
        self._notifier = notifier
        self._registry = registry
        self._user = user
        self._grid = grid
        self._retry_delay = retry_delay
        self._retry_timers: dict[str, OwnedTimer] = {}
        # Latest unacknowledged local write per booking; a refresh replacing the cache entry does not count
        self._latest: dict[str, CalendarEvent] = {}
        self._logger = logging.getLogger(__name__)

    @property
    def unsaved_events(self) -> tuple[CalendarEvent, ...]:
        return tuple(self._latest.values())

    async def execute(
        self,
        booking_id: str,
        new_status: str | Transition,
        review_slot: ReviewSlot | None = None,
    ) -> MutationTicket:
        """
        Apply a status change locally, tell peers, then persist it in the
        background. Permission and validation failures raise before anything
        is touched.
        """
        transition = parse_transition(new_status)
        before = self._cache.get(booking_id)
        if before is None:
            raise ValidationError(f"Booking {booking_id} is not on the calendar")
        ensure_can_apply(self._user, before.booking, transition)
        if transition is Transition.REVIEW:
            self._check_review_slot(booking_id, review_slot)

        updated = apply_transition(before.booking, transition, actor_id=self._user.id, review=review_slot)
        optimistic = rebuild_event(before, updated, is_pending=False)
        self._cache.apply(optimistic)
        self._logger.info("Status changed locally", extra={"booking_id": booking_id, "status": transition.value})

        return await self.submit_update(before, optimistic)

    async def submit_update(self, snapshot: CalendarEvent, optimistic: CalendarEvent) -> MutationTicket:
        """Broadcast an already-applied optimistic update and persist it in the background."""
        self.cancel_retry(optimistic.id)
        self._latest[optimistic.id] = optimistic
        await broadcast(self._push, PushEventKind.STATUS_CHANGED, optimistic.booking, self._logger)
        task = self._registry.spawn(self._commit(snapshot, optimistic), name=f"update:{optimistic.id}")
        return MutationTicket(event=optimistic, completion=task)

    def _check_review_slot(self, booking_id: str, review: ReviewSlot | None) -> None:
        if review is None:
            raise ValidationError("Review needs a review date, time and slot", user_message="Pick a review slot first.")
        bookings = [event.booking for event in self._cache.snapshot()]
        free = available_slots(review.date, self._cache.blocked_ranges(), bookings, self._grid)
        if (review.time_slot, review.slot_number) not in free:
            raise ValidationError(
                f"Review slot {review.date} {review.time_slot} #{review.slot_number} is not available for {booking_id}",
                user_message="That review slot is not available.",
            )

    async def _commit(self, snapshot: CalendarEvent, optimistic: CalendarEvent, retried: bool = False) -> MutationOutcome:
        booking_id = optimistic.id
        try:
            stored = await self._store.update_booking(booking_id, booking_to_wire(optimistic.booking))
        except NetworkUnavailable as e:
            return self._keep_offline(snapshot, optimistic, e, retried)
        except BookingError as e:
            return await self._rollback(snapshot, optimistic, e)

        if not self._is_latest(optimistic):
            self._logger.info("Update acknowledged after a newer change", extra={"booking_id": booking_id})
            return MutationOutcome.COMMITTED
        del self._latest[booking_id]
        # The entry may have been refilled by a forced refresh; the acknowledged row wins either way
        base = self._cache.get(booking_id) or optimistic
        self._cache.apply(rebuild_event(base, stored, is_pending=False))
        self._logger.info("Status change saved", extra={"booking_id": booking_id, "status": "committed"})
        return MutationOutcome.COMMITTED

    def _keep_offline(
        self,
        snapshot: CalendarEvent,
        optimistic: CalendarEvent,
        error: NetworkUnavailable,
        retried: bool,
    ) -> MutationOutcome:
        booking_id = optimistic.id
        self._notifier.error(error)
        if not self._is_latest(optimistic):
            self._logger.warning("Offline change superseded", extra={"booking_id": booking_id, "error": str(error)})
            return MutationOutcome.PENDING_OFFLINE

        # Re-applied even if a refresh overwrote the entry, so the unsaved change stays visible
        pending = rebuild_event(optimistic, is_pending=True)
        self._cache.apply(pending)
        self._latest[booking_id] = pending
        self._logger.warning(
            "Status change kept offline",
            extra={"booking_id": booking_id, "reason": "retry scheduled" if not retried else "gave up", "error": str(error)},
        )
        if not retried:
            timer = self._retry_timers.setdefault(booking_id, OwnedTimer(self._registry, name=f"retry:{booking_id}"))
            timer.schedule(self._retry_delay, lambda: self._retry(snapshot, pending))
        return MutationOutcome.PENDING_OFFLINE

    async def _retry(self, snapshot: CalendarEvent, pending: CalendarEvent) -> MutationOutcome:
        timer = self._retry_timers.get(pending.id)
        if timer is not None and not timer.is_scheduled:
            del self._retry_timers[pending.id]
        return await self._commit(snapshot, pending, retried=True)

    def _is_latest(self, optimistic: CalendarEvent) -> bool:
        return self._latest.get(optimistic.id) is optimistic

    async def _rollback(self, snapshot: CalendarEvent, optimistic: CalendarEvent, error: BookingError) -> MutationOutcome:
        booking_id = optimistic.id
        self._notifier.error(error)
        if not self._is_latest(optimistic):
            self._logger.warning(
                "Rollback skipped, a newer change is in flight",
                extra={"booking_id": booking_id, "error": str(error)},
            )
            return MutationOutcome.FAILED
        del self._latest[booking_id]
        self._cache.restore(booking_id, snapshot)
        self._logger.warning(
            "Status change rolled back",
            extra={"booking_id": booking_id, "reason": error.category, "error": str(error)},
        )
        await broadcast(self._push, PushEventKind.STATUS_CHANGED, snapshot.booking, self._logger)
        return MutationOutcome.ROLLED_BACK

    def cancel_retry(self, booking_id: str) -> None:
        timer = self._retry_timers.pop(booking_id, None)
        if timer is not None:
            timer.cancel()

    def cancel_all(self) -> None:
        for timer in self._retry_timers.values():
            timer.cancel()
        self._retry_timers.clear()
        self._latest.clear()
