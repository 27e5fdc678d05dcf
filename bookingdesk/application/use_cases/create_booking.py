from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone

from bookingdesk.application.dto.booking_payload import booking_to_wire
from bookingdesk.application.exceptions import (
    BookingError,
    NetworkUnavailable,
    PermissionDenied,
    ServerError,
    ValidationError,
)
from bookingdesk.application.ports.booking_store import BookingStorePort
from bookingdesk.application.ports.event_cache import EventCachePort
from bookingdesk.application.ports.notifier import NotifierPort
from bookingdesk.application.ports.push_channel import PushChannelPort
from bookingdesk.application.use_cases.change_status import (
    ChangeStatusUseCase,
    MutationOutcome,
    MutationTicket,
    broadcast,
)
from bookingdesk.application.utils.background import OwnedTimer, TaskRegistry
from bookingdesk.application.utils.event_projection import build_calendar_event, rebuild_event
from bookingdesk.application.utils.slot_availability import available_slots
from bookingdesk.application.utils.slot_grid import DEFAULT_SLOT_GRID, SlotGrid, normalize_time
from bookingdesk.application.utils.status_transitions import FULL_ACCESS_ROLES, Transition, ensure_can_apply
from bookingdesk.domain.entities.booking import Booking, CoarseStatus, FineStatus, HistoryEntry
from bookingdesk.domain.entities.calendar_event import CalendarEvent
from bookingdesk.domain.entities.push_event import PushEventKind
from bookingdesk.domain.entities.user import CurrentUser, Role

TEMP_PREFIX = "temp_"


@dataclass(frozen=True)
class BookingDraft:
    date: date
    time_slot: str
    slot_number: int
    booking_id: str | None = None  # set when rescheduling an existing booking
    name: str = ""
    phone: str | None = None
    assigned_owner_id: str | None = None


def is_temp_id(booking_id: str) -> bool:
    return booking_id.startswith(TEMP_PREFIX)


class CreateBookingUseCase:
    """
    Creates a booking or moves an existing one to a new slot.

    New bookings show up at once under a temporary id. The id is swapped
    for the server's once the create is acknowledged. A create that cannot
    reach the server stays on the calendar as pending until it is retried.
    """

    def __init__(
        self,
        store: BookingStorePort,
        cache: EventCachePort,
        push: PushChannelPort,
        notifier: NotifierPort,
        registry: TaskRegistry,
        user: CurrentUser,
        change_status: ChangeStatusUseCase,
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
        self._change_status = change_status
        self._grid = grid
        self._retry_delay = retry_delay
        self._pending: dict[str, CalendarEvent] = {}
        self._retry_timers: dict[str, OwnedTimer] = {}
        self._logger = logging.getLogger(__name__)

    @property
    def pending_events(self) -> tuple[CalendarEvent, ...]:
        return tuple(self._pending.values())

    async def execute(self, draft: BookingDraft) -> MutationTicket:
        time_slot = self._validate(draft)
        if draft.booking_id:
            return await self._reschedule(draft, time_slot)
        return self._create(draft, time_slot)

    def _validate(self, draft: BookingDraft) -> str:
        time_slot = normalize_time(draft.time_slot)
        if not self._grid.has_time(time_slot):
            raise ValidationError(f"Time {draft.time_slot!r} is not on the slot grid", user_message="Pick a valid time.")
        if not self._grid.has_slot(draft.slot_number):
            raise ValidationError(
                f"Slot {draft.slot_number!r} is outside 1..{self._grid.slots_per_time}",
                user_message="Pick a valid slot.",
            )
        bookings = [event.booking for event in self._cache.snapshot()]
        free = available_slots(draft.date, self._cache.blocked_ranges(), bookings, self._grid, exclude_id=draft.booking_id)
        if (time_slot, draft.slot_number) not in free:
            raise ValidationError(
                f"Slot {draft.date} {time_slot} #{draft.slot_number} is taken or blocked",
                user_message="That slot is not available.",
            )
        return time_slot

    async def _reschedule(self, draft: BookingDraft, time_slot: str) -> MutationTicket:
        before = self._cache.get(draft.booking_id)
        if before is None:
            raise ValidationError(f"Booking {draft.booking_id} is not on the calendar")
        booking = before.booking
        ensure_can_apply(self._user, booking, Transition.RESCHEDULE)

        now = datetime.now(timezone.utc)
        entry = HistoryEntry(
            "STATUS_CHANGED",
            now,
            {
                "from": booking.fine_status.value if booking.fine_status else booking.coarse_status.value,
                "to": Transition.RESCHEDULE.value,
                "by": self._user.id,
                "previous_slot": f"{booking.date_booked} {booking.time_booked} #{booking.booking_slot}",
                "new_slot": f"{draft.date.isoformat()} {time_slot} #{draft.slot_number}",
            },
        )
        moved = replace(
            booking,
            date_booked=draft.date,
            time_booked=time_slot,
            booking_slot=draft.slot_number,
            coarse_status=CoarseStatus.BOOKED,
            fine_status=FineStatus.RESCHEDULE,
            is_confirmed=False,
            is_double_confirmed=False,
            updated_at=now,
            history=booking.with_history(entry),
        )
        optimistic = rebuild_event(before, moved, is_pending=False)
        self._cache.apply(optimistic)
        self._logger.info("Booking rescheduled locally", extra={"booking_id": booking.id, "reason": entry.details["new_slot"]})
        return await self._change_status.submit_update(before, optimistic)

    def _create(self, draft: BookingDraft, time_slot: str) -> MutationTicket:
        if self._user.role not in FULL_ACCESS_ROLES and self._user.role is not Role.BOOKER:
            raise PermissionDenied(f"Role {self._user.role.value} may not create bookings")

        now = datetime.now(timezone.utc)
        temp_id = f"{TEMP_PREFIX}{uuid.uuid4().hex[:12]}"
        booking = Booking(
            id=temp_id,
            name=draft.name,
            phone=draft.phone,
            date_booked=draft.date,
            time_booked=time_slot,
            booking_slot=draft.slot_number,
            coarse_status=CoarseStatus.BOOKED,
            is_confirmed=False,
            assigned_owner_id=draft.assigned_owner_id or self._user.id,
            updated_at=now,
            history=(HistoryEntry("BOOKING_CREATED", now, {"by": self._user.id}),),
        )
        event = build_calendar_event(booking)
        self._cache.apply(event)
        self._logger.info("Booking created locally", extra={"booking_id": temp_id})

        task = self._registry.spawn(self._commit_create(temp_id, event), name=f"create:{temp_id}")
        return MutationTicket(event=event, completion=task)

    async def _commit_create(self, temp_id: str, optimistic: CalendarEvent, retried: bool = False) -> MutationOutcome:
        payload = booking_to_wire(optimistic.booking)
        payload.pop("id", None)
        try:
            stored = await self._store.create_booking(payload)
        except NetworkUnavailable as e:
            self._keep_pending(temp_id, optimistic, e)
            if not retried:
                self._schedule_retry(temp_id)
            return MutationOutcome.PENDING_OFFLINE
        except ServerError as e:
            self._keep_pending(temp_id, optimistic, e)
            return MutationOutcome.PENDING_OFFLINE
        except BookingError as e:
            self._forget(temp_id)
            self._cache.remove(temp_id)
            self._notifier.error(e)
            self._logger.warning(
                "Booking create rolled back",
                extra={"booking_id": temp_id, "reason": e.category, "error": str(e)},
            )
            return MutationOutcome.ROLLED_BACK

        self._forget(temp_id)
        current = self._cache.get(temp_id)
        has_unread = current.extended_props.has_unread_message if current else False
        self._cache.swap_id(temp_id, build_calendar_event(stored, has_unread_message=has_unread))
        self._logger.info("Booking saved", extra={"booking_id": stored.id, "reason": f"was {temp_id}"})
        self._notifier.info("Booking saved")
        await broadcast(self._push, PushEventKind.BOOKING_CREATED, stored, self._logger)
        return MutationOutcome.COMMITTED

    def _keep_pending(self, temp_id: str, optimistic: CalendarEvent, error: BookingError) -> None:
        current = self._cache.get(temp_id) or optimistic
        pending = rebuild_event(current, is_pending=True)
        self._cache.apply(pending)
        self._pending[temp_id] = pending
        self._notifier.error(error)
        self._logger.warning(
            "Booking kept pending",
            extra={"booking_id": temp_id, "reason": error.category, "error": str(error)},
        )

    def _schedule_retry(self, temp_id: str) -> None:
        timer = self._retry_timers.setdefault(temp_id, OwnedTimer(self._registry, name=f"retry:{temp_id}"))

        async def _retry() -> MutationOutcome:
            event = self._pending.pop(temp_id, None)
            if event is None:
                return MutationOutcome.COMMITTED
            return await self._commit_create(temp_id, event, retried=True)

        timer.schedule(self._retry_delay, _retry)

    def _forget(self, temp_id: str) -> None:
        self._pending.pop(temp_id, None)
        timer = self._retry_timers.pop(temp_id, None)
        if timer is not None:
            timer.cancel()

    def retry_pending_bookings(self) -> list[MutationTicket]:
        """Resubmit every booking that is still waiting for the server."""
        tickets: list[MutationTicket] = []
        for temp_id, event in list(self._pending.items()):
            del self._pending[temp_id]
            timer = self._retry_timers.pop(temp_id, None)
            if timer is not None:
                timer.cancel()
            task = self._registry.spawn(self._commit_create(temp_id, event, retried=True), name=f"create:{temp_id}")
            tickets.append(MutationTicket(event=event, completion=task))
        if tickets:
            self._logger.info("Retrying pending bookings", extra={"status": len(tickets)})
        return tickets

    def cancel_all(self) -> None:
        for timer in self._retry_timers.values():
            timer.cancel()
        self._retry_timers.clear()
