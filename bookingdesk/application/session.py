from __future__ import annotations

import logging
from datetime import date

from bookingdesk.application.exceptions import NetworkUnavailable
from bookingdesk.application.ports.booking_store import BookingStorePort
from bookingdesk.application.ports.event_cache import EventCachePort
from bookingdesk.application.ports.notifier import NotifierPort
from bookingdesk.application.ports.push_channel import PushChannelPort, Unsubscribe
from bookingdesk.application.use_cases.change_status import ChangeStatusUseCase, MutationTicket
from bookingdesk.application.use_cases.create_booking import BookingDraft, CreateBookingUseCase
from bookingdesk.application.use_cases.fetch_events import FetchEventsUseCase, FetchResult
from bookingdesk.application.use_cases.find_available_slots import FindAvailableSlotsUseCase
from bookingdesk.application.use_cases.manage_blocked_ranges import ManageBlockedRangesUseCase
from bookingdesk.application.use_cases.reconcile_push import ReconcileAction, ReconcilePushUseCase
from bookingdesk.application.utils.background import TaskRegistry
from bookingdesk.application.utils.event_projection import is_displayable
from bookingdesk.application.utils.slot_grid import DEFAULT_SLOT_GRID, SlotGrid
from bookingdesk.application.utils.status_transitions import ReviewSlot, Transition
from bookingdesk.domain.entities.blocked_range import BlockedRange
from bookingdesk.domain.entities.calendar_event import CalendarEvent
from bookingdesk.domain.entities.push_event import PushEvent
from bookingdesk.domain.entities.user import CurrentUser


class CalendarSession:
    """
    Everything one calendar view needs, owned per user session: the event
    cache, the coordinators working on it and their background tasks.
    """

    def __init__(
        self,
        user: CurrentUser,
        store: BookingStorePort,
        push: PushChannelPort,
        cache: EventCachePort,
        notifier: NotifierPort,
        *,
        grid: SlotGrid = DEFAULT_SLOT_GRID,
        min_fetch_interval: float = 3.0,
        push_debounce: float = 5.0,
        offline_retry_delay: float = 5.0,
        fetcher: FetchEventsUseCase | None = None,
    ) -> None:
        self.user = user
        self.cache = cache
        self.notifier = notifier
        self._store = store
        self._push = push
        self._registry = TaskRegistry()
        self._unsubscribe: Unsubscribe | None = None
        self._logger = logging.getLogger(__name__)

        self.fetcher = fetcher or FetchEventsUseCase(
            store,
            cache,
            self._registry,
            notifier,
            min_interval=min_fetch_interval,
            debounce=push_debounce,
        )
        self._change_status = ChangeStatusUseCase(
            store, cache, push, notifier, self._registry, user, grid=grid, retry_delay=offline_retry_delay
        )
        self._create_booking = CreateBookingUseCase(
            store,
            cache,
            push,
            notifier,
            self._registry,
            user,
            self._change_status,
            grid=grid,
            retry_delay=offline_retry_delay,
        )
        self._reconcile = ReconcilePushUseCase(cache, self.fetcher)
        self._slots = FindAvailableSlotsUseCase(cache, grid)
        self._blocked = ManageBlockedRangesUseCase(store, cache, user, grid)

    @property
    def registry(self) -> TaskRegistry:
        return self._registry

    async def start(self, initial_fetch: bool = True) -> None:
        self._unsubscribe = self._push.subscribe(self.handle_push)
        try:
            await self._push.connect()
        except NetworkUnavailable as e:
            self._logger.warning("Starting without live updates", extra={"error": str(e)})
        if initial_fetch:
            await self.request_fetch()

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.fetcher.cancel()
        self._change_status.cancel_all()
        self._create_booking.cancel_all()
        self._registry.cancel_all()
        await self._push.close()
        await self._store.close()
        self._logger.info("Calendar session closed", extra={"reason": self.user.id})

    def current_events(self, include_hidden: bool = False) -> tuple[CalendarEvent, ...]:
        events = self.cache.snapshot()
        if include_hidden:
            return events
        return tuple(event for event in events if is_displayable(event))

    def blocked_ranges(self) -> tuple[BlockedRange, ...]:
        return self.cache.blocked_ranges()

    def available_slots(self, day: date, exclude_id: str | None = None) -> list[tuple[str, int]]:
        return self._slots.execute(day, exclude_id=exclude_id)

    async def request_fetch(self, force: bool = False) -> FetchResult:
        result = await self.fetcher.request_fetch(force)
        if force:
            # A forced refresh wipes the cache; keep local work the server has not acknowledged yet
            for event in self._create_booking.pending_events:
                if self.cache.get(event.id) is None:
                    self.cache.apply(event)
            for event in self._change_status.unsaved_events:
                if self.cache.get(event.id) is not None:
                    self.cache.apply(event)
        return result

    async def set_visible_range(self, start: date, end: date) -> FetchResult:
        self.fetcher.set_visible_range(start, end)
        return await self.request_fetch()

    async def apply_status_change(
        self,
        booking_id: str,
        new_status: str | Transition,
        review_slot: ReviewSlot | None = None,
    ) -> MutationTicket:
        return await self._change_status.execute(booking_id, new_status, review_slot)

    async def create_or_reschedule_booking(self, draft: BookingDraft) -> MutationTicket:
        return await self._create_booking.execute(draft)

    def retry_pending_bookings(self) -> list[MutationTicket]:
        return self._create_booking.retry_pending_bookings()

    async def block_slot(
        self,
        day: date,
        time_slot: str | None = None,
        slot_number: int | None = None,
        reason: str | None = None,
    ) -> BlockedRange:
        return await self._blocked.block_slot(day, time_slot, slot_number, reason)

    async def unblock_slot(self, range_id: str) -> None:
        await self._blocked.unblock_slot(range_id)

    async def handle_push(self, event: PushEvent) -> ReconcileAction:
        return await self._reconcile.handle(event)

    async def drain(self) -> None:
        await self._registry.drain()
