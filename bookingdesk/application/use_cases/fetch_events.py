from __future__ import annotations

import asyncio
import calendar
import logging
import time
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable

from bookingdesk.application.exceptions import BookingError, ValidationError
from bookingdesk.application.ports.booking_store import BookingStorePort
from bookingdesk.application.ports.event_cache import EventCachePort
from bookingdesk.application.ports.notifier import NotifierPort
from bookingdesk.application.utils.background import OwnedTimer, TaskRegistry
from bookingdesk.application.utils.event_projection import build_calendar_event, is_calendar_relevant


class FetchState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"  # debounced refresh scheduled
    IN_FLIGHT = "in_flight"


@dataclass(frozen=True)
class FetchResult:
    performed: bool
    reason: str  # fetched, in_flight, throttled, already_loaded, stale, failed
    count: int = 0


def month_window(today: date) -> tuple[date, date]:
    last_day = calendar.monthrange(today.year, today.month)[1]
    return today.replace(day=1), today.replace(day=last_day)


def range_key(start: date, end: date) -> str:
    return f"{start.isoformat()}_{end.isoformat()}"


class FetchEventsUseCase:
    """
    Loads the visible window into the event cache without redundant or
    overlapping reads.

    Idle -> InFlight -> Idle for direct requests; Idle -> Pending -> InFlight
    when a refresh is debounced. A forced fetch starts a new request id, and
    any response carrying an older id is dropped.
    """

    def __init__(
        self,
        store: BookingStorePort,
        cache: EventCachePort,
        registry: TaskRegistry,
        notifier: NotifierPort | None = None,
        *,
        min_interval: float = 3.0,
        debounce: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._store = store
        self._cache = cache
        self._notifier = notifier
        self._min_interval = min_interval
        self._debounce = debounce
        self._clock = clock
        self._visible = month_window(today())
        self._loaded: set[str] = set()
        self._last_started: float | None = None
        self._request_seq = 0
        self._active_request: int | None = None
        self._timer = OwnedTimer(registry, name="calendar-refresh")
        self._logger = logging.getLogger(__name__)

    @property
    def state(self) -> FetchState:
        if self._active_request is not None:
            return FetchState.IN_FLIGHT
        if self._timer.is_scheduled:
            return FetchState.PENDING
        return FetchState.IDLE

    @property
    def visible_range(self) -> tuple[date, date]:
        return self._visible

    @property
    def visible_key(self) -> str:
        return range_key(*self._visible)

    @property
    def loaded_ranges(self) -> frozenset[str]:
        return frozenset(self._loaded)

    def set_visible_range(self, start: date, end: date) -> None:
        if end < start:
            raise ValidationError(f"Visible range ends before it starts: {start}..{end}")
        self._visible = (start, end)

    def invalidate(self, key: str | None = None) -> None:
        self._loaded.discard(key or self.visible_key)

    async def request_fetch(self, force: bool = False) -> FetchResult:
        key = self.visible_key
        if force:
            self._loaded.clear()
            self._cache.clear()
            self._timer.cancel()
        else:
            if self._active_request is not None:
                return FetchResult(False, "in_flight")
            if self._last_started is not None and self._clock() - self._last_started < self._min_interval:
                self._logger.debug("Fetch throttled", extra={"range_key": key})
                return FetchResult(False, "throttled")
            if key in self._loaded:
                return FetchResult(False, "already_loaded")

        self._request_seq += 1
        request_id = self._request_seq
        self._active_request = request_id
        self._last_started = self._clock()
        start, end = self._visible
        self._logger.info("Fetching calendar", extra={"range_key": key, "reason": "force" if force else "load"})

        try:
            bookings, blocks = await asyncio.gather(
                self._store.list_bookings(start, end),
                self._store.list_blocked_ranges(start, end),
            )
            if request_id != self._active_request:
                self._logger.info("Stale fetch response discarded", extra={"range_key": key})
                return FetchResult(False, "stale")

            events = [build_calendar_event(b) for b in bookings if is_calendar_relevant(b)]
            if force:
                self._cache.replace(events)
                added = len(self._cache.snapshot())
            else:
                added = self._cache.merge(events)
            self._cache.merge_blocked_ranges(blocks)
            self._loaded.add(key)
            self._logger.info("Calendar fetched", extra={"range_key": key, "status": added})
            return FetchResult(True, "fetched", added)
        except BookingError as e:
            if request_id != self._active_request:
                return FetchResult(False, "stale")
            self._logger.error("Calendar fetch failed", extra={"range_key": key, "error": str(e)})
            if self._notifier is not None:
                self._notifier.error(e)
            return FetchResult(False, "failed")
        finally:
            if self._active_request == request_id:
                self._active_request = None

    def schedule_refresh(self) -> None:
        """Debounce a refresh of the visible window; a second call restarts the wait."""
        self._timer.schedule(self._debounce, self._debounced_refresh)

    async def _debounced_refresh(self) -> FetchResult:
        self.invalidate()
        result = await self.request_fetch(False)
        if result.reason in ("throttled", "in_flight"):
            # Try again once the current fetch or the interval is over
            self._timer.schedule(self._min_interval, self._debounced_refresh)
        return result

    def cancel(self) -> None:
        self._timer.cancel()
