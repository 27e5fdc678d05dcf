from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from bookingdesk.domain.entities.booking import Booking
from bookingdesk.domain.entities.display_status import DisplayStatus


@dataclass(frozen=True)
class EventProps:
    booking: Booking
    display_status: DisplayStatus
    has_unread_message: bool = False
    is_pending: bool = False  # saved locally, not yet acknowledged by the server


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    title: str
    start: datetime | None
    end: datetime | None
    color: str
    extended_props: EventProps

    @property
    def booking(self) -> Booking:
        return self.extended_props.booking
