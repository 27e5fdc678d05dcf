from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from bookingdesk.domain.entities.booking import Booking, CoarseStatus
from bookingdesk.domain.entities.calendar_event import CalendarEvent, EventProps
from bookingdesk.domain.entities.display_status import PENDING_COLOR, derive_display_status, status_color

EVENT_DURATION = timedelta(minutes=30)


def _event_start(booking: Booking) -> datetime | None:
    if booking.date_booked is None:
        return None
    hour, minute = 0, 0
    if booking.time_booked:
        hour_text, minute_text = booking.time_booked.split(":")[:2]
        hour, minute = int(hour_text), int(minute_text)
    return datetime.combine(booking.date_booked, datetime.min.time()).replace(hour=hour, minute=minute)


def build_calendar_event(booking: Booking, *, has_unread_message: bool = False, is_pending: bool = False) -> CalendarEvent:
    display = derive_display_status(booking)
    start = _event_start(booking)
    label = booking.name or "Booking"
    title = f"{label} - {display.value}"
    if is_pending:
        title = f"{title} (Pending)"
    return CalendarEvent(
        id=booking.id,
        title=title,
        start=start,
        end=start + EVENT_DURATION if start else None,
        color=PENDING_COLOR if is_pending else status_color(display, booking.has_sale),
        extended_props=EventProps(
            booking=booking,
            display_status=display,
            has_unread_message=has_unread_message,
            is_pending=is_pending,
        ),
    )


def rebuild_event(
    event: CalendarEvent,
    booking: Booking | None = None,
    *,
    has_unread_message: bool | None = None,
    is_pending: bool | None = None,
) -> CalendarEvent:
    props = event.extended_props
    return build_calendar_event(
        booking or props.booking,
        has_unread_message=props.has_unread_message if has_unread_message is None else has_unread_message,
        is_pending=props.is_pending if is_pending is None else is_pending,
    )


def rename_event(event: CalendarEvent, new_id: str) -> CalendarEvent:
    return rebuild_event(event, replace(event.booking, id=new_id))


def is_calendar_relevant(booking: Booking) -> bool:
    """Scheduled bookings, plus booked ones still waiting for a date."""
    return booking.date_booked is not None or booking.coarse_status is CoarseStatus.BOOKED


def is_displayable(event: CalendarEvent) -> bool:
    booking = event.booking
    return booking.occupies_slots and is_calendar_relevant(booking)
