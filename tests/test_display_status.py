"""
Tests for display status derivation and event projection.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from bookingdesk.application.utils.event_projection import build_calendar_event, is_displayable, rebuild_event
from bookingdesk.domain.entities.booking import Booking, CoarseStatus, FineStatus
from bookingdesk.domain.entities.display_status import (
    PENDING_COLOR,
    SALE_COLOR,
    DisplayStatus,
    derive_display_status,
    status_color,
)

STAMP = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)


def _booked(**kwargs) -> Booking:
    defaults = dict(
        id="b1",
        name="Jane",
        date_booked=date(2025, 6, 1),
        time_booked="10:00",
        booking_slot=1,
        coarse_status=CoarseStatus.BOOKED,
        updated_at=STAMP,
    )
    defaults.update(kwargs)
    return Booking(**defaults)


def test_cancelled_wins_over_everything():
    booking = _booked(coarse_status=CoarseStatus.CANCELLED, fine_status=FineStatus.ARRIVED, is_confirmed=True)
    assert derive_display_status(booking) is DisplayStatus.CANCELLED


def test_fine_status_beats_confirmation():
    booking = _booked(fine_status=FineStatus.NO_SHOW, is_confirmed=True, is_double_confirmed=True)
    assert derive_display_status(booking) is DisplayStatus.NO_SHOW


def test_confirmation_levels():
    assert derive_display_status(_booked(is_double_confirmed=True, is_confirmed=True)) is DisplayStatus.DOUBLE_CONFIRMED
    assert derive_display_status(_booked(is_confirmed=True)) is DisplayStatus.CONFIRMED
    assert derive_display_status(_booked(is_confirmed=False)) is DisplayStatus.UNCONFIRMED


def test_booked_without_date_or_stamp_is_unassigned():
    booking = _booked(date_booked=None, time_booked=None, booking_slot=None, updated_at=None)
    assert derive_display_status(booking) is DisplayStatus.UNASSIGNED


def test_booked_with_unknown_confirmation_falls_through():
    assert derive_display_status(_booked(is_confirmed=None)) is DisplayStatus.BOOKED


def test_attended_with_sale_is_complete():
    assert derive_display_status(_booked(coarse_status=CoarseStatus.ATTENDED, has_sale=True)) is DisplayStatus.COMPLETE
    assert derive_display_status(_booked(coarse_status=CoarseStatus.ATTENDED)) is DisplayStatus.ATTENDED


def test_fine_status_ignored_when_not_booked():
    booking = _booked(coarse_status=CoarseStatus.NEW, fine_status=FineStatus.ARRIVED)
    assert derive_display_status(booking) is DisplayStatus.NEW


def test_derivation_is_deterministic():
    booking = _booked(is_confirmed=True)
    assert {derive_display_status(booking) for _ in range(20)} == {DisplayStatus.CONFIRMED}


def test_sale_colour_overrides_status_colour():
    assert status_color(DisplayStatus.CONFIRMED, has_sale=True) == SALE_COLOR
    assert status_color(DisplayStatus.COMPLETE, has_sale=True) != SALE_COLOR


def test_event_projection_title_and_span():
    event = build_calendar_event(_booked(is_confirmed=True))
    assert event.id == "b1"
    assert event.title == "Jane - Confirmed"
    assert event.start == datetime(2025, 6, 1, 10, 0)
    assert (event.end - event.start).total_seconds() == 1800
    assert event.extended_props.display_status is DisplayStatus.CONFIRMED


def test_pending_event_is_marked():
    event = build_calendar_event(_booked(), is_pending=True)
    assert event.title.endswith("(Pending)")
    assert event.color == PENDING_COLOR


def test_rebuild_keeps_unread_flag():
    event = build_calendar_event(_booked(), has_unread_message=True)
    rebuilt = rebuild_event(event, _booked(is_confirmed=True))
    assert rebuilt.extended_props.has_unread_message is True
    assert rebuilt.extended_props.display_status is DisplayStatus.CONFIRMED


def test_cancelled_event_is_hidden():
    assert not is_displayable(build_calendar_event(_booked(coarse_status=CoarseStatus.CANCELLED)))
    assert is_displayable(build_calendar_event(_booked()))
