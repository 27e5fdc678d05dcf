from __future__ import annotations

from enum import Enum

from bookingdesk.domain.entities.booking import Booking, CoarseStatus, FineStatus


class DisplayStatus(str, Enum):
    NEW = "New"
    BOOKED = "Booked"
    UNASSIGNED = "Unassigned"
    UNCONFIRMED = "Unconfirmed"
    CONFIRMED = "Confirmed"
    DOUBLE_CONFIRMED = "Double Confirmed"
    RESCHEDULE = "Reschedule"
    ARRIVED = "Arrived"
    LEFT = "Left"
    NO_SHOW = "No Show"
    NO_SALE = "No Sale"
    REVIEW = "Review"
    CANCELLED = "Cancelled"
    REJECTED = "Rejected"
    ATTENDED = "Attended"
    COMPLETE = "Complete"


_FINE_TO_DISPLAY = {
    FineStatus.RESCHEDULE: DisplayStatus.RESCHEDULE,
    FineStatus.ARRIVED: DisplayStatus.ARRIVED,
    FineStatus.LEFT: DisplayStatus.LEFT,
    FineStatus.NO_SHOW: DisplayStatus.NO_SHOW,
    FineStatus.NO_SALE: DisplayStatus.NO_SALE,
    FineStatus.REVIEW: DisplayStatus.REVIEW,
}

_COARSE_TO_DISPLAY = {
    CoarseStatus.NEW: DisplayStatus.NEW,
    CoarseStatus.BOOKED: DisplayStatus.BOOKED,
    CoarseStatus.CANCELLED: DisplayStatus.CANCELLED,
    CoarseStatus.REJECTED: DisplayStatus.REJECTED,
    CoarseStatus.ATTENDED: DisplayStatus.ATTENDED,
}

_STATUS_COLORS = {
    DisplayStatus.NEW: "#ea580c",
    DisplayStatus.BOOKED: "#1e40af",
    DisplayStatus.UNASSIGNED: "#6b7280",
    DisplayStatus.UNCONFIRMED: "#f97316",
    DisplayStatus.CONFIRMED: "#10b981",
    DisplayStatus.DOUBLE_CONFIRMED: "#047857",
    DisplayStatus.RESCHEDULE: "#ea580c",
    DisplayStatus.ARRIVED: "#e06666",
    DisplayStatus.LEFT: "#000000",
    DisplayStatus.NO_SHOW: "#f59e0b",
    DisplayStatus.NO_SALE: "#dc2626",
    DisplayStatus.REVIEW: "#7c3aed",
    DisplayStatus.CANCELLED: "#f43f5e",
    DisplayStatus.REJECTED: "#9f1239",
    DisplayStatus.ATTENDED: "#3b82f6",
    DisplayStatus.COMPLETE: "#3b82f6",
}

SALE_COLOR = "#2563eb"
PENDING_COLOR = "#FFA500"


def derive_display_status(booking: Booking) -> DisplayStatus:
    """
    Derive the single user-facing status from the booking flags.

    Precedence, highest first:
    cancelled, fine status on a booked booking, double confirmed, confirmed,
    explicitly unconfirmed, booked with neither date nor update stamp
    (unassigned), then the coarse status itself. Attended with a sale is
    shown as Complete.
    """
    coarse = booking.coarse_status
    if coarse is CoarseStatus.CANCELLED:
        return DisplayStatus.CANCELLED

    if coarse is CoarseStatus.BOOKED:
        if booking.fine_status is not None:
            return _FINE_TO_DISPLAY[booking.fine_status]
        if booking.is_double_confirmed:
            return DisplayStatus.DOUBLE_CONFIRMED
        if booking.is_confirmed is True:
            return DisplayStatus.CONFIRMED
        if booking.is_confirmed is False:
            return DisplayStatus.UNCONFIRMED
        if booking.date_booked is None and booking.updated_at is None:
            return DisplayStatus.UNASSIGNED

    if coarse is CoarseStatus.ATTENDED and booking.has_sale:
        return DisplayStatus.COMPLETE
    return _COARSE_TO_DISPLAY[coarse]


def status_color(status: DisplayStatus, has_sale: bool = False) -> str:
    if has_sale and status not in (DisplayStatus.ATTENDED, DisplayStatus.COMPLETE):
        return SALE_COLOR
    return _STATUS_COLORS.get(status, "#6b7280")
