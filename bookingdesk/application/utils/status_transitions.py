from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from enum import Enum

from bookingdesk.application.exceptions import PermissionDenied, ValidationError
from bookingdesk.domain.entities.booking import Booking, CoarseStatus, FineStatus, HistoryEntry
from bookingdesk.domain.entities.user import CurrentUser, Role


class Transition(str, Enum):
    CONFIRMED = "Confirmed"
    UNCONFIRMED = "Unconfirmed"
    DOUBLE_CONFIRMED = "Double Confirmed"
    RESCHEDULE = "Reschedule"
    ARRIVED = "Arrived"
    LEFT = "Left"
    NO_SHOW = "No Show"
    NO_SALE = "No Sale"
    REVIEW = "Review"
    CANCELLED = "Cancelled"
    NEW = "New"
    BOOKED = "Booked"
    REJECTED = "Rejected"
    ATTENDED = "Attended"


@dataclass(frozen=True)
class ReviewSlot:
    date: date
    time_slot: str
    slot_number: int


# Bookers may apply these to any booking; everything else only to their own
BOOKER_UNRESTRICTED = frozenset({Transition.CONFIRMED, Transition.UNCONFIRMED, Transition.CANCELLED})
FULL_ACCESS_ROLES = frozenset({Role.ADMIN, Role.VIEWER})

_FINE_TRANSITIONS = {
    Transition.ARRIVED: FineStatus.ARRIVED,
    Transition.LEFT: FineStatus.LEFT,
    Transition.NO_SHOW: FineStatus.NO_SHOW,
    Transition.NO_SALE: FineStatus.NO_SALE,
}

_COARSE_TRANSITIONS = {
    Transition.NEW: CoarseStatus.NEW,
    Transition.BOOKED: CoarseStatus.BOOKED,
    Transition.REJECTED: CoarseStatus.REJECTED,
    Transition.ATTENDED: CoarseStatus.ATTENDED,
}

_LOOKUP = {t.value.replace(" ", "").lower(): t for t in Transition}


def parse_transition(value: str | Transition) -> Transition:
    """Accept "No Show", "NoShow", "no_show" and friends."""
    if isinstance(value, Transition):
        return value
    key = str(value or "").replace(" ", "").replace("_", "").replace("-", "").lower()
    if key == "complete":
        raise ValidationError(
            "Complete is derived from Attended with a sale and cannot be set directly",
            user_message="Mark the booking Attended and record the sale instead.",
        )
    transition = _LOOKUP.get(key)
    if transition is None:
        raise ValidationError(f"Unknown booking status: {value!r}")
    return transition


def can_apply(user: CurrentUser, booking: Booking, transition: Transition) -> bool:
    if user.role in FULL_ACCESS_ROLES:
        return True
    if user.role is Role.BOOKER:
        if transition in BOOKER_UNRESTRICTED:
            return True
        return booking.assigned_owner_id is not None and booking.assigned_owner_id == user.id
    return False


def ensure_can_apply(user: CurrentUser, booking: Booking, transition: Transition) -> None:
    if can_apply(user, booking, transition):
        return
    if user.role is Role.BOOKER:
        raise PermissionDenied(
            f"Booker {user.id} may not set {transition.value} on booking {booking.id}",
            user_message=(
                "Access denied. You can only change Confirmed/Unconfirmed/Cancelled status on any booking, "
                "or other statuses on leads assigned to you."
            ),
        )
    raise PermissionDenied(f"Role {user.role.value} may not change booking status")


def apply_transition(
    booking: Booking,
    transition: Transition,
    *,
    actor_id: str | None = None,
    review: ReviewSlot | None = None,
    now: datetime | None = None,
) -> Booking:
    """
    Return the booking after `transition`, as one new immutable value.

    The caller is responsible for the permission check and, for Review, for
    checking that the companion slot is free.
    """
    now = now or datetime.now(timezone.utc)
    entry_details: dict[str, object] = {
        "from": booking.fine_status.value if booking.fine_status else booking.coarse_status.value,
        "to": transition.value,
        "by": actor_id,
    }

    if transition is Transition.CANCELLED:
        entry_details.update(
            {
                "date_booked": booking.date_booked.isoformat() if booking.date_booked else None,
                "time_booked": booking.time_booked,
                "booking_slot": booking.booking_slot,
                "is_confirmed": booking.is_confirmed,
                "fine_status": booking.fine_status.value if booking.fine_status else None,
            }
        )
        return replace(
            booking,
            coarse_status=CoarseStatus.CANCELLED,
            date_booked=None,
            time_booked=None,
            booking_slot=None,
            is_confirmed=None,
            fine_status=None,
            updated_at=now,
            history=booking.with_history(HistoryEntry("CANCELLED", now, entry_details)),
        )

    changes: dict[str, object]
    if transition is Transition.DOUBLE_CONFIRMED:
        changes = {"coarse_status": CoarseStatus.BOOKED, "is_confirmed": True, "is_double_confirmed": True, "fine_status": None}
    elif transition is Transition.CONFIRMED:
        changes = {"coarse_status": CoarseStatus.BOOKED, "is_confirmed": True, "is_double_confirmed": False, "fine_status": None}
    elif transition is Transition.UNCONFIRMED:
        changes = {"coarse_status": CoarseStatus.BOOKED, "is_confirmed": False, "is_double_confirmed": False, "fine_status": None}
    elif transition is Transition.RESCHEDULE:
        changes = {"coarse_status": CoarseStatus.BOOKED, "fine_status": FineStatus.RESCHEDULE, "is_confirmed": False}
    elif transition in _FINE_TRANSITIONS:
        changes = {"coarse_status": CoarseStatus.BOOKED, "fine_status": _FINE_TRANSITIONS[transition], "is_confirmed": None}
    elif transition is Transition.REVIEW:
        if review is None:
            raise ValidationError("Review needs a review date, time and slot", user_message="Pick a review slot first.")
        changes = {
            "coarse_status": CoarseStatus.BOOKED,
            "fine_status": FineStatus.REVIEW,
            "review_date": review.date,
            "review_time": review.time_slot,
            "review_slot": review.slot_number,
        }
        entry_details["review"] = f"{review.date.isoformat()} {review.time_slot} #{review.slot_number}"
    else:
        changes = {"coarse_status": _COARSE_TRANSITIONS[transition], "fine_status": None}

    return replace(
        booking,
        **changes,
        updated_at=now,
        history=booking.with_history(HistoryEntry("STATUS_CHANGED", now, entry_details)),
    )
