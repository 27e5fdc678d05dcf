from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


class CoarseStatus(str, Enum):
    NEW = "New"
    BOOKED = "Booked"
    CANCELLED = "Cancelled"
    REJECTED = "Rejected"
    ATTENDED = "Attended"


class FineStatus(str, Enum):
    RESCHEDULE = "Reschedule"
    ARRIVED = "Arrived"
    LEFT = "Left"
    NO_SHOW = "No Show"
    NO_SALE = "No Sale"
    REVIEW = "Review"


@dataclass(frozen=True)
class HistoryEntry:
    action: str  # "STATUS_CHANGED", "CANCELLED", "SMS_RECEIVED", ...
    timestamp: datetime
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Booking:
    id: str
    name: str = ""
    phone: str | None = None
    date_booked: date | None = None
    time_booked: str | None = None  # HH:MM on the slot grid
    booking_slot: int | None = None  # 1..3
    coarse_status: CoarseStatus = CoarseStatus.NEW
    fine_status: FineStatus | None = None
    is_confirmed: bool | None = None  # None = never asked
    is_double_confirmed: bool = False
    has_sale: bool = False
    assigned_owner_id: str | None = None
    updated_at: datetime | None = None
    # Companion slot chosen when the booking enters Review
    review_date: date | None = None
    review_time: str | None = None
    review_slot: int | None = None
    history: tuple[HistoryEntry, ...] = ()

    @property
    def is_scheduled(self) -> bool:
        return self.date_booked is not None

    @property
    def occupies_slots(self) -> bool:
        return self.coarse_status not in (CoarseStatus.CANCELLED, CoarseStatus.REJECTED)

    def with_history(self, entry: HistoryEntry) -> tuple[HistoryEntry, ...]:
        return self.history + (entry,)
