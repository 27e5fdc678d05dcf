from __future__ import annotations

import json
import logging
from datetime import date, datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from bookingdesk.application.exceptions import ValidationError
from bookingdesk.application.utils.slot_grid import normalize_time
from bookingdesk.domain.entities.booking import Booking, CoarseStatus, FineStatus, HistoryEntry

logger = logging.getLogger(__name__)

_FINE_LOOKUP = {f.value.replace(" ", "").lower(): f for f in FineStatus}
_COARSE_LOOKUP = {c.value.lower(): c for c in CoarseStatus}


def _parse_date(value: Any) -> date | None:
    if value in (None, "", "null"):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _parse_timestamp(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class BookingPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    phone: str | None = None
    date_booked: str | None = None
    time_booked: str | None = None
    booking_slot: int | None = None
    status: str | None = None
    booking_status: str | None = None
    is_confirmed: bool | None = None
    is_double_confirmed: bool = False
    has_sale: bool = Field(default=False, validation_alias=AliasChoices("has_sale", "hasSale"))
    booker: str | None = Field(default=None, validation_alias=AliasChoices("booker", "booker_id", "assigned_owner_id"))
    updated_at: datetime | None = None
    review_date: str | None = None
    review_time: str | None = None
    review_slot: int | None = None
    booking_history: list[dict[str, Any]] = Field(
        default_factory=list, validation_alias=AliasChoices("booking_history", "bookingHistory")
    )

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if value in (None, ""):
            raise ValueError("booking id is required")
        return str(value)

    @field_validator("name", mode="before")
    @classmethod
    def _coerce_name(cls, value: Any) -> Any:
        return "" if value is None else str(value)

    @field_validator("date_booked", "review_date", mode="before")
    @classmethod
    def _coerce_date_text(cls, value: Any) -> Any:
        if value in (None, "", "null"):
            return None
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        return str(value)

    @field_validator("is_confirmed", mode="before")
    @classmethod
    def _coerce_tristate(cls, value: Any) -> Any:
        if value in (None, ""):
            return None
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes"}
        return bool(value)

    @field_validator("is_double_confirmed", "has_sale", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> Any:
        if value in (None, ""):
            return False
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes"}
        return bool(value)

    @field_validator("booker", mode="before")
    @classmethod
    def _coerce_booker(cls, value: Any) -> Any:
        if isinstance(value, dict):
            value = value.get("id") or value.get("_id")
        return None if value in (None, "") else str(value)

    @field_validator("booking_history", mode="before")
    @classmethod
    def _coerce_history(cls, value: Any) -> Any:
        if value in (None, ""):
            return []
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                logger.warning("Unparseable booking history dropped")
                return []
        if not isinstance(value, list):
            return []
        return [entry for entry in value if isinstance(entry, dict)]

    def to_entity(self) -> Booking:
        date_booked = _parse_date(self.date_booked)
        time_booked = normalize_time(self.time_booked)
        if date_booked is not None and time_booked is None and self.date_booked and "T" in self.date_booked:
            # Older rows carry the time only inside date_booked
            time_booked = normalize_time(self.date_booked.split("T", 1)[1][:5])

        return Booking(
            id=self.id,
            name=self.name,
            phone=self.phone,
            date_booked=date_booked,
            time_booked=time_booked,
            booking_slot=self.booking_slot,
            coarse_status=_COARSE_LOOKUP.get((self.status or "").strip().lower(), CoarseStatus.NEW),
            fine_status=_FINE_LOOKUP.get((self.booking_status or "").replace(" ", "").replace("_", "").lower()),
            is_confirmed=self.is_confirmed,
            is_double_confirmed=self.is_double_confirmed,
            has_sale=self.has_sale,
            assigned_owner_id=self.booker,
            updated_at=self.updated_at,
            review_date=_parse_date(self.review_date),
            review_time=normalize_time(self.review_time),
            review_slot=self.review_slot,
            history=tuple(_history_entries(self.booking_history)),
        )


def _history_entries(raw: list[dict[str, Any]]) -> list[HistoryEntry]:
    entries: list[HistoryEntry] = []
    for item in raw:
        try:
            timestamp = _parse_timestamp(item.get("timestamp"))
        except ValueError:
            timestamp = None
        if timestamp is None:
            continue
        details = item.get("details") if isinstance(item.get("details"), dict) else {}
        entries.append(HistoryEntry(action=str(item.get("action") or "UNKNOWN"), timestamp=timestamp, details=dict(details)))
    return entries


def parse_booking(data: Any) -> Booking:
    if not isinstance(data, dict):
        raise ValidationError(f"Booking payload must be an object, got {type(data).__name__}")
    try:
        return BookingPayload.model_validate(data).to_entity()
    except (PydanticValidationError, ValueError) as e:
        raise ValidationError(f"Malformed booking payload: {e}") from e


def booking_to_wire(booking: Booking) -> dict[str, Any]:
    return {
        "id": booking.id,
        "name": booking.name,
        "phone": booking.phone,
        "date_booked": booking.date_booked.isoformat() if booking.date_booked else None,
        "time_booked": booking.time_booked,
        "booking_slot": booking.booking_slot,
        "status": booking.coarse_status.value,
        "booking_status": booking.fine_status.value if booking.fine_status else None,
        "is_confirmed": None if booking.is_confirmed is None else int(booking.is_confirmed),
        "is_double_confirmed": booking.is_double_confirmed,
        "has_sale": booking.has_sale,
        "booker": booking.assigned_owner_id,
        "updated_at": booking.updated_at.isoformat() if booking.updated_at else None,
        "review_date": booking.review_date.isoformat() if booking.review_date else None,
        "review_time": booking.review_time,
        "review_slot": booking.review_slot,
        "booking_history": [
            {"action": entry.action, "timestamp": entry.timestamp.isoformat(), "details": dict(entry.details)}
            for entry in booking.history
        ],
    }
