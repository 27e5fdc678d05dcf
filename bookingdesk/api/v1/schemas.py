from datetime import date as date_type, datetime
from typing import Any

from pydantic import BaseModel, Field

from bookingdesk.application.dto.blocked_range_payload import blocked_range_to_wire
from bookingdesk.application.dto.booking_payload import booking_to_wire
from bookingdesk.domain.entities.blocked_range import BlockedRange
from bookingdesk.domain.entities.calendar_event import CalendarEvent


class EventSchema(BaseModel):
    id: str
    title: str
    start: datetime | None = None
    end: datetime | None = None
    color: str
    display_status: str
    has_unread_message: bool = False
    is_pending: bool = False
    booking: dict[str, Any]

    @classmethod
    def from_event(cls, event: CalendarEvent) -> "EventSchema":
        props = event.extended_props
        return cls(
            id=event.id,
            title=event.title,
            start=event.start,
            end=event.end,
            color=event.color,
            display_status=props.display_status.value,
            has_unread_message=props.has_unread_message,
            is_pending=props.is_pending,
            booking=booking_to_wire(event.booking),
        )


class EventListSchema(BaseModel):
    events: list[EventSchema]


class FetchResponseSchema(BaseModel):
    performed: bool
    reason: str
    count: int = 0
    range_key: str


class VisibleRangeSchema(BaseModel):
    start: date_type
    end: date_type


class SlotSchema(BaseModel):
    time_slot: str
    slot_number: int


class SlotListSchema(BaseModel):
    day: date_type
    slots: list[SlotSchema]


class StatusChangeRequestSchema(BaseModel):
    status: str
    review_date: date_type | None = None
    review_time: str | None = None
    review_slot: int | None = None


class BookingDraftSchema(BaseModel):
    date: date_type
    time_slot: str
    slot_number: int
    booking_id: str | None = None
    name: str = ""
    phone: str | None = None
    assigned_owner_id: str | None = None


class MutationResponseSchema(BaseModel):
    event: EventSchema
    outcome: str | None = None  # only filled when the caller waited for the server


class BlockRequestSchema(BaseModel):
    date: date_type
    time_slot: str | None = None
    slot_number: int | None = None
    reason: str | None = None


class BlockedRangeSchema(BaseModel):
    id: str | None = None
    date: date_type
    time_slot: str | None = None
    slot_number: int | None = None
    reason: str

    @classmethod
    def from_entity(cls, block: BlockedRange) -> "BlockedRangeSchema":
        return cls.model_validate(blocked_range_to_wire(block))


class NotificationSchema(BaseModel):
    level: str
    message: str


class NotificationListSchema(BaseModel):
    notifications: list[NotificationSchema] = Field(default_factory=list)
