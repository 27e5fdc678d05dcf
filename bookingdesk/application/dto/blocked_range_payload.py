from __future__ import annotations

from datetime import date as date_type
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from bookingdesk.application.exceptions import ValidationError
from bookingdesk.application.utils.slot_grid import normalize_time
from bookingdesk.domain.entities.blocked_range import BlockedRange


class BlockedRangePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    date: date_type
    time_slot: str | None = None
    slot_number: int | None = None
    reason: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return None if value in (None, "") else str(value)

    @field_validator("date", mode="before")
    @classmethod
    def _date_only(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value[:10]
        return value

    @field_validator("time_slot", mode="before")
    @classmethod
    def _normalize_time(cls, value: Any) -> Any:
        if value in (None, ""):
            return None
        return normalize_time(str(value)) or str(value)

    @field_validator("slot_number", mode="before")
    @classmethod
    def _blank_slot(cls, value: Any) -> Any:
        # 0 and "" both mean "every slot" on older rows
        return None if value in (None, "", 0, "0") else value

    def to_entity(self) -> BlockedRange:
        return BlockedRange(
            date=self.date,
            time_slot=self.time_slot,
            slot_number=self.slot_number,
            id=self.id,
            reason=self.reason or "Unavailable",
        )


def parse_blocked_range(data: Any) -> BlockedRange:
    if not isinstance(data, dict):
        raise ValidationError("Blocked slot payload must be an object")
    try:
        return BlockedRangePayload.model_validate(data).to_entity()
    except PydanticValidationError as e:
        raise ValidationError(f"Malformed blocked slot payload: {e}") from e


def blocked_range_to_wire(block: BlockedRange) -> dict[str, Any]:
    return {
        "id": block.id,
        "date": block.date.isoformat(),
        "time_slot": block.time_slot,
        "slot_number": block.slot_number,
        "reason": block.reason,
    }
