from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from bookingdesk.domain.entities.push_event import PushEvent, PushEventKind


class PushEventDTO(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    sender_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _fold_legacy_shape(cls, data: Any) -> Any:
        # Legacy emitters put the fields next to "type" instead of under "payload"
        if isinstance(data, dict) and "payload" not in data:
            rest = {k: v for k, v in data.items() if k not in {"type", "sender_id"}}
            return {"type": data.get("type"), "sender_id": data.get("sender_id"), "payload": rest}
        return data

    def to_entity(self) -> PushEvent:
        return PushEvent(
            kind=PushEventKind.parse(self.type),
            payload=dict(self.payload),
            raw_type=self.type,
            sender_id=self.sender_id,
        )

    @classmethod
    def from_entity(cls, event: PushEvent) -> "PushEventDTO":
        return cls(type=event.raw_type or event.kind.value, payload=dict(event.payload), sender_id=event.sender_id)
