from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PushEventKind(str, Enum):
    STATUS_CHANGED = "status_changed"
    BOOKING_CREATED = "booking_created"
    BOOKING_REMOVED = "booking_removed"
    MESSAGE_RECEIVED = "message_received"
    MESSAGES_READ = "messages_read"
    LEAD_CREATED = "lead_created"
    LEAD_DELETED = "lead_deleted"
    LEAD_ASSIGNED = "lead_assigned"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | None) -> "PushEventKind":
        # statusChanged, status_changed and STATUS_CHANGED all name the same event
        key = (value or "").strip().replace("_", "").replace("-", "").lower()
        return _KIND_BY_KEY.get(key, cls.OTHER)


_KIND_BY_KEY = {kind.value.replace("_", ""): kind for kind in PushEventKind}
# Legacy name for an inbound SMS
_KIND_BY_KEY["smsreceived"] = PushEventKind.MESSAGE_RECEIVED


@dataclass(frozen=True)
class PushEvent:
    kind: PushEventKind
    payload: dict[str, Any] = field(default_factory=dict)
    raw_type: str | None = None
    sender_id: str | None = None
