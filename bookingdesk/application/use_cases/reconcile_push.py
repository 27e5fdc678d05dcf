from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from bookingdesk.application.dto.booking_payload import parse_booking
from bookingdesk.application.exceptions import ValidationError
from bookingdesk.application.ports.event_cache import EventCachePort
from bookingdesk.application.use_cases.fetch_events import FetchEventsUseCase
from bookingdesk.application.utils.event_projection import build_calendar_event, rebuild_event
from bookingdesk.domain.entities.booking import HistoryEntry
from bookingdesk.domain.entities.push_event import PushEvent, PushEventKind


class ReconcileAction(str, Enum):
    UPSERTED = "upserted"
    REMOVED = "removed"
    MESSAGE_FLAGGED = "message_flagged"
    MESSAGES_READ = "messages_read"
    REFRESH_SCHEDULED = "refresh_scheduled"
    IGNORED = "ignored"


def _booking_id(payload: dict[str, Any]) -> str | None:
    for key in ("booking_id", "lead_id", "leadId", "id"):
        value = payload.get(key)
        if value not in (None, ""):
            return str(value)
    nested = payload.get("booking") or payload.get("lead")
    if isinstance(nested, dict) and nested.get("id"):
        return str(nested["id"])
    return None


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if value in (None, ""):
        return datetime.now(timezone.utc)
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class ReconcilePushUseCase:
    """Applies peer changes to the cache; anything it cannot apply precisely triggers a debounced refresh."""

    def __init__(self, cache: EventCachePort, fetcher: FetchEventsUseCase) -> None:
        self._cache = cache
        self._fetcher = fetcher
        self._logger = logging.getLogger(__name__)

    async def handle(self, event: PushEvent) -> ReconcileAction:
        extra = {"event_type": event.raw_type or event.kind.value}
        try:
            if event.kind is PushEventKind.STATUS_CHANGED:
                return self._upsert(event.payload)
            if event.kind is PushEventKind.BOOKING_REMOVED:
                return self._remove(event.payload)
            if event.kind is PushEventKind.MESSAGE_RECEIVED:
                return self._message_received(event.payload)
            if event.kind is PushEventKind.MESSAGES_READ:
                return self._messages_read(event.payload)
        except (ValidationError, ValueError) as e:
            self._logger.warning("Malformed push payload ignored", extra={**extra, "error": str(e)})
            return ReconcileAction.IGNORED

        self._fetcher.schedule_refresh()
        self._logger.info("Refresh scheduled by push", extra=extra)
        return ReconcileAction.REFRESH_SCHEDULED

    def _upsert(self, payload: dict[str, Any]) -> ReconcileAction:
        data = payload.get("booking") or payload.get("lead") or payload
        booking = parse_booking(data)
        existing = self._cache.get(booking.id)
        has_unread = existing.extended_props.has_unread_message if existing else False
        self._cache.apply(build_calendar_event(booking, has_unread_message=has_unread))
        self._logger.info(
            "Booking updated by peer",
            extra={"booking_id": booking.id, "status": booking.coarse_status.value},
        )
        return ReconcileAction.UPSERTED

    def _remove(self, payload: dict[str, Any]) -> ReconcileAction:
        booking_id = _booking_id(payload)
        if booking_id is None:
            raise ValidationError("booking_removed without a booking id")
        if not self._cache.remove(booking_id):
            return ReconcileAction.IGNORED
        self._logger.info("Booking removed by peer", extra={"booking_id": booking_id})
        return ReconcileAction.REMOVED

    def _message_received(self, payload: dict[str, Any]) -> ReconcileAction:
        booking_id = _booking_id(payload)
        if booking_id is None:
            raise ValidationError("message_received without a booking id")
        existing = self._cache.get(booking_id)
        if existing is None:
            return ReconcileAction.IGNORED

        content = str(payload.get("content") or payload.get("message") or payload.get("text") or "")
        timestamp = _parse_timestamp(payload.get("timestamp") or payload.get("created_at"))
        booking = existing.booking
        duplicate = any(
            entry.action == "SMS_RECEIVED"
            and entry.timestamp == timestamp
            and entry.details.get("content") == content
            for entry in booking.history
        )
        if not duplicate:
            entry = HistoryEntry("SMS_RECEIVED", timestamp, {"content": content, "direction": "received"})
            booking = replace(booking, history=booking.with_history(entry))
        self._cache.apply(rebuild_event(existing, booking, has_unread_message=True))
        self._logger.info("Message flagged on booking", extra={"booking_id": booking_id, "reason": "duplicate" if duplicate else "new"})
        return ReconcileAction.MESSAGE_FLAGGED

    def _messages_read(self, payload: dict[str, Any]) -> ReconcileAction:
        booking_id = _booking_id(payload)
        if booking_id is None:
            raise ValidationError("messages_read without a booking id")
        existing = self._cache.get(booking_id)
        if existing is None:
            return ReconcileAction.IGNORED
        if existing.extended_props.has_unread_message:
            self._cache.apply(rebuild_event(existing, has_unread_message=False))
        return ReconcileAction.MESSAGES_READ
