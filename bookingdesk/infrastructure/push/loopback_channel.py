from __future__ import annotations

import logging

from bookingdesk.application.ports.push_channel import PushChannelPort, PushHandler, Unsubscribe
from bookingdesk.domain.entities.push_event import PushEvent


class LoopbackPushHub:
    """In-process relay: what one client emits reaches every other client."""

    def __init__(self) -> None:
        self._channels: list[LoopbackPushChannel] = []
        self.history: list[PushEvent] = []
        self._logger = logging.getLogger(__name__)

    def channel(self, client_id: str) -> "LoopbackPushChannel":
        channel = LoopbackPushChannel(self, client_id)
        self._channels.append(channel)
        return channel

    def detach(self, channel: "LoopbackPushChannel") -> None:
        if channel in self._channels:
            self._channels.remove(channel)

    async def publish(self, event: PushEvent, sender: "LoopbackPushChannel | None" = None) -> None:
        self.history.append(event)
        self._logger.debug("Loopback push relayed", extra={"event_type": event.kind.value})
        for channel in list(self._channels):
            if channel is sender:
                continue
            await channel.deliver(event)


class LoopbackPushChannel(PushChannelPort):
    def __init__(self, hub: LoopbackPushHub, client_id: str) -> None:
        self._hub = hub
        self.client_id = client_id
        self._handlers: list[PushHandler] = []
        self._logger = logging.getLogger(__name__)

    async def emit(self, event: PushEvent) -> None:
        if event.sender_id is None:
            event = PushEvent(kind=event.kind, payload=event.payload, raw_type=event.raw_type, sender_id=self.client_id)
        await self._hub.publish(event, sender=self)

    def subscribe(self, handler: PushHandler) -> Unsubscribe:
        self._handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unsubscribe

    async def deliver(self, event: PushEvent) -> None:
        for handler in list(self._handlers):
            try:
                await handler(event)
            except Exception:
                self._logger.exception("Push handler failed", extra={"event_type": event.kind.value})

    async def close(self) -> None:
        self._handlers.clear()
        self._hub.detach(self)
