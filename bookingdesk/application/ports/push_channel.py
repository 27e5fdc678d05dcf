from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from bookingdesk.domain.entities.push_event import PushEvent

PushHandler = Callable[[PushEvent], Awaitable[None]]
Unsubscribe = Callable[[], None]


class PushChannelPort(ABC):
    @abstractmethod
    async def emit(self, event: PushEvent) -> None:
        """Send an event to peer clients through the server relay."""
        raise NotImplementedError

    @abstractmethod
    def subscribe(self, handler: PushHandler) -> Unsubscribe:
        """Register a handler for inbound events. Returns a callable that removes it."""
        raise NotImplementedError

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None
