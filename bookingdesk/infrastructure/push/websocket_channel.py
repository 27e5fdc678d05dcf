from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any

import websockets
from pydantic import ValidationError as PydanticValidationError
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from bookingdesk.application.dto.push_event import PushEventDTO
from bookingdesk.application.exceptions import NetworkUnavailable
from bookingdesk.application.ports.push_channel import PushChannelPort, PushHandler, Unsubscribe
from bookingdesk.domain.entities.push_event import PushEvent

# websockets 10-12 call it extra_headers, 13+ additional_headers
_ws_connect_params = inspect.signature(websockets.connect).parameters
WS_HEADERS_PARAM = "additional_headers" if "additional_headers" in _ws_connect_params else "extra_headers"


class WebSocketPushChannel(PushChannelPort):
    """
    Push channel over a plain JSON websocket. The server relays every
    `{"type", "payload"}` frame to the other connected clients.

    A connection dropped by the server is re-established with exponential
    backoff, up to `max_reconnects` attempts.
    """

    def __init__(
        self,
        url: str,
        token: str | None = None,
        client_id: str | None = None,
        *,
        max_reconnects: int = 5,
        reconnect_delay: float = 1.0,
    ) -> None:
        self._url = url
        self._token = token
        self._client_id = client_id
        self._max_reconnects = max_reconnects
        self._reconnect_delay = reconnect_delay
        self._ws: Any = None
        self._handlers: list[PushHandler] = []
        self._receive_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._closing = False
        self._logger = logging.getLogger(__name__)

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._closing

    async def connect(self) -> None:
        if self._ws is not None:
            return
        connect_kwargs: dict[str, Any] = {"ping_interval": 20, "ping_timeout": 10}
        if self._token:
            connect_kwargs[WS_HEADERS_PARAM] = {"Authorization": f"Bearer {self._token}"}
        try:
            self._ws = await websockets.connect(self._url, **connect_kwargs)
        except (OSError, InvalidHandshake) as e:
            self._logger.error("Push channel connect failed", extra={"error": str(e)})
            raise NetworkUnavailable(f"Push channel unreachable: {e}") from e
        self._closing = False
        self._receive_task = asyncio.create_task(self._receive_loop(self._ws), name="push-receive")
        self._logger.info("Push channel connected", extra={"reason": self._url})

    async def emit(self, event: PushEvent) -> None:
        if self._ws is None:
            self._logger.warning("Push emit dropped, not connected", extra={"event_type": event.kind.value})
            return
        dto = PushEventDTO.from_entity(event)
        if dto.sender_id is None:
            dto.sender_id = self._client_id
        try:
            await self._ws.send(dto.model_dump_json())
        except ConnectionClosed:
            self._logger.warning("Push channel closed while sending", extra={"event_type": event.kind.value})
            self._ws = None

    def subscribe(self, handler: PushHandler) -> Unsubscribe:
        self._handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unsubscribe

    async def _receive_loop(self, ws: Any) -> None:
        try:
            async for message in ws:
                await self._dispatch_raw(message)
        except ConnectionClosed as e:
            if not self._closing:
                self._logger.warning("Push channel connection closed", extra={"error": str(e)})
        finally:
            if self._ws is ws:
                self._ws = None
            if not self._closing:
                self._connection_lost()

    def _connection_lost(self) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnect(), name="push-reconnect")

    async def _reconnect(self) -> None:
        for attempt in range(1, self._max_reconnects + 1):
            await asyncio.sleep(self._reconnect_delay * 2 ** (attempt - 1))
            if self._closing:
                return
            try:
                await self.connect()
            except NetworkUnavailable:
                continue
            self._logger.info("Push channel reconnected", extra={"reason": f"attempt {attempt}"})
            return
        self._logger.error(
            "Push channel gave up reconnecting, live updates stopped",
            extra={"reason": f"{self._max_reconnects} attempts"},
        )

    async def _dispatch_raw(self, message: str | bytes) -> None:
        try:
            data = json.loads(message)
            event = PushEventDTO.model_validate(data).to_entity()
        except (ValueError, PydanticValidationError) as e:
            # ValueError covers undecodable bytes as well as bad JSON
            self._logger.warning("Invalid push frame ignored", extra={"error": str(e)})
            return
        if self._client_id and event.sender_id == self._client_id:
            return
        for handler in list(self._handlers):
            try:
                await handler(event)
            except Exception:
                self._logger.exception("Push handler failed", extra={"event_type": event.kind.value})

    async def close(self) -> None:
        self._closing = True
        ws, self._ws = self._ws, None
        for task in (self._reconnect_task, self._receive_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        if ws is not None:
            await ws.close()
        self._handlers.clear()
