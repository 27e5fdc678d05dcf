from __future__ import annotations

import logging
from datetime import date
from typing import Any

import httpx

from bookingdesk.application.dto.blocked_range_payload import blocked_range_to_wire, parse_blocked_range
from bookingdesk.application.dto.booking_payload import parse_booking
from bookingdesk.application.exceptions import (
    AuthExpired,
    NetworkUnavailable,
    PermissionDenied,
    ServerError,
    ValidationError,
)
from bookingdesk.application.ports.booking_store import BookingStorePort
from bookingdesk.core.config import settings
from bookingdesk.domain.entities.blocked_range import BlockedRange
from bookingdesk.domain.entities.booking import Booking

_VALIDATION_STATUSES = {400, 404, 409, 422}


class HttpBookingStore(BookingStorePort):
    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        fetch_limit: int | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = (base_url or settings.BOOKING_API_BASE_URL or "").rstrip("/")
        self._token = token if token is not None else settings.BOOKING_API_TOKEN
        self._fetch_limit = fetch_limit or settings.FETCH_LIMIT
        self._logger = logging.getLogger(__name__)

        if not self._base_url:
            raise ValueError("BOOKING_API_BASE_URL is required for the HTTP booking store")

        self._client = client or httpx.AsyncClient(timeout=timeout or settings.HTTP_TIMEOUT_SECONDS)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        url = f"{self._base_url}{path}"
        try:
            resp = await self._client.request(method, url, params=params, json=json, headers=self._headers())
        except httpx.TransportError as e:
            self._logger.warning(
                "Booking API unreachable",
                extra={"reason": f"{method} {path}", "error": str(e)},
            )
            raise NetworkUnavailable(f"{method} {path} failed: {e}") from e

        if resp.status_code >= 400:
            self._raise_for_status(method, path, resp)

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise ServerError(f"{method} {path} returned a non-JSON body", status_code=resp.status_code) from e

    def _raise_for_status(self, method: str, path: str, resp: httpx.Response) -> None:
        try:
            body = resp.json()
            message = body.get("message") if isinstance(body, dict) else None
        except ValueError:
            message = None
        message = message or resp.text or resp.reason_phrase
        status = resp.status_code

        self._logger.error(
            "Booking API error",
            extra={"status": status, "reason": f"{method} {path}", "error": message},
        )
        if status == 401:
            raise AuthExpired(message)
        if status == 403:
            raise PermissionDenied(message)
        if status in _VALIDATION_STATUSES:
            raise ValidationError(message, user_message=f"Booking failed: {message}")
        raise ServerError(message, status_code=status, user_message=f"Server error: {message}")

    async def list_bookings(self, start: date, end: date) -> list[Booking]:
        params = {"start": start.isoformat(), "end": end.isoformat(), "limit": self._fetch_limit}
        data = await self._request("GET", "/api/leads/calendar", params=params)
        rows = data.get("leads", []) if isinstance(data, dict) else (data or [])

        bookings: list[Booking] = []
        for row in rows:
            if not isinstance(row, dict) or not row.get("id"):
                self._logger.warning("Skipping lead without id")
                continue
            if row.get("deleted_at"):
                continue
            try:
                bookings.append(parse_booking(row))
            except ValidationError as e:
                self._logger.warning("Skipping malformed lead", extra={"booking_id": row.get("id"), "error": str(e)})
        self._logger.info("Fetched bookings", extra={"reason": f"{start}..{end}", "status": len(bookings)})
        return bookings

    async def create_booking(self, data: dict[str, Any]) -> Booking:
        body = await self._request("POST", "/api/leads", json=data)
        return self._unwrap_booking(body, "POST /api/leads")

    async def update_booking(self, booking_id: str, data: dict[str, Any]) -> Booking:
        body = await self._request("PUT", f"/api/leads/{booking_id}", json=data)
        return self._unwrap_booking(body, f"PUT /api/leads/{booking_id}")

    def _unwrap_booking(self, body: Any, what: str) -> Booking:
        lead = body.get("lead", body) if isinstance(body, dict) else None
        if not isinstance(lead, dict) or not lead.get("id"):
            raise ServerError(f"{what} returned no booking")
        try:
            return parse_booking(lead)
        except ValidationError as e:
            raise ServerError(f"{what} returned a malformed booking: {e}") from e

    async def list_blocked_ranges(self, start: date, end: date) -> list[BlockedRange]:
        params = {"start_date": start.isoformat(), "end_date": end.isoformat()}
        data = await self._request("GET", "/api/blocked-slots", params=params)
        blocks: list[BlockedRange] = []
        for row in data or []:
            try:
                blocks.append(parse_blocked_range(row))
            except ValidationError as e:
                self._logger.warning("Skipping malformed blocked slot", extra={"error": str(e)})
        return blocks

    async def create_blocked_range(self, block: BlockedRange, created_by: str | None = None) -> BlockedRange:
        payload = blocked_range_to_wire(block)
        payload.pop("id", None)
        if created_by:
            payload["created_by"] = created_by
        body = await self._request("POST", "/api/blocked-slots", json=payload)
        try:
            return parse_blocked_range(body)
        except ValidationError as e:
            raise ServerError(f"POST /api/blocked-slots returned a malformed body: {e}") from e

    async def delete_blocked_range(self, range_id: str) -> None:
        await self._request("DELETE", f"/api/blocked-slots/{range_id}")

    async def close(self) -> None:
        await self._client.aclose()
