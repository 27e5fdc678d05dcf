"""
Tests for the REST booking store against an httpx mock transport.
"""

from __future__ import annotations

import asyncio
import json
from datetime import date

import httpx
import pytest

from bookingdesk.application.exceptions import (
    AuthExpired,
    NetworkUnavailable,
    PermissionDenied,
    ServerError,
    ValidationError,
)
from bookingdesk.domain.entities.blocked_range import BlockedRange
from bookingdesk.domain.entities.booking import CoarseStatus
from bookingdesk.infrastructure.booking_api.http_booking_store import HttpBookingStore

LEAD = {
    "id": 42,
    "name": "Jane",
    "date_booked": "2025-06-02T10:00:00.000Z",
    "time_booked": "10:00",
    "booking_slot": 1,
    "status": "Booked",
    "is_confirmed": 1,
    "booker": {"id": "owner-1", "name": "Bob"},
    "booking_history": '[{"action": "STATUS_CHANGED", "timestamp": "2025-06-01T08:00:00Z", "details": {}}]',
}


def _store(handler) -> HttpBookingStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpBookingStore(base_url="https://crm.test/", token="secret", fetch_limit=600, client=client)


def test_requires_base_url(monkeypatch):
    from bookingdesk.core.config import settings

    monkeypatch.setattr(settings, "BOOKING_API_BASE_URL", None)
    with pytest.raises(ValueError):
        HttpBookingStore()


def test_list_bookings_sends_window_and_parses():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(
            200,
            json={"leads": [LEAD, {"id": 43, "deleted_at": "2025-06-01"}, {"name": "no id"}, {"id": 44, "booking_slot": "x"}]},
        )

    async def main():
        store = _store(handler)
        bookings = await store.list_bookings(date(2025, 6, 1), date(2025, 6, 30))
        await store.close()
        return bookings

    bookings = asyncio.run(main())
    assert seen["url"].path == "/api/leads/calendar"
    assert seen["url"].params["start"] == "2025-06-01"
    assert seen["url"].params["limit"] == "600"
    assert seen["auth"] == "Bearer secret"

    assert [b.id for b in bookings] == ["42"]
    booking = bookings[0]
    assert booking.date_booked == date(2025, 6, 2)
    assert booking.coarse_status is CoarseStatus.BOOKED
    assert booking.is_confirmed is True
    assert booking.assigned_owner_id == "owner-1"
    assert booking.history[0].action == "STATUS_CHANGED"


@pytest.mark.parametrize(
    "status, error",
    [
        (401, AuthExpired),
        (403, PermissionDenied),
        (400, ValidationError),
        (409, ValidationError),
        (500, ServerError),
        (502, ServerError),
    ],
)
def test_error_statuses_are_categorized(status, error):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"message": "nope"})

    async def main():
        store = _store(handler)
        try:
            await store.update_booking("42", {"status": "Booked"})
        finally:
            await store.close()

    with pytest.raises(error) as exc:
        asyncio.run(main())
    if status >= 500:
        assert exc.value.status_code == status


def test_transport_error_is_network_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def main():
        store = _store(handler)
        try:
            await store.list_bookings(date(2025, 6, 1), date(2025, 6, 30))
        finally:
            await store.close()

    with pytest.raises(NetworkUnavailable):
        asyncio.run(main())


def test_non_json_body_is_server_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>")

    async def main():
        store = _store(handler)
        try:
            await store.create_booking({"name": "x"})
        finally:
            await store.close()

    with pytest.raises(ServerError):
        asyncio.run(main())


def test_create_and_update_unwrap_lead():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append((request.method, request.url.path, json.loads(request.content)))
        if request.method == "POST":
            return httpx.Response(201, json={"lead": LEAD})
        return httpx.Response(200, json=LEAD)

    async def main():
        store = _store(handler)
        created = await store.create_booking({"name": "Jane"})
        updated = await store.update_booking("42", {"status": "Booked"})
        await store.close()
        return created, updated

    created, updated = asyncio.run(main())
    assert created.id == updated.id == "42"
    assert bodies[0][:2] == ("POST", "/api/leads")
    assert bodies[1][:2] == ("PUT", "/api/leads/42")


def test_blocked_slots_roundtrip():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "GET":
            return httpx.Response(200, json=[{"id": 1, "date": "2025-06-02", "time_slot": "11:00", "slot_number": 0}])
        if request.method == "POST":
            body = json.loads(request.content)
            return httpx.Response(201, json={**body, "id": 7})
        return httpx.Response(204)

    async def main():
        store = _store(handler)
        listed = await store.list_blocked_ranges(date(2025, 6, 1), date(2025, 6, 30))
        created = await store.create_blocked_range(BlockedRange(date=date(2025, 6, 3)), created_by="admin-1")
        await store.delete_blocked_range("7")
        await store.close()
        return listed, created

    listed, created = asyncio.run(main())
    assert listed[0].slot_number is None
    assert listed[0].time_slot == "11:00"
    assert created.id == "7"
    assert json.loads(requests[1].content)["created_by"] == "admin-1"
    assert requests[0].url.params["start_date"] == "2025-06-01"
    assert requests[2].method == "DELETE"
