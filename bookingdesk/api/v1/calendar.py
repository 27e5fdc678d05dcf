from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from bookingdesk.api.v1.schemas import (
    BlockedRangeSchema,
    BlockRequestSchema,
    BookingDraftSchema,
    EventListSchema,
    EventSchema,
    FetchResponseSchema,
    MutationResponseSchema,
    NotificationListSchema,
    NotificationSchema,
    SlotListSchema,
    SlotSchema,
    StatusChangeRequestSchema,
    VisibleRangeSchema,
)
from bookingdesk.application.exceptions import (
    AuthExpired,
    BookingError,
    NetworkUnavailable,
    PermissionDenied,
    ServerError,
    ValidationError,
)
from bookingdesk.application.session import CalendarSession
from bookingdesk.application.use_cases.change_status import MutationTicket
from bookingdesk.application.use_cases.create_booking import BookingDraft
from bookingdesk.application.use_cases.fetch_events import FetchResult
from bookingdesk.application.utils.status_transitions import ReviewSlot

router = APIRouter()


def get_session(request: Request) -> CalendarSession:
    return request.app.state.session


def to_http_error(error: BookingError) -> HTTPException:
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail=error.user_message)
    if isinstance(error, PermissionDenied):
        return HTTPException(status_code=403, detail=error.user_message)
    if isinstance(error, AuthExpired):
        return HTTPException(status_code=401, detail=error.user_message)
    if isinstance(error, NetworkUnavailable):
        return HTTPException(status_code=503, detail=error.user_message)
    if isinstance(error, ServerError):
        return HTTPException(status_code=502, detail=error.user_message)
    return HTTPException(status_code=500, detail=error.user_message)


def _fetch_response(session: CalendarSession, result: FetchResult) -> FetchResponseSchema:
    return FetchResponseSchema(
        performed=result.performed,
        reason=result.reason,
        count=result.count,
        range_key=session.fetcher.visible_key,
    )


async def _mutation_response(ticket: MutationTicket, wait: bool) -> MutationResponseSchema:
    if not wait:
        return MutationResponseSchema(event=EventSchema.from_event(ticket.event))
    outcome = await ticket.wait()
    return MutationResponseSchema(event=EventSchema.from_event(ticket.event), outcome=outcome.value)


@router.get("/events", response_model=EventListSchema)
def list_events(
    include_hidden: bool = False,
    session: CalendarSession = Depends(get_session),
):
    events = session.current_events(include_hidden=include_hidden)
    return EventListSchema(events=[EventSchema.from_event(e) for e in events])


@router.post("/fetch", response_model=FetchResponseSchema)
async def fetch_events(
    force: bool = False,
    session: CalendarSession = Depends(get_session),
):
    result = await session.request_fetch(force)
    return _fetch_response(session, result)


@router.put("/range", response_model=FetchResponseSchema)
async def set_visible_range(
    req: VisibleRangeSchema,
    session: CalendarSession = Depends(get_session),
):
    try:
        result = await session.set_visible_range(req.start, req.end)
    except BookingError as e:
        raise to_http_error(e)
    return _fetch_response(session, result)


@router.get("/slots", response_model=SlotListSchema)
def list_available_slots(
    day: date,
    exclude_id: str | None = None,
    session: CalendarSession = Depends(get_session),
):
    slots = session.available_slots(day, exclude_id=exclude_id)
    return SlotListSchema(day=day, slots=[SlotSchema(time_slot=t, slot_number=s) for t, s in slots])


@router.post("/bookings/{booking_id}/status", response_model=MutationResponseSchema)
async def change_status(
    booking_id: str,
    req: StatusChangeRequestSchema,
    wait: bool = Query(False, description="Wait for the server to acknowledge"),
    session: CalendarSession = Depends(get_session),
):
    review = None
    if req.review_date and req.review_time and req.review_slot:
        review = ReviewSlot(date=req.review_date, time_slot=req.review_time, slot_number=req.review_slot)
    try:
        ticket = await session.apply_status_change(booking_id, req.status, review)
    except BookingError as e:
        raise to_http_error(e)
    return await _mutation_response(ticket, wait)


@router.post("/bookings", response_model=MutationResponseSchema)
async def create_or_reschedule_booking(
    req: BookingDraftSchema,
    wait: bool = Query(False, description="Wait for the server to acknowledge"),
    session: CalendarSession = Depends(get_session),
):
    draft = BookingDraft(**req.model_dump())
    try:
        ticket = await session.create_or_reschedule_booking(draft)
    except BookingError as e:
        raise to_http_error(e)
    return await _mutation_response(ticket, wait)


@router.post("/bookings/retry-pending", response_model=EventListSchema)
def retry_pending_bookings(session: CalendarSession = Depends(get_session)):
    tickets = session.retry_pending_bookings()
    return EventListSchema(events=[EventSchema.from_event(t.event) for t in tickets])


@router.get("/blocked-slots", response_model=list[BlockedRangeSchema])
def list_blocked_slots(session: CalendarSession = Depends(get_session)):
    return [BlockedRangeSchema.from_entity(b) for b in session.blocked_ranges()]


@router.post("/blocked-slots", response_model=BlockedRangeSchema, status_code=201)
async def block_slot(
    req: BlockRequestSchema,
    session: CalendarSession = Depends(get_session),
):
    try:
        block = await session.block_slot(req.date, req.time_slot, req.slot_number, req.reason)
    except BookingError as e:
        raise to_http_error(e)
    return BlockedRangeSchema.from_entity(block)


@router.delete("/blocked-slots/{range_id}", status_code=204)
async def unblock_slot(
    range_id: str,
    session: CalendarSession = Depends(get_session),
) -> Response:
    try:
        await session.unblock_slot(range_id)
    except BookingError as e:
        raise to_http_error(e)
    return Response(status_code=204)


@router.get("/notifications", response_model=NotificationListSchema)
def list_notifications(session: CalendarSession = Depends(get_session)):
    messages = getattr(session.notifier, "messages", [])
    return NotificationListSchema(notifications=[NotificationSchema(**m) for m in messages])
