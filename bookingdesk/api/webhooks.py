from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from bookingdesk.application.dto.push_event import PushEventDTO


router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/webhooks/push")
async def push_webhook(request: Request) -> Response:
    """Server-relayed push events for sessions that have no websocket of their own."""
    body = await request.body()
    try:
        payload = json.loads(body.decode("utf-8")) if body else {}
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.warning("Push webhook body is not JSON")
        return Response(status_code=400)

    try:
        event = PushEventDTO.model_validate(payload).to_entity()
    except PydanticValidationError as e:
        logger.warning("Push webhook payload rejected", extra={"error": str(e)})
        return Response(status_code=422)

    session = request.app.state.session
    action = await session.handle_push(event)
    logger.info("Push webhook handled", extra={"event_type": event.raw_type, "reason": action.value})
    return JSONResponse({"action": action.value})
