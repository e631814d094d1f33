"""
Call engine webhook.

Server-side event delivery, signed with HMAC-SHA256 over the raw body in
the ``x-call-engine-signature`` header. The session is resolved from the
call id, or from ``metadata.session_id`` before the call id is bound.
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from api.dependencies import get_orchestrator, get_settings_dep
from api.schemas.common import ERROR_RESPONSES
from api.schemas.sessions import EventAccepted
from api.services.call_events import parse_call_event
from api.services.sessions import SessionOrchestrator
from core.config import Settings
from core.exceptions import Unauthenticated
from core.security import verify_webhook_signature

logger = logging.getLogger(__name__)

router = APIRouter(responses=ERROR_RESPONSES)

SIGNATURE_HEADER = "x-call-engine-signature"


@router.post(
    "/call-engine",
    response_model=EventAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Call Engine Events",
)
async def call_engine_webhook(
    request: Request,
    settings: Settings = Depends(get_settings_dep),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    body = await request.body()
    secret = settings.call_engine_webhook_secret
    if not secret:
        logger.error("Call engine webhook received but CALL_ENGINE_WEBHOOK_SECRET is not set")
        raise Unauthenticated("Webhook signing is not configured")
    if not verify_webhook_signature(body, request.headers.get(SIGNATURE_HEADER), secret):
        raise Unauthenticated("Invalid webhook signature")

    try:
        payload = json.loads(body)
        if not isinstance(payload, dict):
            raise ValueError("Webhook body must be a JSON object")
        event = parse_call_event(payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Malformed call event: {e}")

    session_id = await orchestrator.resolve_session_id(event.call_id, event.session_id)
    result = await orchestrator.ingest_event(session_id, event)
    return EventAccepted(
        session_id=result.session_id,
        kind=result.kind.value,
        accepted=result.accepted,
        finalized=result.artifact is not None,
    )
