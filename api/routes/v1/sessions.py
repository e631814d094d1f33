"""
Interview session endpoints.

Candidates open a session, stream call events into it and finalize it.
Every route checks that the caller owns the session.
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Path, status

from api.dependencies import get_orchestrator, require_candidate
from api.schemas.common import ERROR_RESPONSES
from api.schemas.sessions import (
    CallEventIn,
    CallIdBind,
    EventAccepted,
    SessionArtifactResponse,
    SessionCreate,
    SessionCreated,
    SessionResponse,
)
from api.services.call_events import parse_call_event
from api.services.sessions import SessionOrchestrator
from core.security import AccountIdentity

router = APIRouter(responses=ERROR_RESPONSES)


@router.post(
    "",
    response_model=SessionCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Start Interview Session",
    description="Start a practice interview, or apply to a job posting with an application interview.",
)
async def create_session(
    body: SessionCreate,
    identity: AccountIdentity = Depends(require_candidate),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    handle = await orchestrator.create_session(
        identity.account_id, body.kind, body.job_posting_id
    )
    return SessionCreated(**asdict(handle))


@router.get(
    "/{session_id}",
    response_model=SessionResponse,
    summary="Get Interview Session",
)
async def get_session(
    session_id: int = Path(..., ge=1, description="Session ID"),
    identity: AccountIdentity = Depends(require_candidate),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.get_session(session_id, account_id=identity.account_id)


@router.put(
    "/{session_id}/call-id",
    response_model=SessionResponse,
    summary="Bind Call Id",
    description="Record the id the call engine assigned to this session. Idempotent.",
)
async def bind_call_id(
    body: CallIdBind,
    session_id: int = Path(..., ge=1, description="Session ID"),
    identity: AccountIdentity = Depends(require_candidate),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.bind_external_call_id(
        session_id, body.external_call_id, account_id=identity.account_id
    )


@router.post(
    "/{session_id}/events",
    response_model=EventAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Ingest Call Event",
)
async def ingest_event(
    body: CallEventIn,
    session_id: int = Path(..., ge=1, description="Session ID"),
    identity: AccountIdentity = Depends(require_candidate),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    try:
        event = parse_call_event(body.as_payload())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = await orchestrator.ingest_event(session_id, event, account_id=identity.account_id)
    return EventAccepted(
        session_id=result.session_id,
        kind=result.kind.value,
        accepted=result.accepted,
        finalized=result.artifact is not None,
    )


@router.post(
    "/{session_id}/finalize",
    response_model=SessionArtifactResponse,
    summary="Finalize Interview Session",
    description="Score and persist the transcript. Repeating returns the stored result.",
)
async def finalize_session(
    session_id: int = Path(..., ge=1, description="Session ID"),
    identity: AccountIdentity = Depends(require_candidate),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    artifact = await orchestrator.finalize(session_id, account_id=identity.account_id)
    return SessionArtifactResponse(**asdict(artifact))
