"""
Application endpoints.

Read an application and move it through the review pipeline.
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends, Path

from api.dependencies import get_gateway, require_recruiter, resolve_account
from api.schemas.common import ERROR_RESPONSES
from api.schemas.applications import ApplicationResponse, StatusChange, StatusChangeResult
from api.services.applications import Actor, StatusTransitionGateway
from core.security import AccountIdentity

router = APIRouter(responses=ERROR_RESPONSES)


@router.get(
    "/{application_id}",
    response_model=ApplicationResponse,
    summary="Get Application Details",
    description="Visible to recruiters of the owning company and to the applicant.",
)
async def get_application(
    application_id: int = Path(..., ge=1, description="Application ID"),
    identity: AccountIdentity = Depends(resolve_account),
    gateway: StatusTransitionGateway = Depends(get_gateway),
):
    return await gateway.get_application(application_id, identity)


@router.patch(
    "/{application_id}/status",
    response_model=StatusChangeResult,
    summary="Change Application Status",
    description="Move an application forward. OFFERED and REJECTED email the candidate.",
)
async def change_status(
    body: StatusChange,
    application_id: int = Path(..., ge=1, description="Application ID"),
    identity: AccountIdentity = Depends(require_recruiter),
    gateway: StatusTransitionGateway = Depends(get_gateway),
):
    result = await gateway.advance(
        application_id, body.status, Actor.from_identity(identity), reason=body.reason
    )
    return StatusChangeResult(**asdict(result))
