"""
Candidate profile endpoints.

The résumé upload pipeline extracts text elsewhere and delivers it here.
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_orchestrator, require_candidate
from api.schemas.common import ERROR_RESPONSES
from api.schemas.profiles import ProfileResponse, ResumeUpdate
from api.services.sessions import SessionOrchestrator
from core.security import AccountIdentity

router = APIRouter(responses=ERROR_RESPONSES)


@router.put(
    "/resume",
    response_model=ProfileResponse,
    summary="Store Résumé Text",
    description="Store extracted résumé text for the calling candidate.",
)
async def put_resume(
    body: ResumeUpdate,
    identity: AccountIdentity = Depends(require_candidate),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    profile = await orchestrator.record_resume(
        identity.account_id, body.resume_text, body.resume_document_url
    )
    return ProfileResponse(
        id=profile.id,
        account_id=profile.account_id,
        resume_length=len(profile.resume_text or ""),
        resume_document_url=profile.resume_document_url,
        last_resume_update=profile.last_resume_update,
    )
