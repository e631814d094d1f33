"""Application schemas."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from database.models.applications import ActorKind, ApplicationStatus


class StatusChange(BaseModel):
    """Recruiter request to move an application."""

    status: ApplicationStatus = Field(description="Target status")
    reason: Optional[str] = Field(None, max_length=2000, description="Why the status changed")


class StatusChangeResult(BaseModel):
    application_id: int
    from_status: ApplicationStatus
    to_status: ApplicationStatus
    changed: bool = Field(description="False when the application was already in the target status")
    notified: bool = Field(description="Whether the outcome email was handed to the dispatcher")


class StatusHistoryEntry(BaseModel):
    from_status: Optional[ApplicationStatus] = None
    to_status: ApplicationStatus
    actor_kind: ActorKind
    actor_account_id: Optional[int] = None
    reason: Optional[str] = None
    changed_at: Optional[datetime] = None


class JobSummary(BaseModel):
    id: int
    title: str
    company_id: int
    company_name: Optional[str] = None


class ApplicationResponse(BaseModel):
    id: int
    status: ApplicationStatus
    candidate_id: int
    job_posting_id: int
    interview_session_id: Optional[int] = None
    applied_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    job: Optional[JobSummary] = None
    history: list[StatusHistoryEntry] = Field(default_factory=list)
