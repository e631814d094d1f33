"""Interview session schemas."""

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field, model_validator

from database.models.applications import ApplicationStatus
from database.models.interviews import FinalizeReason, SessionKind, SessionState


class SessionCreate(BaseModel):
    """Start a practice or application interview."""

    kind: SessionKind = Field(description="PRACTICE or APPLICATION")
    job_posting_id: Optional[int] = Field(None, ge=1, description="Required for APPLICATION")

    @model_validator(mode="after")
    def check_job_posting(self) -> "SessionCreate":
        if self.kind is SessionKind.APPLICATION and self.job_posting_id is None:
            raise ValueError("job_posting_id is required for APPLICATION sessions")
        if self.kind is SessionKind.PRACTICE and self.job_posting_id is not None:
            raise ValueError("job_posting_id is only allowed for APPLICATION sessions")
        return self


class SessionCreated(BaseModel):
    session_id: int
    kind: SessionKind
    local_call_ref: str = Field(description="Placeholder call reference until the engine binds one")
    application_id: Optional[int] = None
    application_status: Optional[ApplicationStatus] = None


class CallIdBind(BaseModel):
    external_call_id: str = Field(min_length=1, max_length=255)


class CallEventIn(BaseModel):
    """
    One call engine event.

    Canonical fields are declared; the engine's native message fields
    (``role``, ``transcript``, ``transcriptType``, ``call``) pass through.
    """

    model_config = {"extra": "allow"}

    type: str = Field(min_length=1, description="Event kind, e.g. transcript-turn or call-end")
    speaker: Optional[str] = None
    text: Optional[str] = None
    is_final: Optional[bool] = None
    call_id: Optional[str] = None
    error: Optional[Any] = None

    def as_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class EventAccepted(BaseModel):
    session_id: int
    kind: str
    accepted: bool
    finalized: bool = False


class TranscriptTurnOut(BaseModel):
    speaker: str
    text: str


class SessionResponse(BaseModel):
    id: int
    kind: SessionKind
    state: SessionState
    application_id: Optional[int] = None
    local_call_ref: str
    external_call_id: Optional[str] = None
    transcript: str
    transcript_turns: list[TranscriptTurnOut] = Field(default_factory=list)
    feedback: str
    score: int = Field(ge=0, le=100)
    finalize_reason: Optional[FinalizeReason] = None
    finalized_at: Optional[datetime] = None
    aborted_at: Optional[datetime] = None
    last_error: Optional[str] = None
    application_synced: bool
    created_at: Optional[datetime] = None


class SessionArtifactResponse(BaseModel):
    """Persisted outcome of a finalized session."""

    session_id: int
    transcript: str
    feedback: str
    score: int = Field(ge=0, le=100)
    external_call_id: Optional[str] = None
    local_call_ref: str
    finalize_reason: Optional[FinalizeReason] = None
    finalized_at: Optional[datetime] = None
    application_id: Optional[int] = None
    application_synced: bool
