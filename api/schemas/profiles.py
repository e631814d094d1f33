"""Candidate profile schemas."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator


class ResumeUpdate(BaseModel):
    """Extracted résumé delivered by the upload pipeline."""

    resume_text: str = Field(min_length=1, description="Plain text extracted from the résumé")
    resume_document_url: Optional[str] = Field(
        None, max_length=1000, description="Where the original document is stored"
    )

    @field_validator("resume_text", mode="before")
    @classmethod
    def strip_text(cls, v: str) -> str:
        """Strip surrounding whitespace."""
        if isinstance(v, str):
            return v.strip()
        return v


class ProfileResponse(BaseModel):
    """Candidate profile summary; résumé text itself is not echoed back."""

    id: int
    account_id: int
    resume_length: int = Field(description="Characters of stored résumé text")
    resume_document_url: Optional[str] = None
    last_resume_update: Optional[datetime] = None
