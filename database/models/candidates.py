"""
Candidate Profile Model

One profile per candidate account. Résumé text is produced by the external
upload/extraction pipeline; the orchestrator only gates on its length.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.utils.datetime import now
from database.engine import Base, IdType

if TYPE_CHECKING:
    from database.models.accounts import Account
    from database.models.applications import Application
    from database.models.interviews import InterviewSession


class CandidateProfile(Base):
    __tablename__ = "candidate_profiles"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    resume_text: Mapped[str | None] = mapped_column(Text)
    resume_document_url: Mapped[str | None] = mapped_column(String(1000))
    last_resume_update: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )

    account: Mapped["Account"] = relationship("Account", back_populates="candidate_profile")
    applications: Mapped[list["Application"]] = relationship(
        "Application", back_populates="candidate"
    )
    interview_sessions: Mapped[list["InterviewSession"]] = relationship(
        "InterviewSession", back_populates="candidate"
    )

    def has_usable_resume(self, min_length: int) -> bool:
        return bool(self.resume_text) and len(self.resume_text.strip()) >= min_length
