"""
Interview Session Model

One live or completed AI voice interview. Transcript, feedback and score are
written once, when the session is finalized.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.utils.datetime import now
from database.engine import Base, IdType

if TYPE_CHECKING:
    from database.models.applications import Application
    from database.models.candidates import CandidateProfile


class SessionKind(str, PyEnum):
    PRACTICE = "PRACTICE"
    APPLICATION = "APPLICATION"


class SessionState(str, PyEnum):
    ACTIVE = "ACTIVE"
    FINALIZED = "FINALIZED"


class FinalizeReason(str, PyEnum):
    CALL_ENDED = "call_ended"
    TIMEOUT = "timeout"
    MANUAL = "manual"


class InterviewSession(Base):
    """
    Interview session record.

    Call identity is two-phase: ``local_call_ref`` is generated at creation
    and never changes; ``external_call_id`` stays NULL until the call engine
    assigns its own id, and is bound at most once.
    """

    __tablename__ = "interview_sessions"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    kind: Mapped[SessionKind] = mapped_column(
        SQLEnum(SessionKind, native_enum=False, length=20), nullable=False
    )
    state: Mapped[SessionState] = mapped_column(
        SQLEnum(SessionState, native_enum=False, length=20),
        nullable=False,
        default=SessionState.ACTIVE,
        index=True,
    )
    candidate_profile_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("candidate_profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    application_id: Mapped[int | None] = mapped_column(
        IdType, ForeignKey("applications.id", ondelete="SET NULL"), unique=True
    )

    local_call_ref: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    external_call_id: Mapped[str | None] = mapped_column(String(255), unique=True)

    transcript: Mapped[str] = mapped_column(Text, nullable=False, default="")
    transcript_turns: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    feedback: Mapped[str] = mapped_column(Text, nullable=False, default="")
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    finalize_reason: Mapped[FinalizeReason | None] = mapped_column(
        SQLEnum(FinalizeReason, native_enum=False, length=20)
    )
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    # False while a linked application still awaits AI_SCREENING_COMPLETE
    application_synced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    last_event_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, index=True
    )
    aborted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_error: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )

    candidate: Mapped["CandidateProfile"] = relationship(
        "CandidateProfile", back_populates="interview_sessions"
    )
    application: Mapped["Application | None"] = relationship(
        "Application", foreign_keys=[application_id]
    )

    @property
    def is_finalized(self) -> bool:
        return self.state == SessionState.FINALIZED

    @property
    def call_id(self) -> str:
        """Best known call reference: the engine's id once bound."""
        return self.external_call_id or self.local_call_ref
