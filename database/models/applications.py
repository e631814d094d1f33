"""
Application Models

A candidate's pursuit of one job posting, its status in the review pipeline
and the history of every status change.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.utils.datetime import now
from database.engine import Base, IdType

if TYPE_CHECKING:
    from database.models.candidates import CandidateProfile
    from database.models.jobs import JobPosting


# ==================== Application Enums ===================== #
class ApplicationStatus(str, PyEnum):
    """Review pipeline statuses, in pipeline order."""

    APPLIED = "APPLIED"
    INTERVIEW_SCHEDULED = "INTERVIEW_SCHEDULED"
    AI_SCREENING_COMPLETE = "AI_SCREENING_COMPLETE"
    REVIEWED_BY_RECRUITER = "REVIEWED_BY_RECRUITER"
    OFFERED = "OFFERED"
    REJECTED = "REJECTED"

    def is_terminal(self) -> bool:
        return self in APPLICATION_STATUS_TERMINALS

    def can_transition_to(self, new: "ApplicationStatus") -> bool:
        return new in APPLICATION_STATUS_TRANSITIONS.get(self, frozenset())


class ActorKind(str, PyEnum):
    """Who requested a status change."""

    SYSTEM = "SYSTEM"
    RECRUITER = "RECRUITER"


# Helpers
APPLICATION_STATUS_TERMINALS = frozenset({
    ApplicationStatus.OFFERED,
    ApplicationStatus.REJECTED,
})

# Forward-only; skipping ahead is allowed, moving back never is
APPLICATION_STATUS_TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    ApplicationStatus.APPLIED: frozenset({
        ApplicationStatus.INTERVIEW_SCHEDULED,
        ApplicationStatus.AI_SCREENING_COMPLETE,
        ApplicationStatus.REJECTED,
    }),
    ApplicationStatus.INTERVIEW_SCHEDULED: frozenset({
        ApplicationStatus.AI_SCREENING_COMPLETE,
        ApplicationStatus.REJECTED,
    }),
    ApplicationStatus.AI_SCREENING_COMPLETE: frozenset({
        ApplicationStatus.REVIEWED_BY_RECRUITER,
        ApplicationStatus.OFFERED,
        ApplicationStatus.REJECTED,
    }),
    ApplicationStatus.REVIEWED_BY_RECRUITER: frozenset({
        ApplicationStatus.OFFERED,
        ApplicationStatus.REJECTED,
    }),
    ApplicationStatus.OFFERED: frozenset(),
    ApplicationStatus.REJECTED: frozenset(),
}

# Transitions each kind of actor may request
SYSTEM_TARGETS = frozenset({
    ApplicationStatus.INTERVIEW_SCHEDULED,
    ApplicationStatus.AI_SCREENING_COMPLETE,
})
RECRUITER_TARGETS = frozenset({
    ApplicationStatus.REVIEWED_BY_RECRUITER,
    ApplicationStatus.OFFERED,
    ApplicationStatus.REJECTED,
})


def open_pair_key(candidate_id: int, job_posting_id: int) -> str:
    """Unique guard value held while an application is non-terminal."""
    return f"{candidate_id}:{job_posting_id}"


# ==================== Application Model ===================== #
class Application(Base):
    """
    One candidate applying to one job posting.

    ``open_pair_key`` is set while the application is non-terminal and
    cleared once it reaches OFFERED or REJECTED; its unique constraint keeps
    at most one open application per (candidate, job posting) pair.
    """

    __tablename__ = "applications"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    candidate_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("candidate_profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    job_posting_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("job_postings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[ApplicationStatus] = mapped_column(
        SQLEnum(ApplicationStatus, native_enum=False, length=50),
        nullable=False,
        default=ApplicationStatus.APPLIED,
        index=True,
    )
    open_pair_key: Mapped[str | None] = mapped_column(String(64), unique=True)
    # Weak back-reference; the session row owns the foreign key
    interview_session_id: Mapped[int | None] = mapped_column(IdType, index=True)

    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now, onupdate=now
    )

    candidate: Mapped["CandidateProfile"] = relationship(
        "CandidateProfile", back_populates="applications"
    )
    job_posting: Mapped["JobPosting"] = relationship(
        "JobPosting", back_populates="applications"
    )
    status_history: Mapped[list["ApplicationStatusHistory"]] = relationship(
        "ApplicationStatusHistory",
        back_populates="application",
        cascade="all, delete-orphan",
        order_by="ApplicationStatusHistory.id",
    )


class ApplicationStatusHistory(Base):
    """
    History of status changes for applications.
    """

    __tablename__ = "application_status_history"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    application_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_status: Mapped[ApplicationStatus | None] = mapped_column(
        SQLEnum(ApplicationStatus, native_enum=False, length=50)
    )
    to_status: Mapped[ApplicationStatus] = mapped_column(
        SQLEnum(ApplicationStatus, native_enum=False, length=50), nullable=False
    )
    actor_kind: Mapped[ActorKind] = mapped_column(
        SQLEnum(ActorKind, native_enum=False, length=20), nullable=False
    )
    actor_account_id: Mapped[int | None] = mapped_column(IdType)
    reason: Mapped[str | None] = mapped_column(Text)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )

    application: Mapped["Application"] = relationship(
        "Application", back_populates="status_history"
    )
