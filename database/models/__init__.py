"""ORM models. Importing this package registers every table on Base.metadata."""

from database.models.accounts import Account, AccountRole
from database.models.jobs import Company, JobPosting
from database.models.candidates import CandidateProfile
from database.models.applications import (
    ActorKind,
    Application,
    ApplicationStatus,
    ApplicationStatusHistory,
)
from database.models.interviews import (
    FinalizeReason,
    InterviewSession,
    SessionKind,
    SessionState,
)

__all__ = [
    "Account",
    "AccountRole",
    "ActorKind",
    "Application",
    "ApplicationStatus",
    "ApplicationStatusHistory",
    "CandidateProfile",
    "Company",
    "FinalizeReason",
    "InterviewSession",
    "JobPosting",
    "SessionKind",
    "SessionState",
]
