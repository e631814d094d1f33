"""
Persistence adapters for profiles, applications and interview sessions.

Each store wraps a caller-supplied AsyncSession and never commits on its
own; the service that opened the session owns the transaction, so writes
spanning several stores land atomically.
"""

import logging
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.utils.datetime import now
from database.models.accounts import Account
from database.models.applications import (
    ActorKind,
    Application,
    ApplicationStatus,
    ApplicationStatusHistory,
    open_pair_key,
)
from database.models.candidates import CandidateProfile
from database.models.interviews import FinalizeReason, InterviewSession, SessionState
from database.models.jobs import JobPosting

logger = logging.getLogger(__name__)


class ProfileStore:
    """Accounts, candidate profiles and the job postings they apply to."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_account(self, account_id: int) -> Optional[Account]:
        return await self.db.get(Account, account_id)

    async def get_by_account(self, account_id: int) -> Optional[CandidateProfile]:
        result = await self.db.execute(
            select(CandidateProfile).where(CandidateProfile.account_id == account_id)
        )
        return result.scalar_one_or_none()

    async def create(self, account_id: int) -> CandidateProfile:
        profile = CandidateProfile(account_id=account_id)
        self.db.add(profile)
        await self.db.flush()
        return profile

    async def update_resume(
        self,
        profile: CandidateProfile,
        resume_text: str,
        resume_document_url: Optional[str],
        at: Optional[datetime] = None,
    ) -> CandidateProfile:
        profile.resume_text = resume_text
        profile.resume_document_url = resume_document_url
        profile.last_resume_update = at or now()
        await self.db.flush()
        return profile

    async def get_job_posting(self, job_posting_id: int) -> Optional[JobPosting]:
        return await self.db.get(JobPosting, job_posting_id)


class ApplicationStore:
    """Applications and their status history."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, application_id: int) -> Optional[Application]:
        return await self.db.get(Application, application_id)

    async def get_with_context(self, application_id: int) -> Optional[Application]:
        """Load an application with the candidate account and posting company."""
        result = await self.db.execute(
            select(Application)
            .options(
                selectinload(Application.candidate).selectinload(CandidateProfile.account),
                selectinload(Application.job_posting).selectinload(JobPosting.company),
                selectinload(Application.status_history),
            )
            .where(Application.id == application_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_open(self, candidate_id: int, job_posting_id: int) -> Optional[Application]:
        """The non-terminal application for a (candidate, job posting) pair, if any."""
        result = await self.db.execute(
            select(Application).where(
                Application.open_pair_key == open_pair_key(candidate_id, job_posting_id)
            )
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        candidate_id: int,
        job_posting_id: int,
        status: ApplicationStatus = ApplicationStatus.APPLIED,
    ) -> Application:
        application = Application(
            candidate_id=candidate_id,
            job_posting_id=job_posting_id,
            status=status,
            open_pair_key=open_pair_key(candidate_id, job_posting_id),
        )
        self.db.add(application)
        await self.db.flush()
        self.db.add(
            ApplicationStatusHistory(
                application_id=application.id,
                from_status=None,
                to_status=status,
                actor_kind=ActorKind.SYSTEM,
                reason="application created",
            )
        )
        await self.db.flush()
        return application

    async def link_session(self, application: Application, session_id: int) -> None:
        application.interview_session_id = session_id
        await self.db.flush()

    async def compare_and_set_status(
        self,
        application_id: int,
        expected: ApplicationStatus,
        target: ApplicationStatus,
    ) -> bool:
        """
        Move ``application_id`` from ``expected`` to ``target``.

        Returns False when another writer changed the status first. The open
        pair guard is released when ``target`` is terminal.
        """
        values: dict[str, Any] = {"status": target, "updated_at": now()}
        if target.is_terminal():
            values["open_pair_key"] = None
        result = await self.db.execute(
            update(Application)
            .where(Application.id == application_id, Application.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def add_history(
        self,
        application_id: int,
        from_status: Optional[ApplicationStatus],
        to_status: ApplicationStatus,
        actor_kind: ActorKind,
        actor_account_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> ApplicationStatusHistory:
        entry = ApplicationStatusHistory(
            application_id=application_id,
            from_status=from_status,
            to_status=to_status,
            actor_kind=actor_kind,
            actor_account_id=actor_account_id,
            reason=reason,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry


class SessionStore:
    """Interview session records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(self, session: InterviewSession) -> InterviewSession:
        self.db.add(session)
        await self.db.flush()
        return session

    async def get(self, session_id: int) -> Optional[InterviewSession]:
        result = await self.db.execute(
            select(InterviewSession)
            .where(InterviewSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_call_id(self, call_id: str) -> Optional[InterviewSession]:
        """Resolve a session by its external call id or its local reference."""
        result = await self.db.execute(
            select(InterviewSession).where(
                or_(
                    InterviewSession.external_call_id == call_id,
                    InterviewSession.local_call_ref == call_id,
                )
            )
        )
        return result.scalars().first()

    async def bind_external_call_id(self, session_id: int, external_call_id: str) -> bool:
        """Set the external id if still unbound. Returns False if already bound."""
        result = await self.db.execute(
            update(InterviewSession)
            .where(
                InterviewSession.id == session_id,
                InterviewSession.external_call_id.is_(None),
            )
            .values(external_call_id=external_call_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def touch(self, session_id: int, at: Optional[datetime] = None) -> None:
        await self.db.execute(
            update(InterviewSession)
            .where(InterviewSession.id == session_id)
            .values(last_event_at=at or now())
            .execution_options(synchronize_session=False)
        )

    async def mark_aborted(self, session_id: int, error: str, at: Optional[datetime] = None) -> None:
        """Record a call-engine error; the session stays ACTIVE."""
        stamp = at or now()
        await self.db.execute(
            update(InterviewSession)
            .where(
                InterviewSession.id == session_id,
                InterviewSession.state == SessionState.ACTIVE,
            )
            .values(aborted_at=stamp, last_error=error, last_event_at=stamp)
            .execution_options(synchronize_session=False)
        )

    async def finalize_if_active(
        self,
        session_id: int,
        *,
        transcript: str,
        transcript_turns: list[dict[str, Any]],
        feedback: str,
        score: int,
        reason: FinalizeReason,
        application_synced: bool,
        at: Optional[datetime] = None,
    ) -> bool:
        """
        Compare-and-set write of the finalized artifact.

        Exactly one caller per session gets True; everyone else finds the
        row no longer ACTIVE.
        """
        stamp = at or now()
        result = await self.db.execute(
            update(InterviewSession)
            .where(
                InterviewSession.id == session_id,
                InterviewSession.state == SessionState.ACTIVE,
            )
            .values(
                state=SessionState.FINALIZED,
                transcript=transcript,
                transcript_turns=transcript_turns,
                feedback=feedback,
                score=score,
                finalize_reason=reason,
                finalized_at=stamp,
                last_event_at=stamp,
                application_synced=application_synced,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_application_synced(self, session_id: int) -> None:
        await self.db.execute(
            update(InterviewSession)
            .where(InterviewSession.id == session_id)
            .values(application_synced=True)
            .execution_options(synchronize_session=False)
        )

    async def list_stale_active(self, cutoff: datetime) -> Sequence[int]:
        """Ids of ACTIVE sessions with no event since ``cutoff``."""
        result = await self.db.execute(
            select(InterviewSession.id)
            .where(
                InterviewSession.state == SessionState.ACTIVE,
                InterviewSession.last_event_at < cutoff,
            )
            .order_by(InterviewSession.id)
        )
        return list(result.scalars().all())

    async def list_unsynced(self) -> Sequence[int]:
        """Finalized sessions whose application advance has not gone through."""
        result = await self.db.execute(
            select(InterviewSession.id)
            .where(
                InterviewSession.state == SessionState.FINALIZED,
                InterviewSession.application_synced.is_(False),
            )
            .order_by(InterviewSession.id)
        )
        return list(result.scalars().all())
