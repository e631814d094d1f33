"""
Session Orchestrator.

Creates interview sessions (and, for application interviews, the linked
application), consumes call engine events, and finalizes each session
exactly once: transcript, feedback and score are persisted, then the linked
application is advanced to AI_SCREENING_COMPLETE.

Concurrency model:
    - every mutation of one session runs under that session's asyncio lock,
      so buffer appends keep arrival order and finalize never interleaves
      with ingestion;
    - application creation for one (candidate, job posting) pair runs under
      a pair lock, backed by the ``open_pair_key`` unique constraint across
      processes;
    - the finalize write is a compare-and-set on ``state = ACTIVE``.

Partial failures: the transcript is committed before the application is
advanced. If the advance fails the session keeps ``application_synced =
False`` and the reaper retries it.
"""

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.exceptions import Conflict, NotFound, PreconditionFailed, Unauthorized
from core.utils.datetime import isoformat, minutes_before, now
from core.utils.locks import KeyedLocks
from database.models.accounts import AccountRole
from database.models.applications import ApplicationStatus
from database.models.candidates import CandidateProfile
from database.models.interviews import (
    FinalizeReason,
    InterviewSession,
    SessionKind,
)
from database.stores import ApplicationStore, ProfileStore, SessionStore
from api.services.applications import Actor, StatusTransitionGateway
from api.services.call_events import CallEvent, CallEventKind, parse_call_event
from api.services.scoring import render_transcript, score_transcript
from api.services.transcripts import TranscriptBuffer

logger = logging.getLogger(__name__)

INITIAL_APPLICATION_STATUS = ApplicationStatus.INTERVIEW_SCHEDULED


def new_local_call_ref(kind: SessionKind) -> str:
    """Placeholder call reference used until the call engine assigns one."""
    prefix = "pending" if kind is SessionKind.APPLICATION else "temp"
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


@dataclass(frozen=True)
class SessionHandle:
    session_id: int
    kind: SessionKind
    local_call_ref: str
    application_id: Optional[int] = None
    application_status: Optional[ApplicationStatus] = None


@dataclass(frozen=True)
class SessionArtifact:
    """The persisted outcome of a finalized session."""

    session_id: int
    transcript: str
    feedback: str
    score: int
    external_call_id: Optional[str]
    local_call_ref: str
    finalize_reason: Optional[FinalizeReason]
    finalized_at: Optional[datetime]
    application_id: Optional[int]
    application_synced: bool

    @classmethod
    def from_session(cls, session: InterviewSession) -> "SessionArtifact":
        return cls(
            session_id=session.id,
            transcript=session.transcript,
            feedback=session.feedback,
            score=session.score,
            external_call_id=session.external_call_id,
            local_call_ref=session.local_call_ref,
            finalize_reason=session.finalize_reason,
            finalized_at=session.finalized_at,
            application_id=session.application_id,
            application_synced=session.application_synced,
        )


@dataclass(frozen=True)
class IngestResult:
    session_id: int
    kind: CallEventKind
    accepted: bool
    artifact: Optional[SessionArtifact] = None


@dataclass
class ReapReport:
    finalized: List[int] = field(default_factory=list)
    resynced: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)


def serialize_session(session: InterviewSession) -> Dict[str, Any]:
    return {
        "id": session.id,
        "kind": session.kind.value,
        "state": session.state.value,
        "application_id": session.application_id,
        "local_call_ref": session.local_call_ref,
        "external_call_id": session.external_call_id,
        "transcript": session.transcript,
        "transcript_turns": list(session.transcript_turns or []),
        "feedback": session.feedback,
        "score": session.score,
        "finalize_reason": session.finalize_reason.value if session.finalize_reason else None,
        "finalized_at": isoformat(session.finalized_at),
        "aborted_at": isoformat(session.aborted_at),
        "last_error": session.last_error,
        "application_synced": session.application_synced,
        "created_at": isoformat(session.created_at),
    }


class SessionOrchestrator:
    """Drives interview sessions from creation to finalization."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: StatusTransitionGateway,
        buffer: TranscriptBuffer,
        min_resume_length: int = 100,
        session_timeout_minutes: int = 30,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.buffer = buffer
        self.min_resume_length = min_resume_length
        self.session_timeout_minutes = session_timeout_minutes
        self._session_locks = KeyedLocks()
        self._pair_locks = KeyedLocks()

    # ------------------------------------------------------------------ #
    # Profiles
    # ------------------------------------------------------------------ #
    async def ensure_profile(self, account_id: int) -> CandidateProfile:
        """
        Return the candidate profile for ``account_id``, creating it if absent.

        Raises:
            NotFound: unknown account
            Unauthorized: the account is not a candidate
        """
        async with self.session_factory() as db:
            store = ProfileStore(db)
            account = await store.get_account(account_id)
            if account is None:
                raise NotFound(f"Account {account_id} not found")
            if account.role is not AccountRole.CANDIDATE:
                raise Unauthorized("Only candidate accounts have a candidate profile")

            profile = await store.get_by_account(account_id)
            if profile is not None:
                return profile

            try:
                profile = await store.create(account_id)
                await db.commit()
                logger.info(f"Created candidate profile {profile.id} for account {account_id}")
                return profile
            except IntegrityError:
                await db.rollback()

        # Lost a create race; the other writer's row is there now
        async with self.session_factory() as db:
            profile = await ProfileStore(db).get_by_account(account_id)
            if profile is None:
                raise Conflict("Could not create candidate profile, please retry")
            return profile

    async def record_resume(
        self,
        account_id: int,
        resume_text: str,
        resume_document_url: Optional[str] = None,
    ) -> CandidateProfile:
        """Store extracted résumé text for a candidate."""
        if len((resume_text or "").strip()) < self.min_resume_length:
            raise PreconditionFailed(
                f"Résumé text must be at least {self.min_resume_length} characters"
            )

        profile = await self.ensure_profile(account_id)
        async with self.session_factory() as db:
            async with db.begin():
                store = ProfileStore(db)
                profile = await store.get_by_account(account_id)
                await store.update_resume(profile, resume_text.strip(), resume_document_url)

        logger.info(f"Résumé updated for candidate profile {profile.id}")
        return profile

    # ------------------------------------------------------------------ #
    # Session lifecycle
    # ------------------------------------------------------------------ #
    async def create_session(
        self,
        account_id: int,
        kind: SessionKind,
        job_posting_id: Optional[int] = None,
    ) -> SessionHandle:
        """
        Start a practice or application interview.

        Raises:
            PreconditionFailed: no usable résumé, missing/extra job posting,
                or the job posting is inactive
            NotFound: unknown job posting
            Conflict: an open application already exists for the pair
        """
        if kind is SessionKind.APPLICATION and job_posting_id is None:
            raise PreconditionFailed("A job posting is required for an application interview")
        if kind is SessionKind.PRACTICE and job_posting_id is not None:
            raise PreconditionFailed("Practice interviews are not linked to a job posting")

        profile = await self.ensure_profile(account_id)
        if not profile.has_usable_resume(self.min_resume_length):
            raise PreconditionFailed(
                "Résumé required: upload a résumé before starting an interview"
            )

        if kind is SessionKind.PRACTICE:
            return await self._create_practice_session(profile)

        async with self._pair_locks.hold((profile.id, job_posting_id)):
            try:
                return await self._create_application_session(profile, job_posting_id)
            except IntegrityError as e:
                logger.warning(
                    f"Duplicate application blocked by constraint for profile {profile.id}, "
                    f"job {job_posting_id}: {type(e).__name__}"
                )
                raise Conflict("You have already applied to this position") from e

    async def _create_practice_session(self, profile: CandidateProfile) -> SessionHandle:
        async with self.session_factory() as db:
            async with db.begin():
                session = await SessionStore(db).add(
                    InterviewSession(
                        kind=SessionKind.PRACTICE,
                        candidate_profile_id=profile.id,
                        local_call_ref=new_local_call_ref(SessionKind.PRACTICE),
                    )
                )

        logger.info(f"Practice session {session.id} created", extra={"session_id": session.id})
        return SessionHandle(session.id, SessionKind.PRACTICE, session.local_call_ref)

    async def _create_application_session(
        self, profile: CandidateProfile, job_posting_id: int
    ) -> SessionHandle:
        async with self.session_factory() as db:
            async with db.begin():
                profiles = ProfileStore(db)
                applications = ApplicationStore(db)

                job = await profiles.get_job_posting(job_posting_id)
                if job is None:
                    raise NotFound(f"Job posting {job_posting_id} not found")
                if not job.is_active:
                    raise PreconditionFailed("This job posting is not accepting applications")

                if await applications.find_open(profile.id, job_posting_id) is not None:
                    raise Conflict("You have already applied to this position")

                application = await applications.create(
                    profile.id, job_posting_id, status=INITIAL_APPLICATION_STATUS
                )
                session = await SessionStore(db).add(
                    InterviewSession(
                        kind=SessionKind.APPLICATION,
                        candidate_profile_id=profile.id,
                        application_id=application.id,
                        local_call_ref=new_local_call_ref(SessionKind.APPLICATION),
                    )
                )
                await applications.link_session(application, session.id)

        logger.info(
            f"Application session {session.id} created with application {application.id} "
            f"for job {job_posting_id}",
            extra={"session_id": session.id, "application_id": application.id},
        )
        return SessionHandle(
            session.id,
            SessionKind.APPLICATION,
            session.local_call_ref,
            application_id=application.id,
            application_status=INITIAL_APPLICATION_STATUS,
        )

    async def get_session(self, session_id: int, account_id: Optional[int] = None) -> Dict[str, Any]:
        async with self.session_factory() as db:
            session = await self._load(db, session_id, account_id)
            return serialize_session(session)

    async def resolve_session_id(
        self, call_id: Optional[str] = None, session_id: Optional[int] = None
    ) -> int:
        """Find the session a server-side delivery belongs to."""
        async with self.session_factory() as db:
            store = SessionStore(db)
            if call_id:
                session = await store.get_by_call_id(call_id)
                if session is not None:
                    return session.id
            if session_id is not None and await store.get(session_id) is not None:
                return session_id
        raise NotFound("No interview session matches this call")

    # ------------------------------------------------------------------ #
    # Call identity
    # ------------------------------------------------------------------ #
    async def bind_external_call_id(
        self,
        session_id: int,
        external_call_id: str,
        account_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Record the call engine's id for a session.

        Repeating the bound value is a no-op. A different value, or any
        binding after finalization, raises Conflict.
        """
        async with self._session_locks.hold(session_id):
            await self._bind_locked(session_id, external_call_id, account_id, strict=True)
            return await self.get_session(session_id)

    async def _bind_locked(
        self,
        session_id: int,
        external_call_id: str,
        account_id: Optional[int],
        strict: bool,
    ) -> bool:
        """Returns True when the id was newly bound."""
        external_call_id = external_call_id.strip()
        if not external_call_id:
            raise PreconditionFailed("External call id must not be empty")

        async with self.session_factory() as db:
            async with db.begin():
                session = await self._load(db, session_id, account_id)
                if session.external_call_id == external_call_id:
                    return False

                if session.external_call_id is not None or session.is_finalized:
                    detail = (
                        f"Session {session_id} is bound to call {session.external_call_id}"
                        if session.external_call_id
                        else f"Session {session_id} is finalized"
                    )
                    if strict:
                        raise Conflict(f"{detail}; cannot bind {external_call_id}")
                    logger.warning(
                        f"Ignoring call id {external_call_id}: {detail}",
                        extra={"session_id": session_id},
                    )
                    return False

                try:
                    bound = await SessionStore(db).bind_external_call_id(
                        session_id, external_call_id
                    )
                except IntegrityError as e:
                    raise Conflict("This call id is already bound to another session") from e

            if not bound:
                raise Conflict(f"Session {session_id} was bound concurrently")

        logger.info(
            f"Session {session_id} bound to call {external_call_id}",
            extra={"session_id": session_id},
        )
        return True

    # ------------------------------------------------------------------ #
    # Event ingestion
    # ------------------------------------------------------------------ #
    async def ingest_event(
        self,
        session_id: int,
        event: Union[CallEvent, Mapping[str, Any]],
        account_id: Optional[int] = None,
    ) -> IngestResult:
        """
        Apply one call engine event to a session.

        Final transcript turns are buffered in arrival order; partial turns
        are dropped. ``call-ended`` finalizes. ``error`` aborts the session
        without finalizing; later events for it are ignored.
        """
        if not isinstance(event, CallEvent):
            event = parse_call_event(event)

        async with self._session_locks.hold(session_id):
            async with self.session_factory() as db:
                session = await self._load(db, session_id, account_id)
                finalized = session.is_finalized
                aborted = session.aborted_at is not None

            if event.call_id:
                try:
                    await self._bind_locked(session_id, event.call_id, None, strict=False)
                except (Conflict, PreconditionFailed) as e:
                    logger.warning(
                        f"Ignoring call id from event for session {session_id}: {e.message}",
                        extra={"session_id": session_id},
                    )

            if finalized:
                if event.kind is CallEventKind.CALL_ENDED:
                    artifact = await self._finalize_locked(session_id, FinalizeReason.CALL_ENDED)
                    return IngestResult(session_id, event.kind, accepted=False, artifact=artifact)
                logger.debug(f"Dropping {event.kind.value} for finalized session {session_id}")
                return IngestResult(session_id, event.kind, accepted=False)

            if aborted:
                logger.info(
                    f"Dropping {event.kind.value} for aborted session {session_id}",
                    extra={"session_id": session_id},
                )
                return IngestResult(session_id, event.kind, accepted=False)

            if event.kind is CallEventKind.CALL_ENDED:
                artifact = await self._finalize_locked(session_id, FinalizeReason.CALL_ENDED)
                return IngestResult(session_id, event.kind, accepted=True, artifact=artifact)

            if event.kind is CallEventKind.ERROR:
                await self._abort(session_id, event.error or "call engine error")
                return IngestResult(session_id, event.kind, accepted=True)

            accepted = True
            if event.kind is CallEventKind.TRANSCRIPT_TURN:
                if event.is_final and event.turn is not None and event.turn.text:
                    await self.buffer.append(session_id, event.turn)
                else:
                    accepted = False

            async with self.session_factory() as db:
                async with db.begin():
                    await SessionStore(db).touch(session_id)

            return IngestResult(session_id, event.kind, accepted=accepted)

    async def _abort(self, session_id: int, error: str) -> None:
        async with self.session_factory() as db:
            async with db.begin():
                await SessionStore(db).mark_aborted(session_id, error[:2000])
        logger.warning(
            f"Session {session_id} aborted by call engine error: {error}",
            extra={"session_id": session_id},
        )

    # ------------------------------------------------------------------ #
    # Finalization
    # ------------------------------------------------------------------ #
    async def finalize(
        self,
        session_id: int,
        account_id: Optional[int] = None,
        reason: FinalizeReason = FinalizeReason.MANUAL,
    ) -> SessionArtifact:
        """
        Close out a session and return its persisted artifact.

        Safe to repeat: a finalized session returns the stored artifact
        without re-scoring or re-advancing the application (a pending
        advance that previously failed is retried).

        Raises:
            PreconditionFailed: the session was aborted by a call error
        """
        async with self._session_locks.hold(session_id):
            return await self._finalize_locked(session_id, reason, account_id)

    async def _finalize_locked(
        self,
        session_id: int,
        reason: FinalizeReason,
        account_id: Optional[int] = None,
        stale_before: Optional[datetime] = None,
    ) -> SessionArtifact:
        async with self.session_factory() as db:
            session = await self._load(db, session_id, account_id)
            if session.is_finalized:
                artifact = SessionArtifact.from_session(session)
            elif session.aborted_at is not None and reason is not FinalizeReason.TIMEOUT:
                raise PreconditionFailed(
                    "This interview was interrupted by a call error and will be closed automatically"
                )
            else:
                artifact = None

        if artifact is not None:
            if artifact.application_id is not None and not artifact.application_synced:
                await self._sync_application(session_id, artifact.application_id)
                return await self._artifact(session_id)
            return artifact

        turns = await self.buffer.read(session_id)
        result = score_transcript(turns)
        has_application = session.application_id is not None

        async with self.session_factory() as db:
            async with db.begin():
                # An event may have arrived since the reaper listed this session
                if stale_before is not None and not await self._is_stale(
                    db, session_id, stale_before
                ):
                    won = False
                else:
                    won = await self._write_artifact(
                        SessionStore(db), session_id, turns, result, reason, has_application
                    )

        if not won:
            return await self._artifact(session_id)

        await self.buffer.clear(session_id)
        logger.info(
            f"Session {session_id} finalized ({reason.value}): score={result.score}, "
            f"turns={len(turns)}",
            extra={"session_id": session_id},
        )

        if has_application:
            await self._sync_application(session_id, session.application_id)
        return await self._artifact(session_id)

    @staticmethod
    async def _write_artifact(store, session_id, turns, result, reason, has_application) -> bool:
        return await store.finalize_if_active(
            session_id,
            transcript=render_transcript(turns),
            transcript_turns=[turn.to_dict() for turn in turns],
            feedback=result.feedback,
            score=result.score,
            reason=reason,
            application_synced=not has_application,
        )

    @staticmethod
    async def _is_stale(db: AsyncSession, session_id: int, cutoff: datetime) -> bool:
        result = await db.execute(
            select(InterviewSession.id).where(
                InterviewSession.id == session_id,
                InterviewSession.last_event_at < cutoff,
            )
        )
        return result.scalar_one_or_none() is not None

    async def _sync_application(self, session_id: int, application_id: int) -> bool:
        """Advance the linked application; on failure leave it for the reaper."""
        try:
            await self.gateway.advance(
                application_id,
                ApplicationStatus.AI_SCREENING_COMPLETE,
                Actor.system(),
                reason=f"AI screening interview {session_id} finalized",
            )
        except (PreconditionFailed, NotFound) as e:
            # Already past screening (e.g. a recruiter moved it) or gone
            logger.info(
                f"Application {application_id} not advanced for session {session_id}: {e.message}",
                extra={"session_id": session_id, "application_id": application_id},
            )
        except Exception as e:
            logger.error(
                f"Advancing application {application_id} after session {session_id} failed, "
                f"will retry: {type(e).__name__}: {e}",
                extra={"session_id": session_id, "application_id": application_id},
            )
            return False

        async with self.session_factory() as db:
            async with db.begin():
                await SessionStore(db).mark_application_synced(session_id)
        return True

    async def _artifact(self, session_id: int) -> SessionArtifact:
        async with self.session_factory() as db:
            session = await SessionStore(db).get(session_id)
            return SessionArtifact.from_session(session)

    # ------------------------------------------------------------------ #
    # Reaping
    # ------------------------------------------------------------------ #
    async def reap_abandoned(self, at: Optional[datetime] = None) -> ReapReport:
        """
        Force-finalize ACTIVE sessions idle past the timeout and retry
        application advances left pending by earlier failures.
        """
        cutoff = minutes_before(at or now(), self.session_timeout_minutes)
        report = ReapReport()

        async with self.session_factory() as db:
            store = SessionStore(db)
            stale = await store.list_stale_active(cutoff)

        for session_id in stale:
            try:
                async with self._session_locks.hold(session_id):
                    artifact = await self._finalize_locked(
                        session_id, FinalizeReason.TIMEOUT, stale_before=cutoff
                    )
                if artifact.finalize_reason is FinalizeReason.TIMEOUT:
                    report.finalized.append(session_id)
            except Exception:
                logger.exception(f"Reaper failed to finalize session {session_id}")
                report.failed.append(session_id)

        async with self.session_factory() as db:
            unsynced = await SessionStore(db).list_unsynced()

        for session_id in unsynced:
            if session_id in report.finalized:
                continue
            try:
                async with self._session_locks.hold(session_id):
                    artifact = await self._artifact(session_id)
                    if artifact.application_id is None or artifact.application_synced:
                        continue
                    if await self._sync_application(session_id, artifact.application_id):
                        report.resynced.append(session_id)
                    else:
                        report.failed.append(session_id)
            except Exception:
                logger.exception(f"Reaper failed to resync session {session_id}")
                report.failed.append(session_id)

        if report.finalized or report.resynced or report.failed:
            logger.info(
                f"Reaper sweep: finalized={report.finalized} resynced={report.resynced} "
                f"failed={report.failed}"
            )
        return report

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    @staticmethod
    async def _load(
        db: AsyncSession, session_id: int, account_id: Optional[int]
    ) -> InterviewSession:
        session = await SessionStore(db).get(session_id)
        if session is None:
            raise NotFound(f"Interview session {session_id} not found")
        if account_id is not None:
            profile = await db.get(CandidateProfile, session.candidate_profile_id)
            if profile is None or profile.account_id != account_id:
                raise Unauthorized("Access denied")
        return session


class SessionReaper:
    """Runs ``reap_abandoned`` on an interval inside the API process."""

    def __init__(self, orchestrator: SessionOrchestrator, interval_seconds: float = 60):
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="session-reaper")
        logger.info(f"Session reaper started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Session reaper stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.orchestrator.reap_abandoned()
            except Exception:
                logger.exception("Session reaper sweep failed")
            await asyncio.sleep(self.interval_seconds)
