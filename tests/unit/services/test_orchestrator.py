"""Tests for the session orchestrator against a real SQLite database."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from core.exceptions import Conflict, NotFound, PreconditionFailed, Unauthorized
from core.utils.datetime import now
from database.models import (
    Application,
    ApplicationStatus,
    ApplicationStatusHistory,
    CandidateProfile,
    FinalizeReason,
    InterviewSession,
    SessionKind,
)
from api.services.call_events import CallEvent, CallEventKind
from api.services.scoring import Speaker, TranscriptTurn
from api.services.sessions import SessionOrchestrator

TEN_WORDS = "one two three four five six seven eight nine ten"


def turn(role: str, text: str, final: bool = True) -> dict:
    return {
        "type": "transcript",
        "role": role,
        "transcriptType": "final" if final else "partial",
        "transcript": text,
    }


async def count(database, model) -> int:
    async with database.session_factory() as db:
        return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def load_application(database, application_id) -> Application:
    async with database.session_factory() as db:
        return await db.get(Application, application_id)


async def set_resume(database, account_id, text):
    async with database.session_factory() as db:
        async with db.begin():
            profile = (
                await db.execute(select(CandidateProfile).where(CandidateProfile.account_id == account_id))
            ).scalar_one()
            profile.resume_text = text


class TestEnsureProfile:
    """Single create-if-absent entry point for candidate profiles."""

    @pytest.mark.asyncio
    async def test_creates_once(self, orchestrator, database, world):
        first = await orchestrator.ensure_profile(world.newcomer_id)
        second = await orchestrator.ensure_profile(world.newcomer_id)
        assert first.id == second.id
        assert await count(database, CandidateProfile) == 2

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_profile(self, orchestrator, database, world):
        profiles = await asyncio.gather(
            *(orchestrator.ensure_profile(world.newcomer_id) for _ in range(5))
        )
        assert len({p.id for p in profiles}) == 1
        assert await count(database, CandidateProfile) == 2

    @pytest.mark.asyncio
    async def test_recruiter_has_no_profile(self, orchestrator, world):
        with pytest.raises(Unauthorized):
            await orchestrator.ensure_profile(world.recruiter_id)

    @pytest.mark.asyncio
    async def test_unknown_account(self, orchestrator, world):
        with pytest.raises(NotFound):
            await orchestrator.ensure_profile(99999)


class TestRecordResume:
    @pytest.mark.asyncio
    async def test_stores_resume_and_timestamp(self, orchestrator, world):
        text = "Data scientist. " * 10
        profile = await orchestrator.record_resume(world.newcomer_id, text, "s3://resumes/1.pdf")
        assert profile.resume_text == text.strip()
        assert profile.resume_document_url == "s3://resumes/1.pdf"
        assert profile.last_resume_update is not None

    @pytest.mark.asyncio
    async def test_rejects_short_resume(self, orchestrator, world):
        with pytest.raises(PreconditionFailed):
            await orchestrator.record_resume(world.newcomer_id, "too short")


class TestCreateSession:
    """Session creation preconditions and atomic application linkage."""

    @pytest.mark.asyncio
    async def test_practice_session(self, orchestrator, database, world):
        handle = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)
        assert handle.application_id is None
        assert handle.local_call_ref.startswith("temp_")

        session = await orchestrator.get_session(handle.session_id)
        assert session["state"] == "ACTIVE"
        assert session["score"] == 0
        assert session["transcript"] == ""
        assert session["external_call_id"] is None
        assert await count(database, Application) == 0

    @pytest.mark.asyncio
    async def test_application_session_creates_linked_application(self, orchestrator, database, world):
        handle = await orchestrator.create_session(
            world.candidate_id, SessionKind.APPLICATION, world.job_id
        )
        assert handle.local_call_ref.startswith("pending_")
        assert handle.application_status is ApplicationStatus.INTERVIEW_SCHEDULED

        application = await load_application(database, handle.application_id)
        assert application.status is ApplicationStatus.INTERVIEW_SCHEDULED
        assert application.interview_session_id == handle.session_id
        assert application.open_pair_key == f"{world.profile_id}:{world.job_id}"

        session = await orchestrator.get_session(handle.session_id)
        assert session["application_id"] == handle.application_id
        assert await count(database, ApplicationStatusHistory) == 1

    @pytest.mark.asyncio
    async def test_short_resume_is_rejected(self, orchestrator, database, world):
        await set_resume(database, world.candidate_id, "x" * 95)

        with pytest.raises(PreconditionFailed) as exc_info:
            await orchestrator.create_session(world.candidate_id, SessionKind.APPLICATION, world.job_id)

        assert "Résumé required" in exc_info.value.message
        assert await count(database, InterviewSession) == 0
        assert await count(database, Application) == 0

    @pytest.mark.asyncio
    async def test_missing_profile_is_created_then_rejected(self, orchestrator, database, world):
        with pytest.raises(PreconditionFailed):
            await orchestrator.create_session(world.newcomer_id, SessionKind.PRACTICE)
        assert await count(database, CandidateProfile) == 2

    @pytest.mark.asyncio
    async def test_inactive_job(self, orchestrator, world):
        with pytest.raises(PreconditionFailed):
            await orchestrator.create_session(
                world.candidate_id, SessionKind.APPLICATION, world.closed_job_id
            )

    @pytest.mark.asyncio
    async def test_unknown_job(self, orchestrator, world):
        with pytest.raises(NotFound):
            await orchestrator.create_session(world.candidate_id, SessionKind.APPLICATION, 4242)

    @pytest.mark.asyncio
    async def test_application_requires_job(self, orchestrator, world):
        with pytest.raises(PreconditionFailed):
            await orchestrator.create_session(world.candidate_id, SessionKind.APPLICATION)

    @pytest.mark.asyncio
    async def test_duplicate_application_conflicts(self, orchestrator, database, world):
        await orchestrator.create_session(world.candidate_id, SessionKind.APPLICATION, world.job_id)

        with pytest.raises(Conflict) as exc_info:
            await orchestrator.create_session(world.candidate_id, SessionKind.APPLICATION, world.job_id)

        assert "already applied" in exc_info.value.message
        assert await count(database, Application) == 1
        assert await count(database, InterviewSession) == 1

    @pytest.mark.asyncio
    async def test_concurrent_creates_yield_one_application(self, orchestrator, database, world):
        results = await asyncio.gather(
            orchestrator.create_session(world.candidate_id, SessionKind.APPLICATION, world.job_id),
            orchestrator.create_session(world.candidate_id, SessionKind.APPLICATION, world.job_id),
            return_exceptions=True,
        )

        created = [r for r in results if not isinstance(r, Exception)]
        conflicts = [r for r in results if isinstance(r, Conflict)]
        assert len(created) == 1
        assert len(conflicts) == 1
        assert await count(database, Application) == 1
        assert await count(database, InterviewSession) == 1

    @pytest.mark.asyncio
    async def test_separate_orchestrators_are_guarded_by_constraint(
        self, orchestrator, gateway, transcript_buffer, database, world
    ):
        # A second process has its own in-memory locks
        other = SessionOrchestrator(database.session_factory, gateway, transcript_buffer)
        await orchestrator.create_session(world.candidate_id, SessionKind.APPLICATION, world.job_id)

        with patch(
            "database.stores.ApplicationStore.find_open", new=AsyncMock(return_value=None)
        ):
            with pytest.raises(Conflict):
                await other.create_session(world.candidate_id, SessionKind.APPLICATION, world.job_id)

        assert await count(database, Application) == 1
        assert await count(database, InterviewSession) == 1

    @pytest.mark.asyncio
    async def test_reapply_allowed_after_terminal_status(self, orchestrator, gateway, world):
        from api.services.applications import Actor

        handle = await orchestrator.create_session(
            world.candidate_id, SessionKind.APPLICATION, world.job_id
        )
        await gateway.advance(
            handle.application_id,
            ApplicationStatus.REJECTED,
            Actor.recruiter(world.recruiter_id, world.company_id),
        )

        again = await orchestrator.create_session(
            world.candidate_id, SessionKind.APPLICATION, world.job_id
        )
        assert again.application_id != handle.application_id


class TestBindExternalCallId:
    """Two-phase call identity."""

    @pytest.mark.asyncio
    async def test_bind_is_idempotent(self, orchestrator, world):
        handle = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)

        first = await orchestrator.bind_external_call_id(handle.session_id, "call_1")
        second = await orchestrator.bind_external_call_id(handle.session_id, "call_1")

        assert first["external_call_id"] == "call_1"
        assert second["external_call_id"] == "call_1"
        assert second["local_call_ref"] == handle.local_call_ref

    @pytest.mark.asyncio
    async def test_conflicting_rebind(self, orchestrator, world):
        handle = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)
        await orchestrator.bind_external_call_id(handle.session_id, "call_1")

        with pytest.raises(Conflict):
            await orchestrator.bind_external_call_id(handle.session_id, "call_2")

        session = await orchestrator.get_session(handle.session_id)
        assert session["external_call_id"] == "call_1"

    @pytest.mark.asyncio
    async def test_bind_after_finalize_conflicts(self, orchestrator, world):
        handle = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)
        await orchestrator.finalize(handle.session_id)

        with pytest.raises(Conflict):
            await orchestrator.bind_external_call_id(handle.session_id, "late_call")

    @pytest.mark.asyncio
    async def test_call_id_used_by_other_session(self, orchestrator, world):
        one = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)
        two = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)
        await orchestrator.bind_external_call_id(one.session_id, "shared")

        with pytest.raises(Conflict):
            await orchestrator.bind_external_call_id(two.session_id, "shared")

    @pytest.mark.asyncio
    async def test_other_candidate_cannot_bind(self, orchestrator, world):
        handle = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)
        with pytest.raises(Unauthorized):
            await orchestrator.bind_external_call_id(
                handle.session_id, "call_x", account_id=world.newcomer_id
            )

    @pytest.mark.asyncio
    async def test_event_binds_call_id_and_ignores_conflicts(self, orchestrator, world):
        handle = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)

        await orchestrator.ingest_event(handle.session_id, {"type": "call-start", "call": {"id": "vapi_1"}})
        result = await orchestrator.ingest_event(
            handle.session_id, {"type": "speech-update", "status": "started", "call": {"id": "vapi_2"}}
        )

        assert result.accepted is True
        session = await orchestrator.get_session(handle.session_id)
        assert session["external_call_id"] == "vapi_1"


class TestIngestAndFinalize:
    """Event ingestion, transcript ordering and finalization."""

    @pytest.mark.asyncio
    async def test_only_final_turns_are_kept_in_order(self, orchestrator, world):
        handle = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)
        events = [
            {"type": "call-start"},
            turn("assistant", "Tell me about", final=False),
            turn("assistant", "Tell me about yourself."),
            turn("user", "I am", final=False),
            turn("user", "I am a backend engineer."),
            {"type": "speech-update", "status": "started"},
            turn("assistant", "Why Python?"),
            turn("user", "Because it reads well."),
        ]
        for event in events:
            await orchestrator.ingest_event(handle.session_id, event)

        result = await orchestrator.ingest_event(handle.session_id, {"type": "call-end"})

        assert result.kind is CallEventKind.CALL_ENDED
        assert result.artifact.transcript == (
            "AI: Tell me about yourself.\n\n"
            "User: I am a backend engineer.\n\n"
            "AI: Why Python?\n\n"
            "User: Because it reads well."
        )
        session = await orchestrator.get_session(handle.session_id)
        assert session["state"] == "FINALIZED"
        assert [t["text"] for t in session["transcript_turns"]] == [
            "Tell me about yourself.",
            "I am a backend engineer.",
            "Why Python?",
            "Because it reads well.",
        ]

    @pytest.mark.asyncio
    async def test_partial_turn_not_accepted(self, orchestrator, world):
        handle = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)
        result = await orchestrator.ingest_event(handle.session_id, turn("user", "hm", final=False))
        assert result.accepted is False

    @pytest.mark.asyncio
    async def test_blank_call_id_does_not_block_events(self, orchestrator, world):
        handle = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)

        result = await orchestrator.ingest_event(
            handle.session_id, {**turn("user", "hello there"), "callId": "   "}
        )
        assert result.accepted is True

        result = await orchestrator.ingest_event(handle.session_id, {"type": "call-end", "call_id": " "})

        assert result.artifact.transcript == "User: hello there"
        session = await orchestrator.get_session(handle.session_id)
        assert session["state"] == "FINALIZED"
        assert session["external_call_id"] is None

    @pytest.mark.asyncio
    async def test_unusable_event_call_id_is_ignored(self, orchestrator, transcript_buffer, world):
        handle = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)
        event = CallEvent(
            kind=CallEventKind.TRANSCRIPT_TURN,
            call_id="  ",
            turn=TranscriptTurn(Speaker.CANDIDATE, "hello there"),
            is_final=True,
        )

        result = await orchestrator.ingest_event(handle.session_id, event)

        assert result.accepted is True
        assert [t.text for t in await transcript_buffer.read(handle.session_id)] == ["hello there"]

    @pytest.mark.asyncio
    async def test_concurrent_events_keep_arrival_order(self, orchestrator, world):
        handle = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)
        texts = [f"answer {i}" for i in range(12)]

        await asyncio.gather(
            *(orchestrator.ingest_event(handle.session_id, turn("user", t)) for t in texts)
        )
        artifact = await orchestrator.finalize(handle.session_id)

        assert artifact.transcript == "\n\n".join(f"User: {t}" for t in texts)

    @pytest.mark.asyncio
    async def test_finalize_scores_and_advances_application(self, orchestrator, database, dispatcher, world):
        handle = await orchestrator.create_session(
            world.candidate_id, SessionKind.APPLICATION, world.job_id
        )
        for _ in range(3):
            await orchestrator.ingest_event(handle.session_id, turn("assistant", "Question?"))
            await orchestrator.ingest_event(handle.session_id, turn("user", TEN_WORDS))

        artifact = await orchestrator.finalize(handle.session_id, reason=FinalizeReason.CALL_ENDED)

        assert artifact.score == 65
        assert "Total Responses: 3" in artifact.feedback
        assert artifact.application_synced is True
        application = await load_application(database, handle.application_id)
        assert application.status is ApplicationStatus.AI_SCREENING_COMPLETE
        # Non-terminal status: no email
        assert dispatcher.sent == []

    @pytest.mark.asyncio
    async def test_finalize_twice_returns_same_artifact(self, orchestrator, database, gateway, world):
        handle = await orchestrator.create_session(
            world.candidate_id, SessionKind.APPLICATION, world.job_id
        )
        await orchestrator.ingest_event(handle.session_id, turn("user", TEN_WORDS))
        first = await orchestrator.finalize(handle.session_id)

        with patch.object(gateway, "advance", wraps=gateway.advance) as advance:
            second = await orchestrator.ingest_event(handle.session_id, {"type": "call-end"})
            third = await orchestrator.finalize(handle.session_id)

        assert second.artifact == first
        assert third == first
        advance.assert_not_called()
        assert await count(database, ApplicationStatusHistory) == 2

    @pytest.mark.asyncio
    async def test_concurrent_finalize_persists_once(self, orchestrator, gateway, world):
        handle = await orchestrator.create_session(
            world.candidate_id, SessionKind.APPLICATION, world.job_id
        )
        await orchestrator.ingest_event(handle.session_id, turn("user", TEN_WORDS))

        with patch.object(gateway, "advance", wraps=gateway.advance) as advance:
            artifacts = await asyncio.gather(
                *(orchestrator.finalize(handle.session_id) for _ in range(4))
            )

        assert len(set(artifacts)) == 1
        assert advance.await_count == 1

    @pytest.mark.asyncio
    async def test_finalize_empty_session(self, orchestrator, world):
        handle = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)
        artifact = await orchestrator.finalize(handle.session_id)
        assert artifact.score == 0
        assert artifact.transcript == ""

    @pytest.mark.asyncio
    async def test_events_after_finalize_are_dropped(self, orchestrator, world):
        handle = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)
        await orchestrator.ingest_event(handle.session_id, turn("user", "hello there"))
        first = await orchestrator.finalize(handle.session_id)

        result = await orchestrator.ingest_event(handle.session_id, turn("user", "late words"))

        assert result.accepted is False
        assert (await orchestrator.finalize(handle.session_id)).transcript == first.transcript

    @pytest.mark.asyncio
    async def test_advance_failure_keeps_transcript_and_retries(self, orchestrator, database, gateway, world):
        handle = await orchestrator.create_session(
            world.candidate_id, SessionKind.APPLICATION, world.job_id
        )
        await orchestrator.ingest_event(handle.session_id, turn("user", TEN_WORDS))

        with patch.object(gateway, "advance", new=AsyncMock(side_effect=RuntimeError("db down"))):
            artifact = await orchestrator.finalize(handle.session_id)

        assert artifact.application_synced is False
        assert artifact.transcript == f"User: {TEN_WORDS}"
        application = await load_application(database, handle.application_id)
        assert application.status is ApplicationStatus.INTERVIEW_SCHEDULED

        retried = await orchestrator.finalize(handle.session_id)

        assert retried.application_synced is True
        assert retried.transcript == artifact.transcript
        assert retried.score == artifact.score
        application = await load_application(database, handle.application_id)
        assert application.status is ApplicationStatus.AI_SCREENING_COMPLETE

    @pytest.mark.asyncio
    async def test_finalize_unknown_session(self, orchestrator, world):
        with pytest.raises(NotFound):
            await orchestrator.finalize(31337)

    @pytest.mark.asyncio
    async def test_finalize_requires_owner(self, orchestrator, world):
        handle = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)
        with pytest.raises(Unauthorized):
            await orchestrator.finalize(handle.session_id, account_id=world.newcomer_id)


class TestErrorAbort:
    """A call engine error leaves the session ACTIVE and unfinalized."""

    @pytest.mark.asyncio
    async def test_error_aborts_without_finalizing(self, orchestrator, transcript_buffer, world):
        handle = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)
        await orchestrator.ingest_event(handle.session_id, turn("user", "before the failure"))

        result = await orchestrator.ingest_event(
            handle.session_id, {"type": "error", "error": {"message": "transport closed"}}
        )

        assert result.accepted is True
        session = await orchestrator.get_session(handle.session_id)
        assert session["state"] == "ACTIVE"
        assert session["transcript"] == ""
        assert session["last_error"] == "transport closed"
        assert session["aborted_at"] is not None

    @pytest.mark.asyncio
    async def test_aborted_session_ignores_call_end_and_manual_finalize(self, orchestrator, world):
        handle = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)
        await orchestrator.ingest_event(handle.session_id, {"type": "error", "error": "boom"})

        result = await orchestrator.ingest_event(handle.session_id, {"type": "call-end"})
        assert result.accepted is False
        assert result.artifact is None

        with pytest.raises(PreconditionFailed):
            await orchestrator.finalize(handle.session_id)


class TestReaper:
    """Timeout-based forced finalization."""

    @pytest.mark.asyncio
    async def test_reaps_only_stale_sessions(self, orchestrator, world):
        stale = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)
        await orchestrator.ingest_event(stale.session_id, turn("user", "are you still there"))

        report = await orchestrator.reap_abandoned(now() + timedelta(minutes=10))
        assert report.finalized == []

        report = await orchestrator.reap_abandoned(now() + timedelta(minutes=31))
        assert report.finalized == [stale.session_id]

        session = await orchestrator.get_session(stale.session_id)
        assert session["state"] == "FINALIZED"
        assert session["finalize_reason"] == "timeout"
        assert session["transcript"] == "User: are you still there"

    @pytest.mark.asyncio
    async def test_reaps_aborted_session_and_advances_application(self, orchestrator, database, world):
        handle = await orchestrator.create_session(
            world.candidate_id, SessionKind.APPLICATION, world.job_id
        )
        await orchestrator.ingest_event(handle.session_id, turn("user", TEN_WORDS))
        await orchestrator.ingest_event(handle.session_id, {"type": "error", "error": "dropped"})

        report = await orchestrator.reap_abandoned(now() + timedelta(hours=1))

        assert report.finalized == [handle.session_id]
        application = await load_application(database, handle.application_id)
        assert application.status is ApplicationStatus.AI_SCREENING_COMPLETE

    @pytest.mark.asyncio
    async def test_retries_pending_application_advances(self, orchestrator, database, gateway, world):
        handle = await orchestrator.create_session(
            world.candidate_id, SessionKind.APPLICATION, world.job_id
        )
        with patch.object(gateway, "advance", new=AsyncMock(side_effect=RuntimeError("down"))):
            await orchestrator.finalize(handle.session_id)

        report = await orchestrator.reap_abandoned()

        assert report.resynced == [handle.session_id]
        application = await load_application(database, handle.application_id)
        assert application.status is ApplicationStatus.AI_SCREENING_COMPLETE

    @pytest.mark.asyncio
    async def test_already_finalized_sessions_are_left_alone(self, orchestrator, world):
        handle = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)
        await orchestrator.finalize(handle.session_id)

        report = await orchestrator.reap_abandoned(now() + timedelta(days=1))

        assert report.finalized == []
        session = await orchestrator.get_session(handle.session_id)
        assert session["finalize_reason"] == "manual"


class TestResolveSession:
    @pytest.mark.asyncio
    async def test_by_external_or_local_id(self, orchestrator, world):
        handle = await orchestrator.create_session(world.candidate_id, SessionKind.PRACTICE)
        await orchestrator.bind_external_call_id(handle.session_id, "ext-9")

        assert await orchestrator.resolve_session_id(call_id="ext-9") == handle.session_id
        assert await orchestrator.resolve_session_id(call_id=handle.local_call_ref) == handle.session_id
        assert await orchestrator.resolve_session_id(call_id="nope", session_id=handle.session_id) == handle.session_id

    @pytest.mark.asyncio
    async def test_unknown(self, orchestrator, world):
        with pytest.raises(NotFound):
            await orchestrator.resolve_session_id(call_id="missing")

