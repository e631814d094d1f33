"""Shared fixtures and utilities for tests."""

import os
from types import SimpleNamespace

import pytest
import pytest_asyncio

from core.config import Settings
from core.integrations.email import LoggingNotificationDispatcher
from core.security import create_access_token
from database.engine import Database
from database.models import Account, AccountRole, CandidateProfile, Company, JobPosting
from api.services.applications import StatusTransitionGateway
from api.services.sessions import SessionOrchestrator
from api.services.transcripts import InMemoryTranscriptBuffer

JWT_SECRET = "test-jwt-secret-key-min-32-chars-long-for-security"
WEBHOOK_SECRET = "whsec-test-call-engine"

VALID_RESUME = (
    "Backend engineer with six years of Python experience building FastAPI services, "
    "async SQLAlchemy data layers and Celery pipelines for hiring platforms."
)


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables before running tests."""
    # Auth
    os.environ.setdefault("JWT_SECRET_KEY", JWT_SECRET)
    os.environ.setdefault("JWT_ALGORITHM", "HS256")

    # Database
    os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

    # Redis / Celery
    os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
    os.environ.setdefault("CELERY_BROKER_URL", "memory://")
    os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings backed by a throwaway SQLite file."""
    return Settings(
        _env_file=None,
        JWT_SECRET_KEY=JWT_SECRET,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'screening.db'}",
        CALL_ENGINE_WEBHOOK_SECRET=WEBHOOK_SECRET,
        REAPER_ENABLED=False,
        JSON_LOGS=False,
        NOTIFICATION_BACKEND="log",
    )


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings.database_url)
    await db.init_db()
    yield db
    await db.close()


@pytest.fixture
def dispatcher():
    return LoggingNotificationDispatcher()


@pytest.fixture
def transcript_buffer():
    return InMemoryTranscriptBuffer()


@pytest.fixture
def gateway(database, dispatcher):
    return StatusTransitionGateway(database.session_factory, dispatcher)


@pytest.fixture
def orchestrator(database, gateway, transcript_buffer):
    return SessionOrchestrator(
        database.session_factory,
        gateway,
        transcript_buffer,
        min_resume_length=100,
        session_timeout_minutes=30,
    )


async def seed_world(database: Database) -> SimpleNamespace:
    """Two companies, their recruiters, two postings and two candidates."""
    async with database.session_factory() as db:
        async with db.begin():
            acme = Company(name="Acme")
            globex = Company(name="Globex")
            db.add_all([acme, globex])
            await db.flush()

            job = JobPosting(
                company_id=acme.id,
                title="Backend Engineer",
                description="Build services",
                requirements="Python",
                is_active=True,
            )
            closed_job = JobPosting(
                company_id=acme.id, title="Data Engineer", is_active=False
            )
            recruiter = Account(
                email="recruiter@acme.test", role=AccountRole.RECRUITER, company_id=acme.id
            )
            other_recruiter = Account(
                email="recruiter@globex.test", role=AccountRole.RECRUITER, company_id=globex.id
            )
            candidate = Account(email="candidate@example.test", role=AccountRole.CANDIDATE)
            newcomer = Account(email="newcomer@example.test", role=AccountRole.CANDIDATE)
            db.add_all([job, closed_job, recruiter, other_recruiter, candidate, newcomer])
            await db.flush()

            profile = CandidateProfile(account_id=candidate.id, resume_text=VALID_RESUME)
            db.add(profile)
            await db.flush()

            return SimpleNamespace(
                company_id=acme.id,
                other_company_id=globex.id,
                job_id=job.id,
                closed_job_id=closed_job.id,
                recruiter_id=recruiter.id,
                other_recruiter_id=other_recruiter.id,
                candidate_id=candidate.id,
                candidate_email=candidate.email,
                profile_id=profile.id,
                newcomer_id=newcomer.id,
            )


@pytest_asyncio.fixture
async def world(database):
    return await seed_world(database)


@pytest.fixture
def auth_headers():
    """Factory for Authorization headers."""

    def _headers(account_id: int, role: str, secret: str = JWT_SECRET) -> dict:
        token = create_access_token(account_id, role, secret)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def seeder():
    """The seeding coroutine, for tests that own their event loop."""
    return seed_world
