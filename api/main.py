"""
FastAPI application initialization and configuration.

``create_app`` is the composition root: it is the only place that reads
settings and constructs the database, transcript buffer, notification
dispatcher, gateway and orchestrator. Nothing connects at import time.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import Settings, get_settings
from core.integrations.email import NotificationDispatcher, build_dispatcher
from core.middleware import (
    ErrorHandlingMiddleware,
    StructuredLoggingMiddleware,
    setup_error_handlers,
    setup_logging,
)
from database.engine import Database
from api.routes import health
from api.routes.v1 import applications, profile, sessions, webhooks
from api.services.applications import StatusTransitionGateway
from api.services.sessions import SessionOrchestrator, SessionReaper
from api.services.transcripts import (
    InMemoryTranscriptBuffer,
    RedisTranscriptBuffer,
    TranscriptBuffer,
)

logger = logging.getLogger(__name__)


def build_transcript_buffer(settings: Settings) -> TranscriptBuffer:
    if settings.transcript_buffer_backend == "redis":
        return RedisTranscriptBuffer(redis_url=settings.redis_url)
    return InMemoryTranscriptBuffer()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    settings: Settings = app.state.settings

    # Startup
    logger.info(f"Starting {settings.app_name} in {settings.app_env} environment")
    await app.state.database.init_db()
    if settings.reaper_enabled:
        app.state.reaper.start()

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}")
    await app.state.reaper.stop()
    await app.state.transcript_buffer.close()
    await app.state.database.close()


def create_app(
    settings: Optional[Settings] = None,
    *,
    dispatcher: Optional[NotificationDispatcher] = None,
    transcript_buffer: Optional[TranscriptBuffer] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Defaults to the cached environment settings
        dispatcher: Overrides the NOTIFICATION_BACKEND choice
        transcript_buffer: Overrides the TRANSCRIPT_BUFFER_BACKEND choice
    """
    settings = settings or get_settings()
    setup_logging(log_level=settings.log_level, json_logs=settings.json_logs)

    database = Database(settings.database_url, echo=settings.database_echo)
    buffer = transcript_buffer or build_transcript_buffer(settings)
    gateway = StatusTransitionGateway(
        database.session_factory, dispatcher or build_dispatcher(settings)
    )
    orchestrator = SessionOrchestrator(
        database.session_factory,
        gateway,
        buffer,
        min_resume_length=settings.min_resume_length,
        session_timeout_minutes=settings.session_timeout_minutes,
    )

    app = FastAPI(
        title=settings.app_name,
        description="Interview session orchestration and application status pipeline",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.transcript_buffer = buffer
    app.state.gateway = gateway
    app.state.orchestrator = orchestrator
    app.state.reaper = SessionReaper(orchestrator, settings.reaper_interval_seconds)

    # Setup error handlers (before middleware)
    setup_error_handlers(app)

    # Middleware executes in reverse order of registration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        StructuredLoggingMiddleware,
        log_request_body=settings.log_request_body,
        max_body_size=settings.log_max_body_size,
    )
    # Outermost: catches everything the handlers above did not
    app.add_middleware(ErrorHandlingMiddleware, debug=settings.debug)

    # Health check routes
    app.include_router(health.router, tags=["Health"])

    # API v1 routes
    app.include_router(
        profile.router,
        prefix=f"{settings.api_v1_prefix}/profile",
        tags=["Profile"],
    )
    app.include_router(
        sessions.router,
        prefix=f"{settings.api_v1_prefix}/sessions",
        tags=["Sessions"],
    )
    app.include_router(
        applications.router,
        prefix=f"{settings.api_v1_prefix}/applications",
        tags=["Applications"],
    )
    app.include_router(
        webhooks.router,
        prefix=f"{settings.api_v1_prefix}/webhooks",
        tags=["Webhooks"],
    )

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level=get_settings().log_level.lower(),
    )
