"""FastAPI dependencies for dependency injection."""

import logging
from typing import AsyncGenerator, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from core.exceptions import Unauthenticated, Unauthorized
from core.security import AccountIdentity, verify_jwt_token
from database.engine import Database
from database.models.accounts import Account, AccountRole
from api.services.applications import StatusTransitionGateway
from api.services.sessions import SessionOrchestrator

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_orchestrator(request: Request) -> SessionOrchestrator:
    return request.app.state.orchestrator


def get_gateway(request: Request) -> StatusTransitionGateway:
    return request.app.state.gateway


async def get_db(database: Database = Depends(get_database)) -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped database session."""
    async with database.session_factory() as session:
        yield session


async def resolve_account(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings_dep),
    db: AsyncSession = Depends(get_db),
) -> AccountIdentity:
    """
    Resolve the caller from the bearer token.

    Raises:
        Unauthenticated: no token, a bad or expired token, or an unknown
            account
    """
    if credentials is None or not credentials.credentials:
        raise Unauthenticated()

    try:
        payload = verify_jwt_token(
            credentials.credentials, settings.jwt_secret_key, settings.jwt_algorithm
        )
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token has expired")
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected bearer token: {e}")
        raise Unauthenticated("Invalid token")

    try:
        account_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise Unauthenticated("Invalid token")

    account = await db.get(Account, account_id)
    if account is None:
        raise Unauthenticated("Account not found")
    if account.role is None:
        raise Unauthorized("Choose a role before using this service")

    identity = AccountIdentity(
        account_id=account.id,
        role=account.role.value,
        email=account.email,
        company_id=account.company_id,
    )
    request.state.account = identity
    return identity


async def require_candidate(
    identity: AccountIdentity = Depends(resolve_account),
) -> AccountIdentity:
    """Require the caller to be a candidate."""
    if identity.role != AccountRole.CANDIDATE.value:
        raise Unauthorized("Candidate access required")
    return identity


async def require_recruiter(
    identity: AccountIdentity = Depends(resolve_account),
) -> AccountIdentity:
    """Require the caller to be a recruiter attached to a company."""
    if identity.role != AccountRole.RECRUITER.value:
        raise Unauthorized("Recruiter access required")
    if identity.company_id is None:
        raise Unauthorized("Complete recruiter onboarding before managing applications")
    return identity
