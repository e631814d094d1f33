"""
Token utilities for the identity gate.

Access tokens are HS256 JWTs carrying the account id (``sub``) and the role
the identity provider assigned to it.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, TypedDict

import jwt

logger = logging.getLogger(__name__)


class JWTPayload(TypedDict, total=False):
    """Claims carried by an access token."""

    sub: str
    role: str
    type: str
    iat: int
    exp: int


@dataclass(frozen=True)
class AccountIdentity:
    """Verified caller, as resolved by the identity gate."""

    account_id: int
    role: str
    email: str
    company_id: int | None = None

    @property
    def is_candidate(self) -> bool:
        return self.role == "CANDIDATE"

    @property
    def is_recruiter(self) -> bool:
        return self.role == "RECRUITER"


def create_access_token(
    account_id: int,
    role: str,
    secret: str,
    algorithm: str = "HS256",
    expires_minutes: int = 60,
    now: datetime | None = None,
) -> str:
    """
    Issue a signed access token.

    Args:
        account_id: Account the token identifies
        role: CANDIDATE or RECRUITER
        secret: Signing key
        algorithm: JWT algorithm
        expires_minutes: Lifetime of the token
        now: Issue time (defaults to the current UTC time)
    """
    issued_at = now or datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(account_id),
        "role": role,
        "type": "access",
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + timedelta(minutes=expires_minutes)).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def verify_jwt_token(token: str, secret: str, algorithm: str = "HS256") -> JWTPayload:
    """
    Decode and validate an access token.

    Raises:
        jwt.ExpiredSignatureError: token past its ``exp``
        jwt.InvalidTokenError: bad signature, malformed, or wrong token type
    """
    payload = jwt.decode(
        token,
        secret,
        algorithms=[algorithm],
        options={"require": ["sub", "exp"]},
    )
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError("Not an access token")
    return payload


def sign_webhook_body(body: bytes, secret: str) -> str:
    """HMAC-SHA256 hex digest used by the call engine to sign deliveries."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_webhook_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """Constant-time comparison of a delivered signature against the body."""
    if not signature:
        return False
    expected = sign_webhook_body(body, secret)
    return hmac.compare_digest(expected, signature.strip())
