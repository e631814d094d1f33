"""
Domain exceptions for the screening orchestrator.

Every failure the core reports to a caller is one of these. The HTTP layer
maps them to status codes in core.middleware.error_handling.
"""

from fastapi import status


class ScreeningError(Exception):
    """Base exception for orchestrator and gateway failures."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "SCREENING_ERROR"
    default_message: str = "An unexpected error occurred"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(ScreeningError):
    """No verified identity accompanies the request."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHENTICATED"
    default_message = "Authentication required"


class Unauthorized(ScreeningError):
    """Identity is verified but lacks the role or ownership required."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "UNAUTHORIZED"
    default_message = "You don't have permission to perform this action"


class PreconditionFailed(ScreeningError):
    """Missing résumé, inactive job posting, illegal transition."""

    status_code = status.HTTP_412_PRECONDITION_FAILED
    code = "PRECONDITION_FAILED"
    default_message = "Precondition failed"


class Conflict(ScreeningError):
    """Duplicate application or conflicting call id."""

    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    default_message = "The request conflicts with the current state"


class NotFound(ScreeningError):
    """Unknown session, application, profile or job posting."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Resource not found"


class UpstreamFailure(ScreeningError):
    """Call engine or notification dispatcher unreachable."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "UPSTREAM_FAILURE"
    default_message = "A dependent service is temporarily unavailable, please retry later"
