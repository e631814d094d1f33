"""
Error handling for the screening API.

Maps the domain taxonomy (core.exceptions) and infrastructure failures to a
single JSON error envelope. Upstream and unexpected failures never expose
internal detail to the caller.
"""

import logging
import re
import traceback
from typing import Any, Callable

from fastapi import Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.exceptions import ScreeningError, UpstreamFailure

logger = logging.getLogger(__name__)

RETRY_LATER_MESSAGE = "The service is temporarily unavailable, please retry later"

# Patterns for sensitive data that should never be returned or logged
SENSITIVE_PATTERNS = [
    re.compile(r'password["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'token["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'api[_-]?key["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'secret["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'authorization["\s:]+[^"\s,}]+', re.IGNORECASE),
]


def sanitize_error_message(message: str) -> str:
    """
    Remove sensitive information from error messages.

    Args:
        message: Original error message

    Returns:
        Sanitized error message
    """
    sanitized = str(message)
    for pattern in SENSITIVE_PATTERNS:
        sanitized = pattern.sub("[REDACTED]", sanitized)
    return sanitized


def get_safe_error_details(exc: Exception, include_details: bool = False) -> dict[str, Any]:
    """
    Extract safe error details without exposing sensitive information.

    Args:
        exc: The exception to extract details from
        include_details: Whether to include the traceback (development only)
    """
    details = {
        "type": type(exc).__name__,
        "message": sanitize_error_message(str(exc)),
    }
    if include_details:
        details["traceback"] = traceback.format_exc()
    return details


def error_envelope(
    code: str,
    message: str,
    path: str,
    method: str,
    details: Any = None,
) -> dict[str, Any]:
    """Build the JSON body shared by every error response."""
    body: dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
            "path": path,
            "method": method,
        }
    }
    if details is not None:
        body["error"]["details"] = details
    return body


def screening_error_response(exc: ScreeningError, path: str, method: str) -> JSONResponse:
    """Render a domain exception. Upstream failures get the generic message."""
    if isinstance(exc, UpstreamFailure):
        logger.error(f"Upstream failure: {method} {path} - {sanitize_error_message(exc.message)}")
        message = RETRY_LATER_MESSAGE
    else:
        logger.warning(f"{exc.code}: {method} {path} - {exc.message}")
        message = sanitize_error_message(exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(exc.code, message, path, method),
    )


class ErrorHandlingMiddleware:
    """
    Outermost ASGI safety net.

    Catches anything the route-level exception handlers did not and turns it
    into the standard error envelope.
    """

    def __init__(self, app: Callable, debug: bool = False):
        self.app = app
        self.debug = debug

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        try:
            await self.app(scope, receive, send)
        except Exception as exc:
            response = await self._handle_exception(exc, scope)
            await response(scope, receive, send)

    async def _handle_exception(self, exc: Exception, scope: dict) -> Response:
        """
        Map an exception to a JSONResponse.

        Args:
            exc: The exception to handle
            scope: ASGI scope for context
        """
        request_path = scope.get("path", "unknown")
        request_method = scope.get("method", "unknown")

        if isinstance(exc, ScreeningError):
            return screening_error_response(exc, request_path, request_method)

        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        error_code = "INTERNAL_SERVER_ERROR"
        message = "An unexpected error occurred"
        details = None

        if isinstance(exc, IntegrityError):
            status_code = status.HTTP_409_CONFLICT
            error_code = "INTEGRITY_ERROR"
            message = "Database integrity constraint violated"
            logger.error(
                f"Database integrity error: {request_method} {request_path}",
                exc_info=True,
            )

        elif isinstance(exc, OperationalError):
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            error_code = "DATABASE_ERROR"
            message = RETRY_LATER_MESSAGE
            logger.error(
                f"Database operational error: {request_method} {request_path}",
                exc_info=True,
            )

        elif isinstance(exc, SQLAlchemyError):
            error_code = "DATABASE_ERROR"
            message = "A database error occurred"
            logger.error(f"SQLAlchemy error: {request_method} {request_path}", exc_info=True)

        elif isinstance(exc, RedisError):
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            error_code = "CACHE_ERROR"
            message = RETRY_LATER_MESSAGE
            logger.error(f"Redis error: {request_method} {request_path}", exc_info=True)

        elif isinstance(exc, ValueError):
            status_code = status.HTTP_400_BAD_REQUEST
            error_code = "INVALID_INPUT"
            message = sanitize_error_message(str(exc)) or "Invalid input provided"
            logger.warning(f"Value error: {request_method} {request_path} - {message}")

        elif isinstance(exc, TimeoutError):
            status_code = status.HTTP_504_GATEWAY_TIMEOUT
            error_code = "TIMEOUT"
            message = RETRY_LATER_MESSAGE
            logger.error(f"Timeout error: {request_method} {request_path}")

        else:
            logger.error(
                f"Unhandled exception: {request_method} {request_path} - "
                f"{type(exc).__name__}: {sanitize_error_message(str(exc))}",
                exc_info=True,
            )

        if self.debug and status_code >= 500:
            details = get_safe_error_details(exc, include_details=True)

        return JSONResponse(
            status_code=status_code,
            content=error_envelope(error_code, message, request_path, request_method, details),
        )


def format_validation_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Flatten pydantic validation errors into field/message/type triples."""
    return [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": sanitize_error_message(error["msg"]),
            "type": error["type"],
        }
        for error in exc.errors()
    ]


def setup_error_handlers(app):
    """
    Set up exception handlers for FastAPI application.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(ScreeningError)
    async def screening_exception_handler(request: Request, exc: ScreeningError):
        return screening_error_response(exc, str(request.url.path), request.method)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_envelope(
                "HTTP_EXCEPTION",
                sanitize_error_message(exc.detail),
                str(request.url.path),
                request.method,
            ),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_envelope(
                "VALIDATION_ERROR",
                "Request validation failed",
                str(request.url.path),
                request.method,
                format_validation_errors(exc),
            ),
        )
