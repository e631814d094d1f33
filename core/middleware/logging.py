"""
Structured logging for the screening API.

Request/response records are emitted as JSON with PII masked. Candidate
free text (résumés, transcripts) is never written to the logs.
"""

import json
import logging
import re
import time
import traceback
import uuid
from typing import Any, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


SENSITIVE_FIELD_PATTERNS = [
    re.compile(r"password", re.IGNORECASE),
    re.compile(r"token", re.IGNORECASE),
    re.compile(r"api[_-]?key", re.IGNORECASE),
    re.compile(r"secret", re.IGNORECASE),
    re.compile(r"authorization", re.IGNORECASE),
    re.compile(r"signature", re.IGNORECASE),
    re.compile(r"cookie", re.IGNORECASE),
]

# Fields holding candidate free text; logged only as a length marker
FREE_TEXT_FIELDS = {"resume_text", "transcript", "text", "feedback", "body_html"}

PII_PATTERNS = [
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL]"),
    (re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"), "[PHONE]"),
    (re.compile(r"\+\d{1,3}[-.\s]?\d{1,4}[-.\s]?\d{1,4}[-.\s]?\d{1,9}"), "[PHONE]"),
]

SKIP_PATHS = ("/health", "/ready")


def is_sensitive_field(field_name: str) -> bool:
    """Check if a field name indicates a credential."""
    return any(pattern.search(field_name) for pattern in SENSITIVE_FIELD_PATTERNS)


def mask_sensitive_data(data: Any, depth: int = 0, max_depth: int = 10) -> Any:
    """
    Recursively mask credentials, candidate free text and PII.

    Args:
        data: Data structure to mask
        depth: Current recursion depth
        max_depth: Maximum recursion depth
    """
    if depth > max_depth:
        return "[MAX_DEPTH_EXCEEDED]"

    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            key_str = str(key)
            if is_sensitive_field(key_str):
                masked[key] = "[REDACTED]"
            elif key_str.lower() in FREE_TEXT_FIELDS and isinstance(value, str):
                masked[key] = f"[TEXT:{len(value)}]"
            else:
                masked[key] = mask_sensitive_data(value, depth + 1, max_depth)
        return masked

    if isinstance(data, list):
        return [mask_sensitive_data(item, depth + 1, max_depth) for item in data]

    if isinstance(data, str):
        masked_str = data
        for pattern, replacement in PII_PATTERNS:
            masked_str = pattern.sub(replacement, masked_str)
        return masked_str

    return data


def mask_headers(headers: dict) -> dict:
    """Mask sensitive headers, keeping the auth scheme visible."""
    masked = {}
    for key, value in headers.items():
        key_lower = key.lower()
        if is_sensitive_field(key_lower):
            if key_lower == "authorization" and isinstance(value, str) and " " in value:
                masked[key] = f"{value.split(' ', 1)[0]} [REDACTED]"
            else:
                masked[key] = "[REDACTED]"
        else:
            masked[key] = value
    return masked


def should_log_request(path: str) -> bool:
    """Health and readiness probes are not logged."""
    return not any(path.startswith(skip) for skip in SKIP_PATHS)


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    Emits request_started / request_completed JSON records.

    Propagates or assigns x-request-id so log lines from one request can be
    correlated across the orchestrator and gateway.
    """

    def __init__(
        self,
        app: ASGIApp,
        log_request_body: bool = False,
        max_body_size: int = 1024,
    ):
        super().__init__(app)
        self.log_request_body = log_request_body
        self.max_body_size = max_body_size

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
        request.state.request_id = request_id

        if not should_log_request(request.url.path):
            response = await call_next(request)
            response.headers["x-request-id"] = request_id
            return response

        start_time = time.time()

        request_log = {
            "event": "request_started",
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "query_params": mask_sensitive_data(dict(request.query_params)),
            "headers": mask_headers(dict(request.headers)),
        }

        if self.log_request_body and request.method in ("POST", "PUT", "PATCH"):
            body = await self._get_request_body(request)
            if body is not None:
                request_log["body"] = mask_sensitive_data(body)

        logger.info(json.dumps(request_log))

        response = None
        error_details = None
        try:
            response = await call_next(request)
        except Exception as exc:
            error_details = {"type": type(exc).__name__}
            logger.error(
                f"Request processing error: {request.method} {request.url.path}",
                exc_info=True,
                extra={"request_id": request_id},
            )
            raise
        finally:
            duration = time.time() - start_time
            response_log = {
                "event": "request_completed",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "duration_ms": round(duration * 1000, 2),
                "status_code": response.status_code if response else 500,
            }
            if error_details:
                response_log["error"] = error_details

            if response is None or response.status_code >= 500:
                logger.error(json.dumps(response_log))
            elif response.status_code >= 400:
                logger.warning(json.dumps(response_log))
            else:
                logger.info(json.dumps(response_log))

            if response is not None:
                response.headers["x-request-id"] = request_id

        return response

    async def _get_request_body(self, request: Request) -> Any:
        """Read a JSON body for logging; other content types are summarised."""
        content_type = request.headers.get("content-type", "")
        if "application/json" not in content_type:
            return {"_content_type": content_type}
        try:
            body_bytes = await request.body()
            if len(body_bytes) > self.max_body_size:
                return {"_truncated": True, "_size": len(body_bytes)}
            return json.loads(body_bytes.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.debug(f"Could not parse request body: {e}")
            return None


class StructuredFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for attr in ("request_id", "session_id", "application_id"):
            if hasattr(record, attr):
                log_data[attr] = getattr(record, attr)

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_data)


def setup_logging(log_level: str = "INFO", json_logs: bool = True):
    """
    Configure application-wide logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_logs: Whether to format logs as JSON
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, log_level.upper()))
    if json_logs:
        console_handler.setFormatter(StructuredFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    root_logger.addHandler(console_handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (usually for __name__)."""
    return logging.getLogger(name)
