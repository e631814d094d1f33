"""Common Pydantic schemas shared across the API."""

from typing import Any, Optional
from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Body of the error envelope."""

    code: str = Field(description="Error code for programmatic handling")
    message: str = Field(description="Human-readable reason")
    path: str = Field(description="Request path")
    method: str = Field(description="Request method")
    details: Optional[Any] = Field(None, description="Validation errors or debug details")


class ErrorResponse(BaseModel):
    """Error response model."""

    error: ErrorDetail


# Documented on every v1 router; bodies are built by core.middleware.error_handling
ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    401: {"model": ErrorResponse, "description": "Missing or invalid credentials"},
    403: {"model": ErrorResponse, "description": "Caller may not act on this resource"},
    404: {"model": ErrorResponse, "description": "Resource not found"},
    409: {"model": ErrorResponse, "description": "Conflicting state"},
    412: {"model": ErrorResponse, "description": "Precondition failed"},
    422: {"model": ErrorResponse, "description": "Request validation failed"},
}
