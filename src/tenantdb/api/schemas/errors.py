"""Error response schemas for API."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from tenantdb.core.result import Error


class ErrorCode(str, Enum):
    """Error codes for failures raised outside the provisioning handlers.

    Handler errors carry their own codes (``Tenant.NotFound``...).
    """

    INVALID_REQUEST = "invalid_request"
    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"
    SECRETS_UNAVAILABLE = "secrets_unavailable"
    INTERNAL_ERROR = "internal_error"


class APIError(BaseModel):
    """Standardized API error response format."""

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(default=None, description="Additional error context")
    request_id: str = Field(..., description="Request ID for tracing (UUIDv7)")
    timestamp: datetime = Field(..., description="When the error occurred")

    model_config = {"json_schema_extra": {"example": {
        "error_code": "Tenant.AlreadyExists",
        "message": "Tenant with identifier 'acme' already exists",
        "details": None,
        "request_id": "019478f2-1234-7000-8000-abcdef123456",
        "timestamp": "2026-01-30T12:00:00Z",
    }}}

    @classmethod
    def from_error(cls, error: Error, request_id: str, timestamp: datetime) -> "APIError":
        return cls(
            error_code=error.code,
            message=error.description,
            details=error.metadata or None,
            request_id=request_id,
            timestamp=timestamp,
        )
