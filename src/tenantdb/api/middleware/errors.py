"""Error handling middleware for mapping exceptions to HTTP responses."""

from datetime import UTC, datetime
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from tenantdb.api.schemas.errors import APIError, ErrorCode
from tenantdb.core.logging import get_logger, log_exception
from tenantdb.secrets.exceptions import SecretsError

logger = get_logger(__name__)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catches exceptions escaping the routers and returns ``APIError`` bodies.

    Expected failures never reach this layer; handlers return them as
    ``Outcome`` errors. What arrives here is infrastructure trouble.
    """

    def __init__(self, app: ASGIApp, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return self._handle_exception(request, exc)

    def _handle_exception(self, request: Request, exc: Exception) -> JSONResponse:
        request_id = str(getattr(request.state, "request_id", "unknown"))
        status_code, error_code, message, details = self._map_exception(exc)

        if status_code >= 500:
            log_exception(logger, exc, path=request.url.path, request_id=request_id)

        error = APIError(
            error_code=error_code,
            message=message,
            details=details,
            request_id=request_id,
            timestamp=datetime.now(UTC),
        )
        return JSONResponse(
            status_code=status_code,
            content=error.model_dump(mode="json"),
            headers={"X-Request-ID": request_id},
        )

    def _map_exception(self, exc: Exception) -> tuple[int, str, str, dict | None]:
        """Map exception to (status_code, error_code, message, details)."""
        if isinstance(exc, ValidationError):
            return (
                422,
                ErrorCode.VALIDATION_ERROR.value,
                "Request validation failed",
                {"errors": exc.errors(include_url=False, include_context=False)},
            )

        if isinstance(exc, SecretsError):
            return (
                503,
                ErrorCode.SECRETS_UNAVAILABLE.value,
                "Secret store unavailable",
                {"type": type(exc).__name__} if self.debug else None,
            )

        return (
            500,
            ErrorCode.INTERNAL_ERROR.value,
            "Internal server error",
            {"type": type(exc).__name__} if self.debug else None,
        )
