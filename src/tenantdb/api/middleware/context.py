"""Request ID middleware."""

from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from uuid_utils.compat import uuid7

from tenantdb.core.logging import LogContext


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns each request a UUIDv7 and binds it to the log context.

    Sets:
        request.state.request_id: The generated request ID
        X-Request-ID response header: For client correlation
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid7())
        request.state.request_id = request_id

        with LogContext(request_id=request_id):
            response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        return response
