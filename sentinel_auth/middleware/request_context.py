"""
Request Context Middleware Module
=================================

Starlette middleware for request processing.

Features:
- Request ID generation (or propagation of a client X-Request-ID)
- structlog context binding for the lifetime of the request
- Request timing and completion logging
- Security response headers

Note:
    Identity is not resolved here. Bearer tokens and API keys are
    validated by the guard dependencies on the routes that need them.
"""

import time
import uuid
from typing import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from sentinel_auth.core.config import settings
from sentinel_auth.core.logging import get_logger, request_id_context

# Initialize logger
logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_QUIET_PATHS = {"/", "/health"}


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tracing middleware.

    Responsibilities:
    - Assign a request id and expose it on request.state and the response
    - Bind request id, method and path into the structlog context
    - Log request timing by status class
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_context.set(request_id)
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request processing error",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise
        finally:
            request_id_context.reset(token)

        process_time = time.perf_counter() - start_time
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = f"{process_time:.4f}"

        self._log_request(request, response, process_time)
        structlog.contextvars.clear_contextvars()
        return response

    def _log_request(self, request: Request, response: Response, process_time: float) -> None:
        # Don't log health checks
        if request.url.path in _QUIET_PATHS:
            return

        user = getattr(request.state, "user", None)
        log_data = {
            "status_code": response.status_code,
            "process_time_ms": round(process_time * 1000, 2),
            "user_id": str(user.user_id) if user is not None else None,
            "ip_address": request.client.host if request.client else None,
        }

        if response.status_code >= 500:
            logger.error("Request completed with error", **log_data)
        elif response.status_code >= 400:
            logger.warning("Request completed with client error", **log_data)
        else:
            logger.info("Request completed", **log_data)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.

    Headers added:
    - X-Content-Type-Options: nosniff
    - X-Frame-Options: DENY
    - Referrer-Policy
    - Cache-Control: no-store (responses may carry tokens)
    - Content-Security-Policy
    - Strict-Transport-Security (in production)
    """

    # Paths that serve Swagger / ReDoc UI assets
    _DOCS_PATHS = {"/docs", "/redoc", "/openapi.json"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if request.url.path not in self._DOCS_PATHS:
            response.headers["Cache-Control"] = "no-store"

        # Swagger UI loads its assets from cdn.jsdelivr.net
        if settings.DEBUG and request.url.path in self._DOCS_PATHS:
            response.headers["Content-Security-Policy"] = (
                "default-src 'self'; "
                "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
                "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
                "img-src 'self' data: https://cdn.jsdelivr.net https://fastapi.tiangolo.com; "
                "frame-ancestors 'none';"
            )
        else:
            response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"

        if settings.ENVIRONMENT == "production":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response
