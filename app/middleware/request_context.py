"""
RequestContext Middleware - Adds request tracking to all requests.

Every request gets a request_id (echoed back as X-Request-ID) that is also
bound into structlog's context, so log lines from the chat services carry it
without passing it around.

Usage in endpoints:
    request.state.request_id
    request.state.ip_address
"""

import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Add request_id and client IP to request.state and the log context."""

    async def dispatch(self, request: Request, call_next):
        # Honour a client-supplied id so polling clients can correlate retries
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        ip_address = self._extract_client_ip(request)
        request.state.ip_address = ip_address

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.debug(
            "Request started",
            method=request.method,
            path=request.url.path,
            ip_address=ip_address,
        )

        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers["X-Request-ID"] = request_id
        return response

    def _extract_client_ip(self, request: Request) -> str | None:
        """
        Client IP, trusting X-Forwarded-For only from configured proxies.

        Args:
            request: FastAPI Request

        Returns:
            Client IP address or None
        """
        direct_ip = request.client.host if request.client else None

        if not settings.TRUST_X_FORWARDED_FOR or direct_ip not in settings.TRUSTED_PROXY_IPS:
            return direct_ip

        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            # "client, proxy1, proxy2" - first entry is the original client
            return forwarded_for.split(",")[0].strip()

        return direct_ip
