"""
Security middleware.

Implements:
- Rate limiting with slowapi
- Security headers (OWASP recommended)
- Request/response audit logging with X-Request-ID
"""

import os
import time
import uuid
import logging
from typing import Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from lemonade.core.config import Settings

logger = logging.getLogger(__name__)


# =============================================================================
# RATE LIMITING
# =============================================================================

def get_client_ip(request: Request) -> str:
    """Get client IP, accounting for proxies."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return get_remote_address(request)


def get_storage_uri() -> str:
    """Get rate limiter storage URI with fallback to memory."""
    redis_url = os.getenv("REDIS_URL", "")
    if redis_url and redis_url.startswith(("redis://", "rediss://", "memory://")):
        return redis_url
    return "memory://"


limiter = Limiter(
    key_func=get_client_ip,
    default_limits=["200/minute"],
    storage_uri=get_storage_uri(),
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Custom handler for rate limit exceeded."""
    logger.warning(f"Rate limit exceeded: IP={get_client_ip(request)}, path={request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"detail": "Too many requests. Please try again later."},
        headers={"Retry-After": "60"},
    )


# =============================================================================
# SECURITY HEADERS MIDDLEWARE
# =============================================================================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds OWASP-recommended security headers."""

    def __init__(self, app, production: bool = False) -> None:
        super().__init__(app)
        self.production = production

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"

        if self.production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


# =============================================================================
# AUDIT LOGGING MIDDLEWARE
# =============================================================================

class AuditLoggingMiddleware(BaseHTTPMiddleware):
    """Logs requests for security auditing. Tokens and cookies are never logged."""

    SECURITY_PATHS = ("/admin/", "/auth/", "/organizations/")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        start_time = time.time()
        request.state.request_id = request_id
        client_ip = get_client_ip(request)
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"[{request_id}] {request.method} {path} -> ERROR IP={client_ip} error={str(e)}")
            raise

        duration_ms = int((time.time() - start_time) * 1000)
        if response.status_code >= 500:
            logger.error(f"[{request_id}] {request.method} {path} -> {response.status_code} ({duration_ms}ms) IP={client_ip}")
        elif response.status_code >= 400 or any(sp in path for sp in self.SECURITY_PATHS):
            logger.warning(f"[{request_id}] {request.method} {path} -> {response.status_code} ({duration_ms}ms) IP={client_ip}")

        response.headers["X-Request-ID"] = request_id
        return response


# =============================================================================
# SETUP FUNCTION
# =============================================================================

def setup_security_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure all security middleware."""
    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SecurityHeadersMiddleware, production=settings.is_production)
    app.add_middleware(AuditLoggingMiddleware)
    logger.info("Security middleware configured")
