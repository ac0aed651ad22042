"""
Security Middleware for the admin API.

Implements:
- Rate limiting with slowapi
- Security headers (OWASP recommended)
- Request logging with request ids
"""

import logging
import time
import uuid
from typing import Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


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
    uri = settings.rate_limit_storage_uri
    if uri and uri.startswith(("redis://", "rediss://", "memory://")):
        return uri
    return "memory://"


limiter = Limiter(
    key_func=get_client_ip,
    default_limits=["200/minute"],
    storage_uri=get_storage_uri(),
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Custom handler for rate limit exceeded."""
    logger.warning("rate_limit_exceeded", extra={"client_ip": get_client_ip(request), "path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"error": "rate_limit_exceeded", "message": "Too many requests. Please try again later.", "retry_after": 60},
        headers={"Retry-After": "60"},
    )


# =============================================================================
# SECURITY HEADERS MIDDLEWARE
# =============================================================================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds OWASP-recommended security headers."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        # Impersonation tokens travel in these responses
        response.headers["Cache-Control"] = "no-store"

        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains; preload"

        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return response


# =============================================================================
# REQUEST LOGGING MIDDLEWARE
# =============================================================================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs failed requests and every request to impersonation endpoints."""

    SECURITY_PATHS = {"/api/impersonation/"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()
        request.state.request_id = request_id
        client_ip = get_client_ip(request)
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                extra={"request_id": request_id, "method": request.method, "path": path, "client_ip": client_ip, "error": str(exc)},
            )
            raise

        duration_ms = int((time.time() - start_time) * 1000)
        log_extra = {
            "request_id": request_id,
            "method": request.method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
            "client_ip": client_ip,
        }
        if response.status_code >= 500:
            logger.error("request_completed", extra=log_extra)
        elif response.status_code >= 400 or any(path.startswith(sp) for sp in self.SECURITY_PATHS):
            logger.warning("request_completed", extra=log_extra)

        response.headers["X-Request-ID"] = request_id
        return response


# =============================================================================
# SETUP FUNCTION
# =============================================================================

def setup_security_middleware(app: FastAPI) -> None:
    """Configure all security middleware."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    logger.info("Security middleware configured")
