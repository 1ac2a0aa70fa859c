"""Security middleware for HTTPS enforcement and security headers.

- HTTPS redirection (production only)
- HSTS and CSP headers (production only)
- Anti-sniffing / framing / referrer headers on every response
"""

from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import RedirectResponse

from onboarding.config import settings

# The wizard's views are fetched by the browser app, never framed
_CSP = (
    "default-src 'self'; "
    "img-src 'self' data:; "
    "connect-src 'self'; "
    "frame-ancestors 'none'; "
    "base-uri 'self'; "
    "form-action 'self';"
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
            response.headers["Content-Security-Policy"] = _CSP

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Session id and draft contents must not be cached by intermediaries
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store"

        return response


class HTTPSRedirectMiddleware(BaseHTTPMiddleware):
    """Redirect HTTP requests to HTTPS (production only)."""

    def __init__(self, app, force_https: bool = False):
        super().__init__(app)
        self.force_https = force_https or settings.environment == "production"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.force_https or request.url.scheme != "http":
            return await call_next(request)

        return RedirectResponse(
            url=str(request.url.replace(scheme="https")),
            status_code=301,
        )
