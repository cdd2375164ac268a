"""
Security Headers Middleware for the StoryTime API

Adds baseline security headers to every response. API responses also get
Cache-Control: no-store, since they carry balances, PIN checks and payment
results.

Reference: OWASP Secure Headers Project
https://owasp.org/www-project-secure-headers/
"""

from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from config import settings


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds security headers to all HTTP responses.

    Headers added:
    - X-Content-Type-Options, X-Frame-Options, Referrer-Policy
    - Permissions-Policy (payment stays enabled for Razorpay checkout)
    - Content-Security-Policy (API responses are never rendered as pages)
    - Strict-Transport-Security in production
    """

    def __init__(self, app, enable_hsts: Optional[bool] = None):
        super().__init__(app)
        self.enable_hsts = settings.is_production if enable_hsts is None else enable_hsts

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        # Firebase Auth sign-in popups need to talk back to the opener
        response.headers["Cross-Origin-Opener-Policy"] = "same-origin-allow-popups"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = (
            "accelerometer=(), camera=(), geolocation=(), microphone=(), usb=()"
        )
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'; base-uri 'none'"
        )

        if request.url.path.startswith("/api"):
            response.headers["Cache-Control"] = "no-store"

        # max-age=31536000 = 1 year
        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response
