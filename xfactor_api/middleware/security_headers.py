"""Baseline security headers on every response."""

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from xfactor_api.core.config import settings

_CSP = (
    "default-src 'self'; "
    "frame-src 'self' https://player.vimeo.com; "
    "img-src 'self' data: https:; "
    "object-src 'none'; "
    "frame-ancestors 'self'"
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Headers already set by a route (e.g. the PDF proxy) are left as they are."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        headers = response.headers
        headers.setdefault("X-Content-Type-Options", "nosniff")
        headers.setdefault("X-Frame-Options", "SAMEORIGIN")
        headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        headers.setdefault("Cross-Origin-Resource-Policy", "same-site")
        if not settings.DEBUG:
            headers.setdefault("Content-Security-Policy", _CSP)
        return response
