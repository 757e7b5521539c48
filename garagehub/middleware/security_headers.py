"""
Security headers middleware.

Every response gets the standard hardening headers. Responses under /api/
carry customer, vehicle and billing records, so they are never cached and
may not load or frame anything. HSTS is only sent in production, where the
API sits behind TLS.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from garagehub.config import settings


SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}

API_PREFIX = "/api/"
API_HEADERS = {
    "Cache-Control": "no-store",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}

HSTS_VALUE = "max-age=31536000; includeSubDomains"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, hsts: bool | None = None):
        super().__init__(app)
        self.hsts = settings.environment == "production" if hsts is None else hsts

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        headers = dict(SECURITY_HEADERS)
        if request.url.path.startswith(API_PREFIX):
            headers.update(API_HEADERS)
        if self.hsts:
            headers["Strict-Transport-Security"] = HSTS_VALUE
        for header, value in headers.items():
            response.headers[header] = value
        return response
