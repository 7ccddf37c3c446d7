"""
Response hardening for every route.

Funnel pages (/s/..., /ad/...) carry the signed ?t= token in the URL, so they
are never cached, never indexed, and never leak a Referer to sponsor sites.
JSON API responses are never cached either (they carry per-user data).
"""

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

_FUNNEL_PREFIXES = ("/s/", "/ad/")
_API_PREFIX = "/api/"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)

        for header in ("server", "X-Powered-By"):
            if header in response.headers:
                del response.headers[header]

        path = request.url.path
        is_funnel = path.startswith(_FUNNEL_PREFIXES)

        if is_funnel or path.startswith(_API_PREFIX):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, private"
            response.headers["Pragma"] = "no-cache"
            response.headers["Expires"] = "0"

        if is_funnel:
            response.headers["Referrer-Policy"] = "no-referrer"
            response.headers["X-Robots-Tag"] = "noindex, nofollow"
        else:
            response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # Funnel pages set their own nonce-based CSP
        if "Content-Security-Policy" not in response.headers:
            response.headers["Content-Security-Policy"] = "frame-ancestors 'none'"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=(), payment=()"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response
