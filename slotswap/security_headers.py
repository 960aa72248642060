"""
Security Headers Middleware for FastAPI

The API only serves JSON to authenticated clients, so responses are marked
non-frameable, non-sniffable and non-cacheable. HSTS is added in production.
"""

import logging
from typing import Callable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from .config import ENVIRONMENT

logger = logging.getLogger(__name__)

IS_PRODUCTION = ENVIRONMENT == "production"

# A JSON API loads nothing and may not be embedded anywhere
CSP_POLICY = "default-src 'none'; frame-ancestors 'none'; base-uri 'none'; form-action 'none'"


def get_permissions_policy() -> str:
    """Disable browser features that aren't needed for an API"""
    features = [
        "accelerometer=()",
        "camera=()",
        "geolocation=()",
        "gyroscope=()",
        "magnetometer=()",
        "microphone=()",
        "payment=()",
        "usb=()",
    ]
    return ", ".join(features)


def get_security_headers_dict() -> dict:
    headers = {
        "X-Frame-Options": "DENY",
        "X-Content-Type-Options": "nosniff",
        "Referrer-Policy": "no-referrer",
        "Content-Security-Policy": CSP_POLICY,
        "Permissions-Policy": get_permissions_policy(),
        "X-Permitted-Cross-Domain-Policies": "none",
    }

    if IS_PRODUCTION:
        headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains; preload"

    return headers


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds the headers from get_security_headers_dict() to every response"""

    def __init__(self, app, exclude_paths: Optional[list[str]] = None):
        super().__init__(app)
        self.exclude_paths = exclude_paths or []
        self.headers = get_security_headers_dict()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        # Skip security headers for excluded paths (e.g., health checks)
        path = request.url.path
        if any(path.startswith(excluded) for excluded in self.exclude_paths):
            return response

        for name, value in self.headers.items():
            response.headers[name] = value

        # Slot and swap data is per-user; never let a proxy cache it
        if "Cache-Control" not in response.headers:
            response.headers["Cache-Control"] = "no-store"

        return response
