"""
Security Enhancement Middleware

Adds security response headers to every response and rejects obviously bad
requests (over-long URLs, oversized or malformed ``Content-Length``) before
they reach a router.
"""
import logging
from typing import Dict

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger(__name__)

MAX_URL_LENGTH = 2048


class SecurityMiddleware(BaseHTTPMiddleware):
    """Security headers plus basic request sanity checks."""

    def __init__(
        self,
        app,
        api_prefix: str = "/api/v1",
        enable_security_headers: bool = True,
        max_request_size: int = 1024 * 1024,
        is_production: bool = False,
    ):
        super().__init__(app)
        self.api_prefix = api_prefix
        self.enable_security_headers = enable_security_headers
        self.max_request_size = max_request_size
        self.is_production = is_production

    async def dispatch(self, request: Request, call_next) -> Response:
        rejection = self._check_request(request)
        if rejection is not None:
            client = request.client.host if request.client else "unknown"
            logger.warning("Rejected %s %s from %s: %s", request.method, request.url.path, client, rejection)
            return JSONResponse(
                status_code=400,
                content={"error": "bad_request", "message": rejection, "detail": None, "status_code": 400},
            )

        response = await call_next(request)

        if self.enable_security_headers:
            for name, value in self._build_security_headers(request).items():
                response.headers[name] = value
        return response

    def _check_request(self, request: Request) -> str | None:
        """Reason to reject the request, or None when it looks sane."""
        if len(str(request.url)) > MAX_URL_LENGTH:
            return "URL too long"

        content_length = request.headers.get("content-length")
        if content_length:
            try:
                size = int(content_length)
            except ValueError:
                return "Invalid Content-Length"
            if size > self.max_request_size:
                return "Request body too large"
        return None

    def _build_security_headers(self, request: Request) -> Dict[str, str]:
        headers = {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "Referrer-Policy": "strict-origin-when-cross-origin",
            "X-Permitted-Cross-Domain-Policies": "none",
        }
        if self.is_production:
            headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        # JSON API responses never need to load anything
        if request.url.path.startswith(self.api_prefix):
            headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
            headers["Cache-Control"] = "no-store"
        return headers
