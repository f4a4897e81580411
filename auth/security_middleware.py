"""
HTTP middleware for the API:
- Security headers on every response
- Request logging and request metrics
"""

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from loguru import logger

from core.observability import record_http_request


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.

    Headers added:
    - Strict-Transport-Security (HSTS)
    - X-Frame-Options
    - X-Content-Type-Options
    - Content-Security-Policy
    - Referrer-Policy
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Swagger/ReDoc pages load scripts and styles from a CDN
        if request.url.path not in self._docs_paths(request):
            response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        return response

    @staticmethod
    def _docs_paths(request: Request) -> set:
        app = request.app
        return {
            path for path in (
                getattr(app, "docs_url", None),
                getattr(app, "redoc_url", None),
                getattr(app, "swagger_ui_oauth2_redirect_url", None),
            )
            if path
        }


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log every request with its status and duration, and count it in the
    http_requests metrics under the matched route template.
    """

    async def dispatch(self, request: Request, call_next):
        client_ip = request.client.host if request.client else "unknown"
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            duration = time.perf_counter() - start
            record_http_request(request.method, self._route(request), 500, duration)
            logger.error(f"[HTTP] {request.method} {request.url.path} failed from {client_ip}")
            raise

        duration = time.perf_counter() - start
        record_http_request(request.method, self._route(request), response.status_code, duration)

        message = (
            f"[HTTP] {request.method} {request.url.path} -> {response.status_code} "
            f"({duration * 1000:.1f}ms) from {client_ip}"
        )
        if response.status_code >= 500:
            logger.error(message)
        elif response.status_code >= 400:
            logger.warning(message)
        else:
            logger.info(message)

        return response

    @staticmethod
    def _route(request: Request) -> str:
        # Template (e.g. /files/{file_id}) keeps metric labels bounded
        route = request.scope.get("route")
        return getattr(route, "path", "unmatched")
