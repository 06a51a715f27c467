from __future__ import annotations

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from murmur.core.logging import log, set_request_id


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        # Content-Security-Policy should be tuned per deployment / frontend hosting
        response.headers["Content-Security-Policy"] = "default-src 'self'"
        return response


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags the request with a correlation id and writes one access-log line."""

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex
        set_request_id(rid)
        start = time.perf_counter()
        try:
            response: Response = await call_next(request)
        except Exception:
            # The traceback is logged by the app's error handler.
            log.info("request", extra={"method": request.method, "path": request.url.path, "status": 500})
            raise
        ms = (time.perf_counter() - start) * 1000.0
        # No client address in the log line: submissions are anonymous.
        log.info(
            "request",
            extra={"method": request.method, "path": request.url.path, "status": response.status_code, "ms": round(ms, 2)},
        )
        response.headers["X-Request-ID"] = rid
        response.headers["Server-Timing"] = f"app;dur={ms:.2f}"
        set_request_id(None)
        return response
