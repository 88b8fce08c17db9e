# backend/moveout/middleware/structured_logging.py
from __future__ import annotations

import logging
import time
from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..config import settings

log = logging.getLogger("moveout.request")

# polled by the load balancer; logged only when failing
QUIET_PATHS = ("/api/health",)


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    Access log: one record per request. Fields travel as `extra` so the JSON
    formatter puts them next to the request id.

    Added before RequestIDMiddleware so it runs inside it.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            if request.url.path not in QUIET_PATHS or status_code >= 400:
                fields: dict[str, Any] = {
                    "event": "http_request",
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": status_code,
                    "latency_ms": round((time.perf_counter() - started) * 1000, 1),
                    "user_id": request.headers.get(settings.dev_header_user_id),
                    "inspection_id": (request.scope.get("path_params") or {}).get("inspection_id"),
                }
                level = logging.WARNING if status_code >= 500 else logging.INFO
                log.log(
                    level,
                    "%s %s -> %s",
                    request.method,
                    request.url.path,
                    status_code,
                    extra={k: v for k, v in fields.items() if v is not None},
                )
