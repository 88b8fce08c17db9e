# backend/moveout/middleware/request_id.py
from __future__ import annotations

import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"
# accepted from callers, in order of preference
INBOUND_HEADERS = ("X-Request-ID", "X-Correlation-ID")
MAX_INBOUND_LEN = 128

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    return request_id_ctx.get()


def _inbound_id(request: Request) -> Optional[str]:
    for name in INBOUND_HEADERS:
        v = (request.headers.get(name) or "").strip()
        if v and len(v) <= MAX_INBOUND_LEN:
            return v
    return None


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Per-request correlation id. Reused from the caller when sane, generated
    otherwise; echoed on the response, visible to log records and forwarded
    on upstream service calls.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = _inbound_id(request) or uuid.uuid4().hex
        token = request_id_ctx.set(rid)
        try:
            resp = await call_next(request)
            resp.headers[REQUEST_ID_HEADER] = rid
            return resp
        finally:
            request_id_ctx.reset(token)
