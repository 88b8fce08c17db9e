from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..domain.errors import BackendRejection
from ..middleware.request_id import REQUEST_ID_HEADER, get_request_id

log = logging.getLogger("moveout.http")


def _extract_message(r: httpx.Response) -> str:
    try:
        data = r.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        for key in ("message", "error", "detail"):
            v = data.get(key)
            if isinstance(v, str) and v.strip():
                return v.strip()
            if isinstance(v, dict) and isinstance(v.get("message"), str):
                return v["message"]
    text = (r.text or "").strip()
    return text or f"HTTP {r.status_code}"


class JsonServiceClient:
    """
    Thin JSON-over-HTTP wrapper shared by the upstream service clients.

    Non-2xx answers and transport failures become BackendRejection. A fresh
    httpx.Client is opened per call; `transport` lets tests plug in
    httpx.MockTransport.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 20.0,
        transport: Optional[httpx.BaseTransport] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        self.base = base_url.rstrip("/")
        self.timeout = float(timeout)
        self.transport = transport
        self.headers = dict(headers or {})

    def _client(self) -> httpx.Client:
        kwargs: dict[str, Any] = {"timeout": self.timeout, "headers": self.headers}
        if self.transport is not None:
            kwargs["transport"] = self.transport
        return httpx.Client(**kwargs)

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        content: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        url = f"{self.base}{path}"
        clean_params = {k: v for k, v in (params or {}).items() if v is not None} or None
        req_headers = dict(headers or {})
        rid = get_request_id()
        if rid:
            req_headers.setdefault(REQUEST_ID_HEADER, rid)
        try:
            with self._client() as client:
                r = client.request(method, url, params=clean_params, json=json, content=content, headers=req_headers or None)
        except httpx.HTTPError as e:
            log.warning("upstream_unreachable %s %s", method, url)
            raise BackendRejection(f"upstream unreachable: {e}", status_code=0, endpoint=url) from e

        if r.status_code >= 400:
            msg = _extract_message(r)
            log.info("upstream_rejected %s %s status=%s", method, url, r.status_code)
            raise BackendRejection(msg, status_code=r.status_code, endpoint=url)

        if r.status_code == 204 or not r.content:
            return None
        try:
            return r.json()
        except ValueError:
            return r.text

    def get(self, path: str, **kw: Any) -> Any:
        return self.request("GET", path, **kw)

    def post(self, path: str, **kw: Any) -> Any:
        return self.request("POST", path, **kw)

    def put(self, path: str, **kw: Any) -> Any:
        return self.request("PUT", path, **kw)
