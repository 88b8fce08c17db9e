# backend/moveout/logging_config.py
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from .config import settings
from .middleware.request_id import get_request_id

# Attributes every LogRecord carries; anything else arrived through `extra=`.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("x", logging.INFO, "x", 0, "", None, None))) | {
    "message",
    "asctime",
    "taskName",
}

# logger name -> env var overriding its level (default WARNING)
_NOISY_LOGGERS = {
    "httpx": "HTTP_LOG_LEVEL",
    "sqlalchemy.engine": "SQL_LOG_LEVEL",
    "celery": "CELERY_LOG_LEVEL",
}


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line.

    Fields passed with `extra=` (inspection_id, billing_run_id, step, ...) are
    lifted to the top level; the request id comes from the request context.
    """

    def __init__(self, *, env: Optional[str] = None) -> None:
        super().__init__()
        self.env = env

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.env:
            payload["env"] = self.env

        rid = get_request_id()
        if rid:
            payload["request_id"] = rid

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            payload.setdefault(key, value)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: Optional[str] = None) -> None:
    lvl = (level or os.getenv("LOG_LEVEL") or "INFO").upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter(env=settings.app_env))

    root = logging.getLogger()
    # replace, not append: create_app() runs again on uvicorn reload
    root.handlers[:] = [handler]
    root.setLevel(lvl)

    logging.getLogger("uvicorn.access").setLevel(lvl)
    for name, env_key in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel((os.getenv(env_key) or "WARNING").upper())
