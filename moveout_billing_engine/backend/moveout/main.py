# backend/moveout/main.py
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .logging_config import configure_logging
from .middleware.request_id import REQUEST_ID_HEADER, RequestIDMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware
from .routers import billing, health, inspections, pricing

API_PREFIX = "/api"

ROUTERS = (health.router, inspections.router, billing.router, pricing.router)


def cors_origins(value: list[str] | str) -> list[str]:
    """Accepts the env form ("https://a,https://b") as well as a list."""
    if isinstance(value, str):
        value = value.split(",")
    return [o.strip() for o in value if o.strip()] or ["*"]


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title="Move-out Billing Engine", version=settings.app_version)

    # last added is outermost
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins(settings.cors_allow_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )

    for router in ROUTERS:
        app.include_router(router, prefix=API_PREFIX)
    return app


app = create_app()
