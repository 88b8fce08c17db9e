from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    app_version: str = "2026-10-17.v1"
    database_url: str = "sqlite:///./moveout.db"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Upstream services ----
    base_service_url: str = "http://localhost:8081"
    finance_service_url: str = "http://localhost:8085"
    http_timeout_seconds: float = 20.0

    # Lines produced by this flow carry this text in their description.
    inspection_marker: str = "Đo cùng với kiểm tra thiết bị"

    # ---- Eventual-consistency retries ----
    item_reload_attempts: int = 3
    item_reload_delay_seconds: float = 0.5

    start_reload_attempts: int = 5
    start_reload_interval_seconds: float = 2.0

    recalc_fallback_delay_seconds: float = 0.5
    post_export_settle_seconds: float = 1.0

    reconcile_poll_attempts: int = 5
    reconcile_poll_interval_seconds: int = 1

    # ---- Fan-out ----
    fanout_max_workers: int = 8

    # ---- Dev principal headers ----
    dev_header_user_id: str = "X-User-Id"
    dev_header_user_name: str = "X-User-Name"
    dev_header_user_role: str = "X-User-Role"

    # ---- Celery ----
    celery_broker_url: str | None = None
    celery_result_backend: str | None = None

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        if is_prod:
            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")

        if self.item_reload_attempts < 1 or self.reconcile_poll_attempts < 1:
            raise ValueError("retry attempt counts must be >= 1")


settings = Settings()
