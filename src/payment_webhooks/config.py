from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    allow_unsigned_webhooks: bool = False
    webhook_secret: str | None = None
    webhook_secret_next: str | None = None
    max_timestamp_age_seconds: int = 300
    require_timestamp: bool = False
    idempotency_backend: Literal["sqlite", "memory"] = "sqlite"
    db_path: str = "/data/webhooks.db"
    memory_store_max_entries: int = 10_000
    claim_timeout_seconds: int = 300
    handler_timeout_seconds: float = 10.0
    retention_days: int = 30
    cleanup_interval_hours: int = 1
    app_url: str = "http://localhost:3000"
    automation_trigger_url: str | None = None
    automation_timeout_seconds: float = 5.0
    log_level: str = "INFO"
    log_format: Literal["pretty", "plain"] = "pretty"

    @property
    def webhook_secrets(self) -> list[str]:
        return [s for s in (self.webhook_secret, self.webhook_secret_next) if s]
