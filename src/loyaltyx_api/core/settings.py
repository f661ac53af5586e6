from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./loyaltyx.db"
    database_echo: bool = False

    # Integration API keys
    api_key_prefix: str = "lx_"

    # Idempotency store
    idempotency_ttl_seconds: int = 24 * 60 * 60
    idempotency_lock_seconds: int = 60
    idempotency_sweep_enabled: bool = False
    idempotency_sweep_interval_seconds: int = 60 * 60

    # Webhook delivery worker
    webhook_worker_enabled: bool = False
    webhook_worker_interval_seconds: int = 30
    webhook_worker_batch_size: int = 50
    webhook_max_attempts: int = 5
    webhook_timeout_seconds: float = 10.0
    webhook_backoff_base_seconds: int = 30
    webhook_backoff_max_seconds: int = 60 * 60
    webhook_allowed_schemes: list[str] = Field(default_factory=lambda: ["https", "http"])

    @field_validator("webhook_allowed_schemes", mode="before")
    @classmethod
    def _parse_scheme_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip().lower() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip().lower() for item in value if str(item).strip()]
        return []

    # Observability
    tracing_enabled: bool = True


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
