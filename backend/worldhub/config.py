import os
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: Optional[str] = Field(None, alias="HUB_DATABASE_URL")
    database_pool_size: int = Field(10, alias="HUB_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="HUB_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="HUB_DATABASE_ECHO")
    database_busy_timeout_seconds: float = Field(15.0, gt=0, alias="HUB_DATABASE_BUSY_TIMEOUT_SECONDS")
    hub_store_backend: Literal["database", "memory"] = Field("database", alias="HUB_STORE_BACKEND")
    session_lifetime_days: int = Field(7, ge=1, alias="HUB_SESSION_LIFETIME_DAYS")
    access_code_length: int = Field(8, ge=4, le=32, alias="HUB_ACCESS_CODE_LENGTH")
    sync_interval_seconds: float = Field(30.0, gt=0, alias="HUB_SYNC_INTERVAL_SECONDS")
    submit_retry_attempts: int = Field(3, ge=1, alias="HUB_SUBMIT_RETRY_ATTEMPTS")
    submit_retry_backoff_seconds: float = Field(0.25, ge=0, alias="HUB_SUBMIT_RETRY_BACKOFF_SECONDS")
    mutate_max_conflicts: int = Field(8, ge=1, alias="HUB_MUTATE_MAX_CONFLICTS")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[arg-type]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid hub configuration: {exc}") from exc
