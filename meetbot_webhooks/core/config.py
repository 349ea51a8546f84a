from functools import lru_cache
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Meetbot Webhooks API"
    app_env: str = "development"
    app_version: str = "0.1.0"
    api_prefix: str = "/api"
    allowed_origins: Annotated[list[str], NoDecode] = [
        "http://localhost:5173",
        "http://localhost:8080",
        "http://localhost:3000",
    ]
    webhook_signing_secret: str = ""
    webhook_freshness_window_seconds: int = 5 * 60
    webhook_token_ttl_seconds: int = 60
    webhook_token_api_key: str = ""
    recordings_store: str = "mongodb"
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "meetbot"
    mongodb_recordings_collection: str = "recordings"
    mongodb_connect_timeout_ms: int = 2000
    sync_recording_url: str = ""
    sync_recording_api_key: str = ""
    sync_recording_timeout_seconds: float = 10.0
    sync_claim_lease_seconds: int = 120
    bot_service_url: str = ""
    bot_service_secret: str = ""
    bot_service_timeout_seconds: float = 10.0
    start_bot_webhook_url: str = ""
    trigger_cache_ttl_hours: int = 24

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("recordings_store", mode="before")
    @classmethod
    def normalize_recordings_store(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("webhook_signing_secret", "webhook_token_api_key", mode="before")
    @classmethod
    def strip_secret(cls, value: str) -> str:
        return value.strip()

    @field_validator("webhook_freshness_window_seconds", mode="before")
    @classmethod
    def normalize_freshness_window(cls, value: int | str) -> int:
        parsed_value = int(value)
        if parsed_value <= 0:
            return 5 * 60
        return parsed_value

    @field_validator("webhook_token_ttl_seconds", mode="before")
    @classmethod
    def normalize_token_ttl(cls, value: int | str) -> int:
        parsed_value = int(value)
        if parsed_value <= 0:
            return 60
        return parsed_value

    @field_validator("sync_claim_lease_seconds", mode="before")
    @classmethod
    def normalize_sync_claim_lease(cls, value: int | str) -> int:
        parsed_value = int(value)
        if parsed_value <= 0:
            return 120
        return parsed_value

    @field_validator("trigger_cache_ttl_hours", mode="before")
    @classmethod
    def normalize_trigger_cache_ttl(cls, value: int | str) -> int:
        parsed_value = int(value)
        if parsed_value <= 0:
            return 24
        return parsed_value

    @field_validator(
        "sync_recording_timeout_seconds",
        "bot_service_timeout_seconds",
        mode="before",
    )
    @classmethod
    def normalize_timeout(cls, value: float | str) -> float:
        parsed_value = float(value)
        if parsed_value <= 0:
            return 10.0
        return parsed_value


@lru_cache
def get_settings() -> Settings:
    return Settings()
