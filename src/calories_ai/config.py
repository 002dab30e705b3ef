"""Application configuration."""

import os
from datetime import date, datetime, tzinfo
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    openai_api_key: str
    openai_model: str = "gpt-5.2"
    openai_reasoning_effort: str = "low"
    openai_store: bool = False
    status_webhook_url: str
    data_webhook_url: str
    checkout_webhook_url: str
    app_base_url: str = "http://localhost:8000/"
    state_dir: str = ".calories_ai"
    timezone: str | None = None
    history_limit: int = 50
    notification_ttl_seconds: int = 5
    webhook_timeout_seconds: float = 10
    sync_source: str = "CaloriesAI_Web_Client"
    default_user_email: str = "alex.doe@example.com"
    default_user_name: str = "Alex Doe"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def resolve_timezone(name: str | None) -> tzinfo:
    """Return the configured timezone, or the machine's local one."""
    if name is None or not name.strip():
        local = datetime.now().astimezone().tzinfo
        if local is None:
            raise RuntimeError("Unable to determine the local timezone")
        return local
    return ZoneInfo(name.strip())


def today_in(tz: tzinfo) -> date:
    """Return the current calendar date in the given timezone."""
    return datetime.now(tz=tz).date()
