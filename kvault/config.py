"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kvault.exceptions import StoreConfigurationError

_SECONDS_PER_DAY = 24 * 60 * 60


class Settings(BaseSettings):
    """kvault application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)

    # Database
    database_url: str = "sqlite+aiosqlite:///data/mappings.db"

    # Cloudreve (primary store)
    cloudreve_url: str = ""
    cloudreve_user: str = ""
    cloudreve_password: str = ""
    cloudreve_admin_token: str = ""
    cloudreve_inbox_path: str = "/TelegramInbox"

    # Telegram (secondary store)
    tg_bot_token: str = ""
    tg_channel_id: str = ""
    tg_api_base: str = "https://api.telegram.org"
    tg_webhook_secret: str = ""

    # Shared secret for admin endpoints and the Cloudreve webhook
    webhook_secret: str = ""

    # Cache eviction and polling
    cache_idle_days: int = Field(default=7, ge=0)
    poll_interval_minutes: int = Field(default=5, ge=0)
    eviction_hour_utc: int = Field(default=2, ge=0, le=23)
    initial_sync: bool = True

    # Store clients
    store_timeout_seconds: float = Field(default=60.0, gt=0)

    @field_validator("cloudreve_url", "tg_api_base")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def idle_seconds(self) -> int:
        """Idle threshold after which a cached mapping becomes eligible for eviction."""
        return self.cache_idle_days * _SECONDS_PER_DAY

    def validate_runtime_config(self) -> None:
        """Validate that both stores are configured well enough to start."""
        missing: list[str] = []
        if not self.cloudreve_url:
            missing.append("CLOUDREVE_URL")
        if not self.cloudreve_admin_token:
            if not self.cloudreve_user:
                missing.append("CLOUDREVE_USER")
            if not self.cloudreve_password:
                missing.append("CLOUDREVE_PASSWORD")
        if not self.tg_bot_token:
            missing.append("TG_BOT_TOKEN")
        if not self.tg_channel_id:
            missing.append("TG_CHANNEL_ID")

        if missing:
            joined = ", ".join(missing)
            raise StoreConfigurationError(f"Missing required environment variable(s): {joined}")
