"""Pydantic settings for Aquafeeder configuration."""

from __future__ import annotations

import logging
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)


class TelegramSettings(BaseSettings):
    """Telegram notification configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TELEGRAM_",
        extra="ignore",
    )

    bot_token: str = Field(default="", description="Telegram bot token from @BotFather")
    chat_ids: Annotated[list[int], NoDecode] = Field(
        default_factory=list,
        description="Comma-separated list of chat IDs receiving alerts",
    )
    send_timeout: float = Field(
        default=10.0,
        gt=0,
        le=60,
        description="Upper bound for a single send attempt (seconds)",
    )

    @field_validator("chat_ids", mode="before")
    @classmethod
    def parse_chat_ids(cls, v: Any) -> list[int]:
        """Parse comma-separated chat IDs from env."""
        if isinstance(v, str):
            if not v.strip():
                return []
            return [int(x.strip()) for x in v.split(",") if x.strip()]
        if isinstance(v, int):
            return [v]
        if isinstance(v, list):
            return [int(x) for x in v]
        return []

    @property
    def is_configured(self) -> bool:
        """Check if a token and at least one recipient are set."""
        return bool(self.bot_token) and bool(self.chat_ids)


class AlertSettings(BaseSettings):
    """Alert thresholds and deduplication window."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="ALERT_",
        extra="ignore",
    )

    temperature_min: float = Field(
        default=20.0,
        description="Lowest normal water temperature (Celsius, inclusive)",
    )
    temperature_max: float = Field(
        default=32.0,
        description="Highest normal water temperature (Celsius, inclusive)",
    )
    feed_depleted_cm: float = Field(
        default=13.5,
        gt=0,
        description="Sensor distance above which the hopper counts as empty (cm)",
    )
    cooldown_seconds: int = Field(
        default=300,
        ge=0,
        le=86400,
        description="Minimum time between two alerts of the same category",
    )

    @model_validator(mode="after")
    def check_temperature_range(self) -> AlertSettings:
        """Reject an inverted temperature band."""
        if self.temperature_min > self.temperature_max:
            raise ValueError("temperature_min must not exceed temperature_max")
        return self

    @property
    def cooldown(self) -> timedelta:
        return timedelta(seconds=self.cooldown_seconds)


class FeederSettings(BaseSettings):
    """Feeding schedule evaluation configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="FEEDER_",
        extra="ignore",
    )

    check_interval: int = Field(
        default=60,
        ge=5,
        le=300,
        description="Schedule evaluation interval (seconds)",
    )
    dedup_seconds: int = Field(
        default=60,
        ge=1,
        le=3600,
        description="Window in which a second feed trigger is suppressed",
    )
    timezone: str = Field(default="UTC", description="Timezone of schedule times")
    history_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Number of feed events kept in memory",
    )
    evaluation_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound for a single schedule evaluation (seconds)",
    )

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        """Make sure the timezone name resolves."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @property
    def dedup_window(self) -> timedelta:
        return timedelta(seconds=self.dedup_seconds)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class ServerSettings(BaseSettings):
    """HTTP and WebSocket server configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SERVER_",
        extra="ignore",
    )

    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=3000, ge=1, le=65535, description="Bind port")
    static_dir: Path = Field(
        default=Path("public"),
        description="Directory with the dashboard's static files",
    )
    broadcast_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Upper bound for pushing one event to one subscriber",
    )


class DatabaseSettings(BaseSettings):
    """Database configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="DATABASE_",
        extra="ignore",
    )

    path: Path = Field(
        default=Path("data/aquafeeder.db"),
        description="Database file path",
    )
    retention_days: int = Field(
        default=90,
        ge=1,
        le=365,
        description="Data retention period in days",
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Nested settings
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    alert: AlertSettings = Field(default_factory=AlertSettings)
    feeder: FeederSettings = Field(default_factory=FeederSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)

    log_level: str = Field(default="INFO", description="Logging level")


def load_settings(env_file: Path | None = None) -> Settings:
    """Build settings, optionally from a specific env file.

    Each nested section reads its own prefix, so the env file is handed to
    every section rather than only the root model.
    """
    if env_file is None:
        return get_settings()

    if not env_file.exists():
        logger.warning("Env file %s not found, using environment only", env_file)

    return Settings(
        telegram=TelegramSettings(_env_file=env_file),
        alert=AlertSettings(_env_file=env_file),
        feeder=FeederSettings(_env_file=env_file),
        server=ServerSettings(_env_file=env_file),
        database=DatabaseSettings(_env_file=env_file),
        _env_file=env_file,
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
