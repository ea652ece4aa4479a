"""Application Settings and Configuration

Pydantic-based settings management using environment variables.
Settings are loaded from environment variables with support for .env files,
type validation, and sensible defaults. All settings are frozen and immutable
after initialization.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.queue.projector import DEFAULT_HISTORY_CAPACITY, ClearPolicy
from ..domain.shared.messages import ErrorMessages
from ..domain.shared.types import (
    AppendAttempts,
    BusyTimeoutMs,
    ConnectionTimeoutS,
    HistoryCapacity,
    NonNegativeFloat,
    PositiveFloat,
    PositiveInt,
    RoomNameStr,
    VolumeLevel,
)


class StoreSettings(BaseModel):
    """Event log storage configuration."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    backend: Literal["sqlite", "github"] = "sqlite"

    # SQLite backend
    url: str = Field(
        default="sqlite:///data/queue.db",
        validation_alias=AliasChoices("url", "database_url", "db_url"),
    )
    busy_timeout_ms: BusyTimeoutMs = Field(
        default=5000,
        validation_alias=AliasChoices("busy_timeout_ms", "busy_timeout"),
    )
    connection_timeout_s: ConnectionTimeoutS = Field(
        default=10,
        validation_alias=AliasChoices("connection_timeout_s", "connection_timeout"),
    )

    # Conditional append
    append_max_attempts: AppendAttempts = 5
    append_retry_delay_s: NonNegativeFloat = 0.05

    # GitHub backend
    github_repo: str = ""
    github_path: str = "events.ndjson"
    github_token: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("github_token", "token"),
    )
    github_api_url: str = "https://api.github.com"
    github_branch: str | None = None
    request_timeout_s: PositiveFloat = 15.0

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith("sqlite://"):
            raise ValueError(ErrorMessages.INVALID_DATABASE_URL)
        return v


class SyncSettings(BaseModel):
    """Client read/poll configuration."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    poll_interval_s: PositiveFloat = Field(
        default=10.0,
        validation_alias=AliasChoices("poll_interval_s", "poll_interval"),
    )
    backoff_initial_s: PositiveFloat = 1.0
    backoff_max_s: PositiveFloat = 60.0
    history_capacity: HistoryCapacity = DEFAULT_HISTORY_CAPACITY
    clear_policy: ClearPolicy = ClearPolicy.PRESERVE_HISTORY


class ArbiterSettings(BaseModel):
    """Playback arbiter configuration.

    Exactly one process per room may run with ``enabled`` set; nothing
    enforces this.
    """

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    enabled: bool = False
    idle_poll_s: PositiveFloat = 2.0
    skip_check_interval_s: PositiveFloat = 1.0
    recover_orphaned_playback: bool = True
    backfill_titles: bool = True
    backfill_batch_size: PositiveInt = 3
    volume: VolumeLevel = 100
    player_path: str = Field(
        default="ffplay",
        validation_alias=AliasChoices("player_path", "ffplay_path"),
    )
    ytdlp_format: str = "bestaudio/best"


class PushSettings(BaseModel):
    """Best-effort "log changed" push configuration."""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    enabled: bool = True
    webhook_repo: str = ""
    webhook_path: str = ""
    # The relay creates a repository hook, so the token must be allowed to manage hooks.
    relay: bool = True
    relay_reconnect_initial_s: PositiveFloat = 1.0
    relay_reconnect_max_s: PositiveFloat = 60.0


class Settings(BaseSettings):
    """Application settings container.

    Automatically loads configuration from environment variables.

    Environment variable naming:
    - ENVIRONMENT, DEBUG, LOG_LEVEL, ROOM, DISPLAY_NAME (top-level)
    - STORE__BACKEND, STORE__URL, STORE__GITHUB_REPO, etc. (nested with prefix)
    - SYNC__POLL_INTERVAL_S, SYNC__CLEAR_POLICY, etc.
    - ARBITER__ENABLED, ARBITER__VOLUME, etc.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["development", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    room: RoomNameStr = "default"
    display_name: str | None = None

    store: StoreSettings = Field(default_factory=StoreSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    arbiter: ArbiterSettings = Field(default_factory=ArbiterSettings)
    push: PushSettings = Field(default_factory=PushSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(
                ErrorMessages.INVALID_LOG_LEVEL.format(level=v, valid_levels=valid_levels)
            )
        return v_upper

    @field_validator("display_name")
    @classmethod
    def blank_display_name_is_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v

    @property
    def webhook_repo(self) -> str:
        return self.push.webhook_repo or self.store.github_repo

    @property
    def webhook_path(self) -> str:
        return self.push.webhook_path or self.store.github_path

    @property
    def relay_configured(self) -> bool:
        """Whether a websocket relay should feed the webhook source."""
        return (
            self.push.enabled
            and self.push.relay
            and bool(self.webhook_repo)
            and bool(self.store.github_token.get_secret_value())
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings.

    Settings are automatically loaded from:
    1. .env file (if present)
    2. Environment variables
    3. Default values
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
