"""What the resolver keeps from a yt-dlp extraction, and the options it passes in."""

from __future__ import annotations

from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, field_validator

from room_queue.domain.shared.types import (
    NonEmptyStr,
    NonNegativeFloat,
    PositiveInt,
)

CACHE_TTL: Final[int] = 3600
CACHE_MAX_SIZE: Final[int] = 500
LOG_URL_TRUNCATE: Final[int] = 60


class AudioFormatInfo(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    url: NonEmptyStr | None = None
    acodec: NonEmptyStr | None = None


class YtDlpTrackInfo(BaseModel):
    """The title and stream of one extracted page.

    yt-dlp output is untrusted: a blank or wrongly typed field becomes
    ``None`` rather than a validation error.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    url: NonEmptyStr | None = None
    title: NonEmptyStr | None = None
    formats: list[AudioFormatInfo] = Field(default_factory=list)

    @field_validator("url", "title", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> str | None:
        return v.strip() or None if isinstance(v, str) else None

    @property
    def stream_url(self) -> str | None:
        """Direct URL if yt-dlp picked one, else the last format with audio."""
        if self.url:
            return self.url
        for fmt in reversed(self.formats):
            if fmt.url and fmt.acodec != "none":
                return fmt.url
        return None


class CacheEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    info: YtDlpTrackInfo
    cached_at: NonNegativeFloat


class YtDlpOpts(BaseModel):
    """``params`` for ``YoutubeDL``. Metadata only, never a download."""

    model_config = ConfigDict(frozen=True)

    quiet: bool = True
    no_warnings: bool = True
    noprogress: bool = True
    noplaylist: bool = True
    skip_download: bool = True
    retries: PositiveInt = 3
    socket_timeout: PositiveInt = 10
    format: NonEmptyStr | None = None
