"""Port interface for turning a queued URL into something playable."""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict

from room_queue.domain.shared.types import NonEmptyStr


class ResolvedTrack(BaseModel):
    """Display title and stream location for a queued URL."""

    model_config = ConfigDict(frozen=True)

    title: NonEmptyStr
    url: NonEmptyStr
    stream_url: str | None = None

    @property
    def playable_url(self) -> str:
        return self.stream_url or self.url


class TrackResolver(ABC):
    """Interface for resolving URLs to titles and stream locations."""

    @abstractmethod
    async def resolve(self, url: NonEmptyStr) -> ResolvedTrack | None:
        """Resolve a URL, or return ``None`` if nothing playable is there."""
        ...
