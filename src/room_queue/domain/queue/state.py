"""Derived queue state produced by folding the event log."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class QueueItem(BaseModel):
    """A queued track that has not been played, failed or cleared yet.

    ``pending`` items are local-only placeholders shown while the store is
    unreachable; they carry negative ids and never reach the log.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    url: str
    title: str | None = None
    by: str | None = None
    pending: bool = False

    @property
    def display_title(self) -> str:
        return self.title or self.url

    def to_view(self) -> dict[str, Any]:
        return {"id": self.id, "url": self.url, "title": self.title}


class NowPlaying(BaseModel):
    """The track the arbiter reported as playing."""

    model_config = ConfigDict(frozen=True)

    title: str | None
    url: str
    ref: int
    by: str | None = None

    def to_view(self) -> dict[str, Any]:
        return {"title": self.title, "url": self.url}


class HistoryEntry(BaseModel):
    """A track that finished playing."""

    model_config = ConfigDict(frozen=True)

    url: str
    title: str | None = None
    by: str | None = None

    def to_view(self) -> dict[str, Any]:
        return {"url": self.url, "title": self.title}


class ProjectedState(BaseModel):
    """Application state derived from one read of the log.

    Owned by the process that computed it and replaced wholesale on every
    successful read.
    """

    model_config = ConfigDict(frozen=True)

    queue: tuple[QueueItem, ...] = ()
    now_playing: NowPlaying | None = None
    history: tuple[HistoryEntry, ...] = ()

    # Bookkeeping for the arbiter and for optimistic echo
    last_event_id: int = 0
    playing_event_id: int | None = None
    pending_skips: Mapping[int, int] = Field(default_factory=dict)

    @property
    def queue_ids(self) -> tuple[int, ...]:
        return tuple(item.id for item in self.queue)

    @property
    def head(self) -> QueueItem | None:
        return self.queue[0] if self.queue else None

    def skip_requested(self, ref: int, since_event_id: int = 0) -> bool:
        """Whether a skip for ``ref`` was logged after ``since_event_id``."""
        skip_id = self.pending_skips.get(ref)
        return skip_id is not None and skip_id > since_event_id

    def to_view(self) -> dict[str, Any]:
        """Return the ``{queue, nowPlaying, history}`` shape consumed by the UI layer."""
        return {
            "queue": [item.to_view() for item in self.queue],
            "nowPlaying": self.now_playing.to_view() if self.now_playing else None,
            "history": [entry.to_view() for entry in self.history],
        }


class QueueSnapshot(BaseModel):
    """What ``QueueClient.get_state()`` hands out: state plus freshness flags."""

    model_config = ConfigDict(frozen=True)

    state: ProjectedState = Field(default_factory=ProjectedState)
    stale: bool = False
    connected: bool = False
    refreshed_at: datetime | None = None
    last_error: str | None = None

    @property
    def queue(self) -> tuple[QueueItem, ...]:
        return self.state.queue

    @property
    def now_playing(self) -> NowPlaying | None:
        return self.state.now_playing

    @property
    def history(self) -> tuple[HistoryEntry, ...]:
        return self.state.history

    def to_view(self) -> dict[str, Any]:
        view = self.state.to_view()
        view["stale"] = self.stale
        view["connected"] = self.connected
        return view
