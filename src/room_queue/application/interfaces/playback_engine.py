"""Port interface for the local audio output driven by the playback arbiter."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING

from room_queue.domain.shared.types import NonEmptyStr, VolumeLevel

if TYPE_CHECKING:
    from ...domain.shared.exceptions import PlaybackError

CompleteCallback = Callable[[], None]
ErrorCallback = Callable[["PlaybackError"], None]


class PlaybackEngine(ABC):
    """Interface for starting, stopping and observing audio playback.

    At most one track plays at a time. The completion callback fires when
    a track ends on its own; the error callback when it cannot start or
    dies mid-track. Neither fires for a track ended by ``stop()``.
    Callbacks may be invoked from any thread.
    """

    @abstractmethod
    async def start(self, url: NonEmptyStr) -> None:
        """Begin playing ``url``, replacing anything currently playing.

        Raises:
            PlaybackError: If playback could not be started.
        """
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop playback. Safe to call when nothing is playing."""
        ...

    @abstractmethod
    def set_volume(self, level: VolumeLevel) -> None:
        ...

    @abstractmethod
    def is_playing(self) -> bool:
        ...

    @abstractmethod
    def set_on_complete_callback(self, callback: CompleteCallback | None) -> None:
        ...

    @abstractmethod
    def set_on_error_callback(self, callback: ErrorCallback | None) -> None:
        ...
