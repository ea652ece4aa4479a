"""
FFplay Playback Engine

Plays one track at a time through a local ``ffplay`` subprocess.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from room_queue.application.interfaces.playback_engine import (
    CompleteCallback,
    ErrorCallback,
    PlaybackEngine,
)
from room_queue.domain.shared.exceptions import PlaybackError
from room_queue.domain.shared.messages import ErrorMessages, LogTemplates

logger = logging.getLogger(__name__)


@dataclass
class FFplayConfig:
    """Command-line configuration for ffplay."""

    # Reconnection settings for streaming
    reconnect: bool = True
    reconnect_delay_max: int = 5

    loglevel: str = "error"
    stop_timeout: float = 2.0

    def get_args(self, volume: int) -> list[str]:
        args = ["-nodisp", "-autoexit", "-loglevel", self.loglevel, "-volume", str(volume)]
        if self.reconnect:
            args += ["-reconnect", "1", "-reconnect_streamed", "1"]
            args += ["-reconnect_delay_max", str(self.reconnect_delay_max)]
        return args


class FFplayEngine(PlaybackEngine):
    """PlaybackEngine backed by an ``ffplay -nodisp -autoexit`` subprocess.

    A process exiting with status 0 is a natural completion; any other
    status is a playback error. Processes ended by ``stop()`` or replaced
    by a new ``start()`` report nothing. Volume changes apply from the
    next track, since ffplay cannot change it from outside.
    """

    def __init__(self, player_path: str = "ffplay", config: FFplayConfig | None = None) -> None:
        self._player_path = player_path
        self._config = config or FFplayConfig()
        self._volume = 100
        self._process: asyncio.subprocess.Process | None = None
        self._monitor: asyncio.Task | None = None
        self._generation = 0
        self._on_complete: CompleteCallback | None = None
        self._on_error: ErrorCallback | None = None

    def set_on_complete_callback(self, callback: CompleteCallback | None) -> None:
        self._on_complete = callback

    def set_on_error_callback(self, callback: ErrorCallback | None) -> None:
        self._on_error = callback

    def set_volume(self, level: int) -> None:
        self._volume = max(0, min(100, int(level)))
        logger.debug(LogTemplates.PLAYER_VOLUME_SET, self._volume)

    def is_playing(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def start(self, url: str) -> None:
        await self.stop()

        args = [self._player_path, *self._config.get_args(self._volume), url]
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise PlaybackError(
                ErrorMessages.PLAYER_NOT_FOUND.format(path=self._player_path), url=url
            ) from e
        except OSError as e:
            raise PlaybackError(str(e), url=url) from e

        self._generation += 1
        self._process = process
        self._monitor = asyncio.create_task(self._watch(process, url, self._generation))
        logger.info(LogTemplates.PLAYER_STARTED, url, process.pid)

    async def stop(self) -> None:
        self._generation += 1
        process, self._process = self._process, None
        monitor, self._monitor = self._monitor, None

        if process is not None and process.returncode is None:
            try:
                process.terminate()
                await asyncio.wait_for(process.wait(), timeout=self._config.stop_timeout)
            except ProcessLookupError:
                pass
            except TimeoutError:
                process.kill()
                await process.wait()
            logger.info(LogTemplates.PLAYER_STOPPED)

        if monitor is not None:
            monitor.cancel()
            try:
                await monitor
            except asyncio.CancelledError:
                pass

    async def _watch(self, process: asyncio.subprocess.Process, url: str, generation: int) -> None:
        _, stderr = await process.communicate()
        code = process.returncode
        logger.debug(LogTemplates.PLAYER_FINISHED, code)

        if generation != self._generation:
            return
        self._process = None
        self._monitor = None

        if code == 0:
            self._fire(self._on_complete)
            return

        message = ErrorMessages.PLAYER_EXITED.format(code=code)
        detail = (stderr or b"").decode("utf-8", errors="replace").strip()
        if detail:
            message = f"{message}: {detail.splitlines()[-1]}"
        self._fire(self._on_error, PlaybackError(message, url=url))

    @staticmethod
    def _fire(callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception(LogTemplates.PLAYER_CALLBACK_ERROR)
