"""Periodic re-read of the event log with backoff and out-of-band wake-ups."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from room_queue.domain.shared.messages import LogTemplates

logger = logging.getLogger(__name__)

PollAction = Callable[[], Awaitable[bool]]


class PollLoop:
    """Runs ``action`` every ``interval`` seconds until stopped.

    ``action`` returns ``True`` on success. After a failure the loop waits
    with exponential backoff, from ``backoff_initial`` up to ``backoff_max``,
    instead of the normal interval. ``trigger()`` cuts any wait short so a
    push notification is acted on immediately.
    """

    def __init__(
        self,
        *,
        name: str,
        action: PollAction,
        interval: float,
        backoff_initial: float = 1.0,
        backoff_max: float = 60.0,
    ) -> None:
        self._name = name
        self._action = action
        self._interval = interval
        self._backoff_initial = backoff_initial
        self._backoff_max = max(backoff_max, backoff_initial)
        self._running = False
        self._task: asyncio.Task | None = None
        self._wake = asyncio.Event()
        self._failures = 0

    def start(self) -> None:
        if self._running:
            logger.warning(LogTemplates.POLL_ALREADY_RUNNING, self._name)
            return

        self._running = True
        self._wake.clear()
        self._task = asyncio.create_task(self._run_loop(), name=f"poll-{self._name}")
        logger.info(LogTemplates.POLL_STARTED, self._name, self._interval)

    async def stop(self) -> None:
        self._running = False

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info(LogTemplates.POLL_STOPPED, self._name)

    def trigger(self) -> None:
        """Run the action as soon as possible instead of waiting out the interval."""
        logger.debug(LogTemplates.POLL_TRIGGERED, self._name)
        self._wake.set()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    def next_delay(self) -> float:
        """Seconds to wait before the next tick given the current failure streak."""
        if self._failures == 0:
            return self._interval
        delay = self._backoff_initial * (2 ** (self._failures - 1))
        return min(delay, self._backoff_max)

    async def tick(self) -> bool:
        """Run the action once and update the failure streak."""
        try:
            ok = await self._action()
        except Exception:
            logger.exception(LogTemplates.POLL_ERROR, self._name)
            ok = False

        if ok:
            self._failures = 0
        else:
            self._failures += 1
            logger.warning(
                LogTemplates.POLL_FAILED, self._name, self._failures, self.next_delay()
            )
        return ok

    async def _run_loop(self) -> None:
        while self._running:
            self._wake.clear()
            await self.tick()

            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.next_delay())
            except TimeoutError:
                pass
            except asyncio.CancelledError:
                break
