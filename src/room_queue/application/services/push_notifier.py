"""Out-of-band "the log changed" notifications.

Subscribers are told only that something changed; they re-read the log to
find out what. Notifications may be duplicated, reordered or lost, so the
poll loop remains the correctness backstop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from room_queue.domain.shared.messages import LogTemplates
from room_queue.domain.shared.types import EventId, NonEmptyStr

logger = logging.getLogger(__name__)


class LogChanged(BaseModel):
    """A hint that the shared log has new records."""

    model_config = ConfigDict(frozen=True)

    source: NonEmptyStr
    event_id: EventId | None = None
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


LogChangedHandler = Callable[[LogChanged], Awaitable[None]]


class Subscription:
    """Handle returned by ``PushNotifier.subscribe``; cancel it to stop receiving."""

    def __init__(self, notifier: PushNotifier, handler: LogChangedHandler) -> None:
        self._notifier = notifier
        self._handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if self._active:
            self._notifier.unsubscribe(self._handler)
            self._active = False


class PushNotifier:
    """In-process fan-out of ``LogChanged`` hints.

    Handlers are called concurrently. Exceptions in handlers are logged
    but do not prevent other handlers from running.
    """

    def __init__(self) -> None:
        self._handlers: list[LogChangedHandler] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    def subscribe(self, handler: LogChangedHandler) -> Subscription:
        self._handlers.append(handler)
        logger.debug(LogTemplates.PUSH_SUBSCRIBED)
        return Subscription(self, handler)

    def unsubscribe(self, handler: LogChangedHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)
            logger.debug(LogTemplates.PUSH_UNSUBSCRIBED)

    async def notify(self, source: str, event_id: int | None = None) -> int:
        """Deliver a hint to every subscriber and return how many were called."""
        handlers = list(self._handlers)
        if not handlers:
            logger.debug(LogTemplates.PUSH_NO_SUBSCRIBERS, source)
            return 0

        change = LogChanged(source=source, event_id=event_id)
        logger.debug(LogTemplates.PUSH_NOTIFYING, len(handlers), source)

        async def safe_call(handler: LogChangedHandler) -> None:
            try:
                await handler(change)
            except Exception as e:
                logger.exception(LogTemplates.PUSH_HANDLER_ERROR, e)

        async with asyncio.TaskGroup() as tg:
            for handler in handlers:
                tg.create_task(safe_call(handler))
        return len(handlers)

    def clear(self) -> None:
        """Remove all handlers."""
        self._handlers.clear()
