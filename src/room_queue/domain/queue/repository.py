"""
Event Log Store Interface

Abstract base class defining the contract for the shared, append-only queue
log. Implementations live in the infrastructure layer.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from room_queue.domain.queue.events import EventDraft, QueueEvent
from room_queue.domain.shared.exceptions import ConflictError, ConflictExhaustedError
from room_queue.domain.shared.messages import LogTemplates

logger = logging.getLogger(__name__)

DEFAULT_APPEND_ATTEMPTS = 5
DEFAULT_RETRY_DELAY = 0.05

AppendCallback = Callable[[QueueEvent], Awaitable[None]]


@dataclass(frozen=True)
class LogTail:
    """What a writer needs to know to attempt the next append.

    ``version`` is an opaque token for backends whose conditional write is a
    compare-and-swap on the whole document (a content hash, for example);
    ``snapshot`` carries whatever the backend must rewrite alongside it.
    """

    last_id: int
    version: Any = None
    snapshot: Any = None

    @property
    def next_id(self) -> int:
        return self.last_id + 1


class EventLogStore(ABC):
    """Abstract store for the room's event log.

    Every append is conditional: it succeeds only if no other writer has
    taken the id the caller computed from the tail it read. On conflict the
    tail is re-read and the next id recomputed, up to ``max_attempts`` times.
    Two concurrent successful appends therefore never share an id.
    """

    def __init__(
        self,
        *,
        max_attempts: int = DEFAULT_APPEND_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = max(0.0, retry_delay)
        self._on_append: AppendCallback | None = None

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    @abstractmethod
    def location(self) -> str:
        """Human-readable description of where the log lives, for logs."""
        ...

    def set_on_append_callback(self, callback: AppendCallback | None) -> None:
        """Register a coroutine invoked after every successful local append."""
        self._on_append = callback

    @abstractmethod
    async def read_all(self) -> list[QueueEvent]:
        """Read every decodable record, in id order.

        Corrupt lines are skipped. A log that does not exist yet reads as empty.

        Raises:
            UnavailableError: If the backing store cannot be reached.
        """
        ...

    @abstractmethod
    async def _read_tail(self) -> LogTail:
        """Return the current tail for a conditional write.

        Raises:
            UnavailableError: If the backing store cannot be reached.
        """
        ...

    @abstractmethod
    async def _write_conditional(self, event: QueueEvent, tail: LogTail) -> None:
        """Persist ``event`` only if the log still ends at ``tail``.

        Raises:
            ConflictError: If another writer got there first.
            UnavailableError: If the backing store cannot be reached.
        """
        ...

    async def append(self, draft: EventDraft) -> QueueEvent:
        """Append an event, assigning it the next id.

        Args:
            draft: The event to write, without an id.

        Returns:
            The confirmed event carrying its assigned id.

        Raises:
            ConflictExhaustedError: If every attempt lost the race.
            UnavailableError: If the backing store cannot be reached.
        """
        for attempt in range(1, self._max_attempts + 1):
            tail = await self._read_tail()
            event = draft.with_id(tail.next_id)
            try:
                await self._write_conditional(event, tail)
            except ConflictError as e:
                logger.info(
                    LogTemplates.STORE_APPEND_CONFLICT,
                    e.attempted_id,
                    attempt,
                    self._max_attempts,
                )
                if attempt < self._max_attempts and self._retry_delay:
                    await asyncio.sleep(self._retry_delay * attempt)
                continue

            logger.debug(LogTemplates.STORE_APPENDED, event.type, event.id, self.location)
            await self._notify_appended(event)
            return event

        logger.warning(LogTemplates.STORE_APPEND_EXHAUSTED, draft.type.value, self._max_attempts)
        raise ConflictExhaustedError(self._max_attempts)

    async def compact_reorder(self, order: Sequence[int]) -> QueueEvent:
        """Record a complete ordering of queued ids as one ``reordered`` event."""
        return await self.append(EventDraft.reordered(order))

    async def close(self) -> None:
        """Release any resources held by the store."""
        return None

    async def _notify_appended(self, event: QueueEvent) -> None:
        if self._on_append is None:
            return
        try:
            await self._on_append(event)
        except Exception:
            logger.exception(LogTemplates.STORE_APPEND_CALLBACK_ERROR, event.id)
