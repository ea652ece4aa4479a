"""SQLite implementation of the event log store.

Each record is stored verbatim as its NDJSON line, keyed by ``(room, id)``.
The primary key is the conditional write: two writers that computed the
same next id cannot both insert it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import aiosqlite

from room_queue.domain.queue.events import QueueEvent, decode_log
from room_queue.domain.queue.repository import (
    DEFAULT_APPEND_ATTEMPTS,
    DEFAULT_RETRY_DELAY,
    EventLogStore,
    LogTail,
)
from room_queue.domain.shared.exceptions import ConflictError, UnavailableError
from room_queue.domain.shared.messages import ErrorMessages, LogTemplates

if TYPE_CHECKING:
    from .database import Database

logger = logging.getLogger(__name__)


class SQLiteEventLogStore(EventLogStore):
    def __init__(
        self,
        database: Database,
        room: str,
        *,
        max_attempts: int = DEFAULT_APPEND_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        super().__init__(max_attempts=max_attempts, retry_delay=retry_delay)
        self._db = database
        self._room = room

    @property
    def location(self) -> str:
        return f"{self._db.db_path}#{self._room}"

    @property
    def room(self) -> str:
        return self._room

    async def read_all(self) -> list[QueueEvent]:
        try:
            await self._db.initialize()
            lines = await self._db.fetch_records(self._room)
        except (aiosqlite.Error, OSError) as e:
            logger.warning(LogTemplates.STORE_UNAVAILABLE, "read", e)
            raise UnavailableError(
                "read", ErrorMessages.STORE_READ_FAILED.format(error=e)
            ) from e

        events = decode_log(lines)
        logger.debug(LogTemplates.STORE_READ, len(events), self.location)
        return events

    async def _read_tail(self) -> LogTail:
        try:
            await self._db.initialize()
            last_id = await self._db.fetch_last_id(self._room)
        except (aiosqlite.Error, OSError) as e:
            logger.warning(LogTemplates.STORE_UNAVAILABLE, "append", e)
            raise UnavailableError(
                "append", ErrorMessages.STORE_READ_FAILED.format(error=e)
            ) from e
        return LogTail(last_id=last_id)

    async def _write_conditional(self, event: QueueEvent, tail: LogTail) -> None:
        try:
            await self._db.insert_record(self._room, event.id, event.to_line())
        except aiosqlite.IntegrityError as e:
            raise ConflictError(event.id) from e
        except (aiosqlite.Error, OSError) as e:
            logger.warning(LogTemplates.STORE_UNAVAILABLE, "append", e)
            raise UnavailableError(
                "append", ErrorMessages.STORE_WRITE_FAILED.format(error=e)
            ) from e
