"""SQLite file (or shared in-memory database) that holds every room's event log."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite

from room_queue.domain.shared.constants import SQLPragmas
from room_queue.domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from ...config.settings import StoreSettings

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"
_SHARED_MEMORY_URI = "file:room-queue?mode=memory&cache=shared"

# The (room, id) primary key is what makes an append conditional.
_SCHEMA = """
CREATE TABLE IF NOT EXISTS queue_events (
    room TEXT NOT NULL,
    id INTEGER NOT NULL,
    record TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now')),
    PRIMARY KEY (room, id)
)
"""


class Database:
    """Opens a short-lived connection per operation.

    Errors from aiosqlite are left to the caller, which decides whether they
    mean "unavailable" or "conflict".
    """

    def __init__(self, url: str, settings: StoreSettings | None = None) -> None:
        self._db_path = url.removeprefix("sqlite:///")
        self._busy_timeout = settings.busy_timeout_ms if settings else 5000
        self._connection_timeout = settings.connection_timeout_s if settings else 10
        self._initialized = False
        # Holds a shared in-memory database open between operations.
        self._anchor: aiosqlite.Connection | None = None

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def in_memory(self) -> bool:
        return self._db_path == MEMORY_PATH

    async def initialize(self) -> None:
        if self._initialized:
            return

        if self.in_memory:
            if self._anchor is None:
                self._anchor = await self._open()
            await self._anchor.execute(_SCHEMA)
            await self._anchor.commit()
        else:
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            async with self.transaction() as conn:
                await conn.execute(_SCHEMA)

        self._initialized = True
        logger.info(LogTemplates.DATABASE_INITIALIZED, self._db_path)

    async def _open(self) -> aiosqlite.Connection:
        if self.in_memory:
            conn = await aiosqlite.connect(
                _SHARED_MEMORY_URI, uri=True, timeout=self._connection_timeout
            )
        else:
            conn = await aiosqlite.connect(self._db_path, timeout=self._connection_timeout)
        conn.row_factory = aiosqlite.Row
        await conn.execute(SQLPragmas.JOURNAL_MODE_WAL)
        await conn.execute(SQLPragmas.BUSY_TIMEOUT.format(timeout=self._busy_timeout))
        return conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Connection that commits on exit and rolls back if the block raises."""
        conn = await self._open()
        try:
            yield conn
            await conn.commit()
        except BaseException:
            await conn.rollback()
            raise
        finally:
            await conn.close()

    async def fetch_records(self, room: str) -> list[str]:
        """Every stored NDJSON line for ``room``, in id order."""
        conn = await self._open()
        try:
            cursor = await conn.execute(
                "SELECT record FROM queue_events WHERE room = ? ORDER BY id", (room,)
            )
            return [row["record"] for row in await cursor.fetchall()]
        finally:
            await conn.close()

    async def fetch_last_id(self, room: str) -> int:
        conn = await self._open()
        try:
            cursor = await conn.execute(
                "SELECT MAX(id) AS last_id FROM queue_events WHERE room = ?", (room,)
            )
            row = await cursor.fetchone()
        finally:
            await conn.close()
        return row["last_id"] if row and row["last_id"] is not None else 0

    async def insert_record(self, room: str, event_id: int, record: str) -> None:
        """Insert one line; raises ``aiosqlite.IntegrityError`` if the id is taken."""
        async with self.transaction() as conn:
            await conn.execute(
                "INSERT INTO queue_events (room, id, record) VALUES (?, ?, ?)",
                (room, event_id, record),
            )

    async def close(self) -> None:
        if self._anchor is not None:
            anchor, self._anchor = self._anchor, None
            await anchor.close()
        self._initialized = False
        logger.info(LogTemplates.DATABASE_CLOSED)
