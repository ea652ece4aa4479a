"""Infrastructure layer - external systems integration.

This layer contains implementations for:
- Persistence (aiosqlite event log store)
- GitHub (contents-API event log store, webhook push source)
- Audio (yt-dlp resolver, ffplay engine)
"""

from room_queue.infrastructure.persistence.database import Database
from room_queue.infrastructure.persistence.sqlite_event_store import SQLiteEventLogStore

__all__ = [
    "Database",
    "SQLiteEventLogStore",
]
