"""Unit tests for event log stores.

Tests for the conditional append loop and the SQLite backend.
"""

from __future__ import annotations

import asyncio

import pytest
from conftest import InMemoryEventLogStore

from room_queue.domain.queue.events import EventDraft, EventType
from room_queue.domain.shared.exceptions import ConflictExhaustedError, UnavailableError


class TestAppendLoop:
    """Tests for EventLogStore.append against the in-memory double."""

    @pytest.mark.asyncio
    async def test_first_append_gets_id_one(self, memory_store):
        event = await memory_store.append(EventDraft.queued("https://example.com/a"))

        assert event.id == 1
        assert memory_store.events == [event]

    @pytest.mark.asyncio
    async def test_ids_increase_by_one(self, memory_store):
        first = await memory_store.append(EventDraft.queued("https://example.com/a"))
        second = await memory_store.append(EventDraft.cleared())

        assert (first.id, second.id) == (1, 2)

    @pytest.mark.asyncio
    async def test_conflict_retries_with_fresh_tail(self, memory_store):
        memory_store.forced_conflicts = 2

        event = await memory_store.append(EventDraft.queued("https://example.com/a"))

        assert event.id == 1
        assert memory_store.append_attempts == 3

    @pytest.mark.asyncio
    async def test_conflict_exhausted_after_max_attempts(self):
        store = InMemoryEventLogStore(max_attempts=3)
        store.forced_conflicts = 10

        with pytest.raises(ConflictExhaustedError) as exc:
            await store.append(EventDraft.cleared())

        assert exc.value.attempts == 3
        assert store.events == []

    @pytest.mark.asyncio
    async def test_unavailable_propagates(self, memory_store):
        memory_store.fail_appends = 1

        with pytest.raises(UnavailableError):
            await memory_store.append(EventDraft.cleared())

    @pytest.mark.asyncio
    async def test_callback_receives_confirmed_event(self, memory_store):
        seen = []

        async def on_append(event):
            seen.append(event.id)

        memory_store.set_on_append_callback(on_append)
        await memory_store.append(EventDraft.cleared())

        assert seen == [1]

    @pytest.mark.asyncio
    async def test_callback_error_does_not_fail_append(self, memory_store, caplog):
        async def on_append(event):
            raise RuntimeError("listener broke")

        memory_store.set_on_append_callback(on_append)
        event = await memory_store.append(EventDraft.cleared())

        assert event.id == 1
        assert "append callback" in caplog.text

    @pytest.mark.asyncio
    async def test_compact_reorder_appends_one_event(self, memory_store):
        event = await memory_store.compact_reorder([3, 1, 2])

        assert event.event_type is EventType.REORDERED
        assert event.order == (3, 1, 2)


class TestSQLiteEventLogStore:
    """Tests for SQLiteEventLogStore."""

    @pytest.mark.asyncio
    async def test_empty_log_reads_as_empty(self, sqlite_store):
        assert await sqlite_store.read_all() == []

    @pytest.mark.asyncio
    async def test_append_then_read(self, sqlite_store):
        await sqlite_store.append(EventDraft.queued("https://example.com/a", by="Alex"))
        await sqlite_store.append(EventDraft.playing(1, "Song", "https://example.com/a"))

        events = await sqlite_store.read_all()

        assert [e.type for e in events] == ["queued", "playing"]
        assert events[0].by == "Alex"
        assert events[1].ref == 1

    @pytest.mark.asyncio
    async def test_rooms_are_isolated(self, in_memory_database, sqlite_store):
        from room_queue.infrastructure.persistence.sqlite_event_store import (
            SQLiteEventLogStore,
        )

        other = SQLiteEventLogStore(in_memory_database, "other-room", retry_delay=0)
        await sqlite_store.append(EventDraft.cleared())

        event = await other.append(EventDraft.cleared())

        assert event.id == 1
        assert len(await sqlite_store.read_all()) == 1

    @pytest.mark.asyncio
    async def test_location_names_room(self, sqlite_store):
        assert sqlite_store.location.endswith("#test-room")

    @pytest.mark.asyncio
    async def test_concurrent_appends_get_distinct_ids(self, tmp_path):
        from room_queue.infrastructure.persistence.database import Database
        from room_queue.infrastructure.persistence.sqlite_event_store import (
            SQLiteEventLogStore,
        )

        path = str(tmp_path / "queue.db")
        writers = [
            SQLiteEventLogStore(Database(path), "room", max_attempts=10, retry_delay=0)
            for _ in range(4)
        ]

        events = await asyncio.gather(
            *(
                store.append(EventDraft.queued(f"https://example.com/{n}"))
                for n, store in enumerate(writers)
            )
        )

        ids = sorted(e.id for e in events)
        assert ids == [1, 2, 3, 4]
        stored = await writers[0].read_all()
        assert [e.id for e in stored] == ids

    @pytest.mark.asyncio
    async def test_taken_id_is_retried(self, in_memory_database, sqlite_store):
        from room_queue.domain.queue.repository import LogTail

        await sqlite_store.append(EventDraft.cleared())

        stale = LogTail(last_id=0)
        calls = []
        original = sqlite_store._read_tail

        async def stale_then_fresh():
            calls.append(1)
            if len(calls) == 1:
                return stale
            return await original()

        sqlite_store._read_tail = stale_then_fresh
        event = await sqlite_store.append(EventDraft.cleared())

        assert event.id == 2
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_corrupt_rows_are_skipped(self, in_memory_database, sqlite_store):
        await sqlite_store.append(EventDraft.cleared())
        await in_memory_database.insert_record("test-room", 2, "{not json")

        events = await sqlite_store.read_all()

        assert [e.id for e in events] == [1]

    @pytest.mark.asyncio
    async def test_unreachable_database_is_unavailable(self, tmp_path):
        from room_queue.infrastructure.persistence.database import Database
        from room_queue.infrastructure.persistence.sqlite_event_store import (
            SQLiteEventLogStore,
        )

        # A directory cannot be opened as a database file.
        blocked = tmp_path / "log.db"
        blocked.mkdir()
        store = SQLiteEventLogStore(Database(str(blocked)), "room", retry_delay=0)

        with pytest.raises(UnavailableError):
            await store.read_all()


class TestDatabase:
    """Tests for the Database connection manager."""

    @pytest.mark.asyncio
    async def test_initialize_creates_table(self, in_memory_database):
        assert await in_memory_database.fetch_last_id("empty-room") == 0
        assert in_memory_database.is_initialized

    @pytest.mark.asyncio
    async def test_url_prefix_is_stripped(self, tmp_path):
        from room_queue.infrastructure.persistence.database import Database

        db = Database(f"sqlite:///{tmp_path}/queue.db")

        assert db.db_path == f"{tmp_path}/queue.db"

    @pytest.mark.asyncio
    async def test_file_database_persists_between_instances(self, tmp_path):
        from room_queue.infrastructure.persistence.database import Database
        from room_queue.infrastructure.persistence.sqlite_event_store import (
            SQLiteEventLogStore,
        )

        path = str(tmp_path / "nested" / "queue.db")
        first = SQLiteEventLogStore(Database(path), "room", retry_delay=0)
        await first.append(EventDraft.queued("https://example.com/a"))

        second = SQLiteEventLogStore(Database(path), "room", retry_delay=0)
        events = await second.read_all()

        assert [e.url for e in events] == ["https://example.com/a"]

    @pytest.mark.asyncio
    async def test_transaction_rolls_back_on_error(self, in_memory_database):
        with pytest.raises(RuntimeError):
            async with in_memory_database.transaction() as conn:
                await conn.execute(
                    "INSERT INTO queue_events (room, id, record) VALUES ('r', 1, '{}')"
                )
                raise RuntimeError("boom")

        assert await in_memory_database.fetch_records("r") == []

    @pytest.mark.asyncio
    async def test_insert_of_taken_id_raises_integrity_error(self, in_memory_database):
        import aiosqlite

        await in_memory_database.insert_record("r", 1, '{"id":1}')

        with pytest.raises(aiosqlite.IntegrityError):
            await in_memory_database.insert_record("r", 1, '{"id":1}')

        assert await in_memory_database.fetch_last_id("r") == 1
        assert await in_memory_database.fetch_records("r") == ['{"id":1}']

    @pytest.mark.asyncio
    async def test_rooms_are_kept_apart(self, in_memory_database):
        await in_memory_database.insert_record("a", 1, "one")
        await in_memory_database.insert_record("b", 1, "uno")
        await in_memory_database.insert_record("a", 2, "two")

        assert await in_memory_database.fetch_records("a") == ["one", "two"]
        assert await in_memory_database.fetch_last_id("b") == 1
