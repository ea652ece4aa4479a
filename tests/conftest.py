import pytest
import pytest_asyncio

from room_queue.application.interfaces.playback_engine import PlaybackEngine
from room_queue.application.interfaces.track_resolver import ResolvedTrack, TrackResolver
from room_queue.domain.queue.events import QueueEvent, decode_log, encode_log, max_event_id
from room_queue.domain.queue.repository import EventLogStore, LogTail
from room_queue.domain.shared.exceptions import ConflictError, PlaybackError, UnavailableError

# ============================================================================
# Test doubles
# ============================================================================


class InMemoryEventLogStore(EventLogStore):
    """Event log kept in a list, with knobs for simulating outages and races."""

    def __init__(self, **kwargs):
        kwargs.setdefault("retry_delay", 0)
        super().__init__(**kwargs)
        self.events: list[QueueEvent] = []
        self.fail_reads = 0
        self.fail_appends = 0
        self.forced_conflicts = 0
        self.read_count = 0
        self.append_attempts = 0

    @property
    def location(self) -> str:
        return "memory"

    def load(self, content: str) -> None:
        self.events = decode_log(content)

    def dump(self) -> str:
        return encode_log(self.events)

    async def read_all(self) -> list[QueueEvent]:
        self.read_count += 1
        if self.fail_reads:
            self.fail_reads -= 1
            raise UnavailableError("read", "simulated outage")
        return list(self.events)

    async def _read_tail(self) -> LogTail:
        if self.fail_appends:
            self.fail_appends -= 1
            raise UnavailableError("append", "simulated outage")
        return LogTail(last_id=max_event_id(self.events))

    async def _write_conditional(self, event, tail) -> None:
        self.append_attempts += 1
        if self.forced_conflicts:
            self.forced_conflicts -= 1
            raise ConflictError(event.id)
        if max_event_id(self.events) != tail.last_id:
            raise ConflictError(event.id)
        self.events.append(event)


class FakePlaybackEngine(PlaybackEngine):
    """Engine that records calls; tests drive completion and errors by hand."""

    def __init__(self):
        self.started: list[str] = []
        self.stop_calls = 0
        self.volume: int | None = None
        self.start_error: PlaybackError | None = None
        self._playing = False
        self._on_complete = None
        self._on_error = None

    async def start(self, url):
        if self.start_error is not None:
            raise self.start_error
        self.started.append(url)
        self._playing = True

    async def stop(self):
        self.stop_calls += 1
        self._playing = False

    def set_volume(self, level):
        self.volume = level

    def is_playing(self):
        return self._playing

    def set_on_complete_callback(self, callback):
        self._on_complete = callback

    def set_on_error_callback(self, callback):
        self._on_error = callback

    def finish(self):
        self._playing = False
        if self._on_complete:
            self._on_complete()

    def crash(self, message="decoder died"):
        self._playing = False
        if self._on_error:
            self._on_error(PlaybackError(message))


class FakeTrackResolver(TrackResolver):
    """Resolves every URL to a title derived from it unless told otherwise."""

    def __init__(self):
        self.unresolvable: set[str] = set()
        self.titles: dict[str, str] = {}
        self.calls: list[str] = []

    async def resolve(self, url):
        self.calls.append(url)
        if url in self.unresolvable:
            return None
        title = self.titles.get(url, f"Title of {url.rsplit('/', 1)[-1]}")
        return ResolvedTrack(title=title, url=url, stream_url=f"{url}#stream")


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def in_memory_database():
    """Create an in-memory SQLite database for testing."""
    from room_queue.infrastructure.persistence.database import Database

    db = Database(":memory:")
    await db.initialize()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def sqlite_store(in_memory_database):
    """Create a SQLite event log store for a test room."""
    from room_queue.infrastructure.persistence.sqlite_event_store import SQLiteEventLogStore

    return SQLiteEventLogStore(in_memory_database, "test-room", retry_delay=0)


# ============================================================================
# Component Fixtures
# ============================================================================


@pytest.fixture
def memory_store():
    return InMemoryEventLogStore()


@pytest.fixture
def projector():
    from room_queue.domain.queue.projector import EventProjector

    return EventProjector()


@pytest.fixture
def notifier():
    from room_queue.application.services.push_notifier import PushNotifier

    return PushNotifier()


@pytest.fixture
def fake_engine():
    return FakePlaybackEngine()


@pytest.fixture
def fake_resolver():
    return FakeTrackResolver()


@pytest.fixture
def sync_settings():
    from room_queue.config.settings import SyncSettings

    return SyncSettings(poll_interval_s=60.0, backoff_initial_s=0.01, backoff_max_s=0.05)


@pytest.fixture
def arbiter_settings():
    from room_queue.config.settings import ArbiterSettings

    return ArbiterSettings(
        enabled=True,
        idle_poll_s=0.01,
        skip_check_interval_s=0.01,
        backfill_titles=False,
        volume=70,
    )


# ============================================================================
# Sample log
# ============================================================================


SCENARIO_LOG = (
    '{"id":1,"type":"queued","url":"https://example.com/a","by":"Alex"}\n'
    '{"id":2,"type":"queued","url":"https://example.com/b"}\n'
    '{"id":3,"type":"queued","url":"https://example.com/c"}\n'
)


@pytest.fixture
def scenario_log():
    return SCENARIO_LOG
