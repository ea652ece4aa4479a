"""Caller-facing façade over the shared queue log.

Every client process owns one ``QueueClient``. It keeps the last good
projection of the log, refreshes it on a timer and whenever a push hint
arrives, and turns the caller's actions into appended events.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from room_queue.application.services.poll_loop import PollLoop
from room_queue.domain.queue.events import EventDraft, QueueEvent
from room_queue.domain.queue.reorder import ReorderCompactor
from room_queue.domain.queue.state import ProjectedState, QueueItem, QueueSnapshot
from room_queue.domain.shared.exceptions import UnavailableError
from room_queue.domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from ...config.settings import SyncSettings
    from ...domain.queue.projector import EventProjector
    from ...domain.queue.repository import EventLogStore
    from .push_notifier import LogChanged, PushNotifier, Subscription

logger = logging.getLogger(__name__)


class QueueClient:
    """Enqueue, clear, skip and reorder against the log; serve cached state.

    Reads are re-entrant: the timer and push hints may overlap, and the
    result of the most recently started read wins. A failed read never
    clears the cache; it only marks it stale.
    """

    def __init__(
        self,
        *,
        store: EventLogStore,
        projector: EventProjector,
        notifier: PushNotifier,
        settings: SyncSettings,
        display_name: str | None = None,
    ) -> None:
        self._store = store
        self._projector = projector
        self._notifier = notifier
        self._settings = settings
        self._display_name = display_name
        self._compactor = ReorderCompactor(store)

        self._events: list[QueueEvent] = []
        self._state = ProjectedState()
        self._snapshot = QueueSnapshot()
        self._placeholders: list[QueueItem] = []
        self._placeholder_ids = itertools.count(-1, -1)

        self._read_seq = 0
        self._applied_seq = 0
        self._subscription: Subscription | None = None
        self._poll = PollLoop(
            name="queue-client",
            action=self.refresh,
            interval=settings.poll_interval_s,
            backoff_initial=settings.backoff_initial_s,
            backoff_max=settings.backoff_max_s,
        )

    # ── Lifecycle ─────────────────────────────────────────────────

    def start(self) -> None:
        if self._subscription is None:
            self._subscription = self._notifier.subscribe(self._on_log_changed)
        self._poll.start()

    async def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        await self._poll.stop()

    @property
    def is_running(self) -> bool:
        return self._poll.is_running

    # ── Reads ─────────────────────────────────────────────────────

    def get_state(self) -> QueueSnapshot:
        """Return the last good state. Never blocks and never raises."""
        return self._snapshot

    async def refresh(self) -> bool:
        """Read the whole log and replace the cached state.

        Returns:
            True if the read succeeded, False if the cache was kept as stale.
        """
        self._read_seq += 1
        seq = self._read_seq
        try:
            events = await self._store.read_all()
        except UnavailableError as e:
            logger.warning(LogTemplates.CLIENT_REFRESH_FAILED, e.message)
            self._snapshot = self._snapshot.model_copy(
                update={"stale": True, "last_error": e.message}
            )
            return False

        if seq <= self._applied_seq:
            logger.debug(LogTemplates.CLIENT_REFRESH_SUPERSEDED, seq, self._applied_seq)
            return True

        state = self._projector.project(events)
        if self._placeholders:
            logger.info(LogTemplates.CLIENT_PLACEHOLDERS_RECONCILED, len(self._placeholders))
            self._placeholders.clear()
        self._apply(seq, events, state)
        logger.debug(LogTemplates.CLIENT_REFRESHED, state.last_event_id, len(state.queue))
        return True

    # ── Actions ───────────────────────────────────────────────────

    async def enqueue(self, url: str, by: str | None = None) -> QueueItem:
        """Append a ``queued`` event for ``url``.

        When the log is unreachable the track is shown as a local-only
        placeholder until the next successful read replaces it.

        Raises:
            ValidationError: If ``url`` is blank.
            ConflictExhaustedError: If the append kept losing the race.
        """
        draft = EventDraft.queued(url, by=by or self._display_name)
        try:
            event = await self._store.append(draft)
        except UnavailableError as e:
            item = QueueItem(
                id=next(self._placeholder_ids), url=draft.url or url, by=draft.by, pending=True
            )
            self._placeholders.append(item)
            logger.warning(LogTemplates.CLIENT_PLACEHOLDER, item.url)
            self._snapshot = self._build_snapshot(stale=True, last_error=e.message)
            return item

        logger.info(LogTemplates.CLIENT_ENQUEUED, event.url, event.id)
        self._echo(event)
        return QueueItem(id=event.id, url=event.url or url, by=event.by)

    async def skip(self) -> QueueEvent | None:
        """Ask the arbiter to skip the current track. A no-op while idle."""
        state = self._state
        now = state.now_playing
        if now is None:
            logger.debug(LogTemplates.CLIENT_SKIP_NOOP, "nothing is playing")
            return None
        if state.skip_requested(now.ref, state.playing_event_id or 0):
            logger.debug(LogTemplates.CLIENT_SKIP_NOOP, "skip already requested")
            return None

        event = await self._append_degraded("skip", EventDraft.skip(now.ref))
        if event is not None:
            logger.info(LogTemplates.CLIENT_SKIP_REQUESTED, now.ref, event.id)
        return event

    async def clear(self) -> QueueEvent | None:
        event = await self._append_degraded("clear", EventDraft.cleared())
        if event is not None:
            logger.info(LogTemplates.CLIENT_CLEARED, event.id)
        return event

    async def reorder(self, order: Sequence[int]) -> QueueEvent | None:
        """Reorder queued items; ids left out keep their relative order after.

        Raises:
            ValidationError: If ``order`` is not compatible with the current queue.
            ConflictExhaustedError: If the append kept losing the race.
        """
        try:
            event = await self._compactor.reorder(order, self._state)
        except UnavailableError as e:
            logger.warning(LogTemplates.CLIENT_ACTION_DEGRADED, "reorder", e.message)
            return None
        if event is not None:
            logger.info(LogTemplates.CLIENT_REORDERED, event.id)
            self._echo(event)
        return event

    # ── Internals ─────────────────────────────────────────────────

    async def _append_degraded(self, action: str, draft: EventDraft) -> QueueEvent | None:
        try:
            event = await self._store.append(draft)
        except UnavailableError as e:
            logger.warning(LogTemplates.CLIENT_ACTION_DEGRADED, action, e.message)
            return None
        self._echo(event)
        return event

    def _echo(self, event: QueueEvent) -> None:
        """Fold our own confirmed event into the cache without waiting for a read."""
        self._read_seq += 1
        events = [*self._events, event]
        self._apply(self._read_seq, events, self._projector.project(events))

    def _apply(self, seq: int, events: list[QueueEvent], state: ProjectedState) -> None:
        self._applied_seq = seq
        self._events = events
        self._state = state
        self._snapshot = self._build_snapshot(
            stale=False, last_error=None, refreshed_at=datetime.now(UTC)
        )

    def _build_snapshot(
        self,
        *,
        stale: bool,
        last_error: str | None,
        refreshed_at: datetime | None = None,
    ) -> QueueSnapshot:
        state = self._state
        if self._placeholders:
            state = state.model_copy(update={"queue": state.queue + tuple(self._placeholders)})
        connected = refreshed_at is not None or self._snapshot.connected
        return QueueSnapshot(
            state=state,
            stale=stale,
            connected=connected,
            refreshed_at=refreshed_at or self._snapshot.refreshed_at,
            last_error=last_error,
        )

    async def _on_log_changed(self, change: LogChanged) -> None:
        logger.debug(LogTemplates.CLIENT_LOG_CHANGED, change.source)
        self._poll.trigger()
