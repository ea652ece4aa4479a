"""Playback Arbiter - the single consumer of the shared queue.

Exactly one arbiter may run per room. It takes items from the head of the
projected queue, drives the playback engine, and writes the outcome of each
item back into the log as ``playing``, ``played`` or ``failed`` events.
Nothing enforces the single-instance rule: two arbiters would both consume
the queue.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from ...domain.queue.events import EventDraft, EventType, QueueEvent
from ...domain.shared.exceptions import (
    ConflictExhaustedError,
    InvalidOperationError,
    PlaybackError,
    UnavailableError,
)
from ...domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from ...config.settings import ArbiterSettings
    from ...domain.queue.projector import EventProjector
    from ...domain.queue.repository import EventLogStore
    from ...domain.queue.state import ProjectedState, QueueItem
    from ..interfaces.playback_engine import PlaybackEngine
    from ..interfaces.track_resolver import TrackResolver
    from .push_notifier import LogChanged, PushNotifier, Subscription

logger = logging.getLogger(__name__)


class ArbiterState(Enum):
    """Arbiter states with enforced transitions.

    State transitions:
    - IDLE -> LOADING (queue head picked)
    - LOADING -> PLAYING (engine started, ``playing`` recorded)
    - LOADING -> IDLE (resolution or engine start failed)
    - PLAYING -> IDLE (completed, failed, skipped or cleared)
    """

    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"

    def can_transition_to(self, target: ArbiterState) -> bool:
        valid_transitions = {
            ArbiterState.IDLE: {ArbiterState.LOADING},
            ArbiterState.LOADING: {ArbiterState.PLAYING, ArbiterState.IDLE},
            ArbiterState.PLAYING: {ArbiterState.IDLE},
        }
        return target in valid_transitions.get(self, set())


@dataclass
class _CurrentItem:
    ref: int
    url: str
    title: str | None = None
    playing_event_id: int | None = None


class PlaybackArbiter:
    """Consumes the projected queue in order and records outcomes.

    Each call to ``run_once()`` advances the state machine by one step and
    returns how long the loop should wait before the next one. Outcome
    events that cannot be written are kept in an outbox and retried, in
    order, before any new event is written.
    """

    def __init__(
        self,
        *,
        store: EventLogStore,
        projector: EventProjector,
        engine: PlaybackEngine,
        resolver: TrackResolver,
        notifier: PushNotifier,
        settings: ArbiterSettings,
        room: str,
    ) -> None:
        self._store = store
        self._projector = projector
        self._engine = engine
        self._resolver = resolver
        self._notifier = notifier
        self._settings = settings
        self._room = room

        self._state = ArbiterState.IDLE
        self._current: _CurrentItem | None = None
        self._outcome: asyncio.Future[PlaybackError | None] | None = None
        self._outbox: deque[EventDraft] = deque()
        self._backfilled: set[int] = set()
        self._backfill_task: asyncio.Task | None = None

        self._loop: asyncio.AbstractEventLoop | None = None
        self._wake = asyncio.Event()
        self._subscription: Subscription | None = None
        self._running = False
        self._task: asyncio.Task | None = None

        self._engine.set_on_complete_callback(self._on_engine_complete)
        self._engine.set_on_error_callback(self._on_engine_error)

    # ── Introspection ─────────────────────────────────────────────

    @property
    def state(self) -> ArbiterState:
        return self._state

    @property
    def current_ref(self) -> int | None:
        return self._current.ref if self._current else None

    @property
    def outbox_size(self) -> int:
        return len(self._outbox)

    @property
    def is_running(self) -> bool:
        return self._running

    # ── Lifecycle ─────────────────────────────────────────────────

    def start(self) -> None:
        if self._running:
            logger.warning(LogTemplates.ARBITER_ALREADY_RUNNING)
            return

        self._running = True
        self._loop = asyncio.get_running_loop()
        self._subscription = self._notifier.subscribe(self._on_log_changed)
        self._task = asyncio.create_task(self._run_loop(), name=f"arbiter-{self._room}")
        logger.info(LogTemplates.ARBITER_STARTED, self._room)

    async def stop(self) -> None:
        self._running = False

        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

        for task in (self._task, self._backfill_task):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._backfill_task = None

        if self._current is not None:
            await self._halt()
            self._current = None
            self._state = ArbiterState.IDLE

        logger.info(LogTemplates.ARBITER_STOPPED)

    async def _run_loop(self) -> None:
        while self._running:
            try:
                delay = await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception(LogTemplates.ARBITER_STEP_ERROR)
                delay = self._settings.idle_poll_s

            if delay <= 0:
                continue
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=delay)
            except TimeoutError:
                pass
            except asyncio.CancelledError:
                break
            self._wake.clear()

    # ── State machine ─────────────────────────────────────────────

    async def run_once(self) -> float:
        """Advance one step. Returns seconds to wait before the next step."""
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        if self._state is ArbiterState.IDLE:
            return await self._idle_step()
        if self._state is ArbiterState.LOADING:
            return await self._loading_step()
        return await self._playing_step()

    async def _idle_step(self) -> float:
        if not await self._flush_outbox():
            return self._settings.idle_poll_s

        state = await self._read_state()
        if state is None:
            return self._settings.idle_poll_s

        now = state.now_playing
        if now is not None:
            if not self._settings.recover_orphaned_playback:
                logger.debug(LogTemplates.ARBITER_ORPHAN_WAITING, now.ref)
                return self._settings.idle_poll_s
            logger.warning(LogTemplates.ARBITER_ORPHAN_RECOVERED, now.ref)
            await self._record(EventDraft.failed(now.ref))
            return 0.0

        if self._settings.backfill_titles:
            self._schedule_backfill(state)

        head = state.head
        if head is None:
            return self._settings.idle_poll_s

        self._current = _CurrentItem(ref=head.id, url=head.url, title=head.title)
        logger.info(LogTemplates.ARBITER_PICKED, head.id, head.display_title)
        self._transition(ArbiterState.LOADING)
        return 0.0

    async def _loading_step(self) -> float:
        current = self._current
        if current is None:
            self._transition(ArbiterState.IDLE)
            return 0.0

        try:
            resolved = await self._resolver.resolve(current.url)
        except Exception:
            logger.exception(LogTemplates.ARBITER_RESOLVE_FAILED, current.ref, current.url)
            resolved = None

        if resolved is None:
            logger.warning(LogTemplates.ARBITER_RESOLVE_FAILED, current.ref, current.url)
            await self._record(EventDraft.failed(current.ref))
            self._finish()
            return 0.0

        current.title = resolved.title
        self._outcome = asyncio.get_running_loop().create_future()
        try:
            self._engine.set_volume(self._settings.volume)
            await self._engine.start(resolved.playable_url)
        except PlaybackError as e:
            logger.warning(LogTemplates.ARBITER_ENGINE_START_FAILED, current.ref, e.message)
            self._outcome = None
            await self._record(EventDraft.failed(current.ref))
            self._finish()
            return 0.0

        event = await self._record(EventDraft.playing(current.ref, current.title, current.url))
        if event is not None:
            current.playing_event_id = event.id
        logger.info(LogTemplates.ARBITER_PLAYING, current.ref, current.title)
        self._transition(ArbiterState.PLAYING)
        return 0.0

    async def _playing_step(self) -> float:
        current = self._current
        outcome = self._outcome
        if current is None or outcome is None:
            self._finish()
            return 0.0

        await self._flush_outbox()

        if not outcome.done():
            await self._wait_for_outcome(outcome)
        if outcome.done():
            await self._handle_outcome(current, outcome.result())
            return 0.0

        # Nobody can see or skip an item whose ``playing`` is still in the outbox.
        if current.playing_event_id is None:
            return 0.0

        state = await self._read_state()
        if state is None or state.last_event_id < current.playing_event_id:
            return 0.0

        now = state.now_playing
        if now is None or now.ref != current.ref:
            logger.info(LogTemplates.ARBITER_INTERRUPTED, current.ref)
            await self._halt()
            self._finish()
            return 0.0

        if state.skip_requested(current.ref, current.playing_event_id):
            logger.info(LogTemplates.ARBITER_SKIPPED, current.ref)
            await self._halt()
            await self._record(EventDraft.played(current.ref))
            self._finish()
        return 0.0

    async def _wait_for_outcome(self, outcome: asyncio.Future[PlaybackError | None]) -> None:
        wake = asyncio.ensure_future(self._wake.wait())
        try:
            await asyncio.wait(
                {outcome, wake},
                timeout=self._settings.skip_check_interval_s,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            wake.cancel()
        self._wake.clear()

    async def _handle_outcome(self, current: _CurrentItem, error: PlaybackError | None) -> None:
        self._outcome = None
        if error is None:
            logger.info(LogTemplates.ARBITER_COMPLETED, current.ref)
            await self._record(EventDraft.played(current.ref))
        else:
            logger.warning(LogTemplates.ARBITER_ENGINE_ERROR, current.ref, error.message)
            await self._record(EventDraft.failed(current.ref))
        self._finish()

    def _transition(self, target: ArbiterState) -> None:
        if not self._state.can_transition_to(target):
            raise InvalidOperationError(f"transition to {target.value}", self._state.value)
        logger.debug(LogTemplates.ARBITER_TRANSITION, self._state.value, target.value)
        self._state = target

    def _finish(self) -> None:
        self._current = None
        self._outcome = None
        if self._state is not ArbiterState.IDLE:
            self._transition(ArbiterState.IDLE)

    async def _halt(self) -> None:
        # Dropping the future first keeps a late callback from resolving it.
        self._outcome = None
        await self._engine.stop()

    # ── Log access ────────────────────────────────────────────────

    async def _read_state(self) -> ProjectedState | None:
        try:
            events = await self._store.read_all()
        except UnavailableError as e:
            logger.warning(LogTemplates.ARBITER_READ_FAILED, e.message)
            return None
        return self._projector.project(events)

    async def _record(self, draft: EventDraft) -> QueueEvent | None:
        """Append an outcome event, deferring it to the outbox if the log is unreachable."""
        if self._outbox and not await self._flush_outbox():
            self._outbox.append(draft)
            return None

        try:
            return await self._store.append(draft)
        except (UnavailableError, ConflictExhaustedError) as e:
            logger.warning(LogTemplates.ARBITER_RECORD_FAILED, draft.type.value, draft.ref, e.message)
            self._outbox.append(draft)
            return None

    async def _flush_outbox(self) -> bool:
        flushed = 0
        while self._outbox:
            draft = self._outbox[0]
            try:
                event = await self._store.append(draft)
            except (UnavailableError, ConflictExhaustedError) as e:
                logger.warning(
                    LogTemplates.ARBITER_RECORD_FAILED, draft.type.value, draft.ref, e.message
                )
                return False
            self._outbox.popleft()
            flushed += 1

            current = self._current
            if draft.type is EventType.PLAYING and current is not None and current.ref == draft.ref:
                current.playing_event_id = event.id

        if flushed:
            logger.info(LogTemplates.ARBITER_OUTBOX_FLUSHED, flushed)
        return True

    # ── Title backfill ────────────────────────────────────────────

    def _schedule_backfill(self, state: ProjectedState) -> None:
        # Only ids still queued can come up again.
        self._backfilled.intersection_update(item.id for item in state.queue)
        if self._backfill_task is not None and not self._backfill_task.done():
            return

        candidates = [
            item
            for item in state.queue[1:]
            if item.title is None and not item.pending and item.id not in self._backfilled
        ][: self._settings.backfill_batch_size]
        if not candidates:
            return

        self._backfilled.update(item.id for item in candidates)
        self._backfill_task = asyncio.create_task(self._backfill(candidates))

    async def _backfill(self, items: list[QueueItem]) -> None:
        for item in items:
            try:
                resolved = await self._resolver.resolve(item.url)
            except Exception:
                logger.exception(LogTemplates.ARBITER_TITLE_BACKFILL_FAILED, item.id)
                continue
            if resolved is None:
                logger.warning(LogTemplates.ARBITER_TITLE_BACKFILL_FAILED, item.id)
                continue

            try:
                await self._store.append(EventDraft.metadata(item.id, resolved.title, item.url))
            except (UnavailableError, ConflictExhaustedError) as e:
                logger.warning(
                    LogTemplates.ARBITER_RECORD_FAILED, EventType.METADATA.value, item.id, e.message
                )
                continue
            logger.info(LogTemplates.ARBITER_TITLE_BACKFILLED, item.id, resolved.title)

    # ── Callbacks ─────────────────────────────────────────────────

    def _on_engine_complete(self) -> None:
        self._post_outcome(None)

    def _on_engine_error(self, error: PlaybackError) -> None:
        self._post_outcome(error)

    def _post_outcome(self, error: PlaybackError | None) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._set_outcome, error)

    def _set_outcome(self, error: PlaybackError | None) -> None:
        outcome = self._outcome
        if outcome is None or outcome.done():
            return
        outcome.set_result(error)
        self._wake.set()

    async def _on_log_changed(self, change: LogChanged) -> None:
        self._wake.set()
