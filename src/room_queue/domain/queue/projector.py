"""Deterministic fold of the event log into ``ProjectedState``."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum

from room_queue.domain.queue.events import EventType, QueueEvent, decode_log
from room_queue.domain.queue.state import HistoryEntry, NowPlaying, ProjectedState, QueueItem
from room_queue.domain.shared.messages import LogTemplates

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_CAPACITY = 20


class ClearPolicy(StrEnum):
    """Whether a ``cleared`` event also empties the in-memory history."""

    PRESERVE_HISTORY = "preserve_history"
    PURGE_HISTORY = "purge_history"


@dataclass
class _Fold:
    """Mutable accumulator used while folding; never escapes ``project``."""

    history_capacity: int
    queue: list[QueueItem] = field(default_factory=list)
    now_playing: NowPlaying | None = None
    playing_event_id: int | None = None
    history: deque[HistoryEntry] = field(init=False)
    pending_skips: dict[int, int] = field(default_factory=dict)
    last_event_id: int = 0

    def __post_init__(self) -> None:
        self.history = deque(maxlen=self.history_capacity)

    def find_queued(self, ref: int | None) -> int | None:
        if ref is None:
            return None
        for index, item in enumerate(self.queue):
            if item.id == ref:
                return index
        return None

    def freeze(self) -> ProjectedState:
        return ProjectedState(
            queue=tuple(self.queue),
            now_playing=self.now_playing,
            history=tuple(self.history),
            last_event_id=self.last_event_id,
            playing_event_id=self.playing_event_id,
            pending_skips=dict(self.pending_skips),
        )


class EventProjector:
    """Folds events, strictly in ascending id order, into the current state.

    The fold is a pure function of its input: the same events always give the
    same state. Records that break the log's invariants (a ``played`` for an
    item that was never queued, a second event with an already-seen id, an
    unknown type) are logged and skipped, never raised.
    """

    def __init__(
        self,
        *,
        history_capacity: int = DEFAULT_HISTORY_CAPACITY,
        clear_policy: ClearPolicy | str = ClearPolicy.PRESERVE_HISTORY,
    ) -> None:
        self._history_capacity = history_capacity
        self._clear_policy = ClearPolicy(clear_policy)

    @property
    def clear_policy(self) -> ClearPolicy:
        return self._clear_policy

    def project(self, events: Iterable[QueueEvent]) -> ProjectedState:
        fold = _Fold(history_capacity=self._history_capacity)
        seen: set[int] = set()
        count = 0

        for event in sorted(events, key=lambda e: e.id):
            if event.id in seen:
                logger.warning(LogTemplates.RECORD_DUPLICATE_ID, event.id)
                continue
            seen.add(event.id)
            fold.last_event_id = event.id
            count += 1
            self._apply(fold, event)

        state = fold.freeze()
        logger.debug(
            LogTemplates.PROJECTION_DONE,
            count,
            len(state.queue),
            state.now_playing.ref if state.now_playing else None,
            len(state.history),
        )
        return state

    def project_records(self, content: str | Iterable[str]) -> ProjectedState:
        """Decode raw NDJSON (skipping corrupt lines) and fold it."""
        return self.project(decode_log(content))

    def _apply(self, fold: _Fold, event: QueueEvent) -> None:
        event_type = event.event_type
        if event_type is None:
            logger.debug(LogTemplates.PROJECTION_UNKNOWN_TYPE, event.id, event.type)
            return

        handler = {
            EventType.QUEUED: self._on_queued,
            EventType.PLAYING: self._on_playing,
            EventType.PLAYED: self._on_played,
            EventType.FAILED: self._on_failed,
            EventType.SKIP: self._on_skip,
            EventType.CLEARED: self._on_cleared,
            EventType.REORDERED: self._on_reordered,
            EventType.METADATA: self._on_metadata,
        }[event_type]
        handler(fold, event)

    def _on_queued(self, fold: _Fold, event: QueueEvent) -> None:
        if not event.url:
            logger.warning(LogTemplates.PROJECTION_MISSING_URL, event.id)
            return
        # Titles arrive later through ``metadata`` or ``playing``, never on enqueue.
        fold.queue.append(QueueItem(id=event.id, url=event.url, title=None, by=event.by))

    def _on_playing(self, fold: _Fold, event: QueueEvent) -> None:
        index = fold.find_queued(event.ref)
        if index is None or event.ref is None:
            logger.warning(LogTemplates.PROJECTION_INVALID_REF, event.type, event.id, event.ref)
            return

        item = fold.queue.pop(index)
        if fold.now_playing is not None:
            logger.warning(LogTemplates.PROJECTION_SUPERSEDED, event.id, fold.now_playing.ref)

        fold.now_playing = NowPlaying(
            title=event.title or item.title,
            url=event.url or item.url,
            ref=item.id,
            by=item.by,
        )
        fold.playing_event_id = event.id

    def _on_played(self, fold: _Fold, event: QueueEvent) -> None:
        now = fold.now_playing
        if now is not None and now.ref == event.ref:
            fold.history.append(HistoryEntry(url=now.url, title=now.title, by=now.by))
            fold.now_playing = None
            fold.playing_event_id = None
            fold.pending_skips.pop(now.ref, None)
            return

        index = fold.find_queued(event.ref)
        if index is None:
            logger.warning(LogTemplates.PROJECTION_INVALID_REF, event.type, event.id, event.ref)
            return
        item = fold.queue.pop(index)
        fold.history.append(HistoryEntry(url=item.url, title=item.title, by=item.by))

    def _on_failed(self, fold: _Fold, event: QueueEvent) -> None:
        now = fold.now_playing
        if now is not None and now.ref == event.ref:
            fold.pending_skips.pop(now.ref, None)
            fold.now_playing = None
            fold.playing_event_id = None
            return

        index = fold.find_queued(event.ref)
        if index is None:
            logger.warning(LogTemplates.PROJECTION_INVALID_REF, event.type, event.id, event.ref)
            return
        fold.queue.pop(index)

    def _on_skip(self, fold: _Fold, event: QueueEvent) -> None:
        # A request for the arbiter; it changes nothing the UI shows.
        if event.ref is not None:
            fold.pending_skips[event.ref] = event.id

    def _on_cleared(self, fold: _Fold, event: QueueEvent) -> None:
        fold.queue.clear()
        fold.now_playing = None
        fold.playing_event_id = None
        fold.pending_skips.clear()
        if self._clear_policy is ClearPolicy.PURGE_HISTORY and fold.history:
            logger.debug(LogTemplates.PROJECTION_HISTORY_PURGED, event.id, len(fold.history))
            fold.history.clear()

    def _on_reordered(self, fold: _Fold, event: QueueEvent) -> None:
        order = event.order
        if not order or len(set(order)) != len(order):
            logger.warning(LogTemplates.PROJECTION_REORDER_MALFORMED, event.id)
            return

        by_id = {item.id: item for item in fold.queue}
        missing = [ref for ref in order if ref not in by_id]
        if missing:
            logger.warning(LogTemplates.PROJECTION_REORDER_IGNORED, event.id, missing)
            return

        mentioned = set(order)
        fold.queue = [by_id[ref] for ref in order] + [
            item for item in fold.queue if item.id not in mentioned
        ]

    def _on_metadata(self, fold: _Fold, event: QueueEvent) -> None:
        if not event.title:
            return
        index = fold.find_queued(event.ref)
        if index is not None:
            fold.queue[index] = fold.queue[index].model_copy(update={"title": event.title})
            return
        now = fold.now_playing
        if now is not None and now.ref == event.ref and not now.title:
            fold.now_playing = now.model_copy(update={"title": event.title})
