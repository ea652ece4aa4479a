"""
Queue Bounded Context

The shared append-only event log, its projection into queue state, and
reorder compaction.
"""

from room_queue.domain.queue.events import EventDraft, EventType, QueueEvent
from room_queue.domain.queue.projector import ClearPolicy, EventProjector
from room_queue.domain.queue.reorder import ReorderCompactor
from room_queue.domain.queue.repository import EventLogStore, LogTail
from room_queue.domain.queue.state import (
    HistoryEntry,
    NowPlaying,
    ProjectedState,
    QueueItem,
    QueueSnapshot,
)

__all__ = [
    # Events
    "EventType",
    "EventDraft",
    "QueueEvent",
    # State
    "QueueItem",
    "NowPlaying",
    "HistoryEntry",
    "ProjectedState",
    "QueueSnapshot",
    # Projection
    "ClearPolicy",
    "EventProjector",
    # Store
    "EventLogStore",
    "LogTail",
    # Services
    "ReorderCompactor",
]
