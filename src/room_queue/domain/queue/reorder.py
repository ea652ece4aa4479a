"""Turns a drag-reorder gesture into a single ``reordered`` control event."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from room_queue.domain.queue.events import QueueEvent
from room_queue.domain.shared.exceptions import ValidationError
from room_queue.domain.shared.messages import ErrorMessages, LogTemplates

if TYPE_CHECKING:
    from room_queue.domain.queue.repository import EventLogStore
    from room_queue.domain.queue.state import ProjectedState

logger = logging.getLogger(__name__)


class ReorderCompactor:
    """Compacts a desired ordering of queued items into one ``reordered`` event.

    The event always carries the full id sequence of the items queued in the
    given state: ids the caller left out keep their current relative order
    after the ones it named. Queued items keep their identity (no new
    ``queued`` events) and now-playing or historical items are never touched.
    When several clients reorder at once the last ``reordered`` event in the
    log wins.
    """

    def __init__(self, store: EventLogStore) -> None:
        self._store = store

    def build(self, desired: Sequence[int], state: ProjectedState) -> tuple[int, ...] | None:
        """Return the complete order to record, or ``None`` if nothing would change.

        Raises:
            ValidationError: If ``desired`` repeats ids, names ids that are not
                queued, or names a local-only placeholder.
        """
        desired = tuple(desired)
        duplicates = sorted({ref for ref in desired if desired.count(ref) > 1})
        if duplicates:
            raise ValidationError(
                ErrorMessages.REORDER_DUPLICATE_IDS.format(ids=duplicates), field="order"
            )

        queued = [item for item in state.queue if not item.pending]
        if any(ref < 0 for ref in desired):
            raise ValidationError(ErrorMessages.REORDER_PENDING_ITEM, field="order")

        current = tuple(item.id for item in queued)
        unknown = [ref for ref in desired if ref not in current]
        if unknown:
            raise ValidationError(
                ErrorMessages.REORDER_UNKNOWN_IDS.format(ids=unknown), field="order"
            )

        mentioned = set(desired)
        order = desired + tuple(ref for ref in current if ref not in mentioned)
        if order == current:
            return None
        return order

    async def reorder(self, desired: Sequence[int], state: ProjectedState) -> QueueEvent | None:
        """Append the ``reordered`` event for ``desired`` against ``state``."""
        order = self.build(desired, state)
        if order is None:
            logger.debug(LogTemplates.CLIENT_REORDER_NOOP)
            return None
        return await self._store.compact_reorder(order)
