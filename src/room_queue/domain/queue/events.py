"""Queue log events and their line-delimited JSON wire format.

Every record in the shared log is one JSON object on its own line::

    {"id":1,"type":"queued","url":"https://...","by":"Alex"}
    {"id":2,"type":"playing","ref":1,"title":"Song Title","url":"https://..."}

Events are immutable once written. ``EventDraft`` is the id-less form handed
to a store; the store assigns the id and returns the ``QueueEvent``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic import ValidationError as PydanticValidationError

from room_queue.domain.shared.exceptions import CorruptRecordError, ValidationError
from room_queue.domain.shared.messages import ErrorMessages, LogTemplates
from room_queue.domain.shared.types import EventId, NonEmptyStr

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Known event types. Records with any other type are ignored by readers."""

    QUEUED = "queued"
    PLAYING = "playing"
    PLAYED = "played"
    FAILED = "failed"
    SKIP = "skip"
    CLEARED = "cleared"
    REORDERED = "reordered"
    METADATA = "metadata"

    @property
    def requires_ref(self) -> bool:
        return self in _REF_REQUIRED

    @classmethod
    def parse(cls, value: str) -> EventType | None:
        try:
            return cls(value)
        except ValueError:
            return None


_REF_REQUIRED = frozenset(
    {EventType.PLAYING, EventType.PLAYED, EventType.FAILED, EventType.SKIP, EventType.METADATA}
)


class EventDraft(BaseModel):
    """An event that has not been assigned an id yet."""

    model_config = ConfigDict(frozen=True)

    type: EventType
    ref: EventId | None = None
    url: NonEmptyStr | None = None
    title: NonEmptyStr | None = None
    by: NonEmptyStr | None = None
    order: tuple[EventId, ...] | None = None

    @model_validator(mode="after")
    def _check_shape(self) -> EventDraft:
        if self.type.requires_ref and self.ref is None:
            raise ValueError(ErrorMessages.EVENT_REF_REQUIRED.format(event_type=self.type.value))
        if self.type is EventType.QUEUED and self.url is None:
            raise ValueError(ErrorMessages.EVENT_URL_REQUIRED.format(event_type=self.type.value))
        if self.type is EventType.REORDERED and self.order is None:
            raise ValueError(ErrorMessages.EVENT_ORDER_REQUIRED)
        if self.type is not EventType.REORDERED and self.order is not None:
            raise ValueError(ErrorMessages.EVENT_ORDER_ONLY_ON_REORDER)
        return self

    def with_id(self, event_id: int) -> QueueEvent:
        """Return the confirmed event carrying the store-assigned id."""
        return QueueEvent(id=event_id, **self.model_dump(mode="json", exclude_none=True))

    # ── Constructors ──────────────────────────────────────────────

    @classmethod
    def queued(cls, url: str, by: str | None = None) -> EventDraft:
        url = url.strip()
        if not url:
            raise ValidationError(ErrorMessages.EMPTY_TRACK_URL, field="url")
        return cls(type=EventType.QUEUED, url=url, by=by or None)

    @classmethod
    def playing(cls, ref: int, title: str | None, url: str) -> EventDraft:
        return cls(type=EventType.PLAYING, ref=ref, title=title or None, url=url)

    @classmethod
    def played(cls, ref: int) -> EventDraft:
        return cls(type=EventType.PLAYED, ref=ref)

    @classmethod
    def failed(cls, ref: int) -> EventDraft:
        return cls(type=EventType.FAILED, ref=ref)

    @classmethod
    def skip(cls, ref: int) -> EventDraft:
        return cls(type=EventType.SKIP, ref=ref)

    @classmethod
    def cleared(cls) -> EventDraft:
        return cls(type=EventType.CLEARED)

    @classmethod
    def reordered(cls, order: Sequence[int]) -> EventDraft:
        return cls(type=EventType.REORDERED, order=tuple(order))

    @classmethod
    def metadata(cls, ref: int, title: str, url: str | None = None) -> EventDraft:
        return cls(type=EventType.METADATA, ref=ref, title=title, url=url)


class QueueEvent(BaseModel):
    """A confirmed, immutable log record.

    ``type`` is kept as a plain string so records written by newer clients
    still decode; ``event_type`` is ``None`` for types this version does not
    know about.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: EventId
    type: NonEmptyStr
    ref: int | None = None
    url: str | None = None
    title: str | None = None
    by: str | None = None
    order: tuple[int, ...] | None = None

    @property
    def event_type(self) -> EventType | None:
        return EventType.parse(self.type)

    def to_line(self) -> str:
        return encode_line(self)


def encode_line(event: QueueEvent) -> str:
    """Serialize one event as a compact single-line JSON object."""
    data = event.model_dump(mode="json", exclude_none=True)
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def encode_log(events: Iterable[QueueEvent]) -> str:
    """Serialize events as newline-terminated NDJSON text."""
    return "".join(f"{encode_line(event)}\n" for event in events)


def decode_line(line: str) -> QueueEvent:
    """Parse one log line.

    Raises:
        CorruptRecordError: If the line is not a JSON object with a valid id and type.
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise CorruptRecordError(line, ErrorMessages.RECORD_INVALID_JSON.format(error=e)) from e
    if not isinstance(data, dict):
        raise CorruptRecordError(line, ErrorMessages.RECORD_NOT_OBJECT)
    try:
        return QueueEvent.model_validate(data)
    except PydanticValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise CorruptRecordError(line, ErrorMessages.RECORD_INVALID_FIELDS.format(error=errors)) from e


def decode_log(content: str | Iterable[str]) -> list[QueueEvent]:
    """Decode NDJSON content, skipping blank and corrupt lines.

    A corrupt line never aborts the read: it is logged and dropped so the
    rest of the log stays usable.
    """
    lines = content.splitlines() if isinstance(content, str) else content
    events: list[QueueEvent] = []
    for lineno, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line:
            continue
        try:
            events.append(decode_line(line))
        except CorruptRecordError as e:
            logger.warning(LogTemplates.RECORD_CORRUPT, lineno, e.reason)
    return events


def max_event_id(events: Iterable[QueueEvent]) -> int:
    return max((event.id for event in events), default=0)
