"""Constrained field types shared by events, ports and settings."""

from __future__ import annotations

from typing import Annotated

from pydantic import Field

EventId = Annotated[int, Field(gt=0)]
"""Id the store assigns on append. Unique and increasing within one room."""

VolumeLevel = Annotated[int, Field(ge=0, le=100)]
"""Playback volume as a percentage."""

RoomNameStr = Annotated[str, Field(min_length=1, max_length=100, pattern=r"^[A-Za-z0-9._-]+$")]
"""Names a room's log. Also used in SQLite keys and GitHub file paths."""

NonEmptyStr = Annotated[str, Field(min_length=1)]
PositiveInt = Annotated[int, Field(gt=0)]
NonNegativeFloat = Annotated[float, Field(ge=0.0)]
PositiveFloat = Annotated[float, Field(gt=0.0)]

# Settings bounds

BusyTimeoutMs = Annotated[int, Field(ge=1000, le=30000)]
ConnectionTimeoutS = Annotated[int, Field(ge=1, le=60)]
AppendAttempts = Annotated[int, Field(ge=1, le=50)]
"""How many conditional writes one append may try before giving up."""
HistoryCapacity = Annotated[int, Field(ge=0, le=1000)]
