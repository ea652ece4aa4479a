"""
Shared Domain Kernel

Contains exceptions, message constants and constrained types shared across the
queue domain.
"""

from room_queue.domain.shared.exceptions import (
    ConfigurationError,
    ConflictError,
    ConflictExhaustedError,
    CorruptRecordError,
    DomainError,
    InvalidOperationError,
    PlaybackError,
    UnavailableError,
    ValidationError,
)

__all__ = [
    "DomainError",
    "ValidationError",
    "ConfigurationError",
    "UnavailableError",
    "ConflictError",
    "ConflictExhaustedError",
    "CorruptRecordError",
    "PlaybackError",
    "InvalidOperationError",
]
