"""Base exception classes for domain-level errors."""

from __future__ import annotations


class DomainError(Exception):
    """Base exception for all domain-level errors."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__


class ValidationError(DomainError):
    """Raised when domain validation fails."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, code="VALIDATION_ERROR")
        self.field = field


class ConfigurationError(DomainError):
    """Raised when the configured store or collaborators cannot be used at all."""

    def __init__(self, message: str, setting: str | None = None) -> None:
        super().__init__(message, code="CONFIGURATION_ERROR")
        self.setting = setting


class UnavailableError(DomainError):
    """Raised when the event log cannot be read or written right now.

    Transient by definition: callers retry with backoff and keep serving
    their last good state in the meantime.
    """

    def __init__(self, operation: str, message: str | None = None) -> None:
        msg = message or f"Event log unavailable during {operation}"
        super().__init__(msg, code="STORE_UNAVAILABLE")
        self.operation = operation


class ConflictError(DomainError):
    """Raised when a conditional write lost the race for the next event id."""

    def __init__(self, attempted_id: int, message: str | None = None) -> None:
        msg = message or f"Event id {attempted_id} was taken by another writer"
        super().__init__(msg, code="APPEND_CONFLICT")
        self.attempted_id = attempted_id


class ConflictExhaustedError(DomainError):
    """Raised when an append kept conflicting for every allowed attempt."""

    def __init__(self, attempts: int, message: str | None = None) -> None:
        msg = message or f"Append gave up after {attempts} conflicting attempts"
        super().__init__(msg, code="APPEND_CONFLICT_EXHAUSTED")
        self.attempts = attempts


class CorruptRecordError(DomainError):
    """Raised when a log line cannot be decoded into an event."""

    def __init__(self, line: str, reason: str | None = None) -> None:
        preview = line if len(line) <= 80 else f"{line[:77]}..."
        msg = f"Corrupt log record {preview!r}" + (f": {reason}" if reason else "")
        super().__init__(msg, code="CORRUPT_RECORD")
        self.line = line
        self.reason = reason


class PlaybackError(DomainError):
    """Raised when the playback engine cannot start or dies mid-track."""

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message, code="PLAYBACK_ERROR")
        self.url = url


class InvalidOperationError(DomainError):
    """Raised when an operation is invalid in the current state."""

    def __init__(self, operation: str, current_state: str, message: str | None = None) -> None:
        msg = message or f"Cannot perform '{operation}' in state '{current_state}'"
        super().__init__(msg, code="INVALID_OPERATION")
        self.operation = operation
        self.current_state = current_state
