"""
Domain Layer

Contains pure queue logic:
- shared/: Cross-cutting exceptions, messages and constrained types
- queue/: Event model, projection, reorder compaction and the store port
"""

from room_queue.domain.shared.exceptions import DomainError

__all__ = [
    "DomainError",
]
