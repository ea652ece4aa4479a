"""GitHub infrastructure - contents-backed event log, webhook push source and its relay."""

from room_queue.infrastructure.github.contents_store import GitHubEventLogStore
from room_queue.infrastructure.github.relay import WebhookRelayListener
from room_queue.infrastructure.github.webhook import GitHubWebhookPushSource, queue_path_touched

__all__ = [
    "GitHubEventLogStore",
    "GitHubWebhookPushSource",
    "WebhookRelayListener",
    "queue_path_touched",
]
