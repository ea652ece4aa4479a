"""Constants shared across the storage and transport adapters."""

from __future__ import annotations


class SQLPragmas:
    """SQLite PRAGMA statements applied to each connection."""

    JOURNAL_MODE_WAL = "PRAGMA journal_mode=WAL"
    BUSY_TIMEOUT = "PRAGMA busy_timeout={timeout}"


class GitHubAPI:
    """GitHub REST API details used by the contents-backed event log."""

    ACCEPT = "application/vnd.github+json"
    API_VERSION = "2022-11-28"
    CONTENTS_PATH = "/repos/{repo}/contents/{path}"
    BLOB_PATH = "/repos/{repo}/git/blobs/{sha}"
    HOOKS_PATH = "/repos/{repo}/hooks"
    RELAY_HOOK_NAME = "cli"
    COMMIT_MESSAGE = "queue: {event_type} #{event_id}"
    CONFLICT_STATUSES = frozenset({409, 422})
    PUSH_EVENT = "push"
