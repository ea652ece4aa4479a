"""Dependency Injection Container

Manages the application's dependency graph, providing lazy initialization
and lifecycle management for the store, projector, client, arbiter and
their adapters. Components are created on-demand and cached for reuse.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..domain.shared.exceptions import ConfigurationError
from ..domain.shared.messages import ErrorMessages

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from ..application.interfaces.playback_engine import PlaybackEngine
    from ..application.interfaces.track_resolver import TrackResolver
    from ..application.services.playback_arbiter import PlaybackArbiter
    from ..application.services.push_notifier import PushNotifier
    from ..application.services.queue_client import QueueClient
    from ..domain.queue.events import QueueEvent
    from ..domain.queue.projector import EventProjector
    from ..domain.queue.repository import EventLogStore
    from ..infrastructure.github.relay import WebhookRelayListener
    from ..infrastructure.github.webhook import GitHubWebhookPushSource
    from ..infrastructure.persistence.database import Database
    from .settings import Settings


@dataclass
class Container:
    """Dependency injection container.

    Components are lazily initialized when first accessed.
    """

    settings: Settings

    # Persistence layer
    _database: Database | None = None
    _event_store: EventLogStore | None = None

    # Domain services
    _projector: EventProjector | None = None

    # Infrastructure adapters
    _playback_engine: PlaybackEngine | None = None
    _track_resolver: TrackResolver | None = None
    _webhook_source: GitHubWebhookPushSource | None = None
    _webhook_relay: WebhookRelayListener | None = None

    # Application services
    _push_notifier: PushNotifier | None = None
    _queue_client: QueueClient | None = None
    _playback_arbiter: PlaybackArbiter | None = None

    # === Persistence ===

    @property
    def database(self) -> Database:
        """Get the SQLite database connection manager."""
        if self._database is None:
            from ..infrastructure.persistence.database import Database

            self._database = Database(self.settings.store.url, settings=self.settings.store)
        return self._database

    @property
    def event_store(self) -> EventLogStore:
        """Get the event log store for the configured backend and room."""
        if self._event_store is None:
            store = self._create_event_store()
            if self.settings.push.enabled:
                store.set_on_append_callback(self._announce_append)
            self._event_store = store
        return self._event_store

    def _create_event_store(self) -> EventLogStore:
        store_settings = self.settings.store

        if store_settings.backend == "sqlite":
            from ..infrastructure.persistence.sqlite_event_store import SQLiteEventLogStore

            return SQLiteEventLogStore(
                self.database,
                self.settings.room,
                max_attempts=store_settings.append_max_attempts,
                retry_delay=store_settings.append_retry_delay_s,
            )

        if store_settings.backend == "github":
            if not store_settings.github_repo:
                raise ConfigurationError(ErrorMessages.GITHUB_REPO_REQUIRED, "store.github_repo")
            token = store_settings.github_token.get_secret_value()
            if not token:
                raise ConfigurationError(ErrorMessages.GITHUB_TOKEN_REQUIRED, "store.github_token")

            from ..infrastructure.github.contents_store import GitHubEventLogStore

            return GitHubEventLogStore(
                repo=store_settings.github_repo,
                path=store_settings.github_path,
                token=token,
                api_url=store_settings.github_api_url,
                branch=store_settings.github_branch,
                timeout=store_settings.request_timeout_s,
                max_attempts=store_settings.append_max_attempts,
                retry_delay=store_settings.append_retry_delay_s,
            )

        raise ConfigurationError(
            ErrorMessages.UNKNOWN_STORE_BACKEND.format(backend=store_settings.backend),
            "store.backend",
        )

    async def _announce_append(self, event: QueueEvent) -> None:
        await self.push_notifier.notify("local", event.id)

    # === Domain Services ===

    @property
    def projector(self) -> EventProjector:
        if self._projector is None:
            from ..domain.queue.projector import EventProjector

            self._projector = EventProjector(
                history_capacity=self.settings.sync.history_capacity,
                clear_policy=self.settings.sync.clear_policy,
            )
        return self._projector

    # === Infrastructure Adapters ===

    @property
    def playback_engine(self) -> PlaybackEngine:
        """Get the local playback engine."""
        if self._playback_engine is None:
            from ..infrastructure.audio.ffplay_engine import FFplayEngine

            self._playback_engine = FFplayEngine(self.settings.arbiter.player_path)
        return self._playback_engine

    @property
    def track_resolver(self) -> TrackResolver:
        """Get the track resolver."""
        if self._track_resolver is None:
            from ..infrastructure.audio.ytdlp_resolver import YtDlpTrackResolver

            self._track_resolver = YtDlpTrackResolver(self.settings.arbiter.ytdlp_format)
        return self._track_resolver

    @property
    def webhook_source(self) -> GitHubWebhookPushSource:
        """Get the webhook push source for the configured repository and log path."""
        if self._webhook_source is None:
            from ..infrastructure.github.webhook import GitHubWebhookPushSource

            self._webhook_source = GitHubWebhookPushSource(
                self.push_notifier,
                repo=self.settings.webhook_repo,
                path=self.settings.webhook_path,
            )
        return self._webhook_source

    @property
    def webhook_relay(self) -> WebhookRelayListener:
        """Get the websocket relay that feeds the webhook source."""
        if self._webhook_relay is None:
            token = self.settings.store.github_token.get_secret_value()
            if not token:
                raise ConfigurationError(ErrorMessages.GITHUB_TOKEN_REQUIRED, "store.github_token")

            from ..infrastructure.github.relay import WebhookRelayListener

            push = self.settings.push
            self._webhook_relay = WebhookRelayListener(
                self.webhook_source,
                repo=self.settings.webhook_repo,
                token=token,
                api_url=self.settings.store.github_api_url,
                timeout=self.settings.store.request_timeout_s,
                reconnect_initial=push.relay_reconnect_initial_s,
                reconnect_max=push.relay_reconnect_max_s,
            )
        return self._webhook_relay

    # === Application Services ===

    @property
    def push_notifier(self) -> PushNotifier:
        if self._push_notifier is None:
            from ..application.services.push_notifier import PushNotifier

            self._push_notifier = PushNotifier()
        return self._push_notifier

    @property
    def queue_client(self) -> QueueClient:
        """Get the queue client for this process."""
        if self._queue_client is None:
            from ..application.services.queue_client import QueueClient

            self._queue_client = QueueClient(
                store=self.event_store,
                projector=self.projector,
                notifier=self.push_notifier,
                settings=self.settings.sync,
                display_name=self.settings.display_name,
            )
        return self._queue_client

    @property
    def playback_arbiter(self) -> PlaybackArbiter:
        """Get the playback arbiter. Only one process per room may run it."""
        if self._playback_arbiter is None:
            from ..application.services.playback_arbiter import PlaybackArbiter

            self._playback_arbiter = PlaybackArbiter(
                store=self.event_store,
                projector=self.projector,
                engine=self.playback_engine,
                resolver=self.track_resolver,
                notifier=self.push_notifier,
                settings=self.settings.arbiter,
                room=self.settings.room,
            )
        return self._playback_arbiter

    # === Lifecycle ===

    async def shutdown(self) -> None:
        """Stop running services and release resources."""
        if self._webhook_relay is not None:
            await self._webhook_relay.stop()
        if self._playback_arbiter is not None:
            await self._playback_arbiter.stop()
        if self._queue_client is not None:
            await self._queue_client.stop()
        if self._push_notifier is not None:
            self._push_notifier.clear()
        if self._event_store is not None:
            await self._event_store.close()
        if self._database is not None:
            await self._database.close()


def create_container(settings: Settings) -> Container:
    """Create a new dependency injection container."""
    return Container(settings)
