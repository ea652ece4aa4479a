"""GitHub ``push`` deliveries as a source of "log changed" hints.

Deliveries reach us either as plain webhook bodies or wrapped in the relay
envelope used by ``gh webhook forward`` style websocket relays::

    {"Header": {"X-Github-Event": ["push"]}, "Body": "<base64 JSON body>"}

``relay.WebhookRelayListener`` receives relay envelopes over a websocket and
passes each to ``GitHubWebhookPushSource.handle_relay_message``. A plain HTTP
receiver would call ``handle_delivery`` instead.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from room_queue.domain.shared.constants import GitHubAPI
from room_queue.domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from ...application.services.push_notifier import PushNotifier

logger = logging.getLogger(__name__)

_PATH_KEYS = ("added", "modified", "removed")


def queue_path_touched(body: Mapping[str, Any], repo: str, path: str) -> bool:
    """Whether a push body for ``repo`` added, modified or removed ``path``."""
    repository = body.get("repository")
    if not isinstance(repository, Mapping) or repository.get("full_name") != repo:
        return False

    commits = body.get("commits")
    if isinstance(commits, list) and any(_commit_touches(c, path) for c in commits):
        return True
    return _commit_touches(body.get("head_commit"), path)


def _commit_touches(commit: Any, path: str) -> bool:
    if not isinstance(commit, Mapping):
        return False
    for key in _PATH_KEYS:
        paths = commit.get(key)
        if isinstance(paths, list) and path in paths:
            return True
    return False


def unwrap_relay_message(message: str | bytes) -> tuple[dict[str, Any], str | None]:
    """Decode a relay envelope into the webhook body and its event name.

    Raises:
        ValueError: If the envelope or its body is not valid.
    """
    envelope = json.loads(message)
    if not isinstance(envelope, dict) or "Body" not in envelope:
        raise ValueError("relay message has no Body")
    try:
        raw = base64.b64decode(envelope["Body"])
    except (binascii.Error, TypeError) as e:
        raise ValueError(f"invalid webhook body encoding: {e}") from e
    body = json.loads(raw)
    if not isinstance(body, dict):
        raise ValueError("webhook body is not a JSON object")

    event_name = None
    headers = envelope.get("Header") or {}
    for name, values in headers.items():
        if name.lower() == "x-github-event" and values:
            event_name = values[0] if isinstance(values, list) else values
            break
    return body, event_name


def relay_ack() -> str:
    """The acknowledgement a relay expects after each delivered message."""
    return json.dumps(
        {"Status": 200, "Header": {}, "Body": base64.b64encode(b"OK").decode("ascii")}
    )


class GitHubWebhookPushSource:
    """Fires the notifier when a delivery touched the log file."""

    def __init__(self, notifier: PushNotifier, *, repo: str, path: str) -> None:
        self._notifier = notifier
        self._repo = repo
        self._path = path.lstrip("/")

    async def handle_delivery(
        self,
        payload: Mapping[str, Any] | str | bytes,
        event_name: str | None = None,
    ) -> bool:
        """Inspect one delivery and notify subscribers if it is relevant.

        Returns:
            True if subscribers were notified.
        """
        if isinstance(payload, (str, bytes)):
            try:
                body = json.loads(payload)
            except ValueError as e:
                logger.debug(LogTemplates.PUSH_WEBHOOK_IGNORED, e)
                return False
        else:
            body = payload

        if not isinstance(body, Mapping):
            logger.debug(LogTemplates.PUSH_WEBHOOK_IGNORED, "body is not an object")
            return False
        if event_name is not None and event_name != GitHubAPI.PUSH_EVENT:
            logger.debug(LogTemplates.PUSH_WEBHOOK_IGNORED, f"event '{event_name}'")
            return False
        if not queue_path_touched(body, self._repo, self._path):
            logger.debug(LogTemplates.PUSH_WEBHOOK_IGNORED, "log path not touched")
            return False

        logger.debug(LogTemplates.PUSH_WEBHOOK_MATCHED, self._path, self._repo)
        await self._notifier.notify("webhook")
        return True

    async def handle_relay_message(self, message: str | bytes) -> str:
        """Handle one relay envelope and return the acknowledgement to send back."""
        try:
            body, event_name = unwrap_relay_message(message)
        except ValueError as e:
            logger.debug(LogTemplates.PUSH_WEBHOOK_IGNORED, e)
        else:
            await self.handle_delivery(body, event_name)
        return relay_ack()
