"""Event log stored as one NDJSON file in a GitHub repository.

Reads use the contents API, which returns the file base64-encoded together
with its blob ``sha``. Past 1 MB the contents API leaves the content out,
and the file is read through the git blobs API by that ``sha`` instead
(blobs up to 100 MB). An append rewrites the whole file with a ``PUT`` that
carries the ``sha`` it was computed from; GitHub rejects it with 409 (or 422
for a stale ``sha``) when someone else committed in between.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any

import httpx

from room_queue.domain.queue.events import QueueEvent, decode_log, max_event_id
from room_queue.domain.queue.repository import (
    DEFAULT_APPEND_ATTEMPTS,
    DEFAULT_RETRY_DELAY,
    EventLogStore,
    LogTail,
)
from room_queue.domain.shared.constants import GitHubAPI
from room_queue.domain.shared.exceptions import ConflictError, UnavailableError
from room_queue.domain.shared.messages import ErrorMessages, LogTemplates

logger = logging.getLogger(__name__)


class GitHubEventLogStore(EventLogStore):
    """Event log kept in ``repo`` at ``path`` and accessed over the REST API.

    Uses a long-lived ``httpx.AsyncClient``; pass ``client`` to supply one
    (tests use an ``httpx.MockTransport``).
    """

    def __init__(
        self,
        *,
        repo: str,
        path: str,
        token: str,
        api_url: str = "https://api.github.com",
        branch: str | None = None,
        timeout: float = 15.0,
        max_attempts: int = DEFAULT_APPEND_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(max_attempts=max_attempts, retry_delay=retry_delay)
        self._repo = repo
        self._path = path.lstrip("/")
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._branch = branch
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def location(self) -> str:
        return f"{self._repo}/{self._path}"

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._api_url,
                timeout=httpx.Timeout(self._timeout),
                headers={
                    "Accept": GitHubAPI.ACCEPT,
                    "Authorization": f"Bearer {self._token}",
                    "X-GitHub-Api-Version": GitHubAPI.API_VERSION,
                },
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def read_all(self) -> list[QueueEvent]:
        content, _ = await self._fetch("read")
        events = decode_log(content)
        logger.debug(LogTemplates.STORE_READ, len(events), self.location)
        return events

    async def _read_tail(self) -> LogTail:
        content, sha = await self._fetch("append")
        return LogTail(last_id=max_event_id(decode_log(content)), version=sha, snapshot=content)

    async def _write_conditional(self, event: QueueEvent, tail: LogTail) -> None:
        content = tail.snapshot or ""
        if content and not content.endswith("\n"):
            content += "\n"
        content += f"{event.to_line()}\n"

        body: dict[str, Any] = {
            "message": GitHubAPI.COMMIT_MESSAGE.format(event_type=event.type, event_id=event.id),
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        }
        if tail.version is not None:
            body["sha"] = tail.version
        if self._branch:
            body["branch"] = self._branch

        try:
            response = await self.client.put(self._contents_url, json=body)
        except httpx.HTTPError as e:
            logger.warning(LogTemplates.STORE_UNAVAILABLE, "append", e)
            raise UnavailableError(
                "append", ErrorMessages.STORE_WRITE_FAILED.format(error=e)
            ) from e

        if response.status_code in GitHubAPI.CONFLICT_STATUSES:
            raise ConflictError(event.id)
        if response.is_error:
            message = ErrorMessages.STORE_HTTP_STATUS.format(status=response.status_code)
            logger.warning(LogTemplates.STORE_UNAVAILABLE, "append", message)
            raise UnavailableError("append", message)

    @property
    def _contents_url(self) -> str:
        return GitHubAPI.CONTENTS_PATH.format(repo=self._repo, path=self._path)

    async def _fetch(self, operation: str) -> tuple[str, str | None]:
        """Return the file's text and blob sha; a missing file reads as empty."""
        params = {"ref": self._branch} if self._branch else None
        payload = await self._get_json(operation, self._contents_url, params)
        if payload is None:
            logger.info(LogTemplates.STORE_LOG_MISSING, self.location)
            return "", None

        sha = payload.get("sha")
        if payload.get("encoding") == "none" and sha:
            # Files over 1 MB come back without inline content.
            logger.debug(LogTemplates.STORE_BLOB_FALLBACK, self.location, sha)
            blob_url = GitHubAPI.BLOB_PATH.format(repo=self._repo, sha=sha)
            payload = await self._get_json(operation, blob_url) or {}
        return self._decode_content(operation, payload), sha

    async def _get_json(
        self, operation: str, url: str, params: dict[str, str] | None = None
    ) -> dict[str, Any] | None:
        """GET a JSON object; ``None`` on 404, ``UnavailableError`` on any other failure."""
        try:
            response = await self.client.get(url, params=params)
        except httpx.HTTPError as e:
            logger.warning(LogTemplates.STORE_UNAVAILABLE, operation, e)
            raise UnavailableError(
                operation, ErrorMessages.STORE_READ_FAILED.format(error=e)
            ) from e

        if response.status_code == 404:
            return None
        if response.is_error:
            message = ErrorMessages.STORE_HTTP_STATUS.format(status=response.status_code)
            logger.warning(LogTemplates.STORE_UNAVAILABLE, operation, message)
            raise UnavailableError(operation, message)

        try:
            payload = response.json()
        except ValueError as e:
            raise UnavailableError(
                operation, ErrorMessages.STORE_BAD_CONTENT.format(error=e)
            ) from e
        if not isinstance(payload, dict):
            raise UnavailableError(
                operation, ErrorMessages.STORE_BAD_CONTENT.format(error="expected a JSON object")
            )
        return payload

    @staticmethod
    def _decode_content(operation: str, payload: dict[str, Any]) -> str:
        encoding = payload.get("encoding")
        if encoding != "base64":
            raise UnavailableError(
                operation, ErrorMessages.STORE_BAD_ENCODING.format(encoding=encoding)
            )
        raw = (payload.get("content") or "").replace("\n", "")
        try:
            return base64.b64decode(raw).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise UnavailableError(
                operation, ErrorMessages.STORE_BAD_CONTENT.format(error=e)
            ) from e
