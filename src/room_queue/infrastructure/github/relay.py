"""Websocket relay that streams GitHub ``push`` deliveries to this process.

This follows the ``gh webhook forward`` flow. It creates an inactive ``cli``
hook on the repository through the REST API, opens the hook's ``ws_url``
with the token, and then activates the hook. Each relayed delivery goes to
``GitHubWebhookPushSource.handle_relay_message``, and the acknowledgement
it returns is written back on the socket. The hook is deleted when the
session ends.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import httpx
import websocket

from room_queue.domain.shared.constants import GitHubAPI
from room_queue.domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from .webhook import GitHubWebhookPushSource

logger = logging.getLogger(__name__)

Connect = Callable[..., Any]


class WebhookRelayListener:
    """Keeps one relay session open for ``repo``, reconnecting with backoff.

    ``connect`` opens the websocket and defaults to
    ``websocket.create_connection``. The socket is blocking, so every call
    on it runs in a worker thread.
    """

    def __init__(
        self,
        source: GitHubWebhookPushSource,
        *,
        repo: str,
        token: str,
        api_url: str = "https://api.github.com",
        timeout: float = 15.0,
        reconnect_initial: float = 1.0,
        reconnect_max: float = 60.0,
        client: httpx.AsyncClient | None = None,
        connect: Connect | None = None,
    ) -> None:
        self._source = source
        self._repo = repo
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._reconnect_initial = reconnect_initial
        self._reconnect_max = max(reconnect_max, reconnect_initial)
        self._client = client
        self._owns_client = client is None
        self._connect = connect or websocket.create_connection

        self._ws: Any = None
        self._running = False
        self._task: asyncio.Task | None = None

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

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name=f"relay-{self._repo}")
        logger.info(LogTemplates.RELAY_STARTED, self._repo)

    async def stop(self) -> None:
        self._running = False

        ws = self._ws
        if ws is not None:
            # Wakes the worker thread blocked in recv().
            ws.abort()

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        logger.info(LogTemplates.RELAY_STOPPED)

    async def _run_loop(self) -> None:
        delay = self._reconnect_initial
        while self._running:
            try:
                delivered = await self.run_session()
            except asyncio.CancelledError:
                break
            except (httpx.HTTPError, websocket.WebSocketException, OSError, ValueError) as e:
                logger.warning(LogTemplates.RELAY_SESSION_FAILED, e, delay)
            else:
                if delivered:
                    delay = self._reconnect_initial
                logger.warning(LogTemplates.RELAY_SESSION_FAILED, "connection closed", delay)

            if not self._running:
                break
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                break
            delay = min(delay * 2, self._reconnect_max)

    async def run_session(self) -> int:
        """Run one hook and connection until the socket closes.

        Returns:
            How many deliveries were acknowledged.

        Raises:
            httpx.HTTPError: If the hook could not be created or activated.
            websocket.WebSocketException: If the socket failed to open.
        """
        hook = await self._create_hook()
        try:
            self._ws = await asyncio.to_thread(
                self._connect, hook["ws_url"], header=[f"Authorization: {self._token}"]
            )
            await self._activate_hook(hook["url"])
            logger.info(LogTemplates.RELAY_CONNECTED, self._repo)
            delivered = await self._pump(self._ws)
            logger.info(LogTemplates.RELAY_CLOSED, delivered)
            return delivered
        finally:
            ws, self._ws = self._ws, None
            if ws is not None:
                with contextlib.suppress(websocket.WebSocketException, OSError):
                    await asyncio.to_thread(ws.close)
            await self._delete_hook(hook["url"])

    async def _pump(self, ws: Any) -> int:
        delivered = 0
        while True:
            try:
                message = await asyncio.to_thread(ws.recv)
            except websocket.WebSocketConnectionClosedException:
                return delivered
            if not message:
                # Control frames come back empty.
                if not ws.connected:
                    return delivered
                continue

            ack = await self._source.handle_relay_message(message)
            await asyncio.to_thread(ws.send, ack)
            delivered += 1

    async def _create_hook(self) -> dict[str, Any]:
        response = await self.client.post(
            GitHubAPI.HOOKS_PATH.format(repo=self._repo),
            json={
                "name": GitHubAPI.RELAY_HOOK_NAME,
                "active": False,
                "events": [GitHubAPI.PUSH_EVENT],
                "config": {"content_type": "json", "insecure_ssl": "0"},
            },
        )
        response.raise_for_status()
        hook = response.json()
        if not isinstance(hook, dict) or not hook.get("url") or not hook.get("ws_url"):
            raise ValueError("hook response has no url or ws_url")
        logger.debug(LogTemplates.RELAY_HOOK_CREATED, hook["url"])
        return hook

    async def _activate_hook(self, hook_url: str) -> None:
        response = await self.client.patch(hook_url, json={"active": True})
        response.raise_for_status()

    async def _delete_hook(self, hook_url: str) -> None:
        try:
            response = await self.client.delete(hook_url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(LogTemplates.RELAY_HOOK_DELETE_FAILED, hook_url, e)
