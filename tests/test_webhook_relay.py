"""
Tests for WebhookRelayListener - GitHub push deliveries over a websocket relay

Tests for the relay listener including:
- Hook creation, activation and removal around a session
- Delivering relayed pushes to the webhook source and acknowledging them
- Start/stop of the background session
- Reconnecting after a failed session

The websocket is an in-memory fake and the REST API an httpx.MockTransport.
"""

import asyncio
import base64
import json
import threading

import httpx
import pytest
import websocket

from room_queue.infrastructure.github.relay import WebhookRelayListener
from room_queue.infrastructure.github.webhook import GitHubWebhookPushSource, relay_ack

HOOKS_PATH = "/repos/acme/party/hooks"
HOOK_URL = "https://api.github.com/repos/acme/party/hooks/7"
WS_URL = "wss://relay.example/hooks/7"


def push_message(path="events.ndjson"):
    body = {
        "repository": {"full_name": "acme/party"},
        "commits": [{"added": [], "modified": [path], "removed": []}],
    }
    return json.dumps(
        {
            "Header": {"X-Github-Event": ["push"]},
            "Body": base64.b64encode(json.dumps(body).encode()).decode(),
        }
    )


class FakeConnection:
    """Stands in for websocket.WebSocket."""

    def __init__(self, messages=(), block=False):
        self.messages = list(messages)
        self.sent = []
        self.closed = False
        self.connected = True
        self.aborted = threading.Event()
        self._block = block

    def recv(self):
        if self.messages:
            return self.messages.pop(0)
        if self._block:
            self.aborted.wait(5)
        self.connected = False
        raise websocket.WebSocketConnectionClosedException("socket is already closed.")

    def send(self, data):
        self.sent.append(data)

    def abort(self):
        self.aborted.set()

    def close(self):
        self.closed = True


class FakeHooksAPI:
    """Repository hooks endpoint that records every call in ``timeline``."""

    def __init__(self, timeline):
        self.timeline = timeline
        self.bodies = {}
        self.create_statuses = []

    def handler(self, request):
        self.timeline.append(request.method)
        if request.content:
            self.bodies[request.method] = json.loads(request.content)

        if request.method == "POST":
            assert request.url.path == HOOKS_PATH
            if self.create_statuses:
                return httpx.Response(self.create_statuses.pop(0))
            return httpx.Response(201, json={"id": 7, "url": HOOK_URL, "ws_url": WS_URL})

        assert str(request.url) == HOOK_URL
        if request.method == "PATCH":
            return httpx.Response(200, json={"id": 7, "active": True})
        return httpx.Response(204)


@pytest.fixture
def timeline():
    return []


@pytest.fixture
def api(timeline):
    return FakeHooksAPI(timeline)


@pytest.fixture
def received(notifier):
    changes = []

    async def handler(change):
        changes.append(change)

    notifier.subscribe(handler)
    return changes


@pytest.fixture
def make_listener(api, notifier, timeline):
    def factory(*connections, **kwargs):
        pending = list(connections)
        opened = []

        def connect(url, header=None):
            timeline.append("connect")
            opened.append((url, header))
            return pending.pop(0) if len(pending) > 1 else pending[0]

        client = httpx.AsyncClient(
            base_url="https://api.github.com", transport=httpx.MockTransport(api.handler)
        )
        source = GitHubWebhookPushSource(notifier, repo="acme/party", path="events.ndjson")
        listener = WebhookRelayListener(
            source, repo="acme/party", token="t0ken", client=client, connect=connect, **kwargs
        )
        listener.opened = opened
        return listener

    return factory


class TestSession:
    """Tests for one relay session."""

    @pytest.mark.asyncio
    async def test_deliveries_are_forwarded_and_acked(self, make_listener, received):
        conn = FakeConnection([push_message(), "", push_message(path="README.md")])
        listener = make_listener(conn)

        delivered = await listener.run_session()

        assert delivered == 2
        assert [c.source for c in received] == ["webhook"]
        assert conn.sent == [relay_ack(), relay_ack()]
        assert conn.closed
        assert not listener.is_connected

    @pytest.mark.asyncio
    async def test_hook_lifecycle_order(self, make_listener, api, timeline):
        listener = make_listener(FakeConnection())

        await listener.run_session()

        assert timeline == ["POST", "connect", "PATCH", "DELETE"]
        assert api.bodies["POST"]["active"] is False
        assert api.bodies["POST"]["events"] == ["push"]
        assert api.bodies["PATCH"] == {"active": True}
        assert listener.opened == [(WS_URL, ["Authorization: t0ken"])]

    @pytest.mark.asyncio
    async def test_hook_creation_failure_raises_before_connecting(
        self, make_listener, api, timeline
    ):
        api.create_statuses = [403]
        listener = make_listener(FakeConnection())

        with pytest.raises(httpx.HTTPStatusError):
            await listener.run_session()

        assert timeline == ["POST"]

    @pytest.mark.asyncio
    async def test_connect_failure_still_deletes_hook(self, api, notifier, timeline):
        def refuse(url, header=None):
            raise websocket.WebSocketException("Handshake status 401 Unauthorized")

        client = httpx.AsyncClient(
            base_url="https://api.github.com", transport=httpx.MockTransport(api.handler)
        )
        source = GitHubWebhookPushSource(notifier, repo="acme/party", path="events.ndjson")
        listener = WebhookRelayListener(
            source, repo="acme/party", token="t0ken", client=client, connect=refuse
        )

        with pytest.raises(websocket.WebSocketException):
            await listener.run_session()

        assert timeline == ["POST", "DELETE"]


class TestLifecycle:
    """Tests for the background reconnect loop."""

    @pytest.mark.asyncio
    async def test_stop_aborts_open_connection(self, make_listener, timeline):
        conn = FakeConnection(block=True)
        listener = make_listener(conn)

        listener.start()
        await asyncio.sleep(0.05)
        assert listener.is_running
        assert listener.is_connected

        await listener.stop()

        assert conn.aborted.is_set()
        assert not listener.is_running
        assert timeline[-1] == "DELETE"

    @pytest.mark.asyncio
    async def test_reconnects_after_failed_session(self, make_listener, api, received):
        api.create_statuses = [500]
        listener = make_listener(
            FakeConnection([push_message()]),
            FakeConnection(block=True),
            reconnect_initial=0.01,
            reconnect_max=0.02,
        )

        listener.start()
        await asyncio.sleep(0.1)
        await listener.stop()

        assert len(listener.opened) >= 1
        assert [c.source for c in received] == ["webhook"]
