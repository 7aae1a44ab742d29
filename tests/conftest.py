"""Pytest fixtures and shared test configuration.

Provides reusable fixtures for unit and integration tests.

Fixtures:
    - client_config: ClientConfig pointing at fake endpoints
    - ticker: Manually driven redraw ticker
    - fake_ws / connector: In-memory WebSocket and connect function
    - connection: ConnectionManager wired to the fake WebSocket
    - async_client: HTTPX client for API testing
"""

import asyncio
import json
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import websockets
from httpx import ASGITransport, AsyncClient

from dataroom_chat.api import create_app
from dataroom_chat.client.auth import StaticTokenProvider
from dataroom_chat.client.config import ClientConfig
from dataroom_chat.client.connection import ConnectionManager

_CLOSE = object()


class ManualTicker:
    """Redraw ticker that only fires when the test calls ``tick``."""

    class Handle:
        def __init__(self, ticker: "ManualTicker", callback: Callable[[], None]) -> None:
            self.ticker = ticker
            self.callback = callback
            self.cancelled = False

        def cancel(self) -> None:
            self.cancelled = True

    def __init__(self) -> None:
        self.handles: list[ManualTicker.Handle] = []
        self.scheduled = 0

    def schedule(self, callback: Callable[[], None]) -> "ManualTicker.Handle":
        handle = ManualTicker.Handle(self, callback)
        self.handles.append(handle)
        self.scheduled += 1
        return handle

    @property
    def waiting(self) -> int:
        return sum(1 for h in self.handles if not h.cancelled)

    def tick(self) -> None:
        """Fire every callback scheduled before this tick."""
        due, self.handles = self.handles, []
        for handle in due:
            if not handle.cancelled:
                handle.callback()


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()

    @property
    def sent_json(self) -> list[dict[str, Any]]:
        return [json.loads(s) for s in self.sent]

    @property
    def unread(self) -> int:
        """Inbound frames not yet consumed by the reader."""
        return self._inbox.qsize()

    async def send(self, data: str) -> None:
        if self.closed:
            raise websockets.ConnectionClosedError(None, None)
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True
        self._inbox.put_nowait(_CLOSE)

    def feed(self, frame: dict[str, Any] | str | bytes) -> None:
        """Queue an inbound frame (dicts are JSON encoded, bytes arrive as binary)."""
        self._inbox.put_nowait(frame if isinstance(frame, (str, bytes)) else json.dumps(frame))

    def drop(self) -> None:
        """Simulate the server closing the connection cleanly."""
        self._inbox.put_nowait(_CLOSE)

    def fail(self) -> None:
        """Simulate an abnormal closure."""
        self.crash(websockets.ConnectionClosedError(None, None))

    def crash(self, error: Exception) -> None:
        """Make the next read raise ``error``."""
        self._inbox.put_nowait(error)

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> str | bytes:
        item = await self._inbox.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item


class FakeConnector:
    """Connect function returning FakeWebSockets and recording each call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.sockets: list[FakeWebSocket] = []
        self.error: BaseException | None = None

    @property
    def last(self) -> FakeWebSocket:
        return self.sockets[-1]

    async def __call__(self, url: str, **kwargs: Any) -> FakeWebSocket:
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the event loop until ``predicate`` holds."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0)


@pytest.fixture
def client_config() -> ClientConfig:
    """Return configuration pointing at fake endpoints.

    Returns:
        ClientConfig with a static token and keep-alive disabled.
    """
    return ClientConfig(
        ws_url="ws://backend.test/ws",
        api_base_url="http://backend.test/",
        identity_token="id-token-123",
        token_url=None,
        collection_id="dataroom-1",
        connect_timeout=1.0,
        request_timeout=1.0,
        ping_interval=None,
        keepalive_interval=0.0,
        redraw_interval=0.0,
    )


@pytest.fixture
def ticker() -> ManualTicker:
    return ManualTicker()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
async def connection(
    client_config: ClientConfig, connector: FakeConnector
) -> AsyncGenerator[ConnectionManager]:
    """Create a connection manager backed by the fake connector.

    Yields:
        ConnectionManager, closed after the test.
    """
    manager = ConnectionManager(
        client_config,
        StaticTokenProvider("id-token-123"),
        connector=connector,
    )
    yield manager
    await manager.close()


@pytest.fixture
async def async_client(client_config: ClientConfig) -> AsyncGenerator[AsyncClient]:
    """Create async HTTP client for API testing.

    Yields:
        Configured AsyncClient for making test requests.
    """
    transport = ASGITransport(app=create_app(client_config))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
