"""WebSocket connection manager for the query service.

Owns at most one live connection, bound to one collection. The connection is
shared by sequential queries; inbound frames are fanned out through a
``MessageRouter``. There is no implicit queuing or reconnect: sending while
disconnected fails immediately and the caller decides what to do.
"""

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlencode

import websockets

from dataroom_chat.client.auth import TokenError, TokenProvider
from dataroom_chat.client.config import ClientConfig
from dataroom_chat.client.router import FrameHandler, MessageRouter
from dataroom_chat.models.schemas import InboundFrame, QueryRequest

logger = logging.getLogger(__name__)

Connector = Callable[..., Awaitable[Any]]

KEEPALIVE_FRAME = json.dumps({"action": "ping"})


class StreamConnectionError(Exception):
    """Raised when the query connection cannot be established."""

    pass


class NotConnectedError(StreamConnectionError):
    """Raised when sending without a live connection."""

    pass


class ConnectionManager:
    """Persistent WebSocket connection to the search backend.

    Wraps the ``websockets`` client with:
    - Fresh identity token per connection attempt
    - One connection per collection, replaced when the collection changes
    - Background reader that dispatches every frame to all handlers
    - Synthetic ``error`` frame when the socket drops mid-query
    - Optional application-level keep-alive
    """

    def __init__(
        self,
        config: ClientConfig,
        token_provider: TokenProvider,
        router: MessageRouter | None = None,
        connector: Connector | None = None,
    ) -> None:
        """Initialize the connection manager.

        Args:
            config: Client configuration (endpoint, timeouts).
            token_provider: Source of identity tokens.
            router: Frame router; a new one is created if not provided.
            connector: WebSocket connect function; ``websockets.connect`` by default.
        """
        self._config = config
        self._token_provider = token_provider
        self.router = router or MessageRouter()
        self._connector = connector or websockets.connect
        self._ws: Any = None
        self._collection_id: str | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._keepalive_task: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def collection_id(self) -> str | None:
        return self._collection_id

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    def is_connected_to(self, collection_id: str) -> bool:
        """Whether a live connection to ``collection_id`` exists."""
        return self._ws is not None and self._collection_id == collection_id

    def _build_url(self, collection_id: str, token: str) -> str:
        base = self._config.ws_url
        separator = "&" if "?" in base else "?"
        params = urlencode({"token": token, "collection_name": collection_id})
        return f"{base}{separator}{params}"

    async def connect(self, collection_id: str) -> None:
        """Connect to the backend for ``collection_id``.

        A connection to a different collection is closed first. Returns once
        the open handshake has completed.

        Args:
            collection_id: Collection (dataroom) the connection is bound to.

        Raises:
            StreamConnectionError: If the token fetch, the handshake or the
                connection itself fails, or the handshake times out.
        """
        if self.is_connected_to(collection_id):
            return

        if self._ws is not None:
            logger.info(f"Closing connection to collection {self._collection_id}")
            await self.close()

        try:
            token = await self._token_provider.get_identity_token()
        except TokenError as e:
            raise StreamConnectionError(f"Failed to fetch identity token: {e}") from e

        url = self._build_url(collection_id, token)
        logger.info(f"Connecting to {self._config.ws_url} for collection {collection_id}")

        try:
            async with asyncio.timeout(self._config.connect_timeout):
                ws = await self._connector(
                    url,
                    ping_interval=self._config.ping_interval,
                    open_timeout=None,
                )
        except TimeoutError as e:
            raise StreamConnectionError(
                f"Connection timed out after {self._config.connect_timeout:g}s"
            ) from e
        except websockets.exceptions.InvalidURI as e:
            raise StreamConnectionError(f"Invalid backend URL: {e}") from e
        except websockets.exceptions.InvalidStatus as e:
            raise StreamConnectionError(
                f"Connection rejected: HTTP {e.response.status_code}"
            ) from e
        except websockets.exceptions.InvalidHandshake as e:
            raise StreamConnectionError(f"Handshake failed: {e}") from e
        except OSError as e:
            raise StreamConnectionError(f"Network error: {e}") from e

        self._ws = ws
        self._collection_id = collection_id
        self._closing = False
        self._reader_task = asyncio.create_task(self._read_frames(ws))
        if self._config.keepalive_interval > 0:
            self._keepalive_task = asyncio.create_task(self._keepalive(ws))
        logger.info(f"Connected to collection {collection_id}")

    async def _read_frames(self, ws: Any) -> None:
        """Dispatch inbound frames until the socket closes."""
        error: str | None = None
        try:
            async for raw in ws:
                self.router.dispatch_raw(raw)
            logger.info("Connection closed by server")
        except websockets.ConnectionClosed as e:
            logger.warning(f"Connection closed unexpectedly: {e}")
            error = f"Connection closed unexpectedly: {e}"
        except OSError as e:
            logger.error(f"Connection error: {e}")
            error = f"Connection error: {e}"
        except Exception as e:
            logger.exception("Frame reader failed")
            error = f"Connection error: {e}"
            with contextlib.suppress(websockets.ConnectionClosed, OSError):
                await ws.close()
        finally:
            if self._ws is ws:
                self._ws = None
                self._stop_keepalive()

        if not self._closing and self.router.handler_count:
            self.router.dispatch(
                InboundFrame.error_frame(error or "Connection closed before the response completed")
            )

    async def _keepalive(self, ws: Any) -> None:
        while True:
            await asyncio.sleep(self._config.keepalive_interval)
            try:
                await ws.send(KEEPALIVE_FRAME)
            except websockets.ConnectionClosed:
                return

    def _stop_keepalive(self) -> None:
        if self._keepalive_task is not None:
            self._keepalive_task.cancel()
            self._keepalive_task = None

    async def send_message(self, payload: QueryRequest | dict[str, Any]) -> None:
        """Serialize and transmit one outbound frame.

        Args:
            payload: A query request, or a plain dict (e.g. keep-alive actions).

        Raises:
            NotConnectedError: If there is no live connection.
        """
        ws = self._ws
        if ws is None:
            raise NotConnectedError("Cannot send message: not connected")

        if isinstance(payload, QueryRequest):
            data = payload.to_wire()
        else:
            data = json.dumps(payload)

        try:
            await ws.send(data)
        except websockets.ConnectionClosed as e:
            raise NotConnectedError(f"Connection closed while sending: {e}") from e

    def add_message_handler(self, handler: FrameHandler) -> None:
        self.router.add_handler(handler)

    def remove_message_handler(self, handler: FrameHandler) -> None:
        self.router.remove_handler(handler)

    async def close(self) -> None:
        """Close the connection without notifying handlers."""
        self._closing = True
        ws, self._ws = self._ws, None
        self._stop_keepalive()

        if ws is not None:
            await ws.close()
            logger.info(f"Disconnected from collection {self._collection_id}")

        if self._reader_task is not None:
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
            self._reader_task = None
