"""Backend connectivity for the query client.

Responsibilities:
    - Configuration loaded from the environment
    - Identity token retrieval before each connection
    - One persistent WebSocket connection per collection
    - Broadcast of inbound frames to per-query handlers
    - Chat thread history over REST

Nothing here knows about answer structure; that lives in parsing/ and session/.
"""

from dataroom_chat.client.auth import (
    HttpTokenProvider,
    StaticTokenProvider,
    TokenError,
    TokenProvider,
    token_provider_from_config,
)
from dataroom_chat.client.config import ClientConfig, get_client_config
from dataroom_chat.client.connection import (
    ConnectionManager,
    NotConnectedError,
    StreamConnectionError,
)
from dataroom_chat.client.history import ChatHistoryClient, HistoryError
from dataroom_chat.client.router import MessageRouter

__all__ = [
    "ChatHistoryClient",
    "ClientConfig",
    "ConnectionManager",
    "HistoryError",
    "HttpTokenProvider",
    "MessageRouter",
    "NotConnectedError",
    "StaticTokenProvider",
    "StreamConnectionError",
    "TokenError",
    "TokenProvider",
    "get_client_config",
    "token_provider_from_config",
]
