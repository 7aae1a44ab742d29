"""Client configuration with environment variable loading.

Pydantic-based configuration for the streaming query client.
Every field defaults from the environment (``.env`` supported).
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load environment variables from .env file
load_dotenv()


class ClientConfig(BaseModel):
    """Configuration for the search backend connection.

    Attributes:
        ws_url: WebSocket endpoint of the query service.
        api_base_url: REST base URL (chat history).
        identity_token: Fixed identity token (development / service accounts).
        token_url: Endpoint returning a fresh identity token.
        collection_id: Default collection (dataroom) to query.
        connect_timeout: Seconds allowed for the WebSocket open handshake.
        request_timeout: Seconds allowed for REST calls.
        ping_interval: Protocol-level WebSocket ping interval (None disables).
        keepalive_interval: Seconds between application ``ping`` actions (0 disables).
        redraw_interval: Seconds between coalesced UI updates.
    """

    ws_url: str = Field(
        default_factory=lambda: os.getenv("QUERY_WS_URL", "ws://localhost:8001/ws"),
        description="WebSocket endpoint of the query service",
    )
    api_base_url: str = Field(
        default_factory=lambda: os.getenv("API_BASE_URL", "http://localhost:8001"),
        description="REST base URL of the backend",
    )
    identity_token: str | None = Field(
        default_factory=lambda: os.getenv("IDENTITY_TOKEN") or None,
        description="Static identity token, used when no token URL is set",
    )
    token_url: str | None = Field(
        default_factory=lambda: os.getenv("IDENTITY_TOKEN_URL") or None,
        description="Endpoint returning a fresh identity token",
    )
    collection_id: str = Field(
        default_factory=lambda: os.getenv("COLLECTION_ID", ""),
        description="Default collection to query",
    )
    connect_timeout: float = Field(
        default_factory=lambda: float(os.getenv("CONNECT_TIMEOUT", "10")),
        gt=0.0,
        le=300.0,
        description="Seconds allowed for the open handshake",
    )
    request_timeout: float = Field(
        default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT", "30")),
        gt=0.0,
        le=600.0,
        description="Seconds allowed for REST calls",
    )
    ping_interval: float | None = Field(
        default_factory=lambda: float(os.getenv("WS_PING_INTERVAL", "20")) or None,
        description="WebSocket protocol ping interval",
    )
    keepalive_interval: float = Field(
        default_factory=lambda: float(os.getenv("KEEPALIVE_INTERVAL", "0")),
        ge=0.0,
        description="Seconds between application ping actions (0 disables)",
    )
    redraw_interval: float = Field(
        default_factory=lambda: float(os.getenv("REDRAW_INTERVAL", "0.016")),
        ge=0.0,
        le=1.0,
        description="Seconds between coalesced UI updates",
    )

    @field_validator("ws_url")
    @classmethod
    def validate_ws_url(cls, v: str) -> str:
        """Require a ws:// or wss:// endpoint."""
        v = v.strip()
        if not v.startswith(("ws://", "wss://")):
            raise ValueError("QUERY_WS_URL must start with ws:// or wss://")
        return v

    @field_validator("api_base_url")
    @classmethod
    def strip_base_url(cls, v: str) -> str:
        """Drop surrounding whitespace and any trailing slash."""
        return v.strip().rstrip("/")


def get_client_config() -> ClientConfig:
    """Create client configuration from environment.

    Returns:
        Configured ClientConfig instance.

    Raises:
        ValidationError: If an environment value is invalid.
    """
    return ClientConfig()
