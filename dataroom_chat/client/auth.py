"""Identity token providers.

A fresh identity token is fetched before every connection attempt and passed
to the backend as a credential parameter.
"""

import logging
from typing import Protocol

import httpx

from dataroom_chat.client.config import ClientConfig

logger = logging.getLogger(__name__)


class TokenError(Exception):
    """Raised when an identity token cannot be obtained."""

    pass


class TokenProvider(Protocol):
    """Source of identity tokens."""

    async def get_identity_token(self) -> str: ...


class StaticTokenProvider:
    """Returns the same pre-issued token every time."""

    def __init__(self, token: str) -> None:
        self._token = token

    async def get_identity_token(self) -> str:
        if not self._token or not self._token.strip():
            raise TokenError("No ID token available")
        return self._token.strip()


class HttpTokenProvider:
    """Fetches a fresh token from an HTTP endpoint.

    The endpoint must answer ``GET`` with JSON containing ``id_token``
    (or ``token``).
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport

    async def get_identity_token(self) -> str:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.get(self._url)
                response.raise_for_status()
                payload = response.json()
            except httpx.HTTPStatusError as e:
                raise TokenError(f"Token endpoint returned HTTP {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise TokenError(f"Token request failed: {e}") from e
            except ValueError as e:
                raise TokenError("Token endpoint returned invalid JSON") from e

        token = None
        if isinstance(payload, dict):
            token = payload.get("id_token") or payload.get("token")
        if not token:
            raise TokenError("No ID token available")
        logger.debug("Fetched fresh identity token")
        return token


def token_provider_from_config(config: ClientConfig) -> TokenProvider:
    """Pick the token provider implied by the configuration.

    A token URL wins over a static token.

    Raises:
        TokenError: If neither is configured.
    """
    if config.token_url:
        return HttpTokenProvider(config.token_url, timeout=config.request_timeout)
    if config.identity_token:
        return StaticTokenProvider(config.identity_token)
    raise TokenError("Set IDENTITY_TOKEN_URL or IDENTITY_TOKEN in .env")
