"""REST client for chat threads stored by the backend.

History is never persisted locally; the backend is the only source.
"""

import logging
from typing import Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dataroom_chat.client.auth import TokenError, TokenProvider
from dataroom_chat.client.config import ClientConfig

logger = logging.getLogger(__name__)

_ROLE_MAP: dict[str, Literal["user", "assistant"]] = {
    "HumanMessage": "user",
    "AIMessage": "assistant",
}


class HistoryError(Exception):
    """Raised when chat history cannot be fetched."""

    pass


class ChatThreadSummary(BaseModel):
    """A past conversation thread in a collection."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    thread_id: str = Field(..., alias="threadId")
    created: str = ""
    last_updated: str = Field("", alias="lastUpdated")
    initial_query: str = Field("", alias="initialQuery")


class HistoryEntry(BaseModel):
    """One stored message of a thread."""

    role: Literal["user", "assistant"]
    content: str


class ChatHistoryClient:
    """Fetches thread lists and thread contents over HTTP."""

    def __init__(
        self,
        config: ClientConfig,
        token_provider: TokenProvider,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._token_provider = token_provider
        self._transport = transport

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            token = await self._token_provider.get_identity_token()
        except TokenError as e:
            raise HistoryError(f"Failed to fetch identity token: {e}") from e

        async with httpx.AsyncClient(
            base_url=self._config.api_base_url,
            timeout=self._config.request_timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {token}"},
        ) as client:
            try:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                payload = response.json()
            except httpx.HTTPStatusError as e:
                raise HistoryError(f"HTTP {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise HistoryError(f"Connection failed: {e}") from e
            except ValueError as e:
                raise HistoryError("Invalid JSON in history response") from e

        if not isinstance(payload, dict):
            raise HistoryError("Invalid history response format")
        return payload

    async def list_threads(self, collection_id: str) -> list[ChatThreadSummary]:
        """List the stored chat threads of a collection.

        Raises:
            HistoryError: On transport, HTTP or format errors.
        """
        payload = await self._request("GET", f"/chat/{collection_id}/chat-history")
        chats = payload.get("chats")
        if not isinstance(chats, list):
            raise HistoryError("Failed to load chat history")
        try:
            return [ChatThreadSummary.model_validate(chat) for chat in chats]
        except ValidationError as e:
            raise HistoryError(f"Invalid chat history entry: {e}") from e

    async def fetch_thread(self, collection_id: str, thread_id: str) -> list[HistoryEntry]:
        """Fetch the user/assistant messages of one thread, oldest first.

        Raises:
            HistoryError: On transport, HTTP or format errors.
        """
        payload = await self._request(
            "POST",
            f"/chat/{collection_id}/chat-thread",
            json={"threadId": thread_id},
        )
        history = payload.get("history")
        if not isinstance(history, list):
            raise HistoryError("Invalid response format: history array is missing")

        entries: list[HistoryEntry] = []
        for item in history:
            if not isinstance(item, dict):
                continue
            role = _ROLE_MAP.get(item.get("role", ""))
            if role is None:
                continue
            entries.append(HistoryEntry(role=role, content=str(item.get("content") or "")))

        logger.info(f"Loaded {len(entries)} messages for thread {thread_id}")
        return entries
