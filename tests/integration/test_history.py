"""Integration tests for backend chat history.

The REST backend is replaced with httpx.MockTransport; the client, parser and
session run for real.
"""

import json

import httpx
import pytest
import pytest_check as check

from dataroom_chat.client.auth import StaticTokenProvider
from dataroom_chat.client.config import ClientConfig
from dataroom_chat.client.connection import ConnectionManager
from dataroom_chat.client.history import ChatHistoryClient, HistoryError
from dataroom_chat.models.messages import MessageKind
from dataroom_chat.session.controller import QuerySession
from tests.conftest import FakeConnector

THREAD = {
    "history": [
        {"role": "HumanMessage", "content": "Where is the termination clause?"},
        {"role": "ToolMessage", "content": "internal"},
        {
            "role": "AIMessage",
            "content": "<think>\n1. Reading [1](bucket/lease::sec4)\n</think>\n<answer>Section 4 [1](bucket/lease::sec4).</answer>",
        },
        {"role": "HumanMessage", "content": "And the notice period?"},
        {"role": "AIMessage", "content": "<error>Quota exceeded</error>"},
    ]
}


def backend(requests: list[httpx.Request], status: int = 200) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if status != 200:
            return httpx.Response(status)
        if request.url.path.endswith("/chat-history"):
            return httpx.Response(
                200,
                json={
                    "chats": [
                        {
                            "threadId": "thread-9",
                            "created": "2024-05-01T10:00:00Z",
                            "lastUpdated": "2024-05-01T10:05:00Z",
                            "initialQuery": "Where is the termination clause?",
                        }
                    ]
                },
            )
        return httpx.Response(200, json=THREAD)

    return httpx.MockTransport(handler)


class TestChatHistoryClient:
    """Tests for the REST calls."""

    async def test_list_threads(self, client_config: ClientConfig) -> None:
        requests: list[httpx.Request] = []
        client = ChatHistoryClient(client_config, StaticTokenProvider("tok"), transport=backend(requests))

        threads = await client.list_threads("dataroom-1")

        check.equal(len(threads), 1)
        check.equal(threads[0].thread_id, "thread-9")
        check.equal(threads[0].initial_query, "Where is the termination clause?")
        check.equal(str(requests[0].url), "http://backend.test/chat/dataroom-1/chat-history")
        check.equal(requests[0].headers["Authorization"], "Bearer tok")

    async def test_fetch_thread_filters_roles(self, client_config: ClientConfig) -> None:
        requests: list[httpx.Request] = []
        client = ChatHistoryClient(client_config, StaticTokenProvider("tok"), transport=backend(requests))

        entries = await client.fetch_thread("dataroom-1", "thread-9")

        check.equal([e.role for e in entries], ["user", "assistant", "user", "assistant"])
        check.equal(requests[0].method, "POST")
        check.equal(json.loads(requests[0].content), {"threadId": "thread-9"})

    async def test_http_error(self, client_config: ClientConfig) -> None:
        client = ChatHistoryClient(
            client_config, StaticTokenProvider("tok"), transport=backend([], status=500)
        )

        with pytest.raises(HistoryError, match="HTTP 500"):
            await client.list_threads("dataroom-1")

    async def test_missing_history_array(self, client_config: ClientConfig) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"chats": None}))
        client = ChatHistoryClient(client_config, StaticTokenProvider("tok"), transport=transport)

        with pytest.raises(HistoryError, match="history array is missing"):
            await client.fetch_thread("dataroom-1", "thread-9")


class TestLoadThread:
    """Tests for continuing a stored thread."""

    async def test_load_thread_replaces_log(
        self,
        client_config: ClientConfig,
        connection: ConnectionManager,
        connector: FakeConnector,
    ) -> None:
        """A loaded thread is rendered and the next query continues it."""
        history = ChatHistoryClient(client_config, StaticTokenProvider("tok"), transport=backend([]))
        session = QuerySession(connection, "dataroom-1")

        await session.load_thread("thread-9", history)

        messages = session.context.messages
        check.equal(
            [m.kind for m in messages],
            [MessageKind.QUESTION, MessageKind.ANSWER, MessageKind.QUESTION, MessageKind.ERROR],
        )
        check.equal(messages[1].content, "Section 4 @1@.")
        check.equal(len(messages[1].steps), 1)
        check.equal(messages[3].content, "Quota exceeded")
        check.equal(session.context.thread_id, "thread-9")

        await session.submit("What about renewal?")
        check.equal(connector.last.sent_json[0]["data"]["thread_id"], "thread-9")
