"""Integration tests for the end-to-end query flow.

Drives a real QuerySession over a real ConnectionManager whose WebSocket is
replaced by an in-memory fake fed with backend frames.
"""

import pytest
import pytest_check as check

from dataroom_chat.client.connection import ConnectionManager
from dataroom_chat.models.messages import MessageKind
from dataroom_chat.models.schemas import SearchMode
from dataroom_chat.session.coalescer import AsyncioTicker
from dataroom_chat.session.controller import QuerySession
from dataroom_chat.session.sources import FileIndexResolver, SourceActivation
from dataroom_chat.session.state import QueryStatus
from tests.conftest import FakeConnector, wait_until

QUESTION = "Where is the termination clause?"


@pytest.fixture
def activations() -> list[SourceActivation]:
    return []


@pytest.fixture
def session(connection: ConnectionManager, activations: list[SourceActivation]) -> QuerySession:
    return QuerySession(
        connection,
        "dataroom-1",
        resolver=FileIndexResolver({"lease": "Lease.pdf"}),
        ticker=AsyncioTicker(interval=0),
        on_source_activated=activations.append,
    )


def lease_frames() -> list[dict]:
    return [
        {"type": "progress", "step": "Searching documents"},
        {"type": "batch", "items": [{"type": "step_start", "step_number": 1, "total_steps": 1, "description": "Reading"}]},
        {
            "type": "status",
            "message": "Found 1 source",
            "sources": {"bucket/lease": {"page": 4, "bounding_box": {"x0": 10, "y0": 20, "x1": 30, "y1": 40}}},
        },
        {"type": "response", "response": "<think>\n1. Searching the lease [1](bucket/lease::sec4)\n", "thread_id": "thread-9"},
        {"type": "response", "response": "2. Comparing clauses\n</thi"},
        {"type": "response", "response": "nk>\n<answer>The termination clause is in "},
        {"type": "response", "response": "section 4 [1](bucket/lease::sec4).</ans"},
        {"type": "response", "response": "wer>"},
        {"type": "complete"},
    ]


class TestSuccessfulQuery:
    """Tests for a query that streams to completion."""

    async def test_lease_question(
        self, session: QuerySession, connection: ConnectionManager, connector: FakeConnector
    ) -> None:
        check.is_true(await session.submit(QUESTION, mode=SearchMode.REASONING))

        ws = connector.last
        request = ws.sent_json[0]
        check.equal(request["action"], "query")
        check.equal(request["data"]["query"], QUESTION)
        check.equal(request["data"]["collection_name"], "dataroom-1")
        check.is_true(request["data"]["use_reasoning"])
        check.is_not_in("thread_id", request["data"])

        for frame in lease_frames():
            ws.feed(frame)
        await wait_until(lambda: session.context.status == QueryStatus.COMPLETE)

        messages = session.context.messages
        check.equal([m.kind for m in messages], [MessageKind.QUESTION, MessageKind.ANSWER])
        answer = messages[1]
        check.equal([s.content for s in answer.steps], ["Searching the lease @1@", "Comparing clauses"])
        check.equal(answer.content, "The termination clause is in section 4 @1@.")
        check.equal([c.file_key for c in answer.citations], ["bucket/lease"] * 2)
        check.equal(answer.sub_sources, {"Lease.pdf": "bucket/lease"})
        check.equal(answer.batches[0].sources, {"Lease.pdf": "bucket/lease"})
        check.equal(session.context.thread_id, "thread-9")
        check.equal(session.context.history, [QUESTION])
        check.equal(connection.router.handler_count, 0)

    async def test_follow_up_continues_thread(
        self, session: QuerySession, connector: FakeConnector
    ) -> None:
        await session.submit(QUESTION)
        ws = connector.last
        for frame in lease_frames():
            ws.feed(frame)
        await wait_until(lambda: session.context.status == QueryStatus.COMPLETE)

        await session.submit("And the notice period?")

        check.equal(len(connector.calls), 1)
        check.equal(ws.sent_json[1]["data"]["thread_id"], "thread-9")

    async def test_activate_cited_source(
        self, session: QuerySession, connector: FakeConnector, activations: list[SourceActivation]
    ) -> None:
        """Opening a citation reports the file and its chunk bounds."""
        await session.submit(QUESTION)
        for frame in lease_frames():
            connector.last.feed(frame)
        await wait_until(lambda: session.context.status == QueryStatus.COMPLETE)

        citation = session.context.messages[1].citations[0]
        session.activate_source(citation.file_key, citation.chunk_text)

        activation = activations[0]
        check.equal(activation.file_id, "lease")
        check.equal(activation.display_name, "Lease.pdf")
        check.equal(activation.chunk, "sec4")
        check.equal(activation.location.page, 4)


class TestFailures:
    """Tests for connection failures, backend errors and retry."""

    async def test_connection_failure_then_retry(
        self, session: QuerySession, connector: FakeConnector
    ) -> None:
        """Retry resends the query without duplicating the Question."""
        connector.error = OSError("unreachable")

        check.is_false(await session.submit(QUESTION))

        context = session.context
        check.equal([m.kind for m in context.messages], [MessageKind.QUESTION, MessageKind.ERROR])
        check.is_true(context.messages[1].content.startswith("Failed to connect to the server:"))
        check.is_true(context.retry_available)

        connector.error = None
        check.is_true(await session.retry())
        check.equal(connector.last.sent_json[0]["data"]["query"], QUESTION)

        connector.last.feed({"type": "response", "response": "<answer>Section 4</answer>"})
        connector.last.feed({"type": "complete"})
        await wait_until(lambda: context.status == QueryStatus.COMPLETE)

        kinds = [m.kind for m in context.messages]
        check.equal(kinds, [MessageKind.QUESTION, MessageKind.ERROR, MessageKind.ANSWER])
        check.is_false(context.retry_available)

    async def test_backend_error_frame(self, session: QuerySession, connector: FakeConnector) -> None:
        await session.submit(QUESTION)
        connector.last.feed({"type": "error", "error": "Rate limit exceeded"})
        await wait_until(lambda: session.context.status == QueryStatus.ERRORED)

        check.equal(session.context.last_message.content, "Rate limit exceeded")
        check.is_none(session.active_handler)

    async def test_backend_error_then_retry(
        self, session: QuerySession, connector: FakeConnector
    ) -> None:
        """Retry after a backend error reuses the connection and the Question."""
        await session.submit(QUESTION)
        ws = connector.last
        ws.feed({"type": "error", "error": "Rate limit exceeded"})
        await wait_until(lambda: session.context.status == QueryStatus.ERRORED)

        check.is_true(await session.retry())

        check.equal(len(connector.calls), 1)
        check.equal([r["data"]["query"] for r in ws.sent_json], [QUESTION, QUESTION])

        ws.feed({"type": "response", "response": "<answer>Section 4</answer>"})
        ws.feed({"type": "complete"})
        await wait_until(lambda: session.context.status == QueryStatus.COMPLETE)

        kinds = [m.kind for m in session.context.messages]
        check.equal(kinds, [MessageKind.QUESTION, MessageKind.ERROR, MessageKind.ANSWER])
        check.equal(session.context.last_message.content, "Section 4")
        check.is_false(session.context.retry_available)

    async def test_reader_crash_mid_stream(
        self, session: QuerySession, connector: FakeConnector
    ) -> None:
        """An unexpected read failure ends the query with a retryable Error."""
        await session.submit(QUESTION)
        connector.last.feed({"type": "response", "response": "<answer>Section"})
        connector.last.crash(RuntimeError("stream corrupted"))
        await wait_until(lambda: session.context.status == QueryStatus.ERRORED)

        messages = session.context.messages
        check.equal([m.kind for m in messages], [MessageKind.QUESTION, MessageKind.ANSWER, MessageKind.ERROR])
        check.equal(messages[2].content, "Connection error: stream corrupted")
        check.is_true(session.context.retry_available)
        check.is_none(session.active_handler)

    async def test_connection_drop_mid_stream(
        self, session: QuerySession, connector: FakeConnector
    ) -> None:
        """A dropped socket ends the query with an Error; partial text stays."""
        await session.submit(QUESTION)
        connector.last.feed({"type": "response", "response": "<answer>Section"})
        connector.last.fail()
        await wait_until(lambda: session.context.status == QueryStatus.ERRORED)

        messages = session.context.messages
        check.equal(messages[1].content, "Section")
        check.equal(messages[2].kind, MessageKind.ERROR)
        check.is_in("Connection closed unexpectedly", messages[2].content)

    async def test_retry_without_failure_is_noop(self, session: QuerySession) -> None:
        check.is_false(await session.retry())


class TestSessionControl:
    """Tests for in-flight limits and new chat."""

    async def test_second_query_refused_while_streaming(
        self, session: QuerySession, connector: FakeConnector
    ) -> None:
        check.is_true(await session.submit(QUESTION))
        check.is_false(await session.submit("Another question"))

        check.equal(len(connector.last.sent), 1)

    async def test_empty_query_is_ignored(self, session: QuerySession, connector: FakeConnector) -> None:
        check.is_false(await session.submit("   "))

        check.equal(connector.calls, [])
        check.equal(session.context.messages, [])

    async def test_new_chat_mid_stream(
        self, session: QuerySession, connection: ConnectionManager, connector: FakeConnector
    ) -> None:
        """New chat drops the in-flight query but keeps the connection."""
        await session.submit(QUESTION)
        connector.last.feed({"type": "response", "response": "<answer>Partial", "thread_id": "t1"})
        await wait_until(lambda: len(session.context.messages) == 2)

        session.new_chat()
        connector.last.feed({"type": "response", "response": " late text"})
        connector.last.feed({"type": "complete"})
        await wait_until(lambda: connector.last.unread == 0)

        check.equal(session.context.messages, [])
        check.equal(session.context.thread_id, "")
        check.equal(session.context.status, QueryStatus.IDLE)
        check.is_true(connection.is_connected)
        check.equal(connection.router.handler_count, 0)

    async def test_collection_required(self, connection: ConnectionManager) -> None:
        with pytest.raises(ValueError, match="Collection id required"):
            QuerySession(connection, "")
