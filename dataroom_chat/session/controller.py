"""Query session controller: submit, retry, new chat and thread loading.

Ties a ``SessionContext`` to a shared ``ConnectionManager``. Each submitted
query gets a fresh ``QueryHandler`` registered on the connection; the handler
unregisters itself on ``complete`` or ``error``.
"""

import logging
from collections.abc import Callable

from dataroom_chat.client.connection import ConnectionManager, StreamConnectionError
from dataroom_chat.client.history import ChatHistoryClient
from dataroom_chat.models.messages import Message
from dataroom_chat.models.schemas import QueryData, QueryRequest, SearchMode
from dataroom_chat.parsing.answer_parser import message_from_history
from dataroom_chat.session.coalescer import RedrawTicker
from dataroom_chat.session.handler import QueryHandler
from dataroom_chat.session.sources import (
    FileIndexResolver,
    SourceActivation,
    SourceResolver,
    file_id_from_key,
)
from dataroom_chat.session.state import SessionContext

logger = logging.getLogger(__name__)

SourceActivatedCallback = Callable[[SourceActivation], None]


class QuerySession:
    """One chat against one collection.

    Only one query is in flight at a time: ``submit`` refuses new queries
    while the current one is still streaming.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        collection_id: str,
        resolver: SourceResolver | None = None,
        ticker: RedrawTicker | None = None,
        context: SessionContext | None = None,
        on_source_activated: SourceActivatedCallback | None = None,
    ) -> None:
        """Initialize the query session.

        Args:
            connection: Shared connection manager.
            collection_id: Collection (dataroom) queried by this session.
            resolver: File name / bounds lookups; a plain index by default.
            ticker: Redraw tick for update coalescing.
            context: Session state to drive; a new one by default.
            on_source_activated: Called when the user opens a cited source.

        Raises:
            ValueError: If no collection id is given.
        """
        if not collection_id or not collection_id.strip():
            raise ValueError("Collection id required. Set COLLECTION_ID in .env")
        self.connection = connection
        self.collection_id = collection_id
        self.resolver = resolver or FileIndexResolver()
        self.context = context or SessionContext()
        self._ticker = ticker
        self._on_source_activated = on_source_activated
        self._handler: QueryHandler | None = None
        self._last_mode = SearchMode.AUTO
        self._last_file_keys: list[str] = []

    @property
    def active_handler(self) -> QueryHandler | None:
        return self._handler

    def _detach(self, handler: QueryHandler) -> None:
        self.connection.remove_message_handler(handler)
        if self._handler is handler:
            self._handler = None

    async def submit(
        self,
        query: str,
        mode: SearchMode = SearchMode.AUTO,
        file_keys: list[str] | None = None,
    ) -> bool:
        """Submit a query and start streaming its answer.

        Args:
            query: The user's question.
            mode: Search mode, mapped onto the backend flags.
            file_keys: Restrict the search to these files.

        Returns:
            True if the query was sent; False if it was empty, a query is
            already in flight, or the connection failed (the failure is then
            in the log as an Error message and retry is available).
        """
        query = query.strip()
        if not query:
            return False
        if self.context.is_busy:
            logger.warning("Ignoring query while another one is in flight")
            return False

        self._last_mode = mode
        self._last_file_keys = list(file_keys or [])
        self.context.set_last_query(query)
        if not self.context.pending_question(query):
            self.context.add_message(Message.question(query))
        self.context.mark_sent()

        handler = QueryHandler(
            self.context,
            self.resolver,
            ticker=self._ticker,
            on_finished=self._detach,
        )
        request = QueryRequest(
            data=QueryData.for_mode(
                collection_name=self.collection_id,
                query=query,
                mode=mode,
                thread_id=self.context.thread_id,
                file_keys=self._last_file_keys,
            )
        )

        try:
            if not self.connection.is_connected_to(self.collection_id):
                await self.connection.connect(self.collection_id)
            self.connection.add_message_handler(handler)
            self._handler = handler
            await self.connection.send_message(request)
        except StreamConnectionError as e:
            logger.error(f"Error querying collection {self.collection_id}: {e}")
            handler.abandon()
            self._detach(handler)
            self.context.add_message(Message.error(f"Failed to connect to the server: {e}"))
            self.context.mark_errored()
            return False

        logger.info(f"Sent query to collection {self.collection_id} ({mode.value})")
        return True

    async def retry(self) -> bool:
        """Resubmit the last query verbatim after a failure.

        Returns:
            True if the query was sent again.
        """
        if not self.context.retry_available:
            return False
        return await self.submit(
            self.context.last_query,
            mode=self._last_mode,
            file_keys=self._last_file_keys,
        )

    def new_chat(self) -> None:
        """Reset the log, thread id and retry state; keep the connection open."""
        if self._handler is not None:
            self._handler.abandon()
            self._detach(self._handler)
        self.context.reset()

    async def load_thread(self, thread_id: str, history_client: ChatHistoryClient) -> None:
        """Replace the log with a stored backend thread and continue it.

        Raises:
            HistoryError: If the thread cannot be fetched.
        """
        entries = await history_client.fetch_thread(self.collection_id, thread_id)
        self.new_chat()
        self.context.set_messages(
            [message_from_history(entry.role, entry.content) for entry in entries]
        )
        self.context.set_thread_id(thread_id)

    def activate_source(self, file_key: str, chunk: str | None = None) -> SourceActivation:
        """Resolve a cited source and notify the host that the user opened it."""
        location = self.context.source_locations.get(file_key)
        if location is None:
            location = self.resolver.resolve_bounding_box(file_key)

        activation = SourceActivation(
            file_key=file_key,
            file_id=file_id_from_key(file_key),
            display_name=self.resolver.resolve_file_name(file_key),
            chunk=chunk,
            location=location,
        )
        if self._on_source_activated is not None:
            self._on_source_activated(activation)
        return activation
