"""Session view-model: the ordered message log and query lifecycle state.

``SessionContext`` is passed by reference to whoever needs it and is mutated
only through its named methods, each of which notifies listeners so the UI
can re-render.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Any

from dataroom_chat.models.messages import Message, MessageKind, SourceLocation

logger = logging.getLogger(__name__)

MessagesListener = Callable[[list[Message]], None]


class QueryStatus(str, Enum):
    """Lifecycle of the current query."""

    IDLE = "idle"
    SENT = "sent"
    STREAMING = "streaming"
    COMPLETE = "complete"
    ERRORED = "errored"


class SessionContext:
    """Ordered message log, thread id and retry state for one chat.

    Attributes:
        messages: Session log; a message's identity is its index.
        thread_id: Backend-assigned thread id (empty until assigned).
        last_query: Most recently submitted query, replayed by retry.
        status: Lifecycle state of the current query.
        history: Queries that completed successfully, oldest first.
        source_locations: File key to chunk bounds reported by the backend.
    """

    def __init__(self) -> None:
        self.messages: list[Message] = []
        self.thread_id: str = ""
        self.last_query: str = ""
        self.status: QueryStatus = QueryStatus.IDLE
        self.history: list[str] = []
        self.source_locations: dict[str, SourceLocation] = {}
        self._listeners: list[MessagesListener] = []

    # === Listeners ===

    def add_listener(self, listener: MessagesListener) -> None:
        """Register a listener and immediately call it with the current log."""
        self._listeners.append(listener)
        listener(list(self.messages))

    def remove_listener(self, listener: MessagesListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        snapshot = list(self.messages)
        for listener in list(self._listeners):
            listener(snapshot)

    # === Read helpers ===

    @property
    def last_message(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    @property
    def is_busy(self) -> bool:
        return self.status in (QueryStatus.SENT, QueryStatus.STREAMING)

    @property
    def retry_available(self) -> bool:
        return self.status == QueryStatus.ERRORED and bool(self.last_query)

    def last_is(self, kind: MessageKind) -> bool:
        last = self.last_message
        return last is not None and last.kind == kind

    def pending_question(self, query: str) -> bool:
        """Whether ``query`` is the most recent Question and still unanswered.

        True when the latest Question has the same text and only Error
        messages follow it, so resubmitting must not append it again.
        """
        for message in reversed(self.messages):
            if message.kind == MessageKind.ERROR:
                continue
            return message.kind == MessageKind.QUESTION and message.content == query
        return False

    # === Mutators ===

    def add_message(self, message: Message) -> Message:
        message.timestamp = message.timestamp or datetime.now()
        self.messages.append(message)
        self._notify()
        return message

    def update_message(self, message: Message, **changes: Any) -> None:
        """Apply field changes in place to a message that is in the log.

        Messages are matched by identity; a message no longer in the log
        (e.g. after a new chat) is left alone.
        """
        if not any(m is message for m in self.messages):
            return
        changed = False
        for field, value in changes.items():
            if getattr(message, field) != value:
                setattr(message, field, value)
                changed = True
        if changed:
            self._notify()

    def update_last_message(self, **changes: Any) -> None:
        """Apply field changes to the last message; no-op on an empty log."""
        last = self.last_message
        if last is not None:
            self.update_message(last, **changes)

    def set_messages(self, messages: list[Message]) -> None:
        self.messages = list(messages)
        self._notify()

    def set_thread_id(self, thread_id: str) -> None:
        if thread_id != self.thread_id:
            logger.info(f"Using thread {thread_id or '<new>'}")
            self.thread_id = thread_id

    def set_last_query(self, query: str) -> None:
        self.last_query = query

    def record_source_locations(self, locations: dict[str, SourceLocation]) -> None:
        self.source_locations.update(locations)

    # === State transitions ===

    def _transition(self, status: QueryStatus) -> None:
        if status != self.status:
            logger.debug(f"Query status {self.status.value} -> {status.value}")
            self.status = status
            self._notify()

    def mark_sent(self) -> None:
        self._transition(QueryStatus.SENT)

    def mark_streaming(self) -> None:
        if self.status == QueryStatus.SENT:
            self._transition(QueryStatus.STREAMING)

    def mark_complete(self) -> None:
        if self.last_query:
            self.history.append(self.last_query)
        self._transition(QueryStatus.COMPLETE)

    def mark_errored(self) -> None:
        self._transition(QueryStatus.ERRORED)

    def reset(self) -> None:
        """Start a new chat: clear the log, thread id and retry state."""
        self.messages = []
        self.thread_id = ""
        self.last_query = ""
        self.source_locations = {}
        self.status = QueryStatus.IDLE
        self._notify()
