"""Session state and query lifecycle.

Responsibilities:
    - Ordered message log, thread id and retry state (SessionContext)
    - Per-query frame handling and answer reconstruction (QueryHandler)
    - Update coalescing bounded by the redraw tick (UpdateCoalescer)
    - Submit / retry / new chat / thread loading (QuerySession)

Single-threaded and event-driven: everything runs on the asyncio loop.
"""

from dataroom_chat.session.coalescer import (
    AsyncioTicker,
    ChunkEvent,
    RedrawTicker,
    UpdateCoalescer,
    merge_chunks,
)
from dataroom_chat.session.controller import QuerySession
from dataroom_chat.session.handler import QueryHandler
from dataroom_chat.session.sources import (
    FileIndexResolver,
    SourceActivation,
    SourceResolver,
    file_id_from_key,
)
from dataroom_chat.session.state import QueryStatus, SessionContext

__all__ = [
    "AsyncioTicker",
    "ChunkEvent",
    "FileIndexResolver",
    "QueryHandler",
    "QuerySession",
    "QueryStatus",
    "RedrawTicker",
    "SessionContext",
    "SourceActivation",
    "SourceResolver",
    "UpdateCoalescer",
    "file_id_from_key",
    "merge_chunks",
]
