"""Wire frames exchanged with the search backend over the WebSocket."""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SearchMode(str, Enum):
    """How the backend should approach a query."""

    AUTO = "auto"
    REASONING = "reasoning"
    PLANNING = "planning"
    DEEP_RESEARCH = "deep_research"


class FrameType(str, Enum):
    """Inbound frame discriminator values."""

    PROGRESS = "progress"
    BATCH = "batch"
    STATUS = "status"
    RESPONSE = "response"
    COMPLETE = "complete"
    ERROR = "error"
    PONG = "pong"


class QueryData(BaseModel):
    """Payload of an outbound ``query`` action.

    Attributes:
        collection_name: Collection (dataroom) the question is asked against.
        query: The user's question.
        thread_id: Backend conversation thread to continue, if any.
        file_keys: Restrict retrieval to these files (empty = whole collection).
        use_reasoning: Ask for step-by-step reasoning.
        use_planning: Ask for a planned multi-step search.
        use_deep_search: Ask for an exhaustive deep search.
    """

    collection_name: str = Field(..., min_length=1)
    query: str = Field(..., min_length=1)
    thread_id: str | None = None
    file_keys: list[str] = Field(default_factory=list)
    use_reasoning: bool | None = None
    use_planning: bool | None = None
    use_deep_search: bool | None = None

    @field_validator("query", mode="before")
    @classmethod
    def strip_query(cls, v: str) -> str:
        """Strip whitespace from the query before validation."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("thread_id", mode="before")
    @classmethod
    def empty_thread_is_none(cls, v: str | None) -> str | None:
        """Treat an unassigned (empty) thread id as absent."""
        return v or None

    @classmethod
    def for_mode(
        cls,
        collection_name: str,
        query: str,
        mode: SearchMode = SearchMode.AUTO,
        thread_id: str | None = None,
        file_keys: list[str] | None = None,
    ) -> "QueryData":
        """Build query data with the flags implied by a search mode."""
        return cls(
            collection_name=collection_name,
            query=query,
            thread_id=thread_id,
            file_keys=list(file_keys or []),
            use_reasoning=mode == SearchMode.REASONING,
            use_planning=mode == SearchMode.PLANNING,
            use_deep_search=mode == SearchMode.DEEP_RESEARCH,
        )


class QueryRequest(BaseModel):
    """Outbound frame asking the backend to answer a query."""

    action: Literal["query"] = "query"
    data: QueryData

    def to_wire(self) -> str:
        """Serialize for transmission, omitting unset optional fields."""
        return self.model_dump_json(exclude_none=True)


class BoundingBox(BaseModel):
    """Chunk rectangle on a page; any coordinate may be missing."""

    x0: float | None = None
    y0: float | None = None
    x1: float | None = None
    y1: float | None = None

    @property
    def is_complete(self) -> bool:
        return None not in (self.x0, self.y0, self.x1, self.y1)


class SourceInfo(BaseModel):
    """Retrieval metadata for one source chunk in a ``status`` frame."""

    model_config = ConfigDict(extra="allow")

    page: int | None = None
    bounding_box: BoundingBox | None = None
    chunk_title: str | None = None
    is_secondary: bool | None = None
    kg_properties: Any = None
    page_num: int | None = None


class BatchItem(BaseModel):
    """One entry of a ``batch`` frame."""

    model_config = ConfigDict(extra="allow")

    type: str
    step_number: int | None = None
    total_steps: int | None = None
    description: str | None = None


class InboundFrame(BaseModel):
    """A frame received from the backend.

    Only the fields relevant to ``type`` are populated. A frame with no
    ``type`` but an ``error`` field is treated as an error frame.

    ``sources`` is kept raw: per-source metadata is validated where it is
    used, so bad metadata never costs a frame its response text.
    """

    model_config = ConfigDict(extra="allow")

    type: str | None = None
    response: str | None = None
    thread_id: str | None = None
    sources: dict[str, Any] | None = None
    step: str | None = None
    message: str | None = None
    items: list[BatchItem] | None = None
    error: str | None = None
    code: int | None = None

    @field_validator("thread_id", mode="before")
    @classmethod
    def coerce_thread_id(cls, v: Any) -> str | None:
        """Accept numeric thread ids; treat empty ones as absent."""
        if v is None or v == "":
            return None
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @property
    def frame_type(self) -> FrameType | None:
        """The frame discriminator, or None for unknown frame types."""
        if self.type is None:
            return FrameType.ERROR if self.error is not None else None
        try:
            return FrameType(self.type)
        except ValueError:
            return None

    @classmethod
    def error_frame(cls, error: str) -> "InboundFrame":
        """Build a synthetic error frame (used for local connection failures)."""
        return cls(type=FrameType.ERROR.value, error=error)
