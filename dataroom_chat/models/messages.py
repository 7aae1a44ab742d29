"""Chat message model rendered by the UI.

A session log is an ordered list of ``Message`` objects. A message's identity
is its position in the log; it is created lazily when the first relevant frame
arrives and mutated in place until the query reaches a terminal state.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class MessageKind(str, Enum):
    """Kind of entry in the session log."""

    QUESTION = "question"
    ANSWER = "answer"
    ERROR = "error"


class ThoughtStep(BaseModel):
    """A numbered reasoning step from the ``<think>`` section.

    Attributes:
        number: 1-based step number, strictly sequential within a block.
        content: Step text with citation tokens replaced by ``@n@`` markers.
    """

    number: int = Field(..., ge=1)
    content: str


class Citation(BaseModel):
    """An inline ``[n](fileKey::chunkText)`` reference to a retrieved chunk.

    Attributes:
        id: Sequential identifier (``citation-<k>``) within its section.
        step_number: The ``n`` of the token, rendered as the ``@n@`` marker.
        file_key: Storage key of the cited file.
        chunk_text: Cited chunk text or chunk identifier.
        position: Offset of the token inside its step or answer content.
        origin_step: Thought step the citation belongs to (None for the answer).
    """

    id: str
    step_number: str
    file_key: str
    chunk_text: str
    position: int = Field(..., ge=0)
    origin_step: int | None = None


class MessageBatch(BaseModel):
    """One reported unit of backend retrieval/reasoning work.

    Attributes:
        step_number: Backend step number.
        total_steps: Total steps the backend announced.
        description: Human-readable step description.
        sources: Display name to file key for sources found in this step.
        is_active: Whether this is the step currently in progress.
    """

    step_number: int | None = None
    total_steps: int | None = None
    description: str = ""
    sources: dict[str, str] = Field(default_factory=dict)
    is_active: bool = True


class SourceLocation(BaseModel):
    """Spatial bounds of a retrieved chunk, used for highlighting."""

    page: int = 0
    x0: float
    y0: float
    x1: float
    y1: float
    chunk_title: str | None = None
    is_secondary: bool | None = None
    kg_properties: Any = None
    page_num: int | None = None


class Message(BaseModel):
    """An entry in the session log."""

    kind: MessageKind
    content: str = ""
    steps: list[ThoughtStep] = Field(default_factory=list)
    progress_text: str = ""
    sourcing_steps: list[str] = Field(default_factory=list)
    sub_sources: dict[str, str] = Field(default_factory=dict)
    citations: list[Citation] = Field(default_factory=list)
    batches: list[MessageBatch] = Field(default_factory=list)
    timestamp: datetime | None = None

    @property
    def active_batch(self) -> MessageBatch | None:
        for batch in self.batches:
            if batch.is_active:
                return batch
        return None

    @classmethod
    def question(cls, text: str) -> "Message":
        return cls(kind=MessageKind.QUESTION, content=text)

    @classmethod
    def error(cls, text: str) -> "Message":
        return cls(kind=MessageKind.ERROR, content=text)
