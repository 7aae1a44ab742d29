"""Pydantic models for wire frames and the chat message log.

Provides type safety and validation for everything crossing the WebSocket
and for the view-model the UI renders.

Models:
    - QueryRequest / QueryData: outbound ``query`` action
    - InboundFrame: any frame received from the backend
    - Message: one entry in the session log (question, answer or error)
    - ThoughtStep, Citation, MessageBatch: structured answer content
    - SourceLocation: spatial bounds of a cited chunk
"""

from dataroom_chat.models.messages import (
    Citation,
    Message,
    MessageBatch,
    MessageKind,
    SourceLocation,
    ThoughtStep,
)
from dataroom_chat.models.schemas import (
    BatchItem,
    BoundingBox,
    FrameType,
    InboundFrame,
    QueryData,
    QueryRequest,
    SearchMode,
    SourceInfo,
)

__all__ = [
    "BatchItem",
    "BoundingBox",
    "Citation",
    "FrameType",
    "InboundFrame",
    "Message",
    "MessageBatch",
    "MessageKind",
    "QueryData",
    "QueryRequest",
    "SearchMode",
    "SourceInfo",
    "SourceLocation",
    "ThoughtStep",
]
