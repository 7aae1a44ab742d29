"""Per-query frame handler.

One ``QueryHandler`` is installed for every submitted query. It receives every
frame on the shared connection, accumulates the raw response text and side
channel data, and turns them into updates of the session log. It removes
itself once the query completes or fails.
"""

import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from dataroom_chat.models.messages import Message, MessageBatch, MessageKind, SourceLocation
from dataroom_chat.models.schemas import FrameType, InboundFrame, SourceInfo
from dataroom_chat.parsing.answer_parser import ParsedResponse, Section, parse_response
from dataroom_chat.session.coalescer import ChunkEvent, RedrawTicker, UpdateCoalescer
from dataroom_chat.session.sources import SourceResolver
from dataroom_chat.session.state import SessionContext

logger = logging.getLogger(__name__)

THINKING_TEXT = "Thinking..."
THINKING_DONE_TEXT = "Thinking complete"
SOURCING_TEXT = "Generating sources..."


def location_from_source(info: Any) -> SourceLocation | None:
    """Chunk bounds from raw source metadata, if all four coordinates are present.

    Metadata that does not validate is ignored; it never affects the text.
    """
    if not isinstance(info, SourceInfo):
        if not isinstance(info, dict):
            return None
        try:
            info = SourceInfo.model_validate(info)
        except ValidationError as e:
            logger.debug(f"Ignoring invalid source metadata: {e}")
            return None
    box = info.bounding_box
    if box is None or not box.is_complete:
        return None
    return SourceLocation(
        page=info.page or 0,
        x0=box.x0,
        y0=box.y0,
        x1=box.x1,
        y1=box.y1,
        chunk_title=info.chunk_title,
        is_secondary=info.is_secondary,
        kg_properties=info.kg_properties,
        page_num=info.page_num,
    )


class QueryHandler:
    """Turns the frames of one query into session log updates.

    Lazy-creation rule, applied to every kind of content: update the last
    message if it is an Answer, otherwise append a new Answer. It is only
    invoked when there is something to attach.
    """

    def __init__(
        self,
        context: SessionContext,
        resolver: SourceResolver,
        ticker: RedrawTicker | None = None,
        on_finished: Callable[["QueryHandler"], None] | None = None,
    ) -> None:
        """Initialize the handler.

        Args:
            context: Session the query belongs to.
            resolver: File name / bounds lookups for cited sources.
            ticker: Redraw tick used to coalesce response updates.
            on_finished: Called once when the handler reaches a terminal frame,
                typically to unregister it from the router.
        """
        self._context = context
        self._resolver = resolver
        self._on_finished = on_finished
        self._coalescer = UpdateCoalescer(self._apply_tick, ticker)
        self._buffer = ""
        self._content_frames = 0
        self._error_message: Message | None = None
        self.finished = False

    @property
    def buffer(self) -> str:
        """Cumulative response text applied so far."""
        return self._buffer

    def __call__(self, frame: InboundFrame) -> None:
        if self.finished:
            return

        frame_type = frame.frame_type
        if frame_type is None or frame_type == FrameType.PONG:
            return

        self._context.mark_streaming()
        try:
            self._handle(frame_type, frame)
        except Exception as e:
            logger.exception("Error processing frame")
            self._fail(e)

    def _fail(self, error: Exception) -> None:
        self._coalescer.cancel()
        self._context.add_message(Message.error(f"Error processing response: {error}"))
        self._context.mark_errored()
        self._finish()

    def _handle(self, frame_type: FrameType, frame: InboundFrame) -> None:
        if frame_type == FrameType.PROGRESS:
            self._on_progress(frame)
        elif frame_type == FrameType.BATCH:
            self._on_batch(frame)
        elif frame_type == FrameType.STATUS:
            self._on_status(frame)
        elif frame_type == FrameType.RESPONSE:
            self._on_response(frame)
        elif frame_type == FrameType.COMPLETE:
            self._on_complete()
        elif frame_type == FrameType.ERROR:
            self._on_error(frame)

    # === Answer message helpers ===

    def _current_answer(self) -> Message | None:
        if self._context.last_is(MessageKind.ANSWER):
            return self._context.last_message
        return None

    def _attach(self, **changes: Any) -> None:
        if self._current_answer() is not None:
            self._context.update_last_message(**changes)
        else:
            self._context.add_message(Message(kind=MessageKind.ANSWER, **changes))

    # === Metadata frames ===

    def _on_progress(self, frame: InboundFrame) -> None:
        text = frame.step or frame.message
        if not text:
            return
        self._content_frames += 1
        self._attach(progress_text=text)

    def _on_batch(self, frame: InboundFrame) -> None:
        item = next((i for i in frame.items or [] if i.type == "step_start"), None)
        if item is None:
            return
        self._content_frames += 1

        answer = self._current_answer()
        previous = answer.batches if answer is not None else []
        batch = MessageBatch(
            step_number=item.step_number,
            total_steps=item.total_steps,
            description=item.description or "",
            is_active=True,
        )
        batches = [b.model_copy(update={"is_active": False}, deep=True) for b in previous]
        batches.append(batch)

        self._attach(
            batches=batches,
            progress_text=f"Step {item.step_number} of {item.total_steps}: {batch.description}",
        )

    def _on_status(self, frame: InboundFrame) -> None:
        if not frame.message and not frame.sources:
            return
        self._content_frames += 1

        answer = self._current_answer()
        draft = answer.model_copy(deep=True) if answer is not None else Message(kind=MessageKind.ANSWER)
        active = draft.active_batch

        if frame.message:
            draft.sourcing_steps.append(frame.message)

        locations: dict[str, SourceLocation] = {}
        for key, info in (frame.sources or {}).items():
            name = self._resolver.resolve_file_name(key)
            if name:
                draft.sub_sources[name] = key
                if active is not None:
                    active.sources[name] = key
            location = location_from_source(info)
            if location is not None:
                locations[key] = location

        if locations:
            self._context.record_source_locations(locations)

        changes: dict[str, Any] = {
            "sourcing_steps": draft.sourcing_steps,
            "sub_sources": draft.sub_sources,
            "batches": draft.batches,
        }
        if frame.sources:
            changes["progress_text"] = SOURCING_TEXT
        self._attach(**changes)

    # === Response text ===

    def _on_response(self, frame: InboundFrame) -> None:
        if frame.thread_id:
            self._context.set_thread_id(frame.thread_id)
        self._coalescer.push(
            ChunkEvent(
                response=frame.response or "",
                sources=dict(frame.sources or {}),
                thread_id=frame.thread_id or "",
            )
        )

    def _apply_tick(self, chunk: ChunkEvent) -> None:
        if self.finished:
            return
        try:
            self._apply_chunk(chunk)
        except Exception as e:
            logger.exception("Error applying response update")
            self._fail(e)

    def _apply_chunk(self, chunk: ChunkEvent) -> None:
        self._buffer += chunk.response
        if chunk.thread_id:
            self._context.set_thread_id(chunk.thread_id)

        locations = {
            key: location
            for key, info in chunk.sources.items()
            if (location := location_from_source(info)) is not None
        }
        if locations:
            self._context.record_source_locations(locations)

        if not self._buffer:
            return
        self._content_frames += 1
        self._apply_parsed(parse_response(self._buffer))

    def _apply_parsed(self, parsed: ParsedResponse) -> None:
        if parsed.error is not None:
            self._apply_error(parsed.error)
            # once this response has an Error, answer content stays frozen
            if self._error_message is not None:
                return

        answer = self._current_answer()
        changes: dict[str, Any] = {}

        if parsed.steps:
            progress = answer.progress_text if answer is not None and answer.progress_text else THINKING_TEXT
            changes["steps"] = parsed.steps
            changes["progress_text"] = progress

        if parsed.thinking is not None and parsed.thinking.is_complete and (parsed.steps or answer):
            changes["progress_text"] = THINKING_DONE_TEXT

        if parsed.answer is not None and (parsed.answer_content or answer is not None):
            changes["content"] = parsed.answer_content

        if "steps" in changes or "content" in changes:
            changes["citations"] = parsed.citations

        if changes:
            self._attach(**changes)

    def _apply_error(self, section: Section) -> None:
        """Show an ``<error>`` block once it is complete, then keep it in sync."""
        if self._error_message is not None:
            self._context.update_message(self._error_message, content=section.content)
        elif section.is_complete:
            self._error_message = self._context.add_message(Message.error(section.content))

    # === Terminal frames ===

    def _on_complete(self) -> None:
        self._coalescer.flush()
        if self.finished:
            return
        if not self._content_frames:
            logger.warning("Stream completed without any content")
        self._context.mark_complete()
        self._finish()

    def _on_error(self, frame: InboundFrame) -> None:
        self._coalescer.flush()
        if self.finished:
            return
        error = frame.error or frame.message or "Unknown error"
        logger.error(f"Stream error: {error}")
        self._context.add_message(Message.error(error))
        self._context.mark_errored()
        self._finish()

    def _finish(self) -> None:
        self.finished = True
        self._coalescer.cancel()
        if self._on_finished is not None:
            self._on_finished(self)

    def abandon(self) -> None:
        """Stop handling frames without touching the session (e.g. new chat)."""
        self.finished = True
        self._coalescer.cancel()
