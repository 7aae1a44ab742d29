"""Fan-out of inbound frames to per-query handlers.

The protocol carries no per-query correlation id, so every frame reaches every
registered handler and handlers filter by content. A handler must remove
itself once its query reaches ``complete`` or ``error``.
"""

import json
import logging
from collections.abc import Callable

from pydantic import ValidationError

from dataroom_chat.models.schemas import InboundFrame

logger = logging.getLogger(__name__)

FrameHandler = Callable[[InboundFrame], None]


class MessageRouter:
    """Registry of frame handlers with broadcast delivery."""

    def __init__(self) -> None:
        self._handlers: list[FrameHandler] = []

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def add_handler(self, handler: FrameHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def remove_handler(self, handler: FrameHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def clear(self) -> None:
        self._handlers.clear()

    def dispatch(self, frame: InboundFrame) -> None:
        """Deliver a frame to every handler registered at call time.

        Handlers may unregister themselves (or others) while being called.
        An exception in one handler is logged and does not stop delivery.
        """
        for handler in list(self._handlers):
            try:
                handler(frame)
            except Exception:
                logger.exception(f"Frame handler failed on {frame.type!r} frame")

    def dispatch_raw(self, raw: str | bytes) -> InboundFrame | None:
        """Decode, validate and dispatch one raw WebSocket message.

        Returns:
            The dispatched frame, or None if the message was dropped.
        """
        try:
            data = json.loads(raw)
        except ValueError:
            # JSONDecodeError, or UnicodeDecodeError for undecodable binary frames
            logger.warning(f"Dropping non-JSON frame: {raw[:200]!r}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Dropping non-object frame: {data!r}")
            return None

        try:
            frame = InboundFrame.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Dropping invalid frame: {e}")
            return None

        if frame.frame_type is None:
            logger.debug(f"Ignoring frame of unknown type {frame.type!r}")
            return None

        self.dispatch(frame)
        return frame
