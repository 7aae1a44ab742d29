"""Parsing of the streamed answer document.

Turns the cumulative ``response`` text into structured content: thinking
steps, final answer, error block and inline citations.

Responsibilities:
    - Tag section extraction tolerant of tags split across frames
    - Sequential numbered-step detection inside ``<think>``
    - Citation token substitution with ``@n@`` markers
    - Suppression of malformed leading tags until they resolve

Output is recomputed wholesale on every update, so re-parsing is idempotent.
"""

from dataroom_chat.parsing.answer_parser import (
    ParsedResponse,
    Section,
    extract_section,
    extract_thinking_steps,
    message_from_history,
    parse_response,
    strip_citation_markers,
    substitute_citations,
)

__all__ = [
    "ParsedResponse",
    "Section",
    "extract_section",
    "extract_thinking_steps",
    "message_from_history",
    "parse_response",
    "strip_citation_markers",
    "substitute_citations",
]
