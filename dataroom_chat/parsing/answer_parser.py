"""Incremental parser for the streamed answer markup.

The backend streams a document of the form::

    <think>
    1. Searching the lease [1](leases/lease.pdf::sec4)
    2. Comparing clauses
    </think>
    <answer>The termination clause is in section 4 [1](leases/lease.pdf::sec4).</answer>

optionally with an ``<error>...</error>`` block. Tags may be split across
frames, so every update re-parses the *entire* cumulative buffer from scratch
and the caller replaces (never appends) what it rendered before. Parsing the
same buffer twice yields identical output.
"""

import logging
import re

from pydantic import BaseModel, Field

from dataroom_chat.models.messages import Citation, Message, MessageKind, ThoughtStep

logger = logging.getLogger(__name__)

THINK_TAGS = ("<think>", "</think>")
ANSWER_TAGS = ("<answer>", "</answer>")
ERROR_TAGS = ("<error>", "</error>")

CITATION_PATTERN = re.compile(r"\[(\d+)\]\((.*?)::(.*?)\)")
STEP_PATTERN = re.compile(r"^(\d+)\.\s+(.*)")
MARKER_PATTERN = re.compile(r"@(\d+)@")
LEAKED_THINK_PATTERN = re.compile(r"</?think")


class Section(BaseModel):
    """A tagged section of the response.

    Attributes:
        content: Inner text. Provisional while the end tag is missing.
        remaining: Text after the end tag (empty while incomplete).
        is_complete: Whether the end tag has arrived.
    """

    content: str
    remaining: str = ""
    is_complete: bool


class ParsedResponse(BaseModel):
    """Structured view of one cumulative response buffer."""

    error: Section | None = None
    thinking: Section | None = None
    steps: list[ThoughtStep] = Field(default_factory=list)
    step_citations: list[Citation] = Field(default_factory=list)
    answer: Section | None = None
    answer_content: str = ""
    answer_citations: list[Citation] = Field(default_factory=list)
    malformed: bool = False

    @property
    def error_complete(self) -> bool:
        return self.error is not None and self.error.is_complete

    @property
    def citations(self) -> list[Citation]:
        """All citations, thinking steps first, then the answer."""
        return [*self.step_citations, *self.answer_citations]


def _trim_partial_tag(content: str, tag: str) -> str:
    """Drop a trailing prefix of ``tag`` (an end tag split across frames)."""
    for size in range(len(tag) - 1, 0, -1):
        if content.endswith(tag[:size]):
            return content[:-size]
    return content


def extract_section(text: str, start_tag: str, end_tag: str) -> Section | None:
    """Extract the section delimited by ``start_tag`` and ``end_tag``.

    Args:
        text: Full cumulative response text.
        start_tag: Opening tag, e.g. ``<answer>``.
        end_tag: Closing tag, e.g. ``</answer>``.

    Returns:
        None if the start tag has not arrived. An incomplete section holding
        everything after the start tag if the end tag is missing. Otherwise
        the stripped inner text plus the remainder after the end tag.
    """
    start = text.find(start_tag)
    if start == -1:
        return None

    body_start = start + len(start_tag)
    end = text.find(end_tag, body_start)
    if end == -1:
        return Section(
            content=_trim_partial_tag(text[body_start:], end_tag),
            is_complete=False,
        )

    return Section(
        content=text[body_start:end].strip(),
        remaining=text[end + len(end_tag):].strip(),
        is_complete=True,
    )


def substitute_citations(
    text: str,
    origin_step: int | None = None,
    offset: int = 0,
    first_id: int = 0,
) -> tuple[str, list[Citation]]:
    """Replace citation tokens with ``@n@`` markers.

    Args:
        text: Text that may contain ``[n](fileKey::chunkText)`` tokens.
        origin_step: Thought step the text belongs to (None for the answer).
        offset: Added to each token offset, for text that is a slice of a
            larger step.
        first_id: Index used for the first citation id.

    Returns:
        The substituted text and the citations in order of appearance.
    """
    citations: list[Citation] = []

    def replace(match: re.Match[str]) -> str:
        citations.append(
            Citation(
                id=f"citation-{first_id + len(citations)}",
                step_number=match.group(1),
                file_key=match.group(2),
                chunk_text=match.group(3),
                position=offset + match.start(),
                origin_step=origin_step,
            )
        )
        return f"@{match.group(1)}@"

    return CITATION_PATTERN.sub(replace, text), citations


def extract_thinking_steps(content: str) -> tuple[list[ThoughtStep], list[Citation]]:
    """Split thinking content into numbered steps.

    A line ``N. text`` opens a new step only when ``N`` is exactly one more
    than the current step number. Any other line, including numbered prose
    that breaks the sequence, continues the current step. Lines before the
    first step are dropped.

    Args:
        content: Inner text of the ``<think>`` section.

    Returns:
        The steps and the citations found in them.
    """
    steps: list[ThoughtStep] = []
    citations: list[Citation] = []
    raw_length = 0  # raw (unsubstituted) length of the current step

    for line in content.split("\n"):
        match = STEP_PATTERN.match(line)
        if match and int(match.group(1)) == len(steps) + 1:
            number = len(steps) + 1
            text, found = substitute_citations(
                match.group(2), origin_step=number, first_id=len(citations)
            )
            steps.append(ThoughtStep(number=number, content=text))
            citations.extend(found)
            raw_length = len(match.group(2))
        elif steps:
            current = steps[-1]
            text, found = substitute_citations(
                line,
                origin_step=current.number,
                offset=raw_length + 1,
                first_id=len(citations),
            )
            current.content += "\n" + text
            citations.extend(found)
            raw_length += 1 + len(line)

    return steps, citations


def is_malformed(content: str) -> bool:
    """Whether answer content starts with an unknown ``<t`` tag or leaks a think tag."""
    return content.lstrip().startswith("<t") or bool(LEAKED_THINK_PATTERN.search(content))


def parse_response(text: str) -> ParsedResponse:
    """Parse a cumulative response buffer into its structured sections.

    Sections are processed in order: error, thinking, answer. A complete
    error section stops processing. The answer is looked up in the text that
    follows a complete thinking block.

    Args:
        text: Concatenation of every ``response`` delta received so far.

    Returns:
        The structured view of the buffer.
    """
    parsed = ParsedResponse()

    error = extract_section(text, *ERROR_TAGS)
    if error is not None:
        parsed.error = error
        if error.is_complete:
            return parsed

    remaining = text
    thinking = extract_section(remaining, *THINK_TAGS)
    if thinking is not None:
        parsed.thinking = thinking
        parsed.steps, parsed.step_citations = extract_thinking_steps(thinking.content)
        remaining = thinking.remaining

    answer = extract_section(remaining, *ANSWER_TAGS)
    if answer is not None:
        parsed.answer = answer
        if is_malformed(answer.content):
            logger.debug("Suppressing malformed answer content until it resolves")
            parsed.malformed = True
        else:
            parsed.answer_content, parsed.answer_citations = substitute_citations(
                answer.content
            )

    return parsed


def strip_citation_markers(text: str) -> str:
    """Remove ``@n@`` markers, e.g. for copying an answer as plain text."""
    return MARKER_PATTERN.sub("", text)


def message_from_history(role: str, content: str) -> Message:
    """Rebuild a log entry from a backend chat-history entry.

    Args:
        role: ``user`` or ``assistant``.
        content: Raw message text as stored by the backend.

    Returns:
        A Question for user entries; otherwise a parsed Answer (or an Error
        when the stored text is a complete error block).
    """
    if role == "user":
        return Message.question(content)

    parsed = parse_response(content.replace("\r\n", "\n"))
    if parsed.error_complete:
        return Message.error(parsed.error.content)

    if parsed.thinking is None and parsed.answer is None:
        answer_text = content.strip()
    else:
        answer_text = parsed.answer_content.strip()

    return Message(
        kind=MessageKind.ANSWER,
        content=answer_text,
        steps=parsed.steps,
        citations=parsed.citations,
    )
