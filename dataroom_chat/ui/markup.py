"""Answer markdown to HTML conversion for the chat view.

Everything produced here is inserted unsanitized, so all backend text is
escaped before any markup is added.
"""

import html
import re

from dataroom_chat.models.messages import Citation
from dataroom_chat.parsing.answer_parser import MARKER_PATTERN

LINK_PATTERN = re.compile(r"\[([^\]]+)\]\((https?://[^)\s]+)\)")


def _wrap_lists(text: str, item_pattern: str, tag: str, classes: str) -> str:
    """Group consecutive list lines into a single HTML list."""
    result: list[str] = []
    in_list = False
    for line in text.split("\n"):
        stripped = line.strip()
        if re.match(item_pattern, stripped):
            if not in_list:
                result.append(f'<{tag} class="{classes}">')
                in_list = True
            result.append(f"<li>{re.sub(item_pattern, '', stripped)}</li>")
        else:
            if in_list:
                result.append(f"</{tag}>")
                in_list = False
            result.append(line)
    if in_list:
        result.append(f"</{tag}>")
    return "\n".join(result)


def markdown_to_html(text: str) -> str:
    """Convert answer markdown to HTML for chat display.

    Supports: bold, italic, inline code, code blocks, http(s) links, lists.
    Links with any other scheme are left as plain text.
    """
    text = html.escape(text, quote=True)

    text = re.sub(
        r"```(\w*)\n?([\s\S]*?)```",
        r'<pre class="bg-gray-800 text-gray-100 rounded-lg p-3 my-2 overflow-x-auto text-xs"><code>\2</code></pre>',
        text,
    )
    text = re.sub(
        r"`([^`]+)`",
        r'<code class="bg-gray-200 text-pink-600 px-1.5 py-0.5 rounded text-xs">\1</code>',
        text,
    )
    text = re.sub(r"\*\*(.+?)\*\*", r"<strong>\1</strong>", text)
    text = re.sub(r"\*([^*]+)\*", r"<em>\1</em>", text)
    text = LINK_PATTERN.sub(
        r'<a href="\2" class="text-blue-600 underline" target="_blank" rel="noopener">\1</a>',
        text,
    )

    text = _wrap_lists(text, r"^[-*]\s+", "ul", "list-disc list-inside my-2 space-y-1")
    text = _wrap_lists(text, r"^\d+\.\s+", "ol", "list-decimal list-inside my-2 space-y-1")

    return text.replace("\n", "<br>")


def citation_badges(text: str, citations: list[Citation]) -> str:
    """Replace ``@n@`` markers with numbered badges carrying the cited file key."""
    by_number = {c.step_number: c for c in citations}

    def badge(match: re.Match[str]) -> str:
        number = match.group(1)
        citation = by_number.get(number)
        file_key = html.escape(citation.file_key if citation else "", quote=True)
        return f'<span class="citation-badge" data-filekey="{file_key}">{number}</span>'

    return MARKER_PATTERN.sub(badge, text)
