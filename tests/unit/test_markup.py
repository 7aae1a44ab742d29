"""Unit tests for answer markdown rendering."""

import pytest_check as check

from dataroom_chat.models.messages import Citation
from dataroom_chat.ui.markup import citation_badges, markdown_to_html


def _citation(number: str, file_key: str) -> Citation:
    return Citation(
        id=f"citation-{number}",
        step_number=number,
        file_key=file_key,
        chunk_text="chunk",
        position=0,
    )


class TestMarkdownToHtml:
    def test_bold_and_lists(self) -> None:
        html = markdown_to_html("**Total** due\n- rent\n- fees")

        check.is_in("<strong>Total</strong> due", html)
        check.is_in('<ul class="list-disc list-inside my-2 space-y-1">', html)
        check.is_in("<li>rent</li><br><li>fees</li>", html)

    def test_ordered_list(self) -> None:
        html = markdown_to_html("1. first\n2. second")

        check.is_in("<ol", html)
        check.is_in("<li>first</li><br><li>second</li>", html)

    def test_markup_in_text_is_escaped(self) -> None:
        html = markdown_to_html('<script>alert("x")</script>')

        check.is_not_in("<script", html)
        check.equal(html, "&lt;script&gt;alert(&quot;x&quot;)&lt;/script&gt;")

    def test_http_link_becomes_anchor(self) -> None:
        html = markdown_to_html("[docs](https://example.com/a?b=1&c=2)")

        check.is_in('<a href="https://example.com/a?b=1&amp;c=2"', html)
        check.is_in(">docs</a>", html)

    def test_javascript_link_stays_text(self) -> None:
        html = markdown_to_html("[click](javascript:alert(1))")

        check.is_not_in("<a ", html)
        check.is_not_in("href", html)
        check.is_in("[click](javascript:alert(1))", html)

    def test_link_cannot_break_out_of_href(self) -> None:
        html = markdown_to_html('[x](https://a.test/"onmouseover="alert(1))')

        check.is_not_in('"onmouseover', html)


class TestCitationBadges:
    def test_marker_becomes_badge(self) -> None:
        html = citation_badges("See @1@", [_citation("1", "bucket/lease")])

        check.equal(html, 'See <span class="citation-badge" data-filekey="bucket/lease">1</span>')

    def test_file_key_is_escaped_in_attribute(self) -> None:
        html = citation_badges("See @1@", [_citation("1", 'x" onmouseover="alert(1)')])

        check.equal(
            html,
            'See <span class="citation-badge" '
            'data-filekey="x&quot; onmouseover=&quot;alert(1)">1</span>',
        )

    def test_unknown_marker_has_empty_key(self) -> None:
        html = citation_badges("@2@", [_citation("1", "bucket/lease")])

        check.equal(html, '<span class="citation-badge" data-filekey="">2</span>')
