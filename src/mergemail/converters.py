"""HTML to plain text conversion.

Used to derive a plain text alternative from an HTML template:

    message.plain_text = message.convert_html_to_plain_text()
"""

import re
from typing import Final, Protocol

from bs4 import BeautifulSoup

_BLOCK_TAGS: Final = [
    "address",
    "article",
    "blockquote",
    "div",
    "footer",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "header",
    "li",
    "ol",
    "p",
    "pre",
    "section",
    "table",
    "tr",
    "ul",
]
_SKIPPED_TAGS: Final = ["head", "script", "style", "template"]

_INLINE_WHITESPACE: Final = re.compile(r"[ \t\f\v]+")
_BLANK_LINES: Final = re.compile(r"\n{3,}")


class HtmlConverter(Protocol):
    """Converts HTML into plain text."""

    def to_plain_text(self, html: str) -> str: ...


class BeautifulSoupHtmlConverter:
    """Plain text conversion that keeps paragraph and line structure.

    - <br> becomes a line break, block elements start a new paragraph
    - Links keep their target: ``text (https://...)``
    - Head, script and style content is dropped
    """

    def to_plain_text(self, html: str) -> str:
        if not html:
            return ""
        soup = BeautifulSoup(html, "html.parser")

        for tag in soup.find_all(_SKIPPED_TAGS):
            tag.decompose()

        for link in soup.find_all("a", href=True):
            href = str(link["href"])
            text = link.get_text(strip=True)
            if href.startswith(("http:", "https:", "mailto:")) and href.removeprefix("mailto:") != text:
                link.append(f" ({href})")

        for br in soup.find_all("br"):
            br.replace_with("\n")

        for tag in soup.find_all(_BLOCK_TAGS):
            tag.insert_before("\n\n")
            tag.insert_after("\n\n")

        text = soup.get_text()
        lines = [_INLINE_WHITESPACE.sub(" ", line).strip() for line in text.split("\n")]
        return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()


def html_to_plain_text(html: str) -> str:
    """Convert HTML to plain text with the default converter."""
    return BeautifulSoupHtmlConverter().to_plain_text(html)
