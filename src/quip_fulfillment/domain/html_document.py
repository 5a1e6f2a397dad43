"""Pure helpers over Quip document HTML."""

from __future__ import annotations

from bs4 import BeautifulSoup

_HTML_PARSER = "html.parser"


def last_list_item_id(html: str) -> str | None:
    """Return the `id` of the last list item of the last `<ul>`/`<ol>` in the document.

    Items are taken in document order, so for nested lists the innermost
    trailing item wins. Returns None when there is no list item or when the
    item carries no id.
    """

    soup = BeautifulSoup(html, _HTML_PARSER)
    items = soup.select("ul li, ol li")
    if not items:
        return None
    item_id = items[-1].get("id")
    if isinstance(item_id, str) and item_id:
        return item_id
    return None


def html_to_text(html: str) -> str:
    """Extract readable text, one block per line, trimmed."""

    soup = BeautifulSoup(html, _HTML_PARSER)
    return soup.get_text(separator="\n", strip=True)
