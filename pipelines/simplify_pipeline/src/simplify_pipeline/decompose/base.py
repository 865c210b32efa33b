from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Protocol

from bs4 import BeautifulSoup

_NESTED_BLOCK_RE = re.compile(r"<(p|li|ul|ol|h[1-6])[\s>]", re.IGNORECASE)


@dataclass(frozen=True)
class TextSpan:
    """A replaceable piece of raw content, addressed by character offsets."""

    start: int
    end: int
    text: str
    is_html: bool = True


class PageBuilder(Protocol):
    name: str

    def matches(self, content: str) -> bool: ...

    def split_blocks(self, content: str) -> list[TextSpan]: ...


def has_visible_text(html: str) -> bool:
    if not html.strip():
        return False
    return bool(BeautifulSoup(html, "lxml").get_text(" ", strip=True))


def contains_nested_block(html: str) -> bool:
    return _NESTED_BLOCK_RE.search(html) is not None
