from __future__ import annotations

import re

from simplify_pipeline.decompose.base import TextSpan, contains_nested_block, has_visible_text

_ELEMENT_RE = re.compile(r"<(?P<tag>p|h[1-6]|li)(?:\s[^>]*)?>(?P<inner>.*?)</(?P=tag)>", re.DOTALL | re.IGNORECASE)
_TAG_RE = re.compile(r"<[a-zA-Z!/]")


class ClassicBuilder:
    """
    Fallback for content without a recognised page builder.
    Paragraphs, headings and list items become blocks; content without any of them is one block.
    """

    name = "classic"

    def matches(self, content: str) -> bool:
        return True

    def split_blocks(self, content: str) -> list[TextSpan]:
        spans: list[TextSpan] = []
        for element in _ELEMENT_RE.finditer(content):
            inner = element.group("inner")
            if not has_visible_text(inner) or contains_nested_block(inner):
                continue
            spans.append(TextSpan(start=element.start("inner"), end=element.end("inner"), text=inner, is_html=True))
        if spans:
            return spans

        stripped = content.strip()
        if not stripped or not has_visible_text(stripped):
            return []
        start = content.index(stripped)
        return [
            TextSpan(
                start=start,
                end=start + len(stripped),
                text=stripped,
                is_html=_TAG_RE.search(stripped) is not None,
            )
        ]
