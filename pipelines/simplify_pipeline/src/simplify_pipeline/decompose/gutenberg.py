from __future__ import annotations

import re

from simplify_pipeline.decompose.base import TextSpan, contains_nested_block, has_visible_text

FLOW_BLOCKS = ("paragraph", "heading", "list-item")

_BLOCK_RE = re.compile(
    r"<!--\s*wp:(?P<name>" + "|".join(re.escape(b) for b in FLOW_BLOCKS) + r")(?:\s+\{.*?\})?\s*-->"
    r"(?P<body>.*?)"
    r"<!--\s*/wp:(?P=name)\s*-->",
    re.DOTALL,
)
_ELEMENT_RE = re.compile(r"<(?P<tag>p|h[1-6]|li)(?:\s[^>]*)?>(?P<inner>.*)</(?P=tag)>", re.DOTALL | re.IGNORECASE)


class GutenbergBuilder:
    """Block editor content: `<!-- wp:paragraph -->` comments around one HTML element each."""

    name = "gutenberg"

    def matches(self, content: str) -> bool:
        return "<!-- wp:" in content

    def split_blocks(self, content: str) -> list[TextSpan]:
        spans: list[TextSpan] = []
        for block in _BLOCK_RE.finditer(content):
            body_start = block.start("body")
            element = _ELEMENT_RE.search(block.group("body"))
            if element is None:
                continue
            inner = element.group("inner")
            if not has_visible_text(inner) or contains_nested_block(inner):
                continue
            start = body_start + element.start("inner")
            spans.append(TextSpan(start=start, end=start + len(inner), text=inner, is_html=True))
        return spans
