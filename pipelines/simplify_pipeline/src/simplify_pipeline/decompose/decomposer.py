"""
Object Decomposer: turns a content object into ordered (identifier, text, is_html) triples and
splices simplified texts back into the object's native storage format.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

from simplify_pipeline.decompose.base import PageBuilder, TextSpan
from simplify_pipeline.decompose.classic import ClassicBuilder
from simplify_pipeline.decompose.gutenberg import GutenbergBuilder

logger = logging.getLogger(__name__)

FIELD_TITLE = "title"
FIELD_POST_CONTENT = "post_content"
FIELD_DESCRIPTION = "description"
DEFAULT_FIELDS = (FIELD_TITLE, FIELD_POST_CONTENT)

TERM_OBJECT_TYPES = frozenset({"term", "category", "post_tag"})


class DecomposableObject(Protocol):
    object_type: str
    title: str
    content: str
    page_builder: str | None


@dataclass(frozen=True)
class DecomposedText:
    field: str
    identifier: str
    text: str
    is_html: bool


@dataclass(frozen=True)
class Reassembled:
    title: str
    content: str


def body_field_for(object_type: str) -> str:
    return FIELD_DESCRIPTION if object_type in TERM_OBJECT_TYPES else FIELD_POST_CONTENT


class ObjectDecomposer:
    """
    Builders are tried in registration order; the classic builder is always the last resort.
    """

    def __init__(self, builders: Sequence[PageBuilder] | None = None) -> None:
        self._builders: list[PageBuilder] = list(builders) if builders is not None else [GutenbergBuilder()]
        self._fallback = ClassicBuilder()

    def register(self, builder: PageBuilder) -> None:
        self._builders.append(builder)

    def builder_names(self) -> list[str]:
        return [b.name for b in self._builders] + [self._fallback.name]

    def builder_for(self, content: str, preferred: str | None = None) -> PageBuilder:
        if preferred:
            for builder in self._builders:
                if builder.name == preferred:
                    return builder
        for builder in self._builders:
            if builder.matches(content):
                return builder
        return self._fallback

    def decompose(self, obj: DecomposableObject, field_list: Iterable[str] = DEFAULT_FIELDS) -> list[DecomposedText]:
        body_field = body_field_for(obj.object_type)
        texts: list[DecomposedText] = []
        for field_name in field_list:
            if field_name == FIELD_TITLE:
                title = (obj.title or "").strip()
                if title:
                    texts.append(DecomposedText(FIELD_TITLE, FIELD_TITLE, title, False))
            elif field_name in (FIELD_POST_CONTENT, FIELD_DESCRIPTION):
                for index, span in enumerate(self._spans(obj)):
                    texts.append(DecomposedText(body_field, f"{body_field}:{index}", span.text, span.is_html))
            else:
                logger.debug("ignoring unknown field %r", field_name)
        return texts

    def reassemble(self, obj: DecomposableObject, replacements: Mapping[str, str]) -> Reassembled:
        """
        Replace texts at matching identifiers; everything outside the replaced spans is kept
        byte for byte. Unknown identifiers are ignored.
        """
        title = replacements.get(FIELD_TITLE, obj.title)
        body_field = body_field_for(obj.object_type)
        content = obj.content or ""
        spans = self._spans(obj)
        # Splice from the end so earlier offsets stay valid.
        for index in range(len(spans) - 1, -1, -1):
            replacement = replacements.get(f"{body_field}:{index}")
            if replacement is None:
                continue
            span = spans[index]
            content = content[: span.start] + replacement + content[span.end :]
        return Reassembled(title=title, content=content)

    def _spans(self, obj: DecomposableObject) -> list[TextSpan]:
        content = obj.content or ""
        builder = self.builder_for(content, obj.page_builder)
        return builder.split_blocks(content)
