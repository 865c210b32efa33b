"""
Object decomposer: block splitting per page builder and structure-preserving reassembly.
"""

from types import SimpleNamespace

import pytest

from simplify_pipeline.decompose.base import TextSpan, has_visible_text
from simplify_pipeline.decompose.classic import ClassicBuilder
from simplify_pipeline.decompose.decomposer import ObjectDecomposer
from simplify_pipeline.decompose.gutenberg import GutenbergBuilder

GUTENBERG = (
    "<!-- wp:heading -->\n<h2 class=\"wp-block-heading\">Über uns</h2>\n<!-- /wp:heading -->\n\n"
    "<!-- wp:paragraph {\"align\":\"center\"} -->\n<p class=\"has-text-align-center\">Wir sind ein <em>kleiner</em> Verein.</p>\n<!-- /wp:paragraph -->\n\n"
    "<!-- wp:image -->\n<figure class=\"wp-block-image\"><img src=\"a.png\" alt=\"\"/></figure>\n<!-- /wp:image -->\n\n"
    "<!-- wp:paragraph -->\n<p></p>\n<!-- /wp:paragraph -->"
)

CLASSIC = "<h1>Willkommen</h1>\n<p>Erster Absatz.</p>\n<ul><li>Punkt eins</li><li>Punkt zwei</li></ul>"


def _post(title="Titel", content="", object_type="post", page_builder=None):
    return SimpleNamespace(title=title, content=content, object_type=object_type, page_builder=page_builder)


@pytest.fixture
def decomposer():
    return ObjectDecomposer()


class TestGutenbergBuilder:
    def test_only_text_blocks_with_visible_text(self):
        spans = GutenbergBuilder().split_blocks(GUTENBERG)
        assert [s.text for s in spans] == ["Über uns", "Wir sind ein <em>kleiner</em> Verein."]

    def test_offsets_address_the_inner_html(self):
        for span in GutenbergBuilder().split_blocks(GUTENBERG):
            assert GUTENBERG[span.start : span.end] == span.text

    def test_matches_block_markup_only(self):
        builder = GutenbergBuilder()
        assert builder.matches(GUTENBERG)
        assert not builder.matches(CLASSIC)


class TestClassicBuilder:
    def test_paragraphs_headings_and_list_items(self):
        spans = ClassicBuilder().split_blocks(CLASSIC)
        assert [s.text for s in spans] == ["Willkommen", "Erster Absatz.", "Punkt eins", "Punkt zwei"]

    def test_plain_text_is_one_block(self):
        spans = ClassicBuilder().split_blocks("  Nur ein Satz ohne Markup.  ")
        assert spans == [TextSpan(start=2, end=27, text="Nur ein Satz ohne Markup.", is_html=False)]

    def test_empty_content(self):
        assert ClassicBuilder().split_blocks("   ") == []
        assert not has_visible_text("<p> </p>")


class TestDecompose:
    def test_title_comes_first(self, decomposer):
        texts = decomposer.decompose(_post(content=GUTENBERG))
        assert [t.identifier for t in texts] == ["title", "post_content:0", "post_content:1"]
        assert texts[0].is_html is False
        assert texts[1].is_html is True

    def test_terms_use_the_description_field(self, decomposer):
        texts = decomposer.decompose(_post(content="<p>Beschreibung</p>", object_type="category"))
        assert [t.identifier for t in texts] == ["title", "description:0"]

    def test_field_selection(self, decomposer):
        texts = decomposer.decompose(_post(content=GUTENBERG), field_list=["post_content"])
        assert all(t.field == "post_content" for t in texts)

    def test_blank_title_is_skipped(self, decomposer):
        assert decomposer.decompose(_post(title="  ", content="")) == []

    def test_preferred_builder_wins(self, decomposer):
        assert decomposer.builder_for(CLASSIC, "gutenberg").name == "gutenberg"
        assert decomposer.builder_for(CLASSIC).name == "classic"
        assert decomposer.builder_names() == ["gutenberg", "classic"]


class TestReassemble:
    def test_structure_is_preserved(self, decomposer):
        post = _post(content=GUTENBERG)
        replacements = {t.identifier: t.text.upper() for t in decomposer.decompose(post)}

        result = decomposer.reassemble(post, replacements)

        assert result.title == "TITEL"
        assert '<h2 class="wp-block-heading">ÜBER UNS</h2>' in result.content
        assert '<p class="has-text-align-center">WIR SIND EIN <EM>KLEINER</EM> VEREIN.</p>' in result.content
        assert '<figure class="wp-block-image"><img src="a.png" alt=""/></figure>' in result.content
        assert result.content.count("<!-- wp:") == GUTENBERG.count("<!-- wp:")

    def test_identity_replacements_change_nothing(self, decomposer):
        post = _post(content=CLASSIC)
        replacements = {t.identifier: t.text for t in decomposer.decompose(post)}
        result = decomposer.reassemble(post, replacements)
        assert (result.title, result.content) == (post.title, post.content)

    def test_unknown_identifiers_are_ignored(self, decomposer):
        post = _post(content=CLASSIC)
        result = decomposer.reassemble(post, {"post_content:9": "x", "post_content:1": "Kurz."})
        assert result.content == CLASSIC.replace("Erster Absatz.", "Kurz.")

    def test_longer_replacements_keep_later_offsets_valid(self, decomposer):
        post = _post(content=CLASSIC)
        result = decomposer.reassemble(
            post, {"post_content:0": "Herzlich willkommen auf unserer Seite", "post_content:3": "Punkt 2"}
        )
        assert result.content == (
            "<h1>Herzlich willkommen auf unserer Seite</h1>\n<p>Erster Absatz.</p>\n"
            "<ul><li>Punkt eins</li><li>Punkt 2</li></ul>"
        )

    @pytest.mark.parametrize("content", [GUTENBERG, CLASSIC], ids=["gutenberg", "classic"])
    def test_decomposing_reassembled_content_is_stable(self, decomposer, content):
        post = _post(content=content)
        first = decomposer.decompose(post)
        replacements = {t.identifier: f"Leicht: {t.text}" for t in first}

        result = decomposer.reassemble(post, replacements)
        again = decomposer.decompose(_post(title=result.title, content=result.content))

        assert [(t.identifier, t.field, t.is_html) for t in again] == [
            (t.identifier, t.field, t.is_html) for t in first
        ]
        assert [t.text for t in again] == [replacements[t.identifier] for t in first]
        assert decomposer.reassemble(post, replacements) == result
