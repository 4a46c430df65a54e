import pytest
from lxml import html as lxml_html

from bookpress.renderers.print_renderer import PrintRenderer
from bookpress.utils.errors import RenderError, TypesettingError
from bookpress.utils.structures import OutputFormat

from conftest import FakeTypesetter, build_book


def test_artifact_comes_from_the_typesetter(book, config):
    typesetter = FakeTypesetter()
    artifact = PrintRenderer(config, typesetter=typesetter).render(book)
    assert artifact.format is OutputFormat.PRINT
    assert artifact.data == b"%PDF-fake"
    assert artifact.media_type == "application/pdf"
    assert artifact.extension == ".pdf"
    assert len(typesetter.documents) == 1


def test_document_shows_every_chapter_without_navigation(book, config):
    typesetter = FakeTypesetter()
    PrintRenderer(config, typesetter=typesetter).render(book)
    document = typesetter.documents[0]
    doc = lxml_html.document_fromstring(document)

    chapters = doc.find_class('chapter')
    assert [c.get('id') for c in chapters] == ['chapter-0', 'chapter-1', 'chapter-2']
    assert not [c for c in chapters if c.get('style')]
    assert not doc.find_class('chapterControls')
    assert not doc.xpath('//script')
    assert "page-break-before" in document


def test_source_book_is_left_unchanged(book, config):
    PrintRenderer(config, typesetter=FakeTypesetter()).render(book)
    assert book.display_all is False


def test_toc_links_to_chapters(book, config):
    typesetter = FakeTypesetter()
    PrintRenderer(config, typesetter=typesetter).render(book)
    toc = lxml_html.document_fromstring(typesetter.documents[0]).get_element_by_id('toc')
    assert [a.get('href') for a in toc.iter('a')] == ['#chapter-0', '#chapter-1', '#notes', '#chapter-2']


def test_typesetting_failure_is_a_book_level_render_error(book, config):
    typesetter = FakeTypesetter(error=TypesettingError("no fonts"))
    with pytest.raises(RenderError) as info:
        PrintRenderer(config, typesetter=typesetter).render(book)
    assert info.value.chapter_index is None
    assert isinstance(info.value.cause, TypesettingError)


def test_images_are_embedded(config, png_file):
    typesetter = FakeTypesetter()
    book = build_book([("a.md", "# Pics\n\n![red](pic.png)\n")])
    PrintRenderer(config, typesetter=typesetter).render(book)
    assert "data:image/png;base64," in typesetter.documents[0]
