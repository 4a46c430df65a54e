import pytest
from lxml import html as lxml_html

from bookpress.core import template
from bookpress.renderers.html_renderer import HIDDEN_STYLE, HtmlRenderer
from bookpress.utils.errors import HighlightError, RenderError, UnboundPlaceholderError
from bookpress.utils.structures import OutputFormat

from conftest import build_book


def render(book, config):
    artifact = HtmlRenderer(config).render(book)
    return artifact, artifact.data.decode('utf-8')


def parse(page):
    return lxml_html.document_fromstring(page)


def main_children(doc):
    return doc.xpath('//*[@id="book"]/*')


def is_hidden(element):
    return element.get('style') == HIDDEN_STYLE


def test_artifact(book, config):
    artifact, page = render(book, config)
    assert artifact.format is OutputFormat.HTML
    assert artifact.media_type == "text/html"
    assert artifact.extension == ".html"
    assert page.startswith("<!DOCTYPE html>")
    assert "<title>Test Book</title>" in page


def test_chapters_and_controls_are_interleaved(book, config):
    _, page = render(book, config)
    classes = [el.get('class') for el in main_children(parse(page))]
    assert classes == [
        'chapter', 'chapterControls',
        'chapterControls', 'chapter', 'chapterControls',
        'chapterControls', 'chapter', 'chapterControls',
    ]
    chapters = [el for el in main_children(parse(page)) if el.get('class') == 'chapter']
    assert [c.get('id') for c in chapters] == ['chapter-0', 'chapter-1', 'chapter-2']


def test_control_targets(book, config):
    _, page = render(book, config)
    doc = parse(page)
    hrefs = [c.xpath('.//a/@href')[0] for c in doc.find_class('chapterControls')]
    # next of 0, prev/next of 1, prev/next of 2 (back to contents)
    assert hrefs == ['#chapter-1', '#chapter-0', '#chapter-2', '#chapter-1', '#chapter-0']
    assert "Back to contents" in doc.find_class('chapterControls')[-1].text_content()


def test_single_chapter_book_has_one_control(config):
    book = build_book([("a.md", "# Only\n\nText\n")])
    _, page = render(book, config)
    controls = parse(page).find_class('chapterControls')
    assert len(controls) == 1
    assert controls[0].xpath('.//a/@href') == ['#chapter-0']


def test_initial_visibility_matches_load_state(book, config):
    _, page = render(book, config)
    doc = parse(page)
    chapters = doc.find_class('chapter')
    controls = doc.find_class('chapterControls')
    assert [is_hidden(c) for c in chapters] == [False, True, True]
    assert [is_hidden(c) for c in controls] == [False, True, True, True, True]
    assert not is_hidden(doc.get_element_by_id('toc'))


def test_display_all_hides_nothing(config):
    book = build_book(display_all=True)
    _, page = render(book, config)
    doc = parse(page)
    assert not [el for el in doc.iter() if el.get('style') == HIDDEN_STYLE]
    assert "state.displayAll = true;" in page


def test_toc_lists_chapters_and_subheadings(book, config):
    _, page = render(book, config)
    toc = parse(page).get_element_by_id('toc')
    entries = [(a.get('href'), a.text_content()) for a in toc.iter('a')]
    assert entries == [
        ('#chapter-0', "1. Alpha"),
        ('#chapter-1', "2. Beta"),
        ('#notes', "Notes"),
        ('#chapter-2', "3. Gamma"),
    ]


def test_script_is_bound(book, config):
    config.js_prelude = "var prelude = 42;"
    _, page = render(book, config)
    assert "var state = " in page
    assert '"chapter-2": 2' in page
    assert '"notes": 1' in page
    assert "state.initFns[1] = function () {" in page
    assert "window.seen = true;" in page
    assert "var prelude = 42;" in page
    assert "state.displayAll = false;" in page
    assert "{{" not in page


def test_headings_are_numbered(book, config):
    _, page = render(book, config)
    heading = parse(page).get_element_by_id('beta')
    assert heading.find_class('section-number')[0].text == "2"


def test_code_is_highlighted(config):
    book = build_book([("a.md", "# Code\n\n```python\nprint('hi')\n```\n")])
    _, page = render(book, config)
    code = parse(page).xpath('//pre/code')[0]
    assert code.get('class') == 'language-python'
    assert code.xpath('.//span[@style]')
    assert code.text_content() == "print('hi')"


def test_title_is_escaped(config):
    book = build_book(title="Cats & <Dogs>")
    _, page = render(book, config)
    assert "<title>Cats &amp; &lt;Dogs&gt;</title>" in page


def test_images_and_cover_are_embedded(config, png_file):
    book = build_book([("a.md", "# Pics\n\n![red](pic.png)\n")], cover=png_file)
    _, page = render(book, config)
    doc = parse(page)
    sources = [img.get('src') for img in doc.iter('img')]
    assert len(sources) == 2
    assert all(src.startswith("data:image/png;base64,") for src in sources)


def test_missing_image_is_left_alone(config):
    book = build_book([("a.md", "# Pics\n\n![gone](gone.png)\n")])
    _, page = render(book, config)
    assert 'src="gone.png"' in page


def test_chapter_failure_names_the_chapter(config):
    def failing_highlighter(code, language):
        raise HighlightError("no colours today")

    book = build_book([
        ("a.md", "# One\n"),
        ("b.md", "# Two\n\n```python\nx = 1\n```\n"),
    ])
    with pytest.raises(RenderError) as info:
        HtmlRenderer(config, highlighter=failing_highlighter).render(book)
    assert info.value.chapter_index == 1
    assert isinstance(info.value.cause, HighlightError)


def test_unbound_placeholder_is_fatal(book, config, monkeypatch):
    original = template.load_template

    def load(filename):
        shell = original(filename)
        return shell + "{{{footer}}}" if filename == "template.html" else shell

    monkeypatch.setattr(template, "load_template", load)
    with pytest.raises(UnboundPlaceholderError) as info:
        HtmlRenderer(config).render(book)
    assert info.value.names == ('footer',)


def test_french_labels(config):
    book = build_book(lang="fr")
    _, page = render(book, config)
    assert "Table des matières" in page
    assert "Chapitre suivant" in page


def test_script_survives_malformed_fragments(book, config):
    _, page = render(book, config)
    script = page[page.index("function resolveFragment"):]
    decode = script.index("decodeURIComponent(")
    assert script.rindex("try {", 0, decode) < decode < script.index("catch (e)")


def test_control_characters_in_code_are_dropped(config):
    book = build_book([("a.md", "# Code\n\n```python\na = 1\x0cb = 2\n```\n\nUse `x\x0cy` here.\n")])
    _, page = render(book, config)
    doc = parse(page)
    assert doc.xpath('//pre/code')[0].text_content() == "a = 1b = 2"
    assert "\x0c" not in page
