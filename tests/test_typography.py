from lxml import etree

from bookpress.post_processing.post_processor import PostProcessor
from bookpress.post_processing.typography import NBSP, NNBSP, improve_typography
from bookpress.utils.config import RenderConfig


def container(markup):
    return etree.fromstring(f"<div>{markup}</div>")


def test_last_word_is_bound():
    div = container("<p>One two three four</p>")
    improve_typography(div)
    assert div[0].text == f"One two three{NBSP}four"


def test_last_word_inside_inline_markup():
    div = container("<p>One two <em>three four.</em></p>")
    improve_typography(div)
    assert div[0][0].text == f"three{NBSP}four."


def test_short_paragraphs_are_left_alone():
    div = container("<p>Two words</p>")
    improve_typography(div)
    assert div[0].text == "Two words"


def test_french_punctuation():
    div = container("<p>Vraiment ? Oui ! « Bien »</p>")
    improve_typography(div, lang="fr-CA")
    text = div[0].text
    assert f"Vraiment{NNBSP}?" in text
    assert f"Oui{NNBSP}!" in text
    assert f"«{NBSP}Bien{NBSP}»" in text


def test_french_rules_need_french():
    div = container("<p>Really ? Yes !</p>")
    improve_typography(div, lang="en")
    assert NNBSP not in div[0].text


def test_code_is_untouched():
    div = container("<p>Call <code>a ; b ?</code> now</p><pre>x ?</pre>")
    improve_typography(div, lang="fr")
    assert div[0][0].text == "a ; b ?"
    assert div[1].text == "x ?"


def test_post_processor_removes_empty_elements():
    div = container("<p>Keep <em></em>tail</p><p></p><p id='anchor'></p>")
    PostProcessor(RenderConfig()).run(div)
    assert len(div) == 2
    assert div[0].text == "Keep tail"
    assert div[1].get('id') == 'anchor'


def test_post_processor_runs_typography_when_enabled():
    div = container("<p>One two three four</p>")
    PostProcessor(RenderConfig(improve_typography=True)).run(div)
    assert div[0].text.endswith(f"{NBSP}four")
