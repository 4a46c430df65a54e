from lxml import etree

from bookpress.core.highlight import Highlighter, strip_language


def test_strip_language():
    assert strip_language("rust,ignore") == "rust"
    assert strip_language(" python ") == "python"
    assert strip_language("") == ""


def test_known_language_is_highlighted_inline():
    markup = Highlighter()("x = '<b>'\n", "python")
    pre = etree.fromstring(markup)
    code = pre[0]
    assert pre.tag == 'pre'
    assert code.get('class') == 'language-python'
    assert code.xpath('.//span[@style]')
    assert "".join(code.itertext()) == "x = '<b>'"


def test_unknown_language_is_escaped_plain_text():
    markup = Highlighter().to_html("a < b && c", "no-such-language")
    assert markup == '<pre><code class="language-no-such-language">a &lt; b &amp;&amp; c</code></pre>'


def test_no_language():
    assert Highlighter().to_html("plain", "") == "<pre><code>plain</code></pre>"


def test_unknown_style_falls_back_to_default():
    assert Highlighter("no-such-style").style_name == "default"
