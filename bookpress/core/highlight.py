"""
Syntax highlighting of code blocks, wrapped around Pygments.
"""
import html
import logging

from pygments import highlight as pygments_highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.styles import get_style_by_name
from pygments.util import ClassNotFound

from ..utils.errors import HighlightError


log = logging.getLogger("bookpress")

DEFAULT_STYLE = "default"


def strip_language(language: str) -> str:
    """Strips extra infos from a language tag, e.g. "rust,ignore" -> "rust"."""
    return (language or "").split(',')[0].strip()


class Highlighter:
    """
    Converts code to highlighted HTML markup.

    Colours are inlined (no CSS classes), so the markup is self-contained in
    every output format.
    """

    def __init__(self, style_name: str = DEFAULT_STYLE):
        try:
            get_style_by_name(style_name)
        except ClassNotFound:
            log.error(f"Could not set highlight style to '{style_name}', defaulting to '{DEFAULT_STYLE}'.")
            style_name = DEFAULT_STYLE
        self.style_name = style_name
        self.formatter = HtmlFormatter(style=style_name, noclasses=True, nowrap=True)


    def __call__(self, code: str, language: str) -> str:
        return self.to_html(code, language)


    def to_html(self, code: str, language: str) -> str:
        """Returns `<pre><code>` markup for `code`, highlighted if the language is known."""
        language = strip_language(language)
        lang_class = f' class="language-{html.escape(language)}"' if language else ''
        if not language:
            return f"<pre><code>{html.escape(code, quote=False)}</code></pre>"

        try:
            lexer = get_lexer_by_name(language)
        except ClassNotFound:
            log.debug(f"No lexer for language '{language}', leaving code block plain.")
            return f"<pre><code{lang_class}>{html.escape(code, quote=False)}</code></pre>"

        try:
            body = pygments_highlight(code, lexer, self.formatter)
        except Exception as e:
            raise HighlightError(f"Highlighting {language} code failed: {e}") from e
        # Pygments always ends its output with a newline
        return f"<pre><code{lang_class}>{body.rstrip(chr(10))}</code></pre>"
