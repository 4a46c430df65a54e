"""
Renders a book into one self-contained interactive HTML page.
"""
import html
import logging

from lxml import etree

from ..core import navigation
from ..core.book import Book
from ..core.navigation import NavigationMachine
from ..core.node_to_html_converter import NodeToHtmlConverter
from ..core.template import bind_resource
from ..core.toc import build_toc_list, collect_toc_items
from ..resources.loader import load_css
from ..terms.localized_terms import LocalizedTerms
from ..utils.config import RenderConfig
from ..utils.errors import RenderError, StructureError, UnboundPlaceholderError
from ..utils.structures import Artifact, OutputFormat
from . import common


log = logging.getLogger("bookpress")

HIDDEN_STYLE = "display: none"


class HtmlRenderer:
    """
    Produces the single page HTML artifact.

    Chapters are laid out one after another, separated by chapter controls,
    and the bound navigation script shows one chapter at a time. Without
    JavaScript the page shows what the script would show after loading.
    """
    format = OutputFormat.HTML
    required_metadata = ('title',)

    def __init__(self, config: RenderConfig, highlighter=None):
        self.config = config
        self.highlighter = highlighter


    def render(self, book: Book) -> Artifact:
        log.info(f"[HTML] Rendering '{book.metadata.title}'...")
        try:
            page = self._render_page(book)
        except (RenderError, StructureError, UnboundPlaceholderError):
            raise
        except Exception as e:
            log.error(f"[HTML] Rendering failed: {e}")
            raise RenderError(None, e) from e
        log.info("[HTML] Done.")
        return Artifact(OutputFormat.HTML, page.encode('utf-8'), "text/html", ".html")


    def _render_page(self, book: Book) -> str:
        terms = LocalizedTerms(book.metadata.lang)
        converter = NodeToHtmlConverter(book, self.config, self.highlighter)

        # Everything addressable by a fragment lives under this root
        root = etree.Element('div')
        toc = etree.SubElement(root, 'div', {'id': 'toc'})
        toc_items = []

        for chapter in book:
            elements = converter.convert_chapter(chapter)
            toc_items.extend(collect_toc_items(
                book.chapter_title(chapter.index),
                navigation.chapter_fragment(chapter.index),
                elements,
                self.config.toc_depth,
                href_for_id=lambda el_id: f"#{el_id}",
                id_prefix=f"{chapter.dom_id}-h",
            ))
            if chapter.index > 0:
                root.append(self._control(book, terms, chapter.index, forward=False))
            root.append(common.chapter_container(book, chapter.index, elements))
            root.append(self._control(book, terms, chapter.index, forward=True))

        heading = etree.SubElement(toc, 'h2')
        heading.text = terms.get_heading('toc', "Table of Contents")
        toc.append(build_toc_list(toc_items, self.config.toc_depth))

        common.embed_images(root, self.config)

        owners = common.ids_by_owner(root)
        self._apply_initial_visibility(book, root, owners)

        script = bind_resource("script.js", {
            'common_script': navigation.common_script(len(book), owners, book.display_all),
            'new_game': navigation.init_registrations(
                {c.index: c.init_script for c in book if c.init_script}),
            'js_prelude': navigation.script_safe(self.config.js_prelude or ""),
            'display_all': "true" if book.display_all else "false",
        }, strict=self.config.strict_templates)

        toc_markup = common.to_html(root[0])
        content = "\n".join(common.to_html(el) for el in root[1:])
        meta = book.metadata
        cover = common.load_cover(book)
        return bind_resource("template.html", {
            'lang': html.escape(meta.lang or "en"),
            'title': html.escape(meta.title),
            'author': html.escape(meta.author),
            'style': load_css("html.css", self.config.custom_stylesheet),
            'cover': common.cover_markup(cover, terms.get_heading('cover', "Cover")),
            'toc': toc_markup,
            'content': content,
            'script': script,
        }, strict=self.config.strict_templates)


    def _control(self, book: Book, terms: LocalizedTerms, index: int, forward: bool) -> etree._Element:
        """
        A chapter control. Previous controls precede chapters 1..N-1, next
        controls follow every chapter; the last one leads back to the contents.
        """
        div = etree.Element('div', {'class': 'chapterControls'})
        if forward and index == len(book) - 1:
            target, label = 0, terms.get_heading('back_to_contents', "Back to contents")
        elif forward:
            target = index + 1
            label = f"{terms.get_heading('next', 'Next')}: {book.chapter_title(target)}"
        else:
            target = index - 1
            label = f"{terms.get_heading('previous', 'Previous')}: {book.chapter_title(target)}"
        a = etree.SubElement(div, 'a', {'href': navigation.chapter_fragment(target)})
        a.text = label
        return div


    def _apply_initial_visibility(self, book: Book, root: etree._Element, owners: dict[str, int]):
        """Hides what the navigation script would hide after loading the page."""
        machine = NavigationMachine.for_book(book, owners)
        machine.on_load("")

        chapters = [el for el in root if 'chapter' in (el.get('class') or '').split()]
        controls = [el for el in root if el.get('class') == 'chapterControls']
        for element, visible in zip(chapters, machine.chapters_visible):
            if not visible:
                element.set('style', HIDDEN_STYLE)
        for element, visible in zip(controls, machine.controls_visible):
            if not visible:
                element.set('style', HIDDEN_STYLE)
        if not machine.toc_visible:
            root[0].set('style', HIDDEN_STYLE)
        log.debug(f"[HTML] Initially visible: chapters {machine.visible_chapters()}, "
                  f"controls {machine.visible_controls()}")
