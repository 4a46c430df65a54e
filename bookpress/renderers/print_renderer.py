"""
Renders a book into a paginated print document.
"""
import dataclasses
import html
import logging
from typing import Protocol

from lxml import etree

from ..core.book import Book, Metadata
from ..core.node_to_html_converter import NodeToHtmlConverter
from ..core.template import bind_resource
from ..core.toc import build_toc_list, collect_toc_items
from ..core.typesetter import WeasyPrintTypesetter
from ..resources.loader import load_css
from ..terms.localized_terms import LocalizedTerms
from ..utils.config import RenderConfig
from ..utils.errors import RenderError, StructureError, UnboundPlaceholderError
from ..utils.structures import Artifact, OutputFormat
from . import common


log = logging.getLogger("bookpress")


class Typesetter(Protocol):
    def typeset(self, document: str, metadata: Metadata) -> bytes: ...


class PrintRenderer:
    """
    Lays every chapter out in one document (no navigation, all chapters
    visible, a page break before each) and hands it to the typesetter.
    """
    format = OutputFormat.PRINT
    required_metadata = ('title',)

    def __init__(self, config: RenderConfig, typesetter: Typesetter | None = None, highlighter=None):
        self.config = config
        self.typesetter = typesetter or WeasyPrintTypesetter(config.resource_dir)
        self.highlighter = highlighter


    def render(self, book: Book) -> Artifact:
        log.info(f"[PRINT] Rendering '{book.metadata.title}'...")
        book = dataclasses.replace(book, display_all=True)
        try:
            document = self.render_document(book)
            data = self.typesetter.typeset(document, book.metadata)
        except (RenderError, StructureError, UnboundPlaceholderError):
            raise
        except Exception as e:
            log.error(f"[PRINT] Rendering failed: {e}")
            raise RenderError(None, e) from e
        log.info("[PRINT] Done.")
        return Artifact(OutputFormat.PRINT, data, "application/pdf", ".pdf")


    def render_document(self, book: Book) -> str:
        """The print HTML handed to the typesetter."""
        terms = LocalizedTerms(book.metadata.lang)
        converter = NodeToHtmlConverter(book, self.config, self.highlighter)

        root = etree.Element('div')
        toc = etree.SubElement(root, 'nav', {'id': 'toc'})
        toc_items = []
        for chapter in book:
            elements = converter.convert_chapter(chapter)
            toc_items.extend(collect_toc_items(
                book.chapter_title(chapter.index),
                f"#{chapter.dom_id}",
                elements,
                self.config.toc_depth,
                href_for_id=lambda el_id: f"#{el_id}",
                id_prefix=f"{chapter.dom_id}-h",
            ))
            root.append(common.chapter_container(book, chapter.index, elements))

        heading = etree.SubElement(toc, 'h2')
        heading.text = terms.get_heading('toc', "Table of Contents")
        toc.append(build_toc_list(toc_items, self.config.toc_depth))
        common.embed_images(root, self.config)

        meta = book.metadata
        return bind_resource("print.html", {
            'lang': html.escape(meta.lang or "en"),
            'title': html.escape(meta.title),
            'author': html.escape(meta.author),
            'style': load_css("print.css", self.config.custom_stylesheet),
            'cover': common.cover_markup(common.load_cover(book), terms.get_heading('cover', "Cover")),
            'toc': common.to_html(toc),
            'content': "\n".join(common.to_html(el) for el in root[1:]),
        }, strict=self.config.strict_templates)
