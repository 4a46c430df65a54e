"""
Handles the conversion of format-agnostic Nodes to (X)HTML elements.
"""
import logging
from typing import Callable, NamedTuple

from lxml import etree, html as lxml_html

from ..post_processing.post_processor import PostProcessor
from ..utils import xml_utils as xu
from ..utils.config import RenderConfig
from ..utils.errors import RenderError
from .book import Book, Chapter, Node
from .highlight import Highlighter


log = logging.getLogger("bookpress")


class Tag(NamedTuple):
    """Structure to represent an HTML tag with attributes."""
    name: str
    attrib: dict | None = None

    def create(self) -> etree._Element:
        """Creates an lxml Element with the specified tag and attributes."""
        return etree.Element(self.name, self.attrib)


class NodeToHtmlConverter:
    """
    Transforms Node trees into lxml (X)HTML elements.

    This class uses a handler-based approach, dispatching conversion to
    specific methods based on the node kind. Every renderer uses it, so
    chapter content looks the same in every format; numbering of headings
    is applied here as well.
    """

    def __init__(self, book: Book, config: RenderConfig,
                 highlighter: Callable[[str, str], str] | None = None):
        """
        Initializes the converter with the book (for numbering) and the
        highlight capability used for code blocks.
        """
        self.book = book
        self.config = config
        self.highlighter = highlighter or Highlighter(config.highlight_style)

        # Map for direct kind-to-tag conversions.
        self.tag_map: dict[str, Tag] = {
            'paragraph': Tag('p'),
            'block_quote': Tag('blockquote'),
            'list_item': Tag('li'),
            'rule': Tag('hr'),
            'table': Tag('table'),
            'table_row': Tag('tr'),
            'definition_list': Tag('dl'),
            'definition_term': Tag('dt'),
            'definition': Tag('dd'),
            'division': Tag('div'),
            'emphasis': Tag('em'),
            'strong': Tag('strong'),
            'line_break': Tag('br'),
            'strikethrough': Tag('del'),
            'superscript': Tag('sup'),
            'subscript': Tag('sub'),
            'span': Tag('span'),
        }

        # Dispatch map for kinds that require special handling.
        self._handler_map = {
            'heading': self._handle_heading,
            'code_block': self._handle_code_block,
            'code': self._handle_code,
            'list': self._handle_list,
            'table_cell': self._handle_table_cell,
            'link': self._handle_link,
            'image': self._handle_image,
            'image_block': self._handle_image_block,
            'raw_html': self._handle_raw_html,
        }
        # Attributes copied from nodes onto elements
        self.kept_attrs = ('id', 'class', 'title', 'align')


    def convert_chapter(self, chapter: Chapter) -> list[etree._Element]:
        """
        Converts all blocks of a chapter and runs post-processing.
        Any failure is raised as RenderError naming the chapter.
        """
        self._chapter = chapter
        self._label = self.book.chapter_label(chapter.index)
        self._counters = [0] * 6
        container = etree.Element('div')
        try:
            for block in chapter.blocks:
                self._recursive_convert(block, container)
            PostProcessor(self.config, self.book.metadata.lang).run(container)
        except RenderError:
            raise
        except Exception as e:
            log.error(f"Could not convert chapter {chapter.index}: {e}")
            raise RenderError(chapter.index, e) from e
        return list(container)


    def _recursive_convert(self, node: Node, parent: etree._Element):
        """Core recursive engine for converting nodes to elements."""
        if node.kind == 'text':
            xu.append_text(parent, node.text)
            return

        handler = self._handler_map.get(node.kind, self._handle_default)
        element = handler(node)
        if element is None:
            return
        parent.append(element)

        for child in node.children:
            self._recursive_convert(child, element)


    def _attrib(self, node: Node) -> dict[str, str]:
        return {k: v for k, v in node.attrs if k in self.kept_attrs and v}


    def _handle_default(self, node: Node) -> etree._Element:
        """Handles simple kind conversions using the `tag_map`."""
        tag = self.tag_map.get(node.kind)
        if tag is None:
            raise ValueError(f"Unsupported node kind '{node.kind}'")
        element = tag.create()
        for key, value in self._attrib(node).items():
            element.set(key, value)
        return element


    def _handle_heading(self, node: Node) -> etree._Element:
        level = int(node.get('level', '1'))
        element = etree.Element(f'h{min(max(level, 1), 6)}', self._attrib(node))
        number = self._heading_number(level)
        if number:
            span = etree.SubElement(element, 'span', {'class': 'section-number'})
            span.text = number
            span.tail = ' '
        return element


    def _heading_number(self, level: int) -> str | None:
        """'2' for a chapter heading, '2.1' for its first sub-heading, ..."""
        depth = self.book.numbering.depth
        if self._label is None or level > depth:
            return None
        if level == 1:
            return self._label
        self._counters[level - 1] += 1
        for i in range(level, len(self._counters)):
            self._counters[i] = 0
        parts = [str(c) for c in self._counters[1:level]]
        # A skipped level counts as 0 rather than disappearing
        return ".".join([self._label] + parts)


    def _handle_code_block(self, node: Node) -> etree._Element:
        markup = self.highlighter(xu.xml_safe(node.text), node.get('language') or '')
        element = etree.fromstring(markup)
        if node.get('id'):
            element.set('id', node.get('id'))
        return element


    def _handle_code(self, node: Node) -> etree._Element:
        element = etree.Element('code')
        element.text = xu.xml_safe(node.text)
        return element


    def _handle_list(self, node: Node) -> etree._Element:
        ordered = node.get('ordered') == 'true'
        attrib = self._attrib(node)
        start = node.get('start')
        if ordered and start and start != '1':
            attrib['start'] = start
        return etree.Element('ol' if ordered else 'ul', attrib)


    def _handle_table_cell(self, node: Node) -> etree._Element:
        tag = 'th' if node.get('header') == 'true' else 'td'
        return etree.Element(tag, self._attrib(node))


    def _handle_link(self, node: Node) -> etree._Element:
        attrib = self._attrib(node)
        href = node.get('href')
        if href:
            attrib['href'] = href
        return etree.Element('a', attrib)


    def _handle_image(self, node: Node) -> etree._Element:
        attrib = {'src': node.get('src') or '', 'alt': node.get('alt') or ''}
        attrib.update(self._attrib(node))
        return etree.Element('img', attrib)


    def _handle_image_block(self, node: Node) -> etree._Element:
        div = etree.Element('div', {'class': 'image-block'})
        div.append(self._handle_image(node))
        return div


    def _handle_raw_html(self, node: Node) -> etree._Element | None:
        """Raw markup is re-parsed; a wrapper keeps loose text in place."""
        fragments = lxml_html.fragments_fromstring(node.text)
        wrapper = etree.Element('div', {'class': 'raw'})
        for fragment in fragments:
            if isinstance(fragment, str):
                xu.append_text(wrapper, fragment)
            else:
                wrapper.append(fragment)
        if len(wrapper) == 1 and not (wrapper.text or '').strip() and not (wrapper[0].tail or '').strip():
            element = wrapper[0]
            element.tail = None
            return element
        return wrapper

