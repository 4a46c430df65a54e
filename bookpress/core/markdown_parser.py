"""
Parses Markdown chapter text into format-agnostic `Node` trees.

python-markdown does the Markdown grammar; its HTML output is read back with
lxml.html and mapped tag by tag onto Node kinds.
"""
import logging
from typing import NamedTuple

import markdown
from lxml import etree, html as lxml_html

from ..utils import xml_utils as xu
from .book import Node, text


log = logging.getLogger("bookpress")

MARKDOWN_EXTENSIONS = ['extra', 'sane_lists', 'toc']
MARKDOWN_EXTENSION_CONFIGS = {
    # Permalinks and anchors would add markup that isn't part of the content
    'toc': {'permalink': False, 'anchorlink': False},
}
# Whitespace between children of these is layout, not content
BLOCK_CONTAINERS = ('block_quote', 'division', 'definition', 'list', 'table',
                    'table_row', 'definition_list')
BLOCK_TAGS = ('p', 'ul', 'ol', 'pre', 'blockquote', 'div', 'table', 'dl', 'hr',
              'h1', 'h2', 'h3', 'h4', 'h5', 'h6')


class Kind(NamedTuple):
    """Structure to represent a Node kind with fixed attributes."""
    name: str
    attrs: tuple[tuple[str, str], ...] = ()


def parse(markdown_text: str) -> tuple[Node, ...]:
    """Parses Markdown text into a sequence of block nodes."""
    # A fresh Markdown instance per call: instances keep state between conversions
    md = markdown.Markdown(extensions=MARKDOWN_EXTENSIONS,
                           extension_configs=MARKDOWN_EXTENSION_CONFIGS)
    html_text = md.convert(markdown_text)
    if not html_text.strip():
        return ()
    root = lxml_html.fragment_fromstring(html_text, create_parent='div')
    return HtmlToNodeConverter().convert_children(root, block_context=True)


class HtmlToNodeConverter:
    """
    Transforms lxml.html elements into Nodes.

    Uses a handler-based approach, dispatching element conversion to specific
    methods based on the tag name. Plain tag-to-kind mappings live in `kind_map`.
    """

    def __init__(self):
        self.kind_map: dict[str, Kind] = {
            'p': Kind('paragraph'),
            'blockquote': Kind('block_quote'),
            'ul': Kind('list', (('ordered', 'false'),)),
            'li': Kind('list_item'),
            'hr': Kind('rule'),
            'table': Kind('table'),
            'tr': Kind('table_row'),
            'td': Kind('table_cell', (('header', 'false'),)),
            'th': Kind('table_cell', (('header', 'true'),)),
            'dl': Kind('definition_list'),
            'dt': Kind('definition_term'),
            'dd': Kind('definition'),
            'div': Kind('division'),
            'em': Kind('emphasis'), 'i': Kind('emphasis'),
            'strong': Kind('strong'), 'b': Kind('strong'),
            'a': Kind('link'),
            'br': Kind('line_break'),
            'del': Kind('strikethrough'), 's': Kind('strikethrough'),
            'sup': Kind('superscript'),
            'sub': Kind('subscript'),
            'span': Kind('span'),
        }

        # Dispatch map for tags that require special handling.
        self._handler_map = {
            'h1': self._handle_heading, 'h2': self._handle_heading, 'h3': self._handle_heading,
            'h4': self._handle_heading, 'h5': self._handle_heading, 'h6': self._handle_heading,
            'pre': self._handle_pre,
            'code': self._handle_code,
            'img': self._handle_image,
            'p': self._handle_paragraph,
            'ol': self._handle_ordered_list,
            'thead': self._handle_table_section,
            'tbody': self._handle_table_section,
            'tfoot': self._handle_table_section,
        }
        # Attributes carried over onto nodes
        self.kept_attrs = ('id', 'href', 'title', 'class', 'align')


    def convert_children(self, element: etree._Element, block_context: bool = False) -> tuple[Node, ...]:
        """Converts the text and children of `element` into a flat tuple of nodes."""
        nodes: list[Node] = []
        if element.text and (element.text.strip() or not block_context):
            nodes.append(self._loose_text(element.text, block_context))
        for child in element:
            if not isinstance(child.tag, str):
                continue    # comments, processing instructions
            nodes.extend(self.convert(child))
            if child.tail and (child.tail.strip() or not block_context):
                nodes.append(self._loose_text(child.tail, block_context))
        return tuple(nodes)


    def convert(self, element: etree._Element) -> tuple[Node, ...]:
        """Converts one element; table sections may unwrap into several nodes."""
        tag = xu.get_tag_name(element).lower()
        handler = self._handler_map.get(tag, self._handle_default)
        result = handler(element)
        if isinstance(result, Node):
            return (result,)
        return tuple(result)


    @staticmethod
    def _loose_text(value: str, block_context: bool) -> Node:
        if block_context:
            return Node('paragraph', children=(text(value.strip()),))
        return text(value)


    def _attrs(self, element: etree._Element, fixed=()) -> tuple[tuple[str, str], ...]:
        attrs = [(k, v) for k, v in xu.get_attrib_dict(element).items() if k in self.kept_attrs]
        return tuple(attrs) + tuple(fixed)


    def _handle_default(self, element: etree._Element):
        tag = xu.get_tag_name(element).lower()
        kind = self.kind_map.get(tag)
        if kind is None:
            # Keep unknown markup verbatim
            log.debug(f"Keeping <{tag}> as raw HTML.")
            markup = etree.tostring(element, encoding='unicode', with_tail=False)
            return Node('raw_html', markup)
        block_context = kind.name in BLOCK_CONTAINERS
        if kind.name == 'list_item':
            # Loose list items wrap their content in <p>
            block_context = any(child.tag in BLOCK_TAGS for child in element)
        return Node(kind.name, attrs=self._attrs(element, kind.attrs),
                    children=self.convert_children(element, block_context))


    def _handle_paragraph(self, element: etree._Element) -> Node:
        """A paragraph holding nothing but an image is an image block."""
        children = [c for c in element if isinstance(c.tag, str)]
        has_text = (element.text or '').strip() or any((c.tail or '').strip() for c in children)
        if len(children) == 1 and children[0].tag == 'img' and not has_text:
            image = self._handle_image(children[0])
            return Node('image_block', attrs=image.attrs)
        return self._handle_default(element)


    def _handle_heading(self, element: etree._Element) -> Node:
        level = xu.get_tag_name(element)[1]
        return Node('heading', attrs=self._attrs(element, (('level', level),)),
                    children=self.convert_children(element))


    def _handle_pre(self, element: etree._Element) -> Node:
        """<pre><code class="language-x"> becomes a code_block with its language."""
        code = element.find('code')
        source = code if code is not None else element
        language = ''
        for cls in (source.get('class') or '').split():
            if cls.startswith('language-'):
                language = cls[len('language-'):]
                break
        else:
            language = (source.get('class') or '').strip()
        attrs = (('language', language),)
        if element.get('id'):
            attrs = (('id', element.get('id')),) + attrs
        return Node('code_block', "".join(source.itertext()), attrs)


    def _handle_code(self, element: etree._Element) -> Node:
        return Node('code', "".join(element.itertext()))


    def _handle_image(self, element: etree._Element) -> Node:
        attrs = [('src', element.get('src', '')), ('alt', element.get('alt', ''))]
        for key in ('id', 'title'):
            if element.get(key):
                attrs.append((key, element.get(key)))
        return Node('image', attrs=tuple(attrs))


    def _handle_ordered_list(self, element: etree._Element) -> Node:
        fixed = (('ordered', 'true'), ('start', element.get('start', '1')))
        return Node('list', attrs=self._attrs(element, fixed),
                    children=self.convert_children(element, block_context=True))


    def _handle_table_section(self, element: etree._Element) -> tuple[Node, ...]:
        """thead/tbody are flattened; header cells keep their header flag."""
        return tuple(n for child in element if isinstance(child.tag, str) for n in self.convert(child))
