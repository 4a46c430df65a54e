"""
Table of contents helpers shared by the renderers and the EPUB packager.
"""
import logging
from typing import Callable, Iterable

from lxml import etree

from ..utils import xml_utils as xu
from ..utils.structures import TOCItem


log = logging.getLogger("bookpress")


def collect_toc_items(title: str, chapter_href: str, elements: Iterable[etree._Element],
                      toc_depth: int, href_for_id: Callable[[str], str],
                      id_prefix: str = "toc_id_") -> list[TOCItem]:
    """
    Builds the TOC entries of one chapter: the chapter itself (level 1), then
    its h2..h{toc_depth} headings. Headings without an id get a generated one.
    """
    items = [TOCItem(level=1, text=title, href_nav=chapter_href, href_ncx=chapter_href)]
    if toc_depth < 2:
        return items

    heading_tags = {f'h{i}' for i in range(2, min(toc_depth, 6) + 1)}
    id_counter = 1
    for element in elements:
        for heading in element.iter():
            if not isinstance(heading.tag, str) or xu.get_tag_name(heading) not in heading_tags:
                continue
            heading_id = heading.get('id')
            if not heading_id:
                heading_id = f"{id_prefix}{id_counter}"
                heading.set('id', heading_id)
                id_counter += 1
            href = href_for_id(heading_id)
            items.append(TOCItem(
                level=int(xu.get_tag_name(heading)[1]),
                text=xu.collapsed_text(heading),
                href_nav=href,
                href_ncx=href,
            ))
    return items


def build_toc_list(toc_items: list[TOCItem], toc_depth: int) -> etree._Element:
    """
    Builds a nested <ol> from TOC items.

    An item nests under the closest preceding item of a lower level, so
    siblings stay siblings even when a heading level is skipped.
    """
    root_ol = etree.Element("ol")
    # Open entries as (level, <li>), innermost last
    open_items: list[tuple[int, etree._Element]] = []

    for item in toc_items:
        if item.level > toc_depth:
            continue

        while open_items and open_items[-1][0] >= item.level:
            open_items.pop()

        if open_items:
            parent_li = open_items[-1][1]
            if parent_li[-1].tag == "ol":
                ol = parent_li[-1]
            else:
                ol = etree.SubElement(parent_li, "ol")
        else:
            ol = root_ol

        li = etree.SubElement(ol, "li")
        a = etree.SubElement(li, "a", href=item.href_nav)
        a.text = item.text
        open_items.append((item.level, li))

    return root_ol
