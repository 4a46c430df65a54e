"""
Helpers shared by the format renderers.
"""
import logging
import re
from pathlib import Path

from lxml import etree

from ..core.book import Book
from ..utils.config import RenderConfig
from ..utils.structures import ImageInfo


log = logging.getLogger("bookpress")

EXTERNAL_SRC_RE = re.compile(r'^([a-z][a-z0-9+.-]*:|//)', re.I)


def load_cover(book: Book) -> ImageInfo | None:
    """Reads the cover image, if the book has one. A missing file is only a warning."""
    cover = book.metadata.cover
    if not cover:
        return None
    try:
        return ImageInfo.from_path(Path(cover), prop="cover-image")
    except (OSError, ValueError) as e:
        log.warning(f"Could not read cover image '{cover}': {e}. Skipping cover.")
        return None


def resolve_local_image(src: str, config: RenderConfig) -> ImageInfo | None:
    """Loads an image referenced by a relative path, or None for remote / missing images."""
    if not src or EXTERNAL_SRC_RE.match(src):
        return None
    base = Path(config.resource_dir) if config.resource_dir else Path.cwd()
    path = (base / src).resolve()
    if not path.is_file():
        log.warning(f"Image '{src}' not found in {base}. Leaving the reference as is.")
        return None
    try:
        return ImageInfo.from_path(path)
    except (OSError, ValueError) as e:
        log.warning(f"Could not read image '{src}': {e}")
        return None


def embed_images(container: etree._Element, config: RenderConfig):
    """Replaces local image references with data URIs for self-contained documents."""
    for img in container.iter('img'):
        info = resolve_local_image(img.get('src', ''), config)
        if info is not None:
            img.set('src', info.data_uri())


def cover_markup(cover: ImageInfo | None, alt: str) -> str:
    if cover is None:
        return ""
    div = etree.Element('div', {'class': 'cover'})
    etree.SubElement(div, 'img', {'src': cover.data_uri(), 'alt': alt})
    return to_html(div)


def to_html(element: etree._Element) -> str:
    return etree.tostring(element, method='html', encoding='unicode')


def chapter_container(book: Book, index: int, elements: list[etree._Element]) -> etree._Element:
    """<div class="chapter" id="chapter-<index>"> holding the converted chapter."""
    div = etree.Element('div', {'class': 'chapter', 'id': book.chapter(index).dom_id})
    div.extend(elements)
    return div


def ids_by_owner(root: etree._Element) -> dict[str, int]:
    """
    Containment index of a rendered document: every id mapped to the index of
    its enclosing chapter container, or 0 when it is outside any chapter.
    """
    owners: dict[str, int] = {}
    for element in root.iter():
        if not isinstance(element.tag, str):
            continue
        el_id = element.get('id')
        if not el_id or el_id in owners:
            continue
        owners[el_id] = _owner_index(element)
    return owners


def _owner_index(element: etree._Element) -> int:
    current = element
    while current is not None:
        if 'chapter' in (current.get('class') or '').split():
            chapter_id = current.get('id', '')
            match = re.fullmatch(r'chapter-(\d+)', chapter_id)
            if match:
                return int(match.group(1))
        current = current.getparent()
    return 0
