"""
Renders a book into an EPUB container.
"""
import logging
from typing import Protocol, Sequence


from ..core.book import Book, Metadata
from ..core.epub_builder import EpubPackager
from ..core.node_to_html_converter import NodeToHtmlConverter
from ..utils.config import RenderConfig
from ..utils.errors import RenderError, StructureError, UnboundPlaceholderError
from ..utils.structures import Artifact, ContentDocument, ImageInfo, OutputFormat, FNames as FN
from . import common


log = logging.getLogger("bookpress")


class Packager(Protocol):
    def package(self, documents: Sequence[ContentDocument], manifest_order: Sequence[str],
                metadata: Metadata, images: Sequence[ImageInfo] = (),
                cover: ImageInfo | None = None) -> bytes: ...


class EpubRenderer:
    """
    Maps the book into packager input: one XHTML content document per
    chapter, in chapter order, with in-book links pointing at the right file.
    """
    format = OutputFormat.EPUB
    required_metadata = ('title', 'lang')

    def __init__(self, config: RenderConfig, packager: Packager | None = None, highlighter=None):
        self.config = config
        self.packager = packager or EpubPackager(config)
        self.highlighter = highlighter


    def render(self, book: Book) -> Artifact:
        log.info(f"[EPUB] Rendering '{book.metadata.title}'...")
        book.require(*self.required_metadata)

        converter = NodeToHtmlConverter(book, self.config, self.highlighter)
        documents = []
        for chapter in book:
            elements = converter.convert_chapter(chapter)
            documents.append(ContentDocument(
                id=f"chapter_{chapter.index:03d}",
                title=book.chapter_title(chapter.index),
                html=common.chapter_container(book, chapter.index, elements),
            ))

        try:
            self._resolve_internal_links(documents)
            cover = common.load_cover(book)
            reserved = {cover.filename} if cover is not None else set()
            images = self._collect_images(documents, reserved)
            data = self.packager.package(
                documents,
                [doc.id for doc in documents],
                book.metadata,
                images=images,
                cover=cover,
            )
        except (RenderError, StructureError, UnboundPlaceholderError):
            raise
        except Exception as e:
            log.error(f"[EPUB] Rendering failed: {e}")
            raise RenderError(None, e) from e

        log.info("[EPUB] Done.")
        return Artifact(OutputFormat.EPUB, data, "application/epub+zip", ".epub")


    def _resolve_internal_links(self, documents: list[ContentDocument]):
        """Rewrites '#id' links to 'chapter_NNN.xhtml#id' using the containment of each id."""
        id_to_doc: dict[str, ContentDocument] = {}
        for doc in documents:
            for element in doc.html.iter():
                if not isinstance(element.tag, str):
                    continue
                el_id = element.get('id')
                if el_id and el_id not in id_to_doc:
                    id_to_doc[el_id] = doc

        for doc in documents:
            for a in doc.html.iter('a'):
                href = a.get('href', '')
                if not href.startswith('#'):
                    continue
                target_id = href[1:]
                target_doc = id_to_doc.get(target_id)
                if target_doc is None:
                    log.warning(f"[EPUB] Broken internal link found for id: {target_id}")
                    continue
                a.set('href', f"{target_doc.filename}#{target_id}")


    def _collect_images(self, documents: list[ContentDocument], reserved: set[str]) -> list[ImageInfo]:
        """Moves local images into the container and points <img> at them."""
        images: dict[str, ImageInfo] = {}     # src -> image
        used_names: set[str] = set(reserved)
        for doc in documents:
            for img in doc.html.iter('img'):
                src = img.get('src', '')
                if src not in images:
                    info = common.resolve_local_image(src, self.config)
                    if info is None:
                        continue
                    info.filename = _unique_name(info.filename, used_names)
                    images[src] = info
                img.set('src', f"../{FN.IMAGES}/{images[src].filename}")
        return list(images.values())


def _unique_name(filename: str, used: set[str]) -> str:
    stem, dot, ext = filename.rpartition('.')
    candidate = filename
    counter = 1
    while candidate in used:
        candidate = f"{stem}_{counter}{dot}{ext}"
        counter += 1
    used.add(candidate)
    return candidate
