"""
Handles the creation of the EPUB file structure and packaging.
"""
import io
import logging
import zipfile
from typing import Iterable, Sequence

from lxml import etree

from ..resources.loader import load_css
from ..terms.localized_terms import LocalizedTerms
from ..utils.config import RenderConfig
from ..utils.errors import PackagingError
from ..utils.namespaces import Namespaces as NS
from ..utils.opf_utils import fill_opf_metadata
from ..utils.structures import ContentDocument, EPUB_TYPES_MAP, ImageInfo, TOCItem, FNames as FN
from .book import Metadata
from .toc import build_toc_list, collect_toc_items


log = logging.getLogger("bookpress")

MIMETYPE = 'application/epub+zip'
BOOK_ID = "book-id"


class EpubPackager:
    """
    Constructs the EPUB package in memory.
    Generates the static pages, navigation and metadata files, and zips the
    content documents and images into the container.
    """
    def __init__(self, config: RenderConfig):
        self.config = config


    def package(self, documents: Sequence[ContentDocument], manifest_order: Sequence[str],
                metadata: Metadata, images: Iterable[ImageInfo] = (),
                cover: ImageInfo | None = None) -> bytes:
        """
        Builds the .epub container and returns its bytes.
        Any failure is raised as PackagingError.
        """
        try:
            return _PackageBuild(self.config, metadata, cover).run(documents, manifest_order, images)
        except PackagingError:
            raise
        except Exception as e:
            log.error(f"[EPUB] Packaging failed: {e}")
            raise PackagingError(f"Could not build the EPUB container: {e}") from e


class _PackageBuild:
    """State of a single packaging run."""

    def __init__(self, config: RenderConfig, metadata: Metadata, cover: ImageInfo | None):
        self.config = config
        self.metadata = metadata
        self.cover = cover
        self.lang: str = metadata.lang
        self.local_terms = LocalizedTerms(self.lang)

        self.doc_list: list[ContentDocument] = []
        self.images: dict[str, ImageInfo] = {}
        self.toc_items: list[TOCItem] = []


    def run(self, documents: Sequence[ContentDocument], manifest_order: Sequence[str],
            images: Iterable[ImageInfo]) -> bytes:
        by_id = {doc.id: doc for doc in documents}
        unknown = [doc_id for doc_id in manifest_order if doc_id not in by_id]
        if unknown:
            raise PackagingError(f"Manifest lists unknown documents: {', '.join(unknown)}")
        if len(set(manifest_order)) != len(manifest_order):
            raise PackagingError("Manifest lists a document more than once.")

        if self.cover is not None:
            self.images["cover-image"] = self.cover
        for n, image in enumerate(images, start=1):
            self.images[f"img_{n:03d}"] = image

        self._add_static_docs()
        self.doc_list.extend(self._wrap(by_id[doc_id]) for doc_id in manifest_order)

        # Build nested list of headings to be used in NAV/NCX generation
        self._build_toc()
        self._create_nav()

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as zf:
            # The mimetype file must be the first and uncompressed
            zf.writestr('mimetype', MIMETYPE, compress_type=zipfile.ZIP_STORED)
            zf.writestr(f"{FN.META_INF}/{FN.CONTAINER}", self._create_container_xml())
            zf.writestr(f"{FN.OEBPS}/{FN.OPF}", self._create_opf())
            zf.writestr(f"{FN.OEBPS}/{FN.NCX}", self._create_ncx())
            zf.writestr(f"{FN.OEBPS}/{FN.STYLES}/{FN.CSS}",
                        load_css("epub.css", self.config.custom_stylesheet))
            for doc in self.doc_list:
                zf.writestr(f"{FN.OEBPS}/{FN.TEXT}/{doc.filename}", _serialize(doc.html))
                log.debug(f"[EPUB] Added {doc.filename}")
            for image in self.images.values():
                zf.writestr(f"{FN.OEBPS}/{FN.IMAGES}/{image.filename}", image.data)
                log.debug(f"[EPUB] Added image {image.filename}")

        log.info(f"[EPUB] Packaged {len(self.doc_list)} documents and {len(self.images)} images.")
        return buffer.getvalue()


    def _wrap(self, doc: ContentDocument) -> ContentDocument:
        """Places a chapter's content into a complete XHTML document."""
        html, body = self._create_html(doc.kind, doc.title)
        body.append(doc.html)
        return ContentDocument(doc.id, doc.title, html, doc.prop, doc.kind, doc.linear)


    def _add_static_docs(self):
        """Creates front matter documents (cover, title page)."""
        docs = [self._create_cover_page(), self._create_title_page()]
        self.doc_list.extend(d for d in docs if d is not None)


    def _create_cover_page(self, use_svg=True) -> ContentDocument | None:
        """
        Adds a cover page if the book has a cover image.
        Pass use_svg = False if <svg> causes issues.
        """
        if self.cover is None:
            log.info("[EPUB] No cover image. Skipping coverpage creation.")
            return None

        img_href = f"../{FN.IMAGES}/{self.cover.filename}"    # Relative to Text/cover.xhtml
        fileid = "cover"
        local_title = self.local_terms.get_heading(fileid) or "Cover"
        html, body = self._create_html(fileid, local_title)
        etree.SubElement(body, "h1", attrib={'hidden': ''}).text = local_title

        if self.cover.dimensions is None:
            log.warning(f"Could not determine dimensions of cover image '{self.cover.filename}'.")
            use_svg = False

        if use_svg:
            width, height = self.cover.dimensions or (1264, 1680)
            # SVG cover for full screen scaling
            div = etree.SubElement(body, "div", attrib={
                "style": "text-align: center; margin: 0; padding: 0; height: 100vh;"})
            svg = etree.SubElement(div, "svg", nsmap=NS.SVG_MAP, attrib={
                "version": "1.1",
                "viewBox": f"0 0 {width} {height}",
                "preserveAspectRatio": "xMidYMid meet",
                "width": "100%",
                "height": "100%"
            })
            etree.SubElement(svg, 'image', attrib={
                "width": str(width),
                "height": str(height),
                f'{{{NS.XLINK}}}href': img_href
            })
        else:
            etree.SubElement(body, "div", attrib={"class": "cover-image"}).append(
                etree.Element("img", src=img_href, alt=local_title)
            )

        prop = 'svg' if use_svg else ''
        return ContentDocument(fileid, local_title, html, prop, kind=fileid)


    def _create_title_page(self) -> ContentDocument:
        fileid = "titlepage"
        book_title = self.metadata.title or "[Untitled]"
        html, body = self._create_html(fileid, book_title)
        if self.metadata.author:
            etree.SubElement(body, "p", attrib={'class': 'book-author'}).text = self.metadata.author
        etree.SubElement(body, "h1", attrib={'class': 'book-title'}).text = book_title
        return ContentDocument(fileid, book_title, html, kind=fileid)


    def _build_toc(self):
        """Collects TOC entries from the chapter documents, in reading order."""
        for doc in self.doc_list:
            if doc.kind != 'chapter':
                continue
            items = collect_toc_items(
                doc.title, doc.filename, [doc.html], self.config.toc_depth,
                href_for_id=lambda el_id, doc=doc: f"{doc.filename}#{el_id}",
                id_prefix=f"{doc.id}_h",
            )
            self.toc_items.extend(
                item._replace(href_ncx=f"{FN.TEXT}/{item.href_nav}") for item in items)
        log.info(f"[EPUB] Generated TOC with {len(self.toc_items)} entries.")


    def _create_nav(self):
        """Creates the EPUB3 nav.xhtml file with proper nesting, and landmarks."""
        fileid = "nav"
        epub_type = EPUB_TYPES_MAP[fileid].epub_type

        local_title = self.local_terms.get_heading('toc', "Table of Contents")
        html, body = self._create_html(fileid, local_title, add_body_type=False)
        nav = etree.SubElement(body, "nav", attrib={f"{{{NS.EPUB}}}type": epub_type, "id": "toc"})
        etree.SubElement(nav, "h1").text = local_title
        nav.append(build_toc_list(self.toc_items, self.config.toc_depth))

        # --- Landmarks ---
        nav_landmarks = etree.SubElement(body, "nav", attrib={
            'id': 'landmarks', f"{{{NS.EPUB}}}type": "landmarks", 'hidden': ''
        })
        etree.SubElement(nav_landmarks, "h1", attrib={'hidden': ''}).text = \
            self.local_terms.get_heading('landmarks', "Landmarks")
        ol_landmarks = etree.SubElement(nav_landmarks, "ol")

        # First, add a self-referential link to the Table of Contents
        li = etree.SubElement(ol_landmarks, "li")
        a = etree.SubElement(li, "a", href="#toc", attrib={f"{{{NS.EPUB}}}type": epub_type})
        a.text = local_title

        for doc in self._landmark_docs():
            li = etree.SubElement(ol_landmarks, "li")
            a = etree.SubElement(li, "a", href=doc.filename,
                                 attrib={f"{{{NS.EPUB}}}type": EPUB_TYPES_MAP[doc.kind].epub_type})
            a.text = self.local_terms.get_heading(doc.kind, doc.title) if doc.kind != 'chapter' else doc.title

        self.doc_list.append(ContentDocument(fileid, local_title, html, prop='nav', kind=fileid))


    def _landmark_docs(self) -> list[ContentDocument]:
        """First document of every kind that has a landmark type."""
        seen: dict[str, ContentDocument] = {}
        for doc in self.doc_list:
            if doc.kind in EPUB_TYPES_MAP and doc.kind not in seen:
                seen[doc.kind] = doc
        return list(seen.values())


    def _create_ncx(self) -> bytes:
        """Creates the EPUB2-compatible toc.ncx file with proper nesting."""
        ncx = etree.Element("ncx", version="2005-1", nsmap=NS.NCX_MAP)      # type: ignore
        head = etree.SubElement(ncx, "head")
        etree.SubElement(head, "meta", name="dtb:uid", content=f"urn:uuid:{self.metadata.identifier}")
        etree.SubElement(head, "meta", name="dtb:depth", content=str(max(1, self.config.toc_depth)))
        etree.SubElement(head, "meta", name="dtb:totalPageCount", content="0")
        etree.SubElement(head, "meta", name="dtb:maxPageNumber", content="0")

        doc_title = etree.SubElement(ncx, "docTitle")
        etree.SubElement(doc_title, "text").text = self.metadata.title
        doc_author = etree.SubElement(ncx, "docAuthor")
        etree.SubElement(doc_author, "text").text = self.metadata.author

        nav_map = etree.SubElement(ncx, "navMap")

        # Open navPoints as (level, navPoint), innermost last
        open_points: list[tuple[int, etree._Element]] = []
        play_order = 1

        for item in self.toc_items:
            if item.level > self.config.toc_depth:
                continue

            while open_points and open_points[-1][0] >= item.level:
                open_points.pop()

            parent_navpoint = open_points[-1][1] if open_points else nav_map
            nav_point = etree.SubElement(parent_navpoint, "navPoint",
                                         id=f"navpoint-{play_order}", playOrder=str(play_order))
            play_order += 1

            nav_label = etree.SubElement(nav_point, "navLabel")
            etree.SubElement(nav_label, "text").text = item.text
            etree.SubElement(nav_point, "content", src=item.href_ncx)
            open_points.append((item.level, nav_point))

        return _serialize(ncx, doctype=False)


    def _create_opf(self) -> bytes:
        """Creates the content.opf file."""
        root = etree.Element("package", version="3.0", nsmap=NS.OPF_MAP)
        root.set("unique-identifier", BOOK_ID)

        meta = etree.SubElement(root, "metadata")
        fill_opf_metadata(meta, self.metadata, BOOK_ID)
        if self.cover is not None:
            etree.SubElement(meta, "meta", name="cover", content="cover-image")

        manifest = etree.SubElement(root, "manifest")
        spine = etree.SubElement(root, "spine", toc="ncx")
        guide = etree.SubElement(root, "guide")     # for compatibility with EPUB2 readers

        etree.SubElement(manifest, "item", id="ncx", href=FN.NCX,
                         attrib={"media-type": "application/x-dtbncx+xml"})
        etree.SubElement(manifest, "item", id="css", href=f"{FN.STYLES}/{FN.CSS}",
                         attrib={"media-type": "text/css"})

        guided = {doc.id for doc in self._landmark_docs()} | {"nav"}
        for doc in self.doc_list:
            href = f"{FN.TEXT}/{doc.filename}"
            item = etree.SubElement(manifest, "item", id=doc.id, href=href,
                                    attrib={"media-type": "application/xhtml+xml"})
            if doc.prop:
                item.set('properties', doc.prop)

            itemref = etree.SubElement(spine, "itemref", idref=doc.id)
            if not doc.linear:
                itemref.set("linear", "no")

            if doc.id in guided and doc.kind in EPUB_TYPES_MAP:
                etree.SubElement(guide, "reference", type=EPUB_TYPES_MAP[doc.kind].guide_type,
                                 title=doc.title, href=href)

        for image_id, img in self.images.items():
            item = etree.SubElement(manifest, "item", id=image_id, href=f"{FN.IMAGES}/{img.filename}",
                                    attrib={"media-type": img.type})
            if img.prop:
                item.set('properties', img.prop)

        return _serialize(root, doctype=False)


    def _create_container_xml(self) -> bytes:
        """Generates the META-INF/container.xml file."""
        container = etree.Element("container", version="1.0", nsmap=NS.CONTAINER_MAP)   # type: ignore
        rootfiles = etree.SubElement(container, 'rootfiles')
        etree.SubElement(rootfiles, "rootfile", attrib={
            "full-path": f"{FN.OEBPS}/{FN.OPF}",
            "media-type": "application/oebps-package+xml"
        })
        return _serialize(container, doctype=False)


    def _create_html(self, kind: str, title: str = "",
                     add_body_type=True) -> tuple[etree._Element, etree._Element]:
        """Creates a basic XHTML structure with head > title and body."""
        html = etree.Element("html", nsmap=NS.XHTML_MAP)
        # Set language attributes for accessibility and correct rendering
        if self.lang:
            html.set('lang', self.lang)
            html.set(f'{{{NS.XML}}}lang', self.lang)

        head = etree.SubElement(html, "head")
        etree.SubElement(head, "meta", charset="UTF-8")
        if title:
            etree.SubElement(head, "title").text = title
        etree.SubElement(head, "link", rel="stylesheet",
                         href=f"../{FN.STYLES}/{FN.CSS}", type="text/css")

        body = etree.SubElement(html, "body")
        body.set('class', f"{kind}-body")
        if add_body_type and kind in EPUB_TYPES_MAP:
            body.set(f'{{{NS.EPUB}}}type', EPUB_TYPES_MAP[kind].epub_type)
        return html, body


def _serialize(element: etree._Element, doctype=True) -> bytes:
    """Serializes an XML / XHTML element tree to bytes."""
    args = {
        'pretty_print': True,
        'xml_declaration': True,  # not needed for HTML5, but Sigil will insert it anyway
        'encoding': 'UTF-8',
    }
    if doctype:
        args['doctype'] = '<!DOCTYPE html>'
    return etree.tostring(etree.ElementTree(element), **args)
