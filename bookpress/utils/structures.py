import base64
import logging

from dataclasses import dataclass
from enum import Enum
from io import BytesIO
from pathlib import Path
from typing import NamedTuple
from PIL import Image

from lxml import etree

__all__ = [
    "OutputFormat", "Artifact", "RenderResult", "EpubStructureItem", "EPUB_TYPES_MAP",
    "ContentDocument", "ImageInfo", "TOCItem", "FNames"
]

log = logging.getLogger("bookpress")


class OutputFormat(Enum):
    """Target formats a book can be rendered to."""
    HTML = "html"
    EPUB = "epub"
    PRINT = "print"

    @classmethod
    def parse(cls, value: str) -> 'OutputFormat':
        """Accepts 'html', 'epub', 'print' (or 'pdf') in any case."""
        value = value.strip().lower()
        if value == "pdf":
            value = "print"
        return cls(value)


class Artifact(NamedTuple):
    """The final output of one renderer."""
    format: OutputFormat
    data: bytes
    media_type: str
    extension: str

    def write(self, path: Path) -> Path:
        """Writes the artifact to `path`, adding the extension if it has none."""
        path = Path(path)
        if not path.suffix:
            path = path.with_suffix(self.extension)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.data)
        log.info(f"Created: {path.name}")
        return path


class RenderResult(NamedTuple):
    """Outcome of rendering one format: either an artifact or an error."""
    format: OutputFormat
    artifact: Artifact | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.artifact is not None


class EpubStructureItem(NamedTuple):
    """A structured immutable representation of an EPUB structural component."""
    epub_type: str = ''
    guide_type: str = ''


_RAW_EPUB_TYPES = {
    # key: (epub_type, guide_type)
    "cover": ("cover", "cover"),
    "titlepage": ("titlepage", "title-page"),
    "nav": ("toc", "toc"),
    "chapter": ("bodymatter", "text"),
}

# Generate a dictionary of {key: (epub_type, guide_type)}
EPUB_TYPES_MAP: dict[str, EpubStructureItem] = {
    key: EpubStructureItem(epub_type=epub, guide_type=guide)
    for key, (epub, guide) in _RAW_EPUB_TYPES.items()
}


@dataclass
class ContentDocument():
    """A container for an xhtml content document handed to the EPUB packager."""
    id: str
    title: str
    html: etree._Element
    prop: str = ''
    kind: str = 'chapter'
    linear: bool = True

    @property
    def filename(self) -> str:
        return self.id + ".xhtml"


@dataclass
class ImageInfo():
    """Container for image file content, metadata, and dimension lookup."""
    filename: str
    type: str
    data: bytes
    prop: str = ''   # e.g. "cover-image"
    _wh: tuple[int, int] | None = None  # width, height

    @classmethod
    def from_path(cls, path: Path, prop: str = '') -> 'ImageInfo':
        """Reads an image file and detects its media type with Pillow."""
        data = Path(path).read_bytes()
        with Image.open(BytesIO(data)) as img:
            fmt = (img.format or "PNG").lower()
            wh = img.size
        ext = "jpg" if fmt == "jpeg" else fmt
        return cls(f"{Path(path).stem}.{ext}", f"image/{fmt}", data, prop=prop, _wh=wh)

    @property
    def dimensions(self) -> tuple[int, int] | None:
        """Returns image dimensions using Pillow."""
        if self._wh is None:
            try:
                with Image.open(BytesIO(self.data)) as img:
                    self._wh = img.size
            except Exception as e:
                log.error(f"Error reading image '{self.filename}': {e}")
                return None
        return self._wh

    def data_uri(self) -> str:
        """Returns the image as a base64 `data:` URI."""
        return f"data:{self.type};base64,{base64.b64encode(self.data).decode('ascii')}"


class TOCItem(NamedTuple):
    """A container for Table of Contents items."""
    level: int
    text: str
    href_nav: str
    href_ncx: str


class FNames:
    """Folder / File names that the EPUB packager uses."""
    META_INF: str = 'META-INF'
    OEBPS: str = 'OEBPS'
    TEXT: str = 'Text'
    IMAGES: str = 'Images'
    STYLES: str = 'Styles'
    CSS: str = 'style.css'
    NCX: str = 'toc.ncx'
    OPF: str = 'content.opf'
    CONTAINER: str = 'container.xml'
