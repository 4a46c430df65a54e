import pytest
from PIL import Image

from bookpress.core.book import BookBuilder, Metadata, Numbering
from bookpress.utils.config import RenderConfig


CHAPTERS = [
    ("one.md", "# Alpha\n\nFirst chapter. See [the notes](two.md#notes).\n"),
    ("two.md", "# Beta\n\n## Notes\n\nSome notes.\n\n```init\nwindow.seen = true;\n```\n"),
    ("three.md", "# Gamma\n\nLast chapter, back to [the start](one.md).\n"),
]


def build_book(chapters=CHAPTERS, title="Test Book", author="A. Writer", lang="en",
               cover=None, display_all=False, numbering=None):
    builder = BookBuilder(
        Metadata(title=title, author=author, lang=lang, cover=cover),
        numbering=numbering or Numbering(),
        display_all=display_all,
    )
    for source, text in chapters:
        builder.add_chapter(text, source=source)
    return builder.build()


@pytest.fixture
def book():
    return build_book()


@pytest.fixture
def config(tmp_path):
    return RenderConfig(resource_dir=tmp_path)


@pytest.fixture
def png_file(tmp_path):
    path = tmp_path / "pic.png"
    Image.new("RGB", (40, 60), (200, 10, 10)).save(path, format="PNG")
    return path


class FakePackager:
    """Records what it was asked to package."""

    def __init__(self, data=b"EPUB", error=None):
        self.data = data
        self.error = error
        self.calls = []

    def package(self, documents, manifest_order, metadata, images=(), cover=None):
        self.calls.append({
            'documents': list(documents),
            'manifest_order': list(manifest_order),
            'metadata': metadata,
            'images': list(images),
            'cover': cover,
        })
        if self.error is not None:
            raise self.error
        return self.data


class FakeTypesetter:
    def __init__(self, data=b"%PDF-fake", error=None):
        self.data = data
        self.error = error
        self.documents = []

    def typeset(self, document, metadata):
        self.documents.append(document)
        if self.error is not None:
            raise self.error
        return self.data
