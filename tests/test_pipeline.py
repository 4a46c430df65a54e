import threading

import pytest

from bookpress.core.pipeline import RenderPipeline
from bookpress.renderers.epub_renderer import EpubRenderer
from bookpress.utils.config import RenderConfig
from bookpress.utils.errors import PackagingError, RenderError, StructureError
from bookpress.utils.structures import Artifact, OutputFormat

from conftest import FakePackager, FakeTypesetter, build_book


class StubRenderer:
    def __init__(self, fmt, data=b"data", error=None, wait_for=None):
        self.fmt = fmt
        self.data = data
        self.error = error
        self.wait_for = wait_for
        self.books = []

    def render(self, book):
        self.books.append(book)
        if self.wait_for is not None:
            self.wait_for.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return Artifact(self.fmt, self.data, "application/octet-stream", f".{self.fmt.value}")


def test_partial_success(book):
    renderers = {
        OutputFormat.HTML: StubRenderer(OutputFormat.HTML),
        OutputFormat.EPUB: StubRenderer(OutputFormat.EPUB, error=RenderError(None, ValueError("zip"))),
        OutputFormat.PRINT: StubRenderer(OutputFormat.PRINT),
    }
    results = RenderPipeline(RenderConfig(), renderers).run(book, list(OutputFormat))

    assert list(results) == [OutputFormat.HTML, OutputFormat.EPUB, OutputFormat.PRINT]
    assert results[OutputFormat.HTML].ok
    assert results[OutputFormat.PRINT].ok
    failed = results[OutputFormat.EPUB]
    assert not failed.ok
    assert failed.artifact is None
    assert isinstance(failed.error, RenderError)


def test_results_follow_request_order(book):
    # EPUB finishes first, HTML waits for it
    epub_done = threading.Event()
    renderers = {
        OutputFormat.HTML: StubRenderer(OutputFormat.HTML, wait_for=epub_done),
        OutputFormat.EPUB: StubRenderer(OutputFormat.EPUB),
    }
    completed = []

    def progress(fmt, artifact, error):
        completed.append(fmt)
        if fmt is OutputFormat.EPUB:
            epub_done.set()

    results = RenderPipeline(RenderConfig(num_threads=2), renderers).run(
        book, [OutputFormat.HTML, OutputFormat.EPUB], progress)
    assert list(results) == [OutputFormat.HTML, OutputFormat.EPUB]
    assert completed == [OutputFormat.EPUB, OutputFormat.HTML]


def test_unexpected_exceptions_never_escape(book):
    renderers = {OutputFormat.HTML: StubRenderer(OutputFormat.HTML, error=MemoryError("huge"))}
    results = RenderPipeline(RenderConfig(), renderers).run(book, [OutputFormat.HTML])
    assert isinstance(results[OutputFormat.HTML].error, MemoryError)


def test_progress_callback_receives_every_outcome(book):
    error = RenderError(1, KeyError("x"))
    renderers = {
        OutputFormat.HTML: StubRenderer(OutputFormat.HTML),
        OutputFormat.EPUB: StubRenderer(OutputFormat.EPUB, error=error),
    }
    calls = {}
    RenderPipeline(RenderConfig(), renderers).run(
        book, [OutputFormat.HTML, OutputFormat.EPUB],
        lambda fmt, artifact, exc: calls.__setitem__(fmt, (artifact, exc)))
    assert calls[OutputFormat.HTML][0].data == b"data"
    assert calls[OutputFormat.HTML][1] is None
    assert calls[OutputFormat.EPUB] == (None, error)


def test_failing_progress_callback_is_tolerated(book):
    def progress(fmt, artifact, error):
        raise RuntimeError("ui went away")
    renderers = {OutputFormat.HTML: StubRenderer(OutputFormat.HTML)}
    results = RenderPipeline(RenderConfig(), renderers).run(book, [OutputFormat.HTML], progress)
    assert results[OutputFormat.HTML].ok


def test_duplicate_formats_render_once(book):
    renderer = StubRenderer(OutputFormat.HTML)
    results = RenderPipeline(RenderConfig(), {OutputFormat.HTML: renderer}).run(
        book, [OutputFormat.HTML, OutputFormat.HTML])
    assert list(results) == [OutputFormat.HTML]
    assert len(renderer.books) == 1


def test_no_formats(book):
    assert RenderPipeline(RenderConfig()).run(book, []) == {}


def test_write_skips_failures(book, tmp_path):
    renderers = {
        OutputFormat.HTML: StubRenderer(OutputFormat.HTML, data=b"<html/>"),
        OutputFormat.EPUB: StubRenderer(OutputFormat.EPUB, error=RenderError(None, OSError("x"))),
    }
    pipeline = RenderPipeline(RenderConfig(), renderers)
    results = pipeline.run(book, [OutputFormat.HTML, OutputFormat.EPUB])
    written = pipeline.write(results, tmp_path / "out", "my_book")
    assert written == [tmp_path / "out" / "my_book.html"]
    assert written[0].read_bytes() == b"<html/>"


def test_default_renderers_end_to_end(book, tmp_path):
    from bookpress.renderers import EpubRenderer, PrintRenderer
    config = RenderConfig(resource_dir=tmp_path)
    renderers = {
        OutputFormat.EPUB: EpubRenderer(config, packager=FakePackager()),
        OutputFormat.PRINT: PrintRenderer(config, typesetter=FakeTypesetter()),
    }
    pipeline = RenderPipeline(config, renderers)
    results = pipeline.run(book, [OutputFormat.HTML, OutputFormat.EPUB, OutputFormat.PRINT])
    assert all(result.ok for result in results.values())
    assert b'class="chapterControls"' in results[OutputFormat.HTML].artifact.data
    assert results[OutputFormat.PRINT].artifact.data == b"%PDF-fake"


@pytest.mark.parametrize("value, expected", [
    ("html", OutputFormat.HTML),
    ("EPUB", OutputFormat.EPUB),
    ("pdf", OutputFormat.PRINT),
    (" print ", OutputFormat.PRINT),
])
def test_output_format_parse(value, expected):
    assert OutputFormat.parse(value) is expected


def test_artifact_write_adds_extension(tmp_path):
    artifact = Artifact(OutputFormat.HTML, b"x", "text/html", ".html")
    assert artifact.write(tmp_path / "book") == tmp_path / "book.html"


@pytest.mark.parametrize("formats", [
    [OutputFormat.HTML, OutputFormat.EPUB],
    [OutputFormat.EPUB, OutputFormat.HTML],
])
def test_packaging_failure_only_fails_epub(book, config, formats):
    packager = FakePackager(error=PackagingError("zip writer failed"))
    renderers = {OutputFormat.EPUB: EpubRenderer(config, packager=packager)}
    results = RenderPipeline(config, renderers).run(book, formats)

    assert list(results) == formats
    html = results[OutputFormat.HTML]
    assert html.ok
    assert html.artifact.data.count(b'class="chapter"') == len(book)
    epub = results[OutputFormat.EPUB]
    assert not epub.ok
    assert isinstance(epub.error, RenderError)
    assert epub.error.chapter_index is None
    assert isinstance(epub.error.cause, PackagingError)


@pytest.mark.parametrize("formats", [
    [OutputFormat.HTML, OutputFormat.EPUB],
    [OutputFormat.EPUB],
])
def test_missing_metadata_stops_every_format(config, formats):
    book = build_book(lang="")
    html = StubRenderer(OutputFormat.HTML)
    packager = FakePackager()
    renderers = {
        OutputFormat.HTML: html,
        OutputFormat.EPUB: EpubRenderer(config, packager=packager),
    }
    progress = []
    with pytest.raises(StructureError, match="lang"):
        RenderPipeline(config, renderers).run(book, formats, lambda *args: progress.append(args))
    assert html.books == []
    assert packager.calls == []
    assert progress == []
