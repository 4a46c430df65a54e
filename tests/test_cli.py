import logging
import zipfile

import pytest

from bookpress import cli


@pytest.fixture
def chapters(tmp_path):
    folder = tmp_path / "chapters"
    folder.mkdir()
    (folder / "01-start.md").write_text("# Start\n\nHello [there](02-end.md).\n", encoding="utf-8")
    (folder / "02-end.md").write_text("# End\n\nBye.\n", encoding="utf-8")
    (folder / "notes.txt").write_text("not a chapter", encoding="utf-8")
    return folder


@pytest.fixture(autouse=True)
def in_tmp(tmp_path, monkeypatch):
    # Run logs land in ./logs
    monkeypatch.chdir(tmp_path)
    yield
    logger = logging.getLogger("bookpress")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def test_collect_chapter_files(chapters):
    files = cli.collect_chapter_files([chapters])
    assert [f.name for f in files] == ["01-start.md", "02-end.md"]


def test_output_stem():
    assert cli.output_stem("My Book: Part 2") == "My_Book_Part_2"
    assert cli.output_stem("???") == "book"


def test_renders_requested_formats(chapters, tmp_path, capsys):
    out = tmp_path / "out"
    code = cli.run_cli([str(chapters), "--title", "My Book", "-f", "html", "-f", "epub", "-o", str(out)])
    assert code == 0
    assert (out / "My_Book.html").is_file()
    assert not (out / "My_Book.pdf").exists()
    with zipfile.ZipFile(out / "My_Book.epub") as epub:
        assert epub.namelist()[0] == "mimetype"
    assert "Done: html" in capsys.readouterr().out


def test_failure_gives_nonzero_exit(chapters, tmp_path, monkeypatch):
    from bookpress.renderers import html_renderer

    def broken(*args, **kwargs):
        raise OSError("no stylesheet")

    monkeypatch.setattr(html_renderer, "load_css", broken)
    out = tmp_path / "out"
    code = cli.run_cli([str(chapters), "--title", "B", "-f", "html", "-f", "epub", "-o", str(out)])
    assert code == 1
    assert (out / "B.epub").is_file()
    assert not (out / "B.html").exists()


def test_no_chapters(tmp_path):
    empty = tmp_path / "empty"
    empty.mkdir()
    assert cli.run_cli([str(empty), "--title", "T"]) == 2


def test_bad_format_is_rejected(chapters):
    with pytest.raises(SystemExit):
        cli.run_cli([str(chapters), "--title", "T", "-f", "docx"])


def test_repeated_format_counts_once(chapters, tmp_path, capsys):
    code = cli.run_cli([str(chapters), "--title", "T", "-f", "html", "-f", "html", "-o", str(tmp_path / "out")])
    assert code == 0
    assert "[1/1] ✅ Done: html" in capsys.readouterr().out


def test_missing_language_stops_before_rendering(chapters, tmp_path):
    out = tmp_path / "out"
    code = cli.run_cli([str(chapters), "--title", "T", "--lang", "", "-f", "html", "-f", "epub", "-o", str(out)])
    assert code == 2
    assert not out.exists()
