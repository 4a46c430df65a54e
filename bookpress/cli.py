"""
Handles command-line argument parsing and runs the render pipeline.
This is the entry point for the console script.
"""
import argparse
import logging
import re
from pathlib import Path

from .core.book import BookBuilder, Metadata, Numbering, NUMBERING_STYLES
from .core.pipeline import RenderPipeline
from .utils.config import RenderConfig
from .utils.errors import BookpressError, StructureError
from .utils.logger import setup_main_logger
from .utils.structures import Artifact, OutputFormat


# Get logger (will be configured in run_cli)
log = logging.getLogger("bookpress")

CHAPTER_SUFFIXES = ('.md', '.markdown')


def int_in_range(min_val, max_val):
    """Checks if value is an int in [min_val, max_val] range."""
    def checker(value):
        ivalue = int(value)
        if not (min_val <= ivalue <= max_val):
            raise argparse.ArgumentTypeError(f"Value must be between {min_val} and {max_val}, got {ivalue}")
        return ivalue
    return checker


def output_format(value):
    try:
        return OutputFormat.parse(value)
    except ValueError:
        choices = ", ".join(f.value for f in OutputFormat)
        raise argparse.ArgumentTypeError(f"Unknown format '{value}'. Choose from: {choices}")


def collect_chapter_files(paths: list[Path]) -> list[Path]:
    """Expands folders into their Markdown files (sorted by name), keeping the given order otherwise."""
    files = []
    for path in paths:
        if not path.exists():
            log.warning(f"Input path does not exist, skipping: {path}")
            continue
        if path.is_dir():
            files.extend(sorted(p for p in path.iterdir()
                                if p.is_file() and p.suffix.lower() in CHAPTER_SUFFIXES))
        elif path.suffix.lower() in CHAPTER_SUFFIXES:
            files.append(path)
        else:
            log.warning(f"Not a Markdown file, skipping: {path}")
    return files


def output_stem(title: str) -> str:
    stem = re.sub(r'[^\w-]+', '_', title, flags=re.UNICODE).strip('_')
    return stem or "book"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bookpress",
        description="Renders Markdown chapters into an interactive HTML page, an EPUB and a print PDF.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("input_paths", type=Path, nargs="+",
                        help="Markdown chapter files and/or folders of chapters, in reading order.")
    parser.add_argument("--title", required=True, help="Book title.")
    parser.add_argument("--author", default="", help="Book author.")
    parser.add_argument("--lang", default="en", help="Book language (BCP 47 tag, e.g. 'en', 'fr-CA').")
    parser.add_argument("--cover", type=Path, default=None, help="Cover image file.")
    parser.add_argument("-f", "--format", dest="formats", type=output_format, action="append",
                        help="Output format: html, epub or print. Repeatable. Default: all formats.")
    parser.add_argument("-o", "--output", type=Path, default=Path("."),
                        help="Output folder.")
    parser.add_argument("--display-all", action="store_true",
                        help="HTML: show all chapters at once instead of one at a time.")
    parser.add_argument("--numbering", type=int_in_range(0, 6), default=1,
                        help="Numbering depth: 0 disables, 1 numbers chapters, 2+ also numbers sub-headings.")
    parser.add_argument("--numbering-style", choices=NUMBERING_STYLES, default="arabic",
                        help="How chapter numbers are written.")
    parser.add_argument("-t", "--toc-depth", type=int_in_range(1, 6), default=2,
                        help="Maximum heading level to include in TOC [1..6].")
    parser.add_argument("-c", "--css", type=Path, default=None,
                        help="Path to a custom CSS file.")
    parser.add_argument("--highlight-style", default="default", help="Pygments style for code blocks.")
    parser.add_argument("--js-prelude", type=Path, default=None,
                        help="JavaScript file injected into the HTML navigation script.")
    parser.add_argument("-typ", "--typography", action="store_true", help="Enable typography post-processing.")
    parser.add_argument("--threads", type=int, default=0,
                        help="Number of parallel threads. 0 for one per format.")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Show more log output on the console (-v info, -vv debug).")
    return parser


def run_cli(argv=None) -> int:
    """
    The main function for the command-line interface.
    Parses arguments, builds the book and renders it. Returns the exit code.
    """
    args = build_parser().parse_args(argv)

    console_level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    setup_main_logger(console_level)
    log.info(f"Console logger set to level: {logging.getLevelName(console_level)}")

    files = collect_chapter_files(args.input_paths)
    if not files:
        log.error("No Markdown chapter files found.")
        return 2

    js_prelude = ""
    if args.js_prelude:
        try:
            js_prelude = args.js_prelude.read_text(encoding="utf-8")
        except OSError as e:
            log.error(f"Could not read JavaScript prelude {args.js_prelude}: {e}")
            return 2

    try:
        metadata = Metadata(title=args.title, author=args.author, lang=args.lang, cover=args.cover)
        builder = BookBuilder(
            metadata,
            numbering=Numbering(args.numbering, args.numbering_style),
            display_all=args.display_all,
        )
        for path in files:
            builder.add_file(path)
        book = builder.build()
    except BookpressError as e:
        log.error(f"Could not build the book: {e}")
        return 2

    config = RenderConfig(
        toc_depth=args.toc_depth,
        num_threads=args.threads,
        custom_stylesheet=args.css,
        js_prelude=js_prelude,
        highlight_style=args.highlight_style,
        improve_typography=args.typography,
        resource_dir=files[0].parent,
    )
    formats = args.formats or list(OutputFormat)

    num_formats = len(dict.fromkeys(formats))
    completed_count = 0
    def progress_callback(fmt: OutputFormat, artifact: Artifact | None, exc: Exception | None):
        nonlocal completed_count
        completed_count += 1
        prefix = f"[{completed_count}/{num_formats}]"
        if exc:
            print(f"{prefix} ❌ Error: {fmt.value}", flush=True)
            print(f"  └─ {exc}", flush=True)
        else:
            print(f"{prefix} ✅ Done: {fmt.value}", flush=True)

    pipeline = RenderPipeline(config)
    try:
        results = pipeline.run(book, formats, progress_callback)
    except StructureError as e:
        log.error(f"Cannot render the book: {e}")
        return 2
    written = pipeline.write(results, args.output, output_stem(args.title))
    for path in written:
        print(f"Created: {path}", flush=True)

    failed = [fmt.value for fmt, result in results.items() if not result.ok]
    if failed:
        log.error(f"Failed formats: {', '.join(failed)}")
        return 1
    return 0
