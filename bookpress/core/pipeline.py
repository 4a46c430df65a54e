"""
Runs the requested renderers over one book in parallel.

Handles the per-format isolation: a failing renderer yields a failed
RenderResult and never affects the other formats.
"""
import concurrent.futures
import logging
from pathlib import Path
from typing import Callable, Iterable, Mapping

from ..utils.config import RenderConfig
from ..utils.structures import Artifact, OutputFormat, RenderResult
from .book import Book


log = logging.getLogger("bookpress")

ProgressCallback = Callable[[OutputFormat, Artifact | None, Exception | None], None]


class RenderPipeline:
    """Orchestrates the rendering of one book into several formats."""

    def __init__(self, config: RenderConfig, renderers: Mapping[OutputFormat, object] | None = None):
        """
        `renderers` maps formats to renderer instances. Formats missing from
        it get a default renderer built from the registry.
        """
        self.config = config
        self.renderers = dict(renderers or {})


    def renderer_for(self, fmt: OutputFormat):
        if fmt not in self.renderers:
            from ..renderers import create_renderer
            self.renderers[fmt] = create_renderer(fmt, self.config)
        return self.renderers[fmt]


    def run(self, book: Book, formats: Iterable[OutputFormat],
            progress_callback: ProgressCallback | None = None) -> dict[OutputFormat, RenderResult]:
        """
        Renders `book` into every requested format.

        Args:
            book: The immutable book, shared by all workers.
            formats: Requested formats; duplicates are rendered once.
            progress_callback: Called as each format completes.
                               It receives the (format, artifact, exception).

        Returns:
            One RenderResult per format, in request order.

        Raises:
            StructureError: The book lacks metadata a requested renderer needs.
                            Raised before any renderer runs.
        """
        formats = list(dict.fromkeys(formats))
        if not formats:
            return {}

        results: dict[OutputFormat, RenderResult] = {}
        renderers = {}
        for fmt in formats:
            try:
                renderers[fmt] = self.renderer_for(fmt)
            except Exception as e:
                log.error(f"Could not create the {fmt.value} renderer: {e}", exc_info=True)
                results[fmt] = RenderResult(fmt, error=e)
                self._notify(progress_callback, fmt, None, e)

        for renderer in renderers.values():
            book.require(*getattr(renderer, 'required_metadata', ()))

        th = self.config.num_threads
        max_workers = th if th > 0 else len(formats)
        log.info(f"Rendering {', '.join(f.value for f in formats)} with up to {max_workers} worker threads.")

        with concurrent.futures.ThreadPoolExecutor(max_workers) as executor:
            future_to_format = {
                executor.submit(renderer.render, book): fmt
                for fmt, renderer in renderers.items()
            }

            # Process results as they are completed
            for future in concurrent.futures.as_completed(future_to_format):
                fmt = future_to_format[future]
                try:
                    artifact = future.result()
                    results[fmt] = RenderResult(fmt, artifact=artifact)
                    log.info(f"Rendered {fmt.value}: {len(artifact.data)} bytes.")
                    self._notify(progress_callback, fmt, artifact, None)
                except Exception as e:
                    log.error(f"Failed to render {fmt.value}: {e}", exc_info=True)
                    results[fmt] = RenderResult(fmt, error=e)
                    self._notify(progress_callback, fmt, None, e)

        return {fmt: results[fmt] for fmt in formats}


    @staticmethod
    def _notify(progress_callback: ProgressCallback | None, fmt: OutputFormat,
                artifact: Artifact | None, error: Exception | None):
        if progress_callback is None:
            return
        try:
            progress_callback(fmt, artifact, error)
        except Exception:
            log.exception(f"Progress callback failed for {fmt.value}.")


    @staticmethod
    def write(results: Mapping[OutputFormat, RenderResult], output_dir: Path, stem: str) -> list[Path]:
        """Writes every successful artifact as <output_dir>/<stem><extension>."""
        written = []
        for result in results.values():
            if not result.ok or result.artifact is None:
                continue
            path = Path(output_dir) / f"{stem}{result.artifact.extension}"
            written.append(result.artifact.write(path))
        return written
