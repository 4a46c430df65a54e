"""
Format renderers. Each takes a Book and returns an Artifact.
"""
from ..utils.config import RenderConfig
from ..utils.structures import OutputFormat
from .epub_renderer import EpubRenderer
from .html_renderer import HtmlRenderer
from .print_renderer import PrintRenderer


RENDERERS = {
    OutputFormat.HTML: HtmlRenderer,
    OutputFormat.EPUB: EpubRenderer,
    OutputFormat.PRINT: PrintRenderer,
}


def create_renderer(fmt: OutputFormat, config: RenderConfig):
    """Returns a renderer for `fmt` with its default capabilities."""
    return RENDERERS[fmt](config)
