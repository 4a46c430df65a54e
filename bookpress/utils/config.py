"""
Defines configuration and settings for the rendering process.
"""
from dataclasses import dataclass
from pathlib import Path


@dataclass
class RenderConfig:
    """
    A container for all settings related to a render invocation.
    This object is created by the CLI and passed to the RenderPipeline and renderers.
    """
    toc_depth: int = 2
    num_threads: int = 0    # 0 means one worker per requested format
    # Renderers bind their template shells in strict mode unless disabled
    strict_templates: bool = True
    custom_stylesheet: Path | None = None
    # Raw JavaScript injected into the HTML navigation script
    js_prelude: str = ""
    highlight_style: str = "default"
    improve_typography: bool = False
    # Relative image paths in chapters are resolved against this folder
    resource_dir: Path | None = None
