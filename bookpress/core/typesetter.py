"""
Paginates a print HTML document into PDF with WeasyPrint.
"""
import logging
from pathlib import Path

from ..utils.errors import TypesettingError
from .book import Metadata


log = logging.getLogger("bookpress")


class WeasyPrintTypesetter:
    """Default print typesetter. WeasyPrint is imported on first use, it is slow to load."""

    def __init__(self, base_url: Path | None = None):
        self.base_url = base_url


    def typeset(self, document: str, metadata: Metadata) -> bytes:
        try:
            from weasyprint import HTML
        except ImportError as e:
            raise TypesettingError(f"WeasyPrint is not available: {e}") from e

        log.info(f"[PRINT] Typesetting '{metadata.title}' with WeasyPrint...")
        base_url = str(self.base_url) if self.base_url else None
        try:
            pdf = HTML(string=document, base_url=base_url).write_pdf()
        except Exception as e:
            raise TypesettingError(f"WeasyPrint failed: {e}") from e
        if not pdf:
            raise TypesettingError("WeasyPrint produced an empty document.")
        return pdf
