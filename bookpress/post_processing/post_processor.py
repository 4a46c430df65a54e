"""
Post processing of chapter content converted to (X)HTML.
"""
import logging

from lxml import etree

from ..utils.config import RenderConfig

# Post processing plugins. Must work on a container element
from . import typography


log = logging.getLogger("bookpress")


class PostProcessor():
    """
    Post processing of converted chapter markup.
    Cleans up redundant tags, applies typographic improvements.
    """
    def __init__(self, config: RenderConfig, lang: str = 'en'):
        self.config = config
        self.lang = lang


    def run(self, container: etree._Element):
        """Method to run for cleaning up the generated tree."""
        self.container = container

        self._remove_empty_elements()

        if self.config.improve_typography:
            typography.improve_typography(self.container, self.lang)


    def _remove_empty_elements(self):
        """Removes empty inline and paragraph elements that carry no id."""
        for tag in ['p', 'span', 'em', 'strong']:
            for el in self.container.xpath(f".//{tag}[not(node()) and not(@id)]"):  # type: ignore
                parent = el.getparent()
                if parent is None:
                    continue
                # Keep the tail text in place
                tail = el.tail or ''
                previous = el.getprevious()
                if previous is not None:
                    previous.tail = (previous.tail or '') + tail
                else:
                    parent.text = (parent.text or '') + tail
                parent.remove(el)
                log.debug(f"Removed empty <{tag}>.")
