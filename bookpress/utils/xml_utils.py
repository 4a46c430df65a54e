import re

from lxml import etree


# Characters XML 1.0 does not allow, even escaped
XML_INVALID_CHARS = re.compile('[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]')


# --- Conversion helpers ---

def xml_safe(text: str) -> str:
    """Drops characters that cannot appear in an XML document."""
    return XML_INVALID_CHARS.sub('', text)


def get_tag_name(element: etree._Element) -> str:
    """Returns tag name without a namespace prefix."""
    return etree.QName(element.tag).localname


def get_attrib_dict(element: etree._Element) -> dict[str, str]:
    """Returns a proper dictionary of element attributes."""
    return {str(k): str(v) for k, v in element.attrib.items()}


def collapsed_text(element: etree._Element) -> str:
    """Joins all text of an element, collapsing whitespace."""
    return re.sub(r'\s+', ' ', "".join(element.itertext())).strip()   # type: ignore


def append_text(parent: etree._Element, value: str):
    """Appends text after the last child of `parent` (or to its text)."""
    value = xml_safe(value or '')
    if not value:
        return
    if len(parent) > 0:
        last_child = parent[-1]
        last_child.tail = (last_child.tail or '') + value
    else:
        parent.text = (parent.text or '') + value
