from datetime import datetime, timezone
from lxml import etree

from ..utils.namespaces import Namespaces as NS


def _add_dc_element(parent: etree._Element, tag: str, value: str | None, element_id=None):
    """Creates a Dublin Core element if the text is valid."""
    if value:
        element = etree.SubElement(parent, f"{{{NS.DC}}}{tag}")
        element.text = str(value)
        if element_id:
            element.set("id", element_id)
        return element
    return None


def _add_meta_property(parent: etree._Element, property: str, value: str | None, id: str = '', refines: str = '', scheme: str = ''):
    """
    Adds a <meta property> element.
    Id: this <meta> tag's id. Refines: id of an element which is refined.
    """
    if not all([property, value]):
        return

    attrs = {
        key: value
        for key, value in {
            "refines": f"#{refines}" if refines else None,
            "property": property,
            "id": id or None,
            "scheme": scheme or None,
        }.items()
        if value is not None
    }

    meta_tag = etree.SubElement(parent, "meta", attrib=attrs)
    meta_tag.text = str(value)


def fill_opf_metadata(meta_element, metadata, identifier_id: str):
    """Fills the OPF metadata section from the book's Metadata."""
    if metadata.title:
        _add_dc_element(meta_element, "title", metadata.title, element_id="main-title")
        _add_meta_property(meta_element, property="title-type", value="main", refines="main-title")

    if metadata.author:
        _add_dc_element(meta_element, "creator", metadata.author, element_id="author")
        # 'aut' = Author
        _add_meta_property(meta_element, property="role", value="aut", refines="author", scheme="marc:relators")

    _add_dc_element(meta_element, "identifier", f"urn:uuid:{metadata.identifier}", element_id=identifier_id)
    _add_dc_element(meta_element, "language", metadata.lang)
    _add_dc_element(meta_element, "subject", metadata.subject)
    _add_dc_element(meta_element, "description", metadata.description)

    modified_date = datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')
    _add_meta_property(meta_element, property="dcterms:modified", value=modified_date)
