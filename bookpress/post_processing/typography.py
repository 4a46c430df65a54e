import re
from lxml import etree

NBSP = '\u00A0'
NNBSP = '\u202F'    # narrow no-break space
SPACES = '[ \u00A0\u202F]*'
# Text inside these is left untouched
SKIP_TAGS = ('pre', 'code', 'script', 'style')

# French: narrow nbsp before ;!? , nbsp before : and inside guillemets
FRENCH_RULES = (
    (re.compile(r'(?<=\w)' + SPACES + r'([;!?])'), NNBSP + r'\1'),
    (re.compile(r'(?<=\w)' + SPACES + r':(?=\s|$)'), NBSP + ':'),
    (re.compile('«' + SPACES), '«' + NBSP),
    (re.compile(SPACES + '»'), NBSP + '»'),
)

# A short last word is kept on the line of the previous one
LAST_WORD_RE = re.compile(r' (\S{1,6}[.,:;?!»"\')\]]*\s*)$')


def improve_typography(container: etree._Element, lang: str = 'en'):
    """
    Applies typographic tweaks to converted chapter markup.

    1. For French books, inserts the no-break spaces French typography puts
       before high punctuation and inside guillemets.
    2. Binds the last word of each <p> to the previous one with a NBSP so a
       short word is never orphaned on the last line.
    """
    if lang.split('-')[0].lower() == 'fr':
        for owner, attr in _iter_text_nodes(container):
            value = getattr(owner, attr)
            for pattern, replacement in FRENCH_RULES:
                value = pattern.sub(replacement, value)
            setattr(owner, attr, value)

    for p in container.iter('p'):
        _bind_last_word(p)


def _skipped(element: etree._Element) -> bool:
    for el in element.iterancestors():
        if el.tag in SKIP_TAGS:
            return True
    return element.tag in SKIP_TAGS


def _iter_text_nodes(container: etree._Element):
    """Yields (element, 'text'|'tail') pairs of every non-empty text node."""
    for el in container.iter():
        if not isinstance(el.tag, str):
            continue
        if el.text and not _skipped(el):
            yield el, 'text'
        if el is not container and el.tail and not (el.getparent() is not None and _skipped(el.getparent())):
            yield el, 'tail'


def _find_last_text_owner(element):
    """
    Finds the element that "owns" the last piece of text within a given element.
    Returns the owner element and whether the text is in its .text or .tail property.
    """
    # A reversed list of the element and all its descendants gives us reverse document order.
    nodes_in_reverse = list(element.iter())
    nodes_in_reverse.reverse()

    for node in nodes_in_reverse:
        if node is not element and node.tail and re.search(r'\w', node.tail):
            return node, 'tail'
        if node.text and re.search(r'\w', node.text):
            return node, 'text'
    return None, ''


def _bind_last_word(p: etree._Element):
    """Replaces the space before a short last word with a NBSP."""
    if len(" ".join(p.itertext()).split()) < 3:     # type: ignore
        return
    owner, attr = _find_last_text_owner(p)
    if owner is None or (attr == 'text' and _skipped(owner)):
        return
    value = getattr(owner, attr)
    setattr(owner, attr, LAST_WORD_RE.sub(NBSP + r'\1', value))
