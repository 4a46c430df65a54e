"""
Contains the in-memory representation of a book: chapters, metadata, numbering.

The model is built once per render invocation (by `BookBuilder`) and is
read-only afterwards, so renderers can share it across threads.
"""
import logging
import re
import uuid
from dataclasses import dataclass, field, replace
from functools import cached_property
from pathlib import Path
from typing import Callable, Iterator, Sequence

from ..utils.errors import StructureError


log = logging.getLogger("bookpress")

CHAPTER_ID_PREFIX = "chapter-"
# Fenced code blocks with this language become the chapter's init routine
INIT_SCRIPT_LANGUAGE = "init"
NUMBERING_STYLES = ('arabic', 'roman', 'upper-roman', 'lower-alpha', 'upper-alpha')


@dataclass(frozen=True)
class Node:
    """One format-agnostic block or inline node of parsed chapter content."""
    kind: str
    text: str = ""
    attrs: tuple[tuple[str, str], ...] = ()
    children: tuple['Node', ...] = ()

    def get(self, name: str, default: str | None = None) -> str | None:
        for key, value in self.attrs:
            if key == name:
                return value
        return default

    def with_attr(self, name: str, value: str) -> 'Node':
        attrs = tuple((k, v) for k, v in self.attrs if k != name) + ((name, value),)
        return replace(self, attrs=attrs)

    def iter(self) -> Iterator['Node']:
        """Yields this node and all its descendants in document order."""
        yield self
        for child in self.children:
            yield from child.iter()

    def plain_text(self) -> str:
        """Concatenated text of the node and its descendants, whitespace collapsed."""
        if self.kind == 'code_block':
            return self.text
        text = "".join(n.text for n in self.iter() if n.kind in ('text', 'code'))
        return re.sub(r'\s+', ' ', text).strip()


def text(value: str) -> Node:
    return Node('text', value)


def transform(node: Node, fn: Callable[[Node], Node]) -> Node:
    """Rebuilds a node tree bottom-up, applying `fn` to every node."""
    children = tuple(transform(child, fn) for child in node.children)
    if children != node.children:
        node = replace(node, children=children)
    return fn(node)


@dataclass(frozen=True)
class Metadata:
    """Book-level metadata shared by every output format."""
    title: str = ""
    author: str = ""
    lang: str = "en"
    cover: Path | None = None
    subject: str = ""
    description: str = ""
    identifier: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass(frozen=True)
class Numbering:
    """
    Numbering rules.

    depth: 0 disables numbering, 1 numbers chapters, 2+ also numbers
           sub-headings down to that heading level.
    style: how the chapter number is written.
    """
    depth: int = 1
    style: str = 'arabic'

    def __post_init__(self):
        if self.style not in NUMBERING_STYLES:
            raise StructureError(f"Unknown numbering style '{self.style}'. Must be one of {NUMBERING_STYLES}")
        if self.depth < 0 or self.depth > 6:
            raise StructureError(f"Numbering depth must be in [0..6], got {self.depth}")

    def format(self, number: int) -> str:
        if self.style == 'arabic':
            return str(number)
        if self.style in ('roman', 'upper-roman'):
            roman = to_roman(number)
            return roman if self.style == 'upper-roman' else roman.lower()
        letters = to_letters(number)
        return letters.upper() if self.style == 'upper-alpha' else letters


def to_roman(number: int) -> str:
    """Converts a positive integer to uppercase roman numerals."""
    values = [
        (1000, 'M'), (900, 'CM'), (500, 'D'), (400, 'CD'), (100, 'C'), (90, 'XC'),
        (50, 'L'), (40, 'XL'), (10, 'X'), (9, 'IX'), (5, 'V'), (4, 'IV'), (1, 'I'),
    ]
    result = []
    for value, symbol in values:
        count, number = divmod(number, value)
        result.append(symbol * count)
    return "".join(result)


def to_letters(number: int) -> str:
    """1 -> a, 26 -> z, 27 -> aa."""
    letters = ""
    while number > 0:
        number, rem = divmod(number - 1, 26)
        letters = chr(ord('a') + rem) + letters
    return letters


@dataclass(frozen=True)
class Chapter:
    """A single chapter. Its identity is its index in the book."""
    index: int
    blocks: tuple[Node, ...]
    title: str | None = None
    numbered: bool = True
    init_script: str | None = None
    source: str | None = None

    @property
    def dom_id(self) -> str:
        return f"{CHAPTER_ID_PREFIX}{self.index}"


@dataclass(frozen=True)
class Book:
    """
    Ordered chapters plus metadata for one render invocation.

    Renderers only read it; nothing mutates a Book after construction.
    """
    chapters: tuple[Chapter, ...]
    metadata: Metadata
    display_all: bool = False
    numbering: Numbering = field(default_factory=Numbering)

    def __post_init__(self):
        object.__setattr__(self, 'chapters', tuple(self.chapters))
        if not self.chapters:
            raise StructureError("A book needs at least one chapter.")
        for position, chapter in enumerate(self.chapters):
            if chapter.index != position:
                raise StructureError(
                    f"Chapter indices must be contiguous and zero-based: "
                    f"found index {chapter.index} at position {position}."
                )
        self.require('title')

    def __len__(self) -> int:
        return len(self.chapters)

    def __iter__(self) -> Iterator[Chapter]:
        return iter(self.chapters)

    def require(self, *fields: str):
        """Fails with StructureError if any of the metadata `fields` is empty."""
        missing = [name for name in fields if not getattr(self.metadata, name, None)]
        if missing:
            raise StructureError(f"Missing required metadata: {', '.join(missing)}")

    def chapter(self, index: int) -> Chapter:
        if not 0 <= index < len(self.chapters):
            raise StructureError(f"Chapter index {index} outside [0, {len(self.chapters)})")
        return self.chapters[index]

    def chapter_number(self, index: int) -> int | None:
        """1-based ordinal among numbered chapters, or None."""
        if self.numbering.depth < 1 or not self.chapter(index).numbered:
            return None
        return sum(1 for c in self.chapters[:index + 1] if c.numbered)

    def chapter_label(self, index: int) -> str | None:
        number = self.chapter_number(index)
        return None if number is None else self.numbering.format(number)

    def chapter_title(self, index: int, with_number: bool = True) -> str:
        """Display title of a chapter, prefixed by its number when numbered."""
        chapter = self.chapter(index)
        title = chapter.title or f"{index + 1}"
        label = self.chapter_label(index) if with_number else None
        return f"{label}. {title}" if label else title

    @cached_property
    def containment_index(self) -> dict[str, int]:
        """Maps every addressable id inside a chapter (and the chapter itself) to its index."""
        owners: dict[str, int] = {}
        for chapter in self.chapters:
            owners[chapter.dom_id] = chapter.index
            for block in chapter.blocks:
                for node in block.iter():
                    node_id = node.get('id')
                    if node_id and node_id not in owners:
                        owners[node_id] = chapter.index
        return owners


class _PendingChapter:
    """Chapter content collected by BookBuilder before ids and links are resolved."""
    def __init__(self, blocks, title, numbered, init_script, source):
        self.blocks: list[Node] = list(blocks)
        self.title: str | None = title
        self.numbered: bool = numbered
        self.init_script: str | None = init_script
        self.source: str | None = source
        self.renamed_ids: dict[str, str] = {}


class BookBuilder:
    """
    Assembles a Book from Markdown chapters.

    Takes care of the book-wide chores: chapter titles, init scripts,
    unique ids across chapters and links between chapter files.
    """

    def __init__(self, metadata: Metadata, numbering: Numbering | None = None,
                 display_all: bool = False, parser: Callable[[str], Sequence[Node]] | None = None):
        if parser is None:
            from .markdown_parser import parse as parser
        self.metadata = metadata
        self.numbering = numbering or Numbering()
        self.display_all = display_all
        self.parser = parser
        self._pending: list[_PendingChapter] = []


    def add_chapter(self, markdown_text: str, title: str | None = None,
                    numbered: bool = True, source: str | None = None) -> 'BookBuilder':
        """Parses one chapter and appends it in reading order."""
        position = len(self._pending)
        try:
            blocks = list(self.parser(markdown_text))
        except Exception as e:
            raise StructureError(f"Could not parse chapter {position} ({source or 'text'}): {e}") from e

        init_parts = []
        content = []
        for block in blocks:
            if block.kind == 'code_block' and block.get('language') == INIT_SCRIPT_LANGUAGE:
                init_parts.append(block.text)
            else:
                content.append(block)

        if title is None:
            heading = next((b for b in content if b.kind == 'heading' and b.get('level') == '1'), None)
            if heading is not None:
                title = heading.plain_text()

        self._pending.append(_PendingChapter(
            content, title, numbered, "\n".join(init_parts) or None, source))
        log.debug(f"Added chapter {position}: {title!r} ({len(content)} blocks)")
        return self


    def add_file(self, path: Path) -> 'BookBuilder':
        """
        Reads a Markdown chapter file.
        A '-' prefix on the file name marks an unnumbered chapter, '+' a numbered one.
        """
        path = Path(path)
        try:
            markdown_text = path.read_text(encoding='utf-8')
        except OSError as e:
            raise StructureError(f"Could not read chapter file {path}: {e}") from e
        numbered = not path.name.startswith('-')
        return self.add_chapter(markdown_text, numbered=numbered, source=path.name.lstrip('+-'))


    def build(self) -> Book:
        """Resolves ids and links across chapters and returns the immutable Book."""
        self._make_ids_unique()
        sources = {p.source: i for i, p in enumerate(self._pending) if p.source}

        chapters = []
        for index, pending in enumerate(self._pending):
            blocks = tuple(
                transform(block, lambda n, i=index: self._resolve_link(n, i, sources))
                for block in pending.blocks
            )
            chapters.append(Chapter(
                index=index,
                blocks=blocks,
                title=pending.title,
                numbered=pending.numbered,
                init_script=pending.init_script,
                source=pending.source,
            ))

        book = Book(tuple(chapters), self.metadata, self.display_all, self.numbering)
        log.info(f"Built book '{self.metadata.title}' with {len(book)} chapters.")
        return book


    def _make_ids_unique(self):
        """Renames ids that collide with ids of earlier chapters or reserved ids."""
        used: set[str] = {"toc"}
        used.update(f"{CHAPTER_ID_PREFIX}{i}" for i in range(len(self._pending)))

        for pending in self._pending:
            local_seen: set[str] = set()

            def rename(node: Node, pending=pending, local_seen=local_seen) -> Node:
                node_id = node.get('id')
                if not node_id:
                    return node
                if node_id in local_seen:
                    # Repeated id inside one chapter: first one keeps the links
                    new_id = self._fresh_id(node_id, used)
                elif node_id in used:
                    new_id = self._fresh_id(node_id, used)
                    pending.renamed_ids[node_id] = new_id
                else:
                    new_id = node_id
                local_seen.add(node_id)
                used.add(new_id)
                return node if new_id == node_id else node.with_attr('id', new_id)

            pending.blocks = [transform(block, rename) for block in pending.blocks]


    @staticmethod
    def _fresh_id(base: str, used: set[str]) -> str:
        counter = 1
        candidate = f"{base}-{counter}"
        while candidate in used:
            counter += 1
            candidate = f"{base}-{counter}"
        return candidate


    def _resolve_link(self, node: Node, index: int, sources: dict[str, int]) -> Node:
        """Rewrites in-book hrefs into '#<id>' fragments valid for the whole book."""
        if node.kind != 'link':
            return node
        href = node.get('href') or ''
        if not href or re.match(r'^[a-z][a-z0-9+.-]*:', href, re.I):
            return node     # empty or external (http:, mailto:, ...)

        path, _, anchor = href.partition('#')
        if not path:
            target = index
        else:
            target = sources.get(Path(path).name.lstrip('+-'))
            if target is None:
                return node     # a relative link outside the book
        if not anchor:
            return node.with_attr('href', f"#{CHAPTER_ID_PREFIX}{target}")
        anchor = self._pending[target].renamed_ids.get(anchor, anchor)
        return node.with_attr('href', f"#{anchor}")
