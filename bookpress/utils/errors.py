"""
Exception types raised while building and rendering a book.
"""


class BookpressError(Exception):
    """Base class for all bookpress errors."""


class StructureError(BookpressError):
    """The book model is malformed (chapter order, missing metadata, bad input)."""


class UnboundPlaceholderError(BookpressError):
    """A template shell references placeholders missing from the context (strict mode)."""

    def __init__(self, names):
        self.names = tuple(names)
        super().__init__(f"Unbound template placeholders: {', '.join(self.names)}")


class RenderError(BookpressError):
    """
    A renderer could not map the book into its target representation.

    `chapter_index` is the first chapter that failed, or None when the
    failure belongs to the whole artifact (packaging, typesetting).
    """

    def __init__(self, chapter_index: int | None, cause: BaseException):
        self.chapter_index = chapter_index
        self.cause = cause
        where = f"chapter {chapter_index}" if chapter_index is not None else "book"
        super().__init__(f"Failed to render {where}: {type(cause).__name__}: {cause}")
        self.__cause__ = cause


class PackagingError(BookpressError):
    """The EPUB packager failed to produce a container."""


class TypesettingError(BookpressError):
    """The print typesetter failed to produce a paginated document."""


class HighlightError(BookpressError):
    """The syntax highlighter failed on a code block."""
