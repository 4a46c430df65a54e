"""
The chapter navigation state machine of the single-page HTML output.

The machine runs in the reader's browser as the script bound from
`resources/templates/script.js`. `NavigationMachine` is the same machine
without a DOM: the HTML renderer uses it to compute the initial static
visibility, and it documents the transition rules in testable form.

Rules:
  * show_chapter(target) runs the target's init routine (every time), shows
    only that chapter, shows the chapter controls in the window
    [max(0, 2*target-1), 2*target], shows the toc only on chapter 0 and,
    unless suppressed, sets the fragment to '#chapter-<target>'.
    With display_all on, nothing is hidden or shown.
  * A fragment change resolves the fragment id through the containment
    index; ids outside any chapter resolve to chapter 0, unknown ids to
    no transition.
"""
import json
import logging
import re
from typing import Callable, Iterable, Mapping
from urllib.parse import unquote

from .book import Book, CHAPTER_ID_PREFIX


log = logging.getLogger("bookpress")

# A percent sign not followed by two hex digits
MALFORMED_ESCAPE = re.compile(r'%(?![0-9A-Fa-f]{2})')


def control_window(chapter: int) -> range:
    """Indices of the chapter controls visible while `chapter` is shown."""
    return range(max(0, 2 * chapter - 1), 2 * chapter + 1)


def control_count(chapter_count: int) -> int:
    """One control for chapter 0, a previous/next pair for every other chapter."""
    return max(0, 2 * chapter_count - 1)


def chapter_fragment(chapter: int) -> str:
    return f"#{CHAPTER_ID_PREFIX}{chapter}"


class NavigationMachine:
    """DOM-free model of the navigation script."""

    def __init__(self, chapter_count: int, owners: Mapping[str, int] | None = None,
                 display_all: bool = False, init_fns: Mapping[int, Callable[[], None]] | None = None,
                 document_ids: Iterable[str] = ()):
        self.chapter_count = chapter_count
        self.owners: dict[str, int] = dict(owners or {})
        self.document_ids: set[str] = set(document_ids) | set(self.owners)
        self.init_fns: dict[int, Callable[[], None]] = dict(init_fns or {})
        self.configured_display_all = display_all
        self.display_all = display_all

        self.current = 0
        self.fragment = ""
        self.history: list[str] = []
        # Before the load event everything is visible
        self.chapters_visible = [True] * chapter_count
        self.controls_visible = [True] * control_count(chapter_count)
        self.toc_visible = True
        self._in_transition = False


    @classmethod
    def for_book(cls, book: Book, owners: Mapping[str, int] | None = None,
                 document_ids: Iterable[str] = ()) -> 'NavigationMachine':
        return cls(len(book), owners if owners is not None else book.containment_index,
                   book.display_all, document_ids=document_ids)


    # --- Transitions ---

    def show_chapter(self, target: int, suppress_history_update: bool = False,
                     replace_history: bool = False) -> bool:
        """Makes `target` the visible chapter. Returns False if the call was ignored."""
        if self._in_transition:
            log.warning(f"show_chapter({target}) called from an init routine. Ignored.")
            return False
        if not 0 <= target < self.chapter_count:
            log.warning(f"Navigation target {target} outside [0, {self.chapter_count}). Showing chapter 0.")
            target = 0

        self._in_transition = True
        try:
            init = self.init_fns.get(target)
            if init is not None:
                init()
        except Exception:
            # Navigation is never fatal to a reading session
            log.exception(f"Init routine of chapter {target} failed.")
        finally:
            self._in_transition = False

        self.current = target
        if not self.display_all:
            self.chapters_visible = [i == target for i in range(self.chapter_count)]
            window = control_window(target)
            self.controls_visible = [i in window for i in range(len(self.controls_visible))]
            self.toc_visible = target == 0

        if not suppress_history_update:
            self._set_fragment(chapter_fragment(target), replace_history)
        return True


    def resolve_fragment(self, fragment: str) -> int | None:
        """Chapter owning the fragment target; None when nothing matches."""
        fragment_id = fragment.lstrip('#')
        if not fragment_id:
            return 0
        if MALFORMED_ESCAPE.search(fragment_id):
            log.debug(f"Malformed fragment '{fragment}'.")
            return None
        try:
            fragment_id = unquote(fragment_id, errors='strict')
        except UnicodeDecodeError:
            log.debug(f"Malformed fragment '{fragment}'.")
            return None
        if fragment_id in self.owners:
            return self.owners[fragment_id]
        if fragment_id in self.document_ids:
            return 0    # exists, but not inside a chapter
        return None


    def on_fragment_change(self, fragment: str) -> bool:
        """Handles a URL fragment change. Returns True if a transition happened."""
        self.fragment = fragment
        target = self.resolve_fragment(fragment)
        if target is None:
            log.debug(f"Fragment '{fragment}' does not resolve. No transition.")
            return False
        return self.show_chapter(target, suppress_history_update=True)


    def on_load(self, fragment: str = "") -> bool:
        """Handles the load event, with the fragment present in the address at load time."""
        self.display_all = self.configured_display_all
        self.fragment = fragment
        target = self.resolve_fragment(fragment) if fragment.lstrip('#') else None
        if target is not None:
            return self.show_chapter(target, suppress_history_update=True)
        return self.show_chapter(0, replace_history=True)


    def _set_fragment(self, fragment: str, replace_history: bool):
        self.fragment = fragment
        if replace_history and self.history:
            self.history[-1] = fragment
        else:
            self.history.append(fragment)


    # --- Inspection ---

    def visible_chapters(self) -> list[int]:
        return [i for i, visible in enumerate(self.chapters_visible) if visible]


    def visible_controls(self) -> list[int]:
        return [i for i, visible in enumerate(self.controls_visible) if visible]


# --- Script fragments bound into script.js ---

def script_safe(text: str) -> str:
    """Keeps script text from closing the surrounding <script> element."""
    return text.replace("</", "<\\/")


def common_script(chapter_count: int, owners: Mapping[str, int], display_all: bool) -> str:
    """The explicit state object handed to every navigation handler."""
    state = {
        "chapters": chapter_count,
        "displayAll": bool(display_all),
        "current": 0,
        "owners": dict(owners),
    }
    return f"var state = {script_safe(json.dumps(state, ensure_ascii=False, sort_keys=True))};\nstate.initFns = {{}};\nstate.busy = false;"


def init_registrations(init_scripts: Mapping[int, str]) -> str:
    """Registers each chapter's init routine under its index."""
    parts = []
    for index in sorted(init_scripts):
        body = script_safe(init_scripts[index].strip())
        parts.append(f"state.initFns[{index}] = function () {{\n{body}\n}};")
    return "\n".join(parts)
