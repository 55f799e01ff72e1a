"""Bookmark (outline) tree: construction, lookup and navigation."""

import logging
import weakref
from dataclasses import dataclass, field

from . import config
from .decode import decode_title
from .errors import TitleDecodeError


@dataclass
class Destination:
    """Outline leaf as read from the document: raw title plus page reference."""
    title: bytes | str
    page_ref: object


@dataclass
class SubOutlines:
    """Children of the Destination immediately before this entry."""
    entries: list


class BookMark:
    """One outline entry. Children are owned; the parent link is weak."""

    def __init__(self, name, page_number, hierarchy_level, visible=False):
        self.name = name
        self.page_number = page_number
        self.hierarchy_level = hierarchy_level
        self.visible = visible
        self.children_visible = False
        self.children = []
        self._parent = None

    @property
    def parent(self):
        return self._parent() if self._parent is not None else None

    @parent.setter
    def parent(self, node):
        self._parent = weakref.ref(node) if node is not None else None

    def set_expanded(self, show):
        """Show or hide the direct children. No-op for a leaf."""
        if not self.children:
            return
        self.children_visible = show
        for child in self.children:
            child.visible = show

    def __repr__(self):
        return f"BookMark({self.name!r}, page={self.page_number}, level={self.hierarchy_level})"


BookMarkPath = tuple


@dataclass
class VisibleRow:
    """One line of the flattened, visibility-filtered listing."""
    path: BookMarkPath
    bookmark: BookMark = field(repr=False)

    @property
    def depth(self):
        return len(self.path)


class BookMarkTree:
    """
    Forest of bookmarks built once from a document outline.

    The flat ``leaves`` list holds the childless bookmarks in traversal order;
    it is sorted by page for well-formed outlines and drives find_by_page().
    """

    def __init__(self, roots=None):
        self.roots = roots or []
        self.leaves = []
        self._collect_leaves(self.roots)

    @classmethod
    def from_outline(cls, outline, resolve_page):
        """
        Build the tree from ``Destination``/``SubOutlines`` entries.

        Args:
            outline: Outline entry sequence, or None when the document has none
            resolve_page: Callable mapping an internal page reference to a
                1-based page number, or 0 when the reference is unknown
        """
        roots = []
        if outline:
            _parse_outline(outline, roots, 0, resolve_page)
        return cls(roots)

    def _collect_leaves(self, bookmarks):
        for bookmark in bookmarks:
            if bookmark.children:
                self._collect_leaves(bookmark.children)
            else:
                self.leaves.append(bookmark)

    def __len__(self):
        return sum(1 for _ in self.walk())

    def walk(self, bookmarks=None):
        """Yield every bookmark depth-first, parents before children."""
        for bookmark in self.roots if bookmarks is None else bookmarks:
            yield bookmark
            yield from self.walk(bookmark.children)

    def find(self, path):
        """Return the bookmark addressed by ``path``, or None for a stale path."""
        if not path:
            return None
        siblings = self.roots
        bookmark = None
        for index in path:
            if not 0 <= index < len(siblings):
                return None
            bookmark = siblings[index]
            siblings = bookmark.children
        return bookmark

    def visible_rows(self):
        """Flatten the tree into the rows currently shown in the catalog."""
        rows = []
        self._flatten(self.roots, (), rows)
        return rows

    def _flatten(self, bookmarks, prefix, rows):
        for index, bookmark in enumerate(bookmarks):
            if not bookmark.visible:
                continue
            path = prefix + (index,)
            rows.append(VisibleRow(path, bookmark))
            if bookmark.children:
                self._flatten(bookmark.children, path, rows)

    def expand(self, path, show=True):
        """Expand (or collapse) the node at ``path``. Returns False for a stale path."""
        bookmark = self.find(path)
        if bookmark is None:
            return False
        bookmark.set_expanded(show)
        return True

    def collapse(self, path):
        return self.expand(path, show=False)

    def find_by_page(self, page_number):
        """
        Find the leaf covering ``page_number`` and reveal its ancestors.

        Returns the leaf with the greatest page not exceeding ``page_number``,
        the first leaf when every leaf starts later, or None for an outline
        without leaves.
        """
        leaves = self.leaves
        if not leaves:
            return None

        match = None
        left, right = 0, len(leaves) - 1
        last_left = -1
        while left <= right:
            mid = (left + right) // 2
            page = leaves[mid].page_number
            if page == page_number:
                match = leaves[mid]
                break
            if page > page_number:
                right = mid - 1
            else:
                last_left = mid
                left = mid + 1

        if match is None:
            # last_left is the rightmost leaf starting before the target
            match = leaves[0] if last_left == -1 else leaves[last_left]

        self.reveal(match)
        return match

    def find_by_title(self, query):
        """Return the first bookmark whose name contains ``query``, ignoring case."""
        query = query.casefold()
        if not query:
            return None
        for bookmark in self.walk():
            if query in bookmark.name.casefold():
                return bookmark
        return None

    @staticmethod
    def reveal(bookmark):
        """Expand every collapsed ancestor so ``bookmark`` is listed."""
        node = bookmark.parent
        while node is not None:
            if node.children_visible:
                break
            node.set_expanded(True)
            node = node.parent


def _parse_outline(entries, bookmarks, hierarchy_level, resolve_page):
    for entry in entries:
        if isinstance(entry, SubOutlines):
            children = []
            _parse_outline(entry.entries, children, hierarchy_level + 1, resolve_page)
            if not bookmarks:
                logging.warning("Dropping sub-outline without a preceding bookmark")
                continue
            last = bookmarks[-1]
            for child in children:
                child.parent = last
            last.children = children
            continue

        try:
            name = decode_title(entry.title)
        except TitleDecodeError as e:
            logging.warning(f"Bookmark title fallback: {e}")
            name = config.PLACEHOLDER_TITLE
        page_number = resolve_page(entry.page_ref)
        bookmarks.append(BookMark(name, page_number, hierarchy_level, visible=hierarchy_level == 0))


def select_previous(rows, selected, skip_siblings=False):
    """
    Move the catalog cursor one row up, or with ``skip_siblings`` up to the
    next row that is shallower than the current one.

    Returns the new index, or None if there are no rows.
    """
    if not rows:
        return None
    if selected is None:
        return 0
    selected = min(selected, len(rows) - 1)
    if not skip_siblings:
        return max(selected - 1, 0)
    origin_depth = rows[selected].depth
    index = selected
    while index > 0:
        index -= 1
        if _is_shallower(rows[index].depth, origin_depth):
            break
    return index


def select_next(rows, selected, skip_siblings=False):
    """Mirror of select_previous()."""
    if not rows:
        return None
    if selected is None:
        return 0
    selected = min(selected, len(rows) - 1)
    if not skip_siblings:
        return min(selected + 1, len(rows) - 1)
    origin_depth = rows[selected].depth
    index = selected
    while index < len(rows) - 1:
        index += 1
        if _is_shallower(rows[index].depth, origin_depth):
            break
    return index


def _is_shallower(depth, origin_depth):
    # Top-level rows stop a skip that started on a top-level row
    return depth < origin_depth or (depth == 1 and origin_depth == 1)
