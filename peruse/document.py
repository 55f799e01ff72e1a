"""PDF document access through PyMuPDF: pages, outline and page references."""

import logging
import os
import re

import fitz

from .bookmarks import Destination, SubOutlines
from .decode import find_string_value, parse_pdf_string
from .errors import DocumentNotFoundError, DocumentParseError

_REFERENCE = re.compile(r'(\d+)\s+\d+\s+R')


def _xref_of(value):
    """Return the object number from an indirect reference like '12 0 R'."""
    match = _REFERENCE.match(value.strip())
    return int(match.group(1)) if match else None


class Document:
    """An open PDF plus the lookups the viewer needs from it."""

    def __init__(self, path, doc):
        self.path = path
        self.title = os.path.splitext(os.path.basename(path))[0]
        self._doc = doc
        # Page object number -> 1-based page number, in document order
        self.page_map = {doc.page_xref(i): i + 1 for i in range(doc.page_count)}
        self._named_destinations = None

    @classmethod
    def open(cls, path):
        """
        Open a PDF document.

        Raises:
            DocumentNotFoundError: If the file does not exist
            DocumentParseError: If the file is not a readable PDF
        """
        if not os.path.isfile(path):
            raise DocumentNotFoundError(f"No such document: {path}")
        try:
            doc = fitz.open(path)
        except Exception as e:
            raise DocumentParseError(f"Failed to open {path}: {e}") from e
        if not doc.is_pdf:
            doc.close()
            raise DocumentParseError(f"Not a PDF document: {path}")
        if doc.needs_pass:
            doc.close()
            raise DocumentParseError(f"Document is encrypted: {path}")
        return cls(path, doc)

    @property
    def page_count(self):
        return self._doc.page_count

    def close(self):
        self._doc.close()

    def resolve_page_reference(self, xref):
        """Return the page number for a page object number, or 0 if unknown."""
        return self.page_map.get(xref, 0)

    def outline(self):
        """
        Read the outline as ``Destination``/``SubOutlines`` entries.

        Returns None when the document has no outline.

        Raises:
            DocumentParseError: If the outline chain is cyclic or unreadable.
        """
        try:
            kind, value = self._doc.xref_get_key(self._doc.pdf_catalog(), "Outlines")
        except Exception as e:
            raise DocumentParseError(f"Cannot read document catalog: {e}") from e
        if kind != "xref":
            return None
        root = _xref_of(value)
        first = self._child(root) if root else None
        if first is None:
            return None
        return self._read_items(first, visited=set())

    def _child(self, xref):
        kind, value = self._doc.xref_get_key(xref, "First")
        return _xref_of(value) if kind == "xref" else None

    def _sibling(self, xref):
        kind, value = self._doc.xref_get_key(xref, "Next")
        return _xref_of(value) if kind == "xref" else None

    def _read_items(self, xref, visited):
        entries = []
        while xref is not None:
            if xref in visited:
                raise DocumentParseError(f"Outline item {xref} is referenced twice")
            visited.add(xref)
            try:
                entries.append(Destination(self._title(xref), self._page_ref(xref)))
                child = self._child(xref)
                if child is not None:
                    entries.append(SubOutlines(self._read_items(child, visited)))
                xref = self._sibling(xref)
            except DocumentParseError:
                raise
            except Exception as e:
                raise DocumentParseError(f"Malformed outline item {xref}: {e}") from e
        return entries

    def _title(self, xref):
        """Raw title bytes of an outline item, undecoded where possible."""
        kind, value = self._doc.xref_get_key(xref, "Title")
        if kind == "xref":
            source = self._doc.xref_object(_xref_of(value), compressed=True).encode("latin-1", "replace")
            try:
                return parse_pdf_string(source)
            except ValueError:
                return value
        source = self._doc.xref_object(xref, compressed=True).encode("latin-1", "replace")
        token = find_string_value(source, b"Title")
        if token is None:
            # MuPDF already decoded it; nothing better is available
            return value if kind == "string" else b""
        return parse_pdf_string(token)

    def _page_ref(self, xref):
        """Page object number targeted by an outline item, or None."""
        for key in ("Dest", "A/D"):
            kind, value = self._doc.xref_get_key(xref, key)
            if kind == "array":
                return _xref_of(value.strip().lstrip("["))
            if kind == "xref":
                # Destination array stored as its own object
                target = self._doc.xref_object(_xref_of(value), compressed=True)
                return _xref_of(target.strip().lstrip("["))
            if kind in ("string", "name"):
                return self._named_page_ref(value.lstrip("/"))
        return None

    def _named_page_ref(self, name):
        if self._named_destinations is None:
            try:
                self._named_destinations = self._doc.resolve_names()
            except Exception as e:
                logging.warning(f"Cannot resolve named destinations: {e}")
                self._named_destinations = {}
        target = self._named_destinations.get(name)
        if not target or target.get("page", -1) < 0:
            return None
        page_index = target["page"]
        if page_index >= self.page_count:
            return None
        return self._doc.page_xref(page_index)
