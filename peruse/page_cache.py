"""Disk-backed cache of rasterized pages and the prefetch queue."""

import enum
import logging
import os
from collections import deque

from . import config


class PageState(enum.Enum):
    ABSENT = "absent"
    RESERVED = "reserved"  # conversion launched, file not written yet
    READY = "ready"


def cache_dir_for(document_path):
    """Return "<dir>/<stem>-rpr" for a document path."""
    document_path = os.path.abspath(document_path)
    parent = os.path.dirname(document_path)
    stem = os.path.splitext(os.path.basename(document_path))[0]
    return os.path.join(parent, f"{stem}{config.CACHE_DIR_SUFFIX}")


class PageCache:
    """
    Tracks which pages have a raster on disk and which are being converted.

    A READY page is never downgraded for the rest of the session. The queue
    holds pages waiting for conversion; ``next_load_page`` is the sequential
    read-ahead pointer and only moves forward.
    """

    def __init__(self, document_path, page_count, first_lookahead=2):
        self.document_path = document_path
        self.page_count = page_count
        self.path = cache_dir_for(document_path)
        self._pages = self._scan(self.path)
        self.queue = deque()
        self.next_load_page = first_lookahead
        self._reconverting = set()
        # Pages whose last conversion failed; cleared by the next attempt
        self.failed = set()

    @staticmethod
    def _scan(path):
        """Create the cache directory if needed and adopt existing rasters."""
        os.makedirs(path, exist_ok=True)
        pages = {}
        for entry in os.scandir(path):
            stem, ext = os.path.splitext(entry.name)
            if ext != f".{config.CACHE_FILE_EXTENSION}" or not entry.is_file():
                continue
            if stem.isdigit() and int(stem) > 0:
                pages[int(stem)] = PageState.READY
        logging.info(f"Page cache {path}: {len(pages)} pages adopted")
        return pages

    def page_path(self, page_number):
        return os.path.join(self.path, f"{page_number}.{config.CACHE_FILE_EXTENSION}")

    def state(self, page_number):
        return self._pages.get(page_number, PageState.ABSENT)

    def __contains__(self, page_number):
        return self.state(page_number) is PageState.READY

    def is_cached(self, page_number):
        """READY and the raster file is still on disk."""
        return page_number in self and os.path.exists(self.page_path(page_number))

    def in_bounds(self, page_number):
        return 1 <= page_number <= self.page_count

    def reserve(self, page_number):
        """
        Claim a page for conversion.

        Returns False when the page is already being converted or is cached;
        the caller must not launch a conversion in that case.
        """
        state = self.state(page_number)
        if state is PageState.RESERVED:
            return False
        if state is PageState.READY:
            if self.is_cached(page_number):
                return False
            # Raster vanished from disk; convert again without losing READY
            if page_number in self._reconverting:
                return False
            logging.warning(f"Page {page_number} missing from cache directory, reconverting")
            self._reconverting.add(page_number)
            self.failed.discard(page_number)
            return True
        self._pages[page_number] = PageState.RESERVED
        self.failed.discard(page_number)
        return True

    def mark_ready(self, page_number):
        self._reconverting.discard(page_number)
        self.failed.discard(page_number)
        self._pages[page_number] = PageState.READY

    def release(self, page_number):
        """Give up a reservation after a failed conversion."""
        self._reconverting.discard(page_number)
        self.failed.add(page_number)
        if self._pages.get(page_number) is PageState.RESERVED:
            del self._pages[page_number]

    def read_page(self, page_number):
        """Read raster bytes. FileNotFoundError means the file is not there yet."""
        with open(self.page_path(page_number), 'rb') as f:
            return f.read()

    def push_front(self, page_number):
        """Queue a page ahead of read-ahead work, moving it if already queued."""
        if self.is_cached(page_number):
            return False
        try:
            self.queue.remove(page_number)
        except ValueError:
            pass
        self.queue.appendleft(page_number)
        return True

    def push_back(self, page_number):
        if self.is_cached(page_number) or page_number in self.queue:
            return False
        self.queue.append(page_number)
        return True

    def pop_next(self):
        """Return the next queued page that still needs converting, or None."""
        while self.queue:
            page_number = self.queue.popleft()
            if self.state(page_number) is PageState.RESERVED or self.is_cached(page_number):
                continue
            return page_number
        return None

    def raise_lookahead(self, page_number):
        """Move the read-ahead pointer forward to at least ``page_number``."""
        if page_number > self.next_load_page:
            self.next_load_page = page_number

    def lookahead_in_bounds(self):
        return self.in_bounds(self.next_load_page)

    def queue_lookahead(self):
        """
        Append the next page that still needs converting to the queue tail
        and advance the pointer past it. Returns the page, or None at the end
        of the document.
        """
        while self.lookahead_in_bounds():
            page_number = self.next_load_page
            if self.state(page_number) is PageState.ABSENT:
                break
            self.next_load_page += 1
        if not self.lookahead_in_bounds():
            return None
        page_number = self.next_load_page
        self.push_back(page_number)
        self.next_load_page += 1
        return page_number
