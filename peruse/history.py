"""Reading history for the Peruse PDF viewer: last page per document."""

import os
import json
import logging
from . import config

# {
#     "page": {"<absolute pdf path>": <page number>},
#     "last-read": "<absolute pdf path>"
# }
PAGE = "page"
LAST_READ = "last-read"


def absolute_key(pdf_path):
    """Key history entries by absolute path so relative invocations agree."""
    return os.path.abspath(pdf_path)


class History:
    """
    Last-read page per document, persisted as JSON.

    A missing or unreadable history file behaves like an empty history.
    """

    def __init__(self, file_path=None):
        self.file_path = file_path or config.HISTORY_FILE
        self.record = self._load()

    def _load(self):
        if not os.path.exists(self.file_path):
            return {}
        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logging.error(f"Ignoring unreadable history file {self.file_path}: {e}")
            return {}
        if not isinstance(data, dict):
            logging.error(f"Ignoring malformed history file {self.file_path}")
            return {}
        return data

    def read_last_page(self, pdf_path):
        """
        Get the page the document was left at.

        Returns:
            int or None: Page number, or None if the document is unknown
        """
        pages = self.record.get(PAGE)
        if not isinstance(pages, dict):
            return None
        page = pages.get(absolute_key(pdf_path))
        if isinstance(page, int) and not isinstance(page, bool) and page > 0:
            return page
        return None

    def last_read_document(self):
        """
        Get the most recently read document that still exists.

        Returns:
            str or None: Absolute path to the document
        """
        path = self.record.get(LAST_READ)
        if isinstance(path, str) and os.path.exists(path):
            return path
        return None

    def save(self, pdf_path, page_number):
        """
        Record the page for a document and mark it as last read.

        Args:
            pdf_path: Path to the PDF, relative paths are made absolute
            page_number: Current page
        """
        key = absolute_key(pdf_path)
        pages = self.record.get(PAGE)
        if not isinstance(pages, dict):
            pages = {}
            self.record[PAGE] = pages
        pages[key] = int(page_number)
        self.record[LAST_READ] = key

        os.makedirs(os.path.dirname(self.file_path) or ".", exist_ok=True)
        with open(self.file_path, 'w', encoding='utf-8') as f:
            json.dump(self.record, f, indent=2, ensure_ascii=False)
