"""Exception types raised by the Peruse PDF viewer."""


class PeruseError(Exception):
    """Base class for all viewer errors."""


class DocumentNotFoundError(PeruseError, FileNotFoundError):
    """The document file does not exist."""


class DocumentParseError(PeruseError):
    """The document or its outline is malformed. Fatal at load time."""


class ConversionError(PeruseError):
    """Rasterizing a page, or re-encoding the result, failed."""

    def __init__(self, page_number, message):
        super().__init__(f"page {page_number}: {message}")
        self.page_number = page_number


class DisplayError(PeruseError):
    """Writing an image to the terminal failed."""


class TitleDecodeError(PeruseError, UnicodeError):
    """A bookmark title could not be decoded into text."""
