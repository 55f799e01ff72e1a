"""Application state variants for the interaction loop."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Normal:
    pass


@dataclass(frozen=True)
class Searching:
    """Typing a query that is matched against bookmark titles."""
    buffer: str = ""


@dataclass(frozen=True)
class JumpingToPage:
    """Typing a page number to jump to."""
    buffer: str = ""


AppState = Normal | Searching | JumpingToPage


def parse_page_buffer(buffer: str, page_count: int) -> int | None:
    """Return the page typed into a jump buffer, or None if it is not a valid page."""
    if not buffer.isdigit():
        return None
    page = int(buffer)
    if 1 <= page <= page_count:
        return page
    return None
