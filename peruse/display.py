"""Inline image output for terminals that speak the iTerm2 image protocol."""

import asyncio
import base64
import contextlib
import sys
from dataclasses import dataclass

from .errors import DisplayError

SAVE_CURSOR = "\0337"
RESTORE_CURSOR = "\0338"


@dataclass(frozen=True)
class Rect:
    """Terminal cell rectangle, 0-based."""
    x: int
    y: int
    width: int
    height: int


@dataclass
class PdfSize:
    """Pixel size requested for the page image."""
    width: int
    height: int

    def zoom(self, factor):
        self.width = max(1, int(self.width * factor))
        self.height = max(1, int(self.height * factor))


def inline_image_sequence(image_data: bytes, size: PdfSize) -> str:
    b64 = base64.standard_b64encode(image_data).decode("ascii")
    return (
        f"\033]1337;File=inline=1;size={len(image_data)};"
        f"width={size.width}px;height={size.height}px;doNotMoveCursor=1:{b64}\a"
    )


@contextlib.contextmanager
def move_cursor(stream, x, y):
    """
    Save the cursor, move it to cell (x, y) and always restore and flush,
    even when the body raises.
    """
    stream.write(f"{SAVE_CURSOR}\033[{y + 1};{x + 1}H")
    try:
        yield stream
    finally:
        stream.write(RESTORE_CURSOR)
        stream.flush()


class InlineImageDisplay:
    """Writes page images at a terminal position; writes are serialized."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdout
        self._lock = asyncio.Lock()

    async def show(self, image_data: bytes, rect: Rect, size: PdfSize):
        """
        Raises:
            DisplayError: If writing to the terminal fails.
        """
        sequence = inline_image_sequence(image_data, size)
        async with self._lock:
            try:
                with move_cursor(self.stream, rect.x, rect.y) as out:
                    out.write(sequence)
            except (OSError, ValueError) as e:
                raise DisplayError(f"cannot write image: {e}") from e
