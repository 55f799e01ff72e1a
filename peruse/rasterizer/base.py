"""Abstract base class for page rasterizers in the Peruse PDF viewer."""

import asyncio
import logging
from abc import ABC, abstractmethod

import fitz
from rich.console import Console

from .. import config
from ..errors import ConversionError


class RasterizerBase(ABC):
    """
    Abstract base class for all rasterizers.

    A rasterizer turns one page of a document into encoded image bytes.
    Implementations must not block the event loop: run external programs
    through asyncio subprocesses and CPU-bound work in a worker thread.
    """

    def __init__(self, console: Console, dpi: int = None, quality: int = None):
        """
        Initialize the rasterizer.

        Args:
            console: Rich console instance for user feedback
            dpi: Optional resolution, defaults to config.RASTER_DPI
            quality: Optional JPEG quality, defaults to config.JPEG_QUALITY
        """
        self.console = console
        self.dpi = dpi or config.RASTER_DPI
        self.quality = quality or config.JPEG_QUALITY
        self.initialized = False

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Get the unique identifier for this rasterizer.

        Returns:
            str: Rasterizer name (e.g., 'pdftoppm', 'pymupdf')
        """
        pass

    @abstractmethod
    async def initialize(self) -> bool:
        """
        Check that the backend can run.

        Returns:
            bool: True if the rasterizer is usable, False otherwise
        """
        pass

    @abstractmethod
    async def convert(self, document_path: str, page_number: int) -> bytes:
        """
        Rasterize one page.

        Args:
            document_path: Path to the document, may contain non-ASCII characters
            page_number: 1-based page number

        Returns:
            bytes: Encoded image data

        Raises:
            ConversionError: If the page could not be rasterized
        """
        pass

    async def render_jpeg(self, document_path: str, page_number: int) -> bytes:
        """Rasterize a page and normalize the result to JPEG at the configured quality."""
        if not self.initialized:
            raise ConversionError(page_number, f"{self.name} rasterizer has not been initialized")
        data = await self.convert(document_path, page_number)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, reencode_jpeg, data, page_number, self.quality)


def reencode_jpeg(data: bytes, page_number: int, quality: int) -> bytes:
    """
    Decode intermediate image bytes and encode them again as JPEG.

    Raises:
        ConversionError: If the bytes are not a decodable image.
    """
    if not data:
        raise ConversionError(page_number, "rasterizer produced no data")
    try:
        pixmap = fitz.Pixmap(data)
        if pixmap.alpha:
            pixmap = fitz.Pixmap(pixmap, 0)
        return pixmap.tobytes("jpeg", jpg_quality=quality)
    except Exception as e:
        logging.warning(f"Re-encoding page {page_number} failed: {e}")
        raise ConversionError(page_number, f"cannot re-encode image: {e}") from e
