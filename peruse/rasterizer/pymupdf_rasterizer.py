import asyncio
import logging

import fitz

from .base import RasterizerBase
from ..errors import ConversionError


class PyMuPDFRasterizer(RasterizerBase):
    """In-process rasterizer using PyMuPDF, run in a worker thread."""

    @property
    def name(self) -> str:
        return "pymupdf"

    async def initialize(self) -> bool:
        self.initialized = True
        logging.info("PyMuPDF rasterizer ready")
        return True

    async def convert(self, document_path: str, page_number: int) -> bytes:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._render, document_path, page_number)

    def _render(self, document_path, page_number):
        # Each call opens its own handle; fitz documents are not thread-safe
        try:
            with fitz.open(document_path) as doc:
                if not 1 <= page_number <= doc.page_count:
                    raise ConversionError(page_number, f"page out of range 1..{doc.page_count}")
                pixmap = doc[page_number - 1].get_pixmap(dpi=self.dpi)
                return pixmap.tobytes("jpeg", jpg_quality=self.quality)
        except ConversionError:
            raise
        except Exception as e:
            raise ConversionError(page_number, f"PyMuPDF render failed: {e}") from e
