import asyncio
import logging
import shutil
from rich.console import Console

from .base import RasterizerBase
from ..errors import ConversionError


class PdftoppmRasterizer(RasterizerBase):
    """Rasterizer that shells out to poppler's pdftoppm."""

    @property
    def name(self) -> str:
        return "pdftoppm"

    def __init__(self, console: Console, dpi: int = None, quality: int = None):
        super().__init__(console, dpi, quality)
        self.executable = None

    async def initialize(self) -> bool:
        """Checks that pdftoppm is on the PATH."""
        self.executable = shutil.which("pdftoppm")
        if not self.executable:
            self.console.print("[bold red]Error: 'pdftoppm' not found.[/bold red]")
            self.console.print("[yellow]Install poppler-utils or use '--rasterizer pymupdf'.[/yellow]")
            logging.error("'pdftoppm' is not installed.")
            return False
        self.initialized = True
        return True

    def build_command(self, document_path: str, page_number: int) -> list[str]:
        return [
            self.executable or "pdftoppm",
            "-jpeg", "-jpegopt", f"quality={self.quality}",
            "-r", str(self.dpi),
            "-f", str(page_number), "-l", str(page_number),
            "-singlefile",
            document_path,
        ]

    async def convert(self, document_path: str, page_number: int) -> bytes:
        command = self.build_command(document_path, page_number)
        try:
            process = await asyncio.create_subprocess_exec(
                *command, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            raise ConversionError(page_number, f"cannot run pdftoppm: {e}") from e
        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            message = stderr.decode(errors="replace").strip() or f"exit status {process.returncode}"
            raise ConversionError(page_number, f"pdftoppm failed: {message}")
        return stdout

