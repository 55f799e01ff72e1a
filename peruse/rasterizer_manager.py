"""Registry of the page rasterizers shipped in the rasterizer package."""

import importlib
import inspect
import logging
from pathlib import Path
from rich.console import Console
from .rasterizer.base import RasterizerBase
from . import config


class RasterizerManager:
    """
    Maps rasterizer names to their classes.

    A rasterizer lives in ``rasterizer/<name>_rasterizer.py`` as a concrete
    RasterizerBase subclass. Whether it can actually run (pdftoppm on PATH,
    PyMuPDF importable) is only known after ``initialize``, so
    ``create_initialized`` is what the command line uses.
    """

    def __init__(self):
        self._rasterizers = {}
        self._discover_rasterizers()

    def _discover_rasterizers(self):
        rasterizer_dir = Path(__file__).parent / "rasterizer"
        for file_path in sorted(rasterizer_dir.glob("*_rasterizer.py")):
            module_name = file_path.stem
            try:
                module = importlib.import_module(f".rasterizer.{module_name}", package="peruse")
            except Exception as e:
                logging.error(f"Failed to load rasterizer module {module_name}: {e}", exc_info=True)
                continue
            classes = [
                obj for _, obj in inspect.getmembers(module, inspect.isclass)
                if issubclass(obj, RasterizerBase) and not inspect.isabstract(obj)
                and obj.__module__ == module.__name__
            ]
            if not classes:
                logging.warning(f"No rasterizer class in {module_name}")
                continue
            rasterizer_name = module_name[:-len("_rasterizer")]
            self._rasterizers[rasterizer_name] = classes[0]
            logging.info(f"Discovered rasterizer: {rasterizer_name}")

    def get_available_names(self) -> list[str]:
        """Rasterizer names, the configured default first and the rest sorted."""
        names = sorted(self._rasterizers)
        default_name = get_default_rasterizer_name(names)
        if default_name in names:
            names.remove(default_name)
            names.insert(0, default_name)
        return names

    def create(self, name: str, console: Console, dpi: int = None, quality: int = None) -> RasterizerBase | None:
        """
        Instantiate the named rasterizer without initializing it.

        Args:
            name: Rasterizer name, e.g. 'pdftoppm'
            console: Rich console for setup messages
            dpi: Output resolution, config.RASTER_DPI when None
            quality: JPEG quality, config.JPEG_QUALITY when None

        Returns:
            The rasterizer, or None for an unknown name
        """
        rasterizer_class = self._rasterizers.get(name)
        if rasterizer_class is None:
            logging.error(f"Rasterizer '{name}' not found.")
            return None
        return rasterizer_class(console, dpi=dpi, quality=quality)

    async def create_initialized(self, preferred: str, console: Console) -> RasterizerBase | None:
        """
        Return the first rasterizer that initializes, trying ``preferred``
        before the others. None when none of them can run.
        """
        names = self.get_available_names()
        if preferred in names:
            names.remove(preferred)
            names.insert(0, preferred)
        for name in names:
            rasterizer = self.create(name, console)
            if rasterizer and await rasterizer.initialize():
                if name != preferred:
                    console.print(f"[yellow]Falling back to the '{name}' rasterizer.[/yellow]")
                logging.info(f"Using rasterizer: {name}")
                return rasterizer
            logging.warning(f"Rasterizer '{name}' is not usable")
        return None


def get_default_rasterizer_name(available: list[str]) -> str:
    """config.DEFAULT_RASTERIZER when it is available, else the first name."""
    if config.DEFAULT_RASTERIZER in available:
        return config.DEFAULT_RASTERIZER
    return available[0] if available else ""
