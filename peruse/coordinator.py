"""Render coordinator: drives the page cache from events on the bus."""

import asyncio
import contextlib
import logging
import os
import tempfile

from .errors import ConversionError, DisplayError
from .events import (
    ConversionComplete,
    ConversionFailed,
    LoadRequested,
    PrefetchNext,
    RenderRequested,
)
from .page_cache import PageState


class RenderCoordinator:
    """
    Decides on every render request whether the current page must be
    requested, is ready to show, or is already on its way.

    The coordinator never calls into slow work directly: conversions run as
    separate tasks that report back through the bus.
    """

    def __init__(self, cache, bus, rasterizer, display, current_page=1):
        self.cache = cache
        self.bus = bus
        self.rasterizer = rasterizer
        self.display = display
        self.current_page = current_page
        self.already_rendered = False
        self.loading = True
        self.target_rect = None
        self.pdf_size = None
        self._tasks = set()

    # -- navigation ------------------------------------------------------

    def set_page(self, page_number):
        """Change the current page and ask for it to be shown."""
        if page_number == self.current_page and self.already_rendered:
            return
        self.current_page = page_number
        self.invalidate()

    def invalidate(self):
        """Force the next RenderRequested to display again."""
        self.already_rendered = False
        self.loading = True
        self.bus.emit(RenderRequested())

    @property
    def in_flight(self):
        return len(self._tasks)

    # -- event handlers --------------------------------------------------

    async def handle(self, event):
        """Dispatch one cache event. Returns False for events it does not own."""
        if isinstance(event, RenderRequested):
            await self.on_render_requested()
        elif isinstance(event, LoadRequested):
            self.on_load_requested(event.page)
        elif isinstance(event, PrefetchNext):
            self.on_prefetch_next()
        elif isinstance(event, ConversionComplete):
            self.on_conversion_complete(event.page)
        elif isinstance(event, ConversionFailed):
            self.on_conversion_failed(event.page)
        else:
            return False
        return True

    async def on_render_requested(self):
        if self.already_rendered:
            return
        page = self.current_page
        state = self.cache.state(page)
        if state is PageState.ABSENT:
            self.bus.emit(LoadRequested(page))
            return
        if state is PageState.RESERVED:
            return

        try:
            loop = asyncio.get_running_loop()
            data = await loop.run_in_executor(None, self.cache.read_page, page)
        except FileNotFoundError:
            logging.info(f"Page {page} raster not on disk yet, requesting again")
            self.bus.emit(LoadRequested(page))
            return
        except OSError as e:
            logging.error(f"Reading page {page} from cache failed: {e}")
            return

        if page != self.current_page or self.target_rect is None:
            # Navigation moved on, or no layout yet; a later request will render
            return
        try:
            await self.display.show(data, self.target_rect, self.pdf_size)
        except DisplayError as e:
            logging.error(f"Displaying page {page} failed: {e}")
            return

        self.already_rendered = True
        self.loading = False
        if self.cache.lookahead_in_bounds() and not self.cache.queue and not self.in_flight:
            self.bus.emit(PrefetchNext())

    def on_load_requested(self, page):
        if self.cache.is_cached(page):
            self.bus.emit(RenderRequested())
            return
        self.cache.push_front(page)
        self.cache.raise_lookahead(page + 1)
        self.bus.emit(PrefetchNext())

    def on_prefetch_next(self):
        while True:
            page = self.cache.pop_next()
            if page is None:
                return
            if self.cache.reserve(page):
                break
        self._launch(page)
        self.cache.queue_lookahead()

    def on_conversion_complete(self, page):
        self.cache.mark_ready(page)
        logging.info(f"Page {page} cached")
        self.bus.emit(RenderRequested())
        self.bus.emit(PrefetchNext())

    def on_conversion_failed(self, page):
        self.cache.release(page)

    # -- conversion ------------------------------------------------------

    def _launch(self, page):
        task = asyncio.create_task(
            convert_page(self.rasterizer, self.cache.document_path, page,
                         self.cache.page_path(page), self.bus)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def shutdown(self):
        """Cancel conversions that are still running."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


async def convert_page(rasterizer, document_path, page, page_path, bus):
    """
    Rasterize one page into the cache and report the outcome on the bus.

    The image is written to a temporary file in the cache directory and
    renamed into place, so readers never see a partial raster.
    """
    try:
        data = await rasterizer.render_jpeg(document_path, page)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, _write_atomic, page_path, data)
    except ConversionError as e:
        logging.warning(f"Conversion failed: {e}")
        bus.emit(ConversionFailed(page))
        return
    except OSError as e:
        logging.warning(f"Writing page {page} to cache failed: {e}")
        bus.emit(ConversionFailed(page))
        return
    bus.emit(ConversionComplete(page))


def _write_atomic(path, data):
    directory = os.path.dirname(path)
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".", suffix=".part")
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise
