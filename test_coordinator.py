#!/usr/bin/env python3
"""
Tests for the render coordinator: cold start, prefetching, de-duplication
of conversions and recovery from failures.
"""

import sys
import os
import asyncio
import shutil
import tempfile
import unittest
from collections import Counter

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from peruse.coordinator import RenderCoordinator, convert_page
from peruse.display import PdfSize, Rect
from peruse.errors import ConversionError, DisplayError
from peruse.events import (
    ConversionComplete,
    ConversionFailed,
    EventBus,
    LoadRequested,
    PrefetchNext,
    RenderRequested,
)
from peruse.page_cache import PageCache, PageState


class FakeRasterizer:
    """Returns 'page-N' as image bytes and counts conversions."""

    def __init__(self, failing=()):
        self.calls = Counter()
        self.failing = set(failing)

    async def render_jpeg(self, document_path, page_number):
        self.calls[page_number] += 1
        await asyncio.sleep(0)
        if page_number in self.failing:
            raise ConversionError(page_number, "broken page")
        return f"page-{page_number}".encode()


class FakeDisplay:

    def __init__(self, fail=False):
        self.shown = []
        self.fail = fail

    async def show(self, image_data, rect, size):
        if self.fail:
            raise DisplayError("terminal gone")
        self.shown.append(image_data)


def cached_pages(cache):
    return [page for page in range(1, cache.page_count + 1) if page in cache]


class CoordinatorTestCase(unittest.IsolatedAsyncioTestCase):

    page_count = 5

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.cache = PageCache(os.path.join(self.temp_dir, "book.pdf"), self.page_count)
        self.bus = EventBus()
        self.rasterizer = FakeRasterizer()
        self.display = FakeDisplay()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def make_coordinator(self, current_page=1):
        coordinator = RenderCoordinator(
            self.cache, self.bus, self.rasterizer, self.display, current_page=current_page
        )
        coordinator.target_rect = Rect(20, 2, 60, 22)
        coordinator.pdf_size = PdfSize(1200, 1500)
        return coordinator

    async def drain(self, coordinator, limit=500):
        """Run the main loop until no events are queued and no conversion runs."""
        for _ in range(limit):
            events = self.bus.pending()
            if not events:
                if not coordinator._tasks:
                    return
                await asyncio.gather(*list(coordinator._tasks))
                continue
            for event in events:
                await coordinator.handle(event)
        self.fail("event loop did not settle")


class TestColdStart(CoordinatorTestCase):

    async def test_first_page_is_converted_and_shown(self):
        coordinator = self.make_coordinator()
        coordinator.invalidate()
        await self.drain(coordinator)

        self.assertEqual(self.display.shown, [b"page-1"])
        self.assertTrue(coordinator.already_rendered)
        self.assertFalse(coordinator.loading)

    async def test_whole_document_is_prefetched_once(self):
        coordinator = self.make_coordinator()
        coordinator.invalidate()
        await self.drain(coordinator)

        self.assertEqual(cached_pages(self.cache), [1, 2, 3, 4, 5])
        self.assertEqual(dict(self.rasterizer.calls), {1: 1, 2: 1, 3: 1, 4: 1, 5: 1})
        with open(self.cache.page_path(4), 'rb') as f:
            self.assertEqual(f.read(), b"page-4")

    async def test_absent_page_requests_load(self):
        coordinator = self.make_coordinator(current_page=3)
        await coordinator.on_render_requested()
        self.assertEqual(self.bus.pending(), [LoadRequested(3)])

    async def test_cached_page_shows_without_conversion(self):
        with open(self.cache.page_path(1), 'wb') as f:
            f.write(b"from-disk")
        self.cache.mark_ready(1)
        coordinator = self.make_coordinator()
        await coordinator.on_render_requested()
        self.assertEqual(self.display.shown, [b"from-disk"])
        self.assertEqual(self.bus.pending(), [PrefetchNext()])


class TestNavigation(CoordinatorTestCase):

    page_count = 8

    async def test_jumping_during_conversion_converts_each_page_once(self):
        coordinator = self.make_coordinator()
        coordinator.invalidate()
        for event in self.bus.pending():
            await coordinator.handle(event)
        coordinator.set_page(6)
        coordinator.set_page(2)
        coordinator.set_page(6)
        await self.drain(coordinator)

        self.assertEqual(self.display.shown[-1], b"page-6")
        self.assertTrue(all(count == 1 for count in self.rasterizer.calls.values()))
        # The read-ahead pointer jumped past 3..5 and never moves back
        self.assertEqual(cached_pages(self.cache), [1, 2, 6, 7, 8])

    async def test_requested_page_goes_ahead_of_lookahead(self):
        coordinator = self.make_coordinator()
        self.cache.push_back(2)
        self.cache.push_back(3)
        coordinator.on_load_requested(6)
        self.assertEqual(list(self.cache.queue), [6, 2, 3])
        self.assertEqual(self.cache.next_load_page, 7)
        self.assertEqual(self.bus.pending(), [PrefetchNext()])

    async def test_render_of_reserved_page_waits(self):
        coordinator = self.make_coordinator()
        self.cache.reserve(1)
        await coordinator.on_render_requested()
        self.assertEqual(self.bus.pending(), [])
        self.assertEqual(self.display.shown, [])

    async def test_already_rendered_page_is_not_redrawn(self):
        coordinator = self.make_coordinator()
        coordinator.invalidate()
        await self.drain(coordinator)
        self.bus.emit(RenderRequested())
        await self.drain(coordinator)
        self.assertEqual(self.display.shown, [b"page-1"])

    async def test_invalidate_redraws(self):
        coordinator = self.make_coordinator()
        coordinator.invalidate()
        await self.drain(coordinator)
        coordinator.invalidate()
        await self.drain(coordinator)
        self.assertEqual(self.display.shown, [b"page-1", b"page-1"])


class TestPrefetchOrder(CoordinatorTestCase):

    page_count = 10

    async def test_uncached_page_after_cached_run(self):
        for page in range(1, 7):
            with open(self.cache.page_path(page), 'wb') as f:
                f.write(f"page-{page}".encode())
        self.cache = PageCache(self.cache.document_path, self.page_count)
        coordinator = self.make_coordinator(current_page=6)
        coordinator.already_rendered = True

        coordinator.set_page(7)
        self.assertEqual(self.bus.pending(), [RenderRequested()])
        await coordinator.on_render_requested()
        self.assertEqual(self.bus.pending(), [LoadRequested(7)])
        coordinator.on_load_requested(7)
        self.assertEqual(list(self.cache.queue), [7])
        self.assertEqual(self.bus.pending(), [PrefetchNext()])
        coordinator.on_prefetch_next()

        self.assertIs(self.cache.state(7), PageState.RESERVED)
        self.assertEqual(list(self.cache.queue), [8])
        self.assertEqual(coordinator.in_flight, 1)
        await self.drain(coordinator)
        self.assertEqual(self.display.shown[0], b"page-7")

    async def test_duplicate_load_requests_convert_once(self):
        coordinator = self.make_coordinator()
        self.bus.emit(LoadRequested(4))
        self.bus.emit(LoadRequested(4))
        await self.drain(coordinator)
        self.assertEqual(self.rasterizer.calls[4], 1)


class TestRecovery(CoordinatorTestCase):

    async def test_failed_page_is_requested_again_on_render(self):
        self.rasterizer.failing = {3}
        coordinator = self.make_coordinator(current_page=3)
        coordinator.invalidate()
        with self.assertLogs(level='WARNING'):
            await self.drain(coordinator)
        self.assertIs(self.cache.state(3), PageState.ABSENT)

        await coordinator.on_render_requested()
        self.assertEqual(self.bus.pending(), [LoadRequested(3)])

    async def test_missing_raster_is_requested_again(self):
        self.cache.mark_ready(1)
        coordinator = self.make_coordinator()
        coordinator.invalidate()
        with self.assertLogs(level='INFO'):
            await self.drain(coordinator)
        self.assertEqual(self.display.shown, [b"page-1"])
        self.assertEqual(self.rasterizer.calls[1], 1)

    async def test_failed_conversion_releases_page(self):
        self.rasterizer.failing = {1}
        coordinator = self.make_coordinator()
        coordinator.invalidate()
        with self.assertLogs(level='WARNING'):
            await self.drain(coordinator)

        self.assertIs(self.cache.state(1), PageState.ABSENT)
        self.assertEqual(self.display.shown, [])
        self.assertTrue(coordinator.loading)
        self.assertEqual(self.rasterizer.calls[1], 1)

    async def test_failed_page_is_retried_on_next_request(self):
        self.rasterizer.failing = {1}
        coordinator = self.make_coordinator()
        coordinator.invalidate()
        with self.assertLogs(level='WARNING'):
            await self.drain(coordinator)
        self.rasterizer.failing = set()
        coordinator.invalidate()
        await self.drain(coordinator)
        self.assertEqual(self.display.shown, [b"page-1"])

    async def test_display_error_leaves_page_unrendered(self):
        self.display.fail = True
        coordinator = self.make_coordinator()
        coordinator.invalidate()
        with self.assertLogs(level='ERROR'):
            await self.drain(coordinator)
        self.assertFalse(coordinator.already_rendered)
        self.assertIn(1, self.cache)

    async def test_convert_page_reports_outcome(self):
        await convert_page(self.rasterizer, "book.pdf", 2, self.cache.page_path(2), self.bus)
        self.rasterizer.failing = {3}
        with self.assertLogs(level='WARNING'):
            await convert_page(self.rasterizer, "book.pdf", 3, self.cache.page_path(3), self.bus)
        self.assertEqual(self.bus.pending(), [ConversionComplete(2), ConversionFailed(3)])
        self.assertFalse(os.path.exists(self.cache.page_path(3)))
        self.assertEqual(
            [name for name in os.listdir(self.cache.path) if name.endswith(".part")], []
        )

    async def test_shutdown_cancels_conversions(self):
        never = asyncio.Event()

        class SlowRasterizer(FakeRasterizer):
            async def render_jpeg(self, document_path, page_number):
                await never.wait()

        self.rasterizer = SlowRasterizer()
        coordinator = self.make_coordinator()
        coordinator.invalidate()
        for _ in range(3):
            for event in self.bus.pending():
                await coordinator.handle(event)
        self.assertEqual(coordinator.in_flight, 1)
        await coordinator.shutdown()
        await asyncio.sleep(0)
        self.assertEqual(coordinator.in_flight, 0)


if __name__ == '__main__':
    unittest.main()
