"""Typed events and the single-consumer event bus that carries them."""

import asyncio
import logging
from dataclasses import dataclass

from .state import AppState


@dataclass(frozen=True)
class Tick:
    """Periodic heartbeat from the terminal driver."""


@dataclass(frozen=True)
class Key:
    """A decoded key press, e.g. 'q', 'up', 'enter', 'ctrl-c'."""
    name: str


@dataclass(frozen=True)
class Resize:
    columns: int
    rows: int


@dataclass(frozen=True)
class RenderRequested:
    """Ask the coordinator to show the current page if it is ready."""


@dataclass(frozen=True)
class LoadRequested:
    """The user needs this page; it jumps ahead of background read-ahead."""
    page: int


@dataclass(frozen=True)
class PrefetchNext:
    """Launch the conversion at the head of the prefetch queue."""


@dataclass(frozen=True)
class ConversionComplete:
    page: int


@dataclass(frozen=True)
class ConversionFailed:
    page: int


@dataclass(frozen=True)
class ChangeState:
    state: AppState


@dataclass(frozen=True)
class Quit:
    pass


class EventBus:
    """
    Message channel between producers and the main loop.

    Any number of producers may emit; exactly one consumer calls next().
    Emitting never blocks, so it is safe from reader callbacks, signal
    handlers and background tasks alike.
    """

    def __init__(self):
        self._queue = asyncio.Queue()
        self._closed = False

    def emit(self, event):
        """Queue an event for the consumer. Events after close() are dropped."""
        if self._closed:
            logging.debug(f"Dropping {event!r}: bus closed")
            return
        self._queue.put_nowait(event)

    def emit_threadsafe(self, loop, event):
        """Queue an event from outside the loop thread."""
        loop.call_soon_threadsafe(self.emit, event)

    async def next(self):
        """Wait for the next event, in arrival order."""
        return await self._queue.get()

    def pending(self):
        """Drain and return the events queued right now without waiting."""
        events = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def close(self):
        self._closed = True

    @property
    def closed(self):
        return self._closed

    def __len__(self):
        return self._queue.qsize()


async def tick_producer(bus, interval):
    """Emit Tick on a fixed interval until cancelled."""
    try:
        while not bus.closed:
            bus.emit(Tick())
            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        pass
