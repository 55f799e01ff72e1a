import os
import sys
import signal
import asyncio
import logging
from rich.console import Console

from . import config, ui, input_handler
from .bookmarks import BookMarkTree, select_next, select_previous
from .coordinator import RenderCoordinator
from .display import InlineImageDisplay, PdfSize
from .document import Document
from .events import ChangeState, EventBus, Key, Quit, RenderRequested, Resize, Tick, tick_producer
from .history import History
from .page_cache import PageCache, PageState
from .rasterizer.base import RasterizerBase
from .state import JumpingToPage, Normal, Searching, parse_page_buffer


class Viewer:
    def __init__(self, file_path, rasterizer: RasterizerBase, start_page: int | None = None,
                 history: History | None = None, display=None):
        self.console = Console()
        self.loop = None
        self.file_path = os.path.abspath(file_path)
        self.history = history or History()

        self._load_document()
        self._initialize_state(rasterizer, start_page, display)
        self._initialize_ui_state()

    def _load_document(self):
        """Open the document and build the bookmark tree. Failures are fatal."""
        self.console.print(f"[bold cyan]Loading document: {os.path.basename(self.file_path)}...[/bold cyan]")
        self.document = Document.open(self.file_path)
        self.tree = BookMarkTree.from_outline(self.document.outline(), self.document.resolve_page_reference)
        logging.info(
            f"Opened {self.file_path}: {self.document.page_count} pages, "
            f"{len(self.tree)} bookmarks"
        )

    def _initialize_state(self, rasterizer, start_page, display):
        """Initialize paging, cache and event state."""
        self.running = True
        self.bus = EventBus()
        self.app_state = Normal()
        self._queued_state = None
        self.cache = PageCache(self.file_path, self.document.page_count)

        page = start_page or self.history.read_last_page(self.file_path) or 1
        page = min(max(1, page), max(1, self.document.page_count))
        self.coordinator = RenderCoordinator(
            self.cache, self.bus, rasterizer, display or InlineImageDisplay(), current_page=page
        )
        self.coordinator.pdf_size = PdfSize(*config.DEFAULT_PDF_SIZE)
        self.tick_task = None

    def _initialize_ui_state(self):
        """Initialize UI and interaction state."""
        self.selected_row = None
        self.catalog_width = 0
        self.key_decoder = input_handler.KeyDecoder()
        self.render_lock = asyncio.Lock()
        self.last_rendered_state = None

    @property
    def current_page(self):
        return self.coordinator.current_page

    @property
    def effective_state(self):
        """State after the ChangeState events still on the bus are applied."""
        return self._queued_state if self._queued_state is not None else self.app_state

    def change_state(self, state):
        self._queued_state = state
        self.bus.emit(ChangeState(state))

    @property
    def visible_rows(self):
        return self.tree.visible_rows()

    # -- page navigation -------------------------------------------------

    def go_to_page(self, page_number):
        """Show a page, clamped to the document, and follow it in the catalog."""
        page_number = min(max(1, page_number), self.document.page_count)
        if page_number == self.current_page and self.coordinator.already_rendered:
            return
        self._redraw_all()
        self.coordinator.set_page(page_number)
        self.sync_catalog_to_page()

    def next_page(self):
        if self.current_page < self.document.page_count:
            self.go_to_page(self.current_page + 1)

    def previous_page(self):
        if self.current_page > 1:
            self.go_to_page(self.current_page - 1)

    def zoom(self, factor):
        self.coordinator.pdf_size.zoom(factor)
        self._redraw_all()
        self.coordinator.invalidate()

    def _redraw_all(self):
        """Clear the screen; the next tick redraws text, the next render the page."""
        if self.loop is not None:
            ui.clear_screen()
        self.last_rendered_state = None

    # -- bookmarks -------------------------------------------------------

    def sync_catalog_to_page(self):
        """Select the bookmark covering the current page, expanding its ancestors."""
        bookmark = self.tree.find_by_page(self.current_page)
        if bookmark is not None:
            self._select_bookmark(bookmark)

    def _select_bookmark(self, bookmark):
        for index, row in enumerate(self.visible_rows):
            if row.bookmark is bookmark:
                self.selected_row = index
                return

    def bookmarks_previous(self, skip_siblings=False):
        self.selected_row = select_previous(self.visible_rows, self.selected_row, skip_siblings)

    def bookmarks_next(self, skip_siblings=False):
        self.selected_row = select_next(self.visible_rows, self.selected_row, skip_siblings)

    def toggle_bookmark_expansion(self, show):
        rows = self.visible_rows
        if self.selected_row is None or self.selected_row >= len(rows):
            return
        self.tree.expand(rows[self.selected_row].path, show)

    def open_selected_bookmark(self):
        rows = self.visible_rows
        if self.selected_row is None or self.selected_row >= len(rows):
            return
        bookmark = rows[self.selected_row].bookmark
        if bookmark.page_number > 0:
            self.go_to_page(bookmark.page_number)
            self._select_bookmark(bookmark)

    def search_bookmarks(self, query):
        bookmark = self.tree.find_by_title(query)
        if bookmark is None:
            logging.info(f"No bookmark matches {query!r}")
            return False
        self.tree.reveal(bookmark)
        self._select_bookmark(bookmark)
        if bookmark.page_number > 0:
            self.go_to_page(bookmark.page_number)
            self._select_bookmark(bookmark)
        return True

    # -- input -----------------------------------------------------------

    def handle_key(self, key):
        """Interpret a key for the current application state."""
        if key == "ctrl-c":
            self.bus.emit(Quit())
            return
        state = self.effective_state
        if isinstance(state, JumpingToPage):
            self._handle_jump_key(state, key)
        elif isinstance(state, Searching):
            self._handle_search_key(state, key)
        else:
            self._handle_command(input_handler.command_for_key(key))

    def _handle_jump_key(self, state, key):
        if key == "esc":
            self.change_state(Normal())
        elif key == "enter":
            self.change_state(Normal())
            page = parse_page_buffer(state.buffer, self.document.page_count)
            if page is not None:
                self.go_to_page(page)
        elif key == "backspace":
            self.change_state(JumpingToPage(state.buffer[:-1]))
        elif len(key) == 1 and key.isdigit():
            self.change_state(JumpingToPage(state.buffer + key))

    def _handle_search_key(self, state, key):
        if key == "esc":
            self.change_state(Normal())
        elif key == "enter":
            self.change_state(Normal())
            if state.buffer:
                self.search_bookmarks(state.buffer)
        elif key == "backspace":
            self.change_state(Searching(state.buffer[:-1]))
        elif len(key) == 1:
            self.change_state(Searching(state.buffer + key))

    def _handle_command(self, cmd):
        if cmd is None:
            return
        if cmd == 'quit':
            self.bus.emit(Quit())
        elif cmd == 'next_page':
            self.next_page()
        elif cmd == 'prev_page':
            self.previous_page()
        elif cmd == 'jump_to_page':
            self.change_state(JumpingToPage(""))
        elif cmd == 'search':
            self.change_state(Searching(""))
        elif cmd in ('prev_bookmark', 'prev_bookmark_skip'):
            self.bookmarks_previous(skip_siblings=cmd.endswith('_skip'))
        elif cmd in ('next_bookmark', 'next_bookmark_skip'):
            self.bookmarks_next(skip_siblings=cmd.endswith('_skip'))
        elif cmd == 'expand_bookmark':
            self.toggle_bookmark_expansion(True)
        elif cmd == 'collapse_bookmark':
            self.toggle_bookmark_expansion(False)
        elif cmd == 'open_bookmark':
            self.open_selected_bookmark()
        elif cmd == 'zoom_in':
            self.zoom(config.ZOOM_IN_FACTOR)
        elif cmd == 'zoom_out':
            self.zoom(config.ZOOM_OUT_FACTOR)

    # -- event loop ------------------------------------------------------

    async def dispatch(self, event):
        """Handle one event from the bus."""
        if isinstance(event, Tick):
            for key in self.key_decoder.flush():
                self.handle_key(key)
            await ui.display_ui(self)
            self._poll_render()
        elif isinstance(event, Key):
            self.handle_key(event.name)
        elif isinstance(event, ChangeState):
            self.app_state = event.state
            if event.state is self._queued_state:
                self._queued_state = None
        elif isinstance(event, Resize):
            self._redraw_all()
            ui.update_layout(self)
            self.coordinator.invalidate()
        elif isinstance(event, Quit):
            self.running = False
        else:
            await self.coordinator.handle(event)

    def _poll_render(self):
        """Ask again for the current page until it is on screen."""
        coordinator = self.coordinator
        if coordinator.already_rendered:
            return
        page = coordinator.current_page
        # Absent pages and failed conversions wait for an explicit request
        if self.cache.state(page) is PageState.ABSENT or page in self.cache.failed:
            return
        self.bus.emit(RenderRequested())

    def _handle_resize(self, signum, frame):
        width, height = ui.get_terminal_size()
        self.bus.emit_threadsafe(self.loop, Resize(width, height))

    def _handle_exit_signal(self, signum, frame):
        self.running = False
        if self.loop and self.loop.is_running():
            self.bus.emit_threadsafe(self.loop, Quit())

    async def run(self):
        self.loop = asyncio.get_running_loop()
        self.loop.add_reader(sys.stdin.fileno(), input_handler.process_input, self)

        signal.signal(signal.SIGWINCH, self._handle_resize)
        signal.signal(signal.SIGINT, self._handle_exit_signal)
        signal.signal(signal.SIGTERM, self._handle_exit_signal)

        ui.clear_screen()
        ui.update_layout(self)
        self.sync_catalog_to_page()
        self.coordinator.invalidate()
        self.tick_task = asyncio.create_task(tick_producer(self.bus, config.TICK_INTERVAL))

        while self.running:
            event = await self.bus.next()
            try:
                await self.dispatch(event)
            except Exception as e:
                logging.error(f"Error handling {event!r}: {e}", exc_info=True)

        await self._shutdown()

    async def _shutdown(self):
        self.running = False
        self.bus.close()
        signal.signal(signal.SIGWINCH, signal.SIG_DFL)
        signal.signal(signal.SIGINT, signal.SIG_DFL)
        signal.signal(signal.SIGTERM, signal.SIG_DFL)
        if self.loop:
            self.loop.remove_reader(sys.stdin.fileno())

        if self.tick_task and not self.tick_task.done():
            self.tick_task.cancel()
            try:
                await asyncio.wait_for(self.tick_task, timeout=1.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass
        await self.coordinator.shutdown()

        try:
            self.history.save(self.file_path, self.current_page)
        except OSError as e:
            logging.error(f"Saving reading history failed: {e}")
        self.document.close()
        logging.info("--- Application Shutting Down ---")
        sys.stdout.write('\033[2J\033[H\033[?25h')
        sys.stdout.flush()

        if config.SHOW_ERRORS_ON_EXIT:
            show_session_errors()


def show_session_errors():
    """Print the ERROR lines logged during this session, then clear the log."""
    log_file = os.path.join(config.LOG_DIR, "error.log")
    try:
        with open(log_file, 'r', encoding='utf-8') as f:
            lines = f.readlines()
    except FileNotFoundError:
        return
    except OSError as e:
        logging.error(f"Cannot read log file: {e}")
        return

    start_indices = [i for i, line in enumerate(lines) if "--- Application Starting ---" in line]
    last_start_index = start_indices[-1] if start_indices else 0

    session_lines = lines[last_start_index:]
    error_lines = [line.strip() for line in session_lines if " - ERROR - " in line]

    if error_lines:
        error_console = Console()
        error_console.print("\n[bold red]Errors recorded during this session:[/bold red]")
        for error in error_lines:
            message = ' - '.join(error.split(' - ')[3:])
            error_console.print(f"- {message}")

    try:
        os.remove(log_file)
    except OSError:
        pass
