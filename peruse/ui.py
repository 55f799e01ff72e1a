import os
import sys
from rich.console import Console
from rich.text import Text
from rich.panel import Panel
from . import config
from .display import Rect
from .state import JumpingToPage, Searching

# ================================
# CENTRALIZED UI CONFIGURATION
# ================================

class UIIcons:
    """Central place to configure all UI icons and separators."""

    EXPANDED = "▼"
    COLLAPSED = "▶"
    SELECTED = "*"
    INDENT = " "


class UIColors:
    """Central place to configure all UI colors and styles."""

    BOOKMARK = "yellow"
    BOOKMARK_SELECTED = "italic red"
    CATALOG_BORDER = "bright_blue"
    CATALOG_TITLE = "bold blue"
    SEARCH_BORDER = "blue"
    SEARCH_TEXT = "green"
    PAGE_INFO = "green"
    PAGE_INPUT = "red"
    LOADING = "yellow"


ICONS = UIIcons
COLORS = UIColors


def get_terminal_size():
    """Get terminal size."""
    try:
        columns, rows = os.get_terminal_size()
        return max(columns, 40), max(rows, 10)
    except OSError:
        return 80, 24


def update_layout(viewer):
    """Recompute pane geometry for the current terminal size."""
    width, height = get_terminal_size()
    catalog_width = max(12, width * config.CATALOG_WIDTH_PERCENT // 100)
    viewer.catalog_width = catalog_width
    viewer.coordinator.target_rect = Rect(
        x=catalog_width + 1,
        y=config.TITLE_ROWS,
        width=max(1, width - catalog_width - 1),
        height=max(1, height - config.TITLE_ROWS),
    )
    return width, height


def get_catalog_lines(viewer, rows):
    """Build one Text per visible bookmark, indented by level."""
    lines = []
    for index, row in enumerate(rows):
        bookmark = row.bookmark
        if bookmark.children_visible:
            marker = f" {ICONS.EXPANDED}"
        elif bookmark.children:
            marker = f" {ICONS.COLLAPSED}"
        else:
            marker = ""
        selected = index == viewer.selected_row
        prefix = ICONS.SELECTED if selected else " "
        label = f"{prefix}{ICONS.INDENT * bookmark.hierarchy_level}{bookmark.name}{marker}"
        style = COLORS.BOOKMARK_SELECTED if selected else COLORS.BOOKMARK
        lines.append(Text(label, style=style, no_wrap=True, overflow="ellipsis"))
    return lines


def _scroll_window(lines, selected, height):
    """Keep the selected row inside a window of ``height`` rows."""
    if len(lines) <= height or selected is None:
        return lines[:height]
    start = min(max(0, selected - height // 2), len(lines) - height)
    return lines[start:start + height]


def get_title_text(viewer):
    page_count = viewer.document.page_count
    state = viewer.app_state
    title = Text()
    if isinstance(state, JumpingToPage):
        title.append("Page ", style=COLORS.PAGE_INFO)
        title.append(state.buffer or "_", style=COLORS.PAGE_INPUT)
        title.append(f"/{page_count}", style=COLORS.PAGE_INFO)
    else:
        title.append(f"Page {viewer.coordinator.current_page}/{page_count}", style=COLORS.PAGE_INFO)
    if viewer.coordinator.loading:
        title.append(f"  {config.LOADING_TEXT}", style=COLORS.LOADING)
    return title


def _render_lines(renderable, width, height):
    temp_console = Console(width=width, height=height, force_terminal=True)
    with temp_console.capture() as capture:
        temp_console.print(renderable, end='', overflow='crop')
    return capture.get().split('\n')[:height]


def clear_screen():
    sys.stdout.write('\033[?25l\033[2J\033[H')
    sys.stdout.flush()


async def display_ui(viewer):
    """
    Draw the catalog pane and the page title row.

    Only the text regions are rewritten; the page image area is left alone
    so a displayed page survives redraws.
    """
    if viewer.render_lock.locked():
        return

    async with viewer.render_lock:
        width, height = get_terminal_size()
        rows = viewer.visible_rows
        state = viewer.app_state
        current_state = (
            tuple(row.path for row in rows), viewer.selected_row,
            viewer.coordinator.current_page, viewer.coordinator.loading,
            state, width, height,
        )
        if viewer.last_rendered_state == current_state:
            return
        viewer.last_rendered_state = current_state

        catalog_width = viewer.catalog_width
        catalog_height = height
        output = []

        if isinstance(state, Searching):
            search_box = Panel(
                Text(state.buffer, style=COLORS.SEARCH_TEXT),
                border_style=COLORS.SEARCH_BORDER,
                width=catalog_width,
                height=3,
            )
            output.extend(_render_lines(search_box, catalog_width, 3))
            catalog_height = height - 3

        lines = _scroll_window(get_catalog_lines(viewer, rows), viewer.selected_row, max(1, catalog_height - 2))
        catalog_content = Text("\n").join(lines)
        catalog_panel = Panel(
            catalog_content,
            title=f"[{COLORS.CATALOG_TITLE}]{viewer.document.title}[/{COLORS.CATALOG_TITLE}]",
            border_style=COLORS.CATALOG_BORDER,
            width=catalog_width,
            height=catalog_height,
            padding=(0, 0),
        )
        output.extend(_render_lines(catalog_panel, catalog_width, catalog_height))

        out = sys.stdout
        out.write('\033[?25l')
        for row, line in enumerate(output):
            out.write(f"\033[{row + 1};1H{line}")

        title_width = max(1, width - catalog_width - 1)
        title_line = _render_lines(get_title_text(viewer), title_width, 1)[0]
        out.write(f"\033[1;{catalog_width + 2}H\033[K{title_line}")
        out.flush()
