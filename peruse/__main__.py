"""Main entry point for the Peruse terminal PDF viewer."""

import asyncio
import sys
import termios
import tty
import argparse
import os
import logging
from rich.console import Console
from .viewer import Viewer
from . import config, input_handler
from .errors import DocumentNotFoundError, DocumentParseError
from .history import History
from .rasterizer_manager import RasterizerManager, get_default_rasterizer_name


def get_keyboard_shortcuts_file(keys_arg):
    """Resolve the keyboard shortcuts file from the command line argument.

    Returns None for the built-in defaults.
    """
    if not keys_arg or keys_arg == "default":
        return None
    if os.path.isfile(keys_arg):
        return keys_arg
    return None


def setup_logging():
    """Set up file-based logging for the application."""
    os.makedirs(config.LOG_DIR, exist_ok=True)
    log_file = os.path.join(config.LOG_DIR, "error.log")

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
        filename=log_file,
        filemode='a',
        force=True,
    )
    logging.info("--- Application Starting ---")


def build_parser(available_rasterizers):
    default_rasterizer = get_default_rasterizer_name(available_rasterizers)

    parser = argparse.ArgumentParser(
        description="A terminal PDF viewer with a bookmark catalog",
        add_help=False  # Disable automatic help to add custom one
    )
    parser.add_argument(
        '-h', '--help',
        action='help',
        help='Show this help message and exit'
    )
    parser.add_argument("file_path", nargs='?', help="Path to the PDF file. If not provided, opens the last document you were reading.")
    parser.add_argument(
        "-k", "--keys",
        help="Keyboard configuration: 'default' or a path to a JSON file. Default: default",
        default="default"
    )
    parser.add_argument(
        "-p", "--page",
        type=int,
        help="Open at this page instead of the remembered one",
    )
    if available_rasterizers:
        parser.add_argument(
            "-r",
            "--rasterizer",
            choices=available_rasterizers,
            default=default_rasterizer,
            help=f"Select the page rasterizer (default: {default_rasterizer})",
        )
    return parser


async def main():
    rasterizer_manager = RasterizerManager()
    available_rasterizers = rasterizer_manager.get_available_names()
    parser = build_parser(available_rasterizers)
    args = parser.parse_args()

    console = Console()
    history = History()

    if not args.file_path:
        last_document = history.last_read_document()
        if last_document:
            console.print(f"[green]Opening last document: {os.path.basename(last_document)}[/green]")
            args.file_path = last_document
        else:
            console.print("[red]No file specified and no previous documents found.[/red]")
            console.print("Please provide a file path as an argument.")
            parser.print_help()
            sys.exit(1)
    else:
        args.file_path = os.path.abspath(args.file_path)

    setup_logging()

    if args.keys != "default":
        keyboard_shortcuts_file = get_keyboard_shortcuts_file(args.keys)
        if keyboard_shortcuts_file is None:
            console.print(f"[yellow]Keyboard configuration '{args.keys}' not found, using defaults.[/yellow]")
    else:
        keyboard_shortcuts_file = get_keyboard_shortcuts_file(config.CUSTOM_KEYBOARD_SHORTCUTS)
    input_handler.load_keyboard_shortcuts(keyboard_shortcuts_file)

    preferred = getattr(args, 'rasterizer', None) or config.DEFAULT_RASTERIZER
    rasterizer = await rasterizer_manager.create_initialized(preferred, console)
    if rasterizer is None:
        console.print("\n[bold red]Error: no page rasterizer is available.[/bold red] "
                      "Install poppler-utils (pdftoppm) or PyMuPDF.")
        logging.error("No rasterizer could be initialized.")
        sys.exit(1)

    try:
        viewer = Viewer(args.file_path, rasterizer, start_page=args.page, history=history)
    except (DocumentNotFoundError, DocumentParseError) as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        logging.error(f"Cannot open {args.file_path}: {e}")
        sys.exit(1)
    except OSError as e:
        console.print(f"[bold red]Error: cannot create the page cache: {e}[/bold red]")
        logging.error(f"Cannot create page cache for {args.file_path}: {e}")
        sys.exit(1)

    # Hide cursor
    sys.stdout.write('\033[?25l')
    sys.stdout.flush()

    fd = sys.stdin.fileno()
    old_settings = termios.tcgetattr(fd)

    try:
        tty.setcbreak(fd)
        await viewer.run()
    finally:
        sys.stdout.write('\033[?25h')
        sys.stdout.flush()
        if fd is not None and old_settings is not None:
            termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)


def cli():
    """Synchronous entry point for the command-line interface."""
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
    except Exception as e:
        logging.critical(f"Fatal error in application startup: {e}", exc_info=True)


if __name__ == "__main__":
    cli()
