"""Configuration settings for the Peruse PDF viewer."""

import os
from platformdirs import user_data_dir, user_log_dir

# Default rasterizer backend (see peruse/rasterizer/)
DEFAULT_RASTERIZER = "pdftoppm"

# Raster settings
RASTER_DPI = 150
JPEG_QUALITY = 75  # Quality used for every page written to the cache

# Image size in pixels requested from the terminal (width, height)
DEFAULT_PDF_SIZE = (1200, 1500)
ZOOM_IN_FACTOR = 1.1
ZOOM_OUT_FACTOR = 0.9

# Page cache layout: "<document stem>-rpr/<page>.jpeg", next to the document
CACHE_DIR_SUFFIX = "-rpr"
CACHE_FILE_EXTENSION = "jpeg"

# History settings
HISTORY_DIR = user_data_dir("peruse")
os.makedirs(HISTORY_DIR, exist_ok=True)
HISTORY_FILE = os.path.join(HISTORY_DIR, "history.json")

# Logging
LOG_DIR = user_log_dir(appname="peruse", appauthor=False)

# General settings
SHOW_ERRORS_ON_EXIT = True
TICK_INTERVAL = 0.1  # Seconds between Tick events

# UI settings
CATALOG_WIDTH_PERCENT = 20  # Width of the bookmark pane
TITLE_ROWS = 2  # Rows reserved above the page image
PLACEHOLDER_TITLE = "unknown"  # Shown when a bookmark title cannot be decoded
LOADING_TEXT = "Loading..."

# Keyboard settings
# Can be set to "default" or a path to a custom keyboard shortcuts JSON file
CUSTOM_KEYBOARD_SHORTCUTS = "default"
