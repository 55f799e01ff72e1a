"""
Peruse - Terminal PDF Viewer

Shows PDF pages as inline images in the terminal next to a collapsible
bookmark catalog. Pages are rasterized in the background into a cache
directory beside the document and prefetched ahead of the reader.
"""

__version__ = "0.1.0"
__author__ = "Starry Eyes"
