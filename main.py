#!/usr/bin/env python3
"""
main.py — Quick-start entry point.

Put source photos in ``tiles/`` and run:

    python main.py single my_photo.jpg --tiles tiles

Or use the full CLI:

    python -m picture_mosaic.cli batch --help
    python -m picture_mosaic.cli cache --tiles tiles
"""

from picture_mosaic.cli import app

if __name__ == "__main__":
    app()
