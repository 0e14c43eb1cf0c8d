"""Draw a tile grid onto a canvas."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

from PIL import Image, ImageDraw, UnidentifiedImageError

from picture_mosaic.catalog import Tile
from picture_mosaic.config import MosaicConfig

logger = logging.getLogger(__name__)


class TileImageCache:
    """Source images loaded once per path, pre-scaled to the drawing size."""

    def __init__(self, size: tuple[int, int]) -> None:
        self.size = size
        self._images: dict[str, Image.Image] = {}
        self.missing = 0

    def get(self, tile: Tile) -> Image.Image:
        img = self._images.get(tile.path)
        if img is None:
            img = self._load(tile)
            self._images[tile.path] = img
        return img

    def _load(self, tile: Tile) -> Image.Image:
        try:
            with Image.open(tile.path) as src:
                return src.convert("RGBA").resize(self.size, Image.BILINEAR)
        except (UnidentifiedImageError, OSError) as exc:
            # Keep going with a flat fill so one bad file does not sink the run.
            self.missing += 1
            logger.warning("Tile image unavailable (%s): %s", tile.path, exc)
            return Image.new("RGBA", self.size, (*tile.rgb, 255))


def render_mosaic(
    grid: Sequence[Sequence[Tile]],
    cell_size: tuple[int, int],
    cfg: MosaicConfig,
) -> Image.Image:
    """Render *grid* (row-major) on a white RGBA canvas.

    Per cell, in order: the tile image inside the padded box (skipped when
    ``tint`` is 255, clipped to an ellipse when ``circle`` is set), a
    translucent overlay of the tile's average colour when ``tint`` > 0, and
    an outline in that colour when ``stroke`` > 0.
    """
    cell_w, cell_h = cell_size
    rows = len(grid)
    cols = len(grid[0]) if rows else 0
    pad = cfg.padding
    inner = (max(1, cell_w - 2 * pad), max(1, cell_h - 2 * pad))

    canvas = Image.new("RGBA", (cell_w * cols, cell_h * rows), (255, 255, 255, 255))
    images = TileImageCache(inner)

    mask = None
    if cfg.circle:
        mask = Image.new("L", inner, 0)
        ImageDraw.Draw(mask).ellipse((0, 0, inner[0] - 1, inner[1] - 1), fill=255)

    t0 = time.perf_counter()
    for r, row in enumerate(grid):
        for c, tile in enumerate(row):
            x, y = c * cell_w, r * cell_h
            if cfg.tint < 255:
                canvas.paste(images.get(tile), (x + pad, y + pad), mask)
            if cfg.tint > 0:
                overlay = Image.new("RGBA", (cell_w, cell_h), (*tile.rgb, cfg.tint))
                canvas.alpha_composite(overlay, (x, y))

    if cfg.stroke > 0:
        draw = ImageDraw.Draw(canvas)
        for r, row in enumerate(grid):
            for c, tile in enumerate(row):
                x0, y0 = c * cell_w + pad, r * cell_h + pad
                box = (x0, y0, x0 + inner[0] - 1, y0 + inner[1] - 1)
                if cfg.circle:
                    draw.ellipse(box, outline=tile.rgb, width=cfg.stroke)
                else:
                    draw.rectangle(box, outline=tile.rgb, width=cfg.stroke)

    logger.info(
        "Rendered %dx%d px canvas  (%.1f s, %d tile images missing)",
        canvas.width, canvas.height, time.perf_counter() - t0, images.missing,
    )
    return canvas
