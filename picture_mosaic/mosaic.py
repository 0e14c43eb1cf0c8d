"""Raster-order matching of grid cells to tiles."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

import numpy as np

from picture_mosaic.catalog import Tile, TileCatalog
from picture_mosaic.color_utils import rgb_to_lab
from picture_mosaic.config import ConstraintConfig
from picture_mosaic.kd_index import KdIndex
from picture_mosaic.match_engine import MatchEngine
from picture_mosaic.match_tree import MatchTree
from picture_mosaic.selector import ConstraintSelector, Grid, UsageLedger

logger = logging.getLogger(__name__)


def _cell_labs(cell_colors: np.ndarray) -> np.ndarray:
    rows, cols = cell_colors.shape[:2]
    return rgb_to_lab(cell_colors.reshape(-1, 3)).reshape(rows, cols, 3)


def build_mosaic(
    cell_colors: np.ndarray,
    tree: MatchTree,
    constraints: ConstraintConfig,
    rng: np.random.Generator | None = None,
) -> tuple[list[list[Tile]], UsageLedger]:
    """Choose a tile for every cell using the match tree and placement rules.

    Every call is a fresh run: staleness is cleared, the tree takes the
    noise factor of *constraints* and a new usage ledger is started, so one
    tree can serve several mosaics.

    Args:
        cell_colors: (rows, cols, 3) uint8 average colour per cell.
        tree:        Match tree built from the catalog.
        constraints: Placement rules.
        rng:         Random source for noise mode.

    Returns:
        The row-major tile grid and the usage ledger of the run.

    Raises:
        ExhaustionError: if the tiles run out (consume mode on a small catalog).
    """
    rows, cols = cell_colors.shape[:2]
    labs = _cell_labs(cell_colors)

    tree.unstale()
    tree.noise_factor = constraints.noise_factor
    engine = MatchEngine(tree, rng)
    selector = ConstraintSelector(engine, constraints)
    grid: Grid = [[None] * cols for _ in range(rows)]

    logger.info("Matching %dx%d cells against %d tiles …", cols, rows, len(tree))
    t0 = time.perf_counter()
    for row in range(rows):
        for col in range(cols):
            grid[row][col] = selector.select(tuple(labs[row, col]), grid, row, col)
        logger.debug("  row %d/%d done", row + 1, rows)

    logger.info(
        "Matching done  | distinct tiles=%d  relaxed cells=%d  (%.1f s)",
        len(selector.ledger), selector.relaxed, time.perf_counter() - t0,
    )
    return grid, selector.ledger  # type: ignore[return-value]


def match_unconstrained(
    cell_colors: np.ndarray,
    index: KdIndex | TileCatalog,
) -> list[list[Tile]]:
    """Nearest tile per cell with no placement rules.

    *index* is a :class:`KdIndex` or a :class:`TileCatalog` (linear scan).
    """
    rows, cols = cell_colors.shape[:2]
    labs = _cell_labs(cell_colors)
    t0 = time.perf_counter()

    if isinstance(index, TileCatalog):
        nearest = index.nearest_indices(labs.reshape(-1, 3)).reshape(rows, cols)
        grid = [[index[int(nearest[r, c])] for c in range(cols)] for r in range(rows)]
    else:
        grid = [[index.find_nearest(tuple(labs[r, c])) for c in range(cols)] for r in range(rows)]

    logger.info("Unconstrained matching done  (%.1f s)", time.perf_counter() - t0)
    return grid


def grid_colors(grid: Sequence[Sequence[Tile]]) -> np.ndarray:
    """(rows, cols, 3) uint8 array of the chosen tiles' average colours."""
    return np.array([[tile.rgb for tile in row] for row in grid], dtype=np.uint8)
