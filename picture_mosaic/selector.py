"""Layered placement policy on top of the match engine.

For each grid cell the selector asks the engine for the nearest live tile
and checks it against the placement rules:

- **spacing**: the same id must not already sit within the configured radius
  of the cell (adjacency ban = radius 1, or the diversity radius);
- **usage cap**: a tile may be placed at most ``max_usage`` times;
- **consume on use**: a placed tile is excluded for the rest of the run.

A rejected candidate is marked stale and the engine is asked again. Retries
are bounded; once they run out the rules are relaxed (with a warning) rather
than failing the mosaic. Only running out of tiles entirely is fatal.

The selector mutates node staleness and the usage ledger without locking.
Matching cells in parallel would need disjoint tile subsets per worker or a
lock around every stale flip.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Sequence

from picture_mosaic.catalog import Tile
from picture_mosaic.color_utils import lab_distance
from picture_mosaic.config import ConstraintConfig
from picture_mosaic.errors import ExhaustionError
from picture_mosaic.match_engine import MatchEngine

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 100
FALLBACK_ATTEMPTS = 200
NEIGHBOUR_PENALTY = 1000.0
USAGE_PENALTY = 50.0

Grid = list[list[Tile | None]]


class UsageLedger(Counter):
    """Placements per tile id for one mosaic run."""

    def record(self, tile_id: str) -> int:
        self[tile_id] += 1
        return self[tile_id]


def neighbour_offsets(radius: int) -> list[tuple[int, int, float]]:
    """``(d_row, d_col, distance)`` for every cell within *radius*, centre excluded."""
    offsets = []
    for dr in range(-radius, radius + 1):
        for dc in range(-radius, radius + 1):
            if (dr or dc) and dr * dr + dc * dc <= radius * radius:
                offsets.append((dr, dc, math.hypot(dr, dc)))
    return offsets


class ConstraintSelector:
    """Picks one tile per cell while honouring a :class:`ConstraintConfig`.

    Args:
        engine: Match engine over the run's tree.
        config: Placement rules.
        ledger: Usage counts; a fresh ledger is created when omitted.
    """

    def __init__(
        self,
        engine: MatchEngine,
        config: ConstraintConfig,
        ledger: UsageLedger | None = None,
    ) -> None:
        self.engine = engine
        self.tree = engine.tree
        self.config = config
        self.ledger = ledger if ledger is not None else UsageLedger()
        self.relaxed = 0
        self._offsets = neighbour_offsets(config.spacing_radius)

    def neighbour_penalties(self, grid: Grid, row: int, col: int) -> dict[str, float]:
        """Penalty per tile id already placed near ``(row, col)``."""
        penalties: dict[str, float] = {}
        rows = len(grid)
        for dr, dc, dist in self._offsets:
            r, c = row + dr, col + dc
            if not (0 <= r < rows and 0 <= c < len(grid[r])):
                continue
            placed = grid[r][c]
            if placed is None:
                continue
            penalties[placed.id] = penalties.get(placed.id, 0.0) + NEIGHBOUR_PENALTY / (dist + 1)
        return penalties

    def _at_cap(self, tile: Tile) -> bool:
        return self.config.max_usage > 0 and self.ledger[tile.id] >= self.config.max_usage

    def _score(self, tile: Tile, target: Sequence[float], penalties: dict[str, float]) -> float:
        score = lab_distance(tile.lab, target) + penalties.get(tile.id, 0.0)
        if self.config.max_usage > 0:
            score += self.ledger[tile.id] * USAGE_PENALTY
        return score

    def select(self, target: Sequence[float], grid: Grid, row: int, col: int) -> Tile:
        """Choose the tile for cell ``(row, col)`` given its CIELAB *target*.

        Cells must be visited in raster order; *grid* holds the tiles placed
        so far and ``None`` elsewhere.

        Raises:
            ExhaustionError: if no tile can be returned at all.
        """
        if self.config.spacing_radius and not self.config.persistent_exclusion:
            self.tree.unstale()

        penalties = self.neighbour_penalties(grid, row, col)
        best: tuple[float, int] | None = None
        rejected: list[int] = []
        try:
            for _ in range(MAX_ATTEMPTS):
                idx = self.engine.find_closest(target)
                tile = self.tree.tile(idx)
                if self._at_cap(tile):
                    self.tree.mark_stale(idx)
                    continue
                if tile.id not in penalties:
                    return self._accept(idx, rejected)
                score = self._score(tile, target, penalties)
                if best is None or score < best[0]:
                    best = (score, idx)
                self.tree.mark_stale(idx)
                rejected.append(idx)
        except ExhaustionError:
            if best is None:
                raise
            logger.debug("Cell (%d, %d): tree exhausted after %d rejections", row, col, len(rejected))

        return self._fallback(target, best, rejected, row, col)

    def _fallback(
        self,
        target: Sequence[float],
        best: tuple[float, int] | None,
        rejected: list[int],
        row: int,
        col: int,
    ) -> Tile:
        self.relaxed += 1
        if not self.config.persistent_exclusion:
            logger.warning(
                "Cell (%d, %d): no tile satisfies the spacing rule; using the nearest match",
                row, col,
            )
            self.tree.unstale()
            return self._accept(self.engine.find_closest(target), [])

        # Unstaling here would bring capped and consumed tiles back.
        for _ in range(FALLBACK_ATTEMPTS):
            try:
                idx = self.engine.find_closest(target)
            except ExhaustionError:
                break
            tile = self.tree.tile(idx)
            if not self._at_cap(tile):
                logger.warning(
                    "Cell (%d, %d): spacing rule relaxed, placing %s", row, col, tile.id,
                )
                return self._accept(idx, rejected)
            self.tree.mark_stale(idx)

        if best is None:
            msg = f"No tile left under its usage cap for cell ({row}, {col})"
            raise ExhaustionError(msg)
        tile = self.tree.tile(best[1])
        logger.warning(
            "Cell (%d, %d): no tile under its cap; reusing best-scored %s (score %.1f)",
            row, col, tile.id, best[0],
        )
        return self._accept(best[1], rejected)

    def _accept(self, idx: int, rejected: list[int]) -> Tile:
        tile = self.tree.tile(idx)
        self.ledger.record(tile.id)
        if self.config.persistent_exclusion:
            # Spacing rejections only apply to this cell.
            for other in rejected:
                self.tree.release(other)
        if self.config.consume_on_use:
            self.tree.mark_stale(idx)
        return tile
