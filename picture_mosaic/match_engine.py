"""Staleness-aware nearest-match descent over a :class:`MatchTree`."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from picture_mosaic.catalog import Tile
from picture_mosaic.color_utils import perceptual
from picture_mosaic.errors import ExhaustionError
from picture_mosaic.match_tree import MatchTree


class MatchEngine:
    """Answers "which tile is closest to this colour" while skipping stale nodes.

    Args:
        tree: The match tree to descend. Its ``noise_factor`` controls the
            chance of a blind left step at each fork.
        rng:  Random source for the noise; pass a seeded generator for
            reproducible output.
    """

    def __init__(self, tree: MatchTree, rng: np.random.Generator | None = None) -> None:
        self.tree = tree
        self.rng = rng if rng is not None else np.random.default_rng()

    def find_closest(self, target: Sequence[float]) -> int:
        """Return the arena index of the matching leaf for a CIELAB *target*.

        Nodes whose children are both stale are marked stale themselves and
        the walk backs up to the parent, so exhaustion spreads upward only as
        it is discovered.

        Raises:
            ExhaustionError: when every leaf is stale.
        """
        tree = self.tree
        nodes = tree.nodes
        idx = tree.root
        if nodes[idx].is_leaf and nodes[idx].stale:
            raise ExhaustionError("We ran out of tiles: every source image is excluded")

        while not nodes[idx].is_leaf:
            node = nodes[idx]
            left_stale = nodes[node.left].stale
            right_stale = nodes[node.right].stale

            if left_stale and right_stale:
                if idx == tree.root:
                    raise ExhaustionError("We ran out of tiles: every source image is excluded")
                node.stale = True
                idx = node.parent
            elif right_stale:
                idx = node.left
            elif left_stale:
                idx = node.right
            elif self.rng.random() < tree.noise_factor:
                idx = node.left
            else:
                idx = tree.closer(node.left, node.right, target)
        return idx

    def closest_tile(self, rgb: Sequence[int]) -> Tile:
        """Convenience wrapper: match an RGB colour and return the tile."""
        return self.tree.tile(self.find_closest(perceptual(rgb)))

    def unstale(self) -> None:
        self.tree.unstale()
