"""Balanced k-d index over tile colours in CIELAB.

Splits on L, a and b in turn, taking the median tile at each level. Answers
unconstrained nearest-match queries only: it has no notion of staleness, so
adjacency bans, usage caps and consumption need the match tree instead.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

from picture_mosaic.catalog import Tile
from picture_mosaic.color_utils import lab_distance
from picture_mosaic.errors import ConfigurationError
from picture_mosaic.match_tree import Node

DIMENSIONS = 3


class KdIndex:
    def __init__(self, tiles: Iterable[Tile]) -> None:
        tiles = list(tiles)
        if not tiles:
            raise ConfigurationError("Cannot build a k-d index from an empty catalog")
        self.nodes: list[Node[Tile]] = []
        self.root = self._build(tiles)

    def _build(self, tiles: list[Tile]) -> int:
        # Work list of (tiles, depth, parent index, attach to left?)
        root = -1
        work: list[tuple[list[Tile], int, int | None, bool]] = [(tiles, 0, None, False)]
        while work:
            subset, depth, parent, is_left = work.pop()
            axis = depth % DIMENSIONS
            subset = sorted(subset, key=lambda t: t.lab[axis])
            median = len(subset) // 2

            self.nodes.append(Node(subset[median], parent=parent))
            idx = len(self.nodes) - 1
            if parent is None:
                root = idx
            elif is_left:
                self.nodes[parent].left = idx
            else:
                self.nodes[parent].right = idx

            if median > 0:
                work.append((subset[:median], depth + 1, idx, True))
            if median + 1 < len(subset):
                work.append((subset[median + 1:], depth + 1, idx, False))
        return root

    def __len__(self) -> int:
        return len(self.nodes)

    def find_nearest(self, target: Sequence[float]) -> Tile:
        """Nearest tile to a CIELAB *target* by squared distance.

        The farther side of a split is visited only when the squared offset
        from the target to the splitting plane is below the best distance
        found so far.
        """
        best_idx = self.root
        best = math.inf
        # (node, depth, squared offset to the plane that led here)
        stack: list[tuple[int, int, float]] = [(self.root, 0, 0.0)]
        while stack:
            idx, depth, bound = stack.pop()
            if bound >= best:
                continue
            node = self.nodes[idx]
            lab = node.content.lab
            d = lab_distance(lab, target)
            if d < best:
                best, best_idx = d, idx

            axis = depth % DIMENSIONS
            offset = target[axis] - lab[axis]
            near, far = (node.left, node.right) if offset < 0 else (node.right, node.left)
            # Near side is pushed last so it is fully explored before far is checked.
            if far is not None:
                stack.append((far, depth + 1, offset * offset))
            if near is not None:
                stack.append((near, depth + 1, 0.0))
        return self.nodes[best_idx].content
