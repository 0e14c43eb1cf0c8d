"""Agglomerative binary match tree over the tile catalog.

Tiles are inserted one at a time in catalog order. Each new tile walks down
from the root, always stepping into the child whose aggregate colour is
closer, and is paired with the leaf it reaches. Only that new internal node
gets an aggregate; ancestors above the insertion point keep the aggregate
they were created with, so on deep trees their colours no longer describe
their whole subtree. Balance is not guaranteed and depends on catalog order.

Nodes live in a flat arena list and refer to each other, parent links
included, by index.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from picture_mosaic.catalog import Tile, merge
from picture_mosaic.color_utils import lab_distance
from picture_mosaic.errors import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Node(Generic[T]):
    """Arena node; ``left``, ``right`` and ``parent`` are arena indices."""

    content: T
    left: int | None = None
    right: int | None = None
    parent: int | None = None
    stale: bool = False

    @property
    def is_leaf(self) -> bool:
        return self.left is None and self.right is None


class MatchTree:
    """Full binary tree of tiles with per-node staleness flags.

    Attributes:
        nodes:        Node arena; index 0 is not necessarily the root.
        root:         Arena index of the root node.
        noise_factor: Probability in [0, 1] of a blind left step during descent.
    """

    def __init__(self, nodes: list[Node[Tile]], root: int, noise_factor: float = 0.0) -> None:
        self.nodes = nodes
        self.root = root
        self.noise_factor = noise_factor

    @classmethod
    def build(cls, tiles: Iterable[Tile], noise_factor: float = 0.0) -> MatchTree:
        """Grow the tree from *tiles* in iteration order.

        Raises:
            ConfigurationError: if *tiles* is empty.
        """
        tiles = list(tiles)
        if not tiles:
            raise ConfigurationError("Cannot build a match tree from an empty catalog")

        t0 = time.perf_counter()
        tree = cls([], 0, noise_factor)
        if len(tiles) == 1:
            tree.root = tree._add(Node(tiles[0]))
            return tree

        tree.root = tree._add(Node(merge(tiles[0], tiles[1])))
        tree._split(tree.root, tiles[0], tiles[1])

        for tile in tiles[2:]:
            idx = tree.root
            while not tree.nodes[idx].is_leaf:
                node = tree.nodes[idx]
                idx = tree.closer(node.left, node.right, tile.lab)
            leaf = tree.nodes[idx]
            original = leaf.content
            tree._split(idx, original, tile)
            leaf.content = merge(original, tile)

        logger.info(
            "Match tree ready: %d tiles, %d nodes, depth %d  (%.2f s)",
            len(tiles), len(tree.nodes), tree.depth(), time.perf_counter() - t0,
        )
        return tree

    def _add(self, node: Node[Tile]) -> int:
        self.nodes.append(node)
        return len(self.nodes) - 1

    def _split(self, idx: int, left: Tile, right: Tile) -> None:
        node = self.nodes[idx]
        node.left = self._add(Node(left, parent=idx))
        node.right = self._add(Node(right, parent=idx))

    # -- queries -------------------------------------------------------

    def closer(self, a: int, b: int, target: Sequence[float]) -> int:
        """Return whichever of nodes *a* and *b* is nearer *target*; ties go to *b*."""
        da = lab_distance(self.nodes[a].content.lab, target)
        db = lab_distance(self.nodes[b].content.lab, target)
        return a if da < db else b

    def tile(self, idx: int) -> Tile:
        return self.nodes[idx].content

    def leaves(self) -> Iterator[int]:
        """Arena indices of all leaves."""
        return (i for i, node in enumerate(self.nodes) if node.is_leaf)

    def depth(self) -> int:
        """Number of edges on the longest root-to-leaf path."""
        deepest = 0
        stack = [(self.root, 0)]
        while stack:
            idx, d = stack.pop()
            node = self.nodes[idx]
            if node.is_leaf:
                deepest = max(deepest, d)
                continue
            stack.append((node.left, d + 1))
            stack.append((node.right, d + 1))
        return deepest

    def __len__(self) -> int:
        """Number of leaves (catalog tiles)."""
        return (len(self.nodes) + 1) // 2

    # -- staleness -----------------------------------------------------

    def is_stale(self, idx: int) -> bool:
        return self.nodes[idx].stale

    def mark_stale(self, idx: int) -> None:
        self.nodes[idx].stale = True

    def release(self, idx: int) -> None:
        """Clear the stale flag on *idx* and every ancestor.

        An internal node is only ever marked stale once both its children
        were found stale, so a live descendant means the flag must go.
        """
        current: int | None = idx
        while current is not None:
            node = self.nodes[current]
            node.stale = False
            current = node.parent

    def unstale(self) -> None:
        """Clear every stale flag in the tree."""
        for node in self.nodes:
            node.stale = False
