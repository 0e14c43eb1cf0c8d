"""Source tiles and the ordered catalog the indexes are built from."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

import numpy as np

from picture_mosaic.color_utils import RGB, Lab, compute_distance_matrix, perceptual, rgb_to_lab
from picture_mosaic.errors import ExhaustionError

Record = tuple[str, int, int, int, str]


@dataclass(frozen=True)
class Tile:
    """A source image reduced to its average colour.

    Attributes:
        id:   Catalog identifier (synthetic tiles join their children's ids with ",").
        path: Image file the tile is drawn from ("" for synthetic tiles).
        rgb:  Average colour, 0-255 per channel.
        lab:  CIELAB coordinates derived from *rgb*.
    """

    id: str
    path: str
    rgb: RGB
    lab: Lab

    @classmethod
    def from_rgb(cls, tile_id: str, path: str, rgb: Sequence[int]) -> Tile:
        r, g, b = (int(c) for c in rgb)
        return cls(tile_id, path, (r, g, b), perceptual((r, g, b)))

    def to_record(self) -> Record:
        return (self.id, *self.rgb, self.path)


def merge(left: Tile, right: Tile) -> Tile:
    """Aggregate two tiles: integer mean of their RGB, ids joined by a comma."""
    rgb = tuple((a + b) // 2 for a, b in zip(left.rgb, right.rgb, strict=True))
    return Tile.from_rgb(f"{left.id},{right.id}", "", rgb)


class TileCatalog(Sequence[Tile]):
    """Ordered, immutable collection of candidate tiles.

    Order matters: the match tree is built by inserting tiles in catalog
    order. The catalog doubles as the brute-force linear-scan matcher.
    """

    def __init__(self, tiles: Iterable[Tile] = ()) -> None:
        self._tiles: tuple[Tile, ...] = tuple(tiles)
        self._labs = np.array([t.lab for t in self._tiles], dtype=np.float64).reshape(-1, 3)

    @classmethod
    def from_records(cls, records: Iterable[Record]) -> TileCatalog:
        """Build tiles from ``(id, r, g, b, path)`` rows, converting colours in one batch."""
        records = list(records)
        rgb = np.array([r[1:4] for r in records], dtype=np.uint8).reshape(-1, 3)
        labs = rgb_to_lab(rgb)
        tiles = (
            Tile(str(tile_id), str(path), (int(r), int(g), int(b)), tuple(float(v) for v in lab))
            for (tile_id, r, g, b, path), lab in zip(records, labs, strict=True)
        )
        return cls(tiles)

    def __len__(self) -> int:
        return len(self._tiles)

    def __getitem__(self, index):  # type: ignore[override]
        return self._tiles[index]

    def __iter__(self) -> Iterator[Tile]:
        return iter(self._tiles)

    def __repr__(self) -> str:
        return f"TileCatalog({len(self)} tiles)"

    @property
    def labs(self) -> np.ndarray:
        """(N, 3) CIELAB matrix in catalog order."""
        return self._labs

    def to_records(self) -> list[Record]:
        return [t.to_record() for t in self._tiles]

    def find_nearest(self, target: Sequence[float]) -> Tile:
        """Linear scan for the tile closest to *target* (first one wins ties)."""
        return self._tiles[int(self.nearest_indices(np.asarray([target]))[0])]

    def nearest_indices(self, targets: np.ndarray) -> np.ndarray:
        """Catalog index of the nearest tile for every row of (K, 3) CIELAB *targets*."""
        if not self._tiles:
            raise ExhaustionError("The tile catalog is empty")
        return np.argmin(compute_distance_matrix(targets, self._labs), axis=1)
