"""Centralised configuration via frozen dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field

from picture_mosaic.errors import ConfigurationError

INDEX_KINDS = ("tree", "kd", "linear")


@dataclass(frozen=True)
class ConstraintConfig:
    """Placement rules applied while matching cells to tiles.

    Attributes:
        adjacency_ban:    No tile may repeat in a directly adjacent (up/down/left/right) cell.
        diversity_radius: Euclidean cell radius inside which ids may not repeat (0 = off).
        max_usage:        Placements allowed per tile over the whole mosaic (0 = unlimited).
        consume_on_use:   Every tile can be placed at most once.
        noise_factor:     Probability of taking the left branch blindly during descent.
    """

    adjacency_ban: bool = False
    diversity_radius: int = 0
    max_usage: int = 0
    consume_on_use: bool = False
    noise_factor: float = 0.0

    def __post_init__(self) -> None:
        if self.diversity_radius < 0:
            msg = f"diversity_radius must be >= 0, got {self.diversity_radius}"
            raise ConfigurationError(msg)
        if self.max_usage < 0:
            msg = f"max_usage must be >= 0, got {self.max_usage}"
            raise ConfigurationError(msg)
        if not 0.0 <= self.noise_factor <= 1.0:
            msg = f"noise_factor must lie in [0, 1], got {self.noise_factor}"
            raise ConfigurationError(msg)

    @property
    def spacing_radius(self) -> int:
        """Neighbourhood radius checked for repeated ids (0 = no spatial check)."""
        if self.adjacency_ban:
            return max(1, self.diversity_radius)
        return self.diversity_radius

    @property
    def persistent_exclusion(self) -> bool:
        """True when excluded tiles must stay excluded for the rest of the run."""
        return self.max_usage > 0 or self.consume_on_use

    @property
    def is_unconstrained(self) -> bool:
        return not (self.spacing_radius or self.persistent_exclusion)


@dataclass(frozen=True)
class MosaicConfig:
    """All tuneable parameters for a mosaic run.

    Attributes:
        blocks:          Tiles per row and per column of the mosaic.
        seed:            Seed for the noise generator (None = non-deterministic).
        index:           "tree" (constraint aware), "kd" or "linear" (unconstrained).
        constraints:     Placement rules, see :class:`ConstraintConfig`.
        tint:            Alpha of the average-colour overlay drawn on each tile (0-255).
        padding:         Pixels left empty around each tile inside its cell.
        stroke:          Outline width drawn in the tile's average colour (0 = none).
        circle:          Clip tiles to ellipses instead of rectangles.
        cache_name:      File name of the tile cache inside the tile directory.
        rebuild_cache:   Rescan the tile directory even if a cache exists.
        save_comparison: Write an Original | Cells | Mosaic comparison image.
    """

    # Grid
    blocks: int = 50

    # Matching
    seed: int | None = None
    index: str = "tree"
    constraints: ConstraintConfig = field(default_factory=ConstraintConfig)

    # Rendering
    tint: int = 0
    padding: int = 0
    stroke: int = 0
    circle: bool = False

    # Tile cache
    cache_name: str = "imageCache.csv"
    rebuild_cache: bool = False

    # Output
    save_comparison: bool = False

    SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(
        {".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".tif", ".webp", ".jfif"}
    )

    def __post_init__(self) -> None:
        if self.blocks < 1:
            msg = f"blocks must be >= 1, got {self.blocks}"
            raise ConfigurationError(msg)
        if self.index not in INDEX_KINDS:
            msg = f"Unknown index {self.index!r}; expected one of {', '.join(INDEX_KINDS)}"
            raise ConfigurationError(msg)
        if self.index != "tree" and not self.constraints.is_unconstrained:
            msg = f"The {self.index!r} index cannot apply placement constraints; use 'tree'"
            raise ConfigurationError(msg)
        if self.index != "tree" and self.constraints.noise_factor > 0:
            msg = f"The {self.index!r} index has no noise mode; use 'tree' or --noise 0"
            raise ConfigurationError(msg)
        if not 0 <= self.tint <= 255:
            msg = f"tint must lie in [0, 255], got {self.tint}"
            raise ConfigurationError(msg)
        if self.padding < 0 or self.stroke < 0:
            msg = "padding and stroke must be >= 0"
            raise ConfigurationError(msg)
