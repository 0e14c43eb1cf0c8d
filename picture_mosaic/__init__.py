"""
Picture Mosaic
==============

Rebuild a target image as a grid of small photos whose average colours
match each grid cell. Ships three matchers:

- **Match tree** (agglomerative, supports adjacency bans, diversity
  radius, usage caps and single use)
- **k-d index** (balanced, branch-and-bound, unconstrained)
- **Linear scan** (brute force, unconstrained)
"""

__version__ = "1.0.0"

from picture_mosaic.cache import load_cache, load_or_build, save_cache, scan_directory
from picture_mosaic.catalog import Tile, TileCatalog
from picture_mosaic.color_utils import lab_distance, perceptual, rgb_distance, rgb_to_lab
from picture_mosaic.config import ConstraintConfig, MosaicConfig
from picture_mosaic.errors import ConfigurationError, ExhaustionError, MosaicError
from picture_mosaic.kd_index import KdIndex
from picture_mosaic.match_engine import MatchEngine
from picture_mosaic.match_tree import MatchTree, Node
from picture_mosaic.mosaic import build_mosaic, match_unconstrained
from picture_mosaic.render import render_mosaic
from picture_mosaic.selector import ConstraintSelector, UsageLedger

__all__ = [
    "ConfigurationError",
    "ConstraintConfig",
    "ConstraintSelector",
    "ExhaustionError",
    "KdIndex",
    "MatchEngine",
    "MatchTree",
    "MosaicConfig",
    "MosaicError",
    "Node",
    "Tile",
    "TileCatalog",
    "UsageLedger",
    "build_mosaic",
    "lab_distance",
    "load_cache",
    "load_or_build",
    "match_unconstrained",
    "perceptual",
    "render_mosaic",
    "rgb_distance",
    "rgb_to_lab",
    "save_cache",
    "scan_directory",
]
