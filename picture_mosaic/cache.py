"""Tile catalog persistence: directory scan and the CSV colour cache.

The cache holds one ``id,r,g,b,path`` row per source image, with no header.
Scanning a large directory is slow, so the cache is reused until a rebuild is
requested; whether it is stale is left to the caller.
"""

from __future__ import annotations

import csv
import logging
import time
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError
from rich.progress import track

from picture_mosaic.catalog import Record, TileCatalog
from picture_mosaic.config import MosaicConfig
from picture_mosaic.errors import ConfigurationError
from picture_mosaic.image_io import average_rgb

logger = logging.getLogger(__name__)


def collect_images(folder: Path, extensions: frozenset[str]) -> list[Path]:
    if not folder.exists():
        return []
    return sorted(
        f for f in folder.iterdir()
        if f.is_file() and f.suffix.lower() in extensions
    )


def scan_directory(
    folder: str | Path,
    extensions: frozenset[str] = MosaicConfig.SUPPORTED_EXTENSIONS,
    show_progress: bool = False,
) -> TileCatalog:
    """Average every image in *folder* into a tile.

    Ids are the image's position in sorted file order. Files that cannot be
    decoded are skipped with a warning.

    Raises:
        ConfigurationError: if *folder* is not a directory.
    """
    folder = Path(folder)
    if not folder.is_dir():
        msg = f"Tile directory does not exist or is not a directory: {folder}"
        raise ConfigurationError(msg)

    files = collect_images(folder, extensions)
    logger.info("Analysing %d images in %s …", len(files), folder)
    t0 = time.perf_counter()

    records: list[Record] = []
    iterator = track(files, description="Analysing tiles") if show_progress else files
    for i, path in enumerate(iterator):
        try:
            with Image.open(path) as img:
                rgb = average_rgb(np.asarray(img.convert("RGB")))
        except (UnidentifiedImageError, OSError) as exc:
            logger.warning("Failed to process %s: %s", path.name, exc)
            continue
        records.append((str(i), *rgb, str(path)))

    logger.info("Scanned %d tiles  (%.1f s)", len(records), time.perf_counter() - t0)
    return TileCatalog.from_records(records)


def save_cache(catalog: TileCatalog, path: str | Path) -> None:
    path = Path(path)
    with path.open("w", newline="", encoding="utf-8") as stream:
        csv.writer(stream).writerows(catalog.to_records())
    logger.info("Tile cache saved: %s (%d tiles)", path, len(catalog))


def load_cache(path: str | Path) -> TileCatalog:
    """Read a CSV tile cache.

    Raises:
        ConfigurationError: if the file is unreadable or any row is malformed.
    """
    path = Path(path)
    records: list[Record] = []
    try:
        with path.open(newline="", encoding="utf-8") as stream:
            for lineno, row in enumerate(csv.reader(stream), 1):
                if not row or not "".join(row).strip():
                    continue
                records.append(_parse_row(row, path, lineno))
    except OSError as exc:
        msg = f"Cannot read tile cache {path}: {exc}"
        raise ConfigurationError(msg) from exc
    except csv.Error as exc:
        msg = f"{path}: malformed CSV: {exc}"
        raise ConfigurationError(msg) from exc
    return TileCatalog.from_records(records)


def _parse_row(row: list[str], path: Path, lineno: int) -> Record:
    if len(row) < 5:
        msg = f"{path}:{lineno}: expected 'id,r,g,b,path', got {len(row)} fields"
        raise ConfigurationError(msg)
    tile_id = row[0].strip()
    if not tile_id:
        msg = f"{path}:{lineno}: empty tile id"
        raise ConfigurationError(msg)
    try:
        r, g, b = (int(v) for v in row[1:4])
    except ValueError as exc:
        msg = f"{path}:{lineno}: colour channels must be integers"
        raise ConfigurationError(msg) from exc
    if not all(0 <= c <= 255 for c in (r, g, b)):
        msg = f"{path}:{lineno}: colour channels must lie in [0, 255]"
        raise ConfigurationError(msg)
    # Unquoted paths containing commas were split by the reader.
    return tile_id, r, g, b, ",".join(row[4:])


def load_or_build(
    folder: str | Path,
    cfg: MosaicConfig,
    show_progress: bool = False,
) -> TileCatalog:
    """Return the catalog for *folder*, rescanning when the cache is missing or a rebuild is requested."""
    folder = Path(folder)
    cache_path = folder / cfg.cache_name
    if cache_path.exists() and not cfg.rebuild_cache:
        catalog = load_cache(cache_path)
        logger.info("Tile cache loaded: %s (%d tiles)", cache_path, len(catalog))
        return catalog

    catalog = scan_directory(folder, cfg.SUPPORTED_EXTENSIONS, show_progress)
    save_cache(catalog, cache_path)
    return catalog
