"""Rich command-line interface powered by Typer."""

from __future__ import annotations

import logging
import time
from pathlib import Path

import numpy as np
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from picture_mosaic.cache import collect_images, load_or_build
from picture_mosaic.catalog import TileCatalog
from picture_mosaic.color_utils import mean_delta_e
from picture_mosaic.config import ConstraintConfig, MosaicConfig
from picture_mosaic.errors import ConfigurationError, MosaicError
from picture_mosaic.image_io import (
    compute_cell_size,
    load_image,
    make_comparison_grid,
    sample_cells,
    save_image,
)
from picture_mosaic.kd_index import KdIndex
from picture_mosaic.match_tree import MatchTree
from picture_mosaic.mosaic import build_mosaic, grid_colors, match_unconstrained
from picture_mosaic.render import render_mosaic

app = typer.Typer(
    name="picture-mosaic",
    help="Build photo mosaics from a directory of source images.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()
logger = logging.getLogger("picture_mosaic")

Index = MatchTree | KdIndex | TileCatalog


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=True)],
    )


def _make_config(
    blocks: int,
    seed: int | None,
    index: str,
    noise: float,
    consume: bool,
    adjacency_ban: bool,
    diversity_radius: int,
    max_usage: int,
    tint: int,
    padding: int,
    stroke: int,
    circle: bool,
    rebuild_cache: bool,
    comparison: bool,
) -> MosaicConfig:
    constraints = ConstraintConfig(
        adjacency_ban=adjacency_ban,
        diversity_radius=diversity_radius,
        max_usage=max_usage,
        consume_on_use=consume,
        noise_factor=min(1.0, max(0.0, noise)),
    )
    return MosaicConfig(
        blocks=blocks,
        seed=seed,
        index=index,
        constraints=constraints,
        tint=min(255, max(0, tint)),
        padding=padding,
        stroke=stroke,
        circle=circle,
        rebuild_cache=rebuild_cache,
        save_comparison=comparison,
    )


def _build_index(catalog: TileCatalog, cfg: MosaicConfig) -> Index:
    if cfg.index == "kd":
        return KdIndex(catalog)
    if cfg.index == "linear":
        if not len(catalog):
            raise ConfigurationError("Cannot match against an empty catalog")
        return catalog
    return MatchTree.build(catalog, cfg.constraints.noise_factor)


def _make_one(
    target_path: Path,
    output_path: Path,
    index: Index,
    cfg: MosaicConfig,
    rng: np.random.Generator,
) -> None:
    t_total = time.perf_counter()
    image = load_image(target_path)
    h, w = image.shape[:2]
    cell_size = compute_cell_size(w, h, cfg.blocks)
    cells = sample_cells(image, cfg.blocks)
    logger.info(
        "Target: %dx%d px  |  cell %dx%d px  |  %d cells",
        w, h, cell_size[0], cell_size[1], cfg.blocks * cfg.blocks,
    )

    if isinstance(index, MatchTree):
        grid, ledger = build_mosaic(cells, index, cfg.constraints, rng)
        logger.debug("Most used tiles: %s", ledger.most_common(5))
    else:
        grid = match_unconstrained(cells, index)

    canvas = render_mosaic(grid, cell_size, cfg)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    save_image(canvas, output_path)

    if cfg.save_comparison:
        comp_path = output_path.with_name(f"{output_path.stem}_comparison{output_path.suffix}")
        make_comparison_grid(target_path, cells, canvas, comp_path)

    err = mean_delta_e(cells, grid_colors(grid))
    console.print(
        f"  [green]✓[/green] {output_path.name}  "
        f"[dim]{canvas.width}x{canvas.height} px  ΔE={err:.1f}"
        f"  time={time.perf_counter() - t_total:.1f}s[/dim]"
    )


# Defaults come from MosaicConfig - single source of truth
_DEFAULTS = MosaicConfig()
_RULES = _DEFAULTS.constraints


# -- single-image command ----------------------------------------------

@app.command()
def single(
    target: Path = typer.Argument(..., help="Path to the target image"),
    tiles: Path = typer.Option(..., "--tiles", "-d", help="Folder with source images"),
    output: Path = typer.Option(Path("output/mosaic.png"), "--output", "-o"),
    blocks: int = typer.Option(_DEFAULTS.blocks, "--blocks", "-b", help="Tiles per row/column"),
    seed: int | None = typer.Option(_DEFAULTS.seed, "--seed", "-s", help="Noise seed"),
    index: str = typer.Option(_DEFAULTS.index, "--index", help="'tree', 'kd' or 'linear'"),
    noise: float = typer.Option(_RULES.noise_factor, "--noise", "-n", help="Noise chance [0, 1]"),
    consume: bool = typer.Option(_RULES.consume_on_use, "--consume/--reuse", help="Use every tile at most once"),
    adjacency_ban: bool = typer.Option(_RULES.adjacency_ban, "--adjacency-ban", help="No repeats among neighbours"),
    diversity_radius: int = typer.Option(_RULES.diversity_radius, "--diversity-radius", "-r"),
    max_usage: int = typer.Option(_RULES.max_usage, "--max-usage", help="Placements per tile (0 = unlimited)"),
    tint: int = typer.Option(_DEFAULTS.tint, "--tint", "-t", help="Average-colour overlay alpha [0, 255]"),
    padding: int = typer.Option(_DEFAULTS.padding, "--padding", "-p"),
    stroke: int = typer.Option(_DEFAULTS.stroke, "--stroke"),
    circle: bool = typer.Option(_DEFAULTS.circle, "--circle/--square"),
    rebuild_cache: bool = typer.Option(_DEFAULTS.rebuild_cache, "--rebuild-cache"),
    comparison: bool = typer.Option(_DEFAULTS.save_comparison, "--comparison/--no-comparison"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Build one mosaic of TARGET from the images in TILES."""
    _setup_logging(verbose)
    try:
        cfg = _make_config(
            blocks, seed, index, noise, consume, adjacency_ban, diversity_radius,
            max_usage, tint, padding, stroke, circle, rebuild_cache, comparison,
        )
        catalog = load_or_build(tiles, cfg, show_progress=True)
        mosaic_index = _build_index(catalog, cfg)
        _make_one(target, output, mosaic_index, cfg, np.random.default_rng(cfg.seed))
    except MosaicError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(1) from exc


# -- batch command -----------------------------------------------------

@app.command()
def batch(
    input_dir: Path = typer.Option(Path("images"), "--input", "-i", help="Folder with target images"),
    output_dir: Path = typer.Option(Path("output"), "--output", "-o", help="Results folder"),
    tiles: Path = typer.Option(..., "--tiles", "-d", help="Folder with source images"),
    blocks: int = typer.Option(_DEFAULTS.blocks, "--blocks", "-b"),
    seed: int | None = typer.Option(_DEFAULTS.seed, "--seed", "-s"),
    index: str = typer.Option(_DEFAULTS.index, "--index"),
    noise: float = typer.Option(_RULES.noise_factor, "--noise", "-n"),
    consume: bool = typer.Option(_RULES.consume_on_use, "--consume/--reuse"),
    adjacency_ban: bool = typer.Option(_RULES.adjacency_ban, "--adjacency-ban"),
    diversity_radius: int = typer.Option(_RULES.diversity_radius, "--diversity-radius", "-r"),
    max_usage: int = typer.Option(_RULES.max_usage, "--max-usage"),
    tint: int = typer.Option(_DEFAULTS.tint, "--tint", "-t"),
    padding: int = typer.Option(_DEFAULTS.padding, "--padding", "-p"),
    stroke: int = typer.Option(_DEFAULTS.stroke, "--stroke"),
    circle: bool = typer.Option(_DEFAULTS.circle, "--circle/--square"),
    rebuild_cache: bool = typer.Option(_DEFAULTS.rebuild_cache, "--rebuild-cache"),
    comparison: bool = typer.Option(_DEFAULTS.save_comparison, "--comparison/--no-comparison"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Build a mosaic for every image in INPUT_DIR, reusing one index."""
    _setup_logging(verbose)
    try:
        cfg = _make_config(
            blocks, seed, index, noise, consume, adjacency_ban, diversity_radius,
            max_usage, tint, padding, stroke, circle, rebuild_cache, comparison,
        )
        images = collect_images(input_dir, cfg.SUPPORTED_EXTENSIONS)
        if not images:
            console.print(f"\n[yellow]No images found in {input_dir}/[/yellow]")
            raise typer.Exit(0)

        catalog = load_or_build(tiles, cfg, show_progress=True)
        mosaic_index = _build_index(catalog, cfg)
        rng = np.random.default_rng(cfg.seed)

        console.print(Panel.fit(
            f"[bold]PICTURE MOSAIC[/bold]\n"
            f"Grid: {cfg.blocks}x{cfg.blocks}  |  Tiles: {len(catalog)}  |  Index: {cfg.index}\n"
            f"Images: {len(images)}",
            border_style="cyan",
        ))

        for idx, img_path in enumerate(images, 1):
            console.rule(f"[bold cyan][{idx}/{len(images)}] {img_path.name}[/bold cyan]")
            _make_one(img_path, output_dir / f"{img_path.stem}_mosaic.png", mosaic_index, cfg, rng)
    except MosaicError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(1) from exc

    console.print(Panel.fit(
        f"[bold green]ALL DONE[/bold green] - results in [bold]{output_dir}/[/bold]",
        border_style="green",
    ))


# -- cache command -----------------------------------------------------

@app.command()
def cache(
    tiles: Path = typer.Option(..., "--tiles", "-d", help="Folder with source images"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Rescan TILES and rewrite its colour cache."""
    _setup_logging(verbose)
    try:
        catalog = load_or_build(tiles, MosaicConfig(rebuild_cache=True), show_progress=True)
    except MosaicError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(1) from exc
    console.print(f"[green]✓[/green] Cached {len(catalog)} tiles in {tiles / _DEFAULTS.cache_name}")


if __name__ == "__main__":
    app()
