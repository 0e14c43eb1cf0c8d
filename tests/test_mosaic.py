"""Tests for configuration, the tile cache, imaging, rendering and the CLI."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from PIL import Image
from typer.testing import CliRunner

from picture_mosaic.cache import load_cache, load_or_build, save_cache, scan_directory
from picture_mosaic.catalog import Tile
from picture_mosaic.cli import app
from picture_mosaic.config import ConstraintConfig, MosaicConfig
from picture_mosaic.errors import ConfigurationError, MosaicError
from picture_mosaic.image_io import (
    average_rgb,
    compute_cell_size,
    load_image,
    make_comparison_grid,
    sample_cells,
)
from picture_mosaic.render import TileImageCache, render_mosaic

RED = (200, 30, 30)
GREEN = (30, 200, 30)
BLUE = (30, 30, 200)
WHITE_RGBA = (255, 255, 255, 255)

runner = CliRunner()

# -- Fixtures ----------------------------------------------------------


def _solid(path: Path, rgb: tuple[int, int, int], size: tuple[int, int] = (8, 8)) -> Path:
    Image.new("RGB", size, rgb).save(path)
    return path


@pytest.fixture
def tile_dir(tmp_path: Path) -> Path:
    """Three solid tiles, one corrupt image (sorted third) and one non-image file."""
    folder = tmp_path / "tiles"
    folder.mkdir()
    _solid(folder / "a.png", RED)
    _solid(folder / "b.png", GREEN)
    _solid(folder / "c.png", BLUE)
    (folder / "broken.png").write_bytes(b"definitely not a png")
    (folder / "notes.txt").write_text("ignored")
    return folder


@pytest.fixture
def target_image(tmp_path: Path) -> Path:
    """32x32 target split into red, green, blue and red quadrants."""
    arr = np.zeros((32, 32, 3), dtype=np.uint8)
    arr[:16, :16] = RED
    arr[:16, 16:] = GREEN
    arr[16:, :16] = BLUE
    arr[16:, 16:] = RED
    p = tmp_path / "target.png"
    Image.fromarray(arr).save(p)
    return p


def _tile(tile_id: str, rgb: tuple[int, int, int], path: str = "missing.png") -> Tile:
    return Tile.from_rgb(tile_id, path, rgb)


# -- Config ------------------------------------------------------------

class TestConfig:
    def test_defaults(self) -> None:
        cfg = MosaicConfig()
        assert cfg.blocks == 50
        assert cfg.index == "tree"
        assert cfg.cache_name == "imageCache.csv"
        assert cfg.constraints.is_unconstrained

    def test_frozen(self) -> None:
        cfg = MosaicConfig()
        with pytest.raises(AttributeError):
            cfg.blocks = 10  # type: ignore[misc]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"blocks": 0},
            {"index": "octree"},
            {"tint": 256},
            {"padding": -1},
            {"stroke": -2},
        ],
    )
    def test_invalid_values(self, kwargs: dict) -> None:
        with pytest.raises(ConfigurationError):
            MosaicConfig(**kwargs)

    def test_kd_index_rejects_constraints(self) -> None:
        with pytest.raises(ConfigurationError, match="cannot apply placement constraints"):
            MosaicConfig(index="kd", constraints=ConstraintConfig(adjacency_ban=True))

    @pytest.mark.parametrize("index", ["kd", "linear"])
    def test_unconstrained_index_rejects_noise(self, index: str) -> None:
        with pytest.raises(ConfigurationError, match="no noise mode"):
            MosaicConfig(index=index, constraints=ConstraintConfig(noise_factor=0.5))

    def test_linear_index_without_constraints(self) -> None:
        assert MosaicConfig(index="linear").index == "linear"

    def test_errors_share_base(self) -> None:
        with pytest.raises(MosaicError):
            MosaicConfig(blocks=-3)
        with pytest.raises(ValueError):
            MosaicConfig(blocks=-3)


# -- Tile cache --------------------------------------------------------

class TestCache:
    def test_scan_skips_unreadable_and_foreign_files(self, tile_dir: Path) -> None:
        catalog = scan_directory(tile_dir)
        assert [t.id for t in catalog] == ["0", "1", "3"]
        assert [t.rgb for t in catalog] == [RED, GREEN, BLUE]
        assert Path(catalog[0].path).name == "a.png"

    def test_scan_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="does not exist"):
            scan_directory(tmp_path / "nowhere")

    def test_save_and_load(self, tile_dir: Path, tmp_path: Path) -> None:
        catalog = scan_directory(tile_dir)
        cache_path = tmp_path / "cache.csv"
        save_cache(catalog, cache_path)
        loaded = load_cache(cache_path)
        assert loaded.to_records() == catalog.to_records()
        np.testing.assert_allclose(loaded.labs, catalog.labs)

    def test_cache_rows_have_no_header(self, tile_dir: Path, tmp_path: Path) -> None:
        cache_path = tmp_path / "cache.csv"
        save_cache(scan_directory(tile_dir), cache_path)
        first = cache_path.read_text(encoding="utf-8").splitlines()[0]
        assert first.startswith("0,200,30,30,")

    def test_blank_lines_ignored(self, tmp_path: Path) -> None:
        cache_path = tmp_path / "cache.csv"
        cache_path.write_text("7,1,2,3,x.png\n\n8,4,5,6,y.png\n", encoding="utf-8")
        catalog = load_cache(cache_path)
        assert [t.id for t in catalog] == ["7", "8"]
        assert catalog[1].rgb == (4, 5, 6)

    def test_unquoted_path_with_comma(self, tmp_path: Path) -> None:
        cache_path = tmp_path / "cache.csv"
        cache_path.write_text("0,1,2,3,/photos/a,b.png\n", encoding="utf-8")
        assert load_cache(cache_path)[0].path == "/photos/a,b.png"

    @pytest.mark.parametrize(
        "row",
        [
            "0,1,2,a.png",        # too few fields
            ",1,2,3,a.png",       # empty id
            "0,red,2,3,a.png",    # non-numeric channel
            "0,1,2,300,a.png",    # out of range
        ],
    )
    def test_malformed_rows(self, tmp_path: Path, row: str) -> None:
        cache_path = tmp_path / "cache.csv"
        cache_path.write_text(row + "\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_cache(cache_path)

    def test_missing_cache_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Cannot read tile cache"):
            load_cache(tmp_path / "absent.csv")

    def test_load_or_build_reuses_cache(self, tile_dir: Path) -> None:
        cfg = MosaicConfig()
        first = load_or_build(tile_dir, cfg)
        assert (tile_dir / cfg.cache_name).is_file()

        # A new image only shows up after a rebuild.
        _solid(tile_dir / "d.png", (90, 90, 90))
        assert len(load_or_build(tile_dir, cfg)) == len(first)
        assert len(load_or_build(tile_dir, MosaicConfig(rebuild_cache=True))) == len(first) + 1


# -- Image I/O ---------------------------------------------------------

class TestImageIO:
    def test_average_rgb_rounds(self) -> None:
        pixels = np.array([[[0, 0, 0], [1, 2, 255]]], dtype=np.uint8)
        assert average_rgb(pixels) == (0, 1, 128)

    def test_sample_cells_quadrants(self, target_image: Path) -> None:
        cells = sample_cells(load_image(target_image), 2)
        assert cells.shape == (2, 2, 3)
        assert cells.dtype == np.uint8
        assert tuple(cells[0, 0]) == RED
        assert tuple(cells[0, 1]) == GREEN
        assert tuple(cells[1, 0]) == BLUE
        assert tuple(cells[1, 1]) == RED

    def test_sample_cells_ignores_leftover_pixels(self) -> None:
        image = np.zeros((5, 5, 3), dtype=np.uint8)
        image[4, :] = 255
        image[:, 4] = 255
        cells = sample_cells(image, 2)
        assert np.all(cells == 0)

    def test_cell_size(self) -> None:
        assert compute_cell_size(1920, 1080, 50) == (38, 21)

    def test_image_too_small(self) -> None:
        with pytest.raises(ConfigurationError, match="too small"):
            compute_cell_size(10, 40, 20)

    def test_load_missing(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="does not exist"):
            load_image(tmp_path / "nope.png")

    def test_load_unreadable(self, tmp_path: Path) -> None:
        p = tmp_path / "bad.png"
        p.write_bytes(b"garbage")
        with pytest.raises(ConfigurationError, match="Failed to read"):
            load_image(p)

    def test_comparison_grid(self, target_image: Path, tmp_path: Path) -> None:
        cells = sample_cells(load_image(target_image), 2)
        mosaic = Image.new("RGBA", (20, 20), WHITE_RGBA)
        out = tmp_path / "comparison.png"
        make_comparison_grid(target_image, cells, mosaic, out)
        with Image.open(out) as img:
            assert img.size == (3 * 20 + 2 * 8, 20 + 36)


# -- Rendering ---------------------------------------------------------

class TestRender:
    def test_canvas_size(self) -> None:
        grid = [[_tile("A", RED)] * 3, [_tile("B", BLUE)] * 3]
        canvas = render_mosaic(grid, (4, 5), MosaicConfig(tint=255))
        assert canvas.size == (12, 10)
        assert canvas.mode == "RGBA"

    def test_full_tint_paints_average_colour(self) -> None:
        grid = [[_tile("A", RED), _tile("B", BLUE)]]
        canvas = render_mosaic(grid, (6, 6), MosaicConfig(tint=255))
        assert canvas.getpixel((2, 2)) == (*RED, 255)
        assert canvas.getpixel((8, 3)) == (*BLUE, 255)

    def test_tile_image_is_drawn(self, tmp_path: Path) -> None:
        path = _solid(tmp_path / "g.png", GREEN, size=(3, 3))
        canvas = render_mosaic([[_tile("G", GREEN, str(path))]], (10, 10), MosaicConfig())
        assert canvas.getpixel((5, 5)) == (*GREEN, 255)

    def test_padding_leaves_border_white(self) -> None:
        canvas = render_mosaic([[_tile("A", RED)]], (10, 10), MosaicConfig(padding=2))
        assert canvas.getpixel((0, 0)) == WHITE_RGBA
        assert canvas.getpixel((1, 5)) == WHITE_RGBA
        assert canvas.getpixel((5, 5)) == (*RED, 255)

    def test_circle_keeps_corners_white(self) -> None:
        canvas = render_mosaic([[_tile("A", RED)]], (20, 20), MosaicConfig(circle=True))
        assert canvas.getpixel((0, 0)) == WHITE_RGBA
        assert canvas.getpixel((19, 19)) == WHITE_RGBA
        assert canvas.getpixel((10, 10)) == (*RED, 255)

    def test_missing_image_falls_back_to_flat_fill(self) -> None:
        images = TileImageCache((4, 4))
        img = images.get(_tile("A", RED, "/no/such/file.png"))
        assert img.size == (4, 4)
        assert img.getpixel((1, 1)) == (*RED, 255)
        assert images.missing == 1

        # Cached per path: not counted twice.
        images.get(_tile("A", RED, "/no/such/file.png"))
        assert images.missing == 1


# -- CLI ---------------------------------------------------------------

class TestCli:
    def test_single_writes_mosaic_and_cache(
        self, tile_dir: Path, target_image: Path, tmp_path: Path,
    ) -> None:
        out = tmp_path / "out" / "mosaic.png"
        result = runner.invoke(app, [
            "single", str(target_image),
            "--tiles", str(tile_dir),
            "--output", str(out),
            "--blocks", "4",
            "--seed", "1",
            "--comparison",
        ])
        assert result.exit_code == 0, result.output
        assert (tile_dir / "imageCache.csv").is_file()
        with Image.open(out) as img:
            assert img.size == (32, 32)
        assert (out.parent / "mosaic_comparison.png").is_file()

    def test_single_with_constraints(
        self, tile_dir: Path, target_image: Path, tmp_path: Path,
    ) -> None:
        out = tmp_path / "constrained.png"
        result = runner.invoke(app, [
            "single", str(target_image),
            "--tiles", str(tile_dir),
            "--output", str(out),
            "--blocks", "2",
            "--adjacency-ban",
            "--max-usage", "2",
        ])
        assert result.exit_code == 0, result.output
        assert out.is_file()

    def test_empty_tile_directory_fails(self, target_image: Path, tmp_path: Path) -> None:
        empty = tmp_path / "empty"
        empty.mkdir()
        result = runner.invoke(app, [
            "single", str(target_image), "--tiles", str(empty), "--blocks", "2",
        ])
        assert result.exit_code == 1

    def test_kd_with_constraints_fails(
        self, tile_dir: Path, target_image: Path, tmp_path: Path,
    ) -> None:
        result = runner.invoke(app, [
            "single", str(target_image),
            "--tiles", str(tile_dir),
            "--output", str(tmp_path / "x.png"),
            "--index", "kd",
            "--adjacency-ban",
        ])
        assert result.exit_code == 1

    def test_kd_with_noise_fails(
        self, tile_dir: Path, target_image: Path, tmp_path: Path,
    ) -> None:
        result = runner.invoke(app, [
            "single", str(target_image),
            "--tiles", str(tile_dir),
            "--output", str(tmp_path / "x.png"),
            "--index", "kd",
            "--noise", "0.5",
        ])
        assert result.exit_code == 1
        assert not (tmp_path / "x.png").exists()

    def test_batch(self, tile_dir: Path, target_image: Path, tmp_path: Path) -> None:
        out_dir = tmp_path / "results"
        result = runner.invoke(app, [
            "batch",
            "--input", str(target_image.parent),
            "--output", str(out_dir),
            "--tiles", str(tile_dir),
            "--blocks", "4",
            "--index", "kd",
        ])
        assert result.exit_code == 0, result.output
        assert (out_dir / "target_mosaic.png").is_file()

    def test_cache_command(self, tile_dir: Path) -> None:
        result = runner.invoke(app, ["cache", "--tiles", str(tile_dir)])
        assert result.exit_code == 0, result.output
        assert len(load_cache(tile_dir / "imageCache.csv")) == 3
