"""Image loading, cell sampling, saving, and comparison-grid generation."""

from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from picture_mosaic.errors import ConfigurationError

# Formats without an alpha channel
_OPAQUE_FORMATS = {".jpg", ".jpeg", ".jfif", ".bmp"}


def load_image(path: str | Path) -> np.ndarray:
    """Load an image as an (H, W, 3) uint8 RGB array.

    Raises:
        ConfigurationError: if the file is missing or not a readable image.
    """
    path = Path(path)
    if not path.is_file():
        msg = f"Input file does not exist: {path}"
        raise ConfigurationError(msg)
    try:
        with Image.open(path) as img:
            return np.array(img.convert("RGB"), dtype=np.uint8)
    except (UnidentifiedImageError, OSError) as exc:
        msg = f"Failed to read image {path}: {exc}"
        raise ConfigurationError(msg) from exc


def average_rgb(pixels: np.ndarray) -> tuple[int, int, int]:
    """Rounded mean colour of an (..., 3) pixel array."""
    mean = np.rint(pixels.reshape(-1, 3).astype(np.float64).mean(axis=0))
    r, g, b = (int(c) for c in mean)
    return r, g, b


def compute_cell_size(width: int, height: int, blocks: int) -> tuple[int, int]:
    """Pixel (w, h) of one grid cell when the image is cut into blocks x blocks.

    Leftover pixels at the right and bottom edges are ignored.
    """
    cell_w, cell_h = width // blocks, height // blocks
    if cell_w < 1 or cell_h < 1:
        msg = f"Image of {width}x{height} px is too small for a {blocks}x{blocks} grid"
        raise ConfigurationError(msg)
    return cell_w, cell_h


def sample_cells(image: np.ndarray, blocks: int) -> np.ndarray:
    """Average colour of every grid cell.

    Args:
        image:  (H, W, 3) uint8.
        blocks: Cells per row and per column.

    Returns:
        (blocks, blocks, 3) uint8, row-major.
    """
    h, w = image.shape[:2]
    cell_w, cell_h = compute_cell_size(w, h, blocks)
    cropped = image[: cell_h * blocks, : cell_w * blocks].astype(np.float64)
    cells = cropped.reshape(blocks, cell_h, blocks, cell_w, 3).mean(axis=(1, 3))
    return np.clip(np.rint(cells), 0, 255).astype(np.uint8)


def save_image(img: Image.Image, path: str | Path) -> None:
    """Save *img*, choosing the format from the suffix and dropping alpha where unsupported."""
    path = Path(path)
    if path.suffix.lower() in _OPAQUE_FORMATS and img.mode != "RGB":
        img = img.convert("RGB")
    img.save(path)


def upscale(array: np.ndarray, size: tuple[int, int]) -> Image.Image:
    """Nearest-neighbour upscale a small (H, W, 3) array to *size* (w, h)."""
    return Image.fromarray(array.astype(np.uint8)).resize(size, Image.NEAREST)


def make_comparison_grid(
    original_path: str | Path,
    cells: np.ndarray,
    mosaic: Image.Image,
    output_path: str | Path,
) -> None:
    """Create a 3-panel comparison: Original | Cells | Mosaic.

    All panels are resized to the mosaic's pixel dimensions.
    """
    panel_w, panel_h = mosaic.size
    rows, cols = cells.shape[:2]
    label_height = 36

    original = (
        Image.open(original_path)
        .convert("RGB")
        .resize((panel_w, panel_h), Image.LANCZOS)
    )
    panels = [original, upscale(cells, (panel_w, panel_h)), mosaic.convert("RGB")]
    labels = ["Original", f"Cells {cols}x{rows}", "Mosaic"]

    gap = 8
    total_w = len(panels) * panel_w + (len(panels) - 1) * gap
    total_h = panel_h + label_height

    canvas = Image.new("RGB", (total_w, total_h), (30, 30, 30))
    draw = ImageDraw.Draw(canvas)

    try:
        font = ImageFont.truetype(
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf", 18,
        )
    except OSError:
        font = ImageFont.load_default()

    for i, (panel, label) in enumerate(zip(panels, labels, strict=False)):
        x = i * (panel_w + gap)
        canvas.paste(panel, (x, label_height))

        bbox = draw.textbbox((0, 0), label, font=font)
        text_w = bbox[2] - bbox[0]
        tx = x + (panel_w - text_w) // 2
        draw.text((tx, 6), label, fill=(220, 220, 220), font=font)

    save_image(canvas, output_path)
