"""Colour-space conversion and distance metrics."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from scipy.spatial.distance import cdist
from skimage.color import rgb2lab

Lab = tuple[float, float, float]
RGB = tuple[int, int, int]


def rgb_to_lab(rgb: np.ndarray) -> np.ndarray:
    """Convert flat (N, 3) uint8 RGB → (N, 3) float64 CIELAB (D65, 2° observer)."""
    rgb = np.asarray(rgb)
    if rgb.size == 0:
        return np.empty((0, 3), dtype=np.float64)
    return rgb2lab(rgb.astype(np.float64).reshape(1, -1, 3) / 255.0).reshape(-1, 3)


def perceptual(rgb: Sequence[int]) -> Lab:
    """CIELAB coordinates of a single RGB colour."""
    lab = rgb_to_lab(np.asarray([rgb], dtype=np.uint8))[0]
    return float(lab[0]), float(lab[1]), float(lab[2])


def lab_distance(c1: Sequence[float], c2: Sequence[float]) -> float:
    """Squared Euclidean distance in CIELAB.

    The square root is left out; callers only compare distances.
    """
    dl = c1[0] - c2[0]
    da = c1[1] - c2[1]
    db = c1[2] - c2[2]
    return dl * dl + da * da + db * db


def rgb_distance(c1: Sequence[int], c2: Sequence[int]) -> int:
    """Squared difference in raw RGB. Not used for matching."""
    return sum((int(a) - int(b)) ** 2 for a, b in zip(c1, c2, strict=True))


def compute_distance_matrix(
    targets: np.ndarray,
    candidates: np.ndarray,
    chunk_size: int = 512,
) -> np.ndarray:
    """Pairwise squared CIELAB distance between targets and candidates.

    Args:
        targets:    (K, 3) float CIELAB.
        candidates: (N, 3) float CIELAB.
        chunk_size: Rows computed per batch (controls peak RAM).

    Returns:
        (K, N) float64 distance matrix.
    """
    targets = np.asarray(targets, dtype=np.float64).reshape(-1, 3)
    candidates = np.asarray(candidates, dtype=np.float64).reshape(-1, 3)
    k = len(targets)
    dist = np.empty((k, len(candidates)), dtype=np.float64)
    for i in range(0, k, chunk_size):
        j = min(i + chunk_size, k)
        dist[i:j] = cdist(targets[i:j], candidates, "sqeuclidean")
    return dist


def mean_delta_e(a_rgb: np.ndarray, b_rgb: np.ndarray) -> float:
    """Mean CIE76 ΔE between two equally shaped RGB arrays."""
    a = rgb_to_lab(np.asarray(a_rgb).reshape(-1, 3))
    b = rgb_to_lab(np.asarray(b_rgb).reshape(-1, 3))
    if len(a) == 0:
        return 0.0
    return float(np.mean(np.sqrt(np.sum((a - b) ** 2, axis=1))))
