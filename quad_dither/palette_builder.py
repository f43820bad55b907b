# quad_dither/palette_builder.py
from __future__ import annotations

"""
Palette construction by k-means in Lab.

generate_palette() samples an image and clusters the distinct sampled
colours; each cluster is then represented by its member colour nearest the
centroid, so the palette only holds colours that occur in the image.

refine_palette() runs the same Lloyd's loop over every pixel of a Lab grid,
starting from an existing palette, and returns the centroids themselves.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from .colour_convert import lab_to_rgb, rgb_to_lab
from .constants import KMEANS_CHUNK, KMEANS_TOLERANCE, SAMPLE_ALPHA_MIN
from .core_types import Lab, Palette, U8Image, U8Mask, U8Rows, assert_rgba_pair
from .palette_data import build_palette
from .utils import unique_rows_first_seen


# Sampling


def sample_opaque_pixels(
    rgb: U8Image,
    alpha: U8Mask,
    sample_size: int,
    rng: np.random.Generator,
) -> U8Rows:
    """
    Opaque (alpha > 128) colours to cluster.

    Every opaque pixel when there are at most sample_size of them, otherwise
    sample_size uniform draws with replacement, dropping transparent hits.
    """
    opaque = alpha > SAMPLE_ALPHA_MIN
    if int(np.count_nonzero(opaque)) <= sample_size:
        return rgb[opaque].reshape(-1, 3)
    height, width = alpha.shape
    ys = rng.integers(0, height, size=sample_size)
    xs = rng.integers(0, width, size=sample_size)
    keep = opaque[ys, xs]
    return rgb[ys[keep], xs[keep]].reshape(-1, 3)


# Lloyd's iterations


def assign_nearest(
    points: Lab, centroids: Lab, workers: int = 1
) -> NDArray[np.int64]:
    """Nearest centroid per point by squared Lab distance; lowest index wins ties."""
    pts = np.asarray(points, dtype=np.float32)
    cents = np.asarray(centroids, dtype=np.float32)
    n = pts.shape[0]
    out = np.empty(n, dtype=np.int64)

    def run_one(span: Tuple[int, int]) -> None:
        s, e = span
        diff = pts[s:e, None, :] - cents[None, :, :]
        out[s:e] = np.argmin(np.sum(diff * diff, axis=-1), axis=1)

    spans = [(s, min(s + KMEANS_CHUNK, n)) for s in range(0, n, KMEANS_CHUNK)]
    if workers <= 1 or len(spans) <= 1:
        for span in spans:
            run_one(span)
    else:
        with ThreadPoolExecutor(max_workers=workers) as ex:
            list(ex.map(run_one, spans))
    return out


def _init_centroid_indices(
    n_points: int, k: int, rng: np.random.Generator
) -> NDArray[np.int64]:
    """k distinct point indices, drawn one at a time with rejection."""
    chosen: dict = {}
    while len(chosen) < k:
        chosen.setdefault(int(rng.integers(0, n_points)), None)
    return np.fromiter(chosen.keys(), dtype=np.int64, count=k)


def lloyd_iterations(
    points: Lab,
    centroids: np.ndarray,
    max_iterations: int,
    rng: np.random.Generator,
    workers: int = 1,
) -> Tuple[NDArray[np.float64], NDArray[np.int64]]:
    """
    Run k-means from the given centroids.

    A centroid only moves when its new mean is more than KMEANS_TOLERANCE
    (squared) away; an empty cluster is reseeded to a random point. Stops once
    an iteration after the first changes nothing.
    Returns (centroids, assignment from the last iteration).
    """
    pts = np.asarray(points, dtype=np.float64)
    cents = np.array(centroids, dtype=np.float64, copy=True)
    k = cents.shape[0]
    clusters: Optional[NDArray[np.int64]] = None

    for it in range(max_iterations):
        clusters = assign_nearest(pts, cents, workers)
        counts = np.bincount(clusters, minlength=k)
        sums = np.stack(
            [np.bincount(clusters, weights=pts[:, c], minlength=k) for c in range(3)],
            axis=1,
        )
        changed = False
        for i in range(k):
            if counts[i] > 0:
                mean = sums[i] / counts[i]
                if float(np.sum((mean - cents[i]) ** 2)) > KMEANS_TOLERANCE:
                    cents[i] = mean
                    changed = True
            else:
                cents[i] = pts[int(rng.integers(0, pts.shape[0]))]
                changed = True
        if not changed and it > 0:
            break

    if clusters is None:
        clusters = assign_nearest(pts, cents, workers)
    return cents, clusters


# Public builders


def generate_palette(
    rgb: U8Image,
    alpha: U8Mask,
    color_count: int,
    max_iterations: int = 10,
    sample_size: int = 20_000,
    *,
    seed: Optional[int] = None,
    workers: int = 1,
) -> Palette:
    """
    Palette of at most color_count colours taken from the image.

    Returns an empty palette when no pixel is opaque enough to sample.
    """
    rgb, alpha = assert_rgba_pair(rgb, alpha)
    if color_count < 1:
        raise ValueError(f"color_count must be >= 1, got {color_count}")
    rng = np.random.default_rng(seed)

    samples = sample_opaque_pixels(rgb, alpha, int(sample_size), rng)
    if samples.shape[0] == 0:
        return build_palette(np.zeros((0, 3), dtype=np.uint8))

    distinct = unique_rows_first_seen(samples)
    if distinct.shape[0] <= color_count:
        return build_palette(distinct)

    lab = rgb_to_lab(distinct).reshape(-1, 3)
    init = lab[_init_centroid_indices(lab.shape[0], color_count, rng)]
    cents, clusters = lloyd_iterations(lab, init, max_iterations, rng, workers)

    picked = []
    for i in range(color_count):
        members = np.nonzero(clusters == i)[0]
        if members.size == 0:
            continue
        diff = lab[members].astype(np.float64) - cents[i]
        picked.append(distinct[members[int(np.argmin(np.sum(diff * diff, axis=1)))]])
    if not picked:
        return build_palette(np.zeros((0, 3), dtype=np.uint8))
    return build_palette(np.stack(picked))


def refine_palette(
    lab_grid: Lab,
    initial_palette: Palette,
    max_iterations: int = 5,
    *,
    mask: Optional[np.ndarray] = None,
    seed: Optional[int] = None,
    workers: int = 1,
) -> Palette:
    """
    Move palette colours to the cluster means of the grid's pixels.

    mask, when given, selects the pixels that take part (e.g. visible ones).
    Output colours are the converted centroids, deduplicated.
    """
    lab = np.asarray(lab_grid, dtype=np.float32)
    points = lab[np.asarray(mask, dtype=bool)] if mask is not None else lab
    points = points.reshape(-1, 3)
    if len(initial_palette) == 0 or points.shape[0] == 0:
        return build_palette(np.zeros((0, 3), dtype=np.uint8))

    rng = np.random.default_rng(seed)
    cents, _clusters = lloyd_iterations(
        points, initial_palette.lab, max_iterations, rng, workers
    )
    return build_palette(lab_to_rgb(cents))


__all__ = [
    "sample_opaque_pixels",
    "assign_nearest",
    "lloyd_iterations",
    "generate_palette",
    "refine_palette",
]
