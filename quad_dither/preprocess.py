# quad_dither/preprocess.py
from __future__ import annotations

"""
Image preparation ahead of quad selection.

- downscale_box: block average that ignores transparent pixels
- apply_luminance_bias: uniform brighten / darken in RGB
- bilateral_filter: edge-preserving smoothing in Lab (threaded, halo chunks)
- neighbourhood_mean: box mean with edge-replicated borders
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Tuple

import numpy as np

from .constants import THREADED_MIN_ROWS
from .core_types import Lab, U8Image, U8Mask, assert_rgba_pair
from .utils import split_rows_with_halo


# Downscale / bias


def downscale_box(
    rgb: U8Image, alpha: U8Mask, factor: int
) -> Tuple[U8Image, U8Mask]:
    """
    Shrink by an integer factor to max(1, W//f) x max(1, H//f).

    RGB is the truncated mean of the block's opaque (alpha != 0) pixels.
    Alpha is the block mean with transparent pixels counted as 0, floored at 1
    when any pixel is opaque. Fully transparent blocks become (0, 0, 0, 0).
    """
    rgb, alpha = assert_rgba_pair(rgb, alpha)
    factor = int(factor)
    if factor < 1:
        raise ValueError(f"downscale factor must be >= 1, got {factor}")

    height, width = alpha.shape
    out_h, out_w = max(1, height // factor), max(1, width // factor)
    block_h, block_w = min(factor, height), min(factor, width)
    rows, cols = out_h * block_h, out_w * block_w

    rgb_blocks = (
        rgb[:rows, :cols]
        .astype(np.int64)
        .reshape(out_h, block_h, out_w, block_w, 3)
    )
    alpha_blocks = alpha[:rows, :cols].astype(np.int64).reshape(
        out_h, block_h, out_w, block_w
    )
    opaque = alpha_blocks != 0

    counts = opaque.sum(axis=(1, 3))
    sums = (rgb_blocks * opaque[..., None]).sum(axis=(1, 3))
    safe = np.maximum(counts, 1)[..., None]
    out_rgb = np.where(counts[..., None] > 0, sums // safe, 0).astype(np.uint8)

    mean_alpha = alpha_blocks.sum(axis=(1, 3)) // (block_h * block_w)
    out_alpha = np.where(counts > 0, np.maximum(mean_alpha, 1), 0).astype(np.uint8)
    return out_rgb, out_alpha


def apply_luminance_bias(rgb: U8Image, bias: float) -> U8Image:
    """Scale every channel by (1 + bias), clamp to 0..255, truncate."""
    scaled = np.asarray(rgb, dtype=np.float32) * np.float32(1.0 + bias)
    return np.clip(scaled, 0.0, 255.0).astype(np.uint8)


# Filters


def _bilateral_block(
    lab: np.ndarray, radius: int, spatial_sigma: float, color_sigma: float
) -> np.ndarray:
    """Bilateral filter over one block; neighbours outside the block are skipped."""
    height, width = lab.shape[:2]
    spatial_factor = -0.5 / (spatial_sigma * spatial_sigma)
    color_factor = -0.5 / (color_sigma * color_sigma)

    acc = np.zeros((height, width, 3), dtype=np.float64)
    total = np.zeros((height, width), dtype=np.float64)
    for dy in range(-radius, radius + 1):
        y0, y1 = max(0, -dy), min(height, height - dy)
        if y0 >= y1:
            continue
        for dx in range(-radius, radius + 1):
            x0, x1 = max(0, -dx), min(width, width - dx)
            if x0 >= x1:
                continue
            centre = lab[y0:y1, x0:x1]
            nb = lab[y0 + dy : y1 + dy, x0 + dx : x1 + dx]
            diff = centre - nb
            colour_d2 = np.sum(diff * diff, axis=-1, dtype=np.float64)
            weight = np.exp((dy * dy + dx * dx) * spatial_factor) * np.exp(
                colour_d2 * color_factor
            )
            acc[y0:y1, x0:x1] += nb * weight[..., None]
            total[y0:y1, x0:x1] += weight
    return (acc / total[..., None]).astype(np.float32)


def bilateral_filter(
    lab: Lab,
    radius: int,
    spatial_sigma: float,
    color_sigma: float,
    *,
    workers: int = 1,
) -> Lab:
    """
    Edge-preserving smoothing of a Lab grid [H,W,3].

    weight = exp(-d^2 / 2 sigma_s^2) * exp(-dE^2 / 2 sigma_c^2), normalised over
    the in-bounds part of the (2r+1)^2 window. The centre always contributes.
    """
    src = np.asarray(lab, dtype=np.float32)
    radius = int(radius)
    if radius <= 0:
        return src.copy()
    height = src.shape[0]
    if workers <= 1 or height < THREADED_MIN_ROWS:
        return _bilateral_block(src, radius, spatial_sigma, color_sigma)

    out = np.empty_like(src)

    def run_one(chunk):
        start, end, start_pad, end_pad = chunk
        sub = _bilateral_block(
            src[start_pad:end_pad], radius, spatial_sigma, color_sigma
        )
        core = sub[(start - start_pad) : (start - start_pad) + (end - start)]
        return (start, end, core)

    chunks = split_rows_with_halo(height, workers, radius)
    with ThreadPoolExecutor(max_workers=workers) as ex:
        for start, end, core in ex.map(run_one, chunks):
            out[start:end] = core
    return out


def neighbourhood_mean(lab: Lab, radius: int) -> Lab:
    """Mean over each (2r+1)^2 window, borders replicated. Integral image."""
    src = np.asarray(lab, dtype=np.float64)
    radius = int(radius)
    if radius <= 0:
        return src.astype(np.float32)
    height, width = src.shape[:2]
    padded = np.pad(src, ((radius, radius), (radius, radius), (0, 0)), mode="edge")
    integ = np.zeros((height + 2 * radius + 1, width + 2 * radius + 1, 3))
    integ[1:, 1:] = np.cumsum(np.cumsum(padded, axis=0), axis=1)
    size = 2 * radius + 1
    region_sum = (
        integ[size:, size:]
        - integ[:-size, size:]
        - integ[size:, :-size]
        + integ[:-size, :-size]
    )
    return (region_sum / (size * size)).astype(np.float32)


__all__ = [
    "downscale_box",
    "apply_luminance_bias",
    "bilateral_filter",
    "neighbourhood_mean",
]
