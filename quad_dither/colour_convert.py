# quad_dither/colour_convert.py
from __future__ import annotations

"""
Colour conversions and metrics (sRGB, D65 white).

Exports:
  rgb_to_linear(srgb)
  linear_to_rgb(linear)
  rgb_to_lab(rgb)
  lab_to_rgb(lab)
  to_lab(color)
  to_color(lab)
  distance_squared(lab1, lab2)
  rgb_to_lab_threaded(rgb, workers)

Lab here is the classic 7.787t + 16/116 formulation with L clamped at 0.
Distances are plain squared Euclidean in Lab; perceptual corrections are
applied as penalty terms by the LUT builders instead.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from .constants import THREADED_MIN_ROWS
from .core_types import Lab, RGBTuple
from .utils import split_rows_into_parts

# Linear RGB -> XYZ (D65)
_RGB_TO_XYZ = np.array(
    [
        [0.4124564, 0.3575761, 0.1804375],
        [0.2126729, 0.7151522, 0.0721750],
        [0.0193339, 0.1191920, 0.9503041],
    ],
    dtype=np.float64,
)
_XYZ_TO_RGB = np.linalg.inv(_RGB_TO_XYZ)

# Reference white (D65)
_WHITE = np.array([0.95047, 1.00000, 1.08883], dtype=np.float64)

_LAB_EPSILON = 0.008856
_LAB_KAPPA = 7.787
_LAB_OFFSET = 16.0 / 116.0
_F_EPSILON = float(np.cbrt(_LAB_EPSILON))


# sRGB <-> linear


def rgb_to_linear(srgb: np.ndarray) -> np.ndarray:
    """
    Convert sRGB (non-linear 0..1) to linear RGB (0..1). Vectorised.
    Args:
      srgb: array[...] in 0..1 (float)
    Returns:
      float64 array, same shape
    """
    srgb_f = np.asarray(srgb, dtype=np.float64)
    return np.where(
        srgb_f <= 0.04045,
        srgb_f / 12.92,
        ((np.maximum(srgb_f, 0.04045) + 0.055) / 1.055) ** 2.4,
    )


def linear_to_rgb(linear: np.ndarray) -> np.ndarray:
    """Inverse of rgb_to_linear. Input is clipped to 0..1 first."""
    lin = np.clip(np.asarray(linear, dtype=np.float64), 0.0, 1.0)
    return np.where(
        lin <= 0.0031308,
        lin * 12.92,
        1.055 * np.power(np.maximum(lin, 0.0031308), 1.0 / 2.4) - 0.055,
    )


# sRGB <-> Lab


def rgb_to_lab(rgb: np.ndarray) -> Lab:
    """
    sRGB to CIE Lab (D65).
    Accepts channel values in 0..255 (uint8 or float). Preserves shape (...,3).
    Returns float32.
    """
    rgb_f = np.asarray(rgb, dtype=np.float64) / 255.0
    linear = rgb_to_linear(rgb_f)

    xyz = linear @ _RGB_TO_XYZ.T
    t = xyz / _WHITE

    f = np.where(
        t > _LAB_EPSILON,
        np.cbrt(t),
        _LAB_KAPPA * t + _LAB_OFFSET,
    )
    fx, fy, fz = f[..., 0], f[..., 1], f[..., 2]

    out = np.empty(f.shape, dtype=np.float32)
    out[..., 0] = np.maximum(0.0, 116.0 * fy - 16.0)
    out[..., 1] = 500.0 * (fx - fy)
    out[..., 2] = 200.0 * (fy - fz)
    return out


def lab_to_rgb(lab: np.ndarray) -> NDArray[np.uint8]:
    """
    CIE Lab (D65) to sRGB uint8. Exact inverse of rgb_to_lab; each channel is
    clamped to 0..255 and rounded. Preserves shape (...,3).
    """
    lab_f = np.asarray(lab, dtype=np.float64)
    fy = (lab_f[..., 0] + 16.0) / 116.0
    fx = fy + lab_f[..., 1] / 500.0
    fz = fy - lab_f[..., 2] / 200.0
    f = np.stack([fx, fy, fz], axis=-1)

    t = np.where(f > _F_EPSILON, f**3, (f - _LAB_OFFSET) / _LAB_KAPPA)
    xyz = t * _WHITE
    linear = xyz @ _XYZ_TO_RGB.T

    srgb = linear_to_rgb(linear)
    return np.clip(np.rint(srgb * 255.0), 0, 255).astype(np.uint8)


def to_lab(color: Sequence[int]) -> Lab:
    """Single colour (r, g, b[, a]) to a Lab row of shape (3,)."""
    return rgb_to_lab(np.asarray(color[:3], dtype=np.float64))


def to_color(lab: Sequence[float] | np.ndarray) -> RGBTuple:
    """Single Lab row to an (r, g, b) tuple."""
    rgb = lab_to_rgb(np.asarray(lab, dtype=np.float64)[:3])
    return (int(rgb[0]), int(rgb[1]), int(rgb[2]))


# Metric


def distance_squared(
    lab1: Sequence[float] | NDArray[np.floating],
    lab2: Sequence[float] | NDArray[np.floating],
) -> NDArray[np.float32] | float:
    """
    Squared Euclidean distance in Lab. Broadcasts over leading axes;
    returns a float for two single rows.
    """
    a = np.asarray(lab1, dtype=np.float32)
    b = np.asarray(lab2, dtype=np.float32)
    diff = a - b
    d2 = np.sum(diff * diff, axis=-1)
    if np.ndim(d2) == 0:
        return float(d2)
    return d2.astype(np.float32, copy=False)


# Threaded helpers


def rgb_to_lab_threaded(rgb: np.ndarray, workers: int) -> Lab:
    """
    Threaded RGB->Lab conversion by splitting rows.

    Args:
      rgb: uint8 or float array [H,W,3]
      workers: number of threads; if <=1 or H is small, runs single-threaded
    Returns:
      Lab float32 array [H,W,3]
    """
    height = int(rgb.shape[0])
    if workers <= 1 or height < THREADED_MIN_ROWS:
        return rgb_to_lab(rgb)

    chunks = split_rows_into_parts(height, workers)
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(rgb_to_lab, rgb[s:e]) for s, e in chunks]
        parts = [f.result() for f in futures]
    return np.vstack(parts).astype(np.float32, copy=False)


__all__ = [
    "rgb_to_linear",
    "linear_to_rgb",
    "rgb_to_lab",
    "lab_to_rgb",
    "to_lab",
    "to_color",
    "distance_squared",
    "rgb_to_lab_threaded",
]
