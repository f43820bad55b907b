# quad_dither/constants.py
"""
Global tunables used across the project.

- Lab bounding box used by every LUT
- LUT and acceleration grid sizes
- Perceptual penalty thresholds
- Pipeline constants (alpha thresholds, dark pass bias, blend snap limits)
"""
from __future__ import annotations

from typing import Tuple

# ==============
# Lab LUT bounds
# ==============
L_MIN: float = 0.0
L_MAX: float = 100.0
A_MIN: float = -120.0
A_MAX: float = 120.0
B_MIN: float = -120.0
B_MAX: float = 120.0

LAB_LO: Tuple[float, float, float] = (L_MIN, A_MIN, B_MIN)
LAB_HI: Tuple[float, float, float] = (L_MAX, A_MAX, B_MAX)

# Cells per axis of the fine lookup tables (128^3 = 2M cells).
LUT_RESOLUTION: int = 128

# Cells per axis of the coarse quad bucket grid (16^3 = 4096 buckets).
GRID_SIZE: int = 16

# Upper bound on target x candidate scores evaluated per vectorised step.
LUT_SCORE_BLOCK: int = 1 << 20

# ==================
# Perceptual scoring
# ==================
# Warmth penalty only applies to targets at or below this chroma.
WARMTH_CHROMA_MAX: float = 25.0

# Grayscale penalty only applies to targets at or below this chroma.
GRAYSCALE_CHROMA_MAX: float = 10.0

# =======
# Palette
# =======
# Pixels with alpha above this are sampled for palette generation.
SAMPLE_ALPHA_MIN: int = 128

# Minimum squared Lab move for a k-means centroid to count as changed.
KMEANS_TOLERANCE: float = 1e-6

# Points assigned per vectorised k-means step.
KMEANS_CHUNK: int = 8_192

# ========
# Pipeline
# ========
# Bias below this magnitude leaves the downscaled image untouched.
BIAS_EPSILON: float = 1e-6

# Extra luminance bias applied to the downscaled image for the dark pass.
DARK_PASS_BIAS: float = -0.25

# Blend factors at or below this keep the main pass colour.
BLEND_KEEP_MAIN: float = 0.01

# Blend factors at or above this keep the dark pass colour.
BLEND_KEEP_DARK: float = 0.99

# Floor for the blend range so the fade never divides by zero.
BLEND_RANGE_MIN: float = 1e-6

# Images shorter than this are converted on a single thread.
THREADED_MIN_ROWS: int = 256
