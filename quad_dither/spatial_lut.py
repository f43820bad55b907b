# quad_dither/spatial_lut.py
from __future__ import annotations

"""
Discretised Lab lookup tables.

The Lab box (L 0..100, a/b -120..120) is cut into resolution^3 cells. Each
cell stores the index of the candidate (quad or palette colour) with the
lowest score at the cell centre:

    score = distance_squared + warmth_penalty + grayscale_penalty

Quad tables only scan the quads bucketed into the 3x3x3 coarse grid cells
around the target (or the nearest non-empty ring of cells past them), which keeps a 128^3 build tractable for large palettes.
Ties go to the first candidate seen, so builds are deterministic.

Exports:
  Lut
  CoarseGrid
  warmth_penalty(target, candidate, strength)
  grayscale_penalty(target, candidate, strength)
  candidate_scores(targets, candidates, warmth_strength, grayscale_strength)
  build_quad_lut(quads, warmth_strength, grayscale_strength, resolution, ...)
  build_palette_lut(palette, warmth_strength, grayscale_strength, resolution, ...)
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
from numpy.typing import NDArray

from .constants import (
    GRAYSCALE_CHROMA_MAX,
    GRID_SIZE,
    LAB_HI,
    LAB_LO,
    LUT_RESOLUTION,
    LUT_SCORE_BLOCK,
    WARMTH_CHROMA_MAX,
)
from .core_types import EmptyPaletteError, IndexTable, Lab, Palette
from .quads import QuadSet
from .utils import split_rows_into_parts

_LO = np.asarray(LAB_LO, dtype=np.float32)
_HI = np.asarray(LAB_HI, dtype=np.float32)
_SPAN = _HI - _LO


# Binning


def axis_bins(lab: np.ndarray, bins: int) -> NDArray[np.intp]:
    """Per-axis bin index of Lab values in a bins^3 split of the box, clamped."""
    scaled = (np.asarray(lab, dtype=np.float32) - _LO) / _SPAN * bins
    return np.clip(scaled, 0, bins - 1).astype(np.intp)


def cell_centres(resolution: int) -> Tuple[Lab, Lab, Lab]:
    """Centre coordinate of every fine cell, one 1-D array per axis."""
    steps = (np.arange(resolution, dtype=np.float32) + 0.5) / resolution
    return (
        (_LO[0] + steps * _SPAN[0]).astype(np.float32),
        (_LO[1] + steps * _SPAN[1]).astype(np.float32),
        (_LO[2] + steps * _SPAN[2]).astype(np.float32),
    )


@dataclass(frozen=True, eq=False)
class Lut:
    """Read-only [L, a, b] table of candidate indices."""

    table: IndexTable
    resolution: int

    def __post_init__(self) -> None:
        self.table.setflags(write=False)

    def lookup(self, lab: np.ndarray) -> NDArray[np.int32]:
        """Candidate index for each Lab row; any leading shape, out-of-box values clamp."""
        idx = axis_bins(lab, self.resolution)
        return self.table[idx[..., 0], idx[..., 1], idx[..., 2]]


# Perceptual scoring


def _chroma(lab: np.ndarray) -> np.ndarray:
    return np.hypot(lab[..., 1], lab[..., 2])


def warmth_penalty(
    target: np.ndarray, candidate: np.ndarray, strength: float
) -> np.ndarray:
    """strength * (target.b - candidate.b)^2 for near-neutral targets (chroma <= 25), else 0."""
    target = np.asarray(target, dtype=np.float32)
    candidate = np.asarray(candidate, dtype=np.float32)
    db = target[..., 2] - candidate[..., 2]
    return np.where(
        _chroma(target) <= WARMTH_CHROMA_MAX, np.float32(strength) * db * db, 0.0
    ).astype(np.float32)


def grayscale_penalty(
    target: np.ndarray, candidate: np.ndarray, strength: float
) -> np.ndarray:
    """strength * candidate_chroma^2 for grey targets (chroma <= 10), else 0."""
    target = np.asarray(target, dtype=np.float32)
    candidate = np.asarray(candidate, dtype=np.float32)
    cand_c2 = candidate[..., 1] ** 2 + candidate[..., 2] ** 2
    return np.where(
        _chroma(target) <= GRAYSCALE_CHROMA_MAX, np.float32(strength) * cand_c2, 0.0
    ).astype(np.float32)


def candidate_scores(
    targets: Lab,
    candidates: Lab,
    warmth_strength: float,
    grayscale_strength: float,
) -> NDArray[np.float32]:
    """Score matrix [T, C] for targets [T,3] against candidates [C,3]."""
    t = targets[:, None, :]
    c = candidates[None, :, :]
    diff = t - c
    score = np.sum(diff * diff, axis=-1)
    score += warmth_penalty(t, c, warmth_strength)
    score += grayscale_penalty(t, c, grayscale_strength)
    return score


def best_candidates(
    targets: Lab,
    candidates: Lab,
    warmth_strength: float,
    grayscale_strength: float,
) -> NDArray[np.int32]:
    """Index of the lowest-scoring candidate per target; first one wins on ties."""
    n_targets = targets.shape[0]
    out = np.empty(n_targets, dtype=np.int32)
    step = max(1, LUT_SCORE_BLOCK // max(1, candidates.shape[0]))
    for s in range(0, n_targets, step):
        e = min(s + step, n_targets)
        scores = candidate_scores(
            targets[s:e], candidates, warmth_strength, grayscale_strength
        )
        out[s:e] = np.argmin(scores, axis=1)
    return out


def _grid_targets(
    l_vals: np.ndarray, a_vals: np.ndarray, b_vals: np.ndarray
) -> Lab:
    """Cartesian product in [L, a, b] order, flattened to [T,3]."""
    grid = np.stack(np.meshgrid(l_vals, a_vals, b_vals, indexing="ij"), axis=-1)
    return grid.reshape(-1, 3).astype(np.float32, copy=False)


# Coarse acceleration grid


class CoarseGrid:
    """
    grid_size^3 buckets of quads keyed by the coarse cell of their Lab average.

    Buckets are stored arena style: `order` lists quad indices sorted by
    bucket (stable, so each bucket is in ascending quad index) and
    `starts[k]:starts[k+1]` is bucket k's slice of it.
    """

    def __init__(self, lab_average: Lab, grid_size: int = GRID_SIZE) -> None:
        self.grid_size = int(grid_size)
        cells = axis_bins(lab_average, self.grid_size).reshape(-1, 3)
        keys = self._key(cells[:, 0], cells[:, 1], cells[:, 2])
        self.order = np.argsort(keys, kind="stable").astype(np.int64)
        self.starts = np.searchsorted(
            keys[self.order], np.arange(self.grid_size**3 + 1), side="left"
        )
        g = self.grid_size
        filled = np.nonzero(np.diff(self.starts))[0]
        self.occupied = np.stack(
            [filled // (g * g), (filled // g) % g, filled % g], axis=1
        ).astype(np.intp)

    def _key(self, l_idx, a_idx, b_idx):
        g = self.grid_size
        return (np.asarray(l_idx) * g + np.asarray(a_idx)) * g + np.asarray(b_idx)

    def bucket(self, l_idx: int, a_idx: int, b_idx: int) -> NDArray[np.int64]:
        """Quad indices in one coarse cell (empty when out of range)."""
        g = self.grid_size
        if not (0 <= l_idx < g and 0 <= a_idx < g and 0 <= b_idx < g):
            return self.order[:0]
        k = int(self._key(l_idx, a_idx, b_idx))
        return self.order[self.starts[k] : self.starts[k + 1]]

    def _offsets(self, l_idx: int, a_idx: int, b_idx: int) -> NDArray[np.intp]:
        return self.occupied - np.array([l_idx, a_idx, b_idx], dtype=np.intp)

    def neighbourhood(
        self, l_idx: int, a_idx: int, b_idx: int, radius: int = 1
    ) -> NDArray[np.int64]:
        """
        Quad indices from the cube of half-width `radius` around a coarse cell
        (radius 1 is the 3x3x3 block).
        Visit order: b offset, then a offset, then L offset (each -radius..radius).
        """
        offsets = self._offsets(l_idx, a_idx, b_idx)
        inside = np.all(np.abs(offsets) <= radius, axis=1)
        if not inside.any():
            return self.order[:0]
        coords = self.occupied[inside]
        offsets = offsets[inside]
        visit = np.lexsort((offsets[:, 0], offsets[:, 1], offsets[:, 2]))
        parts: List[np.ndarray] = [self.bucket(*coords[k]) for k in visit]
        return np.concatenate(parts)

    def ring_radius(self, l_idx: int, a_idx: int, b_idx: int) -> int:
        """Smallest cube half-width (at least 1) around a cell holding any quad."""
        if self.occupied.shape[0] == 0:
            return 0
        offsets = self._offsets(l_idx, a_idx, b_idx)
        return max(1, int(np.abs(offsets).max(axis=1).min()))

    def nearest_ring(self, l_idx: int, a_idx: int, b_idx: int) -> NDArray[np.int64]:
        """
        Quads of the 3x3x3 block, or when that is empty, of the first
        non-empty ring further out (5x5x5, then 7x7x7, ...).
        """
        radius = self.ring_radius(l_idx, a_idx, b_idx)
        return self.neighbourhood(l_idx, a_idx, b_idx, radius)


# Builders


def _fine_cells_per_coarse(
    resolution: int, grid_size: int
) -> Tuple[List[np.ndarray], List[np.ndarray], List[np.ndarray]]:
    """For each axis and coarse index, the fine indices whose centres fall in it."""
    centres = cell_centres(resolution)
    per_axis = []
    for axis in range(3):
        coarse = np.clip(
            ((centres[axis] - _LO[axis]) / _SPAN[axis] * grid_size), 0, grid_size - 1
        ).astype(np.intp)
        per_axis.append([np.nonzero(coarse == g)[0] for g in range(grid_size)])
    return per_axis[0], per_axis[1], per_axis[2]


def build_quad_lut(
    quads: QuadSet,
    warmth_strength: float,
    grayscale_strength: float,
    resolution: int = LUT_RESOLUTION,
    *,
    grid_size: int = GRID_SIZE,
    workers: int = 1,
) -> Lut:
    """
    Fill a resolution^3 table with the best quad per cell centre.

    Each coarse L slab is one task and owns a disjoint slice of the table.
    A cell whose 3x3x3 coarse block holds no quads scans the nearest
    non-empty ring of coarse cells instead, so every cell gets an index.
    """
    if len(quads) == 0:
        raise EmptyPaletteError("cannot build a quad LUT without quads")

    resolution = int(resolution)
    grid = CoarseGrid(quads.lab_average, grid_size)
    centres = cell_centres(resolution)
    fine_l, fine_a, fine_b = _fine_cells_per_coarse(resolution, grid.grid_size)
    all_lab = quads.lab_average.astype(np.float32, copy=False)
    table = np.empty((resolution, resolution, resolution), dtype=np.int32)

    def fill_slab(cl: int) -> None:
        li = fine_l[cl]
        if li.size == 0:
            return
        for ca in range(grid.grid_size):
            ai = fine_a[ca]
            if ai.size == 0:
                continue
            for cb in range(grid.grid_size):
                bi = fine_b[cb]
                if bi.size == 0:
                    continue
                cand = grid.nearest_ring(cl, ca, cb)
                targets = _grid_targets(centres[0][li], centres[1][ai], centres[2][bi])
                rel = best_candidates(
                    targets, all_lab[cand], warmth_strength, grayscale_strength
                )
                best = cand[rel].astype(np.int32)
                table[np.ix_(li, ai, bi)] = best.reshape(li.size, ai.size, bi.size)

    slabs = range(grid.grid_size)
    if workers <= 1:
        for cl in slabs:
            fill_slab(cl)
    else:
        with ThreadPoolExecutor(max_workers=workers) as ex:
            list(ex.map(fill_slab, slabs))
    return Lut(table=table, resolution=resolution)


def build_palette_lut(
    palette: Palette,
    warmth_strength: float,
    grayscale_strength: float,
    resolution: int = LUT_RESOLUTION,
    *,
    workers: int = 1,
) -> Lut:
    """Fill a resolution^3 table with the best palette colour per cell centre."""
    if len(palette) == 0:
        raise EmptyPaletteError("cannot build a palette LUT from an empty palette")

    resolution = int(resolution)
    centres = cell_centres(resolution)
    pal_lab = np.asarray(palette.lab, dtype=np.float32)
    table = np.empty((resolution, resolution, resolution), dtype=np.int32)

    def fill_rows(span: Tuple[int, int]) -> None:
        start, end = span
        targets = _grid_targets(centres[0][start:end], centres[1], centres[2])
        best = best_candidates(targets, pal_lab, warmth_strength, grayscale_strength)
        table[start:end] = best.reshape(end - start, resolution, resolution)

    spans = split_rows_into_parts(resolution, max(1, workers))
    if workers <= 1:
        for span in spans:
            fill_rows(span)
    else:
        with ThreadPoolExecutor(max_workers=workers) as ex:
            list(ex.map(fill_rows, spans))
    return Lut(table=table, resolution=resolution)


__all__ = [
    "Lut",
    "CoarseGrid",
    "axis_bins",
    "cell_centres",
    "warmth_penalty",
    "grayscale_penalty",
    "candidate_scores",
    "best_candidates",
    "build_quad_lut",
    "build_palette_lut",
]
