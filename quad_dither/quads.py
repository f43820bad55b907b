# quad_dither/quads.py
from __future__ import annotations

"""
2x2 quad candidates built from a palette.

A palette of N colours yields N solid quads plus four two-colour patterns per
unordered pair (checker, swapped checker, horizontal split, vertical split).
Candidates whose Lab averages round to the same integer triple are merged,
keeping the first one generated.
"""

from dataclasses import dataclass
import numpy as np
from numpy.typing import NDArray

from .core_types import ColorQuad, Lab, Palette, coerce_to_rgb_tuple


# Cell order is TL, TR, BL, BR. 0 = first colour of the pair, 1 = second.
_PAIR_PATTERNS = np.array(
    [
        [0, 1, 1, 0],  # checker
        [1, 0, 0, 1],  # checker, diagonals swapped
        [0, 0, 1, 1],  # horizontal split
        [0, 1, 0, 1],  # vertical split
    ],
    dtype=np.int64,
)


@dataclass(frozen=True, eq=False)
class QuadSet:
    """
    Quad candidates stored as parallel arrays.

    rgb         uint8   [Q,4,3]
    lab_cells   float32 [Q,4,3]
    lab_average float32 [Q,3]   mean of lab_cells over the cell axis
    """

    rgb: NDArray[np.uint8]
    lab_cells: Lab
    lab_average: Lab

    def __len__(self) -> int:
        return int(self.rgb.shape[0])

    def __getitem__(self, index: int) -> ColorQuad:
        cells = self.rgb[index]
        return ColorQuad(
            top_left=coerce_to_rgb_tuple(cells[0]),
            top_right=coerce_to_rgb_tuple(cells[1]),
            bottom_left=coerce_to_rgb_tuple(cells[2]),
            bottom_right=coerce_to_rgb_tuple(cells[3]),
            lab_average=self.lab_average[index],
            lab_cells=self.lab_cells[index],
        )


def quad_cell_indices(count: int) -> NDArray[np.int64]:
    """
    Palette indices for every candidate before dedup, shape [N + 4*C(N,2), 4].
    Solids come first, then pairs (i<j) in row-major order.
    """
    solids = np.repeat(np.arange(count, dtype=np.int64)[:, None], 4, axis=1)
    first, second = np.triu_indices(count, k=1)
    if first.size == 0:
        return solids
    pair = np.stack([first, second], axis=1)  # [P,2]
    patterned = pair[:, _PAIR_PATTERNS]  # [P,4,4]
    return np.concatenate([solids, patterned.reshape(-1, 4)], axis=0)


def generate_quads(palette: Palette) -> QuadSet:
    """All solid and two-colour quads for the palette, deduplicated by rounded Lab average."""
    cells = quad_cell_indices(len(palette))
    lab_cells = palette.lab[cells].astype(np.float32)
    lab_average = lab_cells.mean(axis=1, dtype=np.float32)

    if cells.shape[0]:
        keys = np.rint(lab_average).astype(np.int64)
        _uniq, first_idx = np.unique(keys, axis=0, return_index=True)
        keep = np.sort(first_idx)
    else:
        keep = np.zeros(0, dtype=np.int64)

    return QuadSet(
        rgb=np.ascontiguousarray(palette.rgb[cells[keep]]),
        lab_cells=np.ascontiguousarray(lab_cells[keep]),
        lab_average=np.ascontiguousarray(lab_average[keep]),
    )


__all__ = ["QuadSet", "quad_cell_indices", "generate_quads"]
