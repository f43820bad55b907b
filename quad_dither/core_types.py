# quad_dither/core_types.py
from __future__ import annotations

"""
Core type aliases, small value objects, and lightweight helpers.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray

# Basic aliases

RGBTuple = Tuple[int, int, int]
HexStr = str

U8Image = NDArray[np.uint8]  # (H, W, 3)
U8Mask = NDArray[np.uint8]  # (H, W)
U8Rows = NDArray[np.uint8]  # (N, 3)
Lab = NDArray[np.float32]  # (..., 3) CIE Lab
IndexTable = NDArray[np.int32]  # (R, R, R) LUT cells

# Errors


class EmptyPaletteError(ValueError):
    """Raised when dithering is requested without any palette colours."""


# Value objects


@dataclass(frozen=True, eq=False)
class Palette:
    """
    Ordered, duplicate-free palette with precomputed Lab rows.

    Build through palette_data.build_palette(); the arrays are read-only.
    """

    rgb: U8Rows  # shape (N, 3)
    lab: Lab  # shape (N, 3)

    def __post_init__(self) -> None:
        if self.rgb.ndim != 2 or self.rgb.shape[-1] != 3 or self.rgb.dtype != np.uint8:
            raise TypeError("palette rgb must be uint8 (N,3)")
        if self.lab.shape != self.rgb.shape:
            raise ValueError("palette lab rows must match rgb rows")
        self.rgb.setflags(write=False)
        self.lab.setflags(write=False)

    def __len__(self) -> int:
        return int(self.rgb.shape[0])

    def colors(self) -> List[RGBTuple]:
        return [coerce_to_rgb_tuple(row) for row in self.rgb]


@dataclass(frozen=True, eq=False)
class ColorQuad:
    """One 2x2 tile: four colours plus their Lab cells and Lab average."""

    top_left: RGBTuple
    top_right: RGBTuple
    bottom_left: RGBTuple
    bottom_right: RGBTuple
    lab_average: Lab  # shape (3,)
    lab_cells: Lab  # shape (4, 3), order TL, TR, BL, BR

    @property
    def cells(self) -> Tuple[RGBTuple, RGBTuple, RGBTuple, RGBTuple]:
        return (self.top_left, self.top_right, self.bottom_left, self.bottom_right)

    def is_solid(self) -> bool:
        return len(set(self.cells)) == 1


# Small helpers


def rgb_to_hex(rgb: RGBTuple) -> HexStr:
    """RGB tuple to lowercase hex string '#rrggbb'."""
    return f"#{rgb[0]:02x}{rgb[1]:02x}{rgb[2]:02x}"


def hex_to_rgb(hex_str: str) -> RGBTuple:
    """Parse '#rgb' or '#rrggbb' (case-insensitive, '#' optional) into an RGB tuple."""
    s = hex_str.strip().lower()
    if not s.startswith("#"):
        s = f"#{s}"
    if len(s) == 4:
        r, g, b = s[1], s[2], s[3]
        s = f"#{r}{r}{g}{g}{b}{b}"
    if len(s) != 7:
        raise ValueError(f"hex must be '#rrggbb' or '#rgb', got {hex_str!r}")
    try:
        return (int(s[1:3], 16), int(s[3:5], 16), int(s[5:7], 16))
    except ValueError:
        raise ValueError(f"invalid hex colour {hex_str!r}") from None


def hex_list_to_u8_rgb_array(hex_list: Sequence[str]) -> U8Rows:
    """Convert a sequence of hex strings to a (N,3) uint8 array."""
    out = np.empty((len(hex_list), 3), dtype=np.uint8)
    for i, hx in enumerate(hex_list):
        out[i] = hex_to_rgb(hx)
    return out


def coerce_to_rgb_tuple(value: Union[Sequence[int], NDArray[np.generic]]) -> RGBTuple:
    """
    Coerce a 3-length sequence or array to an (int, int, int) RGB tuple.
    Helpful when extracting values from NumPy rows.
    """
    if isinstance(value, np.ndarray):
        if value.size < 3:
            raise ValueError("array too small for RGB")
        return (int(value[..., 0]), int(value[..., 1]), int(value[..., 2]))
    if len(value) < 3:  # type: ignore[arg-type]
        raise ValueError("sequence too small for RGB")
    v = value  # type: ignore[assignment]
    return (int(v[0]), int(v[1]), int(v[2]))


def assert_u8_image_rgb(image: np.ndarray) -> U8Image:
    """Validate a uint8 (H,W,3) image and return it typed as U8Image."""
    if image.dtype != np.uint8 or image.ndim != 3 or image.shape[-1] != 3:
        raise TypeError("expected uint8 (H,W,3) image")
    return image  # type: ignore[return-value]


def assert_u8_mask_2d(mask_array: np.ndarray) -> U8Mask:
    """Validate a uint8 (H,W) mask and return it typed as U8Mask."""
    if mask_array.dtype != np.uint8 or mask_array.ndim != 2:
        raise TypeError("expected uint8 (H,W) mask")
    return mask_array  # type: ignore[return-value]


def assert_rgba_pair(rgb: np.ndarray, alpha: np.ndarray) -> Tuple[U8Image, U8Mask]:
    """Validate an (rgb, alpha) pair with matching height and width."""
    rgb_v = assert_u8_image_rgb(rgb)
    alpha_v = assert_u8_mask_2d(alpha)
    if rgb_v.shape[:2] != alpha_v.shape:
        raise TypeError(
            f"alpha shape {alpha_v.shape} does not match image {rgb_v.shape[:2]}"
        )
    return rgb_v, alpha_v


__all__ = [
    # aliases / types
    "RGBTuple",
    "HexStr",
    "U8Image",
    "U8Mask",
    "U8Rows",
    "Lab",
    "IndexTable",
    # errors
    "EmptyPaletteError",
    # value objects
    "Palette",
    "ColorQuad",
    # helpers
    "rgb_to_hex",
    "hex_to_rgb",
    "hex_list_to_u8_rgb_array",
    "coerce_to_rgb_tuple",
    "assert_u8_image_rgb",
    "assert_u8_mask_2d",
    "assert_rgba_pair",
]
