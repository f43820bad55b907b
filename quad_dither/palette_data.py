# quad_dither/palette_data.py
from __future__ import annotations

"""
Palette definitions and builders.

Exports:
  PALETTE: list[tuple[str, str]]  # [(hex, name), ...] built-in preset
  NAME_OF: dict[str, str]         # "#rrggbb" -> name for the preset
  build_palette(colours) -> Palette
  build_palette_from_hex(hex_list) -> Palette
  parse_palette_spec(spec) -> Palette
"""

from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple, Union

import numpy as np

from .colour_convert import rgb_to_lab
from .core_types import Palette, RGBTuple, hex_list_to_u8_rgb_array, rgb_to_hex
from .utils import unique_rows_first_seen


PALETTE: List[Tuple[str, str]] = [
    ("#ed1c24", "Red"),
    ("#d18078", "Peach"),
    ("#fa8072", "Light Red"),
    ("#9b5249", "Dark Peach"),
    ("#fab6a4", "Light Peach"),
    ("#e45c1a", "Dark Orange"),
    ("#684634", "Dark Brown"),
    ("#ffc5a5", "Light Beige"),
    ("#d18051", "Dark Beige"),
    ("#ff7f27", "Orange"),
    ("#7b6352", "Dark Tan"),
    ("#f8b277", "Beige"),
    ("#d6b594", "Light Tan"),
    ("#9c846b", "Tan"),
    ("#dba463", "Light Brown"),
    ("#95682a", "Brown"),
    ("#f6aa09", "Gold"),
    ("#9c8431", "Dark Goldenrod"),
    ("#6d643f", "Dark Stone"),
    ("#948c6b", "Stone"),
    ("#cdc59e", "Light Stone"),
    ("#c5ad31", "Goldenrod"),
    ("#f9dd3b", "Yellow"),
    ("#e8d45f", "Light Goldenrod"),
    ("#fffabc", "Light Yellow"),
    ("#4a6b3a", "Dark Olive"),
    ("#87ff5e", "Light Green"),
    ("#5a944a", "Olive"),
    ("#84c573", "Light Olive"),
    ("#13e67b", "Green"),
    ("#0eb968", "Dark Green"),
    ("#13e1be", "Light Teal"),
    ("#0c816e", "Dark Teal"),
    ("#bbfaf2", "Light Cyan"),
    ("#10aea6", "Teal"),
    ("#60f7f2", "Cyan"),
    ("#0f799f", "Dark Cyan"),
    ("#7dc7ff", "Light Blue"),
    ("#4093e4", "Blue"),
    ("#333941", "Dark Slate"),
    ("#28509e", "Dark Blue"),
    ("#6d758d", "Slate"),
    ("#99b1fb", "Light Indigo"),
    ("#b3b9d1", "Light Slate"),
    ("#b5aef1", "Light Slate Blue"),
    ("#7a71c4", "Slate Blue"),
    ("#4a4284", "Dark Slate Blue"),
    ("#6b50f6", "Indigo"),
    ("#4d31b8", "Dark Indigo"),
    ("#e09ff9", "Light Purple"),
    ("#780c99", "Dark Purple"),
    ("#aa38b9", "Purple"),
    ("#cb007a", "Dark Pink"),
    ("#ec1f80", "Pink"),
    ("#f38da9", "Light Pink"),
    ("#600018", "Deep Red"),
    ("#a50e1e", "Dark Red"),
    ("#000000", "Black"),
    ("#3c3c3c", "Dark Gray"),
    ("#787878", "Gray"),
    ("#aaaaaa", "Medium Gray"),
    ("#d2d2d2", "Light Gray"),
    ("#ffffff", "White"),
]

NAME_OF: Dict[str, str] = {hx: name for hx, name in PALETTE}


def build_palette(
    colours: Union[np.ndarray, Iterable[Sequence[int]]],
) -> Palette:
    """
    Build a Palette from RGB(A) rows. Alpha, if present, is ignored.
    Duplicates are dropped keeping the first occurrence.
    """
    arr = np.asarray(
        colours if isinstance(colours, np.ndarray) else list(colours),
        dtype=np.int64,
    )
    if arr.size == 0:
        arr = np.zeros((0, 3), dtype=np.int64)
    if arr.ndim != 2 or arr.shape[1] not in (3, 4):
        raise ValueError(f"expected (N,3) or (N,4) colour rows, got {arr.shape}")
    if arr.min(initial=0) < 0 or arr.max(initial=0) > 255:
        raise ValueError("colour channels must be within 0..255")

    rgb = unique_rows_first_seen(arr[:, :3].astype(np.uint8))
    rgb = np.ascontiguousarray(rgb, dtype=np.uint8)
    lab = rgb_to_lab(rgb).reshape(-1, 3)
    return Palette(rgb=rgb, lab=lab)


def build_palette_from_hex(hex_list: Sequence[str]) -> Palette:
    """Build a Palette from '#rrggbb' / '#rgb' strings."""
    return build_palette(hex_list_to_u8_rgb_array(hex_list))


def default_palette() -> Palette:
    """The built-in preset palette."""
    return build_palette_from_hex([hx for hx, _name in PALETTE])


def parse_palette_spec(spec: str) -> Palette:
    """
    Resolve a CLI palette argument:
      "wplace"        -> built-in preset
      "#f00,#000000"  -> comma-separated hex list
      path/to/file    -> one hex per line; blank lines and text after ';' ignored
    """
    text = spec.strip()
    if text.lower() == "wplace":
        return default_palette()

    path = Path(text)
    if path.is_file():
        entries: List[str] = []
        for raw in path.read_text(encoding="utf-8").splitlines():
            line = raw.split(";", 1)[0].strip()
            if not line:
                continue
            entries.append(line.split()[0])
        return build_palette_from_hex(entries)

    return build_palette_from_hex([p for p in text.split(",") if p.strip()])


def palette_names(colours: Iterable[RGBTuple]) -> Dict[str, str]:
    """Map '#rrggbb' to a display name; preset colours get their preset name."""
    out: Dict[str, str] = {}
    for rgb in colours:
        hx = rgb_to_hex(rgb)
        out[hx] = NAME_OF.get(hx, hx)
    return out


__all__ = [
    "PALETTE",
    "NAME_OF",
    "build_palette",
    "build_palette_from_hex",
    "default_palette",
    "parse_palette_spec",
    "palette_names",
]
