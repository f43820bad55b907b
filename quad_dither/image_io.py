# quad_dither/image_io.py
from __future__ import annotations

from pathlib import Path
from typing import Tuple

import numpy as np
from PIL import Image, ImageOps

from .core_types import U8Image, U8Mask, assert_rgba_pair

"""
Image I/O helpers (RGBA in, lossless PNG / WebP out).
"""

SAVE_FORMATS = {"png": ".png", "webp": ".webp"}


def load_image_rgba(path: Path) -> Tuple[U8Image, U8Mask]:
    """Decode any Pillow-readable image to (rgb, alpha); EXIF orientation applied."""
    with Image.open(path) as im0:
        im = ImageOps.exif_transpose(im0).convert("RGBA")
    arr = np.array(im, dtype=np.uint8)
    rgb = np.ascontiguousarray(arr[..., :3])
    alpha = np.ascontiguousarray(arr[..., 3])
    return rgb, alpha


def save_image_rgba(
    path: Path, rgb: np.ndarray, alpha: np.ndarray, fmt: str = "png"
) -> Path:
    """Write rgb + alpha losslessly; the suffix is corrected to match fmt."""
    fmt = fmt.lower()
    if fmt not in SAVE_FORMATS:
        raise ValueError(f"unsupported output format {fmt!r} (png or webp)")
    rgb, alpha = assert_rgba_pair(rgb, alpha)
    path = Path(path)
    if path.suffix.lower() != SAVE_FORMATS[fmt]:
        path = path.with_suffix(SAVE_FORMATS[fmt])

    H, W, _ = rgb.shape
    out = np.zeros((H, W, 4), dtype=np.uint8)
    out[..., :3] = rgb
    out[..., 3] = alpha
    im = Image.fromarray(out)
    if fmt == "webp":
        im.save(path, format="WEBP", lossless=True, quality=100)
    else:
        im.save(path, format="PNG")
    return path


__all__ = [
    "SAVE_FORMATS",
    "load_image_rgba",
    "save_image_rgba",
]
