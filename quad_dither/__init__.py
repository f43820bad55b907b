# quad_dither/__init__.py
"""
quad_dither package.

Purpose:
  Reduce images to a small palette rendered as 2x2 "quad" tiles for a
  pixel-art look. See dither_image.py for the CLI.

Public API:
  dither_image    : full pipeline entry point (returns DitherResult).
  DitheringConfig : run options; PresetPalette / GeneratedPalette pick the palette.
  colour_convert  : sRGB <-> Lab transforms and the Lab distance.
  palette_builder : k-means palette generation and refinement.
  quads           : 2x2 quad candidates for a palette.
  spatial_lut     : quad / palette lookup tables over Lab.
  preprocess      : downscale, luminance bias, bilateral filter.
  palette_data    : built-in palette and palette parsing.
  image_io        : Pillow load / save helpers.
  utils           : shared helpers (partitioning, logging).

Quick start:
  from quad_dither import dither_image, DitheringConfig, PresetPalette
  from quad_dither.palette_data import default_palette
  result = dither_image(rgb, alpha, DitheringConfig(palette=PresetPalette(default_palette())))
"""

__version__ = "0.1.0"

from . import colour_convert
from . import core_types
from . import palette_data
from . import palette_builder
from . import quads
from . import spatial_lut
from . import preprocess
from . import image_io
from . import utils

from .config import (  # noqa: E402
    BilateralFilterConfig,
    DitheringConfig,
    GeneratedPalette,
    PresetPalette,
)
from .core_types import EmptyPaletteError, Palette  # noqa: E402
from .dither import DitherResult, dither_image  # noqa: E402
from .palette_data import PALETTE  # noqa: E402

__all__ = [
    "__version__",
    "colour_convert",
    "core_types",
    "palette_data",
    "palette_builder",
    "quads",
    "spatial_lut",
    "preprocess",
    "image_io",
    "utils",
    "PALETTE",
    "Palette",
    "EmptyPaletteError",
    "BilateralFilterConfig",
    "DitheringConfig",
    "GeneratedPalette",
    "PresetPalette",
    "DitherResult",
    "dither_image",
]
