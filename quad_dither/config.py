# quad_dither/config.py
from __future__ import annotations

"""
Run configuration.

Records:
  BilateralFilterConfig : edge-preserving pre-filter settings
  PresetPalette         : explicit palette colours
  GeneratedPalette      : palette clustered from the image, then refined
  DitheringConfig       : everything the quad dither pipeline reads

Defaults mirror the values the tool has always shipped with. Tunables that
are not user options live in constants.py.
"""

from dataclasses import dataclass, field
from typing import Union

from .constants import LUT_RESOLUTION
from .core_types import Palette


@dataclass(frozen=True)
class BilateralFilterConfig:
    enabled: bool = True
    radius: int = 2  # window radius in downscaled pixels
    spatial_sigma: float = 2.0  # falloff with pixel distance
    color_sigma: float = 10.0  # falloff with Lab distance


@dataclass(frozen=True, eq=False)
class PresetPalette:
    palette: Palette


@dataclass(frozen=True)
class GeneratedPalette:
    size: int = 64
    refinement_iterations: int = 5
    max_iterations: int = 10
    sample_size: int = 20_000


PaletteSource = Union[PresetPalette, GeneratedPalette]


@dataclass(frozen=True, eq=False)
class DitheringConfig:
    """
    Options for dither_image().

    center_weight     : 1.0 ignores the neighbourhood; 0.0 uses only its mean
    luminance_bias    : negative darkens, positive lightens (nominal -0.5..0.5)
    neighborhood_size : radius on the downscaled image (0 = single pixel)
    use_multi_pass    : add a darker second pass blended into the shadows
    darkness_threshold: Lab L at or below which the dark pass fully applies
    blend_range       : L units over which the dark pass fades out
    """

    palette: PaletteSource = field(default_factory=GeneratedPalette)
    downscale_factor: int = 4
    center_weight: float = 0.9
    luminance_bias: float = 0.0
    neighborhood_size: int = 1
    use_multi_pass: bool = False
    darkness_threshold: float = 30.0
    blend_range: float = 40.0
    bilateral_filter: BilateralFilterConfig = field(
        default_factory=BilateralFilterConfig
    )
    warmth_penalty: float = 1.0
    grayscale_penalty: float = 0.5
    lut_resolution: int = LUT_RESOLUTION

    def validate(self) -> "DitheringConfig":
        """Raise ValueError for out-of-range options; returns self for chaining."""
        if not isinstance(self.palette, (PresetPalette, GeneratedPalette)):
            raise ValueError("palette source required (PresetPalette or GeneratedPalette)")
        if isinstance(self.palette, GeneratedPalette):
            gp = self.palette
            if gp.size < 1:
                raise ValueError(f"generated palette size must be >= 1, got {gp.size}")
            if gp.refinement_iterations < 0 or gp.max_iterations < 0:
                raise ValueError("iteration counts must be >= 0")
            if gp.sample_size < 1:
                raise ValueError(f"sample size must be >= 1, got {gp.sample_size}")
        if self.downscale_factor < 1:
            raise ValueError(
                f"downscale factor must be >= 1, got {self.downscale_factor}"
            )
        if not 0.0 <= self.center_weight <= 1.0:
            raise ValueError(f"center weight must be in [0,1], got {self.center_weight}")
        if self.neighborhood_size < 0:
            raise ValueError(
                f"neighborhood size must be >= 0, got {self.neighborhood_size}"
            )
        if self.lut_resolution < 2:
            raise ValueError(f"LUT resolution must be >= 2, got {self.lut_resolution}")
        if self.warmth_penalty < 0 or self.grayscale_penalty < 0:
            raise ValueError("penalty strengths must be >= 0")
        bf = self.bilateral_filter
        if bf.enabled:
            if bf.radius < 0:
                raise ValueError(f"bilateral radius must be >= 0, got {bf.radius}")
            if bf.spatial_sigma <= 0 or bf.color_sigma <= 0:
                raise ValueError("bilateral sigmas must be > 0")
        return self


__all__ = [
    "BilateralFilterConfig",
    "PresetPalette",
    "GeneratedPalette",
    "PaletteSource",
    "DitheringConfig",
]
