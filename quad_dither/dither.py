# quad_dither/dither.py
from __future__ import annotations

"""
Quad dithering pipeline.

Stages:
  1. Downscale by an integer factor (transparent pixels ignored), optional bias
  2. Lab conversion, palette resolution (preset or generated + refined)
  3. Quad generation, quad LUT (+ palette LUT for multi-pass)
  4. Bilateral pre-filter
  5. Main pass: per downscaled pixel, look up the best 2x2 quad
  6. Optional dark pass on a darkened copy, blended into the shadows and
     snapped back onto the palette

The output is exactly twice the downscaled size and only contains palette
colours (alpha 255) or fully transparent pixels.
"""

import time
from typing import NamedTuple, Optional, TextIO, Tuple

import numpy as np

from .colour_convert import rgb_to_lab, rgb_to_lab_threaded
from .config import DitheringConfig, GeneratedPalette, PaletteSource, PresetPalette
from .constants import (
    BIAS_EPSILON,
    BLEND_KEEP_DARK,
    BLEND_KEEP_MAIN,
    BLEND_RANGE_MIN,
    DARK_PASS_BIAS,
)
from .core_types import EmptyPaletteError, Lab, Palette, U8Image, U8Mask, assert_rgba_pair
from .palette_builder import generate_palette, refine_palette
from .preprocess import (
    apply_luminance_bias,
    bilateral_filter,
    downscale_box,
    neighbourhood_mean,
)
from .quads import QuadSet, generate_quads
from .spatial_lut import Lut, build_palette_lut, build_quad_lut
from .utils import debug_log, format_seconds_compact, key_value_pairs_to_string


class DitherResult(NamedTuple):
    rgb: U8Image  # (2h, 2w, 3)
    alpha: U8Mask  # (2h, 2w), 0 or 255
    palette: Palette


def _upsample_2x(values: np.ndarray) -> np.ndarray:
    """Repeat every cell into a 2x2 block."""
    return np.repeat(np.repeat(values, 2, axis=0), 2, axis=1)


# Passes


def quad_pass(
    lab_grid: Lab,
    alpha: U8Mask,
    quads: QuadSet,
    quad_lut: Lut,
    *,
    center_weight: float,
    neighborhood_size: int,
) -> Tuple[U8Image, U8Mask]:
    """
    Write the best quad for every visible cell into a 2x-sized image.

    Target Lab is lerp(neighbourhood mean, centre, center_weight); a radius of
    0 or a weight of 1 uses the centre value alone. Transparent cells become
    transparent 2x2 blocks and are never looked up.
    """
    lab = np.asarray(lab_grid, dtype=np.float32)
    height, width = alpha.shape
    visible = alpha != 0

    if neighborhood_size <= 0 or center_weight >= 1.0:
        target = lab
    else:
        mean = neighbourhood_mean(lab, neighborhood_size)
        target = mean + (lab - mean) * np.float32(center_weight)

    cells = np.zeros((height, width, 4, 3), dtype=np.uint8)
    if np.any(visible):
        cells[visible] = quads.rgb[quad_lut.lookup(target[visible])]

    # TL, TR, BL, BR -> 2x2 block
    rgb_out = (
        cells.reshape(height, width, 2, 2, 3)
        .transpose(0, 2, 1, 3, 4)
        .reshape(height * 2, width * 2, 3)
    )
    alpha_out = _upsample_2x(np.where(visible, 255, 0).astype(np.uint8))
    return np.ascontiguousarray(rgb_out), alpha_out


def blend_factors(
    luminance: np.ndarray, darkness_threshold: float, blend_range: float
) -> np.ndarray:
    """1 at or below the threshold, fading linearly to 0 over blend_range L units."""
    span = max(BLEND_RANGE_MIN, float(blend_range))
    lum = np.asarray(luminance, dtype=np.float32)
    fade = 1.0 - np.clip((lum - darkness_threshold) / span, 0.0, 1.0)
    return np.where(lum <= darkness_threshold, 1.0, fade).astype(np.float32)


def blend_passes(
    main_rgb: U8Image,
    dark_rgb: U8Image,
    luminance: np.ndarray,
    alpha: U8Mask,
    palette: Palette,
    palette_lut: Lut,
    *,
    darkness_threshold: float,
    blend_range: float,
) -> Tuple[U8Image, U8Mask]:
    """
    Merge the main and dark passes by per-cell darkness.

    luminance and alpha are at the downscaled size; main_rgb and dark_rgb at
    twice that. Factors <= 0.01 keep main, >= 0.99 keep dark; anything between
    is a Lab lerp snapped to the nearest palette colour.
    """
    factor = _upsample_2x(blend_factors(luminance, darkness_threshold, blend_range))
    visible = _upsample_2x(alpha != 0)

    out = np.array(main_rgb, dtype=np.uint8, copy=True)
    take_dark = visible & (factor >= BLEND_KEEP_DARK)
    out[take_dark] = dark_rgb[take_dark]

    mix = visible & (factor > BLEND_KEEP_MAIN) & (factor < BLEND_KEEP_DARK)
    if np.any(mix):
        lab_a = rgb_to_lab(main_rgb[mix])
        lab_b = rgb_to_lab(dark_rgb[mix])
        t = factor[mix][:, None]
        blended = lab_a + (lab_b - lab_a) * t
        out[mix] = palette.rgb[palette_lut.lookup(blended)]

    out[~visible] = 0
    alpha_out = np.where(visible, 255, 0).astype(np.uint8)
    return out, alpha_out


# Palette


def resolve_palette(
    source: PaletteSource,
    rgb: U8Image,
    alpha: U8Mask,
    lab_grid: Lab,
    *,
    seed: Optional[int] = None,
    workers: int = 1,
) -> Palette:
    """
    Palette for this run. Generated palettes are clustered from rgb/alpha and
    then refined against the visible cells of lab_grid.
    """
    if isinstance(source, PresetPalette):
        return source.palette
    if not isinstance(source, GeneratedPalette):
        raise ValueError(f"unsupported palette source: {type(source).__name__}")

    palette = generate_palette(
        rgb,
        alpha,
        source.size,
        source.max_iterations,
        source.sample_size,
        seed=seed,
        workers=workers,
    )
    if source.refinement_iterations > 0 and len(palette) > 0:
        palette = refine_palette(
            lab_grid,
            palette,
            source.refinement_iterations,
            mask=alpha != 0,
            seed=seed,
            workers=workers,
        )
    return palette


# Pipeline


def dither_image(
    rgb: U8Image,
    alpha: U8Mask,
    config: DitheringConfig,
    *,
    workers: int = 1,
    seed: Optional[int] = None,
    debug: bool = False,
    log_file: Optional[TextIO] = None,
) -> DitherResult:
    """
    Run the full quad dither on an (rgb, alpha) image.

    Debug stage timings go to log_file (stdout when None).

    Raises:
      EmptyPaletteError: preset palette is empty, or nothing could be sampled
      ValueError: invalid config
      TypeError: malformed image arrays
    """
    rgb, alpha = assert_rgba_pair(rgb, alpha)
    config.validate()
    if isinstance(config.palette, PresetPalette) and len(config.palette.palette) == 0:
        raise EmptyPaletteError("preset palette has no colours")

    t_start = t_stage = time.perf_counter()

    def stage_done(name: str) -> None:
        nonlocal t_stage
        now = time.perf_counter()
        if debug:
            debug_log(
                f"{name} done in {format_seconds_compact(now - t_stage)}", log_file
            )
        t_stage = now

    # Downscale
    down_rgb, down_alpha = downscale_box(rgb, alpha, config.downscale_factor)
    if abs(config.luminance_bias) > BIAS_EPSILON:
        down_rgb = apply_luminance_bias(down_rgb, config.luminance_bias)
    down_lab = rgb_to_lab_threaded(down_rgb, workers)
    if debug:
        h, w = down_alpha.shape
        debug_log(
            key_value_pairs_to_string(
                [
                    ("Downscaled", f"{w}x{h}"),
                    ("Visible", int(np.count_nonzero(down_alpha))),
                    ("Output", f"{2 * w}x{2 * h}"),
                ]
            ),
            log_file,
        )
    stage_done("downscale")

    # Palette + lookup tables
    palette = resolve_palette(
        config.palette, down_rgb, down_alpha, down_lab, seed=seed, workers=workers
    )
    if len(palette) == 0:
        raise EmptyPaletteError("no palette colours (image has no opaque pixels?)")
    quads = generate_quads(palette)
    quad_lut = build_quad_lut(
        quads,
        config.warmth_penalty,
        config.grayscale_penalty,
        config.lut_resolution,
        workers=workers,
    )
    palette_lut: Optional[Lut] = None
    if config.use_multi_pass:
        palette_lut = build_palette_lut(
            palette,
            config.warmth_penalty,
            config.grayscale_penalty,
            config.lut_resolution,
            workers=workers,
        )
    if debug:
        debug_log(
            key_value_pairs_to_string(
                [
                    ("Palette", len(palette)),
                    ("Quads", len(quads)),
                    ("LUT", config.lut_resolution),
                ]
            ),
            log_file,
        )
    stage_done("palette + LUTs")

    # Pre-filter
    bf = config.bilateral_filter
    if bf.enabled:
        filtered = bilateral_filter(
            down_lab, bf.radius, bf.spatial_sigma, bf.color_sigma, workers=workers
        )
    else:
        filtered = down_lab
    stage_done("preprocess")

    main_rgb, main_alpha = quad_pass(
        filtered,
        down_alpha,
        quads,
        quad_lut,
        center_weight=config.center_weight,
        neighborhood_size=config.neighborhood_size,
    )
    stage_done("main pass")

    if not config.use_multi_pass or palette_lut is None:
        if debug:
            debug_log(
                f"total {format_seconds_compact(time.perf_counter() - t_start)}", log_file
            )
        return DitherResult(main_rgb, main_alpha, palette)

    dark_lab = rgb_to_lab_threaded(apply_luminance_bias(down_rgb, DARK_PASS_BIAS), workers)
    dark_rgb, _dark_alpha = quad_pass(
        dark_lab,
        down_alpha,
        quads,
        quad_lut,
        center_weight=config.center_weight,
        neighborhood_size=config.neighborhood_size,
    )
    stage_done("dark pass")

    out_rgb, out_alpha = blend_passes(
        main_rgb,
        dark_rgb,
        down_lab[..., 0],
        down_alpha,
        palette,
        palette_lut,
        darkness_threshold=config.darkness_threshold,
        blend_range=config.blend_range,
    )
    stage_done("blend")
    if debug:
        debug_log(
            f"total {format_seconds_compact(time.perf_counter() - t_start)}", log_file
        )
    return DitherResult(out_rgb, out_alpha, palette)


__all__ = [
    "DitherResult",
    "quad_pass",
    "blend_factors",
    "blend_passes",
    "resolve_palette",
    "dither_image",
]
