import numpy as np
import pytest

from quad_dither.colour_convert import rgb_to_lab
from quad_dither.config import (
    BilateralFilterConfig,
    DitheringConfig,
    GeneratedPalette,
    PresetPalette,
)
from quad_dither.core_types import EmptyPaletteError
from quad_dither.dither import (
    blend_factors,
    blend_passes,
    dither_image,
    quad_pass,
    resolve_palette,
)
from quad_dither.palette_data import build_palette
from quad_dither.quads import generate_quads
from quad_dither.spatial_lut import build_palette_lut, build_quad_lut

RED = (255, 0, 0)
BLACK = (0, 0, 0)
NO_FILTER = BilateralFilterConfig(enabled=False)


def _colours_in(rgb, alpha):
    return {tuple(int(v) for v in px) for px in rgb[alpha > 0]}


def test_solid_red_maps_to_solid_red_quads():
    rgb = np.zeros((4, 4, 3), dtype=np.uint8)
    rgb[...] = RED
    alpha = np.full((4, 4), 255, dtype=np.uint8)
    cfg = DitheringConfig(
        palette=PresetPalette(build_palette([RED, BLACK])),
        downscale_factor=1,
        center_weight=1.0,
        bilateral_filter=NO_FILTER,
        lut_resolution=32,
    )
    result = dither_image(rgb, alpha, cfg)
    assert result.rgb.shape == (8, 8, 3)
    assert (result.rgb == RED).all()
    assert (result.alpha == 255).all()


def test_transparent_image_stays_transparent():
    rgb = np.full((4, 4, 3), 200, dtype=np.uint8)
    alpha = np.zeros((4, 4), dtype=np.uint8)
    cfg = DitheringConfig(
        palette=PresetPalette(build_palette([RED, BLACK])),
        downscale_factor=1,
        use_multi_pass=True,
        lut_resolution=16,
    )
    result = dither_image(rgb, alpha, cfg)
    assert result.alpha.shape == (8, 8)
    assert (result.alpha == 0).all()
    assert (result.rgb == 0).all()


def test_empty_palettes_raise():
    rgb = np.zeros((4, 4, 3), dtype=np.uint8)
    alpha = np.zeros((4, 4), dtype=np.uint8)
    with pytest.raises(EmptyPaletteError):
        dither_image(rgb, alpha, DitheringConfig(palette=PresetPalette(build_palette([]))))
    with pytest.raises(EmptyPaletteError):
        dither_image(rgb, alpha, DitheringConfig(palette=GeneratedPalette(size=4)))


def test_blend_factor_boundaries():
    lum = np.array([0.0, 30.0, 50.0, 70.0, 100.0])
    assert np.allclose(blend_factors(lum, 30.0, 40.0), [1.0, 1.0, 0.5, 0.0, 0.0])
    assert blend_factors(np.array([30.5]), 30.0, 0.0).tolist() == [0.0]


def test_blend_passes_picks_by_darkness():
    pal = build_palette([RED, BLACK])
    lut = build_palette_lut(pal, 1.0, 0.5, 32)
    main = np.zeros((2, 8, 3), dtype=np.uint8)
    main[...] = RED
    dark = np.zeros((2, 8, 3), dtype=np.uint8)
    luminance = np.array([[10.0, 90.0, 50.0, 10.0]], dtype=np.float32)
    alpha = np.array([[255, 255, 255, 0]], dtype=np.uint8)
    out, out_alpha = blend_passes(
        main, dark, luminance, alpha, pal, lut, darkness_threshold=30.0, blend_range=40.0
    )
    assert (out[:, 0:2] == BLACK).all()
    assert (out[:, 2:4] == RED).all()
    assert _colours_in(out[:, 4:6], out_alpha[:, 4:6]) <= {RED, BLACK}
    assert (out_alpha[:, 6:8] == 0).all() and (out[:, 6:8] == 0).all()


def test_quad_pass_writes_2x2_blocks():
    pal = build_palette([RED, BLACK])
    quads = generate_quads(pal)
    lut = build_quad_lut(quads, 1.0, 0.5, 16)
    rgb = np.array([[RED, BLACK]], dtype=np.uint8)
    alpha = np.array([[255, 0]], dtype=np.uint8)
    out, out_alpha = quad_pass(
        rgb_to_lab(rgb), alpha, quads, lut, center_weight=0.5, neighborhood_size=1
    )
    assert out.shape == (2, 4, 3)
    assert out_alpha.tolist() == [[255, 255, 0, 0], [255, 255, 0, 0]]
    assert (out[:, 2:] == 0).all()
    assert _colours_in(out, out_alpha) <= {RED, BLACK}


def test_multi_pass_output_only_uses_palette():
    ramp = np.linspace(0, 255, 16, dtype=np.uint8)
    rgb = np.stack([np.tile(ramp, (8, 1))] * 3, axis=-1)
    rgb[..., 0] = np.flip(rgb[..., 0], axis=1)
    alpha = np.full((8, 16), 255, dtype=np.uint8)
    pal = build_palette([RED, BLACK, (250, 250, 250), (30, 60, 160)])
    cfg = DitheringConfig(
        palette=PresetPalette(pal),
        downscale_factor=2,
        use_multi_pass=True,
        lut_resolution=16,
    )
    result = dither_image(rgb, alpha, cfg, workers=2)
    assert result.rgb.shape == (8, 16, 3)
    assert _colours_in(result.rgb, result.alpha) <= set(pal.colors())


def test_generated_palette_pipeline():
    rgb = np.zeros((8, 8, 3), dtype=np.uint8)
    rgb[:, :4] = (220, 40, 40)
    rgb[:, 4:] = (40, 40, 220)
    alpha = np.full((8, 8), 255, dtype=np.uint8)
    cfg = DitheringConfig(
        palette=GeneratedPalette(size=4, refinement_iterations=2),
        downscale_factor=2,
        lut_resolution=16,
    )
    result = dither_image(rgb, alpha, cfg, seed=1)
    assert len(result.palette) == 2
    assert _colours_in(result.rgb, result.alpha) <= set(result.palette.colors())


def test_resolve_preset_returns_palette_unchanged():
    pal = build_palette([RED])
    rgb = np.zeros((2, 2, 3), dtype=np.uint8)
    alpha = np.full((2, 2), 255, dtype=np.uint8)
    assert resolve_palette(PresetPalette(pal), rgb, alpha, rgb_to_lab(rgb)) is pal


def test_dark_pass_pulls_shadows_darker():
    grey = (160, 160, 160)
    rgb = np.full((4, 4, 3), 50, dtype=np.uint8)
    alpha = np.full((4, 4), 255, dtype=np.uint8)
    base = dict(
        palette=PresetPalette(build_palette([BLACK, grey, (255, 255, 255)])),
        downscale_factor=1,
        bilateral_filter=NO_FILTER,
        lut_resolution=32,
    )
    single = dither_image(rgb, alpha, DitheringConfig(**base))
    multi = dither_image(rgb, alpha, DitheringConfig(use_multi_pass=True, **base))

    # main pass picks the black/grey checker, the darkened copy plain black
    assert _colours_in(single.rgb, single.alpha) == {BLACK, grey}
    assert _colours_in(multi.rgb, multi.alpha) == {BLACK}
    assert multi.rgb.astype(int).sum() < single.rgb.astype(int).sum()


def test_blend_passes_snaps_lab_mix_to_palette():
    dark_red = (128, 0, 0)
    pal = build_palette([RED, BLACK, dark_red])
    lut = build_palette_lut(pal, 1.0, 0.5, 32)
    main = np.zeros((2, 2, 3), dtype=np.uint8)
    main[...] = RED
    dark = np.zeros((2, 2, 3), dtype=np.uint8)
    luminance = np.array([[50.0]], dtype=np.float32)
    alpha = np.array([[255]], dtype=np.uint8)

    out, out_alpha = blend_passes(
        main, dark, luminance, alpha, pal, lut, darkness_threshold=30.0, blend_range=40.0
    )

    lab_main = rgb_to_lab(np.array([RED], dtype=np.uint8))
    lab_dark = rgb_to_lab(np.array([BLACK], dtype=np.uint8))
    mixed = lab_main + (lab_dark - lab_main) * 0.5
    expected = tuple(int(v) for v in pal.rgb[lut.lookup(mixed)[0]])
    assert expected == dark_red
    assert (out == expected).all()
    assert (out_alpha == 255).all()


class _NoLookupLut:
    def lookup(self, lab):
        raise AssertionError("transparent cells must not be looked up")


def test_transparent_cells_skip_lut_lookup():
    quads = generate_quads(build_palette([RED, BLACK]))
    lab = rgb_to_lab(np.full((3, 3, 3), 120, dtype=np.uint8))
    alpha = np.zeros((3, 3), dtype=np.uint8)
    out, out_alpha = quad_pass(
        lab, alpha, quads, _NoLookupLut(), center_weight=0.9, neighborhood_size=1
    )
    assert out.shape == (6, 6, 3)
    assert (out == 0).all() and (out_alpha == 0).all()
