import pytest

from quad_dither.config import (
    BilateralFilterConfig,
    DitheringConfig,
    GeneratedPalette,
    PresetPalette,
)
from quad_dither.palette_data import build_palette


def test_defaults():
    cfg = DitheringConfig()
    assert isinstance(cfg.palette, GeneratedPalette)
    assert cfg.palette.size == 64 and cfg.palette.refinement_iterations == 5
    assert cfg.downscale_factor == 4
    assert cfg.center_weight == 0.9
    assert cfg.neighborhood_size == 1
    assert cfg.darkness_threshold == 30.0 and cfg.blend_range == 40.0
    assert cfg.bilateral_filter == BilateralFilterConfig(True, 2, 2.0, 10.0)
    assert cfg.warmth_penalty == 1.0 and cfg.grayscale_penalty == 0.5
    assert cfg.lut_resolution == 128
    assert cfg.validate() is cfg


@pytest.mark.parametrize(
    "kwargs",
    [
        {"downscale_factor": 0},
        {"center_weight": 1.5},
        {"center_weight": -0.1},
        {"neighborhood_size": -1},
        {"lut_resolution": 1},
        {"bilateral_filter": BilateralFilterConfig(radius=-1)},
        {"bilateral_filter": BilateralFilterConfig(spatial_sigma=0.0)},
        {"palette": None},
        {"palette": GeneratedPalette(size=0)},
    ],
)
def test_invalid_values_raise(kwargs):
    with pytest.raises(ValueError):
        DitheringConfig(**kwargs).validate()


def test_disabled_filter_skips_sigma_checks():
    cfg = DitheringConfig(
        palette=PresetPalette(build_palette([(0, 0, 0)])),
        bilateral_filter=BilateralFilterConfig(enabled=False, color_sigma=0.0),
    )
    assert cfg.validate() is cfg
