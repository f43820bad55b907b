import numpy as np
import pytest

from quad_dither.image_io import load_image_rgba, save_image_rgba


def _sample():
    rgb = np.zeros((3, 4, 3), dtype=np.uint8)
    rgb[..., 0] = np.arange(12, dtype=np.uint8).reshape(3, 4) * 20
    rgb[..., 2] = 77
    alpha = np.full((3, 4), 255, dtype=np.uint8)
    return rgb, alpha


def test_png_round_trip_keeps_alpha(tmp_path):
    rgb, alpha = _sample()
    alpha[0, 0] = 0
    alpha[1, 1] = 90
    path = save_image_rgba(tmp_path / "out.png", rgb, alpha)
    rgb2, alpha2 = load_image_rgba(path)
    assert np.array_equal(alpha2, alpha)
    assert np.array_equal(rgb2[alpha > 0], rgb[alpha > 0])


def test_webp_is_lossless(tmp_path):
    rgb, alpha = _sample()
    path = save_image_rgba(tmp_path / "out", rgb, alpha, fmt="webp")
    assert path.suffix == ".webp"
    rgb2, alpha2 = load_image_rgba(path)
    assert np.array_equal(rgb2, rgb) and np.array_equal(alpha2, alpha)


def test_suffix_corrected_and_format_checked(tmp_path):
    rgb, alpha = _sample()
    assert save_image_rgba(tmp_path / "out.jpg", rgb, alpha).suffix == ".png"
    with pytest.raises(ValueError):
        save_image_rgba(tmp_path / "out.gif", rgb, alpha, fmt="gif")
