import numpy as np
import pytest

from quad_dither.core_types import hex_to_rgb
from quad_dither.palette_data import (
    PALETTE,
    build_palette,
    default_palette,
    palette_names,
    parse_palette_spec,
)


def test_default_palette_matches_preset():
    pal = default_palette()
    assert len(pal) == len({hx for hx, _ in PALETTE})
    assert pal.colors()[0] == hex_to_rgb(PALETTE[0][0])


def test_build_palette_drops_duplicates_in_order():
    pal = build_palette([(0, 0, 0, 255), (255, 0, 0, 255), (0, 0, 0, 10)])
    assert pal.colors() == [(0, 0, 0), (255, 0, 0)]
    assert pal.lab.shape == (2, 3)


def test_palette_arrays_read_only():
    pal = build_palette([(1, 2, 3)])
    with pytest.raises(ValueError):
        pal.rgb[0, 0] = 9


def test_build_palette_rejects_out_of_range():
    with pytest.raises(ValueError):
        build_palette([(0, 0, 300)])


def test_empty_palette_is_representable():
    assert len(build_palette([])) == 0


def test_parse_hex_list():
    pal = parse_palette_spec("#f00, 000000")
    assert np.array_equal(pal.rgb, np.array([[255, 0, 0], [0, 0, 0]], dtype=np.uint8))


def test_parse_palette_file(tmp_path):
    path = tmp_path / "colours.txt"
    path.write_text("; my palette\n#ff0000  red\n\n#00ff00 ; green\n#ff0000\n")
    pal = parse_palette_spec(str(path))
    assert pal.colors() == [(255, 0, 0), (0, 255, 0)]


def test_invalid_hex():
    with pytest.raises(ValueError):
        hex_to_rgb("#12345")
    with pytest.raises(ValueError):
        parse_palette_spec("#zzzzzz")


def test_palette_names_fall_back_to_hex():
    names = palette_names([(0, 0, 0), (1, 2, 3)])
    assert names["#000000"] == "Black"
    assert names["#010203"] == "#010203"
