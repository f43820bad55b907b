import numpy as np
import pytest

from quad_dither import spatial_lut
from quad_dither.colour_convert import to_lab
from quad_dither.core_types import EmptyPaletteError
from quad_dither.palette_data import build_palette
from quad_dither.quads import generate_quads, quad_cell_indices
from quad_dither.spatial_lut import (
    CoarseGrid,
    best_candidates,
    build_palette_lut,
    build_quad_lut,
    grayscale_penalty,
    warmth_penalty,
)

RED = (255, 0, 0)
BLACK = (0, 0, 0)


def test_candidate_count_before_dedup():
    assert quad_cell_indices(3).shape == (3 + 4 * 3, 4)
    assert quad_cell_indices(1).shape == (1, 4)


def test_pair_patterns_share_an_average():
    quads = generate_quads(build_palette([RED, BLACK]))
    assert len(quads) == 3
    assert quads[0].is_solid() and quads[1].is_solid()
    assert quads[2].cells == (RED, BLACK, BLACK, RED)


def test_distinct_averages_kept():
    quads = generate_quads(build_palette([RED, (0, 255, 0), (0, 0, 255)]))
    assert len(quads) == 6


def test_average_is_mean_of_cells():
    quads = generate_quads(build_palette([RED, BLACK, (40, 90, 200), (250, 250, 250)]))
    assert np.allclose(quads.lab_average, quads.lab_cells.mean(axis=1), atol=1e-4)
    keys = np.rint(quads.lab_average)
    assert np.unique(keys, axis=0).shape[0] == len(quads)


def test_warmth_penalty():
    target = np.array([50.0, 0.0, 10.0])
    assert float(warmth_penalty(target, np.array([50.0, 0.0, 0.0]), 2.0)) == pytest.approx(200.0)
    saturated = np.array([50.0, 30.0, 0.0])
    assert warmth_penalty(saturated, np.array([50.0, 0.0, 20.0]), 2.0) == 0.0


def test_grayscale_penalty():
    grey = np.array([50.0, 3.0, 4.0])
    cand = np.array([50.0, 6.0, 8.0])
    assert float(grayscale_penalty(grey, cand, 0.5)) == pytest.approx(50.0)
    tinted = np.array([50.0, 11.0, 0.0])
    assert grayscale_penalty(tinted, cand, 0.5) == 0.0


def test_first_candidate_wins_ties():
    targets = np.array([[50.0, 0.0, 0.0]], dtype=np.float32)
    cands = np.array([[50.0, 1.0, 0.0], [50.0, -1.0, 0.0]], dtype=np.float32)
    assert best_candidates(targets, cands, 0.0, 0.0).tolist() == [0]


def test_coarse_grid_neighbourhood_order():
    # coarse cell (5,5,5) on a 16 grid: L centre 34.375, a/b centre -37.5
    lab = np.array(
        [
            [34.375, -37.5, -22.5],  # (5,5,6)
            [34.375, -37.5, -37.5],  # (5,5,5)
            [40.625, -37.5, -37.5],  # (6,5,5)
        ],
        dtype=np.float32,
    )
    grid = CoarseGrid(lab, 16)
    assert grid.neighbourhood(5, 5, 5).tolist() == [1, 2, 0]
    assert grid.neighbourhood(0, 15, 0).size == 0


def test_quad_lut_deterministic_and_complete():
    pal = build_palette([RED, BLACK, (40, 90, 200), (250, 250, 250), (20, 160, 60)])
    quads = generate_quads(pal)
    lut_a = build_quad_lut(quads, 1.0, 0.5, 16)
    lut_b = build_quad_lut(quads, 1.0, 0.5, 16)
    lut_threaded = build_quad_lut(quads, 1.0, 0.5, 16, workers=4)
    assert np.array_equal(lut_a.table, lut_b.table)
    assert np.array_equal(lut_a.table, lut_threaded.table)
    assert lut_a.table.min() >= 0 and lut_a.table.max() < len(quads)


def test_single_colour_fills_every_cell():
    quads = generate_quads(build_palette([RED]))
    lut = build_quad_lut(quads, 1.0, 0.5, 16)
    assert (lut.table == 0).all()


def test_lookup_clamps_out_of_box():
    pal = build_palette([RED, BLACK, (250, 250, 250)])
    lut = build_quad_lut(generate_quads(pal), 1.0, 0.5, 8)
    got = lut.lookup(np.array([[150.0, 500.0, -500.0], [-5.0, -500.0, 500.0]]))
    assert got.tolist() == [lut.table[7, 7, 0], lut.table[0, 0, 7]]


def test_palette_lut_finds_exact_colours():
    pal = build_palette([RED, BLACK, (250, 250, 250)])
    lut = build_palette_lut(pal, 1.0, 0.5, 32)
    lab = np.stack([to_lab(RED), to_lab(BLACK), to_lab((250, 250, 250))])
    assert lut.lookup(lab).tolist() == [0, 1, 2]
    threaded = build_palette_lut(pal, 1.0, 0.5, 32, workers=3)
    assert np.array_equal(lut.table, threaded.table)


def test_empty_inputs_rejected():
    empty = build_palette([])
    with pytest.raises(EmptyPaletteError):
        build_palette_lut(empty, 1.0, 0.5, 8)
    with pytest.raises(EmptyPaletteError):
        build_quad_lut(generate_quads(empty), 1.0, 0.5, 8)


def test_penalties_apply_at_chroma_cutoffs():
    cand = np.array([50.0, 6.0, 8.0])
    at_warm = np.array([50.0, 0.0, 25.0])
    past_warm = np.array([50.0, 0.0, 25.01])
    assert float(warmth_penalty(at_warm, cand, 1.0)) == pytest.approx(17.0 ** 2)
    assert float(warmth_penalty(past_warm, cand, 1.0)) == 0.0

    at_grey = np.array([50.0, 0.0, 10.0])
    past_grey = np.array([50.0, 0.0, 10.01])
    assert float(grayscale_penalty(at_grey, cand, 1.0)) == pytest.approx(100.0)
    assert float(grayscale_penalty(past_grey, cand, 1.0)) == 0.0


def _coarse_centre(l_idx, a_idx, b_idx):
    # centre of a coarse cell on a 16 grid
    return [
        (l_idx + 0.5) * 100.0 / 16,
        -120.0 + (a_idx + 0.5) * 15.0,
        -120.0 + (b_idx + 0.5) * 15.0,
    ]


def test_coarse_grid_nearest_ring_stays_local():
    lab = np.array(
        [_coarse_centre(8, 8, 8), _coarse_centre(0, 8, 8), _coarse_centre(15, 8, 8)],
        dtype=np.float32,
    )
    grid = CoarseGrid(lab, 16)
    assert grid.neighbourhood(0, 0, 0).size == 0
    assert grid.ring_radius(0, 0, 0) == 8
    # same b and a offset, so the smaller L offset comes first
    assert grid.nearest_ring(0, 0, 0).tolist() == [1, 0]
    assert grid.ring_radius(8, 8, 8) == 1
    assert grid.nearest_ring(8, 8, 8).tolist() == [0]
    assert grid.ring_radius(15, 15, 15) == 7
    assert grid.nearest_ring(15, 15, 15).tolist() == [0, 2]


def test_sparse_palette_lut_never_scores_every_quad(monkeypatch):
    quads = generate_quads(build_palette([BLACK, (255, 255, 255)]))
    assert len(quads) == 3
    black_avg = quads.lab_average[0].astype(np.float32)
    white_avg = quads.lab_average[1].astype(np.float32)

    seen = []
    real_best = spatial_lut.best_candidates

    def recording(targets, candidates, warmth, gray):
        seen.append(np.array(candidates, copy=True))
        return real_best(targets, candidates, warmth, gray)

    monkeypatch.setattr(spatial_lut, "best_candidates", recording)
    lut = build_quad_lut(quads, 1.0, 0.5, 16)

    assert seen and all(c.shape[0] >= 1 for c in seen)
    has_black = [bool(np.any(np.all(c == black_avg, axis=1))) for c in seen]
    has_white = [bool(np.any(np.all(c == white_avg, axis=1))) for c in seen]
    assert not all(has_black) and not all(has_white)
    assert lut.table.min() >= 0 and lut.table.max() < len(quads)
    # dark corner of the box never reaches the white quad
    assert lut.table[0, 0, 0] != 1
