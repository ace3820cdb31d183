import numpy as np
import pytest

from ntscj_colorengine import M_SRGB_TO_XYZ, ColorPipeline, GamutMatrices, Pixel8
from ntscj_optimizer import (
    AXIAL_OFFSETS,
    MOORE_OFFSETS,
    ConvergenceError,
    DiscreteOptimizer,
    Neighborhood,
    _replay_scan,
)


@pytest.fixture(scope="module")
def moore():
    return DiscreteOptimizer()


@pytest.fixture(scope="module")
def axial():
    return DiscreteOptimizer(neighborhood=Neighborhood.AXIAL)


# --- neighborhoods ---

def test_moore_offsets_enumeration_order():
    assert MOORE_OFFSETS.shape == (26, 3)
    assert tuple(MOORE_OFFSETS[0]) == (-1, -1, -1)
    assert tuple(MOORE_OFFSETS[-1]) == (1, 1, 1)
    assert not np.any(np.all(MOORE_OFFSETS == 0, axis=1))
    assert len({tuple(o) for o in MOORE_OFFSETS}) == 26


def test_axial_offsets_are_unit_steps():
    assert AXIAL_OFFSETS.shape == (6, 3)
    np.testing.assert_array_equal(np.abs(AXIAL_OFFSETS).sum(axis=1), 1)


@pytest.mark.parametrize("center, expected", [
    ((128, 128, 128), 26),
    ((0, 0, 0), 7),
    ((255, 255, 255), 7),
    ((0, 255, 128), 11),
])
def test_moore_candidates_stay_in_range(moore, center, expected):
    offsets, pixels = moore.neighbors(Pixel8(*center))
    assert len(pixels) == expected
    assert pixels.min() >= 0 and pixels.max() <= 255
    np.testing.assert_array_equal(pixels, np.array(center) + offsets)


def test_axial_candidates_at_corner(axial):
    _, pixels = axial.neighbors(Pixel8(0, 0, 0))
    assert [tuple(p) for p in pixels] == [(1, 0, 0), (0, 1, 0), (0, 0, 1)]


def test_forbidden_offset_is_skipped(moore):
    offsets, _ = moore.neighbors(Pixel8(100, 100, 100), forbidden=(1, 1, 1))
    assert len(offsets) == 25
    assert (1, 1, 1) not in {tuple(o) for o in offsets}


# --- acceptance ---

def test_replay_scan_tie_goes_to_later_candidate():
    chosen, best = _replay_scan(np.array([3.0, 2.0, 2.0, 5.0]), 4.0, True)
    assert (chosen, best) == (2, 2.0)


def test_replay_scan_strict_keeps_earlier_candidate():
    chosen, best = _replay_scan(np.array([3.0, 2.0, 2.0, 5.0]), 4.0, False)
    assert (chosen, best) == (1, 2.0)


def test_replay_scan_equal_to_center():
    errors = np.array([4.0])
    assert _replay_scan(errors, 4.0, True)[0] == 0
    assert _replay_scan(errors, 4.0, False)[0] == -1


def test_replay_scan_nothing_better():
    assert _replay_scan(np.array([5.0, 6.0]), 4.0, True) == (-1, 4.0)


# --- search ---

def test_black_is_already_optimal(moore):
    result = moore.search(Pixel8(0, 0, 0))
    assert result.guess == Pixel8(0, 0, 0)
    assert result.error == 0.0
    assert result.iterations == 1
    assert result.moves == 0


@pytest.mark.parametrize("target", [Pixel8(0, 0, 0), Pixel8(255, 255, 255)])
@pytest.mark.parametrize("neighborhood", list(Neighborhood))
def test_seed_is_never_worsened(target, neighborhood):
    result = DiscreteOptimizer(neighborhood=neighborhood).search(target)
    assert result.seed == target
    assert result.error <= result.seed_error


def test_mid_gray_converges_quickly(moore):
    result = moore.search(Pixel8(0x80, 0x80, 0x80))
    assert result.iterations < 100
    assert result.error < result.seed_error or result.moves == 0


@pytest.mark.parametrize("target", [Pixel8(0x33, 0x66, 0xCC), Pixel8(0xFF, 0x80, 0x00)])
def test_search_is_deterministic(moore, target):
    assert moore.search(target) == moore.search(target)


@pytest.mark.parametrize("target", [Pixel8(0x33, 0x66, 0xCC), Pixel8(0x20, 0xA0, 0x40)])
def test_moore_history_is_non_increasing(moore, target):
    result = moore.search(target)
    assert all(b <= a for a, b in zip(result.history, result.history[1:]))
    assert result.history[0] == result.seed_error
    assert result.history[-1] == result.error


@pytest.mark.parametrize("target", [Pixel8(0x33, 0x66, 0xCC), Pixel8(0x20, 0xA0, 0x40)])
def test_axial_history_is_strictly_decreasing(axial, target):
    result = axial.search(target)
    assert all(b < a for a, b in zip(result.history, result.history[1:]))
    assert result.neighborhood is Neighborhood.AXIAL


def test_error_matches_pipeline(moore):
    target = Pixel8(0x33, 0x66, 0xCC)
    result = moore.search(target)
    goal = moore.pipeline.goal_from_srgb(target)
    assert result.error == moore.pipeline.distance(result.guess, goal)


def test_explicit_seed_walks_to_target(moore):
    result = moore.search(Pixel8(128, 128, 128), seed=Pixel8(0, 0, 0))
    assert result.seed == Pixel8(0, 0, 0)
    assert result.moves > 0
    assert result.error < result.seed_error
    assert all(abs(c - 128) <= 2 for c in result.guess)


def test_clipped_plateau_terminates(moore):
    # Pure red sits on a region that clips to the same sRGB red
    result = moore.search(Pixel8(255, 0, 0))
    assert result.seed_error == 0.0
    assert result.error == 0.0
    assert all(e == 0.0 for e in result.history)


def test_iteration_cap_raises():
    # A zero gamut sends every pixel to black, so every move ties
    flat = ColorPipeline(GamutMatrices(np.zeros((3, 3)), M_SRGB_TO_XYZ))
    optimizer = DiscreteOptimizer(flat, max_iterations=5)
    with pytest.raises(ConvergenceError, match="did not converge within 5 sweeps"):
        optimizer.search(Pixel8(0, 0, 0))


def test_rejects_non_positive_cap():
    with pytest.raises(ValueError):
        DiscreteOptimizer(max_iterations=0)


def test_neighborhood_accepts_string_value():
    assert DiscreteOptimizer(neighborhood="axial").neighborhood is Neighborhood.AXIAL


@pytest.mark.parametrize("target", [Pixel8(300, -4, 0), (256, 0, 0), (0, 0, -1)])
def test_rejects_out_of_range_target(moore, target):
    with pytest.raises(ValueError, match=r"\[0, 255\]"):
        moore.search(target)


def test_rejects_out_of_range_seed(moore):
    with pytest.raises(ValueError, match=r"\[0, 255\]"):
        moore.search(Pixel8(128, 128, 128), seed=Pixel8(-7, 128, 128))
