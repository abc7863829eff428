# ==================================================
# ============== TESTS: Padded view ================
# ==================================================
from __future__ import annotations

import numpy as np
import pytest

from ndfield.core.interval import Interval
from ndfield.core.sources import ExtendedSource, FunctionSource
from ndfield.operators.padded_view import PaddedView


# ===================
# Tests
# ===================

def test_plane_without_padding_matches_input(volume_u8: np.ndarray):
    view = PaddedView(volume_u8, Interval.from_array(volume_u8))
    plane = view.plane((0, 0, 2, 1))
    assert plane.dtype == np.float32
    assert view.plane_shape == volume_u8.shape[:2]
    np.testing.assert_array_equal(plane, volume_u8[:, :, 2, 1])


def test_padded_plane_reads_halo_from_boundary(volume_f32: np.ndarray):
    view = PaddedView(volume_f32, Interval.from_array(volume_f32), padding=2, boundary="nearest")
    plane = view.plane((0, 0, 1))
    assert plane.shape == (volume_f32.shape[0] + 4, volume_f32.shape[1] + 4)
    expected = ExtendedSource(volume_f32, boundary="nearest").read(
        Interval((-2, -2, 1), (volume_f32.shape[0] + 1, volume_f32.shape[1] + 1, 1))
    )
    np.testing.assert_array_equal(plane, expected[..., 0])
    np.testing.assert_array_equal(view.unpadded(plane), volume_f32[:, :, 1])


def test_halo_comes_from_real_neighbours_inside_larger_input(volume_f32: np.ndarray):
    """
    An output block inside the input reads its halo from the surrounding data.
    """
    block = Interval((2, 2, 0), (4, 5, 3))
    view = PaddedView(volume_f32, block, padding=2)
    np.testing.assert_array_equal(view.plane((2, 2, 3)), volume_f32[0:7, 0:8, 3])


def test_bounded_source_without_halo_coverage_fails_fast(volume_f32: np.ndarray):
    with pytest.raises(IndexError):
        PaddedView(volume_f32, Interval.from_array(volume_f32), padding=1)


def test_plane_is_a_decoupled_copy(volume_f32: np.ndarray):
    before = volume_f32.copy()
    view = PaddedView(volume_f32, Interval.from_array(volume_f32))
    plane = view.plane((0, 0, 0))
    plane[...] = -1.0
    np.testing.assert_array_equal(volume_f32, before)


def test_get_and_position_checks(volume_f32: np.ndarray):
    view = PaddedView(volume_f32, Interval.from_array(volume_f32), padding=1, boundary="zero")
    assert view.get((-1, -1, 0)) == 0.0
    assert view.get((3, 2, 1)) == pytest.approx(float(volume_f32[3, 2, 1]))
    with pytest.raises(IndexError):
        view.get((-2, 0, 0))
    with pytest.raises(IndexError):
        view.plane((0, 0, 99))
    with pytest.raises(IndexError):
        view.plane((0, 0))


def test_unbounded_function_source():
    src = FunctionSource(lambda x, y, z: x + 100 * z, ndim=3)
    view = PaddedView(src, Interval.from_shape((3, 2, 2)), padding=1)
    plane = view.plane((0, 0, 1))
    np.testing.assert_array_equal(plane[:, 0], [99, 100, 101, 102, 103])


def test_invalid_arguments(volume_f32: np.ndarray):
    with pytest.raises(ValueError):
        PaddedView(volume_f32, Interval.from_array(volume_f32), padding=-1)
    with pytest.raises(IndexError):
        PaddedView(volume_f32, Interval.from_shape((3, 3)))
