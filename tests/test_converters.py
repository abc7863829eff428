# ==================================================
# ============== TESTS: Converters =================
# ==================================================
from __future__ import annotations

import math

import numpy as np
import pytest

from ndfield.core.converters import (
    ConversionMode,
    ValueConverter,
    dtype_range,
    get_converter,
)


# ===================
# Tests
# ===================

def test_dtype_range():
    assert dtype_range(np.uint8) == (0.0, 255.0)
    assert dtype_range(np.int16) == (-32768.0, 32767.0)
    assert dtype_range(np.bool_) == (0.0, 1.0)
    lo, hi = dtype_range(np.float32)
    assert lo == -hi and hi == float(np.finfo(np.float32).max)
    with pytest.raises(TypeError):
        dtype_range(np.complex64)


def test_modes():
    assert ValueConverter(np.float64).mode is ConversionMode.WIDEN
    assert ValueConverter(np.int32).mode is ConversionMode.CLAMP_NARROW


def test_to_float_is_a_copy():
    values = np.array([1, 2, 3], dtype=np.uint8)
    out = ValueConverter(np.uint8).to_float(values)
    assert out.dtype == np.float32
    out[0] = 100
    assert values[0] == 1


def test_integer_narrowing_rounds_half_up_and_clamps():
    conv = ValueConverter(np.uint8)
    out = conv.from_float(np.array([-3.0, 0.49, 0.5, 1.5, 2.5, 254.6, 300.0]))
    np.testing.assert_array_equal(out, [0, 0, 1, 2, 3, 255, 255])
    assert out.dtype == np.uint8


def test_signed_rounding_half_up():
    out = ValueConverter(np.int16).from_float(np.array([-2.5, -1.5, -0.4]))
    np.testing.assert_array_equal(out, [-2, -1, 0])


def test_float_widening_keeps_fraction():
    out = ValueConverter(np.float32).from_float(np.array([0.25, -1.75]))
    np.testing.assert_array_equal(out, np.array([0.25, -1.75], dtype=np.float32))


def test_user_clamp_range():
    conv = ValueConverter(np.float32)
    out = conv.from_float(np.array([-5.0, 0.5, 5.0]), min_clamp=-1.0, max_clamp=2.0)
    np.testing.assert_array_equal(out, np.array([-1.0, 0.5, 2.0], dtype=np.float32))


def test_integer_clamp_bounds_are_tightened():
    conv = ValueConverter(np.uint8)
    assert conv.effective_clamp(0.5, 10.7) == (1.0, 10.0)
    out = conv.from_float(np.array([0.0, 10.6]), min_clamp=0.5, max_clamp=10.7)
    np.testing.assert_array_equal(out, [1, 10])
    with pytest.raises(ValueError):
        conv.effective_clamp(0.2, 0.8)


def test_infinite_values_clamp():
    out = ValueConverter(np.int8).from_float(np.array([-math.inf, math.inf]))
    np.testing.assert_array_equal(out, [-128, 127])


@pytest.mark.parametrize("policy, expected", [("min", [1, 7]), ("max", [9, 7])])
def test_nan_policies(policy: str, expected):
    out = ValueConverter(np.uint8).from_float(
        np.array([np.nan, 7.0]), min_clamp=1, max_clamp=9, nan_policy=policy
    )
    np.testing.assert_array_equal(out, expected)


def test_nan_policy_raise():
    with pytest.raises(ValueError):
        ValueConverter(np.float32).from_float(np.array([np.nan]), nan_policy="raise")


def test_nan_never_reaches_float_output():
    out = ValueConverter(np.float32).from_float(np.array([np.nan, 1.0]), min_clamp=-4.0, max_clamp=4.0)
    assert not np.isnan(out).any()
    assert out[0] == -4.0


def test_invalid_clamp_range():
    conv = ValueConverter(np.float32)
    with pytest.raises(ValueError):
        conv.from_float(np.zeros(2), min_clamp=2.0, max_clamp=1.0)
    with pytest.raises(ValueError):
        conv.from_float(np.zeros(2), min_clamp=math.nan)


def test_out_parameter_written_in_place():
    out = np.zeros(3, dtype=np.int16)
    result = ValueConverter(np.int16).from_float(np.array([1.2, 2.7, -9.5]), out=out)
    assert result is out
    np.testing.assert_array_equal(out, [1, 3, -9])
    with pytest.raises(ValueError):
        ValueConverter(np.int16).from_float(np.zeros(2), out=out)


def test_internal_dtype_must_be_float():
    with pytest.raises(TypeError):
        ValueConverter(np.uint8, internal_dtype=np.int32)


def test_get_converter_is_shared():
    assert get_converter(np.uint8) is get_converter("uint8")
    assert get_converter(np.uint8, np.float64) is not get_converter(np.uint8, np.float32)


# ===================
# Tests (64-bit integers and extreme values)
# ===================

@pytest.mark.parametrize("dtype", [np.int64, np.uint64, np.int32, np.uint32])
def test_integer_range_bounds_cast_back_exactly(dtype):
    """
    Both float bounds of an integer type survive a round trip through the type.
    """
    lo, hi = dtype_range(dtype)
    info = np.iinfo(dtype)
    assert info.min <= int(np.array(lo).astype(dtype)) == lo
    assert int(np.array(hi).astype(dtype)) == hi <= info.max


@pytest.mark.parametrize("dtype", [np.int8, np.uint16, np.int32, np.int64, np.uint64])
def test_extreme_values_saturate_without_wrapping(dtype):
    info = np.iinfo(dtype)
    out = ValueConverter(dtype).from_float(np.array([-np.inf, -1e30, 1e30, np.inf, np.nan]))
    assert out.dtype == dtype
    assert out[0] == out[1] == info.min
    assert out[4] == info.min
    assert out[2] == out[3] > info.max // 2
    assert out[3] <= info.max


def test_int64_max_plus_increment_does_not_wrap():
    values = np.array([float(np.iinfo(np.int64).max) + 1e6])
    out = ValueConverter(np.int64, np.float64).from_float(values)
    assert out[0] > 0
