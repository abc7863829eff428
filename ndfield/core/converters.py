# ==================================================
# ==============  MODULE: converters  ==============
# ==================================================
from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import Optional, Tuple, Union

import math

import numpy as np

__all__ = [
    "ConversionMode",
    "NanPolicy",
    "ValueConverter",
    "dtype_range",
    "get_converter",
]

DTypeLike = Union[np.dtype, type, str]


class ConversionMode(Enum):
    """How float values are narrowed back to an element type."""
    WIDEN = "widen"                # float targets: cast only
    CLAMP_NARROW = "clamp_narrow"  # integer / bool targets: round half up, clamp to range


class NanPolicy(str, Enum):
    """Replacement for NaN values produced during processing."""
    MIN = "min"
    MAX = "max"
    RAISE = "raise"


def _float_within(bound: int, toward: float) -> float:
    """Closest float64 to the integer `bound` that does not pass it."""
    value = float(bound)
    if value != bound:  # 64-bit limits are not exact in float64
        value = float(np.nextafter(value, toward))
    return value


def dtype_range(dtype: DTypeLike) -> Tuple[float, float]:
    """
    Representable ``(lo, hi)`` range of a real numeric dtype, as floats.

    For integer types both bounds are exactly castable back to the type, so
    clipping to them can never wrap (``int64`` tops out at ``2**63 - 1024``).

    Raises
    ------
    TypeError
        If `dtype` is not a boolean, integer or floating point type.
    """
    dtype = np.dtype(dtype)
    if dtype.kind == "b":
        return 0.0, 1.0
    if dtype.kind in "iu":
        info = np.iinfo(dtype)
        return _float_within(int(info.min), math.inf), _float_within(int(info.max), -math.inf)
    if dtype.kind == "f":
        info = np.finfo(dtype)
        return float(-info.max), float(info.max)
    raise TypeError(f"[ValueConverter] Unsupported element type '{dtype}'.")


class ValueConverter:
    """
    Conversion pair between a native element type and the internal float type.

    `to_float` widens native values to the internal float representation;
    `from_float` clamps processed values to an intensity range and narrows
    them back to the native type.

    Parameters
    ----------
    dtype : dtype-like
        Native element type of a field.
    internal_dtype : dtype-like, default float32
        Floating point type used for computations.

    Examples
    --------
    >>> conv = ValueConverter(np.uint8)
    >>> conv.from_float(np.array([-3.0, 12.5, 300.0]))
    array([  0,  13, 255], dtype=uint8)
    """

    def __init__(self, dtype: DTypeLike, internal_dtype: DTypeLike = np.float32) -> None:
        self.dtype: np.dtype = np.dtype(dtype)
        self.internal_dtype: np.dtype = np.dtype(internal_dtype)

        if self.internal_dtype.kind != "f":
            raise TypeError(f"[ValueConverter] Internal type must be floating point, got '{self.internal_dtype}'.")

        self.range: Tuple[float, float] = dtype_range(self.dtype)
        self.mode: ConversionMode = (
            ConversionMode.WIDEN if self.dtype.kind == "f" else ConversionMode.CLAMP_NARROW
        )

    # ====[ native -> float ]====
    def to_float(self, values: np.ndarray) -> np.ndarray:
        """Return a float copy of `values` in the internal representation."""
        return np.array(values, dtype=self.internal_dtype, copy=True)

    # ====[ float -> native ]====
    def effective_clamp(self, min_clamp: float, max_clamp: float) -> Tuple[float, float]:
        """
        Intersect the requested clamp range with what the element type can hold.

        For integer types the bounds are tightened to whole numbers so rounding
        can never leave the range.
        """
        if math.isnan(min_clamp) or math.isnan(max_clamp):
            raise ValueError("[ValueConverter] Clamp bounds must not be NaN.")
        if min_clamp > max_clamp:
            raise ValueError(f"[ValueConverter] min_clamp ({min_clamp}) exceeds max_clamp ({max_clamp}).")

        lo = max(float(min_clamp), self.range[0])
        hi = min(float(max_clamp), self.range[1])
        if self.mode is ConversionMode.CLAMP_NARROW:
            lo, hi = float(math.ceil(lo)), float(math.floor(hi))
        if lo > hi:
            raise ValueError(
                f"[ValueConverter] Clamp range [{min_clamp}, {max_clamp}] holds no value of type '{self.dtype}'."
            )
        return lo, hi

    def from_float(
        self,
        values: np.ndarray,
        min_clamp: float = -math.inf,
        max_clamp: float = math.inf,
        nan_policy: Union[str, NanPolicy] = NanPolicy.MIN,
        out: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """
        Clamp `values` to ``[min_clamp, max_clamp]`` and convert to the native type.

        Parameters
        ----------
        values : np.ndarray
            Processed float values.
        min_clamp, max_clamp : float
            Intensity range. Values below / above become the bound.
        nan_policy : {"min", "max", "raise"}, default "min"
            NaN values become `min_clamp`, become `max_clamp`, or raise ValueError.
        out : np.ndarray, optional
            Destination written in place (must have a matching shape).

        Returns
        -------
        np.ndarray
            Converted values (`out` when given).
        """
        nan_policy = NanPolicy(nan_policy)
        lo, hi = self.effective_clamp(min_clamp, max_clamp)

        work = np.array(values, dtype=np.float64, copy=True)
        nan_mask = np.isnan(work)
        if nan_mask.any():
            if nan_policy is NanPolicy.RAISE:
                raise ValueError(f"[ValueConverter] {int(nan_mask.sum())} NaN value(s) in processed data.")
            work[nan_mask] = lo if nan_policy is NanPolicy.MIN else hi

        np.clip(work, lo, hi, out=work)
        if self.mode is ConversionMode.CLAMP_NARROW:
            np.floor(work + 0.5, out=work)
            np.clip(work, lo, hi, out=work)

        if out is None:
            return work.astype(self.dtype)
        if out.shape != work.shape:
            raise ValueError(f"[ValueConverter] Output shape {out.shape} does not match values shape {work.shape}.")
        out[...] = work.astype(self.dtype)
        return out

    def __repr__(self) -> str:
        return f"ValueConverter(dtype={self.dtype}, internal={self.internal_dtype}, mode={self.mode.value})"


@lru_cache(maxsize=64)
def _cached_converter(dtype_str: str, internal_str: str) -> ValueConverter:
    return ValueConverter(np.dtype(dtype_str), np.dtype(internal_str))


def get_converter(dtype: DTypeLike, internal_dtype: DTypeLike = np.float32) -> ValueConverter:
    """Shared `ValueConverter` for a (native, internal) dtype pair."""
    return _cached_converter(np.dtype(dtype).str, np.dtype(internal_dtype).str)
