# ==================================================
# ===============  MODULE: interval  ===============
# ==================================================
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np

__all__ = ["Interval", "PLANE_AXES"]

# Axes spanning the 2D plane handed to slice operators.
PLANE_AXES: Tuple[int, int] = (0, 1)


@dataclass(frozen=True)
class Interval:
    """
    Closed integer box ``[min, max]`` per dimension.

    Attributes
    ----------
    min : tuple of int
        Smallest coordinate on every axis.
    max : tuple of int
        Largest coordinate on every axis (inclusive).

    Examples
    --------
    >>> iv = Interval.from_shape((4, 3, 2))
    >>> iv.max
    (3, 2, 1)
    >>> iv.expand(1).min
    (-1, -1, 0)
    """

    min: Tuple[int, ...]
    max: Tuple[int, ...]

    def __post_init__(self) -> None:
        lo = tuple(int(v) for v in self.min)
        hi = tuple(int(v) for v in self.max)
        if len(lo) != len(hi):
            raise ValueError(f"[Interval] min has rank {len(lo)} but max has rank {len(hi)}.")
        if len(lo) == 0:
            raise ValueError("[Interval] An interval needs at least one dimension.")
        for d, (a, b) in enumerate(zip(lo, hi)):
            if b < a:
                raise ValueError(f"[Interval] Empty interval on axis {d}: [{a}, {b}].")
        object.__setattr__(self, "min", lo)
        object.__setattr__(self, "max", hi)

    # ====[ Constructors ]====
    @classmethod
    def from_shape(cls, shape: Sequence[int], origin: Optional[Sequence[int]] = None) -> "Interval":
        """Interval of an array of `shape` whose first element sits at `origin` (default zeros)."""
        shape = tuple(int(s) for s in shape)
        origin = tuple(int(o) for o in origin) if origin is not None else (0,) * len(shape)
        if len(origin) != len(shape):
            raise ValueError(f"[Interval] origin rank {len(origin)} does not match shape rank {len(shape)}.")
        if any(s <= 0 for s in shape):
            raise ValueError(f"[Interval] Cannot build an interval from empty shape {shape}.")
        return cls(origin, tuple(o + s - 1 for o, s in zip(origin, shape)))

    @classmethod
    def from_array(cls, array: np.ndarray, origin: Optional[Sequence[int]] = None) -> "Interval":
        return cls.from_shape(np.shape(array), origin)

    # ====[ Properties ]====
    @property
    def ndim(self) -> int:
        return len(self.min)

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(b - a + 1 for a, b in zip(self.min, self.max))

    @property
    def size(self) -> int:
        return int(np.prod(self.shape, dtype=np.int64))

    # ====[ Geometry ]====
    def expand(self, padding: int, axes: Iterable[int] = PLANE_AXES) -> "Interval":
        """
        Grow the interval by `padding` on both sides of `axes` only.

        Parameters
        ----------
        padding : int
            Non-negative halo width.
        axes : iterable of int, default (0, 1)
            Axes to pad. Other axes keep their extent.
        """
        if padding < 0:
            raise ValueError(f"[Interval] padding must be non-negative, got {padding}.")
        lo, hi = list(self.min), list(self.max)
        for d in axes:
            if not 0 <= d < self.ndim:
                raise IndexError(f"[Interval] Axis {d} out of range for rank {self.ndim}.")
            lo[d] -= padding
            hi[d] += padding
        return Interval(tuple(lo), tuple(hi))

    def translate(self, offset: Sequence[int]) -> "Interval":
        if len(offset) != self.ndim:
            raise ValueError(f"[Interval] offset rank {len(offset)} does not match interval rank {self.ndim}.")
        return Interval(
            tuple(a + int(o) for a, o in zip(self.min, offset)),
            tuple(b + int(o) for b, o in zip(self.max, offset)),
        )

    def contains(self, coords: Sequence[int]) -> bool:
        if len(coords) != self.ndim:
            return False
        return all(a <= int(c) <= b for a, c, b in zip(self.min, coords, self.max))

    def contains_interval(self, other: "Interval") -> bool:
        if other.ndim != self.ndim:
            return False
        return all(
            a <= oa and ob <= b
            for a, b, oa, ob in zip(self.min, self.max, other.min, other.max)
        )

    def hyperslice(self) -> "Interval":
        """Rank-2 interval of the plane axes."""
        if self.ndim < 2:
            raise ValueError(f"[Interval] A rank-{self.ndim} interval has no 2D plane.")
        return Interval(self.min[:2], self.max[:2])

    def to_slices(self, origin: Optional[Sequence[int]] = None) -> Tuple[slice, ...]:
        """
        Index tuple addressing this interval inside an array whose first element is at `origin`.
        """
        origin = tuple(origin) if origin is not None else (0,) * self.ndim
        if len(origin) != self.ndim:
            raise ValueError(f"[Interval] origin rank {len(origin)} does not match interval rank {self.ndim}.")
        return tuple(slice(a - o, b - o + 1) for a, b, o in zip(self.min, self.max, origin))

    def __repr__(self) -> str:
        return f"Interval(min={self.min}, max={self.max})"
