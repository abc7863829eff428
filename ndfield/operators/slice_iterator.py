# ==================================================
# ============  MODULE: slice_iterator  ============
# ==================================================
from __future__ import annotations

from typing import Iterator, List, Tuple

import numpy as np

from ndfield.core.interval import Interval

# Public API
__all__ = ["SliceIterator"]

SlicePosition = Tuple[int, ...]


class SliceIterator:
    """
    Odometer enumeration of the 2D planes of an N-D interval.

    Axes 0 and 1 are free; every combination of the coordinates of axes >= 2
    is produced once. Axis 2 varies fastest and carries into axis 3 when it
    passes its max, and so on up to axis N-1. A rank-2 interval yields one
    position. Each call to ``iter()`` starts a fresh enumeration.

    Positions are full rank-N tuples; axes 0 and 1 hold the interval min.

    Examples
    --------
    >>> it = SliceIterator(Interval((0, 0, 0, 0), (9, 9, 2, 1)))
    >>> [p[2:] for p in it]
    [(0, 0), (1, 0), (2, 0), (0, 1), (1, 1), (2, 1)]
    """

    def __init__(self, interval: Interval) -> None:
        if interval.ndim < 2:
            raise ValueError(f"[SliceIterator] Need an interval of rank >= 2, got rank {interval.ndim}.")
        self.interval: Interval = interval

    def __iter__(self) -> Iterator[SlicePosition]:
        lo, hi = self.interval.min, self.interval.max
        n = self.interval.ndim
        position = list(lo)

        while True:
            yield tuple(position)

            # ripple-carry increment over axes >= 2
            d = 2
            while d < n:
                position[d] += 1
                if position[d] <= hi[d]:
                    break
                position[d] = lo[d]
                d += 1
            if d >= n:
                return

    def __len__(self) -> int:
        return int(np.prod(self.interval.shape[2:], dtype=np.int64))

    def positions(self) -> List[SlicePosition]:
        """All positions as an explicit list (e.g. to hand out to workers)."""
        return list(self)

    @staticmethod
    def higher(position: SlicePosition) -> SlicePosition:
        """Coordinates of the slice axes only."""
        return tuple(position[2:])

    def __repr__(self) -> str:
        return f"SliceIterator({self.interval}, n_slices={len(self)})"
