# ==================================================
# ===============  MODULE: sources  ================
# ==================================================
from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import math
import threading

import numpy as np

from ndfield.core.interval import Interval

__all__ = [
    "BoundaryCondition",
    "NumericSource",
    "ArraySource",
    "ExtendedSource",
    "FunctionSource",
    "as_source",
]


class BoundaryCondition(Enum):
    """Boundary conditions for reads past the edge of a bounded array"""
    ZERO = "zero"          # Pad with 0
    CONSTANT = "constant"  # Pad with a constant value
    NEAREST = "nearest"    # Extend edge values
    REFLECT = "reflect"    # Mirror at boundaries, edge sample repeated (d c b a | a b c d)
    MIRROR = "mirror"      # Mirror at boundaries, edge sample not repeated (d c b | a b c d)
    PERIODIC = "periodic"  # Wrap around


class NumericSource(ABC):
    """
    Random access, read-only numeric array addressed by global integer coordinates.

    Sources that set `extends_boundary` answer reads at any coordinate;
    others raise IndexError outside their `interval`.
    """

    extends_boundary: bool = False

    @property
    @abstractmethod
    def dtype(self) -> np.dtype:
        """Native element type"""

    @property
    @abstractmethod
    def ndim(self) -> int:
        """Number of dimensions"""

    @property
    def interval(self) -> Optional[Interval]:
        """Nominal extent, None for unbounded sources"""
        return None

    @abstractmethod
    def _read(self, interval: Interval) -> np.ndarray:
        pass

    def read(self, interval: Interval) -> np.ndarray:
        """
        Read a block of native values.

        Parameters
        ----------
        interval : Interval
            Block to read, in global coordinates.

        Returns
        -------
        np.ndarray
            Array of shape ``interval.shape``. It may be a view of the backing
            store and must not be modified.

        Raises
        ------
        IndexError
            On rank mismatch, or when a bounded source is read outside its interval.
        """
        if interval.ndim != self.ndim:
            raise IndexError(f"[{type(self).__name__}] Rank-{interval.ndim} read from a rank-{self.ndim} source.")
        if not self.extends_boundary and self.interval is not None and not self.interval.contains_interval(interval):
            raise IndexError(f"[{type(self).__name__}] Read {interval} outside source bounds {self.interval}.")
        return self._read(interval)

    def get(self, coords: Sequence[int]) -> Any:
        """Read a single element."""
        coords = tuple(int(c) for c in coords)
        block = self.read(Interval(coords, coords))
        return block[(0,) * self.ndim]


# ==================================================
# ================ Array sources ===================
# ==================================================
class ArraySource(NumericSource):
    """
    Bounded source over an in-memory array.

    Parameters
    ----------
    array : np.ndarray
        Backing array.
    origin : sequence of int, optional
        Global coordinate of ``array[0, ..., 0]`` (defaults to zeros).
    """

    def __init__(self, array: np.ndarray, origin: Optional[Sequence[int]] = None) -> None:
        array = np.asarray(array)
        if array.ndim == 0:
            raise ValueError(f"[{type(self).__name__}] Cannot wrap a 0-d array.")
        self.array: np.ndarray = array
        self._interval: Interval = Interval.from_array(array, origin)

    @property
    def dtype(self) -> np.dtype:
        return self.array.dtype

    @property
    def ndim(self) -> int:
        return self.array.ndim

    @property
    def interval(self) -> Interval:
        return self._interval

    @property
    def origin(self) -> Tuple[int, ...]:
        return self._interval.min

    def _read(self, interval: Interval) -> np.ndarray:
        return self.array[interval.to_slices(self.origin)]


class ExtendedSource(ArraySource):
    """
    Array source that answers reads at any coordinate.

    Values past the array bounds are produced by the boundary condition, so a
    bounded volume can feed halo-padded processing windows.

    Parameters
    ----------
    array : np.ndarray
        Backing array.
    boundary : BoundaryCondition or str, default NEAREST
        How coordinates outside the array are resolved.
    cval : float, default 0
        Fill value for CONSTANT; must be a valid value of an integer backing type.
    origin : sequence of int, optional
        Global coordinate of ``array[0, ..., 0]``.
    """

    extends_boundary = True

    def __init__(
        self,
        array: np.ndarray,
        boundary: Union[BoundaryCondition, str] = BoundaryCondition.NEAREST,
        cval: float = 0,
        origin: Optional[Sequence[int]] = None,
    ) -> None:
        super().__init__(array, origin)
        self.boundary: BoundaryCondition = BoundaryCondition(boundary)
        self.cval = self._check_cval(cval) if self.boundary is BoundaryCondition.CONSTANT else 0

    def _check_cval(self, cval: float) -> float:
        """Reject fill values the backing integer type cannot hold."""
        dtype = self.array.dtype
        if dtype.kind not in "biu":
            return cval
        lo, hi = (0, 1) if dtype.kind == "b" else (int(np.iinfo(dtype).min), int(np.iinfo(dtype).max))
        if not (math.isfinite(cval) and float(cval).is_integer() and lo <= cval <= hi):
            raise ValueError(f"[ExtendedSource] cval {cval} is not a valid '{dtype}' value.")
        return cval

    def _axis_indices(self, lo: int, hi: int, axis: int) -> Tuple[np.ndarray, np.ndarray]:
        """Source indices for coordinates ``lo..hi`` on `axis` and a mask of out-of-bounds positions."""
        n = self.array.shape[axis]
        idx = np.arange(lo, hi + 1, dtype=np.int64) - self.origin[axis]
        outside = (idx < 0) | (idx >= n)

        if self.boundary in (BoundaryCondition.ZERO, BoundaryCondition.CONSTANT, BoundaryCondition.NEAREST):
            idx = np.clip(idx, 0, n - 1)
        elif self.boundary is BoundaryCondition.PERIODIC:
            idx = np.mod(idx, n)
        elif self.boundary is BoundaryCondition.REFLECT:
            m = np.mod(idx, 2 * n)
            idx = np.where(m < n, m, 2 * n - 1 - m)
        elif n == 1:  # MIRROR on a single sample
            idx = np.zeros_like(idx)
        else:
            period = 2 * n - 2
            m = np.mod(idx, period)
            idx = np.where(m < n, m, period - m)
        return idx, outside

    def _read(self, interval: Interval) -> np.ndarray:
        if self.interval.contains_interval(interval):
            return super()._read(interval)

        per_axis = [self._axis_indices(a, b, d) for d, (a, b) in enumerate(zip(interval.min, interval.max))]
        block = self.array[np.ix_(*[idx for idx, _ in per_axis])]

        if self.boundary in (BoundaryCondition.ZERO, BoundaryCondition.CONSTANT):
            outside = np.zeros(block.shape, dtype=bool)
            for d, (_, mask) in enumerate(per_axis):
                shape = [1] * block.ndim
                shape[d] = mask.size
                outside |= mask.reshape(shape)
            block[outside] = self.cval
        return block


# ==================================================
# =============== Function source ==================
# ==================================================
class FunctionSource(NumericSource):
    """
    Unbounded lazy source computing values on demand.

    Values are computed per requested block rather than stored; recently read
    blocks are kept in a small FIFO cache.

    Parameters
    ----------
    func : Callable
        Vectorised function ``func(*coordinate_grids) -> array`` where each
        grid holds the global coordinates of one axis (``indexing='ij'``).
    ndim : int
        Number of dimensions.
    dtype : dtype-like, default float32
        Native element type of the produced values.
    cache_size : int, default 16
        Number of blocks to cache.

    Examples
    --------
    >>> ramp = FunctionSource(lambda x, y, z: x + 10 * y, ndim=3)
    >>> float(ramp.get((2, 1, 0)))
    12.0
    """

    extends_boundary = True

    def __init__(
        self,
        func: Callable[..., np.ndarray],
        ndim: int,
        dtype: Union[np.dtype, type, str] = np.float32,
        cache_size: int = 16,
    ) -> None:
        if not callable(func):
            raise TypeError("[FunctionSource] func must be callable.")
        if ndim < 1:
            raise ValueError(f"[FunctionSource] ndim must be >= 1, got {ndim}.")
        self.func = func
        self._ndim = int(ndim)
        self._dtype = np.dtype(dtype)
        self.cache_size = int(cache_size)
        self._cache: Dict[Tuple[Tuple[int, ...], Tuple[int, ...]], np.ndarray] = {}
        self._hit_count = 0
        self._access_count = 0
        # Shared by the threads of a "parallel" slice run.
        self._lock = threading.Lock()

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def ndim(self) -> int:
        return self._ndim

    def _read(self, interval: Interval) -> np.ndarray:
        key = (interval.min, interval.max)
        with self._lock:
            self._access_count += 1
            cached = self._cache.get(key)
            if cached is not None:
                self._hit_count += 1
                return cached

        axes: List[np.ndarray] = [np.arange(a, b + 1) for a, b in zip(interval.min, interval.max)]
        grids = np.meshgrid(*axes, indexing="ij")
        block = np.broadcast_to(np.asarray(self.func(*grids), dtype=self._dtype), interval.shape).copy()
        block.flags.writeable = False

        if self.cache_size > 0:
            with self._lock:
                while len(self._cache) >= self.cache_size:
                    # Remove oldest entry (simple FIFO)
                    self._cache.pop(next(iter(self._cache)))
                self._cache[key] = block
        return block

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def cache_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._cache),
                "max_size": self.cache_size,
                "hit_rate": self._hit_count / max(self._access_count, 1),
            }

    # Locks do not pickle; process-based joblib backends get a fresh one.
    def __getstate__(self) -> Dict[str, Any]:
        state = self.__dict__.copy()
        del state["_lock"]
        return state

    def __setstate__(self, state: Dict[str, Any]) -> None:
        self.__dict__.update(state)
        self._lock = threading.Lock()


def as_source(
    obj: Union[NumericSource, np.ndarray],
    boundary: Optional[Union[BoundaryCondition, str]] = None,
    origin: Optional[Sequence[int]] = None,
) -> NumericSource:
    """
    Normalise an input to a `NumericSource`.

    Numpy arrays become an `ArraySource`, or an `ExtendedSource` when a
    `boundary` is given. Sources pass through unchanged.
    """
    if isinstance(obj, NumericSource):
        return obj
    if isinstance(obj, np.ndarray):
        if boundary is None:
            return ArraySource(obj, origin)
        return ExtendedSource(obj, boundary=boundary, origin=origin)
    raise TypeError(f"[as_source] Unsupported source type: {type(obj)}.")
