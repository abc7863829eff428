# ==================================================
# ================  MODULE: kernel  ================
# ==================================================
from __future__ import annotations

from dataclasses import dataclass
from functools import reduce
from typing import Optional, Sequence, Tuple

import math

import numpy as np

from ndfield.core.config import KernelConfig

# Public API
__all__ = [
    "half_kernel_size",
    "half_kernel",
    "KernelWeightTable",
    "separable_tables",
    "separable_weights",
]


def _check_sigma(sigma: float) -> float:
    sigma = float(sigma)
    if not math.isfinite(sigma) or sigma < 0:
        raise ValueError(f"[KernelWeightTable] sigma must be a finite number >= 0, got {sigma}.")
    return sigma


def half_kernel_size(sigma: float, truncate: float = 3.0) -> int:
    """
    Number of taps of a one-sided Gaussian kernel.

    The radius is ``int(truncate * sigma + 0.5)``; weights further out are
    negligible (below ``exp(-truncate**2 / 2)`` of the peak). At least two
    taps are produced for sigma > 0, a single tap for sigma == 0.

    Parameters
    ----------
    sigma : float
        Standard deviation (>= 0).
    truncate : float, default 3.0
        Radius in standard deviations.

    Returns
    -------
    int
        Half-kernel length (radius + 1).
    """
    sigma = _check_sigma(sigma)
    if sigma == 0.0:
        return 1
    return max(2, int(truncate * sigma + 0.5) + 1)


def half_kernel(sigma: float, size: Optional[int] = None, normalize: bool = False) -> np.ndarray:
    """
    One side of a symmetric Gaussian kernel, index 0 = distance 0.

    Weights are ``exp(-d**2 / (2 * sigma**2))`` (peak 1, unnormalised) unless
    `normalize` is set, in which case the full mirrored kernel sums to one.

    Parameters
    ----------
    sigma : float
        Standard deviation (>= 0). sigma == 0 gives ``[1, 0, ...]``.
    size : int, optional
        Number of taps. Defaults to `half_kernel_size(sigma)`.
    normalize : bool, default False
        Scale to unit sum of the full kernel.

    Returns
    -------
    np.ndarray
        float64 weights of length `size`.
    """
    sigma = _check_sigma(sigma)
    size = half_kernel_size(sigma) if size is None else int(size)
    if size < 1:
        raise ValueError(f"[KernelWeightTable] Half-kernel size must be >= 1, got {size}.")

    d = np.arange(size, dtype=np.float64)
    if sigma == 0.0:
        kernel = (d == 0).astype(np.float64)
    else:
        kernel = np.exp(-(d * d) / (2.0 * sigma * sigma))

    if normalize:
        kernel /= kernel[0] + 2.0 * kernel[1:].sum()
    return kernel


# ==================================================
# ============= KernelWeightTable ==================
# ==================================================
@dataclass(frozen=True, eq=False)
class KernelWeightTable:
    """
    Half-kernel weight lookup with a hard cutoff.

    ``weight(d)`` is defined for ``|d| < len(table)`` and is 0 beyond, there
    is no extrapolation. Tables are cheap, build one per call and axis.

    Attributes
    ----------
    sigma : float
        Standard deviation the table was built from.
    weights : np.ndarray
        Read-only float64 weights, non-increasing with distance.

    Examples
    --------
    >>> table = KernelWeightTable.from_sigma(1.0)
    >>> len(table), table.radius
    (4, 3)
    >>> table.weight(0), table.weight(-10)
    (1.0, 0.0)
    """

    sigma: float
    weights: np.ndarray

    def __post_init__(self) -> None:
        weights = np.array(self.weights, dtype=np.float64, copy=True)
        if weights.ndim != 1 or weights.size == 0:
            raise ValueError("[KernelWeightTable] weights must be a non-empty 1D sequence.")
        if not np.all(np.isfinite(weights)) or np.any(weights < 0):
            raise ValueError("[KernelWeightTable] weights must be finite and non-negative.")
        weights.flags.writeable = False
        object.__setattr__(self, "sigma", _check_sigma(self.sigma))
        object.__setattr__(self, "weights", weights)

    @classmethod
    def from_sigma(
        cls,
        sigma: float,
        truncate: float = 3.0,
        normalize: bool = False,
        size: Optional[int] = None,
    ) -> "KernelWeightTable":
        """Build the table for `sigma`; `size` overrides the truncation radius."""
        size = half_kernel_size(sigma, truncate) if size is None else size
        return cls(float(sigma), half_kernel(sigma, size, normalize))

    @classmethod
    def from_config(cls, sigma: float, kernel_cfg: KernelConfig = KernelConfig()) -> "KernelWeightTable":
        return cls.from_sigma(sigma, truncate=kernel_cfg.truncate, normalize=kernel_cfg.normalize)

    def __len__(self) -> int:
        return int(self.weights.size)

    @property
    def radius(self) -> int:
        return len(self) - 1

    def weight(self, distance: int) -> float:
        """Weight at an integer distance; 0 past the cutoff."""
        d = abs(int(distance))
        return float(self.weights[d]) if d < len(self) else 0.0

    def weights_for(self, distances: np.ndarray) -> np.ndarray:
        """Vectorised `weight` for an array of signed integer distances."""
        d = np.abs(np.asarray(distances, dtype=np.int64))
        out = np.zeros(d.shape, dtype=np.float64)
        inside = d < len(self)
        out[inside] = self.weights[d[inside]]
        return out

    def full_kernel(self) -> np.ndarray:
        """Mirrored kernel of length ``2 * radius + 1``."""
        return np.concatenate([self.weights[:0:-1], self.weights])

    def __repr__(self) -> str:
        return f"KernelWeightTable(sigma={self.sigma}, radius={self.radius})"


def separable_tables(
    sigma: Sequence[float],
    ndim: int = 2,
    kernel_cfg: KernelConfig = KernelConfig(),
) -> Tuple[KernelWeightTable, ...]:
    """
    One table per axis for a separable kernel.

    Raises
    ------
    IndexError
        If `sigma` has fewer than `ndim` entries.
    """
    sigma = tuple(np.atleast_1d(np.asarray(sigma, dtype=np.float64)).tolist())
    if len(sigma) < ndim:
        raise IndexError(f"[KernelWeightTable] Need {ndim} sigma values, got {len(sigma)}.")
    return tuple(KernelWeightTable.from_config(s, kernel_cfg) for s in sigma[:ndim])


def separable_weights(tables: Sequence[KernelWeightTable], offsets: Sequence[np.ndarray]) -> np.ndarray:
    """
    Separable weights on a box: ``table_0[|dx|] * table_1[|dy|] * ...``.

    Parameters
    ----------
    tables : sequence of KernelWeightTable
        One table per axis.
    offsets : sequence of array-like
        Signed integer offsets from the kernel center, one 1D array per axis.

    Returns
    -------
    np.ndarray
        Array of shape ``(len(offsets[0]), len(offsets[1]), ...)``.
    """
    if len(tables) != len(offsets):
        raise ValueError(f"[KernelWeightTable] Got {len(tables)} tables for {len(offsets)} offset axes.")
    per_axis = [t.weights_for(np.asarray(o).ravel()) for t, o in zip(tables, offsets)]
    return reduce(np.multiply.outer, per_axis)
