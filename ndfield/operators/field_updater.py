# ==================================================
# ============  MODULE: field_updater  =============
# ==================================================
from __future__ import annotations

from typing import Optional, Sequence, Tuple, Union

import logging

import numpy as np
from scipy.ndimage import gaussian_filter

from ndfield.core.config import BrushConfig, GlobalConfig, KernelConfig
from ndfield.core.converters import get_converter
from ndfield.operators.kernel import KernelWeightTable, separable_tables, separable_weights
from ndfield.utils.decorators import log_warning_if, safe_timer
from ndfield.utils.logger import get_logger

# Public API
__all__ = [
    "LocalizedFieldUpdater",
    "HeightFieldBrush",
    "apply_localized_update",
    "paint_height_field",
    "smooth_height_field",
    "scale_height_field",
]

Footprint = Tuple[Tuple[slice, slice], np.ndarray]


# ==================================================
# ================== Utilities =====================
# ==================================================
def _as_point(values: Sequence[int], name: str) -> Tuple[int, int]:
    """First two entries of an integer coordinate vector."""
    values = np.atleast_1d(np.asarray(values))
    if values.size < 2:
        raise IndexError(f"[FieldUpdater] {name} needs 2 coordinates, got {values.size}.")
    point = []
    for v in values[:2]:
        if float(v) != int(v):
            raise TypeError(f"[FieldUpdater] {name} must hold integers, got {values[:2].tolist()}.")
        point.append(int(v))
    return point[0], point[1]


def _as_vector(values: Sequence[float], size: int, name: str) -> np.ndarray:
    values = np.atleast_1d(np.asarray(values, dtype=np.float64))
    if values.size < size:
        raise IndexError(f"[FieldUpdater] {name} needs {size} components, got {values.size}.")
    return values[:size]


def _check_field(field: np.ndarray, min_rank: int) -> np.ndarray:
    if not isinstance(field, np.ndarray):
        raise TypeError(f"[FieldUpdater] Field must be a numpy array, got {type(field)}.")
    if field.ndim < min_rank:
        raise IndexError(f"[FieldUpdater] Field must have rank >= {min_rank}, got shape {field.shape}.")
    if not field.flags.writeable:
        raise ValueError("[FieldUpdater] Field is read-only; brush strokes update fields in place.")
    if field.dtype.kind not in "biuf":
        raise TypeError(f"[FieldUpdater] Unsupported field element type '{field.dtype}'.")
    return field


def _commit(region: np.ndarray, values: np.ndarray) -> None:
    """Write float results into a field region, clamp-narrowing for integer fields."""
    if region.dtype.kind == "f":
        region[...] = values
    else:
        get_converter(region.dtype, np.float64).from_float(values, out=region)


# ==================================================
# ================ Brush base ======================
# ==================================================
class _KernelBrush:
    """
    Shared state of the kernel-weighted brushes.

    Builds per-axis tables from a sigma and locates the box of a field the
    brush can touch: every element with ``|x - loc.x| <= radius_x`` and
    ``|y - loc.y| <= radius_y``, clipped to the field extent.
    """

    def __init__(
        self,
        brush_cfg: BrushConfig = BrushConfig(),
        kernel_cfg: KernelConfig = KernelConfig(),
        global_cfg: GlobalConfig = GlobalConfig(),
    ) -> None:
        # ====[ Configuration ]====
        self.brush_cfg: BrushConfig = brush_cfg
        self.kernel_cfg: KernelConfig = kernel_cfg
        self.global_cfg: GlobalConfig = global_cfg

        # ====[ Mirror params locally for easy access ]====
        self.sigma: Tuple[float, ...] = self.brush_cfg.sigma
        self.channel_map: Tuple[int, ...] = self.brush_cfg.channel_map
        self.strict_channels: bool = bool(self.brush_cfg.strict_channels)
        self.verbose: bool = bool(self.global_cfg.verbose)

        self.logger: logging.Logger = get_logger(
            self.global_cfg.logger_name,
            log_dir=self.global_cfg.log_dir,
            level=self.global_cfg.effective_log_level,
        )

    def tables(self, sigma: Optional[Sequence[float]] = None) -> Tuple[KernelWeightTable, ...]:
        """Kernel tables for axes 0 and 1."""
        return separable_tables(self.sigma if sigma is None else sigma, ndim=2, kernel_cfg=self.kernel_cfg)

    @staticmethod
    def footprint(
        shape: Sequence[int],
        location: Tuple[int, int],
        tables: Sequence[KernelWeightTable],
        origin: Optional[Sequence[int]] = None,
    ) -> Optional[Footprint]:
        """
        Box of the field touched by a brush and its separable weights.

        Returns None when the brush does not overlap the field.
        """
        origin = (0, 0) if origin is None else tuple(int(o) for o in origin[:2])
        box, offsets = [], []
        for axis in (0, 1):
            radius = tables[axis].radius
            lo = max(location[axis] - radius - origin[axis], 0)
            hi = min(location[axis] + radius - origin[axis], int(shape[axis]) - 1)
            if lo > hi:
                return None
            box.append(slice(lo, hi + 1))
            offsets.append(np.arange(lo, hi + 1) + origin[axis] - location[axis])
        return (box[0], box[1]), separable_weights(tables, offsets)


# ==================================================
# =========== LocalizedFieldUpdater ================
# ==================================================
class LocalizedFieldUpdater(_KernelBrush):
    """
    Additive Gaussian brush stroke on one channel of a displacement field.

    For a field ``F[x, y, c, ...]`` and a stroke at ``location`` every element
    inside the kernel support receives
    ``tableX[|x - loc.x|] * tableY[|y - loc.y|] * delta[channel_map[c]]``.
    Elements outside the support are left untouched. Strokes accumulate.

    Notes
    -----
    - Axes 0 and 1 are spatial, axis 2 indexes channels. Further axes, if any,
      all receive the same increment.
    - Integer fields are updated through a clamp-narrow conversion.
    - No internal locking: do not run two strokes on the same field concurrently.

    Examples
    --------
    >>> field = np.zeros((100, 100, 2))
    >>> LocalizedFieldUpdater().apply(field, (5, 5), (2.0, 0.0), (1.0, 1.0))
    >>> float(field[5, 5, 0]), float(field[5, 5, 1])
    (2.0, 0.0)
    """

    def channel_components(self, n_channels: int) -> np.ndarray:
        """
        Delta component used for each of `n_channels` channels.

        Raises
        ------
        IndexError
            If the field has more channels than `channel_map` and
            `strict_channels` is set.
        """
        unmapped = n_channels - len(self.channel_map)
        if unmapped > 0 and self.strict_channels:
            raise IndexError(
                f"[LocalizedFieldUpdater] Field has {n_channels} channels but channel_map "
                f"{self.channel_map} maps only {len(self.channel_map)}."
            )
        log_warning_if(
            unmapped > 0,
            f"[LocalizedFieldUpdater] Channels {len(self.channel_map)}..{n_channels - 1} are not mapped; "
            f"they receive the horizontal component.",
            self.logger,
        )
        mapped = list(self.channel_map[:n_channels]) + [0] * max(unmapped, 0)
        return np.asarray(mapped, dtype=np.intp)

    def apply(
        self,
        field: np.ndarray,
        location: Sequence[int],
        delta: Sequence[float],
        sigma: Optional[Sequence[float]] = None,
        origin: Optional[Sequence[int]] = None,
    ) -> None:
        """
        Add a kernel-weighted delta to `field` in place.

        Parameters
        ----------
        field : np.ndarray
            Mutable vector field of rank >= 3 (x, y, channel, ...).
        location : sequence of int
            Brush center (x, y) in global coordinates.
        delta : sequence of float
            (horizontal, vertical) displacement to blend in.
        sigma : sequence of float, optional
            Per-axis standard deviation; defaults to `brush_cfg.sigma`.
        origin : sequence of int, optional
            Global (x, y) coordinate of ``field[0, 0]``.

        Raises
        ------
        IndexError
            Field rank < 3, or too few location / delta / sigma components.
        """
        field = _check_field(field, min_rank=3)
        location = _as_point(location, "location")
        delta = _as_vector(delta, 2, "delta")
        tables = self.tables(sigma)
        components = self.channel_components(field.shape[2])

        found = self.footprint(field.shape, location, tables, origin)
        if found is None:
            self.logger.debug(f"[LocalizedFieldUpdater] Brush at {location} misses field of shape {field.shape}.")
            return
        box, weights = found

        increment = weights[:, :, None] * delta[components][None, None, :]
        increment = increment.reshape(increment.shape + (1,) * (field.ndim - 3))

        region = field[box]
        _commit(region, region.astype(np.float64) + increment)

        if self.verbose:
            self.logger.debug(
                f"[LocalizedFieldUpdater] Stroke at {location}, delta={delta.tolist()}, "
                f"radius=({tables[0].radius}, {tables[1].radius}), box={box}."
            )

    __call__ = apply


# ==================================================
# ============== HeightFieldBrush ==================
# ==================================================
class HeightFieldBrush(_KernelBrush):
    """
    Brushes for scalar height fields: additive painting and local smoothing.

    Axes 0 and 1 are spatial; higher axes, if any, receive the same update.
    """

    def paint(
        self,
        field: np.ndarray,
        location: Sequence[int],
        delta: float,
        sigma: Optional[Sequence[float]] = None,
        origin: Optional[Sequence[int]] = None,
    ) -> None:
        """Raise (or lower, for negative `delta`) the height field around `location`."""
        field = _check_field(field, min_rank=2)
        location = _as_point(location, "location")
        tables = self.tables(sigma)

        found = self.footprint(field.shape, location, tables, origin)
        if found is None:
            return
        box, weights = found

        increment = (weights * float(delta)).reshape(weights.shape + (1,) * (field.ndim - 2))
        region = field[box]
        _commit(region, region.astype(np.float64) + increment)

    def smooth(
        self,
        field: np.ndarray,
        location: Sequence[int],
        sigma: Optional[Sequence[float]] = None,
        smooth_sigma: float = 1.0,
        strength: float = 1.0,
        origin: Optional[Sequence[int]] = None,
    ) -> None:
        """
        Pull the field toward its Gaussian-smoothed version inside the brush.

        Each touched element moves by ``clip(strength * w, 0, 1)`` of the way
        to the smoothed value, where w is the brush weight at that element.
        Smoothing only acts on axes 0 and 1.
        """
        if smooth_sigma < 0 or not np.isfinite(smooth_sigma):
            raise ValueError(f"[HeightFieldBrush] smooth_sigma must be a finite number >= 0, got {smooth_sigma}.")
        field = _check_field(field, min_rank=2)
        location = _as_point(location, "location")
        tables = self.tables(sigma)

        found = self.footprint(field.shape, location, tables, origin)
        if found is None:
            return
        box, weights = found

        # Context around the box so the filter sees real neighbours, not the box edge.
        margin = KernelWeightTable.from_config(smooth_sigma, self.kernel_cfg).radius
        context = tuple(
            slice(max(b.start - margin, 0), min(b.stop + margin, field.shape[axis]))
            for axis, b in enumerate(box)
        )
        filter_sigma = (smooth_sigma, smooth_sigma) + (0.0,) * (field.ndim - 2)
        smoothed = gaussian_filter(field[context].astype(np.float64), sigma=filter_sigma, mode="nearest")
        inner = tuple(slice(b.start - c.start, b.stop - c.start) for b, c in zip(box, context))
        smoothed = smoothed[inner]

        blend = np.clip(strength * weights, 0.0, 1.0).reshape(weights.shape + (1,) * (field.ndim - 2))
        region = field[box]
        current = region.astype(np.float64)
        _commit(region, current + blend * (smoothed - current))


# ======================================================================
#                      Convenience wrappers
# ======================================================================

@safe_timer(name="apply_localized_update")
def apply_localized_update(
    field: np.ndarray,
    location: Sequence[int],
    delta: Sequence[float],
    sigma: Sequence[float],
    origin: Optional[Sequence[int]] = None,
    channel_map: Sequence[int] = (0, 1),
    strict_channels: bool = True,
    truncate: float = 3.0,
) -> None:
    """
    Apply one brush stroke to a vector field (see `LocalizedFieldUpdater.apply`).

    Examples
    --------
    >>> field = np.zeros((100, 100, 2))
    >>> apply_localized_update(field, (5, 5), (2.0, 0.0), (1.0, 1.0))
    >>> float(field[50, 50, 0])
    0.0
    """
    updater = LocalizedFieldUpdater(
        brush_cfg=BrushConfig(channel_map=tuple(channel_map), strict_channels=strict_channels),
        kernel_cfg=KernelConfig(truncate=truncate),
    )
    updater.apply(field, location, delta, sigma, origin)


@safe_timer(name="paint_height_field")
def paint_height_field(
    field: np.ndarray,
    location: Sequence[int],
    delta: float,
    sigma: Sequence[float],
    origin: Optional[Sequence[int]] = None,
    truncate: float = 3.0,
) -> None:
    """Additive brush stroke on a scalar height field (see `HeightFieldBrush.paint`)."""
    HeightFieldBrush(kernel_cfg=KernelConfig(truncate=truncate)).paint(field, location, delta, sigma, origin)


@safe_timer(name="smooth_height_field")
def smooth_height_field(
    field: np.ndarray,
    location: Sequence[int],
    sigma: Sequence[float],
    smooth_sigma: float = 1.0,
    strength: float = 1.0,
    origin: Optional[Sequence[int]] = None,
    truncate: float = 3.0,
) -> None:
    """Local smoothing stroke on a scalar height field (see `HeightFieldBrush.smooth`)."""
    HeightFieldBrush(kernel_cfg=KernelConfig(truncate=truncate)).smooth(
        field, location, sigma, smooth_sigma=smooth_sigma, strength=strength, origin=origin
    )


def scale_height_field(
    field: Union[float, np.ndarray],
    factors: Union[float, Sequence[float]],
) -> Union[float, np.ndarray]:
    """
    Map heights measured on a downsampled grid to full resolution.

    Pixel centers sit at ``i + 0.5`` in both grids, hence
    ``(h + 0.5) * factor - 0.5`` where factor is the height-axis factor.

    Parameters
    ----------
    field : float or np.ndarray
        Heights on the downsampled grid; not modified.
    factors : float or sequence of float
        Downsampling factors. With three or more entries (x, y, z, ...) the
        third one applies; a single value applies as is.

    Returns
    -------
    float or np.ndarray
        New float64 heights (a float for scalar input).

    Examples
    --------
    >>> scale_height_field(2.0, 4)
    9.5
    >>> scale_height_field(np.array([0.0, 1.0]), (6, 6, 2)).tolist()
    [0.5, 2.5]
    """
    factors = np.atleast_1d(np.asarray(factors, dtype=np.float64))
    if factors.size >= 3:
        factor = float(factors[2])
    elif factors.size == 1:
        factor = float(factors[0])
    else:
        raise ValueError(
            f"[HeightFieldBrush] factors must hold one value or at least three, got {factors.tolist()}."
        )
    if not np.isfinite(factor) or factor <= 0:
        raise ValueError(f"[HeightFieldBrush] Height factor must be positive, got {factor}.")
    if np.isscalar(field):
        return (float(field) + 0.5) * factor - 0.5
    return (np.asarray(field, dtype=np.float64) + 0.5) * factor - 0.5
