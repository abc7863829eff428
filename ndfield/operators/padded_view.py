# ==================================================
# =============  MODULE: padded_view  ==============
# ==================================================
from __future__ import annotations

from typing import Optional, Sequence, Tuple, Union

import numpy as np

from ndfield.core.converters import ValueConverter, get_converter
from ndfield.core.interval import Interval
from ndfield.core.sources import BoundaryCondition, NumericSource, as_source

# Public API
__all__ = ["PaddedView"]


class PaddedView:
    """
    Halo-padded, float-converted read view of a numeric source.

    The view spans the output interval grown by `padding` on axes 0 and 1
    (higher axes are unchanged). The halo is read from the source itself, so
    the source must either cover the padded interval or extend its boundary.

    Parameters
    ----------
    source : NumericSource or np.ndarray
        Input data in global coordinates.
    output_interval : Interval
        Nominal (unpadded) extent of the processed output.
    padding : int, default 0
        Halo width on axes 0 and 1.
    converter : ValueConverter, optional
        Native-to-float conversion; defaults to the shared converter of the
        source dtype.
    boundary : BoundaryCondition or str, optional
        Extend a bounded numpy `source` with this condition.
    internal_dtype : dtype-like, default float32
        Float type of the produced planes when `converter` is not given.

    Raises
    ------
    IndexError
        If the ranks differ, or a bounded source does not cover the padded interval.
    """

    def __init__(
        self,
        source: Union[NumericSource, np.ndarray],
        output_interval: Interval,
        padding: int = 0,
        converter: Optional[ValueConverter] = None,
        boundary: Optional[Union[BoundaryCondition, str]] = None,
        internal_dtype: Union[np.dtype, type, str] = np.float32,
    ) -> None:
        if int(padding) != padding or padding < 0:
            raise ValueError(f"[PaddedView] padding must be a non-negative integer, got {padding}.")
        if output_interval.ndim < 2:
            raise ValueError(f"[PaddedView] Output interval must have rank >= 2, got {output_interval.ndim}.")

        self.source: NumericSource = as_source(source, boundary=boundary)
        if self.source.ndim != output_interval.ndim:
            raise IndexError(
                f"[PaddedView] Source rank {self.source.ndim} does not match output rank {output_interval.ndim}."
            )

        self.padding: int = int(padding)
        self.output_interval: Interval = output_interval
        self.interval: Interval = output_interval.expand(self.padding)
        self.converter: ValueConverter = converter or get_converter(self.source.dtype, internal_dtype)

        bounds = self.source.interval
        if not self.source.extends_boundary and bounds is not None and not bounds.contains_interval(self.interval):
            raise IndexError(
                f"[PaddedView] Padded interval {self.interval} exceeds source bounds {bounds}; "
                f"extend the source boundary to read the halo."
            )

    @property
    def plane_shape(self) -> Tuple[int, int]:
        shape = self.interval.shape
        return shape[0], shape[1]

    def plane_interval(self, slice_position: Sequence[int]) -> Interval:
        """Padded rank-N interval of the plane at `slice_position` (axes >= 2 fixed)."""
        higher = tuple(int(p) for p in slice_position[2:])
        if len(higher) != self.interval.ndim - 2:
            raise IndexError(
                f"[PaddedView] Slice position {tuple(slice_position)} has wrong rank for {self.interval}."
            )
        for d, p in enumerate(higher, start=2):
            if not self.interval.min[d] <= p <= self.interval.max[d]:
                raise IndexError(f"[PaddedView] Slice coordinate {p} on axis {d} outside {self.interval}.")
        return Interval(self.interval.min[:2] + higher, self.interval.max[:2] + higher)

    def plane(self, slice_position: Sequence[int]) -> np.ndarray:
        """
        Materialise the padded plane at `slice_position` as a mutable float copy.

        Returns
        -------
        np.ndarray
            Array of shape `plane_shape`, decoupled from the source.
        """
        block = self.source.read(self.plane_interval(slice_position))
        return self.converter.to_float(block.reshape(self.plane_shape))

    def get(self, coords: Sequence[int]) -> float:
        """Float value of one element inside the padded interval."""
        if not self.interval.contains(coords):
            raise IndexError(f"[PaddedView] Coordinate {tuple(coords)} outside {self.interval}.")
        return float(self.converter.to_float(self.source.get(coords)))

    def unpadded(self, buffer: np.ndarray) -> np.ndarray:
        """View of the interior (output-sized) sub-rectangle of a padded plane."""
        p = self.padding
        return buffer[p:buffer.shape[0] - p, p:buffer.shape[1] - p]

    def __repr__(self) -> str:
        return f"PaddedView(interval={self.interval}, padding={self.padding}, dtype={self.source.dtype})"
