# ==================================================
# ================  MODULE: config  ================
# ==================================================
from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional, Tuple

import logging

import numpy as np

__all__ = [
    "FLOAT32_MAX",
    "GlobalConfig",
    "KernelConfig",
    "BrushConfig",
    "SliceProcessorConfig",
]

# Default clamp range of the slice processor: the full float32 range.
FLOAT32_MAX: float = float(np.finfo(np.float32).max)

_FRAMEWORKS = ("numpy", "torch")
_FLOAT_DTYPES = ("float32", "float64")
_NAN_POLICIES = ("min", "max", "raise")
_STRATEGIES = ("classic", "parallel")


class _ConfigMixin:
    """Shared `update_config` / `summary` helpers for the dataclass configs."""

    def update_config(self, **kwargs):
        """Dynamically update configuration attributes (in-place)."""
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)
            else:
                raise AttributeError(f"[{type(self).__name__}] Unknown config key: '{key}'")
        self.validate()
        return self

    def validate(self) -> None:
        """Check field values; subclasses raise ValueError on bad settings."""

    def summary(self, printout: bool = True) -> Dict[str, Any]:
        """Return or print a summary of the configuration."""
        info = {f.name: getattr(self, f.name) for f in fields(self)}
        if printout:
            print(f"=== [ {type(self).__name__} Summary ] ===")
            for k in info:
                print(f"{k:<18}: {info[k]}")
        return info


# ==================================================
# ===============  CLASS: GlobalConfig  ============
# ==================================================
@dataclass
class GlobalConfig(_ConfigMixin):
    """
    Global configuration shared by every ndfield operator.

    Attributes
    ----------
    framework : str, default "numpy"
        Backend for the 2D buffers handed to slice operators ("numpy" or "torch").
    device : str, default "cpu"
        Torch device for the "torch" framework. "cuda" is preferred whenever
        it is available and framework is "torch".
    float_dtype : str, default "float32"
        Internal floating point representation ("float32" or "float64").
    verbose : bool, default False
        If True, operators log at DEBUG level.
    log_level : int, default logging.INFO
        Level of the package logger.
    log_dir : Optional[str]
        Directory for log files. None falls back to NDFIELD_LOG_DIR / ./logs.
    logger_name : str, default "ndfield"
        Name of the package logger.
    """

    framework: str = "numpy"
    device: str = "cpu"
    float_dtype: str = "float32"
    verbose: bool = False
    log_level: int = logging.INFO
    log_dir: Optional[str] = None
    logger_name: str = "ndfield"

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if self.framework.lower() not in _FRAMEWORKS:
            raise ValueError(f"[GlobalConfig] framework must be one of {_FRAMEWORKS}, got '{self.framework}'.")
        if self.float_dtype not in _FLOAT_DTYPES:
            raise ValueError(f"[GlobalConfig] float_dtype must be one of {_FLOAT_DTYPES}, got '{self.float_dtype}'.")

    @property
    def internal_dtype(self) -> np.dtype:
        """numpy dtype of the internal float representation."""
        return np.dtype(self.float_dtype)

    @property
    def effective_log_level(self) -> int:
        return logging.DEBUG if self.verbose else self.log_level


# ==================================================
# ===============  CLASS: KernelConfig  ============
# ==================================================
@dataclass
class KernelConfig(_ConfigMixin):
    """
    Half-kernel construction parameters.

    Attributes
    ----------
    truncate : float, default 3.0
        Radius in standard deviations beyond which weights are cut off.
    normalize : bool, default False
        If True, tables are scaled so the full symmetric kernel sums to one.
        Brush strokes use raw (peak 1) weights.
    """

    truncate: float = 3.0
    normalize: bool = False

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not np.isfinite(self.truncate) or self.truncate <= 0:
            raise ValueError(f"[KernelConfig] truncate must be a positive finite number, got {self.truncate}.")


# ==================================================
# ===============  CLASS: BrushConfig  =============
# ==================================================
@dataclass
class BrushConfig(_ConfigMixin):
    """
    Parameters of a localized field update (brush stroke).

    Attributes
    ----------
    sigma : tuple of float, default (1.0, 1.0)
        Default per-axis standard deviation when a call does not give one.
    channel_map : tuple of int, default (0, 1)
        Delta component applied to each channel index: channel c receives
        ``delta[channel_map[c]]``. The default maps channel 0 to the
        horizontal and channel 1 to the vertical displacement.
    strict_channels : bool, default True
        If True, fields with more channels than `channel_map` are rejected.
        Otherwise unmapped channels receive component 0 and a warning is logged.
    """

    sigma: Tuple[float, ...] = (1.0, 1.0)
    channel_map: Tuple[int, ...] = (0, 1)
    strict_channels: bool = True

    def __post_init__(self) -> None:
        self.sigma = tuple(float(s) for s in self.sigma)
        self.channel_map = tuple(int(c) for c in self.channel_map)
        self.validate()

    def validate(self) -> None:
        if len(self.channel_map) == 0:
            raise ValueError("[BrushConfig] channel_map must map at least one channel.")
        if any(c not in (0, 1) for c in self.channel_map):
            raise ValueError(f"[BrushConfig] channel_map entries must be 0 or 1, got {self.channel_map}.")


# ==================================================
# ===========  CLASS: SliceProcessorConfig  ========
# ==================================================
@dataclass
class SliceProcessorConfig(_ConfigMixin):
    """
    Configuration of the dimension-generic slice processor.

    Attributes
    ----------
    padding : int, default 0
        Halo added on both sides of axes 0 and 1 of every plane.
    min_clamp, max_clamp : float
        Output intensity range; defaults cover the whole float32 range.
    nan_policy : str, default "min"
        What NaN operator output turns into: "min" (min_clamp), "max"
        (max_clamp) or "raise" (ValueError).
    processor_strategy : str, default "classic"
        "classic" processes planes sequentially, "parallel" dispatches them
        with joblib.
    n_jobs : int, default -1
        Number of joblib workers (-1 means all cores).
    backend : str, default "threading"
        joblib backend for the parallel strategy.
    atomic : bool, default False
        If True, no plane is written unless every plane succeeded.
    disable_tqdm : bool, default True
        Hide the per-slice progress bar.
    extend_boundary : Optional[str]
        Boundary condition used to extend bounded numpy inputs so that the
        halo can be read (see `BoundaryCondition`). None means the input
        must already cover the padded interval.
    operator_kwargs : dict
        Extra keyword arguments forwarded to the slice operator.
    """

    padding: int = 0
    min_clamp: float = -FLOAT32_MAX
    max_clamp: float = FLOAT32_MAX
    nan_policy: str = "min"
    processor_strategy: str = "classic"
    n_jobs: int = -1
    backend: str = "threading"
    atomic: bool = False
    disable_tqdm: bool = True
    extend_boundary: Optional[str] = None
    operator_kwargs: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if int(self.padding) != self.padding or self.padding < 0:
            raise ValueError(f"[SliceProcessorConfig] padding must be a non-negative integer, got {self.padding}.")
        if np.isnan(self.min_clamp) or np.isnan(self.max_clamp):
            raise ValueError("[SliceProcessorConfig] clamp bounds must not be NaN.")
        if self.min_clamp > self.max_clamp:
            raise ValueError(
                f"[SliceProcessorConfig] min_clamp ({self.min_clamp}) must not exceed max_clamp ({self.max_clamp})."
            )
        if self.nan_policy not in _NAN_POLICIES:
            raise ValueError(f"[SliceProcessorConfig] nan_policy must be one of {_NAN_POLICIES}, got '{self.nan_policy}'.")
        if self.processor_strategy not in _STRATEGIES:
            raise ValueError(
                f"[SliceProcessorConfig] Unsupported processor_strategy '{self.processor_strategy}'."
            )

    @property
    def clamp(self) -> Tuple[float, float]:
        return float(self.min_clamp), float(self.max_clamp)
