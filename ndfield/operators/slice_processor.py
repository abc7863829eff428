# ==================================================
# ============ MODULE: slice_processor =============
# ==================================================
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import logging
import time

from joblib import Parallel, delayed
from tqdm import tqdm

import numpy as np
import torch

from ndfield.core.config import GlobalConfig, SliceProcessorConfig
from ndfield.core.converters import ValueConverter, get_converter
from ndfield.core.interval import Interval
from ndfield.core.sources import NumericSource
from ndfield.operators.padded_view import PaddedView
from ndfield.operators.slice_iterator import SliceIterator, SlicePosition
from ndfield.utils.decorators import TimerManager, safe_timer
from ndfield.utils.logger import get_logger

# Public API
__all__ = ["SliceProcessor", "process_slices"]

ArrayLike = Union[np.ndarray, torch.Tensor]
SourceLike = Union[NumericSource, np.ndarray]
PlaneOperator = Callable[..., Optional[ArrayLike]]
PlaneResult = Tuple[np.ndarray, Dict[str, float]]


# ==================================================
# ================ SliceProcessor ==================
# ==================================================
class SliceProcessor:
    """
    Dimension-generic 2D plane processor.

    Cuts an N-D output into the 2D planes of axes 0 and 1, hands each plane
    of the input (grown by a halo of `padding` pixels and converted to float)
    to a 2D operator, then clamps and converts the interior of the result
    back into the output.

    Notes
    -----
    - The input is never modified; the output is overwritten over its whole extent.
    - Planes are independent. "classic" processes them in `SliceIterator`
      order, "parallel" dispatches them with joblib and writes the results
      in the same order.
    - Operator exceptions propagate. The plane being processed is never
      written; with `atomic=True` nothing is written unless all planes succeed.
    - The operator receives a mutable float buffer (numpy, or torch when
      ``global_cfg.framework == "torch"``). It may modify it in place and
      return None, or return a new array of the same shape.

    Examples
    --------
    >>> volume = np.arange(24, dtype=np.uint8).reshape(2, 3, 4)
    >>> out = np.zeros_like(volume)
    >>> _ = SliceProcessor(lambda buf: None).process(volume, out)
    >>> bool((out == volume).all())
    True
    """

    def __init__(
        self,
        operator: PlaneOperator,
        source: Optional[SourceLike] = None,
        slice_cfg: SliceProcessorConfig = SliceProcessorConfig(),
        global_cfg: GlobalConfig = GlobalConfig(),
    ) -> None:
        """
        Initialize the processor with a plane operator and configuration.

        Parameters
        ----------
        operator : Callable
            2D operator, called as ``operator(buffer, **operator_kwargs)``.
        source : NumericSource or np.ndarray, optional
            Input bound to the processor; required by `__call__` and `fill_blocks`.
        slice_cfg : SliceProcessorConfig
            Padding, clamping, NaN policy and execution strategy.
        global_cfg : GlobalConfig
            Framework, float type and logging options.
        """
        if not callable(operator):
            raise TypeError("[SliceProcessor] operator must be callable.")

        # ====[ Configuration ]====
        self.operator: PlaneOperator = operator
        self.source: Optional[SourceLike] = source
        self.slice_cfg: SliceProcessorConfig = slice_cfg
        self.global_cfg: GlobalConfig = global_cfg

        # ====[ Store processor-specific parameters ]====
        self.padding: int = int(self.slice_cfg.padding)
        self.min_clamp, self.max_clamp = self.slice_cfg.clamp
        self.nan_policy: str = self.slice_cfg.nan_policy
        self.strategy: str = self.slice_cfg.processor_strategy
        self.n_jobs: int = self.slice_cfg.n_jobs
        self.backend: str = self.slice_cfg.backend
        self.atomic: bool = bool(self.slice_cfg.atomic)
        self.disable_tqdm: bool = bool(self.slice_cfg.disable_tqdm)
        self.extend_boundary: Optional[str] = self.slice_cfg.extend_boundary
        self.operator_kwargs: Dict[str, Any] = dict(self.slice_cfg.operator_kwargs)

        # ====[ Mirror global params locally for easy access ]====
        self.framework: str = self.global_cfg.framework.lower()
        self.internal_dtype: np.dtype = self.global_cfg.internal_dtype
        self.verbose: bool = bool(self.global_cfg.verbose)
        self.device: str = (
            "cuda"
            if (torch.cuda.is_available() and self.framework == "torch")
            else self.global_cfg.device
        )

        self.logger: logging.Logger = get_logger(
            self.global_cfg.logger_name,
            log_dir=self.global_cfg.log_dir,
            level=self.global_cfg.effective_log_level,
        )
        self.timers: TimerManager = TimerManager()

    # ====[ CALLABLE ENTRY POINT ]====
    def __call__(self, output: np.ndarray, output_origin: Optional[Sequence[int]] = None) -> np.ndarray:
        """
        Fill `output` from the bound source (block loader usage).
        """
        if self.source is None:
            raise ValueError("[SliceProcessor] No source bound; pass one at construction or call process().")
        return self.process(self.source, output, output_origin)

    # ====[ MAIN LOOP ]====
    def process(
        self,
        source: SourceLike,
        output: np.ndarray,
        output_origin: Optional[Sequence[int]] = None,
    ) -> np.ndarray:
        """
        Process every plane of `output` from `source`.

        Parameters
        ----------
        source : NumericSource or np.ndarray
            Input, addressed in global coordinates.
        output : np.ndarray
            Mutable output block of rank >= 2.
        output_origin : sequence of int, optional
            Global coordinate of ``output[0, ..., 0]`` (defaults to zeros).

        Returns
        -------
        np.ndarray
            `output`, filled.
        """
        output = self._check_output(output)
        out_interval = Interval.from_array(output, output_origin)
        view = PaddedView(
            source,
            out_interval,
            padding=self.padding,
            boundary=self.extend_boundary,
            internal_dtype=self.internal_dtype,
        )
        converter = get_converter(output.dtype, self.internal_dtype)
        slices = SliceIterator(out_interval)

        start = time.perf_counter()
        if self.strategy == "parallel":
            positions = slices.positions()
            results = Parallel(n_jobs=self.n_jobs, backend=self.backend)(
                delayed(self._process_plane)(view, converter, pos) for pos in positions
            )
            for pos, (plane, timings) in zip(positions, results):
                self._record(timings)
                self._write(output, out_interval, pos, plane)
        elif self.strategy == "classic":
            staged: List[Tuple[SlicePosition, np.ndarray]] = []
            for pos in tqdm(slices, total=len(slices), desc="Slices", disable=self.disable_tqdm):
                plane, timings = self._process_plane(view, converter, pos)
                self._record(timings)
                if self.atomic:
                    staged.append((pos, plane))
                else:
                    self._write(output, out_interval, pos, plane)
                if self.verbose:
                    self.logger.debug(f"[SliceProcessor] Slice {SliceIterator.higher(pos)} done.")
            for pos, plane in staged:
                self._write(output, out_interval, pos, plane)
        else:
            raise ValueError(f"Unsupported processing strategy: '{self.strategy}'")

        elapsed = time.perf_counter() - start
        self.logger.info(
            f"[SliceProcessor] {len(slices)} slice(s) of output {output.shape} "
            f"(padding={self.padding}, strategy={self.strategy}) in {elapsed:.3f}s"
        )
        if self.verbose:
            self.timers.to_log(self.logger, level=logging.DEBUG)
        return output

    # ====[ BLOCK LOADER ]====
    def fill_blocks(
        self,
        output: np.ndarray,
        block_shape: Sequence[int],
        output_origin: Optional[Sequence[int]] = None,
    ) -> np.ndarray:
        """
        Fill `output` block by block from the bound source.

        Each block is processed as an independent output (as a cell loader of
        a chunked volume would), which gives the same result as processing
        the whole array at once because halos are read from the source.
        """
        output = self._check_output(output)
        block_shape = tuple(int(b) for b in block_shape)
        if len(block_shape) != output.ndim or any(b <= 0 for b in block_shape):
            raise ValueError(f"[SliceProcessor] Invalid block shape {block_shape} for output {output.shape}.")
        origin = Interval.from_array(output, output_origin).min

        grid = tuple(-(-s // b) for s, b in zip(output.shape, block_shape))
        for cell in np.ndindex(*grid):
            lo = [c * b for c, b in zip(cell, block_shape)]
            index = tuple(slice(a, min(a + b, s)) for a, b, s in zip(lo, block_shape, output.shape))
            self(output[index], tuple(o + a for o, a in zip(origin, lo)))
        return output

    # ====[ PER-PLANE WORK ]====
    def _process_plane(self, view: PaddedView, converter: ValueConverter, pos: SlicePosition) -> PlaneResult:
        """
        Read, process and convert one plane. Nothing is written here.
        """
        timings: Dict[str, float] = {}

        t0 = time.perf_counter()
        buffer = view.plane(pos)
        t1 = time.perf_counter()
        result = self._run_operator(buffer)
        t2 = time.perf_counter()

        if result.shape != buffer.shape:
            raise ValueError(
                f"[SliceProcessor] Operator returned shape {result.shape}, expected {buffer.shape}."
            )
        plane = converter.from_float(
            view.unpadded(result),
            min_clamp=self.min_clamp,
            max_clamp=self.max_clamp,
            nan_policy=self.nan_policy,
        )
        t3 = time.perf_counter()

        timings["read"] = t1 - t0
        timings["operator"] = t2 - t1
        timings["convert"] = t3 - t2
        return plane, timings

    def _run_operator(self, buffer: np.ndarray) -> np.ndarray:
        """
        Call the operator on `buffer` in the configured framework and return a numpy result.
        """
        if self.framework == "torch":
            with torch.no_grad():
                tensor = torch.from_numpy(buffer).to(self.device)
                returned = self.operator(tensor, **self.operator_kwargs)
                result = tensor if returned is None else returned
                if isinstance(result, torch.Tensor):
                    return result.detach().cpu().numpy()
                return np.asarray(result)

        returned = self.operator(buffer, **self.operator_kwargs)
        if returned is None:
            return buffer
        if isinstance(returned, torch.Tensor):
            return returned.detach().cpu().numpy()
        return np.asarray(returned)

    def _record(self, timings: Dict[str, float]) -> None:
        for name, elapsed in timings.items():
            self.timers.add(name, elapsed)

    @staticmethod
    def _write(output: np.ndarray, out_interval: Interval, pos: SlicePosition, plane: np.ndarray) -> None:
        index = (slice(None), slice(None)) + tuple(
            p - o for p, o in zip(pos[2:], out_interval.min[2:])
        )
        output[index] = plane

    @staticmethod
    def _check_output(output: np.ndarray) -> np.ndarray:
        if not isinstance(output, np.ndarray):
            raise TypeError(f"[SliceProcessor] Output must be a numpy array, got {type(output)}.")
        if output.ndim < 2:
            raise ValueError(f"[SliceProcessor] Output must have rank >= 2, got shape {output.shape}.")
        if output.size == 0:
            raise ValueError(f"[SliceProcessor] Output {output.shape} is empty.")
        if not output.flags.writeable:
            raise ValueError("[SliceProcessor] Output is read-only.")
        return output

    def summary(self) -> None:
        """
        Print a concise summary of the processor configuration.
        """
        print("=== SliceProcessor Summary ===")
        print(f"Operator        : {getattr(self.operator, '__name__', str(self.operator))}")
        print(f"Strategy        : {self.strategy}")
        print(f"Framework       : {self.framework}")
        print(f"Device          : {self.device}")
        print(f"Float type      : {self.internal_dtype}")
        print(f"Padding         : {self.padding}")
        print(f"Clamp           : [{self.min_clamp}, {self.max_clamp}]")
        print(f"NaN policy      : {self.nan_policy}")
        print(f"Atomic          : {self.atomic}")
        print(f"n_jobs          : {self.n_jobs}")
        print(f"Backend         : {self.backend}")


# ======================================================================
#                      Convenience wrapper
# ======================================================================

@safe_timer(name="process_slices")
def process_slices(
    source: SourceLike,
    output: np.ndarray,
    operator: PlaneOperator,
    padding: int = 0,
    min_clamp: Optional[float] = None,
    max_clamp: Optional[float] = None,
    nan_policy: str = "min",
    output_origin: Optional[Sequence[int]] = None,
    extend_boundary: Optional[str] = None,
    processor_strategy: str = "classic",
    n_jobs: int = -1,
    backend: str = "threading",
    atomic: bool = False,
    framework: str = "numpy",
    operator_kwargs: Optional[Dict[str, Any]] = None,
) -> np.ndarray:
    """
    Run a 2D operator over every plane of `output`, reading halo-padded planes from `source`.

    Parameters
    ----------
    source : NumericSource or np.ndarray
        Input data.
    output : np.ndarray
        Output block, overwritten.
    operator : Callable
        2D operator processing a float buffer in place.
    padding : int, default 0
        Halo width on axes 0 and 1.
    min_clamp, max_clamp : float, optional
        Output intensity range; None means the float32 range.
    nan_policy : {"min", "max", "raise"}, default "min"
        Treatment of NaN operator output.
    output_origin : sequence of int, optional
        Global coordinate of ``output[0, ..., 0]``.
    extend_boundary : str, optional
        Boundary condition used to read the halo past the edges of a numpy input.
    processor_strategy : {"classic", "parallel"}, default "classic"
        Sequential or joblib-parallel processing.
    n_jobs : int, default -1
        joblib workers for the parallel strategy.
    backend : str, default "threading"
        joblib backend.
    atomic : bool, default False
        Commit planes only if all succeed.
    framework : {"numpy", "torch"}, default "numpy"
        Type of the buffer handed to the operator.
    operator_kwargs : dict, optional
        Extra keyword arguments for the operator.

    Returns
    -------
    np.ndarray
        `output`.
    """
    slice_params: Dict[str, Any] = {
        "padding": padding,
        "nan_policy": nan_policy,
        "processor_strategy": processor_strategy,
        "n_jobs": n_jobs,
        "backend": backend,
        "atomic": atomic,
        "extend_boundary": extend_boundary,
        "operator_kwargs": operator_kwargs or {},
    }
    if min_clamp is not None:
        slice_params["min_clamp"] = min_clamp
    if max_clamp is not None:
        slice_params["max_clamp"] = max_clamp

    processor = SliceProcessor(
        operator,
        slice_cfg=SliceProcessorConfig(**slice_params),
        global_cfg=GlobalConfig(framework=framework),
    )
    return processor.process(source, output, output_origin)
