# ==================================================
# ========  MODULE: decorators & timing utils  =====
# ==================================================
from __future__ import annotations

import logging
import time
from functools import wraps
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple, TypeVar

from ndfield.utils.logger import get_logger, get_error_logger, get_debug_logger

# Public API
__all__ = [
    "TimerManager",
    "log_exceptions",
    "timed_wrapper",
    "safe_timer",
    "log_warning_if",
]

F = TypeVar("F", bound=Callable[..., Any])
TimingRow = Tuple[str, int, float, float]


# ====[ Cumulative stage timings ]====
class TimerManager:
    """
    Accumulates elapsed seconds per named stage.

    The slice processor feeds it one "read", "operator" and "convert" entry
    per plane and logs the totals at the end of a verbose run.

    Examples
    --------
    >>> timers = TimerManager()
    >>> timers.add("operator", 0.5); timers.add("operator", 1.5)
    >>> timers.to_dict()["operator"]["avg"]
    1.0
    """

    def __init__(self) -> None:
        self.stats: Dict[str, Dict[str, float]] = {}

    def add(self, name: str, elapsed: float) -> None:
        entry = self.stats.setdefault(name, {"total": 0.0, "count": 0})
        entry["total"] += float(elapsed)
        entry["count"] += 1

    def reset(self) -> None:
        self.stats.clear()

    def to_list(
        self,
        sort_by: Literal["total", "avg"] = "total",
        descending: bool = True,
        digits: int = 3,
    ) -> List[TimingRow]:
        """``(name, count, total, avg)`` rows, sorted on total or average time."""
        rows: List[TimingRow] = []
        for name, entry in self.stats.items():
            count = int(entry["count"])
            mean = entry["total"] / count if count else 0.0
            rows.append((name, count, round(entry["total"], digits), round(mean, digits)))
        column = 2 if sort_by == "total" else 3
        return sorted(rows, key=lambda row: row[column], reverse=descending)

    def to_dict(self, digits: int = 3) -> Dict[str, Dict[str, float]]:
        """``{stage: {"total", "count", "avg"}}`` with rounded seconds."""
        return {
            name: {"total": total, "count": float(count), "avg": avg}
            for name, count, total, avg in self.to_list(digits=digits)
        }

    def to_log(
        self,
        logger: Optional[logging.Logger] = None,
        level: int = logging.INFO,
        sort_by: Literal["total", "avg"] = "total",
        descending: bool = True,
        digits: int = 3,
    ) -> None:
        """Write one line per stage to `logger` (the package logger by default)."""
        logger = logger or get_logger()
        logger.log(level, "Execution Time Summary:")
        for name, count, total, avg in self.to_list(sort_by, descending, digits):
            logger.log(level, f" | {name:<20} | {count:>3} calls | {total:>8.3f}s total | {avg:>8.3f}s avg")


# ====[ Exception logging ]====
def log_exceptions(
    logger_name: str = "ndfield.errors",
    raise_exception: bool = True,
) -> Callable[[F], F]:
    """
    Send the traceback of any exception raised by the wrapped call to `logger_name`.

    With ``raise_exception=False`` the failed call returns None instead of
    raising; nothing inside ndfield uses that mode.
    """
    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                get_error_logger(name=logger_name).error(f"Exception in '{func.__name__}': {exc}", exc_info=True)
                if raise_exception:
                    raise
                return None
        return wrapper  # type: ignore[return-value]
    return decorator


# ====[ Timing + error handling core ]====
def timed_wrapper(
    func: F,
    label: str,
    log: bool = True,
    log_errors: bool = True,
    raise_exception: bool = True,
    log_inputs: bool = False,
    info_logger: Optional[logging.Logger] = None,
    error_logger: Optional[logging.Logger] = None,
    debug_logger: Optional[logging.Logger] = None,
) -> F:
    """
    Time `func` and log what happened to it.

    Parameters
    ----------
    func : Callable
        Function to wrap.
    label : str
        Name shown in the log lines.
    log : bool, default True
        Report the elapsed time at DEBUG level.
    log_errors : bool, default True
        Write the traceback of a failure to the error logger.
    raise_exception : bool, default True
        Re-raise failures after logging them.
    log_inputs : bool, default False
        Write the call arguments to the debug logger.
    info_logger, error_logger, debug_logger : logging.Logger, optional
        Overrides for the package loggers, looked up at call time otherwise.
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        if log_inputs:
            (debug_logger or get_debug_logger()).debug(f"Calling '{label}' with args={args!r}, kwargs={kwargs!r}")

        start = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as exc:
            if log_errors:
                (error_logger or get_error_logger()).error(f"Exception in '{label}': {exc}", exc_info=True)
            if raise_exception:
                raise
            return None

        if log:
            elapsed = time.perf_counter() - start
            (info_logger or get_logger()).debug(f"Execution time for '{label}': {elapsed:.3f} seconds")
        return result

    return wrapper  # type: ignore[return-value]


def safe_timer(
    log: bool = True,
    log_errors: bool = True,
    raise_exception: bool = True,
    name: Optional[str] = None,
    log_inputs: bool = False,
    info_logger: Optional[logging.Logger] = None,
    error_logger: Optional[logging.Logger] = None,
) -> Callable[[F], F]:
    """
    Decorator form of `timed_wrapper`; `name` defaults to the function name.

    Used on the functional entry points (`process_slices`,
    `apply_localized_update`, ...), which keep their exceptions.
    """

    def decorator(func: F) -> F:
        return timed_wrapper(
            func,
            label=name or func.__name__,
            log=log,
            log_errors=log_errors,
            raise_exception=raise_exception,
            log_inputs=log_inputs,
            info_logger=info_logger,
            error_logger=error_logger,
        )
    return decorator


def log_warning_if(condition: bool, message: str, logger: Optional[logging.Logger] = None) -> None:
    """Warn through `logger` (package logger by default) when `condition` holds."""
    if condition:
        (logger or get_logger()).warning(message)
