# ==================================================
# ================ Logger Utilities ================
# ==================================================
from __future__ import annotations

import logging
import os
from logging.handlers import TimedRotatingFileHandler
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

# Public API
__all__ = [
    "DEFAULT_LOG_DIR",
    "LOG_DIR_ENV",
    "resolve_log_dir",
    "make_file_handler",
    "get_logger",
    "get_error_logger",
    "get_debug_logger",
]

PathLike = Union[str, Path]

# ====[ Where log files go ]====
LOG_DIR_ENV: str = "NDFIELD_LOG_DIR"
DEFAULT_LOG_DIR: Path = Path.cwd() / "logs"

_LINE_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def resolve_log_dir(log_dir: Optional[PathLike] = None) -> Path:
    """
    Directory for ndfield log files.

    An explicit `log_dir` wins, then the ``NDFIELD_LOG_DIR`` environment
    variable, then ``./logs``. Looked up on every call, so tests and batch
    jobs can redirect logs after import.
    """
    if log_dir is not None:
        return Path(log_dir)
    from_env = os.environ.get(LOG_DIR_ENV)
    return Path(from_env) if from_env else DEFAULT_LOG_DIR


# ====[ Rotating file handler ]====
def make_file_handler(
    log_path: PathLike,
    level: int,
    when: str = "midnight",
    backupCount: int = 7,
    encoding: str = "utf-8",
    interval: int = 1,
) -> TimedRotatingFileHandler:
    """
    Daily-rotating file handler using the package line format.

    Parameters
    ----------
    log_path : str | Path
        Log file; missing parent directories are created.
    level : int
        Handler threshold.
    when, interval : str, int
        Rotation schedule, as in `TimedRotatingFileHandler`.
    backupCount : int, default 7
        Rotated files kept on disk.
    encoding : str, default 'utf-8'

    Returns
    -------
    TimedRotatingFileHandler
        Handler that opens its file on the first record.
    """
    log_path = Path(log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = TimedRotatingFileHandler(
        filename=str(log_path),
        when=when,
        interval=interval,
        backupCount=backupCount,
        encoding=encoding,
        delay=True,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_LINE_FORMAT))
    return handler


def _configured(
    name: str,
    file_stem: str,
    level: int,
    log_dir: Optional[PathLike],
    console: bool,
    when: str = "midnight",
    backupCount: int = 7,
) -> logging.Logger:
    """
    Fetch `name` and give it handlers the first time it is requested.

    Later calls only move the logger and its handlers to `level`, so asking for
    the same logger from many operators never duplicates output.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    stamp = datetime.now().strftime("%Y-%m-%d")
    log_path = resolve_log_dir(log_dir) / f"{file_stem}_{stamp}.log"
    logger.addHandler(make_file_handler(log_path, level, when=when, backupCount=backupCount))

    if console:
        stream = logging.StreamHandler()
        stream.setLevel(level)
        stream.setFormatter(logging.Formatter(_LINE_FORMAT))
        logger.addHandler(stream)
    return logger


# ==================================================
# ================ Logger Factory ==================
# ==================================================

# ====[ Package logger: console + file ]====
def get_logger(
    name: str = "ndfield",
    log_dir: Optional[PathLike] = None,
    level: int = logging.INFO,
    when: str = "midnight",
    backupCount: int = 7,
) -> logging.Logger:
    """
    Logger used by the brushes and the slice processor.

    Records go to the console and to ``<log_dir>/<name>_<date>.log``.

    Parameters
    ----------
    name : str, default "ndfield"
        Logger name; also the log file stem.
    log_dir : str or Path, optional
        See `resolve_log_dir`.
    level : int, default logging.INFO
        Threshold of the logger and its handlers.
    when : str, default "midnight"
        File rotation schedule.
    backupCount : int, default 7
        Rotated files kept on disk.

    Returns
    -------
    logging.Logger
    """
    return _configured(name, name, level, log_dir, console=True, when=when, backupCount=backupCount)


# ====[ Error logger: file only ]====
def get_error_logger(
    name: str = "ndfield.errors",
    log_dir: Optional[PathLike] = None,
    level: int = logging.ERROR,
    backupCount: int = 30,
) -> logging.Logger:
    """
    File-only logger receiving the tracebacks of failed timed calls.

    Writes ``errors_<date>.log`` and keeps a month of rotated files.
    """
    return _configured(name, "errors", level, log_dir, console=False, backupCount=backupCount)


# ====[ Debug logger: file only ]====
def get_debug_logger(
    name: str = "ndfield.debug",
    log_dir: Optional[PathLike] = None,
    level: int = logging.DEBUG,
    backupCount: int = 7,
) -> logging.Logger:
    """File-only logger for call arguments of timed functions (``debug_<date>.log``)."""
    return _configured(name, "debug", level, log_dir, console=False, backupCount=backupCount)
