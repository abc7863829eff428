# ==================================================
# ========= TESTS: Config, logger, timers ==========
# ==================================================
from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pytest

from ndfield.core.config import (
    FLOAT32_MAX,
    BrushConfig,
    GlobalConfig,
    KernelConfig,
    SliceProcessorConfig,
)
from ndfield.utils.decorators import TimerManager, log_exceptions, log_warning_if, safe_timer
from ndfield.utils.logger import LOG_DIR_ENV, get_error_logger, get_logger, resolve_log_dir


# ===================
# Tests (configuration)
# ===================

def test_slice_processor_defaults():
    cfg = SliceProcessorConfig()
    assert cfg.clamp == (-FLOAT32_MAX, FLOAT32_MAX)
    assert cfg.padding == 0
    assert cfg.nan_policy == "min"
    assert cfg.processor_strategy == "classic"
    assert cfg.atomic is False


def test_update_config_validates():
    cfg = SliceProcessorConfig()
    assert cfg.update_config(padding=2, atomic=True) is cfg
    assert cfg.padding == 2
    with pytest.raises(AttributeError):
        cfg.update_config(halo=3)
    with pytest.raises(ValueError):
        cfg.update_config(nan_policy="zero")


def test_global_config():
    cfg = GlobalConfig(float_dtype="float64", verbose=True)
    assert cfg.internal_dtype == np.float64
    assert cfg.effective_log_level == logging.DEBUG
    assert GlobalConfig().effective_log_level == logging.INFO
    with pytest.raises(ValueError):
        GlobalConfig(framework="jax")
    with pytest.raises(ValueError):
        GlobalConfig(float_dtype="float16")


def test_kernel_and_brush_configs():
    with pytest.raises(ValueError):
        KernelConfig(truncate=0.0)
    brush = BrushConfig(sigma=[2, 3], channel_map=[1, 0])
    assert brush.sigma == (2.0, 3.0)
    assert brush.channel_map == (1, 0)
    with pytest.raises(ValueError):
        BrushConfig(channel_map=(0, 2))
    with pytest.raises(ValueError):
        BrushConfig(channel_map=())


def test_config_summary(capsys):
    info = KernelConfig().summary()
    assert info == {"truncate": 3.0, "normalize": False}
    assert "KernelConfig" in capsys.readouterr().out
    assert KernelConfig().summary(printout=False)["truncate"] == 3.0


# ===================
# Tests (logger)
# ===================

def test_log_dir_resolution(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    assert resolve_log_dir(tmp_path) == tmp_path
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path / "env"))
    assert resolve_log_dir() == tmp_path / "env"


def test_get_logger_is_idempotent(tmp_path: Path):
    logger = get_logger("ndfield.test.idempotent", log_dir=tmp_path)
    n_handlers = len(logger.handlers)
    again = get_logger("ndfield.test.idempotent", log_dir=tmp_path, level=logging.DEBUG)
    assert again is logger
    assert len(again.handlers) == n_handlers == 2
    assert logger.propagate is False
    assert all(h.level == logging.DEBUG for h in logger.handlers)


def test_logger_writes_to_file(tmp_path: Path):
    logger = get_logger("ndfield.test.file", log_dir=tmp_path)
    logger.info("written to disk")
    for handler in logger.handlers:
        handler.flush()
    files = list(tmp_path.glob("ndfield.test.file_*.log"))
    assert len(files) == 1
    assert "written to disk" in files[0].read_text(encoding="utf-8")


def test_error_logger_is_file_only(tmp_path: Path):
    logger = get_error_logger("ndfield.test.errors", log_dir=tmp_path)
    assert len(logger.handlers) == 1
    assert not any(type(h) is logging.StreamHandler for h in logger.handlers)


# ===================
# Tests (decorators)
# ===================

def test_timer_manager():
    timers = TimerManager()
    timers.add("operator", 0.5)
    timers.add("operator", 1.5)
    timers.add("read", 0.25)
    stats = timers.to_dict()
    assert stats["operator"] == {"total": 2.0, "count": 2.0, "avg": 1.0}
    assert [row[0] for row in timers.to_list()] == ["operator", "read"]
    assert [row[0] for row in timers.to_list(descending=False)] == ["read", "operator"]
    timers.reset()
    assert timers.to_dict() == {}


def test_safe_timer_reraises_by_default():
    @safe_timer(name="failing")
    def failing():
        raise KeyError("boom")

    with pytest.raises(KeyError):
        failing()


def test_safe_timer_can_swallow_errors():
    @safe_timer(raise_exception=False)
    def failing():
        raise KeyError("boom")

    assert failing() is None


def test_safe_timer_returns_result_and_keeps_name():
    @safe_timer()
    def add(a, b):
        return a + b

    assert add(2, 3) == 5
    assert add.__name__ == "add"


def test_log_exceptions():
    @log_exceptions()
    def strict():
        raise RuntimeError("strict")

    @log_exceptions(raise_exception=False)
    def lenient():
        raise RuntimeError("lenient")

    with pytest.raises(RuntimeError):
        strict()
    assert lenient() is None


def test_log_warning_if(tmp_path: Path):
    logger = get_logger("ndfield.test.warn", log_dir=tmp_path)
    records = []
    handler = logging.Handler()
    handler.emit = records.append
    logger.addHandler(handler)
    try:
        log_warning_if(False, "hidden", logger)
        log_warning_if(True, "shown", logger)
    finally:
        logger.removeHandler(handler)
    assert [r.getMessage() for r in records] == ["shown"]
