# ==================================================
# ================ TESTS: conftest =================
# ==================================================
from __future__ import annotations

import os
import tempfile

# Log files of the package go to a throwaway directory during tests.
os.environ.setdefault("NDFIELD_LOG_DIR", tempfile.mkdtemp(prefix="ndfield-logs-"))

import numpy as np
import pytest


# ===================
# Fixtures
# ===================

@pytest.fixture
def rng() -> np.random.Generator:
    """
    Deterministic random generator; a fixed seed keeps tests reproducible.
    """
    return np.random.default_rng(123)


@pytest.fixture
def volume_u8(rng: np.random.Generator) -> np.ndarray:
    """
    Small 4D uint8 volume (x, y, z, t).
    """
    return rng.integers(0, 256, size=(7, 6, 3, 2), dtype=np.uint8)


@pytest.fixture
def volume_f32(rng: np.random.Generator) -> np.ndarray:
    """
    Small 3D float32 volume (x, y, z).
    """
    return rng.standard_normal(size=(9, 8, 4)).astype("float32")
