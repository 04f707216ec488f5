"""Pytest shared setup."""

import importlib.util
import sys
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


def load_application_module(app, name="load_data"):
    """Import applications/<app>/<name>.py under a unique module name."""
    path = REPO_ROOT / "applications" / app / f"{name}.py"
    loader_spec = importlib.util.spec_from_file_location(f"{app}_{name}", path)
    module = importlib.util.module_from_spec(loader_spec)
    loader_spec.loader.exec_module(module)
    return module


@pytest.fixture
def rng():
    return np.random.default_rng(12345)


@pytest.fixture
def rook_pairs():
    """Rook adjacency on a 10 x 10 lattice, ids 0..99."""
    side = 10
    pairs = []
    for r in range(side):
        for c in range(side):
            i = r * side + c
            if c + 1 < side:
                pairs.append((i, i + 1))
            if r + 1 < side:
                pairs.append((i, i + side))
    return pairs
