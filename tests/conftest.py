"""Pytest fixtures for pybouss tests."""

import numpy as np
import pytest

from pybouss.grid import RegularCartesianGrid
from pybouss.model import Model


def make_model(N=(16, 16, 16), L=(100, 100, 100), **kwargs):
    """Build a model on a regular grid; keyword arguments go to ModelParameters."""
    return Model(RegularCartesianGrid(N=N, L=L), **kwargs)


def add_warm_cube(model, amplitude=0.01):
    """Warm the middle 50% of the domain volume, as in the thermal bubble run."""
    g = model.grid
    i1, i2 = round(g.Nx / 4), round(3 * g.Nx / 4)
    j1, j2 = round(g.Ny / 4), round(3 * g.Ny / 4)
    k1, k2 = round(g.Nz / 4), round(3 * g.Nz / 4)
    T = model.tracers["T"]
    T.interior[i1:i2, j1:j2, k1:k2] += amplitude
    T.fill_halos()
    return model


@pytest.fixture
def seed():
    """Set random seed for reproducibility."""
    np.random.seed(42)
    return 42


@pytest.fixture
def small_model():
    """3x3x3 model with Δx = Δy = Δz = 0.5 and ν = κ = 1."""
    return make_model(N=(3, 3, 3), L=(1.5, 1.5, 1.5), nu=1.0, kappa=1.0)


@pytest.fixture
def bubble_model():
    """Coarse thermal bubble: 16^3 cells in a 100 m cube, ν = κ = 4e-2."""
    return add_warm_cube(make_model(nu=4e-2, kappa=4e-2))
