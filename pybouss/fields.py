# pybouss/fields.py

"""
Halo-padded field storage and the name-addressed Field Accessor used by
diagnostics and output writers.
"""

from __future__ import annotations

import numpy as np

from .grid import RegularCartesianGrid
from .jax_compat import to_numpy


def fill_halo_regions(data: np.ndarray, H: int) -> np.ndarray:
    """
    Fill the halo cells of a parent-shaped array in place.

    x and y are periodic; z uses a zero-gradient (copy of the nearest interior level)
    condition at the bottom and the top.
    """
    # Periodic x
    data[:H, :, :] = data[-2 * H:-H, :, :]
    data[-H:, :, :] = data[H:2 * H, :, :]
    # Periodic y
    data[:, :H, :] = data[:, -2 * H:-H, :]
    data[:, -H:, :] = data[:, H:2 * H, :]
    # Zero-gradient z
    data[:, :, :H] = data[:, :, H:H + 1]
    data[:, :, -H:] = data[:, :, -H - 1:-H]
    return data


class Field:
    """
    A 3D field on a RegularCartesianGrid, stored with halo padding.

    `data` is the full parent array (halo included); `interior` is a view of the
    physical cells.
    """
    def __init__(self, grid: RegularCartesianGrid, data: np.ndarray | None = None):
        self.grid = grid
        if data is None:
            self.data = np.zeros(grid.parent_shape, dtype=grid.float_type)
        else:
            data = np.asarray(data, dtype=grid.float_type)
            if data.shape != grid.parent_shape:
                raise ValueError(f"Field data shape {data.shape} does not match grid parent shape {grid.parent_shape}")
            self.data = data

    @property
    def interior(self) -> np.ndarray:
        return self.grid.interior(self.data)

    def set(self, value) -> "Field":
        """
        Set the interior from a scalar, an interior-shaped array, or a callable f(x, y, z)
        evaluated at cell centres, then fill the halos.
        """
        if callable(value):
            X, Y, Z = self.grid.meshgrid()
            self.interior[...] = value(X, Y, Z)
        else:
            self.interior[...] = np.asarray(value, dtype=self.grid.float_type)
        fill_halo_regions(self.data, self.grid.H)
        return self

    def fill_halos(self) -> "Field":
        fill_halo_regions(self.data, self.grid.H)
        return self

    def __repr__(self):
        return f"Field(shape={self.data.shape}, dtype={self.data.dtype})"


# ---------------- Field Accessor ---------------- #

def get_field(model, name: str) -> Field:
    """
    Look up a model field by name.

    Accepted names are the prognostic fields ("u", "v", "w", "T", "S"), the current
    tendencies ("Gu", "Gv", "Gw", "GT", "GS") and the previous-step tendencies
    ("Gu_prev", ...). Dotted paths such as "velocities.u" or "tracers.T" also work.
    """
    if "." in name:
        name = name.rsplit(".", 1)[-1]
    if name in model.velocities:
        return model.velocities[name]
    if name in model.tracers:
        return model.tracers[name]
    if name in model.timestepper.Gn:
        return model.timestepper.Gn[name]
    if name.endswith("_prev") and name[:-len("_prev")] in model.timestepper.G_prev:
        return model.timestepper.G_prev[name[:-len("_prev")]]
    raise KeyError(f"Model has no field named '{name}'")


def parentdata(field) -> np.ndarray:
    """A host NumPy copy of the full (halo-padded) storage of a field or array."""
    data = field.data if isinstance(field, Field) else field
    return np.array(to_numpy(data), copy=True)
