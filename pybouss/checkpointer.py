# pybouss/checkpointer.py

"""
Checkpointing: the complete resumable state of a model written to HDF5 every
`frequency` iterations, and the inverse `restore_from_checkpoint`.

A checkpoint holds the clock, the grid configuration, the physical parameters,
every prognostic field and both generations of Adams-Bashforth tendencies. A model
restored from it and stepped with the same Δt (and init_with_euler=False) follows
the same trajectory as a model that never stopped.

Layout of `<dir>/<prefix><iteration>.h5`:
    /clock/{iteration,time}
    /grid/{Nx,Ny,Nz,Lx,Ly,Lz,H,float_type,...}
    /parameters/{nu,kappa,f,g,alpha,beta,T0,S0,chi}
    /velocities/{u,v,w}          full halo-padded arrays
    /tracers/{T,S}
    /timestepper/Gn/{Gu,Gv,Gw,GT,GS}
    /timestepper/G_prev/{Gu,Gv,Gw,GT,GS}
"""

from __future__ import annotations

import dataclasses
import glob
import os
import re

import h5py
import numpy as np

from .fields import parentdata
from .grid import RegularCartesianGrid
from .model import Model, ModelParameters
from .output_writers import write_properties
from .schedules import make_schedule

CHECKPOINT_FORMAT = "pybouss-checkpoint-v1"


class CheckpointError(RuntimeError):
    """Fatal: a checkpoint is missing or cannot be read back."""


class Checkpointer:
    def __init__(self, model, schedule=None, frequency=None, dir=".", prefix="checkpoint", force=False):
        """
        Args:
            model: the model to checkpoint
            schedule / frequency: when to write (an iteration period is the usual choice)
            dir, prefix: files are `<dir>/<prefix><iteration>.h5`
            force: allow overwriting existing checkpoint files. Without it, construction
                fails if a checkpoint later than the model's current iteration exists.
        """
        self.schedule = make_schedule(schedule, frequency, None)
        self.dir = dir
        self.prefix = prefix
        self.force = bool(force)
        ahead = self.existing_after(model.clock.iteration)
        if ahead and not self.force:
            raise FileExistsError(f"Checkpoint {ahead[0]} already exists; pass force=True to overwrite.")
        os.makedirs(dir or ".", exist_ok=True)

    def existing_after(self, iteration: int) -> list:
        """Existing checkpoint files for iterations later than `iteration`, in order."""
        pattern = re.compile(re.escape(self.prefix) + r"(\d+)\.h5$")
        found = []
        for path in glob.glob(os.path.join(self.dir, f"{self.prefix}*.h5")):
            m = pattern.match(os.path.basename(path))
            if m and int(m.group(1)) > iteration:
                found.append((int(m.group(1)), path))
        return [path for _, path in sorted(found)]

    def path_for(self, iteration: int) -> str:
        return os.path.join(self.dir, f"{self.prefix}{iteration}.h5")

    def write_output(self, model):
        path = self.path_for(model.clock.iteration)
        if os.path.exists(path) and not self.force:
            raise FileExistsError(f"Checkpoint {path} already exists; pass force=True to overwrite.")
        write_checkpoint(path, model)
        print(f"[Checkpoint] iteration {model.clock.iteration}, time {model.clock.time:.6g} -> {path}")
        return path


def write_checkpoint(path: str, model) -> None:
    """Write the full resumable state of `model` to `path` (truncating it)."""
    with h5py.File(path, "w") as f:
        f.attrs["format"] = CHECKPOINT_FORMAT
        f.attrs["created_by"] = "pybouss"
        f["clock/iteration"] = int(model.clock.iteration)
        f["clock/time"] = float(model.clock.time)
        write_properties(f, "grid", model.grid)
        write_properties(f, "parameters", model.parameters)
        for name, field in model.velocities.items():
            f[f"velocities/{name}"] = parentdata(field)
        for name, field in model.tracers.items():
            f[f"tracers/{name}"] = parentdata(field)
        for name, G in model.timestepper.Gn.items():
            f[f"timestepper/Gn/{name}"] = parentdata(G)
        for name, G in model.timestepper.G_prev.items():
            f[f"timestepper/G_prev/{name}"] = parentdata(G)


def _scalar(ds):
    value = ds[()]
    if isinstance(value, bytes):
        return value.decode()
    if isinstance(value, np.generic):
        return value.item()
    return value


def restore_from_checkpoint(path: str) -> Model:
    """
    Rebuild a model from a checkpoint. The clock, fields and tendency history equal
    the stored values exactly. Continue it with init_with_euler=False.
    """
    if not os.path.exists(path):
        raise CheckpointError(f"Checkpoint file '{path}' does not exist.")
    try:
        with h5py.File(path, "r") as f:
            grid = RegularCartesianGrid.from_dict({k: _scalar(v) for k, v in f["grid"].items()})
            names = {fld.name for fld in dataclasses.fields(ModelParameters)}
            params = ModelParameters(**{k: _scalar(v) for k, v in f["parameters"].items() if k in names})
            model = Model(grid, params)
            model.clock.iteration = int(_scalar(f["clock/iteration"]))
            model.clock.time = float(_scalar(f["clock/time"]))
            for name, field in model.velocities.items():
                field.data[...] = f[f"velocities/{name}"][()]
            for name, field in model.tracers.items():
                field.data[...] = f[f"tracers/{name}"][()]
            for name, G in model.timestepper.Gn.items():
                G.data[...] = f[f"timestepper/Gn/{name}"][()]
            for name, G in model.timestepper.G_prev.items():
                G.data[...] = f[f"timestepper/G_prev/{name}"][()]
    except (OSError, KeyError, ValueError) as e:
        raise CheckpointError(f"Could not restore from '{path}': {e}") from e
    print(f"[Restore] {path}: iteration {model.clock.iteration}, time {model.clock.time:.6g}")
    return model


def compare_models(a, b, rtol=None, atol=None) -> list:
    """
    Names of prognostic fields and tendencies where `a` and `b` differ beyond
    np.allclose(rtol, atol). Tolerances default to PB_RESTORE_RTOL / PB_RESTORE_ATOL.
    """
    if rtol is None:
        rtol = float(os.getenv("PB_RESTORE_RTOL", "1e-10"))
    if atol is None:
        atol = float(os.getenv("PB_RESTORE_ATOL", "0"))
    mismatched = []
    pairs = list(zip(a.prognostic_fields().items(), b.prognostic_fields().values()))
    pairs += [((f"Gn.{k}", G), b.timestepper.Gn[k]) for k, G in a.timestepper.Gn.items()]
    pairs += [((f"G_prev.{k}", G), b.timestepper.G_prev[k]) for k, G in a.timestepper.G_prev.items()]
    for (name, fa), fb in pairs:
        if fa.data.shape != fb.data.shape or not np.allclose(fa.data, fb.data, rtol=rtol, atol=atol):
            mismatched.append(name)
    return mismatched
