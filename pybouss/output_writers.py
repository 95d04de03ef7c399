# pybouss/output_writers.py

"""
Output writers invoked by the driver after each step whose schedule fires.

- NetCDFOutputWriter: a single self-describing NetCDF4 file with an unlimited
  `time` record dimension; each configured field is stored per record and can be
  read back by (name, iteration).
- HDF5OutputWriter: a hierarchical HDF5 archive split into `<prefix>_part<N>.h5`
  files once a part exceeds `max_filesize` bytes. Every part is initialised with
  the user `init(file, model)` hook and with the `including` model properties, so
  each part can be read on its own.

Files are opened for the duration of a single write and closed on every exit path.
Writes are synchronous and I/O errors propagate to the caller.
"""

from __future__ import annotations

import dataclasses
import glob
import numbers
import os

import h5py
import numpy as np
from netCDF4 import Dataset

from .fields import Field, get_field, parentdata
from .schedules import make_schedule

DEFAULT_NETCDF_FIELDS = ("u", "v", "w", "T", "S")


def _property_dict(obj) -> dict:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if dataclasses.is_dataclass(obj):
        return dataclasses.asdict(obj)
    return dict(vars(obj))


def write_properties(file, name: str, obj) -> None:
    """
    Serialise the scalar, string and array attributes of `obj` under `/<name>/...`
    of an open h5py file or group. Anything else is skipped.
    """
    for key, value in _property_dict(obj).items():
        if isinstance(value, (numbers.Number, str, np.ndarray, np.generic)):
            file[f"{name}/{key}"] = value


def _evaluate(model, output) -> np.ndarray:
    if isinstance(output, Field):
        return parentdata(output)
    if isinstance(output, str):
        return parentdata(get_field(model, output))
    return np.asarray(output(model))


def _check_target(paths, force: bool, what: str) -> None:
    existing = [p for p in paths if os.path.exists(p)]
    if not existing:
        return
    if not force:
        raise FileExistsError(f"{what} {existing[0]} already exists; pass force=True to overwrite.")
    for p in existing:
        os.remove(p)


class NetCDFOutputWriter:
    def __init__(self, model, dir=".", prefix="output", fields=None,
                 schedule=None, frequency=None, interval=None,
                 padding=True, zlib=False, force=False):
        """
        Args:
            model: the model whose fields are written
            dir, prefix: output goes to `<dir>/<prefix>.nc`
            fields: field names to write (default u, v, w, T, S)
            padding: write full halo-padded arrays (True) or the interior only
            zlib: enable NetCDF4 compression
            force: truncate an existing file instead of failing
        """
        self.schedule = make_schedule(schedule, frequency, interval)
        self.dir = dir
        self.prefix = prefix
        self.path = os.path.join(dir, f"{prefix}.nc")
        self.fields = tuple(fields) if fields is not None else DEFAULT_NETCDF_FIELDS
        self.padding = bool(padding)
        self.zlib = bool(zlib)
        for name in self.fields:
            get_field(model, name)

        _check_target([self.path], force, "Output file")
        os.makedirs(dir or ".", exist_ok=True)
        self._create(model)

    def _coords(self, grid):
        if not self.padding:
            return grid.xC, grid.yC, grid.zC
        H = grid.H
        pad = np.arange(1, H + 1)
        x = np.concatenate([grid.xC[0] - pad[::-1] * grid.dx, grid.xC, grid.xC[-1] + pad * grid.dx])
        y = np.concatenate([grid.yC[0] - pad[::-1] * grid.dy, grid.yC, grid.yC[-1] + pad * grid.dy])
        z = np.concatenate([grid.zC[0] - pad[::-1] * grid.dz, grid.zC, grid.zC[-1] + pad * grid.dz])
        return x, y, z

    def _create(self, model):
        grid = model.grid
        x, y, z = self._coords(grid)
        with Dataset(self.path, "w") as ds:
            ds.createDimension("time", None)
            ds.createDimension("x", len(x))
            ds.createDimension("y", len(y))
            ds.createDimension("z", len(z))
            ds.createVariable("x", "f8", ("x",))[:] = x
            ds.createVariable("y", "f8", ("y",))[:] = y
            ds.createVariable("z", "f8", ("z",))[:] = z
            ds.createVariable("time", "f8", ("time",))
            ds.createVariable("iteration", "i8", ("time",))
            for name in self.fields:
                ds.createVariable(name, np.dtype(grid.float_type), ("time", "x", "y", "z"), zlib=self.zlib)

            for key, value in grid.to_dict().items():
                ds.setncattr(f"grid_{key}", value)
            ds.setncattr("title", "pybouss field output")
            ds.setncattr("padding", int(self.padding))

    def write_output(self, model):
        grid = model.grid
        with Dataset(self.path, "a") as ds:
            n = len(ds.dimensions["time"])
            ds.variables["time"][n] = model.clock.time
            ds.variables["iteration"][n] = model.clock.iteration
            for name in self.fields:
                data = parentdata(get_field(model, name))
                if not self.padding:
                    data = grid.interior(data)
                ds.variables[name][n, :, :, :] = data

    def read(self, name, iteration):
        with Dataset(self.path, "r") as ds:
            iterations = ds.variables["iteration"][:].data
            hits = np.nonzero(iterations == iteration)[0]
            if hits.size == 0:
                raise KeyError(f"No record for iteration {iteration} in {self.path}")
            if name not in ds.variables:
                raise KeyError(f"No variable '{name}' in {self.path}")
            return np.array(ds.variables[name][hits[-1]].data)


class HDF5OutputWriter:
    def __init__(self, model, outputs, dir=".", prefix="output",
                 schedule=None, frequency=None, interval=None,
                 init=None, including=("grid",), max_filesize=np.inf, force=False):
        """
        Args:
            model: the model the outputs are computed from
            outputs: mapping name -> callable(model), Field, or field name
            dir, prefix: parts go to `<dir>/<prefix>_part<N>.h5`, N = 1, 2, ...
            init: optional hook init(file, model) run on every new part
            including: model attributes serialised into every part (e.g. "grid")
            max_filesize: bytes; once a part exceeds it, the next write starts a new part
            force: delete existing parts instead of failing
        """
        self.schedule = make_schedule(schedule, frequency, interval)
        self.outputs = dict(outputs)
        if not self.outputs:
            raise ValueError("HDF5OutputWriter needs at least one output")
        for name in self.outputs:
            if name == "t" or not name or "/" in name:
                raise ValueError(f"Invalid output name '{name}' ('t' holds the record times; no '/')")
        self.dir = dir
        self.prefix = prefix
        self.init = init
        self.including = tuple(including)
        for name in self.including:
            if not hasattr(model, name):
                raise ValueError(f"Model has no property '{name}' to include")
        self.max_filesize = max_filesize
        self.part = 1

        _check_target(glob.glob(os.path.join(dir, f"{prefix}_part*.h5")), force, "Output part")
        os.makedirs(dir or ".", exist_ok=True)
        self._start_part(model)

    @property
    def path(self):
        return self.part_path(self.part)

    def part_path(self, n):
        return os.path.join(self.dir, f"{self.prefix}_part{n}.h5")

    def _start_part(self, model):
        with h5py.File(self.path, "w") as f:
            if self.init is not None:
                self.init(f, model)
            for name in self.including:
                write_properties(f, name, getattr(model, name))

    def write_output(self, model):
        i, t = model.clock.iteration, model.clock.time
        with h5py.File(self.path, "a") as f:
            for name, output in self.outputs.items():
                f[f"timeseries/{name}/{i}"] = _evaluate(model, output)
            f[f"timeseries/t/{i}"] = t

        size = os.path.getsize(self.path)
        if size > self.max_filesize:
            print(f"[Output] {self.path} is {size} bytes > {self.max_filesize}; starting part {self.part + 1}.")
            self.part += 1
            self._start_part(model)

    def read(self, name, iteration):
        key = f"timeseries/{name}/{iteration}"
        for n in range(1, self.part + 1):
            path = self.part_path(n)
            if not os.path.exists(path):
                continue
            with h5py.File(path, "r") as f:
                if key in f:
                    return f[key][()]
        raise KeyError(f"No record '{key}' in any part of {self.prefix}")


def read_output(writer, name, iteration):
    """The array `writer` stored for field/output `name` at `iteration`."""
    return writer.read(name, iteration)
