# pybouss/diagnostics.py

"""
Diagnostics evaluated against a live model after a time step.

The set of diagnostic kinds is closed:
- HorizontalAverage: x-y mean profile of a field (or of a product of fields)
- NaNChecker: aborts the run when a field holds a non-finite value
- VelocityDivergenceChecker: warns/aborts on large discrete velocity divergence
- FieldMaximum: max of a transform (e.g. abs) applied to a field
- AdvectiveCFL / DiffusiveCFL: CFL numbers for a given step size
- Timeseries: records (iteration, time, value) for one or several functions of the model

Every kind carries a schedule (default: every iteration) and a `run(model)` method.
The driver calls `run_diagnostic(model, diag)` for each entry of a
DiagnosticsCollection whose schedule fires; calling run_diagnostic directly skips
the schedule check.

Field reductions go through `jax_compat`, so they run on NumPy or JAX alike and use
only order-independent reductions (sum, min, max, any).
"""

from __future__ import annotations

import os
import sys

import numpy as np

from .fields import Field, get_field
from .jax_compat import (any_nonfinite, divergence_f2c, horizontal_mean, max_abs,
                         reduce_max, reduce_mean, reduce_min, to_numpy)
from .schedules import IterationInterval, make_schedule


class NaNFoundError(RuntimeError):
    """Fatal: a checked field contains a non-finite value."""
    def __init__(self, time, iteration, field_name):
        self.time = time
        self.iteration = iteration
        self.field_name = field_name
        super().__init__(f"time = {time}, iteration = {iteration}: NaN found in {field_name}. Aborting simulation.")


def _schedule_or_every_iteration(schedule, frequency, interval):
    return make_schedule(schedule, frequency, interval, required=False) or IterationInterval(1)


def _resolve(model, field):
    """Return the raw parent array of a Field, a field name, or a bare array."""
    if isinstance(field, Field):
        return field.data
    if isinstance(field, str):
        return get_field(model, field).data
    return field


# ---------------- Profile ---------------- #

class HorizontalAverage:
    """
    Horizontal (x-y) average of a field, or of the elementwise product of several
    fields, at every vertical level. `profile` has Nz + 2H entries; the first and
    last H are halo padding.
    """
    def __init__(self, fields, schedule=None, frequency=None, interval=None):
        if isinstance(fields, (Field, str)):
            fields = [fields]
        fields = list(fields)
        if not fields:
            raise ValueError("HorizontalAverage needs at least one field")
        self.fields = fields
        self.schedule = _schedule_or_every_iteration(schedule, frequency, interval)
        self.profile = None

    def run(self, model):
        H = model.grid.H
        product = np.array(to_numpy(_resolve(model, self.fields[0])), copy=True)
        for f in self.fields[1:]:
            product *= to_numpy(_resolve(model, f))
        self.profile = np.asarray(horizontal_mean(product, H))
        return self.profile

    def __call__(self, model):
        return self.run(model)


# ---------------- Safety checks ---------------- #

class NaNChecker:
    """
    Scans the configured fields, halos included, for NaN/Inf and raises
    NaNFoundError on the first hit.

    Args:
        fields: mapping name -> Field/array, or an iterable of field names looked up
                on the model at run time. Defaults to all prognostic fields.
    """
    def __init__(self, fields=None, schedule=None, frequency=None, interval=None):
        if fields is None:
            fields = ("u", "v", "w", "T", "S")
        if isinstance(fields, str):
            fields = (fields,)
        if not isinstance(fields, dict):
            fields = {name: name for name in fields}
        self.fields = dict(fields)
        self.schedule = _schedule_or_every_iteration(schedule, frequency, interval)

    def run(self, model):
        for name, field in self.fields.items():
            if any_nonfinite(_resolve(model, field)):
                t, i = model.clock.time, model.clock.iteration
                print(f"[NaNChecker] time = {t}, iteration = {i}: NaN found in {name}.")
                raise NaNFoundError(t, i, name)

    def __call__(self, model):
        return self.run(model)


class VelocityDivergenceChecker:
    """
    Computes ∇·u at every interior cell. Warns (and carries on) when
    max(|min|, |max|) >= warn_threshold; exits the process with status 1 when it
    is >= abort_threshold.
    """
    def __init__(self, warn_threshold=None, abort_threshold=None, schedule=None, frequency=None, interval=None):
        if warn_threshold is None:
            warn_threshold = float(os.getenv("PB_DIV_WARN", "1e-6"))
        if abort_threshold is None:
            abort_threshold = float(os.getenv("PB_DIV_ABORT", "1e-2"))
        self.warn_threshold = float(warn_threshold)
        self.abort_threshold = float(abort_threshold)
        self.schedule = _schedule_or_every_iteration(schedule, frequency, interval)
        self.stats = None

    def run(self, model):
        g = model.grid
        u, v, w = (model.velocities[n].data for n in ("u", "v", "w"))
        div = divergence_f2c(u, v, w, g.dx, g.dy, g.dz, g.H)
        min_div, mean_div, max_div = reduce_min(div), reduce_mean(div), reduce_max(div)
        self.stats = (min_div, mean_div, max_div)
        worst = max(abs(min_div), abs(max_div))

        if worst >= self.warn_threshold:
            t, i = model.clock.time, model.clock.iteration
            print(f"[Divergence] time = {t}, iteration = {i}")
            print(f"[Divergence] WARNING: Velocity divergence is high! "
                  f"min={min_div:.6e}, mean={mean_div:.6e}, max={max_div:.6e}")

        if worst >= self.abort_threshold:
            t, i = model.clock.time, model.clock.iteration
            print(f"[Divergence] time = {t}, iteration = {i}")
            print(f"[Divergence] Velocity divergence is too high! "
                  f"min={min_div:.6e}, mean={mean_div:.6e}, max={max_div:.6e}. Aborting simulation.")
            sys.exit(1)
        return self.stats

    def __call__(self, model):
        return self.run(model)


# ---------------- Scalars ---------------- #

class FieldMaximum:
    """max(mapping(field)) over the full storage, e.g. FieldMaximum(np.abs, "u")."""
    def __init__(self, mapping, field, schedule=None, frequency=None, interval=None):
        self.mapping = mapping
        self.field = field
        self.schedule = _schedule_or_every_iteration(schedule, frequency, interval)
        self.result = None

    def run(self, model):
        self.result = max_abs(_resolve(model, self.field), self.mapping)
        return self.result

    def __call__(self, model):
        return self.run(model)


class AdvectiveCFL:
    """Δt · max(max|u|/Δx, max|v|/Δy, max|w|/Δz)."""
    def __init__(self, dt, schedule=None, frequency=None, interval=None):
        self.dt = dt
        self.schedule = _schedule_or_every_iteration(schedule, frequency, interval)
        self.result = None

    def run(self, model):
        g = model.grid
        u, v, w = (model.velocities[n].data for n in ("u", "v", "w"))
        rate = max(max_abs(u) / g.dx, max_abs(v) / g.dy, max_abs(w) / g.dz)
        self.result = self.dt * rate
        return self.result

    def __call__(self, model):
        return self.run(model)


class DiffusiveCFL:
    """Δt · max(ν, κ) / min(Δx, Δy, Δz)²."""
    def __init__(self, dt, schedule=None, frequency=None, interval=None):
        self.dt = dt
        self.schedule = _schedule_or_every_iteration(schedule, frequency, interval)
        self.result = None

    def run(self, model):
        g = model.grid
        diffusivity = max(model.parameters.nu, model.parameters.kappa)
        self.result = self.dt * diffusivity / min(g.dx, g.dy, g.dz) ** 2
        return self.result

    def __call__(self, model):
        return self.run(model)


_TIMESERIES_ATTRS = ("funcs", "schedule", "iteration", "time", "data")


class Timeseries:
    """
    Records func(model) together with the iteration and time each time it runs.

    With a single function the values go to `data`; with a mapping name -> function
    each name gets its own list, reachable as `ts[name]` or `ts.<name>`.
    """
    def __init__(self, funcs, schedule=None, frequency=None, interval=None):
        if callable(funcs):
            self.funcs = {"data": funcs}
        else:
            self.funcs = dict(funcs)
            if not self.funcs:
                raise ValueError("Timeseries needs at least one function")
            clashes = sorted(n for n in self.funcs if n in _TIMESERIES_ATTRS or hasattr(Timeseries, n))
            if clashes:
                raise ValueError(f"Timeseries names {clashes} clash with its own attributes")
        self.schedule = _schedule_or_every_iteration(schedule, frequency, interval)
        self.iteration = []
        self.time = []
        self.data = {name: [] for name in self.funcs}
        if callable(funcs):
            self.data = self.data["data"]

    def run(self, model):
        self.iteration.append(model.clock.iteration)
        self.time.append(model.clock.time)
        if isinstance(self.data, list):
            self.data.append(self.funcs["data"](model))
        else:
            for name, func in self.funcs.items():
                self.data[name].append(func(model))

    def __call__(self, model):
        return self.run(model)

    def __getitem__(self, name):
        if isinstance(self.data, list):
            raise KeyError(f"Single-function timeseries has no named series '{name}'")
        return self.data[name]

    def __getattr__(self, name):
        data = self.__dict__.get("data")
        if isinstance(data, dict) and name in data:
            return data[name]
        raise AttributeError(name)


DIAGNOSTIC_TYPES = (HorizontalAverage, NaNChecker, VelocityDivergenceChecker,
                    FieldMaximum, AdvectiveCFL, DiffusiveCFL, Timeseries)


def run_diagnostic(model, diag):
    """Run a diagnostic now, regardless of its schedule."""
    if not isinstance(diag, DIAGNOSTIC_TYPES):
        raise TypeError(f"{type(diag).__name__} is not a diagnostic")
    return diag.run(model)


# ---------------- Ordered, keyed collection ---------------- #

class DiagnosticsCollection:
    """
    Diagnostics in registration order, addressable by position or by key.

    Entries appended without a key get the key "diag<position>", or the next free
    "diag<n>" when a caller already used that key. Assigning by position replaces
    the entry in place and keeps its key; assigning by an unknown key appends.
    """
    def __init__(self, diagnostics=None):
        self._entries = []
        self._keys = []
        self._positions = {}
        if diagnostics is not None:
            items = diagnostics.items() if isinstance(diagnostics, dict) else ((None, d) for d in diagnostics)
            for key, diag in items:
                self.append(diag, key=key)

    @staticmethod
    def _check(diag):
        if not isinstance(diag, DIAGNOSTIC_TYPES):
            raise TypeError(f"{type(diag).__name__} is not a diagnostic")

    def append(self, diag, key=None):
        self._check(diag)
        if key is None:
            n = len(self._entries)
            while f"diag{n}" in self._positions:
                n += 1
            key = f"diag{n}"
        if key in self._positions:
            raise ValueError(f"Diagnostic key '{key}' already in use")
        self._positions[key] = len(self._entries)
        self._entries.append(diag)
        self._keys.append(key)
        return diag

    def push(self, *diags):
        for d in diags:
            self.append(d)

    def _position(self, index):
        n = len(self._entries)
        i = index + n if index < 0 else index
        if not 0 <= i < n:
            raise IndexError(f"Diagnostic index {index} out of range for {n} entries")
        return i

    def __getitem__(self, k):
        if isinstance(k, str):
            return self._entries[self._positions[k]]
        return self._entries[self._position(k)]

    def __setitem__(self, k, diag):
        self._check(diag)
        if isinstance(k, str):
            if k in self._positions:
                self._entries[self._positions[k]] = diag
            else:
                self.append(diag, key=k)
        else:
            self._entries[self._position(k)] = diag

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))

    def __contains__(self, item):
        if isinstance(item, str):
            return item in self._positions
        return any(item is d for d in self._entries)

    def keys(self):
        return list(self._keys)

    def items(self):
        return list(zip(self._keys, self._entries))

    def __repr__(self):
        body = ", ".join(f"{k}: {type(d).__name__}" for k, d in self.items())
        return f"DiagnosticsCollection({body})"
