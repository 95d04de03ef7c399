# pybouss/model.py

"""
A minimal Boussinesq box model: the state object that diagnostics, output writers
and the checkpointer operate on.

Prognostic fields u, v, w (velocities) and T, S (tracers) are advanced with
second-order Adams-Bashforth. The tendencies are
    Gu = ν∇²u + f v
    Gv = ν∇²v − f u
    Gw = ν∇²w + g (α (T − T0) − β (S − S0))
    GT = κ∇²T,  GS = κ∇²S
There is no pressure solve; the model exists to be stepped, inspected, written and
restored.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict

from .grid import RegularCartesianGrid
from .fields import Field, fill_halo_regions
from .jax_compat import laplacian
from . import constants as const

VELOCITY_NAMES = ("u", "v", "w")
TRACER_NAMES = ("T", "S")


@dataclass
class Clock:
    iteration: int = 0
    time: float = 0.0

    def tick(self, dt: float) -> None:
        self.iteration += 1
        self.time += dt


@dataclass
class ModelParameters:
    nu: float = 1.0e-2             # viscosity (m^2/s)
    kappa: float = 1.0e-2          # tracer diffusivity (m^2/s)
    f: float = 0.0                 # Coriolis parameter (1/s)
    g: float = const.GRAVITY
    alpha: float = const.ALPHA_T
    beta: float = const.BETA_S
    T0: float = const.T_REF
    S0: float = const.S_REF
    chi: float = const.AB2_CHI     # AB2 stabilisation


def tendency_name(name: str) -> str:
    return f"G{name}"


class AdamsBashforthTimestepper:
    """
    Holds the current (Gn) and previous (G_prev) tendency of every prognostic field.
    """
    def __init__(self, grid: RegularCartesianGrid, names, chi: float = const.AB2_CHI):
        self.chi = float(chi)
        self.Gn = {tendency_name(n): Field(grid) for n in names}
        self.G_prev = {tendency_name(n): Field(grid) for n in names}

    def store_previous(self) -> None:
        for key, G in self.Gn.items():
            self.G_prev[key].data[...] = G.data

    def advance(self, fields: dict, dt: float, euler: bool = False) -> None:
        """
        φ ← φ + Δt ((3/2 + χ) Gⁿ − (1/2 + χ) Gⁿ⁻¹), or φ ← φ + Δt Gⁿ when `euler`.
        """
        a = 1.5 + self.chi
        b = 0.5 + self.chi
        for name, field in fields.items():
            G = self.Gn[tendency_name(name)].interior
            if euler:
                field.interior[...] += dt * G
            else:
                Gp = self.G_prev[tendency_name(name)].interior
                field.interior[...] += dt * (a * G - b * Gp)
            fill_halo_regions(field.data, field.grid.H)


class Model:
    """
    Owns the grid, the clock, the prognostic fields and the tendency history.
    Diagnostics and output writers are held by the driver, not by the model.
    """
    def __init__(self, grid: RegularCartesianGrid, parameters: ModelParameters | None = None, **kwargs):
        """
        Args:
            grid: the model grid
            parameters: physical parameters; keyword arguments (nu=, kappa=, f=, ...)
                        override individual entries
        """
        self.grid = grid
        if parameters is None:
            parameters = ModelParameters()
        self.parameters = ModelParameters(**{**asdict(parameters), **kwargs})
        self.clock = Clock()
        self.velocities = {n: Field(grid) for n in VELOCITY_NAMES}
        self.tracers = {n: Field(grid) for n in TRACER_NAMES}
        self.tracers["T"].set(self.parameters.T0)
        self.tracers["S"].set(self.parameters.S0)
        self.timestepper = AdamsBashforthTimestepper(grid, VELOCITY_NAMES + TRACER_NAMES, chi=self.parameters.chi)

    @property
    def nu(self) -> float:
        return self.parameters.nu

    @property
    def kappa(self) -> float:
        return self.parameters.kappa

    def prognostic_fields(self) -> dict:
        return {**self.velocities, **self.tracers}

    def set(self, **values) -> "Model":
        """set(u=..., T=...): each value is a scalar, an interior array or f(x, y, z)."""
        fields = self.prognostic_fields()
        for name, value in values.items():
            if name not in fields:
                raise KeyError(f"Model has no prognostic field named '{name}'")
            fields[name].set(value)
        return self

    def compute_tendencies(self) -> None:
        p = self.parameters
        g = self.grid
        u, v, w = (self.velocities[n].data for n in VELOCITY_NAMES)
        T, S = self.tracers["T"].data, self.tracers["S"].data
        Gn = self.timestepper.Gn

        def lap(d):
            return laplacian(d, g.dx, g.dy, g.dz, g.H)

        Gn["Gu"].interior[...] = p.nu * lap(u) + p.f * g.interior(v)
        Gn["Gv"].interior[...] = p.nu * lap(v) - p.f * g.interior(u)
        Gn["Gw"].interior[...] = p.nu * lap(w) + p.g * (p.alpha * (g.interior(T) - p.T0)
                                                         - p.beta * (g.interior(S) - p.S0))
        Gn["GT"].interior[...] = p.kappa * lap(T)
        Gn["GS"].interior[...] = p.kappa * lap(S)

    def step(self, dt: float, euler: bool = False) -> None:
        """Advance the state by one step of size dt and tick the clock."""
        self.timestepper.store_previous()
        self.compute_tendencies()
        self.timestepper.advance(self.prognostic_fields(), dt, euler=euler)
        self.clock.tick(dt)

    def __repr__(self):
        return (f"Model(grid={self.grid!r}, iteration={self.clock.iteration}, "
                f"time={self.clock.time:.6g})")
