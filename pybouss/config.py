"""
config.py

Run configuration for the pybouss driver, loaded from PB_* environment variables.

Grid and physics:   PB_NX, PB_NY, PB_NZ, PB_LX, PB_LY, PB_LZ, PB_NU, PB_KAPPA, PB_F
Stepping:           PB_DT (s), PB_STEPS
Output:             PB_OUTPUT_DIR, PB_OUTPUT_EVERY, PB_MAX_FILESIZE_KIB, PB_FORCE
Checkpoints:        PB_CHECKPOINT_EVERY (0 disables), PB_RESTART_IN
Safety checks:      PB_NAN_EVERY, PB_DIV_WARN, PB_DIV_ABORT
Plotting:           PB_PLOT (0/1)
Backend:            PB_USE_JAX, PB_JAX_PLATFORM (read by jax_compat)
"""

from __future__ import annotations

from dataclasses import dataclass
import os


@dataclass
class RunParams:
    Nx: int = 16
    Ny: int = 16
    Nz: int = 16
    Lx: float = 100.0
    Ly: float = 100.0
    Lz: float = 100.0
    nu: float = 4.0e-2
    kappa: float = 4.0e-2
    f: float = 0.0
    dt: float = 6.0
    steps: int = 100
    output_dir: str = "output"
    output_every: int = 10
    max_filesize_kib: float | None = None     # None: never split
    force: bool = False
    checkpoint_every: int = 50
    restart_in: str | None = None
    nan_every: int = 10
    div_warn: float = 1.0e-3
    div_abort: float = 1.0e-1
    plot: bool = False

    @property
    def max_filesize(self) -> float:
        return float("inf") if self.max_filesize_kib is None else self.max_filesize_kib * 1024


def get_run_params_from_env() -> RunParams:
    def _f(env: str, default: float) -> float:
        try:
            return float(os.getenv(env, str(default)))
        except ValueError:
            return default
    def _i(env: str, default: int) -> int:
        try:
            return int(os.getenv(env, str(default)))
        except ValueError:
            return default
    def _opt(env: str):
        val = os.getenv(env, "")
        return None if val in ("", "None", "none", "null") else val

    max_kib = _opt("PB_MAX_FILESIZE_KIB")
    try:
        max_filesize_kib = float(max_kib) if max_kib is not None else None
    except ValueError:
        max_filesize_kib = None

    d = RunParams()
    return RunParams(
        Nx=_i("PB_NX", d.Nx), Ny=_i("PB_NY", d.Ny), Nz=_i("PB_NZ", d.Nz),
        Lx=_f("PB_LX", d.Lx), Ly=_f("PB_LY", d.Ly), Lz=_f("PB_LZ", d.Lz),
        nu=_f("PB_NU", d.nu),
        kappa=_f("PB_KAPPA", d.kappa),
        f=_f("PB_F", d.f),
        dt=_f("PB_DT", d.dt),
        steps=_i("PB_STEPS", d.steps),
        output_dir=os.getenv("PB_OUTPUT_DIR", d.output_dir),
        output_every=_i("PB_OUTPUT_EVERY", d.output_every),
        max_filesize_kib=max_filesize_kib,
        force=(_i("PB_FORCE", 0) == 1),
        checkpoint_every=_i("PB_CHECKPOINT_EVERY", d.checkpoint_every),
        restart_in=_opt("PB_RESTART_IN"),
        nan_every=_i("PB_NAN_EVERY", d.nan_every),
        div_warn=_f("PB_DIV_WARN", d.div_warn),
        div_abort=_f("PB_DIV_ABORT", d.div_abort),
        plot=(_i("PB_PLOT", 0) == 1),
    )
