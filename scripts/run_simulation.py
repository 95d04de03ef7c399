# scripts/run_simulation.py

"""
Thermal bubble run for the pybouss box model, configured through PB_* environment
variables (see pybouss/config.py).
"""

import numpy as np
import sys
import os
from scipy.ndimage import gaussian_filter

# Add the project root to the Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pybouss.config import get_run_params_from_env
from pybouss.grid import RegularCartesianGrid
from pybouss.model import Model
from pybouss.diagnostics import (AdvectiveCFL, DiffusiveCFL, HorizontalAverage, NaNChecker,
                                 Timeseries, VelocityDivergenceChecker)
from pybouss.output_writers import HDF5OutputWriter, NetCDFOutputWriter
from pybouss.checkpointer import Checkpointer, restore_from_checkpoint
from pybouss.simulation import Simulation
from pybouss.jax_compat import is_enabled as JAX_IS_ENABLED


def add_thermal_bubble(model, amplitude=0.01, smooth_sigma=1.0):
    """
    Add a warm cube occupying the middle 50% of the domain in every direction,
    softened with a Gaussian filter (sigma in grid cells).
    """
    g = model.grid
    anomaly = np.zeros(g.interior_shape)
    i1, i2 = round(g.Nx / 4), round(3 * g.Nx / 4)
    j1, j2 = round(g.Ny / 4), round(3 * g.Ny / 4)
    k1, k2 = round(g.Nz / 4), round(3 * g.Nz / 4)
    anomaly[i1:i2, j1:j2, k1:k2] = amplitude
    if smooth_sigma and smooth_sigma > 0:
        anomaly = gaussian_filter(anomaly, sigma=smooth_sigma, mode=("wrap", "wrap", "nearest"))
    T = model.tracers["T"]
    T.set(T.interior + anomaly)
    print(f"[Init] Thermal bubble: amplitude={amplitude} K, cells [{i1}:{i2}, {j1}:{j2}, {k1}:{k2}], sigma={smooth_sigma}")


def plot_profile(profile, grid, output_dir):
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    H = grid.H
    fig, ax = plt.subplots(figsize=(4, 6))
    ax.plot(profile[H:-H], grid.zC, marker="o")
    ax.set_xlabel("⟨T⟩ (°C)")
    ax.set_ylabel("z (m)")
    ax.set_title("Horizontally averaged temperature")
    fig.tight_layout()
    path = os.path.join(output_dir, "T_profile.png")
    fig.savefig(path, dpi=120)
    plt.close(fig)
    print(f"[Plot] Saved {path}")


def main():
    """
    Main function to run the simulation.
    """
    print("--- Initializing pybouss box model ---")
    print(f"[JAX] Acceleration enabled: {JAX_IS_ENABLED()} (toggle via PB_USE_JAX=1; platform via PB_JAX_PLATFORM=cpu|gpu|tpu)")
    params = get_run_params_from_env()

    # --- Restart load or fresh initialization ---
    if params.restart_in:
        model = restore_from_checkpoint(params.restart_in)
        init_with_euler = False
    else:
        print("Creating grid...")
        grid = RegularCartesianGrid(N=(params.Nx, params.Ny, params.Nz), L=(params.Lx, params.Ly, params.Lz))
        model = Model(grid, nu=params.nu, kappa=params.kappa, f=params.f)
        add_thermal_bubble(model)
        init_with_euler = True
    grid = model.grid

    # --- Diagnostics ---
    T_avg = HorizontalAverage(model.tracers["T"], frequency=params.output_every)
    cfl = Timeseries({"advective": AdvectiveCFL(params.dt), "diffusive": DiffusiveCFL(params.dt)},
                     frequency=params.output_every)
    diagnostics = {
        "nan_checker": NaNChecker(frequency=max(1, params.nan_every)),
        "divergence": VelocityDivergenceChecker(params.div_warn, params.div_abort, frequency=params.output_every),
        "T_avg": T_avg,
        "cfl": cfl,
    }

    # --- Output writers ---
    os.makedirs(params.output_dir, exist_ok=True)
    prefix = f"bubble_{model.clock.iteration}"
    output_writers = [
        NetCDFOutputWriter(model, dir=params.output_dir, prefix=prefix, frequency=params.output_every,
                           force=params.force),
        HDF5OutputWriter(model, {"T": "T", "w": "w"}, dir=params.output_dir, prefix=prefix,
                         frequency=params.output_every, including=("grid", "parameters"),
                         max_filesize=params.max_filesize, force=params.force),
    ]
    if params.checkpoint_every > 0:
        output_writers.append(Checkpointer(model, frequency=params.checkpoint_every,
                                           dir=params.output_dir, force=params.force))

    simulation = Simulation(model, diagnostics, output_writers, progress_every=0)

    print(f"\n--- Starting Simulation ---")
    print(f"Grid: {grid}")
    print(f"Time step (dt): {params.dt} s")
    print(f"Total time steps: {params.steps} (starting at iteration {model.clock.iteration})")

    try:
        from tqdm import tqdm
        iterator = tqdm(range(params.steps))
    except ImportError:
        print("tqdm not found, using simple print statements for progress.")
        iterator = None
        simulation.progress_every = max(1, params.output_every)

    simulation.run(params.steps, params.dt, init_with_euler=init_with_euler, iterator=iterator)

    print("\n--- Simulation Finished ---")
    print("Final state diagnostics:")
    print(f"  Iteration: {model.clock.iteration}, time: {model.clock.time:.1f} s")
    print(f"  Max absolute vertical velocity (w): {np.max(np.abs(model.velocities['w'].interior)):.3e} m/s")
    print(f"  Max temperature anomaly: {np.max(model.tracers['T'].interior) - model.parameters.T0:.3e} K")
    if cfl.iteration:
        print(f"  Last CFL: advective={cfl.advective[-1]:.3e}, diffusive={cfl.diffusive[-1]:.3e}")

    if params.plot and T_avg.profile is not None:
        plot_profile(T_avg.profile, grid, params.output_dir)


if __name__ == "__main__":
    main()
