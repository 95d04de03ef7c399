# pybouss/simulation.py

"""
The step loop. After every model step the diagnostics run, then the output
writers, each in registration order and each only when its schedule fires.
Everything happens synchronously on the calling thread.
"""

from __future__ import annotations

import numpy as np

from .diagnostics import DiagnosticsCollection, run_diagnostic
from .schedules import should_fire


def run_callbacks(model, diagnostics=None, output_writers=None) -> None:
    """Run every diagnostic, then every writer, whose schedule fires now."""
    clock = model.clock
    if diagnostics is not None:
        for diag in diagnostics:
            if should_fire(clock, diag.schedule):
                run_diagnostic(model, diag)
    if output_writers is not None:
        for writer in output_writers:
            if should_fire(clock, writer.schedule):
                writer.write_output(model)


def time_step(model, Nt: int, dt: float, diagnostics=None, output_writers=None, init_with_euler: bool = True) -> None:
    """
    Advance `model` by `Nt` steps of size `dt`.

    When `init_with_euler` is True the first step of this call is forward Euler;
    pass False when continuing a run (e.g. after restoring a checkpoint) so the
    stored tendency history is used.
    """
    for n in range(int(Nt)):
        model.step(dt, euler=(init_with_euler and n == 0))
        run_callbacks(model, diagnostics, output_writers)


class Simulation:
    """
    Holds a model together with its two ordered callback collections.
    """
    def __init__(self, model, diagnostics=None, output_writers=None, progress_every: int = 0):
        self.model = model
        if isinstance(diagnostics, DiagnosticsCollection):
            self.diagnostics = diagnostics
        else:
            self.diagnostics = DiagnosticsCollection(diagnostics)
        self.output_writers = list(output_writers) if output_writers is not None else []
        self.progress_every = int(progress_every)

    def run(self, Nt: int, dt: float, init_with_euler: bool = True, iterator=None) -> None:
        """
        Advance Nt steps. `iterator` may wrap range(Nt) (e.g. a tqdm progress bar).
        """
        steps = iterator if iterator is not None else range(int(Nt))
        model = self.model
        for n in steps:
            model.step(dt, euler=(init_with_euler and n == 0))
            run_callbacks(model, self.diagnostics, self.output_writers)
            if self.progress_every > 0 and model.clock.iteration % self.progress_every == 0:
                u = model.velocities["u"].data
                w = model.velocities["w"].data
                print(f"[Sim] iteration {model.clock.iteration} | t={model.clock.time:.4g} s | "
                      f"max|u|={np.max(np.abs(u)):.3e} | max|w|={np.max(np.abs(w)):.3e}")
