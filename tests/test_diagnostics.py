"""Tests for diagnostics and the diagnostics collection."""

import numpy as np
import pytest

from conftest import make_model
from pybouss.diagnostics import (AdvectiveCFL, DiagnosticsCollection, DiffusiveCFL, FieldMaximum,
                                 HorizontalAverage, NaNChecker, NaNFoundError, Timeseries,
                                 VelocityDivergenceChecker, run_diagnostic)
from pybouss.fields import parentdata
from pybouss.simulation import time_step


def get_iteration(model):
    return model.clock.iteration


def get_time(model):
    return model.clock.time


class TestHorizontalAverage:
    """Tests for horizontally averaged profiles."""

    @pytest.mark.parametrize("N", [(4, 4, 16), (16, 16, 16), (5, 9, 16)])
    def test_linear_profile(self, N):
        """⟨T⟩ of T = 20 + 0.01 z equals 20 + 0.01 z at every level, for any horizontal resolution."""
        model = make_model(N=N, nu=0.0, kappa=0.0)
        model.set(T=lambda x, y, z: 20 + 0.01 * z)

        T_avg = HorizontalAverage(model.tracers["T"], interval=0.5)
        diagnostics = DiagnosticsCollection([T_avg])
        time_step(model, 1, 1.0, diagnostics=diagnostics)

        assert T_avg.profile is not None
        assert T_avg.profile.shape == (N[2] + 2,)
        np.testing.assert_allclose(T_avg.profile[1:-1], 20 + 0.01 * model.grid.zC)

    def test_product_profile_manual_run(self):
        """Several fields average their product; run_diagnostic bypasses the schedule."""
        model = make_model()
        model.set(u=lambda x, y, z: np.sin(z), T=lambda x, y, z: 20 + 0.01 * z)

        uT = HorizontalAverage([model.velocities["u"], model.tracers["T"]], interval=0.5)
        run_diagnostic(model, uT)

        zC = model.grid.zC
        np.testing.assert_allclose(uT.profile[1:-1], np.sin(zC) * (20 + 0.01 * zC))

    def test_does_not_mutate_fields(self):
        """Computing a product profile leaves model state untouched."""
        model = make_model(N=(4, 4, 4))
        model.set(u=lambda x, y, z: np.cos(x), T=lambda x, y, z: z)
        u_before = parentdata(model.velocities["u"])
        T_before = parentdata(model.tracers["T"])
        HorizontalAverage(["u", "T"])(model)
        np.testing.assert_array_equal(model.velocities["u"].data, u_before)
        np.testing.assert_array_equal(model.tracers["T"].data, T_before)


class TestNaNChecker:
    """Tests for the NaN checker."""

    def test_aborts_simulation(self):
        """A NaN in w stops the step loop with the iteration and field name."""
        model = make_model(N=(16, 16, 2), L=(1, 1, 1))
        nc = NaNChecker(fields={"w": model.velocities["w"]}, frequency=1)
        model.velocities["w"].data[4, 3, 2] = np.nan

        with pytest.raises(NaNFoundError) as excinfo:
            time_step(model, 1, 1.0, diagnostics=DiagnosticsCollection([nc]))

        assert excinfo.value.field_name == "w"
        assert excinfo.value.iteration == 1
        assert "iteration = 1" in str(excinfo.value)

    def test_detects_inf_in_halo(self):
        """Halo storage is scanned too."""
        model = make_model(N=(4, 4, 4))
        model.tracers["S"].data[0, 0, 0] = np.inf
        with pytest.raises(NaNFoundError) as excinfo:
            run_diagnostic(model, NaNChecker(fields=["T", "S"]))
        assert excinfo.value.field_name == "S"

    def test_finite_fields_pass(self):
        """Finite fields raise nothing."""
        model = make_model(N=(4, 4, 4))
        run_diagnostic(model, NaNChecker())


class TestVelocityDivergenceChecker:
    """Tests for the divergence checker."""

    def _single_dipole(self, model, amplitude):
        # u on the east face of the first interior cell gives +a and -a divergence in two cells.
        model.velocities["u"].data[2, 1, 1] = amplitude * model.grid.dx

    def test_quiet_for_zero_velocity(self, capsys):
        model = make_model(N=(4, 4, 4))
        stats = run_diagnostic(model, VelocityDivergenceChecker(1e-8, 1.0))
        assert stats == (0.0, 0.0, 0.0)
        assert "WARNING" not in capsys.readouterr().out

    def test_warns_and_continues(self, capsys):
        """Above warn but below abort: prints the statistics, keeps going."""
        model = make_model(N=(4, 4, 4))
        self._single_dipole(model, 1e-3)
        min_div, mean_div, max_div = run_diagnostic(model, VelocityDivergenceChecker(1e-4, 1.0))
        assert min_div == pytest.approx(-1e-3)
        assert max_div == pytest.approx(1e-3)
        assert mean_div == pytest.approx(0.0, abs=1e-15)
        out = capsys.readouterr().out
        assert "WARNING" in out
        assert "Aborting" not in out

    def test_aborts_with_nonzero_status(self):
        """At or above the abort threshold the process exits with status 1."""
        model = make_model(N=(4, 4, 4))
        self._single_dipole(model, 1e-3)
        with pytest.raises(SystemExit) as excinfo:
            run_diagnostic(model, VelocityDivergenceChecker(1e-4, 5e-4))
        assert excinfo.value.code == 1


class TestScalarDiagnostics:
    """Tests for FieldMaximum and the CFL numbers."""

    def test_max_abs_field(self, small_model, seed):
        u = small_model.velocities["u"]
        u.set(np.random.rand(*small_model.grid.interior_shape) - 0.5)
        u_max = FieldMaximum(np.abs, u)
        assert u_max(small_model) == np.max(np.abs(u.data))

    def test_advective_cfl(self, small_model):
        dt = 1.3e-6
        u0 = 1.2
        small_model.velocities["u"].data[...] = u0
        cfl = AdvectiveCFL(dt)
        assert cfl(small_model) == pytest.approx(dt * u0 / small_model.grid.dx)

    def test_diffusive_cfl(self):
        dt, dx, nu = 1.3e-6, 0.5, 1.2
        model = make_model(N=(3, 3, 3), L=(3 * dx, 3 * dx, 3 * dx), nu=nu, kappa=nu)
        cfl = DiffusiveCFL(dt)
        assert cfl(model) == pytest.approx(dt * nu / dx ** 2)


class TestTimeseries:
    """Tests for Timeseries diagnostics."""

    def test_single_function(self, small_model):
        ts = Timeseries(get_iteration, frequency=1)
        dt = 1e-16
        time_step(small_model, 1, dt, diagnostics=DiagnosticsCollection([ts]))
        assert ts.time[-1] == dt
        assert ts.data[-1] == 1

    def test_named_functions(self, small_model):
        ts = Timeseries({"iters": get_iteration, "itertimes": get_time}, frequency=2)
        diagnostics = DiagnosticsCollection()
        diagnostics["timeseries"] = ts
        dt = 1e-16
        time_step(small_model, 2, dt, diagnostics=diagnostics)
        assert ts.iters[-1] == 2
        assert ts["itertimes"][-1] == 2 * dt
        assert ts.iteration == [2]

    def test_wraps_field_maximum(self, small_model):
        small_model.velocities["u"].data[...] = -0.25
        ts = Timeseries(FieldMaximum(np.abs, "u"))
        run_diagnostic(small_model, ts)
        assert ts.data == [0.25]

    @pytest.mark.parametrize("name", ["time", "iteration", "funcs", "schedule", "data", "run"])
    def test_rejects_names_that_shadow_attributes(self, name):
        with pytest.raises(ValueError):
            Timeseries({name: get_time})


class TestDiagnosticsCollection:
    """Tests for positional and keyed addressing."""

    def test_getindex_after_keyed_inserts(self, small_model):
        iter_ts, time_ts = Timeseries(get_iteration), Timeseries(get_time)
        diagnostics = DiagnosticsCollection()
        diagnostics["iters"] = iter_ts
        diagnostics["times"] = time_ts
        assert diagnostics[1] is time_ts
        assert diagnostics[0] is diagnostics["iters"]
        assert diagnostics.keys() == ["iters", "times"]

    def test_setindex_replaces_and_keeps_key(self, small_model):
        iter_ts, time_ts = Timeseries(get_iteration), Timeseries(get_time)
        max_abs_u_ts = Timeseries(FieldMaximum(np.abs, "u"), frequency=1)

        diagnostics = DiagnosticsCollection()
        diagnostics.push(iter_ts, time_ts)
        diagnostics[1] = max_abs_u_ts

        assert diagnostics["diag1"] is max_abs_u_ts
        assert list(diagnostics) == [iter_ts, max_abs_u_ts]
        assert len(diagnostics) == 2

    def test_keyed_replace_keeps_position(self):
        a, b, c = Timeseries(get_iteration), Timeseries(get_time), Timeseries(get_time)
        diagnostics = DiagnosticsCollection({"a": a, "b": b})
        diagnostics["a"] = c
        assert list(diagnostics) == [c, b]
        assert diagnostics[-1] is b

    def test_errors(self):
        diagnostics = DiagnosticsCollection([Timeseries(get_iteration)])
        with pytest.raises(IndexError):
            diagnostics[3] = Timeseries(get_time)
        with pytest.raises(KeyError):
            diagnostics["missing"]
        with pytest.raises(TypeError):
            diagnostics.append(object())
        with pytest.raises(ValueError):
            diagnostics.append(Timeseries(get_time), key="diag0")

    def test_auto_key_skips_taken_names(self):
        first, second = Timeseries(get_iteration), Timeseries(get_time)
        diagnostics = DiagnosticsCollection()
        diagnostics["diag1"] = first
        diagnostics.append(second)
        assert diagnostics.keys() == ["diag1", "diag2"]
        assert diagnostics["diag1"] is first
        assert diagnostics["diag2"] is second

    def test_run_diagnostic_rejects_unknown_kinds(self, small_model):
        with pytest.raises(TypeError):
            run_diagnostic(small_model, lambda m: 0)
