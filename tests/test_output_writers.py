"""Tests for NetCDF and size-split HDF5 output writers."""

import os

import h5py
import numpy as np
import pytest

from conftest import make_model
from pybouss.constants import KiB
from pybouss.fields import parentdata
from pybouss.output_writers import HDF5OutputWriter, NetCDFOutputWriter, read_output
from pybouss.simulation import time_step


class TestNetCDFOutputWriter:
    """Run a coarse thermal bubble, write at step 10 and read it back."""

    def test_thermal_bubble_round_trip(self, bubble_model, tmp_path):
        model = bubble_model
        writer = NetCDFOutputWriter(model, dir=str(tmp_path), prefix="test_", frequency=10)
        time_step(model, 10, 6.0, output_writers=[writer])

        for name in ("u", "v", "w"):
            np.testing.assert_array_equal(read_output(writer, name, 10), parentdata(model.velocities[name]))
        for name in ("T", "S"):
            np.testing.assert_array_equal(read_output(writer, name, 10), parentdata(model.tracers[name]))

    def test_records_each_firing(self, bubble_model, tmp_path):
        writer = NetCDFOutputWriter(bubble_model, dir=str(tmp_path), fields=["T"], frequency=2)
        time_step(bubble_model, 4, 6.0, output_writers=[writer])
        T2 = read_output(writer, "T", 2)
        T4 = read_output(writer, "T", 4)
        assert not np.array_equal(T2, T4)
        with pytest.raises(KeyError):
            read_output(writer, "T", 3)

    def test_unpadded_output(self, bubble_model, tmp_path):
        writer = NetCDFOutputWriter(bubble_model, dir=str(tmp_path), fields=["T"], frequency=1, padding=False)
        time_step(bubble_model, 1, 6.0, output_writers=[writer])
        T = read_output(writer, "T", 1)
        assert T.shape == bubble_model.grid.interior_shape
        np.testing.assert_array_equal(T, bubble_model.tracers["T"].interior)

    def test_existing_file_requires_force(self, bubble_model, tmp_path):
        NetCDFOutputWriter(bubble_model, dir=str(tmp_path), frequency=1)
        with pytest.raises(FileExistsError):
            NetCDFOutputWriter(bubble_model, dir=str(tmp_path), frequency=1)
        writer = NetCDFOutputWriter(bubble_model, dir=str(tmp_path), frequency=1, force=True)
        with pytest.raises(KeyError):
            read_output(writer, "u", 0)

    def test_unknown_field_rejected(self, bubble_model, tmp_path):
        with pytest.raises(KeyError):
            NetCDFOutputWriter(bubble_model, dir=str(tmp_path), fields=["rho"], frequency=1)


def fake_bc_init(file, model):
    file["boundary_conditions/fake"] = np.pi


class TestHDF5OutputWriter:
    """File splitting and per-part metadata."""

    max_filesize = 128 * KiB

    def test_file_splitting(self, tmp_path):
        model = make_model(N=(16, 16, 16), L=(1, 1, 1))
        # Each u record is 18^3 float64 = 46656 bytes, more than a third of the budget.
        ow = HDF5OutputWriter(model, {"u": lambda m: parentdata(m.velocities["u"])},
                              dir=str(tmp_path), prefix="test", frequency=1,
                              init=fake_bc_init, including=("grid",),
                              max_filesize=self.max_filesize, force=True)
        time_step(model, 10, 1.0, output_writers=[ow])

        # Three records fit in each of the first three parts; the tenth lands in part 4.
        assert ow.part == 4
        sizes = [os.path.getsize(tmp_path / f"test_part{n}.h5") for n in range(1, 5)]
        assert all(s > self.max_filesize for s in sizes[:3])
        assert sizes[3] < self.max_filesize
        assert not (tmp_path / "test_part5.h5").exists()

        for n in range(1, 5):
            with h5py.File(tmp_path / f"test_part{n}.h5", "r") as file:
                assert file["grid/Nx"][()] == 16
                assert file["boundary_conditions/fake"][()] == np.pi

        assert read_output(ow, "t", 5) == 5.0
        np.testing.assert_array_equal(read_output(ow, "u", 10), parentdata(model.velocities["u"]))

    def test_outputs_by_name_and_field(self, bubble_model, tmp_path):
        ow = HDF5OutputWriter(bubble_model, {"T": "T", "w": bubble_model.velocities["w"]},
                              dir=str(tmp_path), prefix="named", frequency=3,
                              including=("grid", "parameters"))
        time_step(bubble_model, 3, 6.0, output_writers=[ow])
        np.testing.assert_array_equal(read_output(ow, "T", 3), parentdata(bubble_model.tracers["T"]))
        np.testing.assert_array_equal(read_output(ow, "w", 3), parentdata(bubble_model.velocities["w"]))
        with h5py.File(ow.path, "r") as file:
            assert file["parameters/nu"][()] == pytest.approx(4e-2)
        with pytest.raises(KeyError):
            read_output(ow, "T", 2)

    def test_existing_parts_require_force(self, bubble_model, tmp_path):
        HDF5OutputWriter(bubble_model, {"T": "T"}, dir=str(tmp_path), prefix="p", frequency=1)
        with pytest.raises(FileExistsError):
            HDF5OutputWriter(bubble_model, {"T": "T"}, dir=str(tmp_path), prefix="p", frequency=1)
        HDF5OutputWriter(bubble_model, {"T": "T"}, dir=str(tmp_path), prefix="p", frequency=1, force=True)

    def test_unknown_including_rejected(self, bubble_model, tmp_path):
        with pytest.raises(ValueError):
            HDF5OutputWriter(bubble_model, {"T": "T"}, dir=str(tmp_path), frequency=1, including=("nope",))

    @pytest.mark.parametrize("name", ["t", "", "a/b"])
    def test_invalid_output_names_rejected(self, bubble_model, tmp_path, name):
        with pytest.raises(ValueError):
            HDF5OutputWriter(bubble_model, {name: "T"}, dir=str(tmp_path), frequency=1)
        assert not list(tmp_path.glob("*.h5"))
