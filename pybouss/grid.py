# pybouss/grid.py

"""
Defines the regular Cartesian grid with halo padding used by the box model.
"""

import numpy as np


class RegularCartesianGrid:
    """
    A rectilinear, uniformly spaced grid on x ∈ [0, Lx], y ∈ [0, Ly], z ∈ [-Lz, 0].

    Every field lives on an array of `parent_shape`: the interior cells padded by
    `H` halo cells on each side of every axis.
    """
    def __init__(self, N, L, H=1, float_type="float64"):
        """
        Initializes a grid with a specified resolution and extent.

        Args:
            N (tuple[int, int, int]): Number of interior cells (Nx, Ny, Nz).
            L (tuple[float, float, float]): Domain size (Lx, Ly, Lz).
            H (int): Halo width on each side of every axis.
            float_type (str): NumPy dtype name for field storage.
        """
        if len(N) != 3 or len(L) != 3:
            raise ValueError(f"N and L must have three entries, got N={N}, L={L}")
        if any(int(n) < 1 for n in N):
            raise ValueError(f"Grid sizes must be positive, got N={N}")
        if any(float(l) <= 0 for l in L):
            raise ValueError(f"Domain lengths must be positive, got L={L}")
        if int(H) < 1:
            raise ValueError(f"Halo width must be at least 1, got H={H}")

        self.Nx, self.Ny, self.Nz = (int(n) for n in N)
        self.Lx, self.Ly, self.Lz = (float(l) for l in L)
        self.H = int(H)
        self.float_type = np.dtype(float_type).name

        self.dx = self.Lx / self.Nx
        self.dy = self.Ly / self.Ny
        self.dz = self.Lz / self.Nz

        # Cell faces and centres
        self.xF = np.linspace(0.0, self.Lx, self.Nx + 1)
        self.yF = np.linspace(0.0, self.Ly, self.Ny + 1)
        self.zF = np.linspace(-self.Lz, 0.0, self.Nz + 1)
        self.xC = 0.5 * (self.xF[:-1] + self.xF[1:])
        self.yC = 0.5 * (self.yF[:-1] + self.yF[1:])
        self.zC = 0.5 * (self.zF[:-1] + self.zF[1:])

    @property
    def N(self):
        return (self.Nx, self.Ny, self.Nz)

    @property
    def L(self):
        return (self.Lx, self.Ly, self.Lz)

    @property
    def interior_shape(self):
        return (self.Nx, self.Ny, self.Nz)

    @property
    def parent_shape(self):
        H = self.H
        return (self.Nx + 2 * H, self.Ny + 2 * H, self.Nz + 2 * H)

    def interior(self, data):
        """Returns a view of the interior cells of a parent-shaped array."""
        H = self.H
        return data[H:-H, H:-H, H:-H]

    def meshgrid(self):
        """Cell-centre coordinate arrays (X, Y, Z) of the interior, 'ij' indexing."""
        return np.meshgrid(self.xC, self.yC, self.zC, indexing="ij")

    def to_dict(self):
        return {
            "Nx": self.Nx, "Ny": self.Ny, "Nz": self.Nz,
            "Lx": self.Lx, "Ly": self.Ly, "Lz": self.Lz,
            "dx": self.dx, "dy": self.dy, "dz": self.dz,
            "H": self.H,
            "float_type": self.float_type,
        }

    @classmethod
    def from_dict(cls, d):
        return cls(N=(d["Nx"], d["Ny"], d["Nz"]),
                   L=(d["Lx"], d["Ly"], d["Lz"]),
                   H=d.get("H", 1),
                   float_type=d.get("float_type", "float64"))

    def __repr__(self):
        return (f"RegularCartesianGrid(N=({self.Nx}, {self.Ny}, {self.Nz}), "
                f"L=({self.Lx}, {self.Ly}, {self.Lz}), H={self.H})")
