"""
jax_compat.py — Optional JAX acceleration layer for the pybouss box model

Provides:
- JAX enable switch via env PB_USE_JAX (0/1)
- Order-independent reductions over field storage (sum/min/max/any-non-finite);
  results are invariant to how the backend decomposes the work
- Stencil kernels used by the model and the diagnostics:
    * laplacian: 7-point Laplacian on the interior of a halo-padded array
    * divergence_f2c: face-to-centre velocity divergence on the interior
    * horizontal_mean: x-y mean at every vertical level (halo levels included)
- to_numpy: safe conversion from device arrays to numpy
- is_enabled: query flag

Model state always lives in NumPy arrays on the host; when JAX is enabled the
kernels run jitted on the selected JAX platform and hand back NumPy results.
"""
from __future__ import annotations

import os
import numpy as _np

_JAX_ENABLED = False
_JAX = None
_JNP = None

try:
    _JAX_ENABLED = int(os.getenv("PB_USE_JAX", "0")) == 1
except ValueError:
    _JAX_ENABLED = False

if _JAX_ENABLED:
    plat = os.getenv("PB_JAX_PLATFORM")
    if plat:
        # Must be set before the JAX backend initialises.
        os.environ.setdefault("JAX_PLATFORM_NAME", plat)
    try:
        import jax as _JAX
        import jax.numpy as _JNP
        # Checkpoint round trips need float64 on the device as well.
        _JAX.config.update("jax_enable_x64", True)
    except ImportError as e:
        print(f"[JAX] PB_USE_JAX=1 but JAX could not be imported ({e}); using NumPy kernels.")
        _JAX = None
        _JNP = None
        _JAX_ENABLED = False


def is_enabled() -> bool:
    return _JAX_ENABLED


def to_numpy(x):
    """Convert a JAX array (if enabled) to a NumPy array; NumPy input passes through."""
    if _JAX_ENABLED and not isinstance(x, _np.ndarray):
        return _np.asarray(x)
    return x


# ---------------- Reductions ---------------- #

def reduce_sum(x) -> float:
    if _JAX_ENABLED:
        return float(_JNP.sum(_JNP.asarray(x)))
    return float(_np.sum(x))


def reduce_min(x) -> float:
    if _JAX_ENABLED:
        return float(_JNP.min(_JNP.asarray(x)))
    return float(_np.min(x))


def reduce_max(x) -> float:
    if _JAX_ENABLED:
        return float(_JNP.max(_JNP.asarray(x)))
    return float(_np.max(x))


def reduce_mean(x) -> float:
    """Mean as sum / count, so it shares the order-independent sum reduction."""
    return reduce_sum(x) / max(1, int(_np.size(x)))


def any_nonfinite(x) -> bool:
    """True if any element of `x` is NaN or ±Inf."""
    if _JAX_ENABLED:
        return bool(_JNP.any(~_JNP.isfinite(_JNP.asarray(x))))
    return not bool(_np.isfinite(x).all())


def max_abs(x, transform=None) -> float:
    """Maximum of transform(x) elementwise; transform defaults to abs."""
    if transform is None:
        transform = abs
    if _JAX_ENABLED:
        return float(_JNP.max(transform(_JNP.asarray(x))))
    return float(_np.max(transform(_np.asarray(x))))


# ---------------- Stencil kernels (with NumPy fallbacks) ---------------- #

def horizontal_mean(data, H: int):
    """
    Mean over the interior of the two horizontal axes at every vertical level of a
    parent-shaped array. The result keeps the z halo levels as padding.
    """
    if _JAX_ENABLED:
        @ _JAX.jit
        def _hmean(d):
            return _JNP.mean(d[H:-H, H:-H, :], axis=(0, 1))
        return _np.asarray(_hmean(_JNP.asarray(data)))
    else:
        return _np.mean(data[H:-H, H:-H, :], axis=(0, 1))


def laplacian(data, dx: float, dy: float, dz: float, H: int):
    """
    ∇²φ on the interior of a halo-padded array (second-order, 7-point stencil).
    Halos must be filled beforehand.
    """
    if _JAX_ENABLED:
        @ _JAX.jit
        def _lap(d):
            c = d[H:-H, H:-H, H:-H]
            d2x = (d[H + 1:d.shape[0] - H + 1, H:-H, H:-H] - 2.0 * c + d[H - 1:-H - 1, H:-H, H:-H]) / dx ** 2
            d2y = (d[H:-H, H + 1:d.shape[1] - H + 1, H:-H] - 2.0 * c + d[H:-H, H - 1:-H - 1, H:-H]) / dy ** 2
            d2z = (d[H:-H, H:-H, H + 1:d.shape[2] - H + 1] - 2.0 * c + d[H:-H, H:-H, H - 1:-H - 1]) / dz ** 2
            return d2x + d2y + d2z
        return _np.asarray(_lap(_JNP.asarray(data)))
    else:
        d = data
        nx, ny, nz = d.shape
        c = d[H:-H, H:-H, H:-H]
        d2x = (d[H + 1:nx - H + 1, H:-H, H:-H] - 2.0 * c + d[H - 1:nx - H - 1, H:-H, H:-H]) / dx ** 2
        d2y = (d[H:-H, H + 1:ny - H + 1, H:-H] - 2.0 * c + d[H:-H, H - 1:ny - H - 1, H:-H]) / dy ** 2
        d2z = (d[H:-H, H:-H, H + 1:nz - H + 1] - 2.0 * c + d[H:-H, H:-H, H - 1:nz - H - 1]) / dz ** 2
        return d2x + d2y + d2z


def divergence_f2c(u, v, w, dx: float, dy: float, dz: float, H: int):
    """
    Finite-volume divergence of a face-located velocity at every interior cell:
        (u[i+1] - u[i])/dx + (v[j+1] - v[j])/dy + (w[k+1] - w[k])/dz
    where u[i] sits on the west face of cell i. Halos must be filled beforehand.
    """
    if _JAX_ENABLED:
        @ _JAX.jit
        def _div(u_, v_, w_):
            nx, ny, nz = u_.shape
            du = (u_[H + 1:nx - H + 1, H:-H, H:-H] - u_[H:-H, H:-H, H:-H]) / dx
            dv = (v_[H:-H, H + 1:ny - H + 1, H:-H] - v_[H:-H, H:-H, H:-H]) / dy
            dw = (w_[H:-H, H:-H, H + 1:nz - H + 1] - w_[H:-H, H:-H, H:-H]) / dz
            return du + dv + dw
        return _np.asarray(_div(_JNP.asarray(u), _JNP.asarray(v), _JNP.asarray(w)))
    else:
        nx, ny, nz = u.shape
        du = (u[H + 1:nx - H + 1, H:-H, H:-H] - u[H:-H, H:-H, H:-H]) / dx
        dv = (v[H:-H, H + 1:ny - H + 1, H:-H] - v[H:-H, H:-H, H:-H]) / dy
        dw = (w[H:-H, H:-H, H + 1:nz - H + 1] - w[H:-H, H:-H, H:-H]) / dz
        return du + dv + dw
