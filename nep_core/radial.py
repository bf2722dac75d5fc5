"""
Chebyshev radial functions with a cosine cutoff envelope (GPUMD form).

    x   = 2 * (d/rc - 1)^2 - 1
    f_n = (T_n(x) + 1) / 2 * fc(d)

Every function accepts a scalar distance or a numpy array of distances and works
elementwise. The single-order functions (``find_fn``, ``find_fn_and_fnp``) and the
all-orders functions (``find_fn_all``, ``find_fn_and_fnp_all``) perform the same
floating-point operations, so they agree exactly for the same order.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from .constants import HALF_PI, PI


def find_fc(rc: float, rcinv: float, d12) -> np.ndarray:
    """Cosine envelope ``0.5*cos(pi*d/rc) + 0.5`` for ``d < rc``, exactly 0 beyond."""
    d12 = np.asarray(d12, dtype=np.float64)
    x = d12 * rcinv
    return np.where(d12 < rc, 0.5 * np.cos(PI * x) + 0.5, 0.0)


def find_fc_and_fcp(rc: float, rcinv: float, d12) -> Tuple[np.ndarray, np.ndarray]:
    """Envelope and its derivative with respect to the distance."""
    d12 = np.asarray(d12, dtype=np.float64)
    x = d12 * rcinv
    inside = d12 < rc
    fc = np.where(inside, 0.5 * np.cos(PI * x) + 0.5, 0.0)
    fcp = np.where(inside, -HALF_PI * np.sin(PI * x) * rcinv, 0.0)
    return fc, fcp


def find_fc_and_fcp_zbl(r1: float, r2: float, d12) -> Tuple[np.ndarray, np.ndarray]:
    """ZBL switch: 1 below ``r1``, cosine down to 0 at ``r2``, 0 beyond."""
    d12 = np.asarray(d12, dtype=np.float64)
    pi_factor = PI / (r2 - r1)
    arg = pi_factor * (d12 - r1)
    switching = (d12 >= r1) & (d12 < r2)
    fc = np.where(d12 < r1, 1.0, np.where(switching, np.cos(arg) * 0.5 + 0.5, 0.0))
    fcp = np.where(switching, -np.sin(arg) * pi_factor * 0.5, 0.0)
    return fc, fcp


def _chebyshev_x(rcinv: float, d12: np.ndarray) -> np.ndarray:
    return 2.0 * (d12 * rcinv - 1.0) * (d12 * rcinv - 1.0) - 1.0


def find_fn(n: int, rcinv: float, d12, fc12) -> np.ndarray:
    """Radial function of order ``n``."""
    d12 = np.asarray(d12, dtype=np.float64)
    fc12 = np.asarray(fc12, dtype=np.float64)
    if n == 0:
        return fc12.copy()
    x = _chebyshev_x(rcinv, d12)
    if n == 1:
        return (x + 1.0) * 0.5 * fc12
    t0 = np.ones_like(x)
    t1 = x
    for _m in range(2, n + 1):
        t2 = 2.0 * x * t1 - t0
        t0 = t1
        t1 = t2
    return (t1 + 1.0) * 0.5 * fc12


def find_fn_and_fnp(n: int, rcinv: float, d12, fc12, fcp12) -> Tuple[np.ndarray, np.ndarray]:
    """Radial function of order ``n`` and its derivative with respect to the distance."""
    d12 = np.asarray(d12, dtype=np.float64)
    fc12 = np.asarray(fc12, dtype=np.float64)
    fcp12 = np.asarray(fcp12, dtype=np.float64)
    if n == 0:
        return fc12.copy(), fcp12.copy()
    x = _chebyshev_x(rcinv, d12)
    dx = 2.0 * (d12 * rcinv - 1.0) * rcinv
    if n == 1:
        fn = (x + 1.0) * 0.5
        fnp = 1.0 * dx
        return fn * fc12, fnp * fc12 + fn * fcp12
    t0 = np.ones_like(x)
    t1 = x
    u0 = np.ones_like(x)
    u1 = 2.0 * x
    for _m in range(2, n + 1):
        t2 = 2.0 * x * t1 - t0
        t0 = t1
        t1 = t2
        u2 = 2.0 * x * u1 - u0
        u0 = u1
        u1 = u2
    fn = (t1 + 1.0) * 0.5
    # dT_n/dx = n * U_{n-1}
    fnp = n * u0 * dx
    return fn * fc12, fnp * fc12 + fn * fcp12


def find_fn_all(n_max: int, rcinv: float, d12, fc12) -> np.ndarray:
    """Radial functions of orders ``0..n_max``, stacked on a new trailing axis."""
    d12 = np.asarray(d12, dtype=np.float64)
    fc12 = np.asarray(fc12, dtype=np.float64)
    x = _chebyshev_x(rcinv, d12)
    t = [np.ones_like(x), x]
    for m in range(2, n_max + 1):
        t.append(2.0 * x * t[m - 1] - t[m - 2])
    fn = np.stack(t[: n_max + 1], axis=-1)
    return (fn + 1.0) * 0.5 * fc12[..., None]


def find_fn_and_fnp_all(
    n_max: int, rcinv: float, d12, fc12, fcp12
) -> Tuple[np.ndarray, np.ndarray]:
    """Radial functions of orders ``0..n_max`` and their distance derivatives."""
    d12 = np.asarray(d12, dtype=np.float64)
    fc12 = np.asarray(fc12, dtype=np.float64)[..., None]
    fcp12 = np.asarray(fcp12, dtype=np.float64)[..., None]
    x = _chebyshev_x(rcinv, d12)
    t = [np.ones_like(x), x]
    tp = [np.zeros_like(x), np.ones_like(x)]
    u0 = np.ones_like(x)
    u1 = 2.0 * x
    for m in range(2, n_max + 1):
        t.append(2.0 * x * t[m - 1] - t[m - 2])
        tp.append(m * u1)
        u2 = 2.0 * x * u1 - u0
        u0 = u1
        u1 = u2
    fn = (np.stack(t[: n_max + 1], axis=-1) + 1.0) * 0.5
    fnp = np.stack(tp[: n_max + 1], axis=-1) * (2.0 * (d12 * rcinv - 1.0) * rcinv)[..., None]
    return fn * fc12, fnp * fc12 + fn * fcp12
