"""
Universal ZBL screened-nuclear repulsion, smoothly switched off between
``rc_inner`` and ``rc_outer``:

    V(r) = k Zi Zj / r * sum_k a_k exp(-b_k r / a),   1/a = (Zi^0.23 + Zj^0.23) / 0.46848

Each directed pair of the angular list carries half of the pair energy.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from .constants import K_C_SP, ZBL_A_INV_FACTOR, ZBL_PARA
from .force import scatter_pair_forces
from .neighbor import PairBatch
from .parameters import ZBLConfig
from .radial import find_fc_and_fcp_zbl


def find_f_and_fp_zbl(zizj, a_inv, rc_inner: float, rc_outer: float, d12, d12inv) -> Tuple[np.ndarray, np.ndarray]:
    """Switched pair energy ``f`` and its radial derivative ``fp``."""
    x = d12 * a_inv
    f = np.zeros_like(x)
    fp = np.zeros_like(x)
    for a, b in zip(ZBL_PARA[0::2], ZBL_PARA[1::2]):
        tmp = a * np.exp(-b * x)
        f = f + tmp
        fp = fp - b * tmp
    f = f * zizj
    fp = fp * (zizj * a_inv)
    fp = fp * d12inv - f * d12inv * d12inv
    f = f * d12inv
    fc, fcp = find_fc_and_fcp_zbl(rc_inner, rc_outer, d12)
    fp = fp * fc + f * fcp
    f = f * fc
    return f, fp


def find_force_zbl(
    zbl: ZBLConfig,
    types: np.ndarray,
    pairs: PairBatch,
    force: np.ndarray,
    virial: np.ndarray,
    pe: np.ndarray,
) -> None:
    if not len(pairs):
        return
    z = np.asarray(zbl.atomic_numbers, dtype=np.float64)
    zi = z[types[pairs.centers]]
    zj = z[types[pairs.neighbors]]
    a_inv = (zi ** 0.23 + zj ** 0.23) * ZBL_A_INV_FACTOR
    zizj = K_C_SP * zi * zj

    d12inv = 1.0 / pairs.d12
    f, fp = find_f_and_fp_zbl(zizj, a_inv, zbl.rc_inner, zbl.rc_outer, pairs.d12, d12inv)
    f2 = fp * d12inv * 0.5
    f12 = pairs.r12 * f2[:, None]
    scatter_pair_forces(pairs, f12, force, virial)
    np.add.at(pe, pairs.centers, f * 0.5)
