"""
Force stage: analytic derivatives of the site energies with respect to each pair
displacement ``r12 = r_2 - r_1``.

For a pair (1, 2) in the list of atom 1, ``f12 = dE_1/dr12`` is added to atom 1,
subtracted from atom 2, and ``-r12 (x) f12`` is added to the virial of atom 1.

The ``get_f12_*`` functions are the closed-form derivatives of one invariant with
respect to r12. They take the cached moments ``s`` of that invariant (already
multiplied by C3B for the 3-body invariants), the radial weight ``fn`` and its
derivative ``fnp`` (divided by ``d12**L`` by the caller), and ``Fp = dE/dq`` of the
invariant. All of them broadcast over leading axes: ``r12`` and ``f12`` are
``(..., 3)`` and ``s`` is ``(..., 2L+1)``.
"""

from __future__ import annotations

from typing import Callable

import numpy as np

from .constants import C3B, C4B, C5B
from .neighbor import PairBatch
from .parameters import AngularVariant, DescriptorMode, NetworkParameters, ParameterSet
from .radial import find_fc_and_fcp, find_fn_and_fnp, find_fn_and_fnp_all


def get_f12_1(d12, d12inv, fn, fnp, Fp, s, r12, f12) -> None:
    x, y, z = r12[..., 0], r12[..., 1], r12[..., 2]
    tmp = s[..., 1] * x
    tmp = tmp + s[..., 2] * y
    tmp = tmp * 2.0
    tmp = tmp + s[..., 0] * z
    tmp = tmp * (Fp * fnp * d12inv * 2.0)
    f12 += tmp[..., None] * r12
    tmp = Fp * fn * 2.0
    f12[..., 0] += tmp * 2.0 * s[..., 1]
    f12[..., 1] += tmp * 2.0 * s[..., 2]
    f12[..., 2] += tmp * s[..., 0]


def get_f12_2(d12, d12inv, fn, fnp, Fp, s, r12, f12) -> None:
    x, y, z = r12[..., 0], r12[..., 1], r12[..., 2]
    tmp = s[..., 1] * x * z                 # Re[Y21]
    tmp = tmp + s[..., 2] * y * z           # Im[Y21]
    tmp = tmp + s[..., 3] * (x * x - y * y)  # Re[Y22]
    tmp = tmp + s[..., 4] * 2.0 * x * y     # Im[Y22]
    tmp = tmp * 2.0
    tmp = tmp + s[..., 0] * (3.0 * z * z - d12 * d12)  # Y20
    tmp = tmp * (Fp * fnp * d12inv * 2.0)
    f12 += tmp[..., None] * r12
    tmp = Fp * fn * 4.0
    f12[..., 0] += tmp * (-s[..., 0] * x + s[..., 1] * z + 2.0 * s[..., 3] * x + 2.0 * s[..., 4] * y)
    f12[..., 1] += tmp * (-s[..., 0] * y + s[..., 2] * z - 2.0 * s[..., 3] * y + 2.0 * s[..., 4] * x)
    f12[..., 2] += tmp * (2.0 * s[..., 0] * z + s[..., 1] * x + s[..., 2] * y)


def get_f12_3(d12, d12inv, fn, fnp, Fp, s, r12, f12) -> None:
    x, y, z = r12[..., 0], r12[..., 1], r12[..., 2]
    d12sq = d12 * d12
    x2 = x * x
    y2 = y * y
    z2 = z * z
    xy = x * y
    xz = x * z
    yz = y * z

    tmp = s[..., 1] * (5.0 * z2 - d12sq) * x
    tmp = tmp + s[..., 2] * (5.0 * z2 - d12sq) * y
    tmp = tmp + s[..., 3] * (x2 - y2) * z
    tmp = tmp + s[..., 4] * 2.0 * xy * z
    tmp = tmp + s[..., 5] * x * (x2 - 3.0 * y2)
    tmp = tmp + s[..., 6] * y * (3.0 * x2 - y2)
    tmp = tmp * 2.0
    tmp = tmp + s[..., 0] * (5.0 * z2 - 3.0 * d12sq) * z
    tmp = tmp * (Fp * fnp * d12inv * 2.0)
    f12 += tmp[..., None] * r12

    # x
    tmp = s[..., 1] * (4.0 * z2 - 3.0 * x2 - y2)
    tmp = tmp + s[..., 2] * (-2.0 * xy)
    tmp = tmp + s[..., 3] * 2.0 * xz
    tmp = tmp + s[..., 4] * (2.0 * yz)
    tmp = tmp + s[..., 5] * (3.0 * (x2 - y2))
    tmp = tmp + s[..., 6] * (6.0 * xy)
    tmp = tmp * 2.0
    tmp = tmp + s[..., 0] * (-6.0 * xz)
    f12[..., 0] += tmp * Fp * fn * 2.0
    # y
    tmp = s[..., 1] * (-2.0 * xy)
    tmp = tmp + s[..., 2] * (4.0 * z2 - 3.0 * y2 - x2)
    tmp = tmp + s[..., 3] * (-2.0 * yz)
    tmp = tmp + s[..., 4] * (2.0 * xz)
    tmp = tmp + s[..., 5] * (-6.0 * xy)
    tmp = tmp + s[..., 6] * (3.0 * (x2 - y2))
    tmp = tmp * 2.0
    tmp = tmp + s[..., 0] * (-6.0 * yz)
    f12[..., 1] += tmp * Fp * fn * 2.0
    # z
    tmp = s[..., 1] * (8.0 * xz)
    tmp = tmp + s[..., 2] * (8.0 * yz)
    tmp = tmp + s[..., 3] * (x2 - y2)
    tmp = tmp + s[..., 4] * (2.0 * xy)
    tmp = tmp * 2.0
    tmp = tmp + s[..., 0] * (9.0 * z2 - 3.0 * d12sq)
    f12[..., 2] += tmp * Fp * fn * 2.0


def get_f12_4(d12, d12inv, fn, fnp, Fp, s, r12, f12) -> None:
    x, y, z = r12[..., 0], r12[..., 1], r12[..., 2]
    r2 = d12 * d12
    x2 = x * x
    y2 = y * y
    z2 = z * z
    xy = x * y
    xz = x * z
    yz = y * z
    xyz = x * yz
    x2my2 = x2 - y2

    tmp = s[..., 1] * (7.0 * z2 - 3.0 * r2) * xz         # Y41_real
    tmp = tmp + s[..., 2] * (7.0 * z2 - 3.0 * r2) * yz   # Y41_imag
    tmp = tmp + s[..., 3] * (7.0 * z2 - r2) * x2my2      # Y42_real
    tmp = tmp + s[..., 4] * (7.0 * z2 - r2) * 2.0 * xy   # Y42_imag
    tmp = tmp + s[..., 5] * (x2 - 3.0 * y2) * xz         # Y43_real
    tmp = tmp + s[..., 6] * (3.0 * x2 - y2) * yz         # Y43_imag
    tmp = tmp + s[..., 7] * (x2my2 * x2my2 - 4.0 * x2 * y2)  # Y44_real
    tmp = tmp + s[..., 8] * (4.0 * xy * x2my2)           # Y44_imag
    tmp = tmp * 2.0
    tmp = tmp + s[..., 0] * ((35.0 * z2 - 30.0 * r2) * z2 + 3.0 * r2 * r2)  # Y40
    tmp = tmp * (Fp * fnp * d12inv * 2.0)
    f12 += tmp[..., None] * r12

    # x
    tmp = s[..., 1] * z * (7.0 * z2 - 3.0 * r2 - 6.0 * x2)
    tmp = tmp + s[..., 2] * (-6.0 * xyz)
    tmp = tmp + s[..., 3] * 4.0 * x * (3.0 * z2 - x2)
    tmp = tmp + s[..., 4] * 2.0 * y * (7.0 * z2 - r2 - 2.0 * x2)
    tmp = tmp + s[..., 5] * 3.0 * z * x2my2
    tmp = tmp + s[..., 6] * 6.0 * xyz
    tmp = tmp + s[..., 7] * 4.0 * x * (x2 - 3.0 * y2)
    tmp = tmp + s[..., 8] * 4.0 * y * (3.0 * x2 - y2)
    tmp = tmp * 2.0
    tmp = tmp + s[..., 0] * 12.0 * x * (r2 - 5.0 * z2)
    f12[..., 0] += tmp * Fp * fn * 2.0
    # y
    tmp = s[..., 1] * (-6.0 * xyz)
    tmp = tmp + s[..., 2] * z * (7.0 * z2 - 3.0 * r2 - 6.0 * y2)
    tmp = tmp + s[..., 3] * 4.0 * y * (y2 - 3.0 * z2)
    tmp = tmp + s[..., 4] * 2.0 * x * (7.0 * z2 - r2 - 2.0 * y2)
    tmp = tmp + s[..., 5] * (-6.0 * xyz)
    tmp = tmp + s[..., 6] * 3.0 * z * x2my2
    tmp = tmp + s[..., 7] * 4.0 * y * (y2 - 3.0 * x2)
    tmp = tmp + s[..., 8] * 4.0 * x * (x2 - 3.0 * y2)
    tmp = tmp * 2.0
    tmp = tmp + s[..., 0] * 12.0 * y * (r2 - 5.0 * z2)
    f12[..., 1] += tmp * Fp * fn * 2.0
    # z
    tmp = s[..., 1] * 3.0 * x * (5.0 * z2 - r2)
    tmp = tmp + s[..., 2] * 3.0 * y * (5.0 * z2 - r2)
    tmp = tmp + s[..., 3] * 12.0 * z * x2my2
    tmp = tmp + s[..., 4] * 24.0 * xyz
    tmp = tmp + s[..., 5] * x * (x2 - 3.0 * y2)
    tmp = tmp + s[..., 6] * y * (3.0 * x2 - y2)
    tmp = tmp * 2.0
    tmp = tmp + s[..., 0] * 16.0 * z * (5.0 * z2 - 3.0 * r2)
    f12[..., 2] += tmp * Fp * fn * 2.0


def get_f12_4body(d12, d12inv, fn, fnp, Fp, s, r12, f12) -> None:
    """Derivative of the 4-body invariant; ``s`` are the raw degree-2 moments."""
    x, y, z = r12[..., 0], r12[..., 1], r12[..., 2]
    fn_factor = Fp * fn
    fnp_factor = Fp * fnp * d12inv
    y20 = 3.0 * z * z - d12 * d12

    # derivative wrt s[0]
    tmp0 = (C4B[0] * 3.0 * s[..., 0] * s[..., 0]
            + C4B[1] * (s[..., 1] * s[..., 1] + s[..., 2] * s[..., 2])
            + C4B[2] * (s[..., 3] * s[..., 3] + s[..., 4] * s[..., 4]))
    tmp1 = tmp0 * y20 * fnp_factor
    tmp2 = tmp0 * fn_factor
    f12[..., 0] += tmp1 * x - tmp2 * 2.0 * x
    f12[..., 1] += tmp1 * y - tmp2 * 2.0 * y
    f12[..., 2] += tmp1 * z + tmp2 * 4.0 * z

    # derivative wrt s[1]
    tmp0 = (C4B[1] * s[..., 0] * s[..., 1] * 2.0
            - C4B[3] * s[..., 3] * s[..., 1] * 2.0
            + C4B[4] * s[..., 2] * s[..., 4])
    tmp1 = tmp0 * x * z * fnp_factor
    tmp2 = tmp0 * fn_factor
    f12[..., 0] += tmp1 * x + tmp2 * z
    f12[..., 1] += tmp1 * y
    f12[..., 2] += tmp1 * z + tmp2 * x

    # derivative wrt s[2]
    tmp0 = (C4B[1] * s[..., 0] * s[..., 2] * 2.0
            + C4B[3] * s[..., 3] * s[..., 2] * 2.0
            + C4B[4] * s[..., 1] * s[..., 4])
    tmp1 = tmp0 * y * z * fnp_factor
    tmp2 = tmp0 * fn_factor
    f12[..., 0] += tmp1 * x
    f12[..., 1] += tmp1 * y + tmp2 * z
    f12[..., 2] += tmp1 * z + tmp2 * y

    # derivative wrt s[3]
    tmp0 = C4B[2] * s[..., 0] * s[..., 3] * 2.0 + C4B[3] * (s[..., 2] * s[..., 2] - s[..., 1] * s[..., 1])
    tmp1 = tmp0 * (x * x - y * y) * fnp_factor
    tmp2 = tmp0 * fn_factor
    f12[..., 0] += tmp1 * x + tmp2 * 2.0 * x
    f12[..., 1] += tmp1 * y - tmp2 * 2.0 * y
    f12[..., 2] += tmp1 * z

    # derivative wrt s[4]
    tmp0 = C4B[2] * s[..., 0] * s[..., 4] * 2.0 + C4B[4] * s[..., 1] * s[..., 2]
    tmp1 = tmp0 * (2.0 * x * y) * fnp_factor
    tmp2 = tmp0 * fn_factor
    f12[..., 0] += tmp1 * x + tmp2 * 2.0 * y
    f12[..., 1] += tmp1 * y + tmp2 * 2.0 * x
    f12[..., 2] += tmp1 * z


def get_f12_5body(d12, d12inv, fn, fnp, Fp, s, r12, f12) -> None:
    """Derivative of the 5-body invariant; ``s`` are the raw degree-1 moments."""
    x, y, z = r12[..., 0], r12[..., 1], r12[..., 2]
    fn_factor = Fp * fn
    fnp_factor = Fp * fnp * d12inv
    s1_sq_plus_s2_sq = s[..., 1] * s[..., 1] + s[..., 2] * s[..., 2]

    # derivative wrt s[0]
    tmp0 = C5B[0] * 4.0 * s[..., 0] * s[..., 0] * s[..., 0] + C5B[1] * s1_sq_plus_s2_sq * 2.0 * s[..., 0]
    tmp1 = tmp0 * z * fnp_factor
    tmp2 = tmp0 * fn_factor
    f12[..., 0] += tmp1 * x
    f12[..., 1] += tmp1 * y
    f12[..., 2] += tmp1 * z + tmp2

    # derivative wrt s[1]
    tmp0 = C5B[1] * s[..., 0] * s[..., 0] * s[..., 1] * 2.0 + C5B[2] * s1_sq_plus_s2_sq * s[..., 1] * 4.0
    tmp1 = tmp0 * x * fnp_factor
    tmp2 = tmp0 * fn_factor
    f12[..., 0] += tmp1 * x + tmp2
    f12[..., 1] += tmp1 * y
    f12[..., 2] += tmp1 * z

    # derivative wrt s[2]
    tmp0 = C5B[1] * s[..., 0] * s[..., 0] * s[..., 2] * 2.0 + C5B[2] * s1_sq_plus_s2_sq * s[..., 2] * 4.0
    tmp1 = tmp0 * y * fnp_factor
    tmp2 = tmp0 * fn_factor
    f12[..., 0] += tmp1 * x
    f12[..., 1] += tmp1 * y + tmp2
    f12[..., 2] += tmp1 * z


_GET_F12 = (None, get_f12_1, get_f12_2, get_f12_3, get_f12_4)


def _accumulate_f12(
    n: int,
    n_max_angular_plus_1: int,
    d12,
    r12,
    fn,
    fnp,
    Fp,
    sum_fxyz,
    f12,
    l_max: int,
    with_4body: bool,
    with_5body: bool,
) -> None:
    # the radial weight of degree L carries 1/d12**L from the unnormalized moments
    d12inv = 1.0 / d12
    for L in range(1, l_max + 1):
        fnp = fnp * d12inv - fn * d12inv * d12inv
        fn = fn * d12inv
        start = L * L - 1
        s = sum_fxyz[..., start: start + 2 * L + 1]
        if L == 1 and with_5body:
            get_f12_5body(d12, d12inv, fn, fnp, Fp[..., (l_max + 1) * n_max_angular_plus_1 + n], s, r12, f12)
        if L == 2 and with_4body:
            get_f12_4body(d12, d12inv, fn, fnp, Fp[..., l_max * n_max_angular_plus_1 + n], s, r12, f12)
        _GET_F12[L](
            d12, d12inv, fn, fnp, Fp[..., (L - 1) * n_max_angular_plus_1 + n],
            s * C3B[start: start + 2 * L + 1], r12, f12,
        )


def accumulate_f12(n, n_max_angular_plus_1, d12, r12, fn, fnp, Fp, sum_fxyz, f12, l_max=4) -> None:
    """
    Add the derivative of the 3-body invariants of channel ``n`` to ``f12``.

    ``Fp`` is dE/dq of the angular part of the descriptor (``(..., dim_angular)``) and
    ``sum_fxyz`` the cached moments of channel ``n`` (``(..., 24)``).
    """
    _accumulate_f12(n, n_max_angular_plus_1, d12, r12, fn, fnp, Fp, sum_fxyz, f12, l_max, False, False)


def accumulate_f12_with_4body(n, n_max_angular_plus_1, d12, r12, fn, fnp, Fp, sum_fxyz, f12, l_max=4) -> None:
    _accumulate_f12(n, n_max_angular_plus_1, d12, r12, fn, fnp, Fp, sum_fxyz, f12, l_max, True, False)


def accumulate_f12_with_5body(n, n_max_angular_plus_1, d12, r12, fn, fnp, Fp, sum_fxyz, f12, l_max=4) -> None:
    _accumulate_f12(n, n_max_angular_plus_1, d12, r12, fn, fnp, Fp, sum_fxyz, f12, l_max, True, True)


ACCUMULATE_F12 = {
    AngularVariant.THREE_BODY: accumulate_f12,
    AngularVariant.FOUR_BODY: accumulate_f12_with_4body,
    AngularVariant.FIVE_BODY: accumulate_f12_with_5body,
}


def scatter_pair_forces(pairs: PairBatch, f12: np.ndarray, force: np.ndarray, virial: np.ndarray) -> None:
    """
    Newton's third law and per-atom virial for a batch of pair forces.

    ``force`` is an ``(N, 3)`` view and ``virial`` an ``(N, 9)`` view of the caller's
    buffers. Each pair writes two atoms, so the updates go through ``np.add.at``.
    """
    np.add.at(force, pairs.centers, f12)
    np.subtract.at(force, pairs.neighbors, f12)
    outer = pairs.r12[:, :, None] * f12[:, None, :]
    np.subtract.at(virial, pairs.centers, outer.reshape(-1, 9))


def find_force_radial(
    paramb: ParameterSet,
    annmb: NetworkParameters,
    types: np.ndarray,
    pairs: PairBatch,
    g_Fp: np.ndarray,
    force: np.ndarray,
    virial: np.ndarray,
) -> None:
    if not len(pairs):
        return
    t1 = types[pairs.centers]
    t2 = types[pairs.neighbors]
    d12inv = 1.0 / pairs.d12
    fc12, fcp12 = find_fc_and_fcp(paramb.rc_radial, paramb.rcinv_radial, pairs.d12)
    n_radial = paramb.n_max_radial + 1

    if paramb.mode is DescriptorMode.LEGACY:
        _, fnp12 = find_fn_and_fnp_all(paramb.n_max_radial, paramb.rcinv_radial, pairs.d12, fc12, fcp12)
        gnp12 = fnp12 * annmb.c_radial[:, t1, t2].T
    else:
        _, fnp12 = find_fn_and_fnp_all(paramb.basis_size_radial, paramb.rcinv_radial, pairs.d12, fc12, fcp12)
        gnp12 = np.einsum("ek,nke->en", fnp12, annmb.c_radial[:, :, t1, t2])

    tmp12 = (g_Fp[pairs.centers, :n_radial] * gnp12 * d12inv[:, None]).sum(axis=1)
    f12 = tmp12[:, None] * pairs.r12
    scatter_pair_forces(pairs, f12, force, virial)


def _angular_weights_and_derivatives(paramb, annmb, types, pairs):
    t1 = types[pairs.centers]
    t2 = types[pairs.neighbors]
    fc12, fcp12 = find_fc_and_fcp(paramb.rc_angular, paramb.rcinv_angular, pairs.d12)
    if paramb.mode is DescriptorMode.LEGACY:
        gn12, gnp12 = [], []
        for n in range(paramb.n_max_angular + 1):
            fn, fnp = find_fn_and_fnp(n, paramb.rcinv_angular, pairs.d12, fc12, fcp12)
            c = annmb.c_angular[n, t1, t2]
            gn12.append(fn * c)
            gnp12.append(fnp * c)
        return np.stack(gn12, axis=-1), np.stack(gnp12, axis=-1)
    fn12, fnp12 = find_fn_and_fnp_all(paramb.basis_size_angular, paramb.rcinv_angular, pairs.d12, fc12, fcp12)
    c = annmb.c_angular[:, :, t1, t2]
    return np.einsum("ek,nke->en", fn12, c), np.einsum("ek,nke->en", fnp12, c)


def find_force_angular(
    paramb: ParameterSet,
    annmb: NetworkParameters,
    accumulate: Callable,
    types: np.ndarray,
    pairs: PairBatch,
    g_Fp: np.ndarray,
    g_sum_fxyz: np.ndarray,
    force: np.ndarray,
    virial: np.ndarray,
) -> None:
    """
    ``accumulate`` must be the ``ACCUMULATE_F12`` entry of the same angular variant
    whose ``find_q`` built the descriptors in ``g_Fp`` / ``g_sum_fxyz``.
    """
    if not len(pairs):
        return
    gn12, gnp12 = _angular_weights_and_derivatives(paramb, annmb, types, pairs)
    Fp = g_Fp[pairs.centers, paramb.n_max_radial + 1:]
    sum_fxyz = g_sum_fxyz[pairs.centers]  # (E, n_a, 24)

    n_max_angular_plus_1 = paramb.n_max_angular + 1
    f12 = np.zeros((len(pairs), 3), dtype=np.float64)
    for n in range(n_max_angular_plus_1):
        accumulate(
            n, n_max_angular_plus_1, pairs.d12, pairs.r12, gn12[:, n], gnp12[:, n],
            Fp, sum_fxyz[:, n, :], f12, paramb.L_max,
        )
    scatter_pair_forces(pairs, f12, force, virial)
