"""
Descriptor stage: per-atom descriptors, site energies and the scratch the force
stage consumes.

For atom i the descriptor is

    q[n]                          = sum_j g_n(r_ij)                         (radial)
    q[n_r+1 + L*(n_a+1) + n]      = invariant_L( sum_j g_n(r_ij) Y(r_ij) )  (angular)

where ``g_n`` is a type-pair weighted radial function. The loops over neighbor slots
are vectorized: pairs are gathered atom-major and summed back with ``np.add.at``,
which applies the updates in order and is therefore deterministic.
"""

from __future__ import annotations

from typing import Callable

import numpy as np

from .network import apply_ann_one_layer
from .neighbor import PairBatch
from .parameters import DescriptorMode, NetworkParameters, ParameterSet
from .radial import find_fc, find_fn, find_fn_all
from .spherical_harmonics import spherical_moments


def radial_weights(paramb: ParameterSet, annmb: NetworkParameters, types: np.ndarray, pairs: PairBatch):
    """``g_n(r_ij)`` for the radial descriptor, shape ``(E, n_max_radial + 1)``."""
    t1 = types[pairs.centers]
    t2 = types[pairs.neighbors]
    fc12 = find_fc(paramb.rc_radial, paramb.rcinv_radial, pairs.d12)
    if paramb.mode is DescriptorMode.LEGACY:
        fn12 = find_fn_all(paramb.n_max_radial, paramb.rcinv_radial, pairs.d12, fc12)
        return fn12 * annmb.c_radial[:, t1, t2].T
    fn12 = find_fn_all(paramb.basis_size_radial, paramb.rcinv_radial, pairs.d12, fc12)
    # c_radial[n, k, t1, t2] -> (n, k, E)
    return np.einsum("ek,nke->en", fn12, annmb.c_radial[:, :, t1, t2])


def angular_weights(paramb: ParameterSet, annmb: NetworkParameters, types: np.ndarray, pairs: PairBatch):
    """``g_n(r_ij)`` for the angular channels, shape ``(E, n_max_angular + 1)``."""
    t1 = types[pairs.centers]
    t2 = types[pairs.neighbors]
    fc12 = find_fc(paramb.rc_angular, paramb.rcinv_angular, pairs.d12)
    if paramb.mode is DescriptorMode.LEGACY:
        return np.stack([
            find_fn(n, paramb.rcinv_angular, pairs.d12, fc12) * annmb.c_angular[n, t1, t2]
            for n in range(paramb.n_max_angular + 1)
        ], axis=-1)
    fn12 = find_fn_all(paramb.basis_size_angular, paramb.rcinv_angular, pairs.d12, fc12)
    return np.einsum("ek,nke->en", fn12, annmb.c_angular[:, :, t1, t2])


def find_descriptor(
    paramb: ParameterSet,
    annmb: NetworkParameters,
    find_q: Callable,
    N: int,
    types: np.ndarray,
    radial: PairBatch,
    angular: PairBatch,
    g_pe: np.ndarray,
    g_Fp: np.ndarray,
    g_sum_fxyz: np.ndarray,
) -> np.ndarray:
    """
    Build the descriptors of all N atoms and run the network.

    Adds the site energies into ``g_pe[N]`` and overwrites the scratch arrays
    ``g_Fp[N, dim]`` (dE/dq times q_scaler) and ``g_sum_fxyz[N, n_max_angular+1, 24]``
    (raw angular moments). ``find_q`` is the invariant routine selected for the
    model's angular variant. Returns the scaled descriptors ``(N, dim)``.
    """
    n_radial = paramb.n_max_radial + 1
    n_angular = paramb.n_max_angular + 1

    q = np.zeros((N, paramb.dim), dtype=np.float64)

    np.add.at(q[:, :n_radial], radial.centers, radial_weights(paramb, annmb, types, radial))

    s = np.zeros((N, n_angular, 24), dtype=np.float64)
    if len(angular):
        gn12 = angular_weights(paramb, annmb, types, angular)  # (E, n_a)
        moments = spherical_moments(
            angular.d12, angular.r12[:, 0], angular.r12[:, 1], angular.r12[:, 2]
        )
        np.add.at(s, angular.centers, moments[:, None, :] * gn12[:, :, None])

    invariants = find_q(s, paramb.L_max)  # (N, n_a, num_L)
    q[:, n_radial:] = invariants.transpose(0, 2, 1).reshape(N, paramb.dim_angular)
    g_sum_fxyz[...] = s

    q *= paramb.q_scaler
    energy, energy_derivative = apply_ann_one_layer(q, annmb.w0, annmb.b0, annmb.w1, annmb.b1)
    g_pe += energy
    g_Fp[...] = energy_derivative * paramb.q_scaler
    return q
