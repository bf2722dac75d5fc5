"""
NEPEvaluator: per-atom energy, force and virial of a NEP model for a fixed number
of atoms, given neighbor lists in the neighbor-index-major layout.

Output layouts follow GPUMD:

- ``potential[N]``
- ``force[3N]``  : all x, then all y, then all z
- ``virial[9N]`` : component ``k = 3*a + b`` (``r_a f_b``) of atom ``n`` at ``k*N + n``
"""

from __future__ import annotations

import os
from typing import Optional, Tuple, Union

import numpy as np

from .constants import NUM_OF_ABC
from .descriptor import find_descriptor
from .exceptions import NeighborListError
from .force import ACCUMULATE_F12, find_force_angular, find_force_radial
from .log import logger
from .neighbor import gather_edges, gather_pairs
from .parameters import NEPDescription, NetworkParameters, ParameterSet, ZBLConfig
from .spherical_harmonics import FIND_Q
from .zbl import find_force_zbl


class NEPEvaluator:
    """
    Evaluate a NEP model on ``n_atoms`` atoms.

    ``model`` is an :class:`NEPDescription` or the path of a ``nep.txt`` file.

    The evaluator owns two scratch arrays sized for ``n_atoms``: ``Fp`` (dE/dq,
    ``(N, dim)``) and ``sum_fxyz`` (angular moments, ``(N, n_max_angular+1, 24)``).
    They are overwritten by every :meth:`compute` call, so one evaluator must not be
    shared between threads. Within a call the descriptor pass is independent per atom;
    the force passes write both atoms of a pair and would need per-thread
    accumulators to be split across threads.
    """

    def __init__(self, model: Union[NEPDescription, str, os.PathLike], n_atoms: int):
        if not isinstance(model, NEPDescription):
            from nep_io import read_nep_txt
            model = read_nep_txt(model)
        if n_atoms < 0:
            raise ValueError(f"n_atoms must be non-negative, got {n_atoms}")

        self.description = model
        self.paramb = ParameterSet.from_description(model)
        self.annmb = NetworkParameters.from_description(model)
        self.zbl = ZBLConfig.from_description(model)
        self.find_q = FIND_Q[self.paramb.variant]
        self.accumulate_f12 = ACCUMULATE_F12[self.paramb.variant]

        self.N = int(n_atoms)
        self.Fp = np.zeros((self.N, self.paramb.dim), dtype=np.float64)
        self.sum_fxyz = np.zeros(
            (self.N, self.paramb.n_max_angular + 1, NUM_OF_ABC), dtype=np.float64
        )
        logger.debug(
            f"NEPEvaluator for {self.N} atoms: dim = {self.paramb.dim}, "
            f"variant = {self.paramb.variant.name}, mode = {self.paramb.mode.name}"
        )

    @property
    def num_types(self) -> int:
        return self.paramb.num_types

    @property
    def cutoffs(self) -> Tuple[float, float]:
        return self.paramb.rc_radial, self.paramb.rc_angular

    # ------------------------------------------------------------------ validation

    def _check_list(self, name: str, NN, NL) -> Tuple[np.ndarray, np.ndarray]:
        NN = np.asarray(NN)
        NL = np.asarray(NL)
        if NL.size == 0:
            NL = NL.astype(np.int64)
        if NN.ndim != 1 or NN.size != self.N:
            raise NeighborListError(f"NN_{name} has {NN.size} entries, expected N = {self.N}")
        if NL.ndim != 1:
            raise NeighborListError(f"NL_{name} must be one-dimensional")
        if not (np.issubdtype(NN.dtype, np.integer) and np.issubdtype(NL.dtype, np.integer)):
            raise NeighborListError(f"NN_{name} and NL_{name} must hold integers")
        if NN.size and NN.min() < 0:
            raise NeighborListError(f"NN_{name} has negative neighbor counts")
        max_nn = int(NN.max(initial=0))
        if max_nn * self.N > NL.size:
            raise NeighborListError(
                f"NL_{name} has {NL.size} slots, but max(NN_{name}) * N = {max_nn * self.N}"
            )
        slots, _ = gather_edges(NN, self.N)
        used = NL[slots]
        if used.size and (used.min() < 0 or used.max() >= self.N):
            raise NeighborListError(f"NL_{name} has neighbor indices outside 0..{self.N - 1}")
        return NN, NL

    @staticmethod
    def _check_output(name: str, arr, size: int) -> np.ndarray:
        if arr is None:
            return np.zeros(size, dtype=np.float64)
        if not isinstance(arr, np.ndarray) or arr.dtype != np.float64:
            raise NeighborListError(f"{name} must be a float64 numpy array")
        if arr.ndim != 1 or arr.size != size or not arr.flags.c_contiguous:
            raise NeighborListError(f"{name} must be a contiguous 1-d array of length {size}")
        return arr

    def _check_inputs(self, NN_radial, NL_radial, NN_angular, NL_angular, types, r12):
        NN_radial, NL_radial = self._check_list("radial", NN_radial, NL_radial)
        NN_angular, NL_angular = self._check_list("angular", NN_angular, NL_angular)

        types = np.asarray(types)
        if types.ndim != 1 or types.size != self.N:
            raise NeighborListError(f"type has {types.size} entries, expected N = {self.N}")
        if not np.issubdtype(types.dtype, np.integer):
            raise NeighborListError("type must hold integers")
        if types.size and (types.min() < 0 or types.max() >= self.num_types):
            raise NeighborListError(f"type values must be in 0..{self.num_types - 1}")

        r12 = np.asarray(r12, dtype=np.float64)
        expected = 3 * NL_radial.size + 3 * NL_angular.size
        if r12.ndim != 1 or r12.size != expected:
            raise NeighborListError(
                f"r12 has {r12.size} values, expected 3 * {NL_radial.size} + 3 * {NL_angular.size}"
            )
        return NN_radial, NL_radial, NN_angular, NL_angular, types.astype(np.int64), r12

    def _gather(self, NN_radial, NL_radial, NN_angular, NL_angular, r12):
        size_radial = NL_radial.size
        r12_radial = r12[: 3 * size_radial].reshape(3, size_radial)
        r12_angular = r12[3 * size_radial:].reshape(3, NL_angular.size)
        radial = gather_pairs(NN_radial, NL_radial, r12_radial, self.N)
        angular = gather_pairs(NN_angular, NL_angular, r12_angular, self.N)
        for name, pairs in (("radial", radial), ("angular", angular)):
            if pairs.d12.size and not pairs.d12.min() > 0.0:
                raise NeighborListError(f"r12 has a zero-length {name} displacement")
        return radial, angular

    # ------------------------------------------------------------------ public API

    def compute(
        self,
        NN_radial,
        NL_radial,
        NN_angular,
        NL_angular,
        type,
        r12,
        potential: Optional[np.ndarray] = None,
        force: Optional[np.ndarray] = None,
        virial: Optional[np.ndarray] = None,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Per-atom energy, force and virial.

        ``r12`` is the six-block displacement buffer (radial x, y, z then angular
        x, y, z; each block as long as its ``NL``). Output arrays are zeroed and
        filled in place; missing ones are allocated. Returns
        ``(potential, force, virial)``.
        """
        N = self.N
        NN_radial, NL_radial, NN_angular, NL_angular, types, r12 = self._check_inputs(
            NN_radial, NL_radial, NN_angular, NL_angular, type, r12
        )
        potential = self._check_output("potential", potential, N)
        force = self._check_output("force", force, 3 * N)
        virial = self._check_output("virial", virial, 9 * N)
        potential.fill(0.0)
        force.fill(0.0)
        virial.fill(0.0)

        radial, angular = self._gather(NN_radial, NL_radial, NN_angular, NL_angular, r12)
        force_view = force.reshape(3, N).T
        virial_view = virial.reshape(9, N).T

        find_descriptor(
            self.paramb, self.annmb, self.find_q, N, types, radial, angular,
            potential, self.Fp, self.sum_fxyz,
        )
        find_force_radial(self.paramb, self.annmb, types, radial, self.Fp, force_view, virial_view)
        find_force_angular(
            self.paramb, self.annmb, self.accumulate_f12, types, angular,
            self.Fp, self.sum_fxyz, force_view, virial_view,
        )
        if self.zbl.enabled:
            find_force_zbl(self.zbl, types, angular, force_view, virial_view, potential)
        return potential, force, virial

    def find_descriptor(self, NN_radial, NL_radial, NN_angular, NL_angular, type, r12) -> np.ndarray:
        """Scaled descriptors of all atoms, shape ``(N, dim)``."""
        NN_radial, NL_radial, NN_angular, NL_angular, types, r12 = self._check_inputs(
            NN_radial, NL_radial, NN_angular, NL_angular, type, r12
        )
        radial, angular = self._gather(NN_radial, NL_radial, NN_angular, NL_angular, r12)
        pe = np.zeros(self.N, dtype=np.float64)
        return find_descriptor(
            self.paramb, self.annmb, self.find_q, self.N, types, radial, angular,
            pe, self.Fp, self.sum_fxyz,
        )
