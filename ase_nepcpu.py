# ase_nepcpu.py
# -*- coding: utf-8 -*-

from __future__ import annotations
from typing import Optional, Dict, Any

import numpy as np

from ase.calculators.calculator import Calculator, PropertyNotImplementedError, all_changes
from ase.neighborlist import neighbor_list

from nep_core.evaluator import NEPEvaluator
from nep_core.neighbor import concat_displacements, pack_neighbor_list
from nep_io import read_nep_txt


class NEP3Calculator(Calculator):
    """
    ASE Calculator for a GPUMD-format nep.txt (NEP2 or NEP3, optional ZBL).

    Implements:
      - energy / free_energy (total potential energy, eV)
      - energies (per-atom potential energy, eV)
      - forces (eV/A)
      - stress (eV/A^3, Voigt order), fully periodic cells only

    Backends:
      - "analytic" : numpy evaluator with closed-form derivatives (default)
      - "autograd" : PyTorch model differentiated with autograd
    """
    implemented_properties = ["energy", "free_energy", "energies", "forces", "stress"]

    def __init__(
        self,
        nep_path: str,
        backend: str = "analytic",
        type_map: Optional[Dict[str, int]] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)

        if backend not in ("analytic", "autograd"):
            raise ValueError(f"Unknown backend '{backend}', use 'analytic' or 'autograd'")
        self.nep_path = nep_path
        self.backend = backend

        self.description = read_nep_txt(nep_path)
        self._evaluator: Optional[NEPEvaluator] = None
        self._model = None
        if backend == "autograd":
            from nep_core.torch_reference import NEP3Model

            self._model = NEP3Model(self.description)
            self._model.eval()

        # ---- type mapping: symbol -> type index ----
        if type_map is not None:
            self.type_map = dict(type_map)
        else:
            self.type_map = {sym: i for i, sym in enumerate(self.description.type_names)}
        num_types = self.description.num_types
        bad = {s: t for s, t in self.type_map.items() if not 0 <= t < num_types}
        if bad:
            raise ValueError(f"type_map values must be in 0..{num_types - 1}, got {bad}")

    def _symbols_to_types(self, symbols: list[str]) -> np.ndarray:
        try:
            t = [self.type_map[s] for s in symbols]
        except KeyError as e:
            raise KeyError(
                f"Element {e} not found in NEP type list. "
                f"Available types: {list(self.type_map.keys())}"
            ) from e
        return np.asarray(t, dtype=np.int64)

    def _get_evaluator(self, n_atoms: int) -> NEPEvaluator:
        if self._evaluator is None or self._evaluator.N != n_atoms:
            self._evaluator = NEPEvaluator(self.description, n_atoms)
        return self._evaluator

    def _compute_analytic(self, atoms, types):
        n_atoms = len(atoms)
        evaluator = self._get_evaluator(n_atoms)
        rc_radial, rc_angular = evaluator.cutoffs

        i, j, D = neighbor_list("ijD", atoms, rc_radial)
        radial = pack_neighbor_list(n_atoms, i, j, D)
        i, j, D = neighbor_list("ijD", atoms, rc_angular)
        angular = pack_neighbor_list(n_atoms, i, j, D)

        potential, force, virial = evaluator.compute(
            radial.NN, radial.NL, angular.NN, angular.NL, types,
            concat_displacements(radial, angular),
        )
        return potential, force.reshape(3, n_atoms).T.copy(), virial.reshape(9, n_atoms).T.copy()

    def _compute_autograd(self, atoms, types):
        i, j, D = neighbor_list("ijD", atoms, self._model.cutoff)
        return self._model.compute(types, i, j, D)

    def calculate(self, atoms=None, properties=("energy", "forces"), system_changes=all_changes):
        super().calculate(atoms, properties, system_changes)

        atype = self._symbols_to_types(self.atoms.get_chemical_symbols())
        if self.backend == "analytic":
            energies, forces, virial = self._compute_analytic(self.atoms, atype)
        else:
            energies, forces, virial = self._compute_autograd(self.atoms, atype)

        energy = float(energies.sum())
        self.results["energy"] = energy
        self.results["free_energy"] = energy
        self.results["energies"] = energies
        self.results["forces"] = forces

        if "stress" in properties:
            if not np.all(self.atoms.get_pbc()):
                raise PropertyNotImplementedError("stress requires a fully periodic cell")
            w = virial.sum(axis=0).reshape(3, 3)
            stress = -w / self.atoms.get_volume()
            self.results["stress"] = np.array([
                stress[0, 0], stress[1, 1], stress[2, 2],
                stress[1, 2], stress[0, 2], stress[0, 1],
            ])
