import numpy as np
import pytest

from nep_core.evaluator import NEPEvaluator
from nep_core.neighbor import build_neighbor_list, concat_displacements


def make_cluster(n_atoms, seed=0, box=3.2, min_dist=1.3):
    """Random non-periodic cluster with all pair distances above ``min_dist``."""
    rng = np.random.default_rng(seed)
    positions = []
    while len(positions) < n_atoms:
        p = rng.uniform(0.0, box, 3)
        if all(np.linalg.norm(p - q) > min_dist for q in positions):
            positions.append(p)
    return np.array(positions)


def run_evaluator(desc, positions, types, cell=None):
    """Per-atom energies (N,), forces (N, 3) and virials (N, 9) from NEPEvaluator."""
    n_atoms = len(positions)
    evaluator = NEPEvaluator(desc, n_atoms)
    radial = build_neighbor_list(positions, desc.rc_radial, cell)
    angular = build_neighbor_list(positions, desc.rc_angular, cell)
    potential, force, virial = evaluator.compute(
        radial.NN, radial.NL, angular.NN, angular.NL, np.asarray(types),
        concat_displacements(radial, angular),
    )
    return potential, force.reshape(3, n_atoms).T, virial.reshape(9, n_atoms).T


@pytest.fixture
def cluster():
    return make_cluster


@pytest.fixture
def evaluate():
    return run_evaluator


@pytest.fixture
def finite_difference_forces():
    def _fd(desc, positions, types, h=1e-5):
        forces = np.zeros_like(positions)
        for n in range(len(positions)):
            for d in range(3):
                plus = positions.copy()
                minus = positions.copy()
                plus[n, d] += h
                minus[n, d] -= h
                e_plus = run_evaluator(desc, plus, types)[0].sum()
                e_minus = run_evaluator(desc, minus, types)[0].sum()
                forces[n, d] = -(e_plus - e_minus) / (2.0 * h)
        return forces

    return _fd
