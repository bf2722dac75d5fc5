import numpy as np
import pytest
from ase import Atoms
from ase.build import bulk
from ase.calculators.calculator import PropertyNotImplementedError

from ase_nepcpu import NEP3Calculator
from nep_core.parameters import random_description
from nep_io import write_nep_txt


@pytest.fixture
def nep_path(tmp_path):
    desc = random_description(type_names=("Si", "O"), l_max_4body=2, rc_radial=4.2,
                              rc_angular=3.5, scale=0.3, seed=12)
    return write_nep_txt(desc, tmp_path / "nep.txt")


@pytest.fixture
def crystal():
    atoms = bulk("Si", "diamond", a=5.43, cubic=True)
    atoms.symbols[[1, 5]] = "O"
    atoms.rattle(0.05, seed=1)
    return atoms


def _energy(atoms, calc):
    atoms.calc = calc
    return atoms.get_potential_energy()


def test_forces_match_finite_differences(nep_path, crystal):
    calc = NEP3Calculator(nep_path)
    crystal.calc = calc
    forces = crystal.get_forces()

    h = 1e-5
    expected = np.zeros_like(forces)
    for n in range(len(crystal)):
        for d in range(3):
            atoms = crystal.copy()
            atoms.positions[n, d] += h
            e_plus = _energy(atoms, calc)
            atoms.positions[n, d] -= 2 * h
            e_minus = _energy(atoms, calc)
            expected[n, d] = -(e_plus - e_minus) / (2 * h)
    assert np.allclose(forces, expected, atol=1e-6)


def test_stress_matches_strain_derivative(nep_path, crystal):
    calc = NEP3Calculator(nep_path)
    crystal.calc = calc
    stress = crystal.get_stress(voigt=False)

    h = 1e-6
    cell = crystal.cell.array.copy()
    volume = crystal.get_volume()
    expected = np.zeros((3, 3))
    for a in range(3):
        for b in range(3):
            energies = []
            for sign in (1.0, -1.0):
                strain = np.eye(3)
                strain[a, b] += sign * h
                atoms = crystal.copy()
                atoms.set_cell(cell @ strain, scale_atoms=True)
                energies.append(_energy(atoms, calc))
            expected[a, b] = (energies[0] - energies[1]) / (2 * h) / volume
    assert np.allclose(stress, expected, atol=1e-7)


def test_energies_sum_to_energy(nep_path, crystal):
    crystal.calc = NEP3Calculator(nep_path)
    assert np.isclose(crystal.get_potential_energies().sum(), crystal.get_potential_energy())


def test_autograd_backend_agrees(nep_path, crystal):
    analytic = NEP3Calculator(nep_path)
    autograd = NEP3Calculator(nep_path, backend="autograd")
    atoms = crystal.copy()

    atoms.calc = analytic
    e, f, s = atoms.get_potential_energy(), atoms.get_forces(), atoms.get_stress()
    atoms.calc = autograd
    assert np.isclose(atoms.get_potential_energy(), e, rtol=1e-10)
    assert np.allclose(atoms.get_forces(), f, rtol=1e-6, atol=1e-8)
    assert np.allclose(atoms.get_stress(), s, rtol=1e-6, atol=1e-9)


def test_cluster_has_no_stress(nep_path):
    atoms = Atoms("SiO2", positions=[[0, 0, 0], [1.6, 0, 0], [0, 1.6, 0.2]])
    atoms.calc = NEP3Calculator(nep_path)
    assert np.allclose(atoms.get_forces().sum(axis=0), 0.0, atol=1e-10)
    with pytest.raises(PropertyNotImplementedError):
        atoms.get_stress()


def test_type_map(nep_path):
    atoms = Atoms("CN", positions=[[0, 0, 0], [1.5, 0, 0]])
    atoms.calc = NEP3Calculator(nep_path, type_map={"C": 0, "N": 1})
    assert np.isfinite(atoms.get_potential_energy())

    atoms.calc = NEP3Calculator(nep_path)
    with pytest.raises(KeyError):
        atoms.get_potential_energy()

    with pytest.raises(ValueError):
        NEP3Calculator(nep_path, type_map={"C": 2})
    with pytest.raises(ValueError):
        NEP3Calculator(nep_path, backend="gpu")
