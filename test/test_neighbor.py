import numpy as np

from nep_core.neighbor import build_neighbor_list, concat_displacements, gather_pairs, pack_neighbor_list
from nep_core.parameters import compute_counts, random_description


def test_pack_uses_neighbor_index_major_slots():
    i = np.array([1, 0, 1, 2, 1])
    j = np.array([0, 1, 2, 1, 3])
    rij = np.arange(15, dtype=float).reshape(5, 3)
    nl = pack_neighbor_list(4, i, j, rij)

    assert list(nl.NN) == [1, 3, 1, 0]
    assert nl.size == 3 * 4
    # second neighbor of atom 1 sits at slot 1*N + 1
    assert nl.NL[1 * 4 + 1] == 2
    assert np.array_equal(nl.r12[:, 1 * 4 + 1], rij[2])
    assert nl.NL[2 * 4 + 1] == 3


def test_gather_is_atom_major():
    nl = pack_neighbor_list(3, [2, 0, 2, 1], [0, 2, 1, 2], np.ones((4, 3)))
    pairs = gather_pairs(nl.NN, nl.NL, nl.r12, 3)
    assert list(pairs.centers) == [0, 1, 2, 2]
    assert list(pairs.neighbors) == [2, 2, 0, 1]
    assert np.allclose(pairs.d12, np.sqrt(3.0))


def test_minimum_image():
    cell = np.diag([10.0, 10.0, 10.0])
    positions = np.array([[0.5, 0.0, 0.0], [9.5, 0.0, 0.0]])
    nl = build_neighbor_list(positions, 2.0, cell)
    assert list(nl.NN) == [1, 1]
    assert np.allclose(nl.r12[:, 0], [-1.0, 0.0, 0.0])
    assert build_neighbor_list(positions, 2.0).size == 0


def test_displacement_buffer_blocks():
    positions = np.array([[0.0, 0.0, 0.0], [1.0, 2.0, 3.0]])
    radial = build_neighbor_list(positions, 5.0)
    angular = build_neighbor_list(positions, 5.0)
    r12 = concat_displacements(radial, angular)
    assert r12.size == 3 * radial.size + 3 * angular.size
    assert np.allclose(r12[:2], [1.0, -1.0])      # radial x
    assert np.allclose(r12[10:12], [3.0, -3.0])   # angular z


def test_parameter_counts():
    counts = compute_counts(random_description(type_names=("Si", "O"), n_max_radial=4, n_max_angular=3,
                                               basis_size_radial=6, basis_size_angular=5, l_max=4,
                                               l_max_4body=2, num_neurons1=10))
    assert counts["num_L"] == 5
    assert counts["dim"] == 5 + 4 * 5
    assert counts["num_para_ann"] == (25 + 2) * 10 + 1
    assert counts["num_para_descriptor"] == 4 * (5 * 7 + 4 * 6)

    legacy = compute_counts(random_description(version=2, n_max_radial=4, n_max_angular=3))
    assert legacy["num_para_descriptor"] == 0
    legacy2 = compute_counts(random_description(version=2, type_names=("Si", "O"), n_max_radial=4, n_max_angular=3))
    assert legacy2["num_para_descriptor"] == 4 * (4 + 3 + 2)
