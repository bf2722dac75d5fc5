import numpy as np
import pytest

from nep_core.evaluator import NEPEvaluator
from nep_core.exceptions import NeighborListError
from nep_core.neighbor import build_neighbor_list, concat_displacements
from nep_core.parameters import AngularVariant, random_description

MODELS = {
    "three_body": dict(),
    "four_body": dict(l_max_4body=2),
    "five_body": dict(l_max_4body=2, l_max_5body=1),
    "two_types": dict(type_names=("Si", "O"), l_max_4body=2, l_max_5body=1),
    "l_max_2": dict(l_max=2, l_max_4body=2, n_max_radial=3, n_max_angular=2),
    "legacy": dict(version=2, type_names=("Si", "O"), n_max_radial=5, n_max_angular=3),
    "legacy_one_type": dict(version=2, n_max_radial=5, n_max_angular=3, l_max=3),
    "zbl": dict(type_names=("C", "H"), zbl=(1.0, 2.5)),
}


def _types(desc, n_atoms):
    return np.arange(n_atoms) % desc.num_types


@pytest.mark.parametrize("name", sorted(MODELS))
@pytest.mark.parametrize("n_atoms", [2, 3, 5])
def test_forces_match_finite_differences(name, n_atoms, cluster, evaluate, finite_difference_forces):
    desc = random_description(**MODELS[name], seed=n_atoms)
    positions = cluster(n_atoms, seed=n_atoms)
    types = _types(desc, n_atoms)

    _, forces, _ = evaluate(desc, positions, types)
    expected = finite_difference_forces(desc, positions, types)

    assert np.allclose(forces, expected, rtol=1e-5, atol=1e-6)


@pytest.mark.parametrize("name", sorted(MODELS))
def test_net_force_vanishes(name, cluster, evaluate):
    desc = random_description(**MODELS[name], seed=3)
    positions = cluster(6, seed=11)
    _, forces, _ = evaluate(desc, positions, _types(desc, 6))

    assert np.allclose(forces.sum(axis=0), 0.0, atol=1e-10)


@pytest.mark.parametrize("name", sorted(MODELS))
def test_total_virial_of_cluster(name, cluster, evaluate):
    """For a finite cluster, sum of per-atom virials equals sum_i r_i (x) F_i."""
    desc = random_description(**MODELS[name], seed=5)
    positions = cluster(5, seed=2)
    _, forces, virial = evaluate(desc, positions, _types(desc, 5))

    expected = np.einsum("na,nb->ab", positions, forces).reshape(9)
    assert np.allclose(virial.sum(axis=0), expected, atol=1e-9)


def test_variant_is_resolved_at_construction():
    assert NEPEvaluator(random_description(), 1).paramb.variant is AngularVariant.THREE_BODY
    assert NEPEvaluator(random_description(l_max_4body=2), 1).paramb.variant is AngularVariant.FOUR_BODY
    five = NEPEvaluator(random_description(l_max_4body=2, l_max_5body=1), 1)
    assert five.paramb.variant is AngularVariant.FIVE_BODY
    assert five.paramb.dim == 5 + 5 * 6


def test_isolated_atom_energy_is_network_at_zero_descriptor():
    desc = random_description(seed=8)
    evaluator = NEPEvaluator(desc, 1)
    empty = np.zeros(0, dtype=int)
    potential, force, virial = evaluator.compute([0], empty, [0], empty, [0], np.zeros(0))

    b0 = desc.parameters[10 * evaluator.paramb.dim: 10 * evaluator.paramb.dim + 10]
    w1 = desc.parameters[10 * evaluator.paramb.dim + 10: 10 * evaluator.paramb.dim + 20]
    b1 = desc.parameters[10 * evaluator.paramb.dim + 20]
    assert np.isclose(potential[0], np.tanh(-b0) @ w1 - b1)
    assert np.all(force == 0.0)
    assert np.all(virial == 0.0)


def test_outputs_are_filled_in_place_and_reset(cluster):
    desc = random_description(l_max_4body=2, seed=1)
    positions = cluster(4, seed=4)
    radial = build_neighbor_list(positions, desc.rc_radial)
    angular = build_neighbor_list(positions, desc.rc_angular)
    r12 = concat_displacements(radial, angular)
    types = np.zeros(4, dtype=int)

    evaluator = NEPEvaluator(desc, 4)
    potential = np.full(4, 7.0)
    force = np.full(12, 7.0)
    virial = np.full(36, 7.0)
    out = evaluator.compute(radial.NN, radial.NL, angular.NN, angular.NL, types, r12, potential, force, virial)
    assert out[0] is potential and out[1] is force and out[2] is virial

    again = evaluator.compute(radial.NN, radial.NL, angular.NN, angular.NL, types, r12)
    assert np.array_equal(again[0], potential)
    assert np.array_equal(again[1], force)
    assert np.array_equal(again[2], virial)


def test_four_atom_run_is_reproducible():
    desc = random_description(n_max_radial=4, n_max_angular=4, l_max=4, seed=42)
    positions = np.array([
        [0.0, 0.0, 0.0],
        [1.6, 0.3, -0.2],
        [0.2, 1.7, 0.4],
        [-0.5, 0.4, 1.5],
    ])
    radial = build_neighbor_list(positions, desc.rc_radial)
    angular = build_neighbor_list(positions, desc.rc_angular)
    assert np.all(radial.NN == 3) and np.all(angular.NN == 3)

    evaluator = NEPEvaluator(desc, 4)
    args = (radial.NN, radial.NL, angular.NN, angular.NL, np.zeros(4, dtype=int),
            concat_displacements(radial, angular))
    first = [a.copy() for a in evaluator.compute(*args)]
    second = NEPEvaluator(desc, 4).compute(*args)
    for a, b in zip(first, second):
        assert np.array_equal(a, b)
    assert np.all(np.isfinite(first[0]))


def test_pair_beyond_both_cutoffs_does_not_interact(evaluate):
    desc = random_description(seed=2)
    near = evaluate(desc, np.array([[0.0, 0.0, 0.0], [6.0, 0.0, 0.0]]), [0, 0])
    alone = evaluate(desc, np.array([[0.0, 0.0, 0.0]]), [0])
    assert np.allclose(near[0], alone[0][0])
    assert np.all(near[1] == 0.0)


def test_descriptor_layout(cluster):
    desc = random_description(l_max_4body=2, l_max_5body=1, seed=6)
    positions = cluster(3, seed=6)
    radial = build_neighbor_list(positions, desc.rc_radial)
    angular = build_neighbor_list(positions, desc.rc_angular)
    evaluator = NEPEvaluator(desc, 3)
    q = evaluator.find_descriptor(
        radial.NN, radial.NL, angular.NN, angular.NL, np.zeros(3, dtype=int),
        concat_displacements(radial, angular),
    )
    assert q.shape == (3, evaluator.paramb.dim)
    assert evaluator.paramb.angular_slot(0, 0) == desc.n_max_radial + 1
    assert evaluator.paramb.angular_slot(5, 4) == evaluator.paramb.dim - 1


class TestValidation:
    @pytest.fixture
    def setup(self):
        desc = random_description(type_names=("Si", "O"), seed=0)
        positions = np.array([[0.0, 0.0, 0.0], [1.8, 0.0, 0.0], [0.0, 2.1, 0.3]])
        radial = build_neighbor_list(positions, desc.rc_radial)
        angular = build_neighbor_list(positions, desc.rc_angular)
        args = dict(
            NN_radial=radial.NN, NL_radial=radial.NL,
            NN_angular=angular.NN, NL_angular=angular.NL,
            type=np.array([0, 1, 0]), r12=concat_displacements(radial, angular),
        )
        return NEPEvaluator(desc, 3), args

    def test_wrong_atom_count(self, setup):
        evaluator, args = setup
        args["NN_radial"] = np.append(args["NN_radial"], 0)
        with pytest.raises(NeighborListError):
            evaluator.compute(**args)

    def test_type_out_of_range(self, setup):
        evaluator, args = setup
        args["type"] = np.array([0, 2, 0])
        with pytest.raises(NeighborListError):
            evaluator.compute(**args)

    def test_neighbor_index_out_of_range(self, setup):
        evaluator, args = setup
        NL = args["NL_angular"].copy()
        NL[0] = 3
        args["NL_angular"] = NL
        with pytest.raises(NeighborListError):
            evaluator.compute(**args)

    def test_short_displacement_buffer(self, setup):
        evaluator, args = setup
        args["r12"] = args["r12"][:-1]
        with pytest.raises(NeighborListError):
            evaluator.compute(**args)

    def test_too_few_slots(self, setup):
        evaluator, args = setup
        args["NN_radial"] = args["NN_radial"] + 1
        with pytest.raises(NeighborListError):
            evaluator.compute(**args)

    def test_wrong_output_length(self, setup):
        evaluator, args = setup
        with pytest.raises(NeighborListError):
            evaluator.compute(**args, force=np.zeros(8))

    def test_is_a_value_error(self, setup):
        evaluator, args = setup
        with pytest.raises(ValueError):
            evaluator.compute(**args, virial=np.zeros(27, dtype=np.float32))

    def test_float_types_are_rejected(self, setup):
        evaluator, args = setup
        args["type"] = np.array([0.0, 1.0, 0.5])
        with pytest.raises(NeighborListError):
            evaluator.compute(**args)

    def test_zero_length_displacement(self, setup):
        evaluator, args = setup
        r12 = args["r12"].copy()
        size = args["NL_radial"].size
        r12[[0, size, 2 * size]] = 0.0
        args["r12"] = r12
        with pytest.raises(NeighborListError, match="zero-length"):
            evaluator.compute(**args)


def test_isolated_atom_from_plain_lists():
    desc = random_description(seed=2)
    potential, force, virial = NEPEvaluator(desc, 1).compute([0], [], [0], [], [0], [])
    assert np.isfinite(potential[0])
    assert np.array_equal(force, np.zeros(3))
    assert np.array_equal(virial, np.zeros(9))


def _rotation(seed):
    rng = np.random.default_rng(seed)
    q, r = np.linalg.qr(rng.normal(size=(3, 3)))
    q = q * np.sign(np.diag(r))
    if np.linalg.det(q) < 0:
        q[:, 0] = -q[:, 0]
    return q


def test_rigid_rotation(cluster, evaluate):
    desc = random_description(**MODELS["two_types"], seed=4)
    positions = cluster(4, seed=6)
    types = _types(desc, 4)
    rotation = _rotation(11)
    center = positions.mean(axis=0)
    rotated = (positions - center) @ rotation.T + center

    pe, forces, _ = evaluate(desc, positions, types)
    pe_rot, forces_rot, _ = evaluate(desc, rotated, types)

    assert np.allclose(pe_rot, pe, rtol=0.0, atol=1e-12)
    assert np.allclose(forces_rot, forces @ rotation.T, atol=1e-10)
