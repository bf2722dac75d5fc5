import numpy as np
import pytest

from nep_core.constants import NUM_OF_ABC
from nep_core.parameters import AngularVariant
from nep_core.spherical_harmonics import (
    FIND_Q,
    accumulate_s,
    empty_moments,
    find_q,
    find_q_one,
    find_q_with_4body,
    find_q_with_5body,
    spherical_moments,
)


def _rotation(seed):
    rng = np.random.default_rng(seed)
    q, r = np.linalg.qr(rng.normal(size=(3, 3)))
    q = q * np.sign(np.diag(r))
    if np.linalg.det(q) < 0:
        q[:, 0] = -q[:, 0]
    return q


def _moments(vectors, weights):
    s = empty_moments()
    for v, w in zip(vectors, weights):
        accumulate_s(np.linalg.norm(v), v[0], v[1], v[2], w, s)
    return s


@pytest.fixture
def neighbors():
    rng = np.random.default_rng(7)
    vectors = rng.normal(size=(6, 3)) * 1.5
    weights = rng.uniform(0.2, 1.0, 6)
    return vectors, weights


@pytest.mark.parametrize("variant", list(AngularVariant))
def test_invariants_are_rotation_invariant(variant, neighbors):
    vectors, weights = neighbors
    s = _moments(vectors, weights)
    s_rot = _moments(vectors @ _rotation(3).T, weights)

    assert not np.allclose(s, s_rot)
    assert np.allclose(FIND_Q[variant](s), FIND_Q[variant](s_rot), rtol=1e-10, atol=1e-12)


def test_output_widths():
    s = np.ones((2, 3, NUM_OF_ABC))
    assert find_q(s).shape == (2, 3, 4)
    assert find_q(s, 2).shape == (2, 3, 2)
    assert find_q_with_4body(s).shape == (2, 3, 5)
    assert find_q_with_5body(s).shape == (2, 3, 6)


def test_degree_one_invariant_is_squared_dipole(neighbors):
    vectors, weights = neighbors
    s = _moments(vectors, weights)
    unit = vectors / np.linalg.norm(vectors, axis=1)[:, None]
    dipole = (weights[:, None] * unit).sum(axis=0)
    # C3B[0] = 3/(4 pi), C3B[1] = C3B[2] = C3B[0]/2
    assert np.isclose(find_q_one(1, s), 3.0 / (4.0 * np.pi) * dipole @ dipole, rtol=1e-12)


def test_moments_of_axis_direction():
    m = spherical_moments(2.0, 0.0, 0.0, 2.0)
    assert m.shape == (NUM_OF_ABC,)
    assert m[0] == 1.0 and m[3] == 2.0 and m[8] == 2.0 and m[15] == 8.0
    assert np.all(m[[1, 2, 4, 5, 6, 7]] == 0.0)


def test_batched_accumulation_matches_loop(neighbors):
    vectors, weights = neighbors
    d = np.linalg.norm(vectors, axis=1)
    batched = (spherical_moments(d, vectors[:, 0], vectors[:, 1], vectors[:, 2]) * weights[:, None]).sum(axis=0)
    assert np.allclose(batched, _moments(vectors, weights), rtol=1e-13)
