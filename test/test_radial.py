import numpy as np
import pytest

from nep_core.radial import (
    find_fc,
    find_fc_and_fcp,
    find_fc_and_fcp_zbl,
    find_fn,
    find_fn_all,
    find_fn_and_fnp,
    find_fn_and_fnp_all,
)

RC = 5.0
RCINV = 1.0 / RC


def test_envelope_vanishes_at_and_beyond_cutoff():
    d = np.array([RC, RC + 1e-9, 6.0, 100.0])
    assert np.all(find_fc(RC, RCINV, d) == 0.0)
    fc, fcp = find_fc_and_fcp(RC, RCINV, d)
    assert np.all(fc == 0.0) and np.all(fcp == 0.0)


def test_envelope_is_one_at_origin_and_continuous_at_cutoff():
    assert np.isclose(find_fc(RC, RCINV, 0.0), 1.0)
    assert find_fc(RC, RCINV, RC - 1e-6) < 1e-10
    _, fcp = find_fc_and_fcp(RC, RCINV, RC - 1e-6)
    assert abs(fcp) < 1e-5


@pytest.mark.parametrize("n", range(11))
def test_single_order_matches_all_orders(n):
    d = np.linspace(0.5, RC + 0.5, 37)
    fc, fcp = find_fc_and_fcp(RC, RCINV, d)

    assert np.array_equal(find_fn(n, RCINV, d, fc), find_fn_all(10, RCINV, d, fc)[:, n])

    fn, fnp = find_fn_and_fnp(n, RCINV, d, fc, fcp)
    fn_all, fnp_all = find_fn_and_fnp_all(10, RCINV, d, fc, fcp)
    assert np.array_equal(fn, fn_all[:, n])
    assert np.array_equal(fnp, fnp_all[:, n])


@pytest.mark.parametrize("n", [0, 1, 2, 5, 10])
def test_derivative_matches_finite_difference(n):
    d = np.linspace(0.8, RC - 0.2, 11)
    h = 1e-6
    _, fnp = find_fn_and_fnp(n, RCINV, d, *find_fc_and_fcp(RC, RCINV, d))
    plus = find_fn(n, RCINV, d + h, find_fc(RC, RCINV, d + h))
    minus = find_fn(n, RCINV, d - h, find_fc(RC, RCINV, d - h))
    assert np.allclose(fnp, (plus - minus) / (2 * h), atol=1e-6)


def test_basis_functions_bounded_by_envelope():
    d = np.linspace(0.1, RC, 50)
    fc = find_fc(RC, RCINV, d)
    fn = find_fn_all(8, RCINV, d, fc)
    assert np.all(fn >= -1e-12)
    assert np.all(fn <= fc[:, None] + 1e-12)


def test_zbl_switch():
    d = np.array([0.5, 1.0, 1.5, 2.0, 2.5])
    fc, fcp = find_fc_and_fcp_zbl(1.0, 2.0, d)
    assert np.allclose(fc, [1.0, 1.0, 0.5, 0.0, 0.0])
    assert fcp[0] == 0.0 and fcp[-1] == 0.0
    assert fcp[2] < 0.0
