"""
Angular moments and rotation invariants for NEP angular descriptors.

This module mirrors the GPUMD NEP3 workflow:
  1) accumulate_s : accumulate unnormalized real spherical harmonics of degree 1..4
                    (NUM_OF_ABC = 24 components) weighted by a radial value
  2) find_q       : contract the accumulated moments s into invariants q

Layout of s: degree L starts at ``L*L - 1`` and holds ``2L+1`` components
``[m=0, Re m=1, Im m=1, ..., Re m=L, Im m=L]``.

All functions operate on the trailing axis, so ``s`` may be a single accumulator of
shape ``(24,)`` or a batch ``(..., 24)`` (atoms, channels).
"""

from __future__ import annotations

import numpy as np

from .constants import C3B, C4B, C5B, MAX_L, NUM_OF_ABC
from .parameters import AngularVariant


def spherical_moments(d12, x12, y12, z12) -> np.ndarray:
    """The 24 moment polynomials of the direction ``r12 / d12``, shape ``(..., 24)``."""
    d12inv = 1.0 / np.asarray(d12, dtype=np.float64)
    x = np.asarray(x12, dtype=np.float64) * d12inv
    y = np.asarray(y12, dtype=np.float64) * d12inv
    z = np.asarray(z12, dtype=np.float64) * d12inv
    x2 = x * x
    y2 = y * y
    z2 = z * z
    x2my2 = x2 - y2
    return np.stack([
        z,                                    # Y10
        x,                                    # Y11_real
        y,                                    # Y11_imag
        3.0 * z2 - 1.0,                       # Y20
        x * z,                                # Y21_real
        y * z,                                # Y21_imag
        x2my2,                                # Y22_real
        2.0 * x * y,                          # Y22_imag
        (5.0 * z2 - 3.0) * z,                 # Y30
        (5.0 * z2 - 1.0) * x,                 # Y31_real
        (5.0 * z2 - 1.0) * y,                 # Y31_imag
        x2my2 * z,                            # Y32_real
        2.0 * x * y * z,                      # Y32_imag
        (x * x - 3.0 * y * y) * x,            # Y33_real
        (3.0 * x * x - y * y) * y,            # Y33_imag
        (35.0 * z2 - 30.0) * z2 + 3.0,        # Y40
        (7.0 * z2 - 3.0) * x * z,             # Y41_real
        (7.0 * z2 - 3.0) * y * z,             # Y41_imag
        (7.0 * z2 - 1.0) * x2my2,             # Y42_real
        (7.0 * z2 - 1.0) * x * y * 2.0,       # Y42_imag
        (x2 - 3.0 * y2) * x * z,              # Y43_real
        (3.0 * x2 - y2) * y * z,              # Y43_imag
        x2my2 * x2my2 - 4.0 * x2 * y2,        # Y44_real
        4.0 * x * y * x2my2,                  # Y44_imag
    ], axis=-1)


def accumulate_s(d12, x12, y12, z12, fn, s: np.ndarray) -> None:
    """Add ``fn`` times the moments of one neighbor direction into ``s`` (in place)."""
    s += spherical_moments(d12, x12, y12, z12) * np.asarray(fn, dtype=np.float64)[..., None]


def find_q_one(L: int, s: np.ndarray) -> np.ndarray:
    """Invariant of degree ``L``: ``c0*s0^2 + 2*sum_{k>0} ck*sk^2``."""
    start = L * L - 1
    q = C3B[start] * s[..., start] * s[..., start]
    acc = C3B[start + 1] * s[..., start + 1] * s[..., start + 1]
    for k in range(start + 2, start + 2 * L + 1):
        acc = acc + C3B[k] * s[..., k] * s[..., k]
    return q + 2.0 * acc


def _four_body(s: np.ndarray) -> np.ndarray:
    return (
        C4B[0] * s[..., 3] * s[..., 3] * s[..., 3]
        + C4B[1] * s[..., 3] * (s[..., 4] * s[..., 4] + s[..., 5] * s[..., 5])
        + C4B[2] * s[..., 3] * (s[..., 6] * s[..., 6] + s[..., 7] * s[..., 7])
        + C4B[3] * s[..., 6] * (s[..., 5] * s[..., 5] - s[..., 4] * s[..., 4])
        + C4B[4] * s[..., 4] * s[..., 5] * s[..., 7]
    )


def _five_body(s: np.ndarray) -> np.ndarray:
    s0_sq = s[..., 0] * s[..., 0]
    s1_sq_plus_s2_sq = s[..., 1] * s[..., 1] + s[..., 2] * s[..., 2]
    return (
        C5B[0] * s0_sq * s0_sq
        + C5B[1] * s0_sq * s1_sq_plus_s2_sq
        + C5B[2] * s1_sq_plus_s2_sq * s1_sq_plus_s2_sq
    )


def find_q(s: np.ndarray, l_max: int = MAX_L) -> np.ndarray:
    """3-body invariants of degrees 1..l_max, shape ``(..., l_max)``."""
    return np.stack([find_q_one(L, s) for L in range(1, l_max + 1)], axis=-1)


def find_q_with_4body(s: np.ndarray, l_max: int = MAX_L) -> np.ndarray:
    """3-body invariants followed by the 4-body invariant, shape ``(..., l_max + 1)``."""
    q = [find_q_one(L, s) for L in range(1, l_max + 1)]
    q.append(_four_body(s))
    return np.stack(q, axis=-1)


def find_q_with_5body(s: np.ndarray, l_max: int = MAX_L) -> np.ndarray:
    """3-body, 4-body and 5-body invariants, shape ``(..., l_max + 2)``."""
    q = [find_q_one(L, s) for L in range(1, l_max + 1)]
    q.append(_four_body(s))
    q.append(_five_body(s))
    return np.stack(q, axis=-1)


FIND_Q = {
    AngularVariant.THREE_BODY: find_q,
    AngularVariant.FOUR_BODY: find_q_with_4body,
    AngularVariant.FIVE_BODY: find_q_with_5body,
}


def empty_moments(*shape: int) -> np.ndarray:
    return np.zeros(shape + (NUM_OF_ABC,), dtype=np.float64)
