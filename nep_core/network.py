"""
One-hidden-layer network of NEP (GPUMD form):

    E = sum_n w1_n * tanh(sum_d w0_{n,d} q_d - b0_n) - b1

Biases are subtracted, not added. The energy and its gradient with respect to the
descriptor are produced in the same pass from the closed form

    dE/dq_d = sum_n w1_n * (1 - tanh^2) * w0_{n,d}
"""

from __future__ import annotations

from typing import Tuple

import numpy as np


def apply_ann_one_layer(
    q: np.ndarray,
    w0: np.ndarray,
    b0: np.ndarray,
    w1: np.ndarray,
    b1: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Evaluate the network on one descriptor ``(dim,)`` or a batch ``(N, dim)``.

    Returns ``(energy, energy_derivative)`` with shapes ``()`` / ``(dim,)`` or
    ``(N,)`` / ``(N, dim)``.
    """
    q = np.asarray(q, dtype=np.float64)
    x1 = np.tanh(q @ w0.T - b0)                    # (..., H)
    energy = x1 @ w1 - b1[0]
    energy_derivative = ((1.0 - x1 * x1) * w1) @ w0  # (..., dim)
    return energy, energy_derivative
