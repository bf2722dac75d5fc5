"""
NEP model in PyTorch, evaluated on an edge list and differentiated with autograd.

It shares no code with the analytic numpy evaluator apart from the constant tables,
and serves as an independent reference for its energies, forces and virials
(and as the ``"autograd"`` backend of the ASE calculator).

Edges are directed pairs ``(i, j, r_ij)`` with ``r_ij = r_j - r_i`` (periodic shifts
already applied). One edge list within ``max(rc_radial, rc_angular)`` serves both
descriptor parts; each part keeps the edges inside its own cutoff.
"""

from __future__ import annotations

from typing import List, Tuple

import numpy as np
import torch
import torch.nn as nn

from .constants import C3B, C4B, C5B, K_C_SP, PI, ZBL_A_INV_FACTOR, ZBL_PARA
from .parameters import (
    DescriptorMode,
    NEPDescription,
    NetworkParameters,
    ParameterSet,
    ZBLConfig,
)


class ChebyshevBasis(nn.Module):
    """
    Chebyshev basis functions with a cosine cutoff (GPUMD form).
    Used for the radial and the angular weights.
    """

    def __init__(self, basis_size: int, cutoff: float):
        super().__init__()
        self.basis_size = int(basis_size)
        self.cutoff = float(cutoff)
        self.rcinv = 1.0 / float(cutoff)

    def cutoff_function(self, r: torch.Tensor) -> torch.Tensor:
        """
        f_c(r) = 0.5 * [cos(pi*r/rc) + 1] for r < rc, else 0
        """
        x = r * self.rcinv
        return torch.where(r < self.cutoff, 0.5 * torch.cos(PI * x) + 0.5, torch.zeros_like(r))

    def forward(self, r: torch.Tensor) -> torch.Tensor:
        """
        x  = 2 * (r/rc - 1)^2 - 1
        fn = (T_n(x) + 1) * 0.5 * fc
        Returns shape (..., basis_size+1).
        """
        fc = self.cutoff_function(r)
        r_scaled = r * self.rcinv
        x = 2.0 * (r_scaled - 1.0) ** 2 - 1.0

        half_fc = 0.5 * fc
        basis: List[torch.Tensor] = [fc]  # n=0

        if self.basis_size >= 1:
            basis.append((x + 1.0) * half_fc)

        if self.basis_size >= 2:
            T_m_minus_2 = torch.ones_like(x)
            T_m_minus_1 = x
            for _m in range(2, self.basis_size + 1):
                T_m = 2.0 * x * T_m_minus_1 - T_m_minus_2
                basis.append((T_m + 1.0) * half_fc)
                T_m_minus_2 = T_m_minus_1
                T_m_minus_1 = T_m

        return torch.stack(basis, dim=-1)


def moments(rij: torch.Tensor, d: torch.Tensor) -> torch.Tensor:
    """Real spherical-harmonic polynomials of degree 1..4 of ``rij/d``, shape (E, 24)."""
    x, y, z = (rij / d[:, None]).unbind(-1)
    x2, y2, z2 = x * x, y * y, z * z
    x2my2 = x2 - y2
    return torch.stack([
        z, x, y,
        3.0 * z2 - 1.0, x * z, y * z, x2my2, 2.0 * x * y,
        (5.0 * z2 - 3.0) * z, (5.0 * z2 - 1.0) * x, (5.0 * z2 - 1.0) * y,
        x2my2 * z, 2.0 * x * y * z, (x2 - 3.0 * y2) * x, (3.0 * x2 - y2) * y,
        (35.0 * z2 - 30.0) * z2 + 3.0, (7.0 * z2 - 3.0) * x * z, (7.0 * z2 - 3.0) * y * z,
        (7.0 * z2 - 1.0) * x2my2, (7.0 * z2 - 1.0) * x * y * 2.0,
        (x2 - 3.0 * y2) * x * z, (3.0 * x2 - y2) * y * z,
        x2my2 * x2my2 - 4.0 * x2 * y2, 4.0 * x * y * x2my2,
    ], dim=-1)


class NEP3Model(nn.Module):
    """
    NEP model (GPUMD definitions), built from a :class:`NEPDescription`.

    Descriptors:
      - Radial (2-body): q_n = sum_j g_n(r_ij)
      - Angular: 3-body invariants of degree 1..L_max, optional 4-/5-body invariants

    Neural network (GPUMD-like):
      y = W2 * tanh(W1 * x - b1) - b2
      (linear layers without bias and explicit biases subtracted)
    """

    def __init__(self, description: NEPDescription):
        super().__init__()
        paramb = ParameterSet.from_description(description)
        annmb = NetworkParameters.from_description(description)
        zbl = ZBLConfig.from_description(description)

        self.mode = paramb.mode
        self.num_types = paramb.num_types
        self.n_max_radial = paramb.n_max_radial
        self.n_max_angular = paramb.n_max_angular
        self.l_max = paramb.L_max
        self.num_L = paramb.num_L
        self.rc_radial = paramb.rc_radial
        self.rc_angular = paramb.rc_angular
        self.with_4body = self.num_L > self.l_max
        self.with_5body = self.num_L > self.l_max + 1

        if self.mode is DescriptorMode.LEGACY:
            self.radial_basis = ChebyshevBasis(paramb.n_max_radial, paramb.rc_radial)
            self.angular_basis = ChebyshevBasis(paramb.n_max_angular, paramb.rc_angular)
        else:
            self.radial_basis = ChebyshevBasis(paramb.basis_size_radial, paramb.rc_radial)
            self.angular_basis = ChebyshevBasis(paramb.basis_size_angular, paramb.rc_angular)

        def _t(arr) -> torch.Tensor:
            return torch.tensor(np.array(arr), dtype=torch.float64)

        # descriptor coefficients: [n, k, t1, t2] (NEP3) or [n, t1, t2] (NEP2)
        self.c_radial = nn.Parameter(_t(annmb.c_radial))
        self.c_angular = nn.Parameter(_t(annmb.c_angular))

        self.lin1 = nn.Linear(paramb.dim, annmb.num_neurons1, bias=False, dtype=torch.float64)
        self.b1 = nn.Parameter(_t(annmb.b0))
        self.lin2 = nn.Linear(annmb.num_neurons1, 1, bias=False, dtype=torch.float64)
        self.b2 = nn.Parameter(_t(annmb.b1))
        with torch.no_grad():
            self.lin1.weight.copy_(_t(annmb.w0))
            self.lin2.weight.copy_(_t(annmb.w1)[None, :])

        self.register_buffer("q_scaler", _t(paramb.q_scaler))
        self.register_buffer("c3b", _t(C3B))
        self.register_buffer("c4b", _t(C4B))
        self.register_buffer("c5b", _t(C5B))

        self.zbl_enabled = zbl.enabled
        self.zbl_rc_inner = zbl.rc_inner
        self.zbl_rc_outer = zbl.rc_outer
        self.register_buffer("atomic_numbers", _t(zbl.atomic_numbers))

    @property
    def cutoff(self) -> float:
        return max(self.rc_radial, self.rc_angular)

    # --------------------------- descriptors ---------------------------

    def _weights(self, basis: ChebyshevBasis, c: torch.Tensor, d, t1, t2) -> torch.Tensor:
        fn = basis(d)  # (E, K)
        if self.mode is DescriptorMode.LEGACY:
            return fn * c[:, t1, t2].T
        return torch.einsum("ek,nke->en", fn, c[:, :, t1, t2])

    def _invariants(self, s: torch.Tensor) -> torch.Tensor:
        """(N, n, 24) moments -> (N, n, num_L) invariants."""
        q: List[torch.Tensor] = []
        for L in range(1, self.l_max + 1):
            start = L * L - 1
            block = s[..., start: start + 2 * L + 1] ** 2 * self.c3b[start: start + 2 * L + 1]
            q.append(block[..., 0] + 2.0 * block[..., 1:].sum(-1))
        if self.with_4body:
            c4b = self.c4b
            q.append(
                c4b[0] * s[..., 3] ** 3
                + c4b[1] * s[..., 3] * (s[..., 4] ** 2 + s[..., 5] ** 2)
                + c4b[2] * s[..., 3] * (s[..., 6] ** 2 + s[..., 7] ** 2)
                + c4b[3] * s[..., 6] * (s[..., 5] ** 2 - s[..., 4] ** 2)
                + c4b[4] * s[..., 4] * s[..., 5] * s[..., 7]
            )
        if self.with_5body:
            c5b = self.c5b
            s0_sq = s[..., 0] ** 2
            s12_sq = s[..., 1] ** 2 + s[..., 2] ** 2
            q.append(c5b[0] * s0_sq ** 2 + c5b[1] * s0_sq * s12_sq + c5b[2] * s12_sq ** 2)
        return torch.stack(q, dim=-1)

    def compute_descriptors(self, types, i, j, rij) -> torch.Tensor:
        """Scaled descriptors (N, dim)."""
        n_atoms = types.shape[0]
        d = torch.linalg.norm(rij, dim=-1)

        m = d < self.rc_radial
        g = self._weights(self.radial_basis, self.c_radial, d[m], types[i[m]], types[j[m]])
        q_radial = torch.zeros((n_atoms, self.n_max_radial + 1), dtype=rij.dtype)
        q_radial = q_radial.index_add(0, i[m], g)

        m = d < self.rc_angular
        g = self._weights(self.angular_basis, self.c_angular, d[m], types[i[m]], types[j[m]])
        y = moments(rij[m], d[m])
        s = torch.zeros((n_atoms, self.n_max_angular + 1, 24), dtype=rij.dtype)
        s = s.index_add(0, i[m], g[:, :, None] * y[:, None, :])
        q_angular = self._invariants(s).transpose(1, 2).reshape(n_atoms, -1)

        return torch.cat([q_radial, q_angular], dim=1) * self.q_scaler

    def zbl_energy(self, types, i, j, rij) -> torch.Tensor:
        """Per-atom ZBL energy; each directed pair contributes half."""
        n_atoms = types.shape[0]
        d = torch.linalg.norm(rij, dim=-1)
        m = d < self.rc_angular
        d, i_m, j_m = d[m], i[m], j[m]
        zi = self.atomic_numbers[types[i_m]]
        zj = self.atomic_numbers[types[j_m]]
        a_inv = (zi ** 0.23 + zj ** 0.23) * ZBL_A_INV_FACTOR
        x = d * a_inv
        phi = torch.zeros_like(d)
        for a, b in zip(ZBL_PARA[0::2], ZBL_PARA[1::2]):
            phi = phi + float(a) * torch.exp(-float(b) * x)

        r1, r2 = self.zbl_rc_inner, self.zbl_rc_outer
        arg = PI / (r2 - r1) * (d - r1)
        fc = torch.where(
            d < r1,
            torch.ones_like(d),
            torch.where(d < r2, torch.cos(arg) * 0.5 + 0.5, torch.zeros_like(d)),
        )
        pair = K_C_SP * zi * zj * phi / d * fc
        return torch.zeros(n_atoms, dtype=rij.dtype).index_add(0, i_m, 0.5 * pair)

    # --------------------------- forward ---------------------------

    def forward(self, types: torch.Tensor, i: torch.Tensor, j: torch.Tensor, rij: torch.Tensor) -> torch.Tensor:
        """Per-atom energies (N,)."""
        descriptors = self.compute_descriptors(types, i, j, rij)
        h = torch.tanh(self.lin1(descriptors) - self.b1)
        e_i = (self.lin2(h) - self.b2).squeeze(-1)
        if self.zbl_enabled:
            e_i = e_i + self.zbl_energy(types, i, j, rij)
        return e_i

    def compute(self, types, i, j, rij) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Per-atom energies (N,), forces (N, 3) and virials (N, 9) from autograd.

        The gradient with respect to each edge vector is the pair force ``f_ij``;
        atom ``i`` gets ``+f_ij``, atom ``j`` gets ``-f_ij`` and the virial of ``i``
        gets ``-r_ij (x) f_ij``.
        """
        types_t = torch.as_tensor(np.asarray(types), dtype=torch.long)
        i_t = torch.as_tensor(np.asarray(i), dtype=torch.long)
        j_t = torch.as_tensor(np.asarray(j), dtype=torch.long)
        rij_t = torch.tensor(np.asarray(rij, dtype=np.float64).reshape(-1, 3), requires_grad=True)
        n_atoms = types_t.shape[0]

        e_i = self.forward(types_t, i_t, j_t, rij_t)
        (f12,) = torch.autograd.grad(e_i.sum(), rij_t, allow_unused=True)
        if f12 is None:
            f12 = torch.zeros_like(rij_t)
        f12 = f12.detach()

        forces = torch.zeros((n_atoms, 3), dtype=torch.float64)
        forces.index_add_(0, i_t, f12)
        forces.index_add_(0, j_t, -f12)
        virial = torch.zeros((n_atoms, 9), dtype=torch.float64)
        virial.index_add_(0, i_t, -(rij_t.detach()[:, :, None] * f12[:, None, :]).reshape(-1, 9))

        return e_i.detach().numpy(), forces.numpy(), virial.numpy()
