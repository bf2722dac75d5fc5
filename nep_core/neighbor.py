"""
Neighbor lists in the layout consumed by :meth:`NEPEvaluator.compute`.

For N atoms, a list is ``NN[N]`` (neighbor count per atom) and ``NL[S]`` with
``S = max_nn * N``; the ``i1``-th neighbor of atom ``n1`` lives in slot
``i1 * N + n1`` (neighbor-index-major). Displacements ``r12 = r_neighbor - r_atom``
use the same slots.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np


@dataclass
class NeighborList:
    NN: np.ndarray   # (N,) int
    NL: np.ndarray   # (S,) int
    r12: np.ndarray  # (3, S) float, x/y/z rows

    @property
    def size(self) -> int:
        return int(self.NL.size)


def gather_edges(NN: np.ndarray, n_atoms: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Slots and center atoms of all occupied neighbor slots.

    Edges come out atom-major (all neighbors of atom 0, then atom 1, ...), the order
    in which a per-atom loop would visit them.
    """
    max_nn = int(NN.max(initial=0))
    occupied = np.arange(max_nn)[None, :] < NN[:, None]  # (N, max_nn)
    centers, ranks = np.nonzero(occupied)
    return ranks * n_atoms + centers, centers


def pack_neighbor_list(
    n_atoms: int,
    i: np.ndarray,
    j: np.ndarray,
    rij: np.ndarray,
) -> NeighborList:
    """Pack an edge list ``(i, j, rij)`` into the neighbor-index-major layout."""
    i = np.asarray(i, dtype=np.int64)
    j = np.asarray(j, dtype=np.int64)
    rij = np.asarray(rij, dtype=np.float64).reshape(-1, 3)

    order = np.argsort(i, kind="stable")
    i, j, rij = i[order], j[order], rij[order]

    NN = np.bincount(i, minlength=n_atoms).astype(np.int64)
    first = np.concatenate([[0], np.cumsum(NN)[:-1]]) if n_atoms else NN
    rank = np.arange(i.size) - first[i]
    slots = rank * n_atoms + i

    size = int(NN.max(initial=0)) * n_atoms
    NL = np.zeros(size, dtype=np.int64)
    r12 = np.zeros((3, size), dtype=np.float64)
    NL[slots] = j
    r12[:, slots] = rij.T
    return NeighborList(NN=NN, NL=NL, r12=r12)


def _mic_rij(rij: np.ndarray, cell: np.ndarray, inv_cell: np.ndarray) -> np.ndarray:
    """
    Minimum-image convention for a general 3x3 cell (rows are cell vectors).
    rij: (..., 3)
    """
    frac = rij @ inv_cell
    frac = frac - np.round(frac)
    return frac @ cell


def build_neighbor_list(
    positions: np.ndarray,
    cutoff: float,
    cell: Optional[np.ndarray] = None,
) -> NeighborList:
    """
    Brute-force neighbor list (O(N^2)). For a periodic cell, uses the minimum image,
    which is only valid when the cutoff is below half the shortest cell height.
    """
    positions = np.asarray(positions, dtype=np.float64)
    n_atoms = positions.shape[0]

    rij = positions[None, :, :] - positions[:, None, :]  # rij[i, j] = r_j - r_i
    if cell is not None:
        cell = np.asarray(cell, dtype=np.float64)
        rij = _mic_rij(rij, cell, np.linalg.inv(cell))
    dist = np.linalg.norm(rij, axis=-1)

    within = (dist < cutoff) & ~np.eye(n_atoms, dtype=bool)
    i, j = np.nonzero(within)
    return pack_neighbor_list(n_atoms, i, j, rij[i, j])


def concat_displacements(radial: NeighborList, angular: NeighborList) -> np.ndarray:
    """The six-block displacement buffer: radial x, y, z then angular x, y, z."""
    return np.concatenate([radial.r12.reshape(-1), angular.r12.reshape(-1)])


@dataclass
class PairBatch:
    """Occupied slots of one neighbor list, gathered atom-major."""
    centers: np.ndarray    # (E,) atom owning the slot
    neighbors: np.ndarray  # (E,) neighbor atom
    r12: np.ndarray        # (E, 3)
    d12: np.ndarray        # (E,)

    def __len__(self) -> int:
        return int(self.centers.size)


def gather_pairs(NN: np.ndarray, NL: np.ndarray, r12: np.ndarray, n_atoms: int) -> PairBatch:
    """Gather the pairs of a list; ``r12`` is the ``(3, S)`` displacement block."""
    slots, centers = gather_edges(NN, n_atoms)
    xyz = np.ascontiguousarray(r12[:, slots].T)
    d12 = np.sqrt(xyz[:, 0] * xyz[:, 0] + xyz[:, 1] * xyz[:, 1] + xyz[:, 2] * xyz[:, 2])
    return PairBatch(centers=centers, neighbors=NL[slots], r12=xyz, d12=d12)
