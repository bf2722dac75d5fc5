"""
Parameter store for the NEP evaluator.

A model enters as an :class:`NEPDescription` (what the `nep.txt` file says) and is
resolved once into three immutable objects:

- :class:`ParameterSet` : derived sizes, cutoffs, ``q_scaler`` and the two mode tags
  (:class:`DescriptorMode`, :class:`AngularVariant`) that select the code paths of the
  descriptor and force stages.
- :class:`NetworkParameters` : one owned flat buffer and named read-only views
  ``w0, b0, w1, b1, c`` (in that order inside the buffer).
- :class:`ZBLConfig` : the optional short-range repulsion.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .constants import MAX_L, MAX_NUM_N, atomic_number
from .exceptions import NEPFileError


class DescriptorMode(enum.Enum):
    """How type-pair coefficients enter the radial functions."""
    LEGACY = 2      # NEP2: one scalar per (order, t1, t2)
    CHEBYSHEV = 3   # NEP3: linear combination of basis functions per (order, basis, t1, t2)


class AngularVariant(enum.Enum):
    """Which invariants are built from the angular moments."""
    THREE_BODY = 0
    FOUR_BODY = 1
    FIVE_BODY = 2


@dataclass
class NEPDescription:
    """Container for the `nep.txt` layout (before derived quantities)."""
    version: int
    type_names: List[str]

    rc_radial: float
    rc_angular: float
    n_max_radial: int
    n_max_angular: int
    basis_size_radial: int = 0
    basis_size_angular: int = 0
    l_max: int = 4
    l_max_4body: int = 0
    l_max_5body: int = 0
    num_neurons1: int = 1
    num_neurons2: int = 0

    zbl_enabled: bool = False
    zbl_rc_inner: float = 0.0
    zbl_rc_outer: float = 0.0

    parameters: Optional[np.ndarray] = None  # shape [num_para]
    q_scaler: Optional[np.ndarray] = None    # shape [dim]

    @property
    def num_types(self) -> int:
        return len(self.type_names)


def _compute_counts(desc: NEPDescription) -> dict:
    num_L = desc.l_max
    if desc.version == 3:
        if desc.l_max_4body == 2:
            num_L += 1
        if desc.l_max_5body == 1:
            num_L += 1

    dim = (desc.n_max_radial + 1) + (desc.n_max_angular + 1) * num_L
    num_para_ann = (dim + 2) * desc.num_neurons1 + 1

    num_types = desc.num_types
    num_types_sq = num_types * num_types
    if desc.version == 2:
        num_para_descriptor = (
            0 if num_types == 1
            else num_types_sq * (desc.n_max_radial + desc.n_max_angular + 2)
        )
    else:
        num_para_descriptor = num_types_sq * (
            (desc.n_max_radial + 1) * (desc.basis_size_radial + 1)
            + (desc.n_max_angular + 1) * (desc.basis_size_angular + 1)
        )

    return {
        "num_L": num_L,
        "dim": dim,
        "num_para_ann": num_para_ann,
        "num_para_descriptor": num_para_descriptor,
        "num_para": num_para_ann + num_para_descriptor,
        "num_types_sq": num_types_sq,
        "num_c_radial": num_types_sq * (desc.n_max_radial + 1) * (desc.basis_size_radial + 1),
    }


def compute_counts(desc: NEPDescription) -> dict:
    """Derived sizes of a model: ``num_L``, ``dim``, ``num_para`` and friends."""
    _check_description(desc)
    return _compute_counts(desc)


def _check_description(desc: NEPDescription) -> None:
    if desc.version not in (2, 3):
        raise NEPFileError(f"Unsupported NEP version: {desc.version}")
    if desc.num_types < 1:
        raise NEPFileError("A model needs at least one atom type.")
    if not (desc.rc_radial > 0.0 and desc.rc_angular > 0.0):
        raise NEPFileError("Cutoffs must be positive.")
    for name in ("n_max_radial", "n_max_angular", "basis_size_radial", "basis_size_angular"):
        value = getattr(desc, name)
        if not 0 <= value < MAX_NUM_N:
            raise NEPFileError(f"{name} = {value} is outside 0..{MAX_NUM_N - 1}")
    if not 1 <= desc.l_max <= MAX_L:
        raise NEPFileError(f"l_max = {desc.l_max} is outside 1..{MAX_L}")
    if desc.version == 3:
        if desc.l_max_4body not in (0, 2):
            raise NEPFileError("l_max_4body must be 0 or 2")
        if desc.l_max_5body not in (0, 1):
            raise NEPFileError("l_max_5body must be 0 or 1")
        if desc.l_max_5body == 1 and desc.l_max_4body != 2:
            raise NEPFileError("5-body invariants require the 4-body invariants")
        if desc.l_max_4body == 2 and desc.l_max < 2:
            raise NEPFileError("4-body invariants require l_max >= 2")
    if desc.num_neurons1 < 1:
        raise NEPFileError("The hidden layer needs at least one neuron.")
    if desc.zbl_enabled and not 0.0 <= desc.zbl_rc_inner < desc.zbl_rc_outer:
        raise NEPFileError("ZBL cutoffs must satisfy 0 <= rc_inner < rc_outer")


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class ParameterSet:
    version: int
    num_types: int
    rc_radial: float
    rc_angular: float
    rcinv_radial: float
    rcinv_angular: float
    n_max_radial: int
    n_max_angular: int
    basis_size_radial: int
    basis_size_angular: int
    L_max: int
    num_L: int
    dim: int
    dim_angular: int
    num_types_sq: int
    num_c_radial: int
    q_scaler: np.ndarray
    mode: DescriptorMode
    variant: AngularVariant

    @classmethod
    def from_description(cls, desc: NEPDescription) -> "ParameterSet":
        counts = compute_counts(desc)
        dim = counts["dim"]

        if desc.q_scaler is None:
            raise NEPFileError("q_scaler must be provided.")
        q_scaler = np.array(desc.q_scaler, dtype=np.float64).reshape(-1)
        if q_scaler.size != dim:
            raise NEPFileError(f"q_scaler has {q_scaler.size} values, expected dim = {dim}")

        extra = counts["num_L"] - desc.l_max
        return cls(
            version=desc.version,
            num_types=desc.num_types,
            rc_radial=float(desc.rc_radial),
            rc_angular=float(desc.rc_angular),
            rcinv_radial=1.0 / float(desc.rc_radial),
            rcinv_angular=1.0 / float(desc.rc_angular),
            n_max_radial=desc.n_max_radial,
            n_max_angular=desc.n_max_angular,
            basis_size_radial=desc.basis_size_radial,
            basis_size_angular=desc.basis_size_angular,
            L_max=desc.l_max,
            num_L=counts["num_L"],
            dim=dim,
            dim_angular=(desc.n_max_angular + 1) * counts["num_L"],
            num_types_sq=counts["num_types_sq"],
            num_c_radial=counts["num_c_radial"],
            q_scaler=_readonly(q_scaler),
            mode=DescriptorMode(desc.version),
            variant=AngularVariant(extra),
        )

    @property
    def n_max_angular_plus_1(self) -> int:
        return self.n_max_angular + 1

    def angular_slot(self, L: int, n: int) -> int:
        """Descriptor index of invariant group ``L`` (0-based) and channel ``n``."""
        return self.n_max_radial + 1 + L * (self.n_max_angular + 1) + n


@dataclass(frozen=True, eq=False)
class NetworkParameters:
    """
    Named views into one owned parameter buffer.

    ``c_radial`` / ``c_angular`` are reshaped views of ``c`` used by the hot loops:
    CHEBYSHEV mode -> ``[n, k, t1, t2]``; LEGACY mode -> ``[n, t1, t2]`` (all ones for
    a single-type model, which stores no descriptor coefficients).
    """
    num_neurons1: int
    dim: int
    num_para: int
    buffer: np.ndarray = field(repr=False)
    w0: np.ndarray = field(repr=False)
    b0: np.ndarray = field(repr=False)
    w1: np.ndarray = field(repr=False)
    b1: np.ndarray = field(repr=False)
    c: np.ndarray = field(repr=False)
    c_radial: np.ndarray = field(repr=False)
    c_angular: np.ndarray = field(repr=False)

    @classmethod
    def from_description(cls, desc: NEPDescription) -> "NetworkParameters":
        counts = compute_counts(desc)
        dim = counts["dim"]
        num_para = counts["num_para"]
        H = desc.num_neurons1

        if desc.parameters is None:
            raise NEPFileError("parameters must be provided.")
        buffer = np.array(desc.parameters, dtype=np.float64).reshape(-1)
        if buffer.size != num_para:
            raise NEPFileError(
                f"Expected {num_para} parameters ({counts['num_para_ann']} network + "
                f"{counts['num_para_descriptor']} descriptor), got {buffer.size}"
            )
        buffer.setflags(write=False)

        pos = 0
        w0 = buffer[pos: pos + H * dim].reshape(H, dim); pos += H * dim
        b0 = buffer[pos: pos + H]; pos += H
        w1 = buffer[pos: pos + H]; pos += H
        b1 = buffer[pos: pos + 1]; pos += 1
        c = buffer[pos:]

        T = desc.num_types
        n_r = desc.n_max_radial + 1
        n_a = desc.n_max_angular + 1
        if desc.version == 2:
            if T == 1:
                c_radial = _readonly(np.ones((n_r, 1, 1)))
                c_angular = _readonly(np.ones((n_a, 1, 1)))
            else:
                c_all = c.reshape(n_r + n_a, T, T)
                c_radial = c_all[:n_r]
                c_angular = c_all[n_r:]
        else:
            k_r = desc.basis_size_radial + 1
            k_a = desc.basis_size_angular + 1
            num_c_radial = counts["num_c_radial"]
            c_radial = c[:num_c_radial].reshape(n_r, k_r, T, T)
            c_angular = c[num_c_radial:].reshape(n_a, k_a, T, T)

        return cls(
            num_neurons1=H,
            dim=dim,
            num_para=num_para,
            buffer=buffer,
            w0=w0,
            b0=b0,
            w1=w1,
            b1=b1,
            c=c,
            c_radial=c_radial,
            c_angular=c_angular,
        )


@dataclass(frozen=True)
class ZBLConfig:
    enabled: bool
    atomic_numbers: Tuple[int, ...]
    rc_inner: float = 0.0
    rc_outer: float = 0.0

    @classmethod
    def from_description(cls, desc: NEPDescription) -> "ZBLConfig":
        return cls(
            enabled=bool(desc.zbl_enabled),
            atomic_numbers=tuple(atomic_number(name) for name in desc.type_names),
            rc_inner=float(desc.zbl_rc_inner),
            rc_outer=float(desc.zbl_rc_outer),
        )


def random_description(
    type_names: Sequence[str] = ("C",),
    version: int = 3,
    rc_radial: float = 5.0,
    rc_angular: float = 4.0,
    n_max_radial: int = 4,
    n_max_angular: int = 4,
    basis_size_radial: int = 6,
    basis_size_angular: int = 6,
    l_max: int = 4,
    l_max_4body: int = 0,
    l_max_5body: int = 0,
    num_neurons1: int = 10,
    zbl: Optional[Tuple[float, float]] = None,
    scale: float = 0.5,
    seed: int = 0,
) -> NEPDescription:
    """
    A synthetic model with uniformly random parameters in ``[-scale, scale]``.

    Useful for tests and benchmarks; ``q_scaler`` is drawn from ``[0.5, 1.5]``.
    """
    desc = NEPDescription(
        version=version,
        type_names=list(type_names),
        rc_radial=rc_radial,
        rc_angular=rc_angular,
        n_max_radial=n_max_radial,
        n_max_angular=n_max_angular,
        basis_size_radial=basis_size_radial,
        basis_size_angular=basis_size_angular,
        l_max=l_max,
        l_max_4body=l_max_4body,
        l_max_5body=l_max_5body,
        num_neurons1=num_neurons1,
        zbl_enabled=zbl is not None,
        zbl_rc_inner=zbl[0] if zbl else 0.0,
        zbl_rc_outer=zbl[1] if zbl else 0.0,
    )
    counts = compute_counts(desc)
    rng = np.random.default_rng(seed)
    desc.parameters = rng.uniform(-scale, scale, counts["num_para"])
    desc.q_scaler = rng.uniform(0.5, 1.5, counts["dim"])
    return desc
