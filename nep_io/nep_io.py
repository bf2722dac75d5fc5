"""
Reading and writing GPUMD-style `nep.txt` model files (NEP2 and NEP3 potentials).

Layout::

    nep3_zbl 2 Si O          # tag, number of types, element symbols
    zbl 0.7 1.4              # only for *_zbl tags
    cutoff 5 4               # radial / angular cutoff (A); trailing max_nn values are ignored
    n_max 4 4
    basis_size 8 8
    l_max 4 2 1              # NEP3: 3-body, 4-body, 5-body; NEP2: only the 3-body value
    ANN 30 0
    <num_para values, one per line>
    <dim q_scaler values, one per line>
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Tuple, Union

import numpy as np

from nep_core.constants import atomic_number
from nep_core.evaluator import NEPEvaluator
from nep_core.exceptions import NEPFileError
from nep_core.log import logger
from nep_core.parameters import NEPDescription, compute_counts

PathLike = Union[str, os.PathLike]

_MODEL_TAGS: Dict[str, Tuple[int, bool]] = {
    "nep": (2, False),
    "nep_zbl": (2, True),
    "nep3": (3, False),
    "nep3_zbl": (3, True),
}


def _parse_model_tag(tag: str) -> Tuple[int, bool]:
    if tag not in _MODEL_TAGS:
        raise NEPFileError(f"Unsupported NEP model tag: {tag}")
    return _MODEL_TAGS[tag]


def _model_tag(desc: NEPDescription) -> str:
    return f"{'nep' if desc.version == 2 else 'nep3'}{'_zbl' if desc.zbl_enabled else ''}"


class _Lines:
    """Cursor over the non-empty lines of a model file."""

    def __init__(self, lines: List[str]):
        self.lines = lines
        self.idx = 0

    def next_tokens(self, keyword: str) -> List[str]:
        if self.idx >= len(self.lines):
            raise NEPFileError(f"Unexpected end of file, expected a '{keyword}' line")
        tokens = self.lines[self.idx].split()
        self.idx += 1
        if tokens[0] != keyword:
            raise NEPFileError(f"Expected a '{keyword}' line, got '{tokens[0]}'")
        return tokens

    def rest(self) -> List[str]:
        tokens: List[str] = []
        for ln in self.lines[self.idx:]:
            tokens.extend(ln.split())
        return tokens


def _to_number(kind, token: str, what: str):
    try:
        return kind(token)
    except ValueError:
        raise NEPFileError(f"Cannot parse {what} from '{token}'") from None


def _parse(text: str) -> NEPDescription:
    cursor = _Lines([ln.strip() for ln in text.splitlines() if ln.strip()])
    if not cursor.lines:
        raise NEPFileError("nep.txt is empty")

    header = cursor.lines[0].split()
    cursor.idx = 1
    version, zbl_enabled = _parse_model_tag(header[0])
    if len(header) < 2:
        raise NEPFileError("The first line must give the number of types.")
    num_types = _to_number(int, header[1], "the number of types")
    type_names = header[2:]
    if len(type_names) != num_types:
        raise NEPFileError("The first line must list all element symbols.")

    zbl_rc_inner = zbl_rc_outer = 0.0
    if zbl_enabled:
        tokens = cursor.next_tokens("zbl")
        if len(tokens) != 3:
            raise NEPFileError("Invalid zbl line")
        zbl_rc_inner = _to_number(float, tokens[1], "the inner ZBL cutoff")
        zbl_rc_outer = _to_number(float, tokens[2], "the outer ZBL cutoff")

    tokens = cursor.next_tokens("cutoff")
    if len(tokens) < 3:
        raise NEPFileError("Invalid cutoff line")
    rc_radial = _to_number(float, tokens[1], "the radial cutoff")
    rc_angular = _to_number(float, tokens[2], "the angular cutoff")

    tokens = cursor.next_tokens("n_max")
    if len(tokens) != 3:
        raise NEPFileError("Invalid n_max line")
    n_max_radial = _to_number(int, tokens[1], "n_max_radial")
    n_max_angular = _to_number(int, tokens[2], "n_max_angular")

    tokens = cursor.next_tokens("basis_size")
    if len(tokens) != 3:
        raise NEPFileError("Invalid basis_size line")
    basis_size_radial = _to_number(int, tokens[1], "basis_size_radial")
    basis_size_angular = _to_number(int, tokens[2], "basis_size_angular")

    tokens = cursor.next_tokens("l_max")
    l_max_4body = l_max_5body = 0
    if version == 2:
        if len(tokens) != 2:
            raise NEPFileError("Invalid l_max line (NEP2 expects one value)")
        l_max = _to_number(int, tokens[1], "l_max")
    else:
        if len(tokens) != 4:
            raise NEPFileError("Invalid l_max line (NEP3 expects three values)")
        l_max = _to_number(int, tokens[1], "l_max")
        l_max_4body = _to_number(int, tokens[2], "l_max_4body")
        l_max_5body = _to_number(int, tokens[3], "l_max_5body")

    tokens = cursor.next_tokens("ANN")
    if len(tokens) not in (2, 3):
        raise NEPFileError("Invalid ANN line")
    num_neurons1 = _to_number(int, tokens[1], "the number of neurons")
    num_neurons2 = _to_number(int, tokens[2], "num_neurons2") if len(tokens) == 3 else 0

    desc = NEPDescription(
        version=version,
        type_names=type_names,
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
        num_neurons2=num_neurons2,
        zbl_enabled=zbl_enabled,
        zbl_rc_inner=zbl_rc_inner,
        zbl_rc_outer=zbl_rc_outer,
    )
    counts = compute_counts(desc)

    values = np.array([_to_number(float, x, "a parameter value") for x in cursor.rest()], dtype=np.float64)
    need = counts["num_para"] + counts["dim"]
    if values.size < need:
        raise NEPFileError(
            f"nep.txt has {values.size} numeric entries, expected {counts['num_para']} "
            f"parameters + {counts['dim']} q_scaler values"
        )
    if values.size > need:
        logger.warning(f"Ignoring {values.size - need} trailing values in nep.txt")

    desc.parameters = values[: counts["num_para"]]
    desc.q_scaler = values[counts["num_para"]: need]
    return desc


def _log_summary(desc: NEPDescription) -> None:
    counts = compute_counts(desc)
    logger.info(f"Use the NEP{desc.version} potential with {desc.num_types} atom type(s).")
    for n, name in enumerate(desc.type_names):
        logger.info(f"    type {n} ({name} with Z = {atomic_number(name)}).")
    if desc.zbl_enabled:
        logger.info(
            f"    has ZBL with inner cutoff {desc.zbl_rc_inner} A and outer cutoff {desc.zbl_rc_outer} A."
        )
    logger.info(f"    radial cutoff = {desc.rc_radial} A.")
    logger.info(f"    angular cutoff = {desc.rc_angular} A.")
    logger.info(f"    n_max_radial = {desc.n_max_radial}.")
    logger.info(f"    n_max_angular = {desc.n_max_angular}.")
    logger.info(f"    basis_size_radial = {desc.basis_size_radial}.")
    logger.info(f"    basis_size_angular = {desc.basis_size_angular}.")
    logger.info(f"    l_max_3body = {desc.l_max}.")
    if desc.version == 3:
        logger.info(f"    l_max_4body = {desc.l_max_4body}.")
        logger.info(f"    l_max_5body = {desc.l_max_5body}.")
    logger.info(f"    ANN = {counts['dim']}-{desc.num_neurons1}-1.")
    logger.info(f"    number of neural network parameters = {counts['num_para_ann']}.")
    logger.info(f"    number of descriptor parameters = {counts['num_para_descriptor']}.")
    logger.info(f"    total number of parameters = {counts['num_para']}.")


def read_nep_txt(path: PathLike) -> NEPDescription:
    """Parse a `nep.txt` file. Raises :class:`NEPFileError` if it is missing or malformed."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Cannot read {p}: {e}")
        raise NEPFileError(f"Cannot read {p}") from e

    try:
        desc = _parse(text)
    except NEPFileError as e:
        logger.error(f"Invalid model file {p}: {e}")
        raise

    _log_summary(desc)
    return desc


def _write_per_line(f, values: np.ndarray):
    for x in np.asarray(values, dtype=np.float64).reshape(-1):
        f.write(f"{float(x):15.7e}\n")


def write_nep_txt(desc: NEPDescription, path: PathLike) -> str:
    """Write ``desc`` in the `nep.txt` layout and return the path written."""
    counts = compute_counts(desc)
    if desc.parameters is None or np.size(desc.parameters) != counts["num_para"]:
        raise NEPFileError("parameters size does not match model shape")
    if desc.q_scaler is None or np.size(desc.q_scaler) != counts["dim"]:
        raise NEPFileError("q_scaler size does not match descriptor dimension")

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    with p.open("w", encoding="ascii") as f:
        f.write(f"{_model_tag(desc)} {desc.num_types} {' '.join(desc.type_names)}\n")
        if desc.zbl_enabled:
            f.write(f"zbl {desc.zbl_rc_inner:.10g} {desc.zbl_rc_outer:.10g}\n")
        f.write(f"cutoff {desc.rc_radial:.10g} {desc.rc_angular:.10g}\n")
        f.write(f"n_max {desc.n_max_radial} {desc.n_max_angular}\n")
        f.write(f"basis_size {desc.basis_size_radial} {desc.basis_size_angular}\n")
        if desc.version == 2:
            f.write(f"l_max {desc.l_max}\n")
        else:
            f.write(f"l_max {desc.l_max} {desc.l_max_4body} {desc.l_max_5body}\n")
        f.write(f"ANN {desc.num_neurons1} {desc.num_neurons2}\n")

        _write_per_line(f, desc.parameters)
        _write_per_line(f, desc.q_scaler)

    return str(p)


def load_nep(path: PathLike, n_atoms: int) -> NEPEvaluator:
    """Read a `nep.txt` file and build an evaluator for ``n_atoms`` atoms."""
    return NEPEvaluator(read_nep_txt(path), n_atoms)
