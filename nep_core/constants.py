"""
Fixed tables for the NEP descriptor and the ZBL correction.

All arrays are created once at import and marked read-only.
"""

from __future__ import annotations

import numpy as np


def _frozen(values) -> np.ndarray:
    arr = np.array(values, dtype=np.float64)
    arr.setflags(write=False)
    return arr


NUM_OF_ABC = 24  # 3 + 5 + 7 + 9 for L_max = 4
MAX_L = 4
MAX_NUM_N = 20  # n_max + 1 = 19 + 1

# contraction weights of the degree-1..4 invariants, one per moment component
C3B = _frozen([
    0.238732414637843, 0.119366207318922, 0.119366207318922, 0.099471839432435,
    0.596831036594608, 0.596831036594608, 0.149207759148652, 0.149207759148652,
    0.139260575205408, 0.104445431404056, 0.104445431404056, 1.044454314040563,
    1.044454314040563, 0.174075719006761, 0.174075719006761, 0.011190581936149,
    0.223811638722978, 0.223811638722978, 0.111905819361489, 0.111905819361489,
    1.566681471060845, 1.566681471060845, 0.195835183882606, 0.195835183882606,
])

C4B = _frozen([
    -0.007499480826664,
    -0.134990654879954,
    0.067495327439977,
    0.404971964639861,
    -0.809943929279723,
])

C5B = _frozen([
    0.026596810706114,
    0.053193621412227,
    0.026596810706114,
])

# trained models were fitted with these truncated values
PI = 3.1415927
HALF_PI = 1.5707963

# ZBL: 1/(4*pi*epsilon_0) in eV*A, screening length factor 1/0.46848, and the
# four (a_i, b_i) pairs of the universal screening function
K_C_SP = 14.399645
ZBL_A_INV_FACTOR = 2.134563
ZBL_PARA = _frozen([0.18175, 3.1998, 0.50986, 0.94229, 0.28022, 0.4029, 0.02817, 0.20162])

ELEMENTS = (
    "H",  "He", "Li", "Be", "B",  "C",  "N",  "O",  "F",  "Ne", "Na", "Mg", "Al", "Si", "P",
    "S",  "Cl", "Ar", "K",  "Ca", "Sc", "Ti", "V",  "Cr", "Mn", "Fe", "Co", "Ni", "Cu", "Zn",
    "Ga", "Ge", "As", "Se", "Br", "Kr", "Rb", "Sr", "Y",  "Zr", "Nb", "Mo", "Tc", "Ru", "Rh",
    "Pd", "Ag", "Cd", "In", "Sn", "Sb", "Te", "I",  "Xe", "Cs", "Ba", "La", "Ce", "Pr", "Nd",
    "Pm", "Sm", "Eu", "Gd", "Tb", "Dy", "Ho", "Er", "Tm", "Yb", "Lu", "Hf", "Ta", "W",  "Re",
    "Os", "Ir", "Pt", "Au", "Hg", "Tl", "Pb", "Bi", "Po", "At", "Rn", "Fr", "Ra", "Ac", "Th",
    "Pa", "U",  "Np", "Pu", "Am", "Cm", "Bk", "Cf", "Es", "Fm", "Md", "No", "Lr",
)


def atomic_number(symbol: str) -> int:
    """1-based atomic number of ``symbol``; 0 for symbols outside the table."""
    try:
        return ELEMENTS.index(symbol) + 1
    except ValueError:
        return 0
