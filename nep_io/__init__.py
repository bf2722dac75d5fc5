"""I/O utilities for GPUMD NEP2/NEP3 (`nep.txt`) model files."""

from .nep_io import (
    read_nep_txt,
    write_nep_txt,
    load_nep,
)

__all__ = [
    "read_nep_txt",
    "write_nep_txt",
    "load_nep",
]
