"""
Check a model file and print its sizes:

    python -m nep_io nep.txt
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from nep_core.exceptions import NEPError
from nep_core.parameters import compute_counts

from .nep_io import read_nep_txt


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="python -m nep_io", description="Validate a NEP model file.")
    parser.add_argument("path", help="path to nep.txt")
    args = parser.parse_args(argv)

    try:
        desc = read_nep_txt(args.path)
        counts = compute_counts(desc)
    except NEPError:
        return 1

    print(f"types      = {' '.join(desc.type_names)}")
    print(f"version    = {desc.version}")
    print(f"dim        = {counts['dim']}")
    print(f"num_para   = {counts['num_para']}")
    print(f"zbl        = {'on' if desc.zbl_enabled else 'off'}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
