"""CPU evaluator for NEP (neuroevolution potential) models."""

from .evaluator import NEPEvaluator
from .exceptions import NEPError, NEPFileError, NeighborListError
from .neighbor import NeighborList, build_neighbor_list, concat_displacements, pack_neighbor_list
from .parameters import (
    AngularVariant,
    DescriptorMode,
    NEPDescription,
    NetworkParameters,
    ParameterSet,
    ZBLConfig,
    compute_counts,
    random_description,
)

__all__ = [
    "NEPEvaluator",
    "NEPError",
    "NEPFileError",
    "NeighborListError",
    "NeighborList",
    "build_neighbor_list",
    "concat_displacements",
    "pack_neighbor_list",
    "AngularVariant",
    "DescriptorMode",
    "NEPDescription",
    "NetworkParameters",
    "ParameterSet",
    "ZBLConfig",
    "compute_counts",
    "random_description",
]
