"""Taxabase: a directory of taxonomy models with a consistent occupation and skill hierarchy."""

__version__ = "0.1.0"

from taxabase.client import Taxabase
from taxabase.engine.types import CoarseType, HierarchyDomain, ObjectType
from taxabase.models import (
    HierarchyEdge,
    ModelInfo,
    ModelStats,
    NewEdgeSpec,
    NodeReference,
    TaxonomyEntity,
    ValidationResult,
)

__all__ = [
    "CoarseType",
    "HierarchyDomain",
    "HierarchyEdge",
    "ModelInfo",
    "ModelStats",
    "NewEdgeSpec",
    "NodeReference",
    "ObjectType",
    "Taxabase",
    "TaxonomyEntity",
    "ValidationResult",
    "__version__",
]
