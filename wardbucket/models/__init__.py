"""
SQLAlchemy models package
Exports all models for easy importing
"""
from wardbucket.models.geo import (
    Structure,
    NodeKind,
    GeoRegion,
    Province,
    District,
    LLG,
    Ward,
    Location,
    Region,
    AbgDistrict,
    Constituency,
    MkaRegion,
    MkaWard,
    KIND_MODELS,
)
from wardbucket.models.history import NodeMovementHistory

__all__ = [
    # Enums
    "Structure",
    "NodeKind",

    # Structure roots
    "GeoRegion",

    # PNG models
    "Province",
    "District",
    "LLG",
    "Ward",

    # ABG models
    "Region",
    "AbgDistrict",
    "Constituency",

    # MKA models
    "MkaRegion",
    "MkaWard",

    # Leaf
    "Location",

    "KIND_MODELS",

    # Audit
    "NodeMovementHistory",
]
