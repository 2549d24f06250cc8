#!/usr/bin/env python3
"""
spheregeo - spherical geographies with lazy shape indexes.

This package models points, polylines and polygons on the sphere, reads
and writes them as WKB, and computes nearest-feature lookups and pairwise
distance matrices over collections of them.
"""
import importlib.metadata

__version__ = importlib.metadata.version("spheregeo")

# Import main classes for public API
from .config import BuildOptions
from .errors import (
    BuilderStateError,
    GeographyError,
    GeometryTypeError,
    InvalidGeometry,
    MissingInput,
    UnsupportedOperation,
)
from .geography import Geography, PointGeography, PolygonGeography, PolylineGeography
from .operators import closest_feature, distance_matrix, max_distance_matrix
from .sphere import Loop, Position
from .wkb import (
    geographies_from_wkb,
    geographies_to_wkb,
    positions_from_wkb,
    positions_to_wkb,
)

__all__ = [
    "BuildOptions",
    "BuilderStateError",
    "GeographyError",
    "GeometryTypeError",
    "InvalidGeometry",
    "MissingInput",
    "UnsupportedOperation",
    "Geography",
    "PointGeography",
    "PolygonGeography",
    "PolylineGeography",
    "closest_feature",
    "distance_matrix",
    "max_distance_matrix",
    "Loop",
    "Position",
    "geographies_from_wkb",
    "geographies_to_wkb",
    "positions_from_wkb",
    "positions_to_wkb",
]
