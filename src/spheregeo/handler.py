#!/usr/bin/env python3
"""
Streaming geometry event contract.

Readers walk a geometry source (WKB bytes, in-memory geographies) and emit
a fixed sequence of events to a GeometryHandler. Builders and writers are
handlers; they only react to the events they care about.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Tuple

# (x, y) in degrees, i.e. (longitude, latitude)
Coord = Tuple[float, float]

PART_ID_NONE: Optional[int] = None


class GeometryType(IntEnum):
    """WKB geometry type codes."""

    GEOMETRY = 0
    POINT = 1
    LINESTRING = 2
    POLYGON = 3
    MULTIPOINT = 4
    MULTILINESTRING = 5
    MULTIPOLYGON = 6
    GEOMETRYCOLLECTION = 7

    def __str__(self) -> str:
        return {
            GeometryType.GEOMETRY: "Geometry",
            GeometryType.POINT: "Point",
            GeometryType.LINESTRING: "LineString",
            GeometryType.POLYGON: "Polygon",
            GeometryType.MULTIPOINT: "MultiPoint",
            GeometryType.MULTILINESTRING: "MultiLineString",
            GeometryType.MULTIPOLYGON: "MultiPolygon",
            GeometryType.GEOMETRYCOLLECTION: "GeometryCollection",
        }[self]


@dataclass(frozen=True)
class GeometryMeta:
    """Describes the geometry a start/end event belongs to.

    ``size`` is the number of coordinates (points, linestrings), rings
    (polygons) or child geometries (multi types); it is only meaningful
    when ``has_size`` is set.
    """

    geometry_type: GeometryType
    has_size: bool = False
    size: int = 0

    @classmethod
    def sized(cls, geometry_type: GeometryType, size: int) -> "GeometryMeta":
        return cls(geometry_type, has_size=True, size=size)


class GeometryHandler:
    """Receiver of geometry events. Every method is a no-op by default."""

    def next_feature_start(self, feature_id: int) -> None:
        pass

    def next_null(self, feature_id: int) -> None:
        pass

    def next_geometry_start(self, meta: GeometryMeta, part_id: Optional[int]) -> None:
        pass

    def next_linear_ring_start(
        self, meta: GeometryMeta, size: int, ring_id: int
    ) -> None:
        pass

    def next_coordinate(self, meta: GeometryMeta, coord: Coord, coord_id: int) -> None:
        pass

    def next_linear_ring_end(self, meta: GeometryMeta, size: int, ring_id: int) -> None:
        pass

    def next_geometry_end(self, meta: GeometryMeta, part_id: Optional[int]) -> None:
        pass

    def next_feature_end(self, feature_id: int) -> None:
        pass
