#!/usr/bin/env python3
"""
WKB input and output.

WKBReader parses well-known binary with shapely and walks the resulting
geometries, emitting the geometry event stream to any GeometryHandler.
WKBWriter is the reverse: a handler that reassembles events into shapely
geometries and serializes them back to WKB. Together with GeographyReader
(which drives Geography.export) these give lossless round trips between
WKB and geographies.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence
import logging

import shapely.wkb
from shapely.geometry import (
    GeometryCollection,
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
)
from shapely.geometry.base import BaseGeometry

from .config import BuildOptions
from .builders import GeographyFactory
from .errors import GeometryTypeError, InvalidGeometry
from .geography import Geography
from .handler import (
    PART_ID_NONE,
    Coord,
    GeometryHandler,
    GeometryMeta,
    GeometryType,
)
from .sphere import Position

logger = logging.getLogger(__name__)

_SHAPELY_TYPES = {
    "Point": GeometryType.POINT,
    "LineString": GeometryType.LINESTRING,
    "LinearRing": GeometryType.LINESTRING,
    "Polygon": GeometryType.POLYGON,
    "MultiPoint": GeometryType.MULTIPOINT,
    "MultiLineString": GeometryType.MULTILINESTRING,
    "MultiPolygon": GeometryType.MULTIPOLYGON,
    "GeometryCollection": GeometryType.GEOMETRYCOLLECTION,
}


class WKBReader:
    """Emits geometry events for a sequence of WKB blobs (None is a null feature)."""

    def __init__(self, handler: GeometryHandler):
        self.handler = handler

    def read(self, items: Iterable[Optional[bytes]]) -> None:
        for feature_id, item in enumerate(items):
            self.read_feature(feature_id, item)

    def read_feature(self, feature_id: int, item: Optional[bytes]) -> None:
        self.handler.next_feature_start(feature_id)
        if item is None:
            self.handler.next_null(feature_id)
        else:
            self._read_geometry(shapely.wkb.loads(bytes(item)), PART_ID_NONE)
        self.handler.next_feature_end(feature_id)

    def _read_coords(self, meta: GeometryMeta, coords) -> None:
        for coord_id, coord in enumerate(coords):
            self.handler.next_coordinate(meta, (coord[0], coord[1]), coord_id)

    def _read_geometry(self, geom: BaseGeometry, part_id: Optional[int]) -> None:
        geometry_type = _SHAPELY_TYPES[geom.geom_type]

        if geometry_type == GeometryType.POINT:
            coords = [] if geom.is_empty else list(geom.coords)
            meta = GeometryMeta.sized(geometry_type, len(coords))
            self.handler.next_geometry_start(meta, part_id)
            self._read_coords(meta, coords)
            self.handler.next_geometry_end(meta, part_id)

        elif geometry_type == GeometryType.LINESTRING:
            coords = list(geom.coords)
            meta = GeometryMeta.sized(geometry_type, len(coords))
            self.handler.next_geometry_start(meta, part_id)
            self._read_coords(meta, coords)
            self.handler.next_geometry_end(meta, part_id)

        elif geometry_type == GeometryType.POLYGON:
            rings = [] if geom.is_empty else [geom.exterior, *geom.interiors]
            meta = GeometryMeta.sized(geometry_type, len(rings))
            self.handler.next_geometry_start(meta, part_id)
            for ring_id, ring in enumerate(rings):
                coords = list(ring.coords)
                self.handler.next_linear_ring_start(meta, len(coords), ring_id)
                self._read_coords(meta, coords)
                self.handler.next_linear_ring_end(meta, len(coords), ring_id)
            self.handler.next_geometry_end(meta, part_id)

        else:
            children = list(geom.geoms)
            meta = GeometryMeta.sized(geometry_type, len(children))
            self.handler.next_geometry_start(meta, part_id)
            for child_id, child in enumerate(children):
                self._read_geometry(child, child_id)
            self.handler.next_geometry_end(meta, part_id)


class GeographyReader:
    """Emits geometry events for a sequence of geographies (None is a null feature)."""

    def __init__(self, handler: GeometryHandler):
        self.handler = handler

    def read(self, geographies: Iterable[Optional[Geography]]) -> None:
        for feature_id, geography in enumerate(geographies):
            self.handler.next_feature_start(feature_id)
            if geography is None:
                self.handler.next_null(feature_id)
            else:
                geography.export(self.handler, PART_ID_NONE)
            self.handler.next_feature_end(feature_id)


@dataclass
class _Frame:
    """A geometry being reassembled from events."""

    meta: GeometryMeta
    coords: List[Coord] = field(default_factory=list)
    rings: List[List[Coord]] = field(default_factory=list)
    ring: Optional[List[Coord]] = None
    children: List[BaseGeometry] = field(default_factory=list)

    def to_shapely(self) -> BaseGeometry:
        geometry_type = self.meta.geometry_type
        if geometry_type == GeometryType.POINT:
            return Point(self.coords[0]) if self.coords else Point()
        elif geometry_type == GeometryType.LINESTRING:
            return LineString(self.coords)
        elif geometry_type == GeometryType.POLYGON:
            if not self.rings:
                return Polygon()
            return Polygon(self.rings[0], self.rings[1:])
        elif geometry_type == GeometryType.MULTIPOINT:
            return MultiPoint(self.children)
        elif geometry_type == GeometryType.MULTILINESTRING:
            return MultiLineString(self.children)
        elif geometry_type == GeometryType.MULTIPOLYGON:
            return MultiPolygon(self.children)
        elif geometry_type == GeometryType.GEOMETRYCOLLECTION:
            return GeometryCollection(self.children)
        raise GeometryTypeError(f"Can't write a {geometry_type} as WKB")


class WKBWriter(GeometryHandler):
    """
    Serializes the event stream to WKB, one blob (or None) per feature.

    Args:
        endian: 1 for little endian (default), 0 for big endian
    """

    def __init__(self, endian: int = 1):
        self.endian = endian
        self.output: List[Optional[bytes]] = []
        self._stack: List[_Frame] = []
        self._feature: Optional[BaseGeometry] = None

    def next_feature_start(self, feature_id: int) -> None:
        self._stack = []
        self._feature = None

    def next_geometry_start(self, meta: GeometryMeta, part_id: Optional[int]) -> None:
        self._stack.append(_Frame(meta))

    def next_linear_ring_start(
        self, meta: GeometryMeta, size: int, ring_id: int
    ) -> None:
        self._stack[-1].ring = []

    def next_coordinate(self, meta: GeometryMeta, coord: Coord, coord_id: int) -> None:
        frame = self._stack[-1]
        if frame.ring is not None:
            frame.ring.append(coord)
        else:
            frame.coords.append(coord)

    def next_linear_ring_end(self, meta: GeometryMeta, size: int, ring_id: int) -> None:
        frame = self._stack[-1]
        frame.rings.append(frame.ring)
        frame.ring = None

    def next_geometry_end(self, meta: GeometryMeta, part_id: Optional[int]) -> None:
        geom = self._stack.pop().to_shapely()
        if self._stack:
            self._stack[-1].children.append(geom)
        else:
            self._feature = geom

    def next_feature_end(self, feature_id: int) -> None:
        if self._feature is None:
            self.output.append(None)
        else:
            self.output.append(shapely.wkb.dumps(self._feature, byte_order=self.endian))


class _PositionCollector(GeometryHandler):
    """Reads one Position per feature from Point WKB."""

    def __init__(self) -> None:
        self.positions: List[Optional[Position]] = []
        self._current: Optional[Position] = None

    def next_feature_start(self, feature_id: int) -> None:
        self._current = None

    def next_geometry_start(self, meta: GeometryMeta, part_id: Optional[int]) -> None:
        if meta.geometry_type != GeometryType.POINT:
            raise GeometryTypeError(
                "Can't create a position from a geometry that is not a point"
            )
        elif meta.size == 0:
            raise InvalidGeometry("Can't create a position from an empty point")

    def next_coordinate(self, meta: GeometryMeta, coord: Coord, coord_id: int) -> None:
        self._current = Position(latitude=coord[1], longitude=coord[0])

    def next_feature_end(self, feature_id: int) -> None:
        self.positions.append(self._current)


def geographies_from_wkb(
    items: Sequence[Optional[bytes]], options: Optional[BuildOptions] = None
) -> List[Optional[Geography]]:
    """
    Build one geography per WKB blob.

    Args:
        items: WKB blobs; None entries become None
        options: Polygon assembly options (defaults to BuildOptions())

    Returns:
        List of geographies in input order

    Raises:
        InvalidGeometry: If a polygon ring fails validation with check enabled
        GeometryTypeError: For geometry collections
    """
    factory = GeographyFactory(options)
    WKBReader(factory).read(items)
    logger.debug(f"Read {len(factory.geographies)} geographies from WKB")
    return factory.geographies


def geographies_to_wkb(
    geographies: Sequence[Optional[Geography]], endian: int = 1
) -> List[Optional[bytes]]:
    """Serialize geographies to WKB; None entries stay None."""
    writer = WKBWriter(endian)
    GeographyReader(writer).read(geographies)
    return writer.output


def positions_from_wkb(items: Sequence[Optional[bytes]]) -> List[Optional[Position]]:
    """
    Read latitude/longitude positions from Point WKB.

    Raises:
        GeometryTypeError: If an item is not a point
        InvalidGeometry: If an item is an empty point
    """
    collector = _PositionCollector()
    WKBReader(collector).read(items)
    return collector.positions


def positions_to_wkb(
    positions: Sequence[Optional[Position]], endian: int = 1
) -> List[Optional[bytes]]:
    """Serialize positions as Point WKB; None entries stay None."""
    writer = WKBWriter(endian)
    meta = GeometryMeta.sized(GeometryType.POINT, 1)
    for feature_id, position in enumerate(positions):
        writer.next_feature_start(feature_id)
        if position is None:
            writer.next_null(feature_id)
        else:
            writer.next_geometry_start(meta, PART_ID_NONE)
            writer.next_coordinate(meta, (position.longitude, position.latitude), 0)
            writer.next_geometry_end(meta, PART_ID_NONE)
        writer.next_feature_end(feature_id)
    return writer.output
