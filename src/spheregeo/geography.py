#!/usr/bin/env python3
"""
Geography data model.

A Geography is an immutable point collection, polyline collection or
polygon on the sphere. Every variant answers the same set of questions
(dimension, measures, centroid, boundary), contributes shapes to a shape
index, and can export itself as a stream of geometry events. Each instance
owns a shape index that is built lazily, once, on first use.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence
import logging
import math
import threading

import numpy as np

from .errors import UnsupportedOperation
from .handler import GeometryHandler, GeometryMeta, GeometryType
from .shape_index import (
    MutableShapeIndex,
    PointVectorShape,
    PolygonShape,
    PolylineShape,
)
from .sphere import (
    FOUR_PI,
    Loop,
    Position,
    angle,
    nesting_depths,
    point_to_latlng,
    points_from_positions,
)

logger = logging.getLogger(__name__)


def _readonly_points(points) -> np.ndarray:
    if points is None:
        array = np.empty((0, 3))
    else:
        array = np.array(points, dtype=float).reshape(-1, 3)
    array.flags.writeable = False
    return array


def _export_vertices(
    handler: GeometryHandler, meta: GeometryMeta, vertices: np.ndarray
) -> None:
    for coord_id, vertex in enumerate(vertices):
        position = point_to_latlng(vertex)
        handler.next_coordinate(meta, (position.longitude, position.latitude), coord_id)


class Geography(ABC):
    """Common capability set of all geography variants."""

    def __init__(self) -> None:
        self._shape_index = MutableShapeIndex()
        self._has_index = False
        self._index_lock = threading.Lock()

    @abstractmethod
    def is_collection(self) -> bool:
        """True if the geography holds more than one disjoint part."""

    @abstractmethod
    def dimension(self) -> int:
        """Topological dimension: 0 for points, 1 for curves, 2 for areas."""

    @abstractmethod
    def num_points(self) -> int:
        pass

    @abstractmethod
    def area(self) -> float:
        pass

    @abstractmethod
    def length(self) -> float:
        pass

    @abstractmethod
    def perimeter(self) -> float:
        pass

    @abstractmethod
    def x(self) -> float:
        pass

    @abstractmethod
    def y(self) -> float:
        pass

    @abstractmethod
    def centroid(self) -> "Geography":
        pass

    @abstractmethod
    def boundary(self) -> "Geography":
        pass

    @abstractmethod
    def build_shape_index(self, index: MutableShapeIndex) -> List[int]:
        """
        Add this geography's shapes to an index.

        Args:
            index: Index to add shapes to (not necessarily this geography's own)

        Returns:
            Ids of the shapes that were added
        """

    @abstractmethod
    def export(self, handler: GeometryHandler, part_id: Optional[int]) -> None:
        """Emit this geography as geometry events."""

    def shape_index(self) -> MutableShapeIndex:
        """
        This geography's own shape index, built on first access.

        The index is built at most once, even under concurrent access, and
        is frozen afterwards.
        """
        if not self._has_index:
            with self._index_lock:
                if not self._has_index:
                    shape_ids = self.build_shape_index(self._shape_index)
                    self._shape_index.freeze()
                    self._has_index = True
                    logger.debug(
                        f"Built shape index for {self!r} with {len(shape_ids)} shape(s)"
                    )
        return self._shape_index


class PointGeography(Geography):
    """Zero, one or many points. A single point is not a collection."""

    def __init__(self, points: Optional[Sequence] = None):
        """
        Args:
            points: Sphere points as an array-like of shape (n, 3)
        """
        super().__init__()
        self._points = _readonly_points(points)

    @classmethod
    def from_positions(cls, positions: Sequence[Position]) -> "PointGeography":
        return cls(points_from_positions(positions))

    @property
    def points(self) -> np.ndarray:
        return self._points

    def __repr__(self) -> str:
        return f"PointGeography({len(self._points)} points)"

    def is_collection(self) -> bool:
        return self.num_points() > 1

    def dimension(self) -> int:
        return 0

    def num_points(self) -> int:
        return len(self._points)

    def area(self) -> float:
        return 0.0

    def length(self) -> float:
        return 0.0

    def perimeter(self) -> float:
        return 0.0

    def x(self) -> float:
        """Longitude of a single point in degrees, nan otherwise."""
        if len(self._points) != 1:
            return math.nan
        return point_to_latlng(self._points[0]).longitude

    def y(self) -> float:
        """Latitude of a single point in degrees, nan otherwise."""
        if len(self._points) != 1:
            return math.nan
        return point_to_latlng(self._points[0]).latitude

    def centroid(self) -> "PointGeography":
        if self.num_points() == 0:
            return PointGeography()
        elif self.num_points() == 1:
            return PointGeography(self._points[:1])
        raise UnsupportedOperation("Can't create centroid for more than one point")

    def boundary(self) -> "PointGeography":
        return PointGeography()

    def build_shape_index(self, index: MutableShapeIndex) -> List[int]:
        return [index.add(PointVectorShape(self._points))]

    def export(self, handler: GeometryHandler, part_id: Optional[int]) -> None:
        if len(self._points) > 1:
            meta = GeometryMeta.sized(GeometryType.MULTIPOINT, len(self._points))
            child_meta = GeometryMeta.sized(GeometryType.POINT, 1)
            handler.next_geometry_start(meta, part_id)
            for i, point in enumerate(self._points):
                handler.next_geometry_start(child_meta, i)
                _export_vertices(handler, child_meta, point[None, :])
                handler.next_geometry_end(child_meta, i)
            handler.next_geometry_end(meta, part_id)
        else:
            meta = GeometryMeta.sized(GeometryType.POINT, len(self._points))
            handler.next_geometry_start(meta, part_id)
            _export_vertices(handler, meta, self._points)
            handler.next_geometry_end(meta, part_id)


class PolylineGeography(Geography):
    """Zero, one or many polylines, each an ordered run of sphere points."""

    def __init__(self, polylines: Optional[Sequence] = None):
        """
        Args:
            polylines: Sequence of array-likes of shape (k, 3)
        """
        super().__init__()
        if polylines is None:
            polylines = []
        self._polylines = [_readonly_points(p) for p in polylines]

    @classmethod
    def from_positions(
        cls, polylines: Sequence[Sequence[Position]]
    ) -> "PolylineGeography":
        return cls([points_from_positions(p) for p in polylines])

    @property
    def polylines(self) -> List[np.ndarray]:
        return list(self._polylines)

    def __repr__(self) -> str:
        return f"PolylineGeography({len(self._polylines)} polylines)"

    def is_collection(self) -> bool:
        return len(self._polylines) > 1

    def dimension(self) -> int:
        return 1

    def num_points(self) -> int:
        return sum(len(p) for p in self._polylines)

    def area(self) -> float:
        return 0.0

    def length(self) -> float:
        """Total length of all polylines in radians."""
        return float(
            sum(np.sum(angle(p[:-1], p[1:])) for p in self._polylines if len(p) > 1)
        )

    def perimeter(self) -> float:
        return 0.0

    def x(self) -> float:
        raise UnsupportedOperation("Can't compute X value of a non-point geography")

    def y(self) -> float:
        raise UnsupportedOperation("Can't compute Y value of a non-point geography")

    def centroid(self) -> Geography:
        raise UnsupportedOperation("Can't compute centroid of a polyline geography")

    def boundary(self) -> Geography:
        raise UnsupportedOperation("Can't compute boundary of a polyline geography")

    def build_shape_index(self, index: MutableShapeIndex) -> List[int]:
        return [index.add(PolylineShape(p)) for p in self._polylines]

    def export(self, handler: GeometryHandler, part_id: Optional[int]) -> None:
        if len(self._polylines) > 1:
            meta = GeometryMeta.sized(GeometryType.MULTILINESTRING, len(self._polylines))
            handler.next_geometry_start(meta, part_id)
            for i, polyline in enumerate(self._polylines):
                child_meta = GeometryMeta.sized(GeometryType.LINESTRING, len(polyline))
                handler.next_geometry_start(child_meta, i)
                _export_vertices(handler, child_meta, polyline)
                handler.next_geometry_end(child_meta, i)
            handler.next_geometry_end(meta, part_id)
        else:
            vertices = self._polylines[0] if self._polylines else np.empty((0, 3))
            meta = GeometryMeta.sized(GeometryType.LINESTRING, len(vertices))
            handler.next_geometry_start(meta, part_id)
            _export_vertices(handler, meta, vertices)
            handler.next_geometry_end(meta, part_id)


class PolygonGeography(Geography):
    """
    A polygon made of loops.

    Loops are stored normalized (each encloses at most a hemisphere) with a
    flag marking holes. With ``oriented=False`` loops form a hierarchy by
    containment and odd nesting depths are holes; with ``oriented=True``
    the winding of each loop decides: a loop whose left side is more than a
    hemisphere is a hole.
    """

    def __init__(self, loops: Optional[Sequence[Loop]] = None, oriented: bool = False):
        super().__init__()
        loops = list(loops) if loops is not None else []
        normalized = [loop.normalized() for loop in loops]
        depths = nesting_depths(normalized)
        if oriented:
            holes = [not loop.is_normalized() for loop in loops]
        else:
            holes = [depth % 2 == 1 for depth in depths]
        self._loops = normalized
        self._holes = holes
        self._depths = depths
        self.oriented = oriented

    @property
    def loops(self) -> List[Loop]:
        return list(self._loops)

    @property
    def holes(self) -> List[bool]:
        return list(self._holes)

    def __repr__(self) -> str:
        return f"PolygonGeography({len(self._loops)} loops)"

    def _shell_ids(self) -> List[int]:
        return [i for i, is_hole in enumerate(self._holes) if not is_hole]

    def contains(self, points) -> np.ndarray:
        """Boolean mask of sphere points inside the polygon."""
        points = np.asarray(points, dtype=float).reshape(-1, 3)
        if not self._loops:
            return np.zeros(len(points), dtype=bool)
        return PolygonShape(self._loops, self._holes).contains(points)

    def is_collection(self) -> bool:
        return len(self._shell_ids()) > 1

    def dimension(self) -> int:
        return 2

    def num_points(self) -> int:
        return sum(len(loop) for loop in self._loops)

    def area(self) -> float:
        """Area in steradians."""
        area = 0.0
        for loop, is_hole in zip(self._loops, self._holes):
            area += -loop.area() if is_hole else loop.area()
        if self._loops and not self._shell_ids():
            area += FOUR_PI
        return area

    def length(self) -> float:
        return 0.0

    def perimeter(self) -> float:
        """Total length of all loops in radians."""
        return float(sum(loop.length() for loop in self._loops))

    def x(self) -> float:
        raise UnsupportedOperation("Can't compute X value of a non-point geography")

    def y(self) -> float:
        raise UnsupportedOperation("Can't compute Y value of a non-point geography")

    def centroid(self) -> PointGeography:
        total = np.zeros(3)
        for loop, is_hole in zip(self._loops, self._holes):
            total += -loop.centroid() if is_hole else loop.centroid()
        norm = np.linalg.norm(total)
        if norm == 0:
            return PointGeography()
        return PointGeography([total / norm])

    def boundary(self) -> PolylineGeography:
        return PolylineGeography(
            [np.vstack([loop.vertices, loop.vertices[:1]]) for loop in self._loops]
        )

    def build_shape_index(self, index: MutableShapeIndex) -> List[int]:
        return [index.add(PolygonShape(self._loops, self._holes))]

    def _rings_by_shell(self) -> List[List[np.ndarray]]:
        # Each shell counter-clockwise followed by its holes clockwise
        shells = self._shell_ids()
        rings = {i: [self._loops[i].vertices] for i in shells}
        for i, is_hole in enumerate(self._holes):
            if not is_hole:
                continue
            first_vertex = self._loops[i].vertices[:1]
            parents = [
                j
                for j in shells
                if self._depths[j] < self._depths[i]
                and bool(self._loops[j].contains(first_vertex)[0])
            ]
            if parents:
                parent = max(parents, key=lambda j: self._depths[j])
                rings[parent].append(self._loops[i].vertices[::-1])
            else:
                logger.warning(
                    f"Hole {i} has no enclosing shell; exporting it as a shell"
                )
                rings[i] = [self._loops[i].vertices]
        return [rings[i] for i in sorted(rings)]

    def _export_polygon(
        self, handler: GeometryHandler, rings: List[np.ndarray], part_id: Optional[int]
    ) -> None:
        meta = GeometryMeta.sized(GeometryType.POLYGON, len(rings))
        handler.next_geometry_start(meta, part_id)
        for ring_id, ring in enumerate(rings):
            closed = np.vstack([ring, ring[:1]])
            handler.next_linear_ring_start(meta, len(closed), ring_id)
            _export_vertices(handler, meta, closed)
            handler.next_linear_ring_end(meta, len(closed), ring_id)
        handler.next_geometry_end(meta, part_id)

    def export(self, handler: GeometryHandler, part_id: Optional[int]) -> None:
        polygons = self._rings_by_shell()
        if len(polygons) > 1:
            meta = GeometryMeta.sized(GeometryType.MULTIPOLYGON, len(polygons))
            handler.next_geometry_start(meta, part_id)
            for i, rings in enumerate(polygons):
                self._export_polygon(handler, rings, i)
            handler.next_geometry_end(meta, part_id)
        else:
            self._export_polygon(handler, polygons[0] if polygons else [], part_id)
