#!/usr/bin/env python3
"""
Shape index and edge distance queries.

A MutableShapeIndex collects shapes (point vectors, polylines, polygons)
and exposes their edges as flat arrays. ClosestEdgeQuery and
FurthestEdgeQuery compare every edge of one index against every edge of a
target index with the vectorized kernels from sphere.py, one block of
index edges at a time; polygon interiors take part in both queries.
"""

from abc import ABC, abstractmethod
from typing import List, NamedTuple, Optional, Sequence, Tuple
import logging
import math

import numpy as np

from .errors import BuilderStateError
from .sphere import (
    Loop,
    max_edge_distances,
    min_edge_distances,
    polygon_contains,
    row_blocks,
)

logger = logging.getLogger(__name__)

_NO_EDGES = np.empty((0, 2, 3))


class Shape(ABC):
    """A piece of geometry that can be added to a shape index."""

    dimension: int = 0

    @abstractmethod
    def edges(self) -> np.ndarray:
        """Edges of shape (k, 2, 3)."""

    def contains(self, points: np.ndarray) -> np.ndarray:
        """Boolean mask of points inside the shape's interior."""
        return np.zeros(len(points), dtype=bool)


class PointVectorShape(Shape):
    """A set of points; each point is indexed as a degenerate edge."""

    dimension = 0

    def __init__(self, points: np.ndarray):
        self.points = np.asarray(points, dtype=float).reshape(-1, 3)

    def edges(self) -> np.ndarray:
        return np.stack([self.points, self.points], axis=1)


class PolylineShape(Shape):
    """One polyline; a polyline with fewer than two vertices has no edges."""

    dimension = 1

    def __init__(self, vertices: np.ndarray):
        self.vertices = np.asarray(vertices, dtype=float).reshape(-1, 3)

    def edges(self) -> np.ndarray:
        if len(self.vertices) < 2:
            return _NO_EDGES
        return np.stack([self.vertices[:-1], self.vertices[1:]], axis=1)


class PolygonShape(Shape):
    """All loops of one polygon, with interior containment."""

    dimension = 2

    def __init__(self, loops: Sequence[Loop], holes: Sequence[bool]):
        self.loops = list(loops)
        self.holes = list(holes)

    def edges(self) -> np.ndarray:
        if not self.loops:
            return _NO_EDGES
        return np.concatenate([loop.edges() for loop in self.loops])

    def contains(self, points: np.ndarray) -> np.ndarray:
        if not self.loops:
            return np.zeros(len(points), dtype=bool)
        return polygon_contains(self.loops, self.holes, points)


class MutableShapeIndex:
    """
    An append-only collection of shapes.

    Shape ids are assigned densely from 0 in insertion order. Once frozen,
    the index rejects further shapes.
    """

    def __init__(self) -> None:
        self._shapes: List[Shape] = []
        self._frozen = False
        self._edge_cache: Optional[Tuple[np.ndarray, np.ndarray, np.ndarray]] = None

    def add(self, shape: Shape) -> int:
        """
        Add a shape to the index.

        Returns:
            The new shape's id

        Raises:
            BuilderStateError: If the index has been frozen
        """
        if self._frozen:
            raise BuilderStateError("Can't add shapes to a frozen shape index")
        self._shapes.append(shape)
        self._edge_cache = None
        return len(self._shapes) - 1

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def num_shapes(self) -> int:
        return len(self._shapes)

    def __len__(self) -> int:
        return len(self._shapes)

    def shape(self, shape_id: int) -> Shape:
        return self._shapes[shape_id]

    def edges(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        All edges in the index.

        Returns:
            Tuple of (edges (k, 2, 3), owning shape ids (k,), edge ids within
            the owning shape (k,))
        """
        if self._edge_cache is None:
            edge_arrays = []
            shape_ids = []
            edge_ids = []
            for shape_id, shape in enumerate(self._shapes):
                shape_edges = shape.edges()
                edge_arrays.append(shape_edges)
                shape_ids.append(np.full(len(shape_edges), shape_id, dtype=int))
                edge_ids.append(np.arange(len(shape_edges), dtype=int))
            if edge_arrays:
                self._edge_cache = (
                    np.concatenate(edge_arrays),
                    np.concatenate(shape_ids),
                    np.concatenate(edge_ids),
                )
            else:
                self._edge_cache = (
                    _NO_EDGES,
                    np.empty(0, dtype=int),
                    np.empty(0, dtype=int),
                )
        return self._edge_cache

    def num_edges(self) -> int:
        return len(self.edges()[0])

    def containing_shapes(self, points: np.ndarray) -> np.ndarray:
        """
        For each point, the id of the first polygon shape containing it.

        Returns:
            Integer array with -1 where no shape contains the point
        """
        points = np.asarray(points, dtype=float).reshape(-1, 3)
        owners = np.full(len(points), -1, dtype=int)
        for shape_id, shape in enumerate(self._shapes):
            if shape.dimension != 2:
                continue
            inside = shape.contains(points) & (owners < 0)
            owners[inside] = shape_id
        return owners

    def has_interior(self) -> bool:
        return any(shape.dimension == 2 for shape in self._shapes)


class ShapeIndexTarget:
    """Wraps the index whose shapes a query measures distance to."""

    def __init__(self, index: MutableShapeIndex):
        self.index = index


class EdgeQueryResult(NamedTuple):
    """Outcome of an edge query.

    ``shape_id`` and ``edge_id`` refer to the queried index (not the
    target). ``edge_id`` is -1 when the result comes from a polygon
    interior rather than an edge.
    """

    distance: float
    shape_id: int = -1
    edge_id: int = -1

    def is_empty(self) -> bool:
        return self.shape_id < 0


class _EdgeQuery:
    def __init__(self, index: MutableShapeIndex):
        self.index = index

    def _vertices(self, edges: np.ndarray) -> np.ndarray:
        # The first endpoint of every edge covers every shape that has edges
        return edges[:, 0, :]

    def _interior_hit(
        self,
        target: ShapeIndexTarget,
        edges: np.ndarray,
        shape_ids: np.ndarray,
        edge_ids: np.ndarray,
        target_edges: np.ndarray,
        sign: float,
    ) -> Optional[EdgeQueryResult]:
        # sign is +1 to look for contained vertices, -1 for contained antipodes
        if self.index.has_interior():
            owners = self.index.containing_shapes(sign * self._vertices(target_edges))
            hits = np.nonzero(owners >= 0)[0]
            if len(hits):
                return EdgeQueryResult(0.0, int(owners[hits[0]]), -1)
        if target.index.has_interior():
            owners = target.index.containing_shapes(sign * self._vertices(edges))
            hits = np.nonzero(owners >= 0)[0]
            if len(hits):
                k = hits[0]
                return EdgeQueryResult(0.0, int(shape_ids[k]), int(edge_ids[k]))
        return None


class ClosestEdgeQuery(_EdgeQuery):
    """Finds the edge of an index closest to a target."""

    def find_closest_edge(self, target: ShapeIndexTarget) -> EdgeQueryResult:
        """
        Find the closest edge (or polygon interior) to the target.

        Returns:
            EdgeQueryResult; empty with an infinite distance if either the
            index or the target has no edges
        """
        edges, shape_ids, edge_ids = self.index.edges()
        target_edges, _, _ = target.index.edges()
        if len(edges) == 0 or len(target_edges) == 0:
            return EdgeQueryResult(math.inf)

        hit = self._interior_hit(target, edges, shape_ids, edge_ids, target_edges, 1.0)
        if hit is not None:
            return hit

        best = EdgeQueryResult(math.inf)
        for rows in row_blocks(len(edges), len(target_edges)):
            distances = min_edge_distances(edges[rows], target_edges).min(axis=1)
            k = int(np.argmin(distances))
            if distances[k] < best.distance:
                best = EdgeQueryResult(
                    float(distances[k]), int(shape_ids[rows][k]), int(edge_ids[rows][k])
                )
        return best


class FurthestEdgeQuery(_EdgeQuery):
    """Finds the edge of an index furthest from a target."""

    def find_furthest_edge(self, target: ShapeIndexTarget) -> EdgeQueryResult:
        """
        Find the furthest edge (or polygon interior) from the target.

        Returns:
            EdgeQueryResult; empty with a distance of -1 if either the index
            or the target has no edges
        """
        edges, shape_ids, edge_ids = self.index.edges()
        target_edges, _, _ = target.index.edges()
        if len(edges) == 0 or len(target_edges) == 0:
            return EdgeQueryResult(-1.0)

        hit = self._interior_hit(
            target, edges, shape_ids, edge_ids, target_edges, -1.0
        )
        if hit is not None:
            return hit._replace(distance=math.pi)

        best = EdgeQueryResult(-1.0)
        for rows in row_blocks(len(edges), len(target_edges)):
            distances = max_edge_distances(edges[rows], target_edges).max(axis=1)
            k = int(np.argmax(distances))
            if distances[k] > best.distance:
                best = EdgeQueryResult(
                    float(distances[k]), int(shape_ids[rows][k]), int(edge_ids[rows][k])
                )
        return best
