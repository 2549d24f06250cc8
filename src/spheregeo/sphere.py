#!/usr/bin/env python3
"""
Spherical geometry primitives.

Locations on the sphere are stored as unit-length 3-vectors ("sphere
points") in numpy arrays. This module converts between those and
latitude/longitude degrees, measures angular distances, provides the
vectorized edge-pair distance kernels used by the shape index queries, and
defines the Loop type that describes one boundary ring of a polygon.

All distances are angles in radians and all areas are in steradians, i.e.
measured on the unit sphere.
"""

from typing import List, NamedTuple, Optional, Sequence, Tuple
import itertools
import logging
import math

import numpy as np

from .errors import InvalidGeometry

logger = logging.getLogger(__name__)

FOUR_PI = 4.0 * math.pi
UNIT_LENGTH_TOLERANCE = 1e-12
# Orientation tests smaller than this are treated as zero
CROSSING_TOLERANCE = 1e-15
# Edge pairs evaluated at once by the pairwise kernels
PAIR_BLOCK_SIZE = 1 << 18


class Position(NamedTuple):
    """Represents a geographic position with latitude and longitude."""

    latitude: float
    longitude: float


def normalize_latlng(latitude: float, longitude: float) -> Position:
    """
    Clamp latitude to [-90, 90] and wrap longitude into [-180, 180].

    Args:
        latitude: Latitude in decimal degrees
        longitude: Longitude in decimal degrees

    Returns:
        Normalized Position
    """
    latitude = max(-90.0, min(90.0, latitude))
    longitude = math.remainder(longitude, 360.0)
    return Position(latitude, longitude)


def latlng_to_point(
    latitude: float, longitude: float, normalize: bool = True
) -> np.ndarray:
    """
    Convert latitude/longitude degrees to a unit vector.

    Args:
        latitude: Latitude in decimal degrees
        longitude: Longitude in decimal degrees
        normalize: Clamp/wrap the input first (see normalize_latlng)

    Returns:
        Array of shape (3,)
    """
    if normalize:
        latitude, longitude = normalize_latlng(latitude, longitude)
    phi = math.radians(latitude)
    theta = math.radians(longitude)
    cos_phi = math.cos(phi)
    return np.array([math.cos(theta) * cos_phi, math.sin(theta) * cos_phi, math.sin(phi)])


def point_to_latlng(point: np.ndarray) -> Position:
    """Convert a unit vector back to latitude/longitude degrees."""
    x, y, z = (float(c) for c in point)
    return Position(
        latitude=math.degrees(math.atan2(z, math.hypot(x, y))),
        longitude=math.degrees(math.atan2(y, x)),
    )


def points_from_positions(positions: Sequence[Position]) -> np.ndarray:
    """Convert a sequence of Positions to an (n, 3) array of sphere points."""
    if len(positions) == 0:
        return np.empty((0, 3))
    return np.array([latlng_to_point(p.latitude, p.longitude) for p in positions])



def row_blocks(n_rows: int, n_cols: int, block_size: Optional[int] = None):
    """
    Split n_rows into consecutive slices of about block_size / n_cols rows.

    Pairwise kernels evaluate one slice of rows against all columns at a
    time so their temporaries stay bounded for large inputs.
    """
    if block_size is None:
        block_size = PAIR_BLOCK_SIZE
    step = max(1, block_size // max(n_cols, 1))
    for start in range(0, n_rows, step):
        yield slice(start, min(start + step, n_rows))


def _dot(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.sum(a * b, axis=-1)


def _same(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.all(a == b, axis=-1)


def _unit(v: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(v, axis=-1, keepdims=True)
    return v / np.where(norm > 0, norm, 1.0)


def angle(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    Angular distance in radians between sphere points (broadcasting).

    Uses atan2(|a x b|, a . b), which stays accurate for both tiny and
    near-antipodal separations.
    """
    return np.arctan2(np.linalg.norm(np.cross(a, b), axis=-1), _dot(a, b))


def edges_cross(
    a: np.ndarray, b: np.ndarray, c: np.ndarray, d: np.ndarray
) -> np.ndarray:
    """
    True where edge AB crosses edge CD at a point interior to both edges.

    Edges sharing a vertex never cross, nor do edges whose orientation
    tests are within CROSSING_TOLERANCE of zero (degenerate or collinear).
    """
    ab = np.cross(a, b)
    acb = -_dot(ab, c)
    bda = _dot(ab, d)
    cd = np.cross(c, d)
    cbd = -_dot(cd, b)
    dac = _dot(cd, a)
    clear = (
        np.minimum(np.minimum(np.abs(acb), np.abs(bda)), np.minimum(np.abs(cbd), np.abs(dac)))
        > CROSSING_TOLERANCE
    )
    shared = _same(a, c) | _same(a, d) | _same(b, c) | _same(b, d)
    return (acb * bda > 0) & (acb * cbd > 0) & (acb * dac > 0) & clear & ~shared


def point_edge_distance(p: np.ndarray, a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    Minimum angular distance from point(s) P to edge(s) AB (broadcasting).

    If the projection of P onto the great circle through A and B falls
    inside the edge the distance is to the great circle, otherwise it is to
    the nearer endpoint. Degenerate edges (A == B) reduce to angle(P, A).
    """
    n = np.cross(a, b)
    between = (_dot(np.cross(n, a), p) > 0) & (_dot(np.cross(b, n), p) > 0)
    n_norm = np.linalg.norm(n, axis=-1)
    n_norm = np.where(n_norm > 0, n_norm, 1.0)
    sin_dist = np.clip(np.abs(_dot(p, n)) / n_norm, 0.0, 1.0)
    to_circle = np.arcsin(sin_dist)
    to_vertex = np.minimum(angle(p, a), angle(p, b))
    return np.where(between, to_circle, to_vertex)


def point_edge_max_distance(
    p: np.ndarray, a: np.ndarray, b: np.ndarray
) -> np.ndarray:
    """Maximum angular distance from point(s) P to any point of edge(s) AB."""
    return np.pi - point_edge_distance(-p, a, b)


def _split_edges(x: np.ndarray, y: np.ndarray):
    # (n, 2, 3) x (m, 2, 3) -> four broadcastable endpoint arrays
    return x[:, None, 0, :], x[:, None, 1, :], y[None, :, 0, :], y[None, :, 1, :]


def min_edge_distances(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """
    Pairwise minimum distances between two edge arrays.

    Args:
        x: Edges of shape (n, 2, 3)
        y: Edges of shape (m, 2, 3)

    Returns:
        Array of shape (n, m)
    """
    output = np.empty((len(x), len(y)))
    for rows in row_blocks(len(x), len(y)):
        x0, x1, y0, y1 = _split_edges(x[rows], y)
        dist = np.minimum(
            np.minimum(point_edge_distance(x0, y0, y1), point_edge_distance(x1, y0, y1)),
            np.minimum(point_edge_distance(y0, x0, x1), point_edge_distance(y1, x0, x1)),
        )
        output[rows] = np.where(edges_cross(x0, x1, y0, y1), 0.0, dist)
    return output


def max_edge_distances(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """
    Pairwise maximum distances between two edge arrays.

    Two edges are pi apart when one crosses the antipodal image of the
    other; otherwise the maximum is attained at an endpoint of one edge.

    Args:
        x: Edges of shape (n, 2, 3)
        y: Edges of shape (m, 2, 3)

    Returns:
        Array of shape (n, m)
    """
    output = np.empty((len(x), len(y)))
    for rows in row_blocks(len(x), len(y)):
        x0, x1, y0, y1 = _split_edges(x[rows], y)
        dist = np.maximum(
            np.maximum(
                point_edge_max_distance(x0, y0, y1), point_edge_max_distance(x1, y0, y1)
            ),
            np.maximum(
                point_edge_max_distance(y0, x0, x1), point_edge_max_distance(y1, x0, x1)
            ),
        )
        output[rows] = np.where(edges_cross(x0, x1, -y0, -y1), np.pi, dist)
    return output


def _signed_triangle_area(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> np.ndarray:
    det = _dot(a, np.cross(b, c))
    den = 1.0 + _dot(a, b) + _dot(b, c) + _dot(c, a)
    return 2.0 * np.arctan2(det, den)


# Candidate apexes for the area fan: the 26 directions of a cube's faces,
# edges and corners
_AREA_ORIGINS = _unit(
    np.array(
        [v for v in itertools.product((-1.0, 0.0, 1.0), repeat=3) if any(v)]
    )
)


class Loop:
    """
    A closed ring of sphere points.

    The closing vertex is implicit: the last stored vertex connects back to
    the first. The interior of a loop is the region to its left, so a
    counter-clockwise loop encloses the smaller region it surrounds.
    """

    def __init__(self, vertices, debug: bool = True):
        """
        Args:
            vertices: Array-like of shape (n, 3) holding unit vectors
            debug: Validate eagerly and raise InvalidGeometry on failure

        Raises:
            InvalidGeometry: If debug is set and the loop is invalid
        """
        self.vertices = np.asarray(vertices, dtype=float).reshape(-1, 3)
        self.vertices.flags.writeable = False
        self._references: Optional[Tuple[np.ndarray, np.ndarray]] = None
        if debug:
            error = self.find_validation_error()
            if error is not None:
                raise InvalidGeometry(error)

    @classmethod
    def from_positions(cls, positions: Sequence[Position], debug: bool = True) -> "Loop":
        return cls(points_from_positions(positions), debug=debug)

    def __len__(self) -> int:
        return len(self.vertices)

    def __repr__(self) -> str:
        return f"Loop({len(self)} vertices)"

    def _following(self) -> np.ndarray:
        return np.roll(self.vertices, -1, axis=0)

    def edges(self) -> np.ndarray:
        """Edges of shape (n, 2, 3), including the closing edge."""
        return np.stack([self.vertices, self._following()], axis=1)

    def find_validation_error(self) -> Optional[str]:
        """
        Check the loop for structural problems.

        Returns:
            A description of the first problem found, or None if valid
        """
        vertices = self.vertices
        n = len(vertices)
        if n < 3:
            return "Non-empty, non-full loops must have at least 3 vertices"

        norms = np.linalg.norm(vertices, axis=1)
        not_unit = np.nonzero(np.abs(norms - 1.0) > UNIT_LENGTH_TOLERANCE)[0]
        if len(not_unit):
            return f"Vertex {not_unit[0]} is not unit length"

        following = self._following()
        duplicate = np.nonzero(_same(vertices, following))[0]
        if len(duplicate):
            return f"Edge {duplicate[0]} is degenerate (duplicate vertex)"
        antipodal = np.nonzero(_same(vertices, -following))[0]
        if len(antipodal):
            return f"Edge {antipodal[0]} is degenerate (antipodal vertex)"

        seen = {}
        for i, vertex in enumerate(map(tuple, vertices)):
            if vertex in seen:
                return f"Duplicate vertices: {seen[vertex]} and {i}"
            seen[vertex] = i

        # Only edge pairs that share no vertex can cross
        columns = np.arange(n)[None, :]
        for rows in row_blocks(n, n):
            i = np.arange(rows.start, rows.stop)[:, None]
            candidates = (columns > i + 1) & ~((i == 0) & (columns == n - 1))
            crossing = edges_cross(
                vertices[rows, None, :],
                following[rows, None, :],
                vertices[None, :, :],
                following[None, :, :],
            )
            pairs = np.argwhere(crossing & candidates)
            if len(pairs):
                row, column = pairs[0]
                return f"Edge {rows.start + row} crosses edge {column}"

        return None

    def is_valid(self) -> bool:
        return self.find_validation_error() is None

    def area(self) -> float:
        """Area of the loop interior in steradians, in [0, 4*pi)."""
        vertices = self.vertices
        if len(vertices) < 3:
            return 0.0
        following = self._following()
        # Fan from the apex whose antipode is furthest from every edge, so
        # no triangle comes close to a hemisphere
        clearance = point_edge_distance(
            -_AREA_ORIGINS[:, None, :], vertices[None, :, :], following[None, :, :]
        ).min(axis=1)
        origin = _AREA_ORIGINS[int(np.argmax(clearance))]
        signed = _signed_triangle_area(origin, vertices, following)
        return float(np.sum(signed) % FOUR_PI)

    def is_normalized(self) -> bool:
        """True if the loop encloses at most half of the sphere."""
        return self.area() <= 2.0 * math.pi + 1e-12

    def normalized(self) -> "Loop":
        """Return this loop, or its reversal if it encloses more than a hemisphere."""
        if self.is_normalized():
            return self
        return Loop(self.vertices[::-1], debug=False)

    def length(self) -> float:
        """Perimeter of the loop in radians."""
        if len(self.vertices) < 2:
            return 0.0
        return float(np.sum(angle(self.vertices, self._following())))

    def centroid(self) -> np.ndarray:
        """
        Integral of the position vector over the loop interior.

        The result is not unit length: its direction is the centroid and its
        magnitude grows with the enclosed area, so centroids of several loops
        can be summed (holes subtracted) before normalizing.
        """
        vertices = self.vertices
        if len(vertices) < 3:
            return np.zeros(3)
        following = self._following()
        normals = _unit(np.cross(vertices, following))
        return 0.5 * np.sum(angle(vertices, following)[:, None] * normals, axis=0)

    def _crossing_counts(self, origins: np.ndarray, points: np.ndarray) -> np.ndarray:
        # Number of loop edges crossed by each arc origins[k] -> points[k]
        vertices = self.vertices
        following = self._following()
        counts = np.zeros(len(points), dtype=int)
        for rows in row_blocks(len(points), len(vertices)):
            counts[rows] = np.sum(
                edges_cross(
                    origins[rows, None, :],
                    points[rows, None, :],
                    vertices[None, :, :],
                    following[None, :, :],
                ),
                axis=1,
            )
        return counts

    def _reference_points(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Three points with known containment, spread so that every point of
        the sphere is within 90 degrees of one of them.
        """
        if self._references is not None:
            return self._references

        vertices = self.vertices
        following = self._following()
        k = int(np.argmax(angle(vertices, following)))
        a, b = vertices[k], following[k]
        midpoint = _unit(a + b)
        left = _unit(np.cross(a, b))
        others = np.delete(np.arange(len(vertices)), k)
        clearance = point_edge_distance(midpoint, vertices[others], following[others])
        offset = 0.25 * min(float(angle(a, b)), float(np.min(clearance)))
        # Just left of the longest edge, closer to it than to any other edge
        inside = math.cos(offset) * midpoint + math.sin(offset) * left

        axis = np.eye(3)[int(np.argmin(np.abs(inside)))]
        side = _unit(np.cross(inside, axis))
        references = np.array([inside, side, -inside])
        odd = self._crossing_counts(references[:2], references[1:]) % 2 == 1
        side_inside = not odd[0]
        contained = np.array([True, side_inside, side_inside != odd[1]])
        self._references = (references, contained)
        return self._references

    def contains(self, points: np.ndarray) -> np.ndarray:
        """
        Boolean mask of the points that lie in the loop interior.

        Counts the loop edges crossed by the arc from the nearest reference
        point; points on the loop give undefined results.
        """
        points = np.asarray(points, dtype=float).reshape(-1, 3)
        if len(self.vertices) < 3 or len(points) == 0:
            return np.zeros(len(points), dtype=bool)
        references, contained = self._reference_points()
        nearest = np.argmax(points @ references.T, axis=1)
        odd = self._crossing_counts(references[nearest], points) % 2 == 1
        return contained[nearest] != odd


def polygon_contains(
    loops: Sequence[Loop], holes: Sequence[bool], points: np.ndarray
) -> np.ndarray:
    """
    Boolean mask of the points inside a polygon made of normalized loops.

    A point is inside when more shells than holes contain it. A polygon
    made only of holes covers the rest of the sphere.
    """
    points = np.asarray(points, dtype=float).reshape(-1, 3)
    depth = np.zeros(len(points), dtype=int)
    if any(holes) and all(holes):
        depth += 1
    for loop, is_hole in zip(loops, holes):
        inside = loop.contains(points).astype(int)
        depth += -inside if is_hole else inside
    return depth > 0


def nesting_depths(loops: List[Loop]) -> List[int]:
    """For each normalized loop, the number of other loops that contain it."""
    depths = []
    for i, loop in enumerate(loops):
        first_vertex = loop.vertices[:1]
        depths.append(
            sum(
                1
                for j, other in enumerate(loops)
                if j != i and len(first_vertex) and bool(other.contains(first_vertex)[0])
            )
        )
    return depths
