#!/usr/bin/env python3
"""
Geography builders.

Each builder consumes the geometry event stream for one feature and turns
it into a Geography. Builders track the part or ring currently being
filled in an explicit state object, so a geometry end without a matching
start (or a coordinate outside any part) is reported instead of silently
producing a broken geography.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional
import logging

import numpy as np

from .config import BuildOptions
from .errors import BuilderStateError, GeometryTypeError, InvalidGeometry
from .geography import Geography, PointGeography, PolygonGeography, PolylineGeography
from .handler import Coord, GeometryHandler, GeometryMeta, GeometryType
from .sphere import Loop, latlng_to_point

logger = logging.getLogger(__name__)


@dataclass
class _PartBuffer:
    """Vertices of the linestring or ring currently open, filled by index."""

    meta: GeometryMeta
    vertices: List[Optional[np.ndarray]]

    def store(self, coord_id: int, point: np.ndarray) -> None:
        if coord_id >= len(self.vertices):
            self.vertices.extend([None] * (coord_id + 1 - len(self.vertices)))
        self.vertices[coord_id] = point

    def finish(self) -> np.ndarray:
        missing = [i for i, v in enumerate(self.vertices) if v is None]
        if missing:
            raise BuilderStateError(
                f"{self.meta.geometry_type} ended without coordinate {missing[0]}"
            )
        if not self.vertices:
            return np.empty((0, 3))
        return np.array(self.vertices)


@dataclass
class _BuildState:
    """Accumulated parts plus the part currently open, if any."""

    parts: List[np.ndarray] = field(default_factory=list)
    current: Optional[_PartBuffer] = None

    def open(self, meta: GeometryMeta, size: int) -> None:
        if self.current is not None:
            raise BuilderStateError(
                f"{meta.geometry_type} started before the previous part ended"
            )
        self.current = _PartBuffer(meta, [None] * size)

    def require_open(self, what: str) -> _PartBuffer:
        if self.current is None:
            raise BuilderStateError(f"{what} outside of an open part")
        return self.current

    def close(self, what: str) -> np.ndarray:
        vertices = self.require_open(what).finish()
        self.current = None
        return vertices


class GeographyBuilder(GeometryHandler, ABC):
    """A GeometryHandler that produces exactly one Geography."""

    accepted_types: tuple = ()

    def __init__(self) -> None:
        self._state = _BuildState()
        self._finalized = False

    def _check_type(self, meta: GeometryMeta) -> None:
        if self._finalized:
            raise BuilderStateError(f"{type(self).__name__} has already been built")
        if meta.geometry_type not in self.accepted_types:
            raise GeometryTypeError(
                f"{type(self).__name__} can't consume a {meta.geometry_type}"
            )

    def build(self) -> Geography:
        """
        Finalize the geography. May be called once.

        Raises:
            BuilderStateError: If already built or a part is still open
        """
        if self._finalized:
            raise BuilderStateError(f"{type(self).__name__} has already been built")
        if self._state.current is not None:
            raise BuilderStateError(
                f"{self._state.current.meta.geometry_type} was never ended"
            )
        self._finalized = True
        return self._finalize()

    @abstractmethod
    def _finalize(self) -> Geography:
        pass


class PointBuilder(GeographyBuilder):
    """Collects every coordinate of a Point or MultiPoint."""

    accepted_types = (GeometryType.POINT, GeometryType.MULTIPOINT)

    def next_geometry_start(self, meta: GeometryMeta, part_id: Optional[int]) -> None:
        self._check_type(meta)

    def next_coordinate(self, meta: GeometryMeta, coord: Coord, coord_id: int) -> None:
        if self._finalized:
            raise BuilderStateError("PointBuilder has already been built")
        self._state.parts.append(latlng_to_point(coord[1], coord[0]))

    def _finalize(self) -> PointGeography:
        return PointGeography(self._state.parts)


class PolylineBuilder(GeographyBuilder):
    """Collects one polyline per LineString, in a single or multi geometry."""

    accepted_types = (GeometryType.LINESTRING, GeometryType.MULTILINESTRING)

    def next_geometry_start(self, meta: GeometryMeta, part_id: Optional[int]) -> None:
        self._check_type(meta)
        if meta.geometry_type == GeometryType.LINESTRING:
            self._state.open(meta, meta.size if meta.has_size else 0)

    def next_coordinate(self, meta: GeometryMeta, coord: Coord, coord_id: int) -> None:
        part = self._state.require_open("Coordinate")
        part.store(coord_id, latlng_to_point(coord[1], coord[0]))

    def next_geometry_end(self, meta: GeometryMeta, part_id: Optional[int]) -> None:
        if meta.geometry_type == GeometryType.LINESTRING:
            self._state.parts.append(self._state.close("LineString end"))

    def _finalize(self) -> PolylineGeography:
        return PolylineGeography(self._state.parts)


class PolygonBuilder(GeographyBuilder):
    """
    Collects the rings of a Polygon or MultiPolygon as loops.

    The closing vertex of each ring is dropped. When ``options.check`` is
    set every loop is validated as soon as its ring ends.
    """

    accepted_types = (GeometryType.POLYGON, GeometryType.MULTIPOLYGON)

    def __init__(self, options: Optional[BuildOptions] = None):
        super().__init__()
        self.options = options if options is not None else BuildOptions()
        self._loops: List[Loop] = []
        self._polygon: Optional[PolygonGeography] = None

    def next_feature_start(self, feature_id: int) -> None:
        self._loops = []
        self._polygon = None

    def next_geometry_start(self, meta: GeometryMeta, part_id: Optional[int]) -> None:
        self._check_type(meta)

    def next_linear_ring_start(
        self, meta: GeometryMeta, size: int, ring_id: int
    ) -> None:
        self._state.open(meta, max(size - 1, 0))

    def next_coordinate(self, meta: GeometryMeta, coord: Coord, coord_id: int) -> None:
        ring = self._state.require_open("Coordinate")
        if coord_id < len(ring.vertices):
            ring.store(coord_id, latlng_to_point(coord[1], coord[0], normalize=False))

    def next_linear_ring_end(self, meta: GeometryMeta, size: int, ring_id: int) -> None:
        vertices = self._state.close("Linear ring end")
        if len(vertices) == 0:
            logger.warning(f"Skipping empty ring {ring_id}")
            return

        loop = Loop(vertices, debug=False)
        if self.options.check:
            error = loop.find_validation_error()
            if error is not None:
                raise InvalidGeometry(error)
        self._loops.append(loop)

    def next_feature_end(self, feature_id: int) -> None:
        self._polygon = self._assemble()

    def _assemble(self) -> PolygonGeography:
        logger.debug(
            f"Assembling polygon from {len(self._loops)} loop(s) "
            f"(oriented={self.options.oriented})"
        )
        return PolygonGeography(self._loops, oriented=self.options.oriented)

    def _finalize(self) -> PolygonGeography:
        if self._polygon is not None:
            return self._polygon
        return self._assemble()


class GeographyFactory(GeometryHandler):
    """
    Builds one Geography (or None for null features) per feature.

    The builder for each feature is chosen from the type of its first
    geometry start. Results are collected in feature order in
    ``geographies``.
    """

    def __init__(self, options: Optional[BuildOptions] = None):
        self.options = options if options is not None else BuildOptions()
        self.geographies: List[Optional[Geography]] = []
        self._builder: Optional[GeographyBuilder] = None

    def _builder_for(self, meta: GeometryMeta) -> GeographyBuilder:
        if meta.geometry_type in PointBuilder.accepted_types:
            return PointBuilder()
        elif meta.geometry_type in PolylineBuilder.accepted_types:
            return PolylineBuilder()
        elif meta.geometry_type in PolygonBuilder.accepted_types:
            return PolygonBuilder(self.options)
        raise GeometryTypeError(f"Can't create a geography from a {meta.geometry_type}")

    def next_feature_start(self, feature_id: int) -> None:
        self._builder = None

    def next_geometry_start(self, meta: GeometryMeta, part_id: Optional[int]) -> None:
        if self._builder is None:
            self._builder = self._builder_for(meta)
        self._builder.next_geometry_start(meta, part_id)

    def next_linear_ring_start(
        self, meta: GeometryMeta, size: int, ring_id: int
    ) -> None:
        self._require_builder().next_linear_ring_start(meta, size, ring_id)

    def next_coordinate(self, meta: GeometryMeta, coord: Coord, coord_id: int) -> None:
        self._require_builder().next_coordinate(meta, coord, coord_id)

    def next_linear_ring_end(self, meta: GeometryMeta, size: int, ring_id: int) -> None:
        self._require_builder().next_linear_ring_end(meta, size, ring_id)

    def next_geometry_end(self, meta: GeometryMeta, part_id: Optional[int]) -> None:
        self._require_builder().next_geometry_end(meta, part_id)

    def next_feature_end(self, feature_id: int) -> None:
        if self._builder is None:
            self.geographies.append(None)
            return
        self._builder.next_feature_end(feature_id)
        self.geographies.append(self._builder.build())
        self._builder = None

    def _require_builder(self) -> GeographyBuilder:
        if self._builder is None:
            raise BuilderStateError("Geometry event received before any geometry start")
        return self._builder
