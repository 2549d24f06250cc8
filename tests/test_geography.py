import math

import numpy as np
import pytest

from spheregeo.errors import BuilderStateError, UnsupportedOperation
from spheregeo.geography import PointGeography, PolygonGeography, PolylineGeography
from spheregeo.operators import distance_matrix
from spheregeo.shape_index import PointVectorShape
from spheregeo.sphere import Loop, Position, latlng_to_point


def point_at(lat, lng):
    return PointGeography.from_positions([Position(lat, lng)])


SHELL = [Position(-10, -10), Position(-10, 10), Position(10, 10), Position(10, -10)]
HOLE = [Position(-5, -5), Position(-5, 5), Position(5, 5), Position(5, -5)]
OCTANT = [Position(0, 0), Position(0, 90), Position(90, 0)]


class CountingPointGeography(PointGeography):
    """PointGeography that records how often its index is built."""

    def __init__(self, points=None):
        super().__init__(points)
        self.build_count = 0

    def build_shape_index(self, index):
        self.build_count += 1
        return super().build_shape_index(index)


class TestPointGeography:
    def test_single_point_xy(self):
        geog = point_at(45.0, -64.0)
        assert geog.x() == pytest.approx(-64.0)
        assert geog.y() == pytest.approx(45.0)

    def test_xy_not_available_for_empty_and_multi(self):
        empty = PointGeography()
        multi = PointGeography.from_positions([Position(0, 0), Position(1, 1)])
        for geog in (empty, multi):
            assert math.isnan(geog.x())
            assert math.isnan(geog.y())

    def test_accessors(self):
        multi = PointGeography.from_positions([Position(0, 0), Position(1, 1)])
        assert multi.is_collection()
        assert not point_at(0, 0).is_collection()
        assert multi.dimension() == 0
        assert multi.num_points() == 2
        assert multi.area() == 0.0
        assert multi.length() == 0.0
        assert multi.perimeter() == 0.0

    def test_centroid(self):
        assert PointGeography().centroid().num_points() == 0
        centroid = point_at(12.0, 34.0).centroid()
        assert centroid.x() == pytest.approx(34.0)
        assert centroid.y() == pytest.approx(12.0)

    def test_centroid_of_many_points_is_unsupported(self):
        multi = PointGeography.from_positions([Position(0, 0), Position(1, 1)])
        with pytest.raises(UnsupportedOperation):
            multi.centroid()

    def test_boundary_is_empty(self):
        assert point_at(1, 2).boundary().num_points() == 0

    def test_points_are_read_only(self):
        geog = point_at(1, 2)
        with pytest.raises(ValueError):
            geog.points[0, 0] = 5.0


class TestPolylineGeography:
    def test_measures(self):
        geog = PolylineGeography.from_positions([[Position(0, 0), Position(0, 90)]])
        assert geog.dimension() == 1
        assert geog.num_points() == 2
        assert geog.length() == pytest.approx(math.pi / 2)
        assert geog.area() == 0.0
        assert geog.perimeter() == 0.0
        assert not geog.is_collection()

    def test_multi_polyline(self):
        geog = PolylineGeography.from_positions(
            [
                [Position(0, 0), Position(0, 10)],
                [Position(10, 0), Position(10, 5), Position(10, 10)],
            ]
        )
        assert geog.is_collection()
        assert geog.num_points() == 5

    def test_empty(self):
        geog = PolylineGeography()
        assert geog.num_points() == 0
        assert geog.length() == 0.0
        assert not geog.is_collection()

    @pytest.mark.parametrize("method", ["x", "y", "centroid", "boundary"])
    def test_point_only_capabilities_are_unsupported(self, method):
        geog = PolylineGeography.from_positions([[Position(0, 0), Position(0, 90)]])
        with pytest.raises(UnsupportedOperation):
            getattr(geog, method)()

    def test_one_indexed_shape_per_polyline(self):
        geog = PolylineGeography.from_positions(
            [
                [Position(0, 0), Position(0, 10)],
                [Position(10, 0), Position(10, 5), Position(10, 10)],
            ]
        )
        index = geog.shape_index()
        assert index.num_shapes() == 2
        assert index.num_edges() == 3


class TestPolygonGeography:
    def test_octant(self):
        geog = PolygonGeography([Loop.from_positions(OCTANT)])
        assert geog.dimension() == 2
        assert geog.num_points() == 3
        assert geog.area() == pytest.approx(math.pi / 2)
        assert geog.perimeter() == pytest.approx(3 * math.pi / 2)
        assert geog.length() == 0.0
        assert not geog.is_collection()

    def test_loop_orientation_is_normalized(self):
        geog = PolygonGeography([Loop.from_positions(OCTANT[::-1])])
        assert geog.area() == pytest.approx(math.pi / 2)
        assert geog.holes == [False]

    def test_nested_hole(self):
        shell = Loop.from_positions(SHELL)
        hole = Loop.from_positions(HOLE)
        geog = PolygonGeography([shell, hole])
        assert geog.holes == [False, True]
        assert geog.area() == pytest.approx(shell.area() - hole.area())
        inside = latlng_to_point(7, 7)
        in_hole = latlng_to_point(0, 0)
        assert geog.contains(np.array([inside, in_hole])).tolist() == [True, False]

    def test_oriented_hole(self):
        shell = Loop.from_positions(SHELL)
        hole = Loop.from_positions(HOLE[::-1])
        geog = PolygonGeography([shell, hole], oriented=True)
        assert geog.holes == [False, True]
        assert geog.area() == pytest.approx(shell.area() - hole.normalized().area())

    def test_oriented_clockwise_loop_covers_the_rest_of_the_sphere(self):
        loop = Loop.from_positions(OCTANT[::-1])
        geog = PolygonGeography([loop], oriented=True)
        assert geog.area() == pytest.approx(4 * math.pi - math.pi / 2)
        assert geog.contains(latlng_to_point(-45, -45)).tolist() == [True]

    def test_two_shells_are_a_collection(self):
        far_away = [Position(40, 40), Position(40, 50), Position(50, 50), Position(50, 40)]
        geog = PolygonGeography([Loop.from_positions(SHELL), Loop.from_positions(far_away)])
        assert geog.is_collection()

    def test_centroid(self):
        centroid = PolygonGeography([Loop.from_positions(OCTANT)]).centroid()
        assert centroid.x() == pytest.approx(45.0)
        assert centroid.y() == pytest.approx(math.degrees(math.asin(1 / math.sqrt(3))))

    def test_empty_centroid(self):
        assert PolygonGeography().centroid().num_points() == 0

    def test_boundary(self):
        boundary = PolygonGeography([Loop.from_positions(OCTANT)]).boundary()
        assert isinstance(boundary, PolylineGeography)
        assert boundary.num_points() == 4
        assert boundary.length() == pytest.approx(3 * math.pi / 2)

    def test_xy_unsupported(self):
        geog = PolygonGeography([Loop.from_positions(OCTANT)])
        with pytest.raises(UnsupportedOperation):
            geog.x()


class TestLazyShapeIndex:
    def test_index_is_built_once(self):
        geog = CountingPointGeography([latlng_to_point(0, 0)])
        assert geog.build_count == 0
        first = geog.shape_index()
        distance_matrix([geog], [point_at(1, 1)])
        distance_matrix([point_at(2, 2)], [geog])
        second = geog.shape_index()
        assert first is second
        assert geog.build_count == 1

    def test_index_is_not_built_until_needed(self):
        geog = CountingPointGeography([latlng_to_point(0, 0)])
        geog.area()
        geog.centroid()
        assert geog.build_count == 0

    def test_built_index_is_frozen(self):
        index = point_at(0, 0).shape_index()
        assert index.frozen
        with pytest.raises(BuilderStateError):
            index.add(PointVectorShape(np.empty((0, 3))))
