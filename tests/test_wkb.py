import numpy as np
import pytest
import shapely
from shapely.geometry import (
    GeometryCollection,
    LineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
)

from spheregeo.config import BuildOptions
from spheregeo.errors import GeometryTypeError, InvalidGeometry
from spheregeo.geography import PointGeography, PolygonGeography, PolylineGeography
from spheregeo.sphere import Position
from spheregeo.wkb import (
    geographies_from_wkb,
    geographies_to_wkb,
    positions_from_wkb,
    positions_to_wkb,
)

SHELL = [(-10, -10), (10, -10), (10, 10), (-10, 10), (-10, -10)]
HOLE = [(-5, -5), (-5, 5), (5, 5), (5, -5), (-5, -5)]


def round_trip(geom):
    [geog] = geographies_from_wkb([shapely.to_wkb(geom)])
    [blob] = geographies_to_wkb([geog])
    return geog, shapely.from_wkb(blob)


@pytest.mark.parametrize(
    "geom",
    [
        Point(-64, 45),
        MultiPoint([(0, 0), (10, 20)]),
        LineString([(0, 0), (10, 0), (10, 10)]),
        shapely.from_wkt("MULTILINESTRING ((0 0, 1 1), (5 5, 6 7, 8 9))"),
        Polygon(SHELL),
        Polygon(SHELL, [HOLE]),
        MultiPolygon([Polygon(SHELL), Polygon([(20, 20), (30, 20), (30, 30), (20, 20)])]),
    ],
)
def test_round_trip(geom):
    _, result = round_trip(geom)
    assert result.geom_type == geom.geom_type
    assert result.equals_exact(geom, tolerance=1e-9)


def test_geography_types():
    items = [shapely.to_wkb(g) for g in (Point(0, 0), LineString([(0, 0), (1, 1)]), Polygon(SHELL))]
    point, line, polygon = geographies_from_wkb(items)
    assert isinstance(point, PointGeography)
    assert isinstance(line, PolylineGeography)
    assert isinstance(polygon, PolygonGeography)


def test_missing_values_are_preserved():
    items = [shapely.to_wkb(Point(1, 2)), None]
    geographies = geographies_from_wkb(items)
    assert geographies[1] is None
    output = geographies_to_wkb(geographies)
    assert output[0] is not None
    assert output[1] is None


def test_empty_point():
    [geog] = geographies_from_wkb([shapely.to_wkb(Point())])
    assert geog.num_points() == 0


def test_empty_polyline_exports_empty_linestring():
    [blob] = geographies_to_wkb([PolylineGeography()])
    assert shapely.from_wkb(blob).wkt == "LINESTRING EMPTY"


def test_big_endian_output():
    [big] = geographies_to_wkb([PointGeography.from_positions([Position(1, 2)])], endian=0)
    [little] = geographies_to_wkb([PointGeography.from_positions([Position(1, 2)])])
    assert big[0] == 0
    assert little[0] == 1


def test_invalid_polygon():
    bowtie = shapely.to_wkb(Polygon([(0, 0), (10, 10), (10, 0), (0, 10), (0, 0)]))
    with pytest.raises(InvalidGeometry):
        geographies_from_wkb([bowtie])
    [geog] = geographies_from_wkb([bowtie], BuildOptions(check=False))
    assert geog.num_points() == 4


def test_many_small_rectangles_pass_validation():
    rng = np.random.default_rng(20261018)
    items = []
    for _ in range(500):
        lng0, lat0 = rng.uniform(-180, 180), rng.uniform(-80, 80)
        lng1, lat1 = lng0 + rng.uniform(0.01, 20), lat0 + rng.uniform(0.01, 9)
        ring = [(lng0, lat0), (lng1, lat0), (lng1, lat1), (lng0, lat1), (lng0, lat0)]
        items.append(shapely.to_wkb(Polygon(ring)))
    geographies = geographies_from_wkb(items)
    assert all(geog.num_points() == 4 for geog in geographies)
    assert all(geog.holes == [False] for geog in geographies)


def test_geometry_collection_is_rejected():
    item = shapely.to_wkb(GeometryCollection([Point(0, 0)]))
    with pytest.raises(GeometryTypeError):
        geographies_from_wkb([item])


# Tests for position WKB helpers
def test_positions_round_trip():
    positions = [Position(45.0, -64.0), None, Position(-10.5, 120.25)]
    result = positions_from_wkb(positions_to_wkb(positions))
    assert result[1] is None
    assert result[0] == pytest.approx(positions[0])
    assert result[2] == pytest.approx(positions[2])


def test_positions_are_read_as_lat_lng():
    [position] = positions_from_wkb([shapely.to_wkb(Point(-64, 45))])
    assert position.latitude == 45
    assert position.longitude == -64


def test_positions_from_non_point():
    item = shapely.to_wkb(LineString([(0, 0), (1, 1)]))
    with pytest.raises(GeometryTypeError, match="not a point"):
        positions_from_wkb([item])


def test_positions_from_empty_point():
    with pytest.raises(InvalidGeometry):
        positions_from_wkb([shapely.to_wkb(Point())])
