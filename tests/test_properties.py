import math

import numpy as np
import pytest
import shapely
from hypothesis import given, strategies as st
from shapely.geometry import Polygon

from spheregeo.geography import PointGeography, PolylineGeography
from spheregeo.operators import distance_matrix, max_distance_matrix
from spheregeo.sphere import Position
from spheregeo.wkb import geographies_from_wkb

# Strategy for coordinates away from the poles and the antimeridian
valid_lat = st.floats(-89.0, 89.0)
valid_lon = st.floats(-179.9, 179.9)
valid_position = st.builds(Position, latitude=valid_lat, longitude=valid_lon)
point_geography = st.builds(lambda p: PointGeography.from_positions([p]), valid_position)
polyline_geography = st.builds(
    lambda a, b: PolylineGeography.from_positions([[a, b]]), valid_position, valid_position
)
any_geography = st.one_of(point_geography, polyline_geography)


class TestPointProperties:
    @given(valid_position)
    def test_xy_round_trip(self, pos):
        """Reading X/Y back from a single point gives the input degrees."""
        geog = PointGeography.from_positions([pos])
        assert geog.x() == pytest.approx(pos.longitude, abs=1e-9)
        assert geog.y() == pytest.approx(pos.latitude, abs=1e-9)

    @given(st.lists(valid_position, min_size=2, max_size=5))
    def test_xy_not_available_for_multipoint(self, positions):
        geog = PointGeography.from_positions(positions)
        assert math.isnan(geog.x())
        assert math.isnan(geog.y())


class TestDistanceProperties:
    @given(any_geography, any_geography)
    def test_distance_is_non_negative_and_symmetric(self, geog1, geog2):
        """Distance between any two geographies is symmetric and in [0, pi]."""
        d12 = distance_matrix([geog1], [geog2])[0, 0]
        d21 = distance_matrix([geog2], [geog1])[0, 0]
        assert 0 <= d12 <= math.pi
        assert abs(d12 - d21) < 1e-10

    @given(any_geography, any_geography)
    def test_max_distance_bounds(self, geog1, geog2):
        """Maximum distance is never below the minimum, never above pi."""
        d_min = distance_matrix([geog1], [geog2])[0, 0]
        d_max = max_distance_matrix([geog1], [geog2])[0, 0]
        assert d_max >= d_min - 1e-9
        assert 0 <= d_max <= math.pi

    @given(st.lists(st.one_of(st.none(), any_geography), max_size=4))
    def test_max_distance_never_negative(self, geographies):
        result = max_distance_matrix(geographies, geographies)
        assert result.shape == (len(geographies), len(geographies))
        assert not (result[~np.isnan(result)] < 0).any()


def rectangle_ring(lng0, lat0, width, height):
    lng1, lat1 = lng0 + width, lat0 + height
    return [(lng0, lat0), (lng1, lat0), (lng1, lat1), (lng0, lat1), (lng0, lat0)]


def band_ring(lng0, lat0, width, height, step=10.0):
    lngs = np.linspace(lng0, lng0 + width, int(math.ceil(width / step)) + 1)
    south = [(lng, lat0) for lng in lngs]
    north = [(lng, lat0 + height) for lng in lngs[::-1]]
    return south + north + [south[0]]


def polygon_from_ring(ring):
    [geog] = geographies_from_wkb([shapely.to_wkb(Polygon(ring))])
    return geog


class TestPolygonProperties:
    @given(
        st.floats(-180.0, 180.0),
        st.floats(-85.0, 80.0),
        st.floats(0.01, 20.0),
        st.floats(0.01, 5.0),
    )
    def test_rectangles_pass_validation(self, lng0, lat0, width, height):
        """Any simple lat/lng rectangle reads back as a single shell."""
        geog = polygon_from_ring(rectangle_ring(lng0, lat0, width, height))
        assert geog.holes == [False]
        assert 0 < geog.area() < 2 * math.pi

    @given(
        st.floats(-180.0, 180.0),
        st.floats(-60.0, 60.0),
        st.floats(0.5, 10.0),
        st.floats(0.5, 9.0),
    )
    def test_rectangle_center_has_zero_distance(self, lng0, lat0, width, height):
        geog = polygon_from_ring(rectangle_ring(lng0, lat0, width, height))
        center = PointGeography.from_positions(
            [Position(lat0 + height / 2, lng0 + width / 2)]
        )
        assert distance_matrix([center], [geog])[0, 0] == 0.0

    @given(
        st.floats(-180.0, 180.0),
        st.floats(-30.0, 28.0),
        st.floats(180.0, 300.0),
        st.floats(1.0, 2.0),
        st.floats(0.05, 0.95),
    )
    def test_points_inside_wide_bands_have_zero_distance(
        self, lng0, lat0, width, height, fraction
    ):
        """Bands wider than a hemisphere still contain their interior points."""
        geog = polygon_from_ring(band_ring(lng0, lat0, width, height))
        inside = PointGeography.from_positions(
            [Position(lat0 + height / 2, lng0 + fraction * width)]
        )
        assert distance_matrix([inside], [geog])[0, 0] == 0.0
