"""
Tests for geographic helpers.

Tests cover:
- coordinate validation (ranges, non-numeric, non-finite)
- haversine distance
- polygon parsing and ray-casting containment (boundary inclusive)
"""
import math

import pytest

from delivery_backend.app.core.geo import (
    Coordinate,
    InvalidCoordinateError,
    haversine_km,
    parse_polygon,
    point_in_polygon,
    polygon_to_json,
    validate_coordinate,
)

SQUARE = [Coordinate(0, 0), Coordinate(0, 10), Coordinate(10, 10), Coordinate(10, 0)]


class TestValidateCoordinate:

    def test_valid_coordinate_is_normalized(self):
        coord = validate_coordinate("-12.1", -77)
        assert coord == Coordinate(-12.1, -77.0)

    def test_limits_are_inclusive(self):
        assert validate_coordinate(90, 180) == Coordinate(90.0, 180.0)
        assert validate_coordinate(-90, -180) == Coordinate(-90.0, -180.0)

    @pytest.mark.parametrize("lat,lng", [(90.0001, 0), (-91, 0), (0, 180.5), (0, -181)])
    def test_out_of_range_rejected(self, lat, lng):
        with pytest.raises(InvalidCoordinateError) as exc:
            validate_coordinate(lat, lng)
        assert exc.value.status_code == 422

    @pytest.mark.parametrize("lat,lng", [("abc", 0), (None, 0), (math.nan, 0), (0, math.inf)])
    def test_garbage_rejected(self, lat, lng):
        with pytest.raises(InvalidCoordinateError):
            validate_coordinate(lat, lng)


class TestHaversine:

    def test_same_point_is_zero(self):
        p = Coordinate(-12.1, -77.03)
        assert haversine_km(p, p) == 0

    def test_one_degree_of_latitude(self):
        d = haversine_km(Coordinate(0, 0), Coordinate(1, 0))
        assert d == pytest.approx(6371 * math.pi / 180, rel=1e-9)

    def test_symmetric(self):
        a, b = Coordinate(-12.0827, -77.0427), Coordinate(-12.115, -77.0116)
        assert haversine_km(a, b) == pytest.approx(haversine_km(b, a))

    def test_known_distance_lima(self):
        # Lince to Miraflores, roughly 4.9 km
        d = haversine_km(Coordinate(-12.0827, -77.0427), Coordinate(-12.115, -77.0116))
        assert 4.5 < d < 5.2


class TestPolygon:

    def test_parse_pairs_and_dicts(self):
        assert parse_polygon([[0, 0], [0, 1], [1, 1]]) == [Coordinate(0, 0), Coordinate(0, 1), Coordinate(1, 1)]
        assert parse_polygon([{"lat": 1, "lng": 2}, {"lat": 3, "lon": 4}]) == [Coordinate(1, 2), Coordinate(3, 4)]
        assert parse_polygon(None) == []

    def test_parse_rejects_bad_structure(self):
        with pytest.raises(ValueError):
            parse_polygon("not a polygon")
        with pytest.raises(ValueError):
            parse_polygon([[1, 2, 3]])

    def test_parse_rejects_bad_vertex(self):
        with pytest.raises(InvalidCoordinateError):
            parse_polygon([[0, 0], [95, 0], [1, 1]])

    def test_inside_and_outside(self):
        assert point_in_polygon(Coordinate(5, 5), SQUARE)
        assert not point_in_polygon(Coordinate(15, 5), SQUARE)
        assert not point_in_polygon(Coordinate(5, -0.1), SQUARE)

    def test_boundary_counts_as_inside(self):
        assert point_in_polygon(Coordinate(0, 5), SQUARE)
        assert point_in_polygon(Coordinate(10, 10), SQUARE)

    def test_concave_polygon(self):
        # U shape: notch between lng 3 and 7 above lat 3
        u_shape = [
            Coordinate(0, 0), Coordinate(0, 10), Coordinate(10, 10), Coordinate(10, 7),
            Coordinate(3, 7), Coordinate(3, 3), Coordinate(10, 3), Coordinate(10, 0),
        ]
        assert point_in_polygon(Coordinate(1, 5), u_shape)
        assert not point_in_polygon(Coordinate(6, 5), u_shape)
        assert point_in_polygon(Coordinate(6, 1), u_shape)

    def test_degenerate_polygon_contains_nothing(self):
        assert not point_in_polygon(Coordinate(0, 0), [Coordinate(0, 0), Coordinate(1, 1)])
        assert not point_in_polygon(Coordinate(0, 0), [])

    def test_polygon_to_json(self):
        assert polygon_to_json(SQUARE[:2]) == [[0, 0], [0, 10]]
