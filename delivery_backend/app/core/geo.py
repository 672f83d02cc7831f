"""
Geographic helpers: coordinate validation, great-circle distance and
point-in-polygon containment.

All functions are pure. Coordinates are (lat, lng) in decimal degrees.
"""
import math
from typing import Any, Iterable, NamedTuple, Sequence

from delivery_backend.app.core.constants import EARTH_RADIUS_KM, MAX_LATITUDE, MAX_LONGITUDE
from delivery_backend.app.core.exceptions import ServiceError


class InvalidCoordinateError(ServiceError):
    def __init__(self, lat: Any, lng: Any):
        self.lat = lat
        self.lng = lng
        super().__init__(f"Invalid coordinate ({lat}, {lng})", 422)


class Coordinate(NamedTuple):
    lat: float
    lng: float


def validate_coordinate(lat: Any, lng: Any) -> Coordinate:
    """
    Check ranges and return a normalized Coordinate.

    Raises:
        InvalidCoordinateError: |lat| > 90, |lng| > 180 or non-numeric values
    """
    try:
        lat_f = float(lat)
        lng_f = float(lng)
    except (TypeError, ValueError):
        raise InvalidCoordinateError(lat, lng)
    if not (math.isfinite(lat_f) and math.isfinite(lng_f)):
        raise InvalidCoordinateError(lat, lng)
    if abs(lat_f) > MAX_LATITUDE or abs(lng_f) > MAX_LONGITUDE:
        raise InvalidCoordinateError(lat, lng)
    return Coordinate(lat_f, lng_f)


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in kilometers on a spherical earth (R = 6371 km)."""
    lat1, lng1 = math.radians(a.lat), math.radians(a.lng)
    lat2, lng2 = math.radians(b.lat), math.radians(b.lng)
    d_lat = lat2 - lat1
    d_lng = lng2 - lng1

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_KM * c


def parse_polygon(raw: Any) -> list[Coordinate]:
    """
    Accept `[[lat, lng], ...]` or `[{"lat": .., "lng": ..}, ...]` and return Coordinates.

    Raises:
        InvalidCoordinateError: if any vertex is out of range
        ValueError: if the structure is not a list of points
    """
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        raise ValueError("polygon must be a list of points")

    points = []
    for item in raw:
        if isinstance(item, dict):
            lat, lng = item.get("lat"), item.get("lng", item.get("lon"))
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            lat, lng = item
        else:
            raise ValueError(f"invalid polygon vertex: {item!r}")
        points.append(validate_coordinate(lat, lng))
    return points


def _on_segment(p: Coordinate, a: Coordinate, b: Coordinate, eps: float = 1e-12) -> bool:
    cross = (b.lng - a.lng) * (p.lat - a.lat) - (b.lat - a.lat) * (p.lng - a.lng)
    if abs(cross) > eps:
        return False
    return (
        min(a.lng, b.lng) - eps <= p.lng <= max(a.lng, b.lng) + eps
        and min(a.lat, b.lat) - eps <= p.lat <= max(a.lat, b.lat) + eps
    )


def point_in_polygon(point: Coordinate, polygon: Sequence[Coordinate]) -> bool:
    """
    Ray casting containment test with lng as x and lat as y.

    Points on an edge or vertex count as inside. Fewer than 3 vertices contain nothing.
    """
    n = len(polygon)
    if n < 3:
        return False

    inside = False
    j = n - 1
    for i in range(n):
        a, b = polygon[i], polygon[j]
        if _on_segment(point, a, b):
            return True
        if (a.lat > point.lat) != (b.lat > point.lat):
            x_cross = a.lng + (point.lat - a.lat) * (b.lng - a.lng) / (b.lat - a.lat)
            if point.lng < x_cross:
                inside = not inside
        j = i
    return inside


def polygon_to_json(points: Iterable[Coordinate]) -> list[list[float]]:
    return [[p.lat, p.lng] for p in points]
