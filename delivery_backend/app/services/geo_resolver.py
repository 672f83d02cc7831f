"""Coordinate / district -> serving zone."""
from dataclasses import dataclass
from typing import Optional, Sequence

from delivery_backend.app.core.constants import (
    MATCH_DISTRICT,
    MATCH_POLYGON,
    MATCH_RADIUS,
    MATCH_UNRESTRICTED,
)
from delivery_backend.app.core.geo import Coordinate, haversine_km, point_in_polygon
from delivery_backend.app.core.logging import get_logger
from delivery_backend.app.core.metrics import zone_resolutions_total
from delivery_backend.app.services.zone_repository import AssignmentRule, ZoneRepository, ZoneSnapshot

logger = get_logger(__name__)


@dataclass(frozen=True)
class ZoneMatch:
    zone: ZoneSnapshot
    method: str
    assignment: Optional[AssignmentRule] = None


def geometric_match(zone: ZoneSnapshot, coord: Coordinate, allow_unrestricted: bool = True) -> Optional[str]:
    """Return the matching method if the zone's geometry covers `coord`, else None."""
    if zone.has_radius:
        if haversine_km(zone.center, coord) <= zone.radius_km:
            return MATCH_RADIUS
        return None
    if zone.has_polygon:
        return MATCH_POLYGON if point_in_polygon(coord, zone.polygon) else None
    return MATCH_UNRESTRICTED if allow_unrestricted else None


def pick_zone(
    zones: Sequence[ZoneSnapshot],
    assignments: Sequence[AssignmentRule],
    coord: Coordinate,
    allow_unrestricted: bool = True,
) -> Optional[ZoneMatch]:
    """
    Pure resolution over already loaded data.

    An active district assignment wins over any geometric match: the best
    assignment (lowest priority, then lowest zone id) whose zone is among
    `zones` is used. Otherwise zones are scanned in ascending id order and
    the first geometric match wins.
    """
    by_id = {z.id: z for z in zones}
    for assignment in sorted(assignments, key=lambda a: (a.priority, a.zone_id)):
        zone = by_id.get(assignment.zone_id)
        if zone is not None:
            return ZoneMatch(zone=zone, method=MATCH_DISTRICT, assignment=assignment)

    for zone in sorted(zones, key=lambda z: z.id):
        method = geometric_match(zone, coord, allow_unrestricted)
        if method:
            return ZoneMatch(zone=zone, method=method)
    return None


class GeoResolver:
    def __init__(self, repository: ZoneRepository, allow_unrestricted: bool = True):
        self.repository = repository
        self.allow_unrestricted = allow_unrestricted

    async def resolve(self, coord: Coordinate, district_id: Optional[int] = None) -> Optional[ZoneMatch]:
        """Find the zone serving `coord`. None means the point is not covered."""
        zones = await self.repository.get_active_zones()
        assignments = []
        if district_id is not None:
            assignments = await self.repository.get_district_assignments(district_id)

        match = pick_zone(zones, assignments, coord, self.allow_unrestricted)
        if match is None:
            zone_resolutions_total.labels(method="uncovered").inc()
            logger.info("zone_uncovered", lat=coord.lat, lng=coord.lng, district_id=district_id)
            return None

        zone_resolutions_total.labels(method=match.method).inc()
        logger.debug("zone_resolved", zone_id=match.zone.id, method=match.method, district_id=district_id)
        return match
