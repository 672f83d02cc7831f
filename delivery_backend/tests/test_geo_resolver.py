"""
Tests for zone resolution.

Tests cover:
- pick_zone(): district assignment precedence, priority ordering, geometry fallback
- unrestricted zones (on / off)
- GeoResolver against the database (inactive zones and assignments ignored)
"""
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_backend.app.core.geo import Coordinate
from delivery_backend.app.services.geo_resolver import GeoResolver, geometric_match, pick_zone
from delivery_backend.app.services.zone_repository import AssignmentRule, ZoneRepository, ZoneSnapshot
from delivery_backend.tests.conftest import CENTER, add_district, assign_district, create_zone, point_north_of

ORIGIN = Coordinate(*CENTER)


def radius_zone(zone_id: int, radius_km: float = 10, center=ORIGIN) -> ZoneSnapshot:
    return ZoneSnapshot(
        id=zone_id, name=f"Zone {zone_id}", slug=f"zone-{zone_id}",
        base_cost=Decimal("10"), center=center, radius_km=radius_km,
    )


def polygon_zone(zone_id: int) -> ZoneSnapshot:
    square = (
        Coordinate(-12.2, -77.1), Coordinate(-12.2, -77.0),
        Coordinate(-12.0, -77.0), Coordinate(-12.0, -77.1),
    )
    return ZoneSnapshot(id=zone_id, name="Poly", slug="poly", base_cost=Decimal("5"), polygon=square)


def open_zone(zone_id: int) -> ZoneSnapshot:
    return ZoneSnapshot(id=zone_id, name="Anywhere", slug="anywhere", base_cost=Decimal("20"))


class TestGeometricMatch:

    def test_radius_is_inclusive(self):
        zone = radius_zone(1, radius_km=5)
        assert geometric_match(zone, Coordinate(*point_north_of(CENTER, 4.999))) == "radius"
        assert geometric_match(zone, Coordinate(*point_north_of(CENTER, 5.01))) is None

    def test_polygon(self):
        zone = polygon_zone(1)
        assert geometric_match(zone, Coordinate(-12.1, -77.05)) == "polygon"
        assert geometric_match(zone, Coordinate(-12.3, -77.05)) is None

    def test_unrestricted_switch(self):
        zone = open_zone(1)
        assert geometric_match(zone, Coordinate(40, 40)) == "unrestricted"
        assert geometric_match(zone, Coordinate(40, 40), allow_unrestricted=False) is None


class TestPickZone:

    def test_first_geometric_match_by_id(self):
        zones = [radius_zone(7), radius_zone(3)]
        match = pick_zone(zones, [], ORIGIN)
        assert match.zone.id == 3
        assert match.method == "radius"

    def test_uncovered_returns_none(self):
        far = Coordinate(*point_north_of(CENTER, 50))
        assert pick_zone([radius_zone(1)], [], far) is None

    def test_assignment_beats_geometry(self):
        geometric = radius_zone(1)
        assigned = radius_zone(2, center=Coordinate(-13.5, -76.0), radius_km=1)
        rules = [AssignmentRule(zone_id=2, district_id=9, priority=1, cost_override=Decimal("3"))]
        match = pick_zone([geometric, assigned], rules, ORIGIN)
        assert match.zone.id == 2
        assert match.method == "district"
        assert match.assignment.cost_override == Decimal("3")

    def test_lowest_priority_wins_then_lowest_zone_id(self):
        zones = [radius_zone(1), radius_zone(2), radius_zone(3)]
        rules = [
            AssignmentRule(zone_id=1, district_id=9, priority=2),
            AssignmentRule(zone_id=3, district_id=9, priority=1),
            AssignmentRule(zone_id=2, district_id=9, priority=1),
        ]
        assert pick_zone(zones, rules, ORIGIN).zone.id == 2

    def test_assignment_to_unknown_zone_falls_back_to_geometry(self):
        rules = [AssignmentRule(zone_id=99, district_id=9, priority=1)]
        match = pick_zone([radius_zone(1)], rules, ORIGIN)
        assert match.zone.id == 1
        assert match.method == "radius"

    def test_unrestricted_disabled_leaves_point_uncovered(self):
        assert pick_zone([open_zone(1)], [], ORIGIN, allow_unrestricted=False) is None


class TestGeoResolverDatabase:

    @pytest.mark.asyncio
    async def test_resolves_active_zone(self, test_session: AsyncSession):
        zone = await create_zone(test_session)
        resolver = GeoResolver(ZoneRepository(test_session))
        match = await resolver.resolve(ORIGIN)
        assert match.zone.id == zone.id

    @pytest.mark.asyncio
    async def test_inactive_zone_ignored(self, test_session: AsyncSession):
        await create_zone(test_session, is_active=False)
        resolver = GeoResolver(ZoneRepository(test_session))
        assert await resolver.resolve(ORIGIN) is None

    @pytest.mark.asyncio
    async def test_district_assignment_precedence(self, test_session: AsyncSession):
        """A point inside zone A but in a district assigned to zone B resolves to B."""
        geometric = await create_zone(test_session)
        assigned = await create_zone(
            test_session, name="Zona Sur", slug="zona-sur",
            center_lat=-12.5, center_lng=-76.5, radius_km=1,
        )
        await add_district(test_session, 5)
        await assign_district(test_session, assigned, 5, priority=1)

        resolver = GeoResolver(ZoneRepository(test_session))
        match = await resolver.resolve(ORIGIN, district_id=5)
        assert match.zone.id == assigned.id
        assert match.method == "district"

        no_district = await resolver.resolve(ORIGIN)
        assert no_district.zone.id == geometric.id

    @pytest.mark.asyncio
    async def test_inactive_assignment_ignored(self, test_session: AsyncSession):
        geometric = await create_zone(test_session)
        other = await create_zone(test_session, name="Other", slug="other", center_lat=-13.0, center_lng=-76.0)
        await add_district(test_session, 5)
        await assign_district(test_session, other, 5, is_active=False)

        match = await GeoResolver(ZoneRepository(test_session)).resolve(ORIGIN, district_id=5)
        assert match.zone.id == geometric.id

    @pytest.mark.asyncio
    async def test_inactive_district_ignored(self, test_session: AsyncSession):
        geometric = await create_zone(test_session)
        other = await create_zone(test_session, name="Other", slug="other", center_lat=-13.0, center_lng=-76.0)
        await add_district(test_session, 5, is_active=False)
        await assign_district(test_session, other, 5)

        repository = ZoneRepository(test_session)
        assert await repository.get_district_assignments(5) == []
        match = await GeoResolver(repository).resolve(ORIGIN, district_id=5)
        assert match.zone.id == geometric.id
        assert match.method == "radius"
