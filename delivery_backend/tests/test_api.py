"""
API tests.

Tests cover:
- public: shipping quote, zone list (cached), zone detail / schedule / availability
- admin: token check, zone and rule CRUD, conflict / validation responses, cache invalidation
- addresses: validate, list, statistics, revalidate
- service endpoints: root, metrics
"""
import datetime

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_backend.tests.conftest import (
    ADMIN_HEADERS,
    CENTER,
    MockCacheService,
    add_district,
    add_exception,
    add_schedule,
    add_tier,
    create_zone,
    point_north_of,
)

# 2026-10-19 is a Monday; Lima is UTC-5
MONDAY_10AM_LIMA = "2026-10-19T15:00:00Z"


def quote_payload(km: float, **extra) -> dict:
    lat, lng = point_north_of(CENTER, km)
    return {"lat": lat, "lng": lng, "when": MONDAY_10AM_LIMA, **extra}


class TestShippingQuote:

    @pytest.mark.asyncio
    async def test_covered_quote(self, client: AsyncClient, test_session: AsyncSession):
        zone = await create_zone(test_session, free_shipping_threshold=150)
        await add_tier(test_session, zone, 6, 15, 5, extra_minutes=10)

        response = await client.post("/public/shipping/quote", json=quote_payload(8, order_amount="100"))
        assert response.status_code == 200
        data = response.json()
        assert data["in_coverage"] is True
        assert data["zone_id"] == zone.id
        assert data["match_method"] == "radius"
        assert data["cost"] == 15.0
        assert data["cost_breakdown"]["tier_addition"] == 5.0
        assert data["amount_missing_for_free_shipping"] == 50.0
        assert data["eta_minutes"] == 40
        assert data["available"] is True

    @pytest.mark.asyncio
    async def test_uncovered_quote_is_not_an_error(self, client: AsyncClient, test_session: AsyncSession):
        await create_zone(test_session)
        response = await client.post("/public/shipping/quote", json=quote_payload(12))
        assert response.status_code == 200
        data = response.json()
        assert data["in_coverage"] is False
        assert data["cost"] is None
        assert data["available"] is False

    @pytest.mark.asyncio
    async def test_closed_day(self, client: AsyncClient, test_session: AsyncSession):
        zone = await create_zone(test_session, always_open=False)
        await add_schedule(test_session, zone, 0, datetime.time(9), datetime.time(18))
        await add_exception(test_session, zone, datetime.date(2026, 10, 19), "unavailable", reason="Inventory day")

        data = (await client.post("/public/shipping/quote", json=quote_payload(1))).json()
        assert data["available"] is False
        assert data["unavailable_reason"] == "Inventory day"

    @pytest.mark.asyncio
    async def test_invalid_coordinate(self, client: AsyncClient):
        response = await client.post("/public/shipping/quote", json={"lat": 91, "lng": 0, "when": MONDAY_10AM_LIMA})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_negative_amount(self, client: AsyncClient, test_session: AsyncSession):
        response = await client.post("/public/shipping/quote", json=quote_payload(1, order_amount="-5"))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_moment_required(self, client: AsyncClient):
        response = await client.post("/public/shipping/quote", json={"lat": CENTER[0], "lng": CENTER[1]})
        assert response.status_code == 422


class TestPublicZones:

    @pytest.mark.asyncio
    async def test_list_zones_is_cached(self, client: AsyncClient, test_session: AsyncSession, mock_cache: MockCacheService):
        zone = await create_zone(test_session)
        await create_zone(test_session, name="Hidden", slug="hidden", is_active=False)

        response = await client.get("/public/zones")
        assert response.status_code == 200
        data = response.json()
        assert [z["id"] for z in data] == [zone.id]
        assert data[0]["coverage"] == "radius"
        assert await mock_cache.get_zones() == data

    @pytest.mark.asyncio
    async def test_zone_detail(self, client: AsyncClient, test_session: AsyncSession):
        zone = await create_zone(test_session, always_open=False)
        await add_tier(test_session, zone, 0, 5, 2)
        await add_schedule(test_session, zone, 4, full_day=True)

        data = (await client.get(f"/public/zones/{zone.id}")).json()
        assert data["tiers"][0]["additional_cost"] == 2.0
        assert data["schedule"][4]["full_day"] is True
        assert data["schedule"][0]["open"] is False

    @pytest.mark.asyncio
    async def test_inactive_zone_is_404(self, client: AsyncClient, test_session: AsyncSession):
        zone = await create_zone(test_session, is_active=False)
        assert (await client.get(f"/public/zones/{zone.id}")).status_code == 404
        assert (await client.get(f"/public/zones/{zone.id}/schedule")).status_code == 404

    @pytest.mark.asyncio
    async def test_availability(self, client: AsyncClient, test_session: AsyncSession):
        zone = await create_zone(test_session, always_open=False)
        await add_schedule(test_session, zone, 0, datetime.time(9), datetime.time(18))

        response = await client.post(f"/public/zones/{zone.id}/availability", json={"when": MONDAY_10AM_LIMA})
        assert response.status_code == 200
        assert response.json()["available"] is True

        late = await client.post(f"/public/zones/{zone.id}/availability", json={"when": "2026-10-19T23:30:00Z"})
        assert late.json()["available"] is False
        assert late.json()["reason"] == "Outside delivery hours 09:00-18:00"


class TestAdminAuth:

    @pytest.mark.asyncio
    async def test_missing_token(self, client: AsyncClient):
        assert (await client.get("/admin/zones")).status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_token(self, client: AsyncClient):
        response = await client.get("/addresses/statistics", headers={"X-Admin-Token": "nope"})
        assert response.status_code == 401


class TestAdminZones:

    @pytest.mark.asyncio
    async def test_create_update_toggle(self, client: AsyncClient, mock_cache: MockCacheService):
        response = await client.post("/admin/zones", headers=ADMIN_HEADERS, json={
            "name": "Zona Este", "center_lat": CENTER[0], "center_lng": CENTER[1],
            "radius_km": 6, "base_cost": "8.50",
        })
        assert response.status_code == 201
        zone = response.json()
        assert zone["slug"] == "zona-este"
        assert zone["base_cost"] == 8.5

        await client.get("/public/zones")
        assert await mock_cache.get_zones() is not None

        updated = await client.put(f"/admin/zones/{zone['id']}", headers=ADMIN_HEADERS, json={"radius_km": 9})
        assert updated.status_code == 200
        assert updated.json()["radius_km"] == 9.0
        assert await mock_cache.get_zones() is None

        toggled = await client.post(f"/admin/zones/{zone['id']}/toggle-status", headers=ADMIN_HEADERS)
        assert toggled.json()["is_active"] is False
        assert (await client.get("/public/zones")).json() == []

    @pytest.mark.asyncio
    async def test_invalid_geometry_is_400(self, client: AsyncClient):
        response = await client.post("/admin/zones", headers=ADMIN_HEADERS, json={"name": "Z", "radius_km": 3})
        assert response.status_code == 400
        assert "center" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_missing_zone_is_404(self, client: AsyncClient):
        assert (await client.get("/admin/zones/999", headers=ADMIN_HEADERS)).status_code == 404


class TestAdminRules:

    @pytest.mark.asyncio
    async def test_tier_overlap_is_409(self, client: AsyncClient, test_session: AsyncSession):
        zone = await create_zone(test_session)
        url = f"/admin/zones/{zone.id}/tiers"

        first = await client.post(url, headers=ADMIN_HEADERS, json={
            "distance_from_km": 0, "distance_to_km": 10, "additional_cost": 0,
        })
        assert first.status_code == 201

        conflict = await client.post(url, headers=ADMIN_HEADERS, json={
            "distance_from_km": 5, "distance_to_km": 15, "additional_cost": 3,
        })
        assert conflict.status_code == 409
        assert f"overlaps tier {first.json()['id']}" in conflict.json()["detail"]

        tiers = (await client.get(url, headers=ADMIN_HEADERS)).json()
        assert len(tiers) == 1

    @pytest.mark.asyncio
    async def test_tier_update_and_delete(self, client: AsyncClient, test_session: AsyncSession):
        zone = await create_zone(test_session)
        tier = await add_tier(test_session, zone, 0, 5, 1)

        updated = await client.put(f"/admin/tiers/{tier.id}", headers=ADMIN_HEADERS, json={"additional_cost": "2.5"})
        assert updated.json()["additional_cost"] == 2.5

        deleted = await client.delete(f"/admin/tiers/{tier.id}", headers=ADMIN_HEADERS)
        assert deleted.json() == {"status": "ok"}
        assert (await client.delete(f"/admin/tiers/{tier.id}", headers=ADMIN_HEADERS)).status_code == 404

    @pytest.mark.asyncio
    async def test_duplicate_schedule_is_409(self, client: AsyncClient, test_session: AsyncSession):
        zone = await create_zone(test_session)
        url = f"/admin/zones/{zone.id}/schedules"
        payload = {"weekday": 3, "start_time": "09:00:00", "end_time": "17:00:00"}

        assert (await client.post(url, headers=ADMIN_HEADERS, json=payload)).status_code == 201
        assert (await client.post(url, headers=ADMIN_HEADERS, json=payload)).status_code == 409

    @pytest.mark.asyncio
    async def test_exception_lifecycle(self, client: AsyncClient, test_session: AsyncSession):
        zone = await create_zone(test_session)
        url = f"/admin/zones/{zone.id}/exceptions"
        payload = {"date": "2026-12-25", "type": "special_cost", "special_cost": "20", "reason": "Christmas"}

        created = await client.post(url, headers=ADMIN_HEADERS, json=payload)
        assert created.status_code == 201
        assert created.json()["special_cost"] == 20.0
        assert (await client.post(url, headers=ADMIN_HEADERS, json=payload)).status_code == 409

        missing_cost = await client.post(url, headers=ADMIN_HEADERS, json={
            "date": "2026-12-26", "type": "special_cost", "reason": "Boxing day",
        })
        assert missing_cost.status_code == 400

        listed = await client.get(url, headers=ADMIN_HEADERS, params={"type": "special_cost"})
        assert [e["date"] for e in listed.json()] == ["2026-12-25"]

    @pytest.mark.asyncio
    async def test_assignment_lifecycle(self, client: AsyncClient, test_session: AsyncSession):
        zone = await create_zone(test_session)
        await add_district(test_session, 12, "Miraflores")
        url = f"/admin/zones/{zone.id}/assignments"

        created = await client.post(url, headers=ADMIN_HEADERS, json={"district_id": 12, "cost_override": "4"})
        assert created.status_code == 201
        assert (await client.post(url, headers=ADMIN_HEADERS, json={"district_id": 12})).status_code == 409

        listed = await client.get("/admin/assignments", headers=ADMIN_HEADERS, params={"district_id": 12})
        assert [a["zone_id"] for a in listed.json()] == [zone.id]

        quote = (await client.post("/public/shipping/quote", json=quote_payload(1, district_id=12))).json()
        assert quote["match_method"] == "district"
        assert quote["cost"] == 14.0


class TestAddresses:

    @pytest.mark.asyncio
    async def test_validate_and_read_back(self, client: AsyncClient, test_session: AsyncSession):
        zone = await create_zone(test_session)
        lat, lng = point_north_of(CENTER, 2)

        response = await client.post("/addresses/validate", headers=ADMIN_HEADERS, json={
            "address_id": 501, "lat": lat, "lng": lng,
        })
        assert response.status_code == 200
        assert response.json()["zone_id"] == zone.id
        assert response.json()["shipping_cost"] == 10.0

        fetched = await client.get("/addresses/501", headers=ADMIN_HEADERS)
        assert fetched.json()["in_coverage"] is True
        assert (await client.get("/addresses/502", headers=ADMIN_HEADERS)).status_code == 404

    @pytest.mark.asyncio
    async def test_list_and_statistics(self, client: AsyncClient, test_session: AsyncSession):
        await create_zone(test_session)
        for address_id, km in ((1, 1), (2, 30)):
            lat, lng = point_north_of(CENTER, km)
            await client.post("/addresses/validate", headers=ADMIN_HEADERS, json={
                "address_id": address_id, "lat": lat, "lng": lng,
            })

        uncovered = await client.get("/addresses", headers=ADMIN_HEADERS, params={"in_coverage": False})
        assert [a["address_id"] for a in uncovered.json()] == [2]

        stats = (await client.get("/addresses/statistics", headers=ADMIN_HEADERS)).json()
        assert stats["total"] == 2
        assert stats["in_coverage"] == 1

    @pytest.mark.asyncio
    async def test_revalidate_after_tier_change(self, client: AsyncClient, test_session: AsyncSession):
        zone = await create_zone(test_session)
        lat, lng = point_north_of(CENTER, 8)
        await client.post("/addresses/validate", headers=ADMIN_HEADERS, json={"address_id": 7, "lat": lat, "lng": lng})

        await client.post(f"/admin/zones/{zone.id}/tiers", headers=ADMIN_HEADERS, json={
            "distance_from_km": 6, "distance_to_km": 15, "additional_cost": 5,
        })
        response = await client.post("/addresses/revalidate", headers=ADMIN_HEADERS, json={"zone_id": zone.id})
        assert response.status_code == 200
        assert response.json() == {"succeeded": [7], "failed": []}

        assert (await client.get("/addresses/7", headers=ADMIN_HEADERS)).json()["shipping_cost"] == 15.0


class TestServiceEndpoints:

    @pytest.mark.asyncio
    async def test_root(self, client: AsyncClient):
        assert (await client.get("/")).json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_metrics(self, client: AsyncClient, test_session: AsyncSession):
        await create_zone(test_session)
        await client.post("/public/shipping/quote", json=quote_payload(1))
        response = await client.get("/metrics")
        assert response.status_code == 200
        assert "shipping_quotes_total" in response.text
