"""
Recreate the delivery tables and load demo zones for Lima.
Usage: python3 seed_zones.py   (DB_* variables as for the backend)
"""
import asyncio
import datetime

from delivery_backend.app.core.base import Base
from delivery_backend.app.core.database import async_session, engine
from delivery_backend.app.models import zone as zone_models, validated_address  # noqa: F401
from delivery_backend.app.models.zone import District
from delivery_backend.app.services.zone_admin import ZoneAdminService

DISTRICTS = [(1, "Lince"), (2, "Jesús María"), (3, "Miraflores"), (4, "San Borja")]

ZONES = [
    {
        "zone": {
            "name": "Zona Centro",
            "description": "Central Lima: Lince and Jesús María",
            "base_cost": 5, "min_order_amount": 15, "free_shipping_threshold": 80,
            "default_eta_minutes": 25, "center_lat": -12.0827, "center_lng": -77.0427, "radius_km": 3,
            "map_color": "#FF5722",
        },
        "tiers": [(0, 1, 0), (1, 2.5, 2), (2.5, 4, 4)],
        "districts": [(1, 1), (2, 1)],
    },
    {
        "zone": {
            "name": "Zona Sur",
            "description": "Miraflores and San Borja",
            "base_cost": 7, "min_order_amount": 20, "free_shipping_threshold": 120,
            "default_eta_minutes": 30, "center_lat": -12.115, "center_lng": -77.0116, "radius_km": 4,
            "map_color": "#2196F3",
        },
        "tiers": [(0, 1.5, 0), (1.5, 3, 2), (3, 5, 4.5)],
        "districts": [(3, 1), (4, 2)],
    },
    {
        "zone": {
            "name": "Zona Express",
            "description": "Fast delivery for downtown offices",
            "base_cost": 8, "min_order_amount": 25,
            "default_eta_minutes": 15, "center_lat": -12.0736, "center_lng": -77.0504, "radius_km": 2,
            "map_color": "#4CAF50",
        },
        "tiers": [(0, 2, 0)],
        "districts": [(2, 2)],
        "office_hours": True,
    },
]


async def reset_and_seed():
    print("Recreating tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        session.add_all(District(id=i, name=name) for i, name in DISTRICTS)
        await session.flush()

        admin = ZoneAdminService(session)
        for entry in ZONES:
            zone = await admin.create_zone(entry["zone"])
            for start, end, cost in entry["tiers"]:
                await admin.create_tier(zone.id, {
                    "distance_from_km": start, "distance_to_km": end, "additional_cost": cost,
                })
            last_day = 4 if entry.get("office_hours") else 5
            for weekday in range(0, last_day + 1):
                await admin.create_schedule(zone.id, {
                    "weekday": weekday,
                    "start_time": datetime.time(9, 0),
                    "end_time": datetime.time(18, 0) if entry.get("office_hours") else datetime.time(22, 0),
                })
            for district_id, priority in entry["districts"]:
                await admin.create_assignment(zone.id, {"district_id": district_id, "priority": priority})
            print(f"  {zone.name} ({zone.slug})")

        await session.commit()
    await engine.dispose()
    print("Done.")


if __name__ == "__main__":
    asyncio.run(reset_and_seed())
