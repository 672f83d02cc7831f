"""
Redis cache for public zone reference data.

The public zone list and per-zone detail are read far more often than zones are
edited; admin writes call `invalidate_zones()`.
"""
import json
from typing import Optional, Any, List

from redis.asyncio import Redis

from delivery_backend.app.core.settings import get_settings


class CacheService:
    """Service for caching operations using Redis."""

    _redis: Optional[Redis] = None

    TTL_DEFAULT = 300

    KEY_ZONES = "zones:active"
    KEY_ZONE = "zones:detail:{zone_id}"

    @classmethod
    async def get_redis(cls) -> Redis:
        """Get or create Redis connection."""
        if cls._redis is None:
            settings = get_settings()
            cls._redis = Redis(
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                db=settings.REDIS_DB,
                decode_responses=True,
            )
        return cls._redis

    @classmethod
    async def close(cls):
        if cls._redis:
            await cls._redis.aclose()
            cls._redis = None

    def __init__(self, redis: Redis, ttl: Optional[int] = None):
        self.redis = redis
        self.ttl = ttl if ttl is not None else get_settings().ZONES_CACHE_TTL

    async def get(self, key: str) -> Optional[Any]:
        data = await self.redis.get(key)
        if data:
            return json.loads(data)
        return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None):
        await self.redis.set(key, json.dumps(value, ensure_ascii=False), ex=ttl or self.ttl)

    async def delete(self, key: str):
        await self.redis.delete(key)

    async def delete_pattern(self, pattern: str):
        """Delete all keys matching pattern."""
        keys = await self.redis.keys(pattern)
        if keys:
            await self.redis.delete(*keys)

    # ----- Zones -----

    async def get_zones(self) -> Optional[List[dict]]:
        return await self.get(self.KEY_ZONES)

    async def set_zones(self, zones: List[dict]):
        await self.set(self.KEY_ZONES, zones)

    async def get_zone(self, zone_id: int) -> Optional[dict]:
        return await self.get(self.KEY_ZONE.format(zone_id=zone_id))

    async def set_zone(self, zone_id: int, zone: dict):
        await self.set(self.KEY_ZONE.format(zone_id=zone_id), zone)

    async def invalidate_zones(self, zone_id: Optional[int] = None):
        """Drop the zone list and one zone's detail (all details when zone_id is None)."""
        await self.delete(self.KEY_ZONES)
        if zone_id is not None:
            await self.delete(self.KEY_ZONE.format(zone_id=zone_id))
        else:
            await self.delete_pattern("zones:detail:*")
