"""
Administrative writes on zones and their rules.

Every write to a tier, weekly schedule, date exception or district assignment
first locks the owning zone row (SELECT ... FOR UPDATE), then runs the
disjointness / uniqueness check, then flushes. Check and insert therefore share
one transaction and two concurrent writers on the same zone are serialized.
The caller commits.
"""
import datetime
import re
import unicodedata
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_backend.app.core.constants import (
    DISTRICT_PRIORITIES,
    EXCEPTION_SPECIAL_COST,
    EXCEPTION_SPECIAL_HOURS,
    EXCEPTION_SPECIAL_TIME_WINDOW,
    EXCEPTION_TYPES,
    MAX_REASON_LENGTH,
)
from delivery_backend.app.core.exceptions import ConflictError, NotFoundError, ServiceError
from delivery_backend.app.core.geo import parse_polygon, polygon_to_json, validate_coordinate
from delivery_backend.app.core.logging import get_logger
from delivery_backend.app.core.metrics import admin_writes_rejected_total
from delivery_backend.app.models.zone import (
    CostTier,
    DateException,
    DeliveryZone,
    District,
    DistrictAssignment,
    WeeklySchedule,
)
from delivery_backend.app.services.tier_costs import OverlappingTierError, find_overlap

logger = get_logger(__name__)

HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


class ZoneNotFoundError(NotFoundError):
    def __init__(self, zone_id: int):
        self.zone_id = zone_id
        super().__init__(f"Zone {zone_id} not found")


class ZoneRuleNotFoundError(NotFoundError):
    def __init__(self, kind: str, rule_id: int):
        super().__init__(f"{kind} {rule_id} not found")


class InvalidZoneConfigError(ServiceError):
    def __init__(self, message: str):
        super().__init__(message, 400)


class DuplicateScheduleEntryError(ConflictError):
    def __init__(self, zone_id: int, weekday: int):
        super().__init__(f"Zone {zone_id} already has a schedule for weekday {weekday}")


class DuplicateExceptionEntryError(ConflictError):
    def __init__(self, zone_id: int, day: datetime.date, type_: str):
        super().__init__(f"Zone {zone_id} already has a '{type_}' exception on {day.isoformat()}")


class DuplicateDistrictAssignmentError(ConflictError):
    def __init__(self, zone_id: int, district_id: int):
        super().__init__(f"District {district_id} is already assigned to zone {zone_id}")


def slugify(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug or "zone"


def _non_negative(data: Dict[str, Any], *fields: str) -> None:
    for name in fields:
        value = data.get(name)
        if value is not None and Decimal(str(value)) < 0:
            raise InvalidZoneConfigError(f"{name} must not be negative")


def _reject(reason: str, error: ServiceError) -> ServiceError:
    admin_writes_rejected_total.labels(reason=reason).inc()
    logger.warning("admin_write_rejected", reason=reason, error=error.message)
    return error


ZONE_FIELDS = (
    "name", "description", "is_active", "center_lat", "center_lng", "radius_km", "polygon",
    "base_cost", "min_order_amount", "free_shipping_threshold", "default_eta_minutes",
    "max_weight_kg", "always_open", "map_color", "notes",
)
TIER_FIELDS = ("distance_from_km", "distance_to_km", "additional_cost", "extra_time_minutes", "is_active")
SCHEDULE_FIELDS = ("weekday", "start_time", "end_time", "full_day", "is_active", "notes")
EXCEPTION_FIELDS = (
    "date", "type", "start_time", "end_time", "special_cost",
    "eta_min_minutes", "eta_max_minutes", "reason", "is_active",
)
ASSIGNMENT_FIELDS = ("priority", "cost_override", "extra_time_minutes", "is_active")


class ZoneAdminService:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Zones
    # ------------------------------------------------------------------

    async def list_zones(self, include_inactive: bool = True) -> List[DeliveryZone]:
        query = select(DeliveryZone).order_by(DeliveryZone.id)
        if not include_inactive:
            query = query.where(DeliveryZone.is_active == True)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_zone(self, zone_id: int) -> DeliveryZone:
        zone = await self.session.get(DeliveryZone, zone_id)
        if zone is None:
            raise ZoneNotFoundError(zone_id)
        return zone

    async def _lock_zone(self, zone_id: int) -> DeliveryZone:
        result = await self.session.execute(
            select(DeliveryZone).where(DeliveryZone.id == zone_id).with_for_update()
        )
        zone = result.scalar_one_or_none()
        if zone is None:
            raise ZoneNotFoundError(zone_id)
        return zone

    async def _unique_slug(self, base: str, exclude_id: Optional[int] = None) -> str:
        candidate = base
        suffix = 0
        while True:
            query = select(DeliveryZone.id).where(DeliveryZone.slug == candidate)
            if exclude_id is not None:
                query = query.where(DeliveryZone.id != exclude_id)
            if (await self.session.execute(query)).first() is None:
                return candidate
            suffix += 1
            candidate = f"{base}-{suffix}"

    @staticmethod
    def _check_zone(values: Dict[str, Any]) -> Dict[str, Any]:
        """Validate the merged zone state and return it with the polygon normalized."""
        if not (values.get("name") or "").strip():
            raise InvalidZoneConfigError("name is required")
        _non_negative(values, "base_cost", "min_order_amount", "free_shipping_threshold", "default_eta_minutes")
        for name in ("radius_km", "max_weight_kg"):
            value = values.get(name)
            if value is not None and Decimal(str(value)) <= 0:
                raise InvalidZoneConfigError(f"{name} must be positive")

        lat, lng = values.get("center_lat"), values.get("center_lng")
        if (lat is None) != (lng is None):
            raise InvalidZoneConfigError("center_lat and center_lng must be set together")
        if lat is not None:
            validate_coordinate(lat, lng)
        if values.get("radius_km") is not None and lat is None:
            raise InvalidZoneConfigError("radius_km requires a center")

        polygon = values.get("polygon")
        if polygon:
            try:
                points = parse_polygon(polygon)
            except ValueError as e:
                raise InvalidZoneConfigError(str(e))
            if len(points) < 3:
                raise InvalidZoneConfigError("polygon needs at least 3 vertices")
            if values.get("radius_km") is not None:
                raise InvalidZoneConfigError("a zone is covered either by center and radius or by a polygon, not both")
            values["polygon"] = polygon_to_json(points)
        else:
            values["polygon"] = None

        color = values.get("map_color")
        if color is not None and not HEX_COLOR.match(color):
            raise InvalidZoneConfigError("map_color must look like #RRGGBB")
        return values

    async def create_zone(self, data: Dict[str, Any]) -> DeliveryZone:
        values = self._check_zone({f: data.get(f) for f in ZONE_FIELDS})
        slug = await self._unique_slug(slugify(data.get("slug") or values["name"]))

        zone = DeliveryZone(slug=slug)
        for name, value in values.items():
            if value is not None:
                setattr(zone, name, value)
        self.session.add(zone)
        await self.session.flush()
        logger.info("zone_created", zone_id=zone.id, slug=zone.slug)
        return zone

    async def update_zone(self, zone_id: int, data: Dict[str, Any]) -> DeliveryZone:
        zone = await self._lock_zone(zone_id)
        values = {f: getattr(zone, f) for f in ZONE_FIELDS}
        values.update({f: data[f] for f in ZONE_FIELDS if f in data})
        values = self._check_zone(values)

        if "slug" in data and data["slug"]:
            zone.slug = await self._unique_slug(slugify(data["slug"]), exclude_id=zone.id)
        for name in ZONE_FIELDS:
            if name in data or name == "polygon":
                setattr(zone, name, values[name])
        await self.session.flush()
        logger.info("zone_updated", zone_id=zone.id, fields=sorted(data))
        return zone

    async def toggle_status(self, zone_id: int) -> DeliveryZone:
        zone = await self._lock_zone(zone_id)
        zone.is_active = not zone.is_active
        await self.session.flush()
        logger.info("zone_toggled", zone_id=zone.id, is_active=zone.is_active)
        return zone

    # ------------------------------------------------------------------
    # Cost tiers
    # ------------------------------------------------------------------

    async def list_tiers(self, zone_id: int) -> List[CostTier]:
        await self.get_zone(zone_id)
        result = await self.session.execute(
            select(CostTier).where(CostTier.zone_id == zone_id).order_by(CostTier.distance_from_km, CostTier.id)
        )
        return list(result.scalars().all())

    async def _get_tier(self, tier_id: int) -> CostTier:
        tier = await self.session.get(CostTier, tier_id)
        if tier is None:
            raise ZoneRuleNotFoundError("Tier", tier_id)
        return tier

    async def _check_tier(self, zone_id: int, values: Dict[str, Any], exclude_id: Optional[int] = None) -> None:
        start, end = values.get("distance_from_km"), values.get("distance_to_km")
        if start is None or end is None:
            raise InvalidZoneConfigError("distance_from_km and distance_to_km are required")
        if Decimal(str(start)) < 0:
            raise InvalidZoneConfigError("distance_from_km must not be negative")
        if Decimal(str(end)) <= Decimal(str(start)):
            raise InvalidZoneConfigError("distance_to_km must be greater than distance_from_km")
        _non_negative(values, "additional_cost", "extra_time_minutes")

        # Inactive tiers are ignored by cost resolution, so only active ones must stay disjoint
        if not values.get("is_active", True):
            return
        result = await self.session.execute(
            select(CostTier).where(CostTier.zone_id == zone_id, CostTier.is_active == True)
        )
        conflict = find_overlap(start, end, result.scalars().all(), exclude_id=exclude_id)
        if conflict is not None:
            raise _reject("overlapping_tier", OverlappingTierError(start, end, conflict.id))

    async def create_tier(self, zone_id: int, data: Dict[str, Any]) -> CostTier:
        await self._lock_zone(zone_id)
        values = {f: data.get(f) for f in TIER_FIELDS}
        values["is_active"] = data.get("is_active", True)
        await self._check_tier(zone_id, values)

        tier = CostTier(
            zone_id=zone_id,
            distance_from_km=values["distance_from_km"],
            distance_to_km=values["distance_to_km"],
            additional_cost=values.get("additional_cost") or 0,
            extra_time_minutes=values.get("extra_time_minutes"),
            is_active=values["is_active"],
        )
        self.session.add(tier)
        await self.session.flush()
        logger.info("tier_created", zone_id=zone_id, tier_id=tier.id)
        return tier

    async def update_tier(self, tier_id: int, data: Dict[str, Any]) -> CostTier:
        tier = await self._get_tier(tier_id)
        await self._lock_zone(tier.zone_id)
        values = {f: getattr(tier, f) for f in TIER_FIELDS}
        values.update({f: data[f] for f in TIER_FIELDS if f in data})
        await self._check_tier(tier.zone_id, values, exclude_id=tier.id)

        for name in TIER_FIELDS:
            if name in data:
                setattr(tier, name, data[name])
        await self.session.flush()
        return tier

    async def delete_tier(self, tier_id: int) -> None:
        tier = await self._get_tier(tier_id)
        await self._lock_zone(tier.zone_id)
        await self.session.delete(tier)
        await self.session.flush()

    # ------------------------------------------------------------------
    # Weekly schedules
    # ------------------------------------------------------------------

    async def list_schedules(self, zone_id: int) -> List[WeeklySchedule]:
        await self.get_zone(zone_id)
        result = await self.session.execute(
            select(WeeklySchedule).where(WeeklySchedule.zone_id == zone_id).order_by(WeeklySchedule.weekday)
        )
        return list(result.scalars().all())

    async def _get_schedule(self, schedule_id: int) -> WeeklySchedule:
        schedule = await self.session.get(WeeklySchedule, schedule_id)
        if schedule is None:
            raise ZoneRuleNotFoundError("Schedule", schedule_id)
        return schedule

    async def _check_schedule(self, zone_id: int, values: Dict[str, Any], exclude_id: Optional[int] = None) -> None:
        weekday = values.get("weekday")
        if weekday is None or not 0 <= weekday <= 6:
            raise InvalidZoneConfigError("weekday must be between 0 (Monday) and 6 (Sunday)")
        if not values.get("full_day"):
            start, end = values.get("start_time"), values.get("end_time")
            if start is None or end is None:
                raise InvalidZoneConfigError("start_time and end_time are required unless full_day is set")
            if end <= start:
                raise InvalidZoneConfigError("end_time must be after start_time")

        query = select(WeeklySchedule.id).where(
            WeeklySchedule.zone_id == zone_id,
            WeeklySchedule.weekday == weekday,
        )
        if exclude_id is not None:
            query = query.where(WeeklySchedule.id != exclude_id)
        if (await self.session.execute(query)).first() is not None:
            raise _reject("duplicate_schedule", DuplicateScheduleEntryError(zone_id, weekday))

    async def create_schedule(self, zone_id: int, data: Dict[str, Any]) -> WeeklySchedule:
        await self._lock_zone(zone_id)
        values = {f: data.get(f) for f in SCHEDULE_FIELDS}
        await self._check_schedule(zone_id, values)

        schedule = WeeklySchedule(
            zone_id=zone_id,
            weekday=values["weekday"],
            full_day=bool(values.get("full_day")),
            start_time=None if values.get("full_day") else values["start_time"],
            end_time=None if values.get("full_day") else values["end_time"],
            is_active=data.get("is_active", True),
            notes=values.get("notes"),
        )
        self.session.add(schedule)
        await self.session.flush()
        return schedule

    async def update_schedule(self, schedule_id: int, data: Dict[str, Any]) -> WeeklySchedule:
        schedule = await self._get_schedule(schedule_id)
        await self._lock_zone(schedule.zone_id)
        values = {f: getattr(schedule, f) for f in SCHEDULE_FIELDS}
        values.update({f: data[f] for f in SCHEDULE_FIELDS if f in data})
        await self._check_schedule(schedule.zone_id, values, exclude_id=schedule.id)

        if values.get("full_day"):
            values["start_time"] = values["end_time"] = None
        for name in SCHEDULE_FIELDS:
            setattr(schedule, name, values[name])
        await self.session.flush()
        return schedule

    async def delete_schedule(self, schedule_id: int) -> None:
        schedule = await self._get_schedule(schedule_id)
        await self._lock_zone(schedule.zone_id)
        await self.session.delete(schedule)
        await self.session.flush()

    # ------------------------------------------------------------------
    # Date exceptions
    # ------------------------------------------------------------------

    async def list_exceptions(
        self,
        zone_id: int,
        type_: Optional[str] = None,
        date_from: Optional[datetime.date] = None,
        date_to: Optional[datetime.date] = None,
        active_only: bool = False,
    ) -> List[DateException]:
        await self.get_zone(zone_id)
        query = select(DateException).where(DateException.zone_id == zone_id)
        if type_ is not None:
            query = query.where(DateException.type == type_)
        if date_from is not None:
            query = query.where(DateException.date >= date_from)
        if date_to is not None:
            query = query.where(DateException.date <= date_to)
        if active_only:
            query = query.where(DateException.is_active == True)
        result = await self.session.execute(query.order_by(DateException.date, DateException.id))
        return list(result.scalars().all())

    async def _get_exception(self, exception_id: int) -> DateException:
        exception = await self.session.get(DateException, exception_id)
        if exception is None:
            raise ZoneRuleNotFoundError("Date exception", exception_id)
        return exception

    async def _check_exception(self, zone_id: int, values: Dict[str, Any], exclude_id: Optional[int] = None) -> None:
        """Validate type-specific payload, clear the fields other types use, check uniqueness."""
        type_ = values.get("type")
        if type_ not in EXCEPTION_TYPES:
            raise InvalidZoneConfigError(f"type must be one of {', '.join(EXCEPTION_TYPES)}")
        if values.get("date") is None:
            raise InvalidZoneConfigError("date is required")
        reason = (values.get("reason") or "").strip()
        if not reason:
            raise InvalidZoneConfigError("reason is required")
        if len(reason) > MAX_REASON_LENGTH:
            raise InvalidZoneConfigError(f"reason must be at most {MAX_REASON_LENGTH} characters")
        values["reason"] = reason

        if type_ == EXCEPTION_SPECIAL_HOURS:
            start, end = values.get("start_time"), values.get("end_time")
            if start is None or end is None:
                raise InvalidZoneConfigError("special_hours needs start_time and end_time")
            if end <= start:
                raise InvalidZoneConfigError("end_time must be after start_time")
        else:
            values["start_time"] = values["end_time"] = None

        if type_ == EXCEPTION_SPECIAL_COST:
            if values.get("special_cost") is None:
                raise InvalidZoneConfigError("special_cost exceptions need special_cost")
            _non_negative(values, "special_cost")
        else:
            values["special_cost"] = None

        if type_ == EXCEPTION_SPECIAL_TIME_WINDOW:
            low, high = values.get("eta_min_minutes"), values.get("eta_max_minutes")
            if low is None or high is None:
                raise InvalidZoneConfigError("special_time_window needs eta_min_minutes and eta_max_minutes")
            if low < 0 or high < low:
                raise InvalidZoneConfigError("eta window must satisfy 0 <= eta_min_minutes <= eta_max_minutes")
        else:
            values["eta_min_minutes"] = values["eta_max_minutes"] = None

        query = select(DateException.id).where(
            DateException.zone_id == zone_id,
            DateException.date == values["date"],
            DateException.type == type_,
        )
        if exclude_id is not None:
            query = query.where(DateException.id != exclude_id)
        if (await self.session.execute(query)).first() is not None:
            raise _reject("duplicate_exception", DuplicateExceptionEntryError(zone_id, values["date"], type_))

    async def create_exception(self, zone_id: int, data: Dict[str, Any]) -> DateException:
        await self._lock_zone(zone_id)
        values = {f: data.get(f) for f in EXCEPTION_FIELDS}
        values["is_active"] = data.get("is_active", True)
        await self._check_exception(zone_id, values)

        exception = DateException(zone_id=zone_id, **values)
        self.session.add(exception)
        await self.session.flush()
        logger.info("date_exception_created", zone_id=zone_id, date=str(exception.date), type=exception.type)
        return exception

    async def update_exception(self, exception_id: int, data: Dict[str, Any]) -> DateException:
        exception = await self._get_exception(exception_id)
        await self._lock_zone(exception.zone_id)
        values = {f: getattr(exception, f) for f in EXCEPTION_FIELDS}
        values.update({f: data[f] for f in EXCEPTION_FIELDS if f in data})
        await self._check_exception(exception.zone_id, values, exclude_id=exception.id)

        for name in EXCEPTION_FIELDS:
            setattr(exception, name, values[name])
        await self.session.flush()
        return exception

    async def delete_exception(self, exception_id: int) -> None:
        exception = await self._get_exception(exception_id)
        await self._lock_zone(exception.zone_id)
        await self.session.delete(exception)
        await self.session.flush()

    # ------------------------------------------------------------------
    # District assignments
    # ------------------------------------------------------------------

    async def list_assignments(
        self,
        zone_id: Optional[int] = None,
        district_id: Optional[int] = None,
    ) -> List[DistrictAssignment]:
        query = select(DistrictAssignment)
        if zone_id is not None:
            query = query.where(DistrictAssignment.zone_id == zone_id)
        if district_id is not None:
            query = query.where(DistrictAssignment.district_id == district_id)
        result = await self.session.execute(
            query.order_by(DistrictAssignment.district_id, DistrictAssignment.priority, DistrictAssignment.zone_id)
        )
        return list(result.scalars().all())

    async def _get_assignment(self, assignment_id: int) -> DistrictAssignment:
        assignment = await self.session.get(DistrictAssignment, assignment_id)
        if assignment is None:
            raise ZoneRuleNotFoundError("District assignment", assignment_id)
        return assignment

    @staticmethod
    def _check_assignment_values(values: Dict[str, Any]) -> None:
        if values.get("priority") not in DISTRICT_PRIORITIES:
            raise InvalidZoneConfigError("priority must be 1, 2 or 3")
        _non_negative(values, "cost_override", "extra_time_minutes")

    async def create_assignment(self, zone_id: int, data: Dict[str, Any]) -> DistrictAssignment:
        await self._lock_zone(zone_id)
        district_id = data.get("district_id")
        if district_id is None or await self.session.get(District, district_id) is None:
            raise InvalidZoneConfigError(f"Unknown district {district_id}")

        values = {f: data.get(f) for f in ASSIGNMENT_FIELDS}
        values["priority"] = data.get("priority", 1)
        values["is_active"] = data.get("is_active", True)
        self._check_assignment_values(values)

        existing = await self.session.execute(
            select(DistrictAssignment.id).where(
                DistrictAssignment.zone_id == zone_id,
                DistrictAssignment.district_id == district_id,
            )
        )
        if existing.first() is not None:
            raise _reject("duplicate_assignment", DuplicateDistrictAssignmentError(zone_id, district_id))

        assignment = DistrictAssignment(zone_id=zone_id, district_id=district_id, **values)
        self.session.add(assignment)
        await self.session.flush()
        return assignment

    async def update_assignment(self, assignment_id: int, data: Dict[str, Any]) -> DistrictAssignment:
        assignment = await self._get_assignment(assignment_id)
        await self._lock_zone(assignment.zone_id)
        values = {f: getattr(assignment, f) for f in ASSIGNMENT_FIELDS}
        values.update({f: data[f] for f in ASSIGNMENT_FIELDS if f in data})
        self._check_assignment_values(values)

        for name in ASSIGNMENT_FIELDS:
            setattr(assignment, name, values[name])
        await self.session.flush()
        return assignment

    async def delete_assignment(self, assignment_id: int) -> None:
        assignment = await self._get_assignment(assignment_id)
        await self._lock_zone(assignment.zone_id)
        await self.session.delete(assignment)
        await self.session.flush()
