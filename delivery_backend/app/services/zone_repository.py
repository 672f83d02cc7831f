"""
Read side of the zone tables.

Resolution code never touches ORM objects: the repository eagerly loads a zone
with its active tiers, weekly schedule and date exceptions and freezes it into
a `ZoneSnapshot`, so no lazy load can happen while a quote is computed.
"""
import datetime
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from delivery_backend.app.core.constants import DEFAULT_ETA_MINUTES
from delivery_backend.app.core.geo import Coordinate, parse_polygon
from delivery_backend.app.models.zone import DeliveryZone, District, DistrictAssignment


def to_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class TierRule:
    id: int
    distance_from_km: float
    distance_to_km: float
    additional_cost: Decimal
    extra_time_minutes: int = 0

    def contains(self, distance_km: float) -> bool:
        return self.distance_from_km <= distance_km < self.distance_to_km


@dataclass(frozen=True)
class WeeklyWindow:
    weekday: int
    start_time: Optional[datetime.time]
    end_time: Optional[datetime.time]
    full_day: bool = False


@dataclass(frozen=True)
class DateExceptionRule:
    id: int
    date: datetime.date
    type: str
    reason: str
    start_time: Optional[datetime.time] = None
    end_time: Optional[datetime.time] = None
    special_cost: Optional[Decimal] = None
    eta_min_minutes: Optional[int] = None
    eta_max_minutes: Optional[int] = None


@dataclass(frozen=True)
class AssignmentRule:
    zone_id: int
    district_id: int
    priority: int
    cost_override: Optional[Decimal] = None
    extra_time_minutes: Optional[int] = None


@dataclass(frozen=True)
class ZoneSnapshot:
    id: int
    name: str
    slug: str
    base_cost: Decimal
    center: Optional[Coordinate] = None
    radius_km: Optional[float] = None
    polygon: Tuple[Coordinate, ...] = ()
    min_order_amount: Optional[Decimal] = None
    free_shipping_threshold: Optional[Decimal] = None
    default_eta_minutes: int = DEFAULT_ETA_MINUTES
    max_weight_kg: Optional[float] = None
    always_open: bool = False
    tiers: Tuple[TierRule, ...] = ()
    schedules: Tuple[WeeklyWindow, ...] = ()
    exceptions: Tuple[DateExceptionRule, ...] = ()

    @property
    def has_radius(self) -> bool:
        return self.center is not None and self.radius_km is not None

    @property
    def has_polygon(self) -> bool:
        return len(self.polygon) >= 3

    @property
    def unrestricted(self) -> bool:
        return not self.has_radius and not self.has_polygon

    def schedule_for(self, weekday: int) -> Optional[WeeklyWindow]:
        for window in self.schedules:
            if window.weekday == weekday:
                return window
        return None

    def exceptions_on(self, day: datetime.date) -> List[DateExceptionRule]:
        return [e for e in self.exceptions if e.date == day]


def snapshot_zone(zone: DeliveryZone) -> ZoneSnapshot:
    """Freeze a loaded DeliveryZone (relationships must already be populated)."""
    center = None
    if zone.center_lat is not None and zone.center_lng is not None:
        center = Coordinate(float(zone.center_lat), float(zone.center_lng))

    tiers = tuple(
        TierRule(
            id=t.id,
            distance_from_km=float(t.distance_from_km),
            distance_to_km=float(t.distance_to_km),
            additional_cost=to_decimal(t.additional_cost) or Decimal("0"),
            extra_time_minutes=t.extra_time_minutes or 0,
        )
        for t in sorted(zone.tiers, key=lambda t: (float(t.distance_from_km), t.id))
        if t.is_active
    )
    schedules = tuple(
        WeeklyWindow(
            weekday=s.weekday,
            start_time=s.start_time,
            end_time=s.end_time,
            full_day=bool(s.full_day),
        )
        for s in zone.schedules
        if s.is_active
    )
    exceptions = tuple(
        DateExceptionRule(
            id=e.id,
            date=e.date,
            type=e.type,
            reason=e.reason,
            start_time=e.start_time,
            end_time=e.end_time,
            special_cost=to_decimal(e.special_cost),
            eta_min_minutes=e.eta_min_minutes,
            eta_max_minutes=e.eta_max_minutes,
        )
        for e in zone.exceptions
        if e.is_active
    )

    return ZoneSnapshot(
        id=zone.id,
        name=zone.name,
        slug=zone.slug,
        base_cost=to_decimal(zone.base_cost) or Decimal("0"),
        center=center,
        radius_km=float(zone.radius_km) if zone.radius_km is not None else None,
        polygon=tuple(parse_polygon(zone.polygon)),
        min_order_amount=to_decimal(zone.min_order_amount),
        free_shipping_threshold=to_decimal(zone.free_shipping_threshold),
        default_eta_minutes=zone.default_eta_minutes if zone.default_eta_minutes is not None else DEFAULT_ETA_MINUTES,
        max_weight_kg=float(zone.max_weight_kg) if zone.max_weight_kg is not None else None,
        always_open=bool(zone.always_open),
        tiers=tiers,
        schedules=schedules,
        exceptions=exceptions,
    )


class ZoneRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    def _zone_query(self):
        # Refresh rows already in the identity map so rule edits made earlier in this session are seen
        return (
            select(DeliveryZone)
            .options(
                selectinload(DeliveryZone.tiers),
                selectinload(DeliveryZone.schedules),
                selectinload(DeliveryZone.exceptions),
            )
            .execution_options(populate_existing=True)
        )

    async def get_active_zones(self) -> List[ZoneSnapshot]:
        """Active zones ordered by id (the geometric matching order)."""
        result = await self.session.execute(
            self._zone_query()
            .where(DeliveryZone.is_active == True)
            .order_by(DeliveryZone.id)
        )
        return [snapshot_zone(z) for z in result.scalars().all()]

    async def get_zone(self, zone_id: int, include_inactive: bool = False) -> Optional[ZoneSnapshot]:
        query = self._zone_query().where(DeliveryZone.id == zone_id)
        if not include_inactive:
            query = query.where(DeliveryZone.is_active == True)
        result = await self.session.execute(query)
        zone = result.scalar_one_or_none()
        return snapshot_zone(zone) if zone else None

    async def get_district_assignments(self, district_id: int) -> List[AssignmentRule]:
        """Active assignments of an active district onto active zones, best first (priority, then zone id)."""
        result = await self.session.execute(
            select(DistrictAssignment)
            .join(DeliveryZone, DeliveryZone.id == DistrictAssignment.zone_id)
            .join(District, District.id == DistrictAssignment.district_id)
            .where(
                DistrictAssignment.district_id == district_id,
                DistrictAssignment.is_active == True,
                DeliveryZone.is_active == True,
                District.is_active == True,
            )
            .order_by(DistrictAssignment.priority, DistrictAssignment.zone_id)
        )
        return [
            AssignmentRule(
                zone_id=a.zone_id,
                district_id=a.district_id,
                priority=a.priority,
                cost_override=to_decimal(a.cost_override),
                extra_time_minutes=a.extra_time_minutes,
            )
            for a in result.scalars().all()
        ]
