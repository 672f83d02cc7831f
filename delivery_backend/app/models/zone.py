import datetime
from typing import Optional, List

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DECIMAL,
    Date,
    ForeignKey,
    Index,
    Integer,
    JSON,
    SmallInteger,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from delivery_backend.app.core.base import Base, TimestampMixin


class DeliveryZone(TimestampMixin, Base):
    __tablename__ = 'delivery_zones'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str] = mapped_column(String(255), unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # Circular coverage: center + radius. Mutually exclusive with polygon.
    center_lat: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 8), nullable=True)
    center_lng: Mapped[Optional[float]] = mapped_column(DECIMAL(11, 8), nullable=True)
    radius_km: Mapped[Optional[float]] = mapped_column(DECIMAL(8, 2), nullable=True)
    # Polygon coverage: [[lat, lng], ...]
    polygon: Mapped[Optional[List[List[float]]]] = mapped_column(JSON(), nullable=True)
    base_cost: Mapped[float] = mapped_column(DECIMAL(10, 2), default=0)
    min_order_amount: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    free_shipping_threshold: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    default_eta_minutes: Mapped[int] = mapped_column(Integer, default=30)
    max_weight_kg: Mapped[Optional[float]] = mapped_column(DECIMAL(8, 2), nullable=True)
    always_open: Mapped[bool] = mapped_column(Boolean, default=False)
    map_color: Mapped[Optional[str]] = mapped_column(String(7), nullable=True)  # "#RRGGBB"
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    tiers: Mapped[List["CostTier"]] = relationship(back_populates="zone", order_by="CostTier.distance_from_km")
    schedules: Mapped[List["WeeklySchedule"]] = relationship(back_populates="zone", order_by="WeeklySchedule.weekday")
    exceptions: Mapped[List["DateException"]] = relationship(back_populates="zone", order_by="DateException.date")
    district_assignments: Mapped[List["DistrictAssignment"]] = relationship(back_populates="zone")

    __table_args__ = (
        Index('ix_delivery_zones_active', 'is_active'),
    )


class District(Base):
    """Administrative district, owned by the external address catalogue."""
    __tablename__ = 'districts'

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class DistrictAssignment(TimestampMixin, Base):
    __tablename__ = 'zone_districts'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    zone_id: Mapped[int] = mapped_column(ForeignKey('delivery_zones.id', ondelete='CASCADE'))
    district_id: Mapped[int] = mapped_column(ForeignKey('districts.id', ondelete='CASCADE'))
    # 1 = highest; when a district is assigned to several zones the lowest value wins
    priority: Mapped[int] = mapped_column(SmallInteger, default=1)
    cost_override: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    extra_time_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    zone: Mapped["DeliveryZone"] = relationship(back_populates="district_assignments")

    __table_args__ = (
        UniqueConstraint('zone_id', 'district_id', name='uq_zone_districts_zone_district'),
        CheckConstraint('priority BETWEEN 1 AND 3', name='priority_range'),
        Index('ix_zone_districts_district_active', 'district_id', 'is_active'),
    )


class CostTier(TimestampMixin, Base):
    __tablename__ = 'zone_cost_tiers'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    zone_id: Mapped[int] = mapped_column(ForeignKey('delivery_zones.id', ondelete='CASCADE'))
    distance_from_km: Mapped[float] = mapped_column(DECIMAL(8, 2))
    distance_to_km: Mapped[float] = mapped_column(DECIMAL(8, 2))  # exclusive
    additional_cost: Mapped[float] = mapped_column(DECIMAL(10, 2), default=0)
    extra_time_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    zone: Mapped["DeliveryZone"] = relationship(back_populates="tiers")

    __table_args__ = (
        CheckConstraint('distance_to_km > distance_from_km', name='tier_range'),
        Index('ix_zone_cost_tiers_zone_active', 'zone_id', 'is_active'),
    )


class WeeklySchedule(TimestampMixin, Base):
    __tablename__ = 'zone_weekly_schedules'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    zone_id: Mapped[int] = mapped_column(ForeignKey('delivery_zones.id', ondelete='CASCADE'))
    weekday: Mapped[int] = mapped_column(SmallInteger)  # 0=Mon, 6=Sun
    start_time: Mapped[Optional[datetime.time]] = mapped_column(Time, nullable=True)
    end_time: Mapped[Optional[datetime.time]] = mapped_column(Time, nullable=True)
    full_day: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    zone: Mapped["DeliveryZone"] = relationship(back_populates="schedules")

    __table_args__ = (
        UniqueConstraint('zone_id', 'weekday', name='uq_zone_weekly_schedules_zone_weekday'),
        CheckConstraint('weekday BETWEEN 0 AND 6', name='weekday_range'),
    )


class DateException(TimestampMixin, Base):
    __tablename__ = 'zone_date_exceptions'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    zone_id: Mapped[int] = mapped_column(ForeignKey('delivery_zones.id', ondelete='CASCADE'))
    date: Mapped[datetime.date] = mapped_column(Date)
    # 'unavailable' | 'special_hours' | 'special_cost' | 'special_time_window'
    type: Mapped[str] = mapped_column(String(32))
    start_time: Mapped[Optional[datetime.time]] = mapped_column(Time, nullable=True)
    end_time: Mapped[Optional[datetime.time]] = mapped_column(Time, nullable=True)
    special_cost: Mapped[Optional[float]] = mapped_column(DECIMAL(10, 2), nullable=True)
    eta_min_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    eta_max_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    reason: Mapped[str] = mapped_column(String(500))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    zone: Mapped["DeliveryZone"] = relationship(back_populates="exceptions")

    __table_args__ = (
        UniqueConstraint('zone_id', 'date', 'type', name='uq_zone_date_exceptions_zone_date_type'),
        Index('ix_zone_date_exceptions_zone_date', 'zone_id', 'date'),
    )
