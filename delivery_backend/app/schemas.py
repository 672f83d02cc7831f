import datetime
from decimal import Decimal
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from delivery_backend.app.core.constants import MAX_REASON_LENGTH

ExceptionType = Literal["unavailable", "special_hours", "special_cost", "special_time_window"]


# --- Shipping quote ---
class QuoteRequest(BaseModel):
    lat: float
    lng: float
    district_id: Optional[int] = None
    weight_kg: float = 0
    order_amount: Decimal = Decimal(0)
    # Timezone-aware values are converted to the delivery timezone; naive ones are local time
    when: datetime.datetime


class CostBreakdownOut(BaseModel):
    base: float
    tier_addition: float
    district_override: Optional[float] = None
    special_cost: Optional[float] = None
    final: float


class QuoteResponse(BaseModel):
    in_coverage: bool
    zone_id: Optional[int] = None
    zone_name: Optional[str] = None
    match_method: Optional[str] = None
    distance_km: Optional[float] = None
    cost: Optional[float] = None
    cost_breakdown: Optional[CostBreakdownOut] = None
    free_shipping: bool = False
    meets_min_order: Optional[bool] = None
    amount_missing_for_free_shipping: Optional[float] = None
    available: bool = False
    unavailable_reason: Optional[str] = None
    eta_minutes: Optional[int] = None
    eta_window_min: Optional[int] = None
    eta_window_max: Optional[int] = None


class AvailabilityRequest(BaseModel):
    when: datetime.datetime


class AvailabilityResponse(BaseModel):
    zone_id: int
    available: bool
    reason: Optional[str] = None
    special_cost: Optional[float] = None
    eta_window_min: Optional[int] = None
    eta_window_max: Optional[int] = None
    window_start: Optional[datetime.time] = None
    window_end: Optional[datetime.time] = None


# --- Zones ---
class ZoneBase(BaseModel):
    description: Optional[str] = None
    center_lat: Optional[float] = None
    center_lng: Optional[float] = None
    radius_km: Optional[float] = Field(None, gt=0)
    # [[lat, lng], ...] or [{"lat": .., "lng": ..}, ...]
    polygon: Optional[List[Any]] = None
    min_order_amount: Optional[Decimal] = Field(None, ge=0)
    free_shipping_threshold: Optional[Decimal] = Field(None, ge=0)
    max_weight_kg: Optional[float] = Field(None, gt=0)
    map_color: Optional[str] = Field(None, max_length=7)
    notes: Optional[str] = None


class ZoneCreate(ZoneBase):
    name: str = Field(min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    base_cost: Decimal = Field(Decimal(0), ge=0)
    default_eta_minutes: int = Field(30, ge=0)
    always_open: bool = False
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()


class ZoneUpdate(ZoneBase):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    base_cost: Optional[Decimal] = Field(None, ge=0)
    default_eta_minutes: Optional[int] = Field(None, ge=0)
    always_open: Optional[bool] = None
    is_active: Optional[bool] = None


class ZoneResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    description: Optional[str] = None
    is_active: bool
    center_lat: Optional[float] = None
    center_lng: Optional[float] = None
    radius_km: Optional[float] = None
    polygon: Optional[List[List[float]]] = None
    base_cost: float
    min_order_amount: Optional[float] = None
    free_shipping_threshold: Optional[float] = None
    default_eta_minutes: int
    max_weight_kg: Optional[float] = None
    always_open: bool
    map_color: Optional[str] = None
    notes: Optional[str] = None


# --- Cost tiers ---
class TierCreate(BaseModel):
    distance_from_km: Decimal = Field(ge=0)
    distance_to_km: Decimal = Field(gt=0)
    additional_cost: Decimal = Field(Decimal(0), ge=0)
    extra_time_minutes: Optional[int] = Field(None, ge=0)
    is_active: bool = True


class TierUpdate(BaseModel):
    distance_from_km: Optional[Decimal] = Field(None, ge=0)
    distance_to_km: Optional[Decimal] = Field(None, gt=0)
    additional_cost: Optional[Decimal] = Field(None, ge=0)
    extra_time_minutes: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class TierResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    zone_id: int
    distance_from_km: float
    distance_to_km: float
    additional_cost: float
    extra_time_minutes: Optional[int] = None
    is_active: bool


# --- Weekly schedules ---
class ScheduleCreate(BaseModel):
    weekday: int = Field(ge=0, le=6)
    start_time: Optional[datetime.time] = None
    end_time: Optional[datetime.time] = None
    full_day: bool = False
    is_active: bool = True
    notes: Optional[str] = Field(None, max_length=500)


class ScheduleUpdate(BaseModel):
    weekday: Optional[int] = Field(None, ge=0, le=6)
    start_time: Optional[datetime.time] = None
    end_time: Optional[datetime.time] = None
    full_day: Optional[bool] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = Field(None, max_length=500)


class ScheduleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    zone_id: int
    weekday: int
    start_time: Optional[datetime.time] = None
    end_time: Optional[datetime.time] = None
    full_day: bool
    is_active: bool
    notes: Optional[str] = None


# --- Date exceptions ---
class ExceptionCreate(BaseModel):
    date: datetime.date
    type: ExceptionType
    reason: str = Field(min_length=1, max_length=MAX_REASON_LENGTH)
    start_time: Optional[datetime.time] = None
    end_time: Optional[datetime.time] = None
    special_cost: Optional[Decimal] = Field(None, ge=0)
    eta_min_minutes: Optional[int] = Field(None, ge=0)
    eta_max_minutes: Optional[int] = Field(None, ge=0)
    is_active: bool = True


class ExceptionUpdate(BaseModel):
    date: Optional[datetime.date] = None
    type: Optional[ExceptionType] = None
    reason: Optional[str] = Field(None, min_length=1, max_length=MAX_REASON_LENGTH)
    start_time: Optional[datetime.time] = None
    end_time: Optional[datetime.time] = None
    special_cost: Optional[Decimal] = Field(None, ge=0)
    eta_min_minutes: Optional[int] = Field(None, ge=0)
    eta_max_minutes: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class ExceptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    zone_id: int
    date: datetime.date
    type: str
    reason: str
    start_time: Optional[datetime.time] = None
    end_time: Optional[datetime.time] = None
    special_cost: Optional[float] = None
    eta_min_minutes: Optional[int] = None
    eta_max_minutes: Optional[int] = None
    is_active: bool


# --- District assignments ---
class AssignmentCreate(BaseModel):
    district_id: int
    priority: int = Field(1, ge=1, le=3)
    cost_override: Optional[Decimal] = Field(None, ge=0)
    extra_time_minutes: Optional[int] = Field(None, ge=0)
    is_active: bool = True


class AssignmentUpdate(BaseModel):
    priority: Optional[int] = Field(None, ge=1, le=3)
    cost_override: Optional[Decimal] = Field(None, ge=0)
    extra_time_minutes: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    zone_id: int
    district_id: int
    priority: int
    cost_override: Optional[float] = None
    extra_time_minutes: Optional[int] = None
    is_active: bool


# --- Validated addresses ---
class ValidateAddressRequest(BaseModel):
    address_id: int
    lat: float
    lng: float
    district_id: Optional[int] = None
    note: Optional[str] = Field(None, max_length=500)


class ValidatedAddressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    address_id: int
    lat: float
    lng: float
    district_id: Optional[int] = None
    zone_id: Optional[int] = None
    in_coverage: bool
    distance_km: Optional[float] = None
    shipping_cost: Optional[float] = None
    eta_minutes: Optional[int] = None
    last_validated_at: datetime.datetime
    validation_note: Optional[str] = None


class RevalidateRequest(BaseModel):
    address_ids: Optional[List[int]] = None
    zone_id: Optional[int] = None
    in_coverage: Optional[bool] = None
    validated_before: Optional[datetime.datetime] = None


class RevalidationFailure(BaseModel):
    address_id: int
    error: str


class RevalidationResponse(BaseModel):
    succeeded: List[int]
    failed: List[RevalidationFailure]
