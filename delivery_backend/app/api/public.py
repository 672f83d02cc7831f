"""
Public API endpoints
- No authentication required
- Shipping quotes for checkout
- Read-only zone information (list is cached in Redis)
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_backend.app.api.deps import get_cache, get_session, handle_service_error
from delivery_backend.app.core.exceptions import ServiceError
from delivery_backend.app.core.limiter import limiter
from delivery_backend.app.core.logging import bind_request_context, clear_request_context, get_logger
from delivery_backend.app.core.settings import get_settings
from delivery_backend.app.schemas import (
    AvailabilityRequest,
    AvailabilityResponse,
    CostBreakdownOut,
    QuoteRequest,
    QuoteResponse,
)
from delivery_backend.app.services.cache import CacheService
from delivery_backend.app.services.schedule_resolver import ScheduleResolver
from delivery_backend.app.services.shipping_quote import ShippingQuote, ShippingQuoteService
from delivery_backend.app.services.zone_repository import ZoneRepository, ZoneSnapshot

logger = get_logger(__name__)

router = APIRouter()


def _quote_rate_limit() -> str:
    return get_settings().QUOTE_RATE_LIMIT


def _money(value):
    return float(value) if value is not None else None


def _zone_summary(zone: ZoneSnapshot) -> dict:
    if zone.has_radius:
        coverage = "radius"
    elif zone.has_polygon:
        coverage = "polygon"
    else:
        coverage = "unrestricted"
    return {
        "id": zone.id,
        "name": zone.name,
        "slug": zone.slug,
        "coverage": coverage,
        "center": {"lat": zone.center.lat, "lng": zone.center.lng} if zone.center else None,
        "radius_km": zone.radius_km,
        "polygon": [[p.lat, p.lng] for p in zone.polygon] or None,
        "base_cost": float(zone.base_cost),
        "min_order_amount": _money(zone.min_order_amount),
        "free_shipping_threshold": _money(zone.free_shipping_threshold),
        "default_eta_minutes": zone.default_eta_minutes,
        "max_weight_kg": zone.max_weight_kg,
        "always_open": zone.always_open,
    }


def _zone_detail(zone: ZoneSnapshot) -> dict:
    detail = _zone_summary(zone)
    detail["tiers"] = [
        {
            "distance_from_km": t.distance_from_km,
            "distance_to_km": t.distance_to_km,
            "additional_cost": float(t.additional_cost),
            "extra_time_minutes": t.extra_time_minutes,
        }
        for t in zone.tiers
    ]
    detail["schedule"] = ScheduleResolver.weekly_overview(zone)
    return detail


def _quote_response(quote: ShippingQuote) -> QuoteResponse:
    if not quote.in_coverage:
        return QuoteResponse(in_coverage=False)
    breakdown = quote.cost
    return QuoteResponse(
        in_coverage=True,
        zone_id=quote.zone_id,
        zone_name=quote.zone_name,
        match_method=quote.match_method,
        distance_km=round(quote.distance_km, 3),
        cost=float(breakdown.final),
        cost_breakdown=CostBreakdownOut(
            base=float(breakdown.base),
            tier_addition=float(breakdown.tier_addition),
            district_override=_money(breakdown.district_override),
            special_cost=_money(breakdown.special_cost),
            final=float(breakdown.final),
        ),
        free_shipping=quote.free_shipping,
        meets_min_order=quote.meets_min_order,
        amount_missing_for_free_shipping=_money(quote.amount_missing_for_free_shipping),
        available=bool(quote.available),
        unavailable_reason=quote.unavailable_reason,
        eta_minutes=quote.eta_minutes,
        eta_window_min=quote.eta_window[0] if quote.eta_window else None,
        eta_window_max=quote.eta_window[1] if quote.eta_window else None,
    )


@router.post("/shipping/quote", response_model=QuoteResponse)
@limiter.limit(_quote_rate_limit)
async def shipping_quote(
    request: Request,
    data: QuoteRequest,
    session: AsyncSession = Depends(get_session),
):
    """
    Resolve the serving zone for a point and price the delivery.

    A point outside every zone is answered with `in_coverage=false`, not an error.
    """
    bind_request_context(endpoint="shipping_quote", district_id=data.district_id)
    try:
        quote = await ShippingQuoteService(session).quote(
            data.lat,
            data.lng,
            district_id=data.district_id,
            weight_kg=data.weight_kg,
            order_amount=data.order_amount,
            when=data.when,
        )
    except ServiceError as e:
        handle_service_error(e)
    finally:
        clear_request_context()
    return _quote_response(quote)


@router.get("/zones")
async def list_zones(
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
) -> List[dict]:
    """Active zones with their coverage geometry (cached)."""
    cached = await cache.get_zones()
    if cached is not None:
        return cached

    zones = await ZoneRepository(session).get_active_zones()
    data = [_zone_summary(z) for z in zones]
    await cache.set_zones(data)
    return data


async def _active_zone_or_404(session: AsyncSession, zone_id: int) -> ZoneSnapshot:
    zone = await ZoneRepository(session).get_zone(zone_id)
    if zone is None:
        raise HTTPException(status_code=404, detail=f"Zone {zone_id} not found")
    return zone


@router.get("/zones/{zone_id}")
async def get_zone(
    zone_id: int,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    cached = await cache.get_zone(zone_id)
    if cached is not None:
        return cached

    zone = await _active_zone_or_404(session, zone_id)
    data = _zone_detail(zone)
    await cache.set_zone(zone_id, data)
    return data


@router.get("/zones/{zone_id}/schedule")
async def get_zone_schedule(zone_id: int, session: AsyncSession = Depends(get_session)):
    zone = await _active_zone_or_404(session, zone_id)
    return {
        "zone_id": zone.id,
        "always_open": zone.always_open,
        "timezone": get_settings().DELIVERY_TIMEZONE,
        "days": ScheduleResolver.weekly_overview(zone),
    }


@router.post("/zones/{zone_id}/availability", response_model=AvailabilityResponse)
async def check_zone_availability(
    zone_id: int,
    data: AvailabilityRequest,
    session: AsyncSession = Depends(get_session),
):
    """Is the zone delivering at the given moment (weekly hours merged with date exceptions)."""
    zone = await _active_zone_or_404(session, zone_id)
    availability = ScheduleResolver(get_settings().delivery_tz).is_available(zone, data.when)
    return AvailabilityResponse(
        zone_id=zone.id,
        available=availability.available,
        reason=availability.reason,
        special_cost=_money(availability.special_cost),
        eta_window_min=availability.eta_window[0] if availability.eta_window else None,
        eta_window_max=availability.eta_window[1] if availability.eta_window else None,
        window_start=availability.window[0] if availability.window else None,
        window_end=availability.window[1] if availability.window else None,
    )
