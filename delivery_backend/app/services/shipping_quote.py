"""
Shipping quote composition.

quote() resolves the serving zone once, then derives distance, tier surcharge,
district override, free-shipping, date exceptions and ETA from that single
zone snapshot. Results depend only on the arguments and the zone data.
"""
import datetime
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from delivery_backend.app.core.constants import MATCH_DISTRICT, ONE_CENT, ZERO
from delivery_backend.app.core.exceptions import ServiceError
from delivery_backend.app.core.geo import Coordinate, haversine_km, validate_coordinate
from delivery_backend.app.core.logging import get_logger
from delivery_backend.app.core.metrics import shipping_quotes_total
from delivery_backend.app.core.settings import get_settings
from delivery_backend.app.services.geo_resolver import GeoResolver, ZoneMatch
from delivery_backend.app.services.schedule_resolver import ScheduleResolver
from delivery_backend.app.services.tier_costs import TierCostResolver
from delivery_backend.app.services.zone_repository import ZoneRepository, to_decimal

logger = get_logger(__name__)


class InvalidQuoteRequestError(ServiceError):
    def __init__(self, message: str):
        super().__init__(message, 422)


@dataclass(frozen=True)
class CostBreakdown:
    base: Decimal
    tier_addition: Decimal
    district_override: Optional[Decimal]
    special_cost: Optional[Decimal]
    final: Decimal


@dataclass(frozen=True)
class ShippingQuote:
    in_coverage: bool
    zone_id: Optional[int] = None
    zone_name: Optional[str] = None
    match_method: Optional[str] = None
    distance_km: Optional[float] = None
    cost: Optional[CostBreakdown] = None
    free_shipping: bool = False
    meets_min_order: Optional[bool] = None
    amount_missing_for_free_shipping: Optional[Decimal] = None
    eta_minutes: Optional[int] = None
    eta_window: Optional[Tuple[int, int]] = None
    # None when no moment was given (schedule not evaluated)
    available: Optional[bool] = None
    unavailable_reason: Optional[str] = None

    @property
    def final_cost(self) -> Optional[Decimal]:
        return self.cost.final if self.cost else None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


UNCOVERED = ShippingQuote(in_coverage=False)


def _money(value: Decimal) -> Decimal:
    return value.quantize(ONE_CENT)


class ShippingQuoteService:
    def __init__(
        self,
        session: AsyncSession,
        allow_unrestricted: Optional[bool] = None,
        tz: Optional[ZoneInfo] = None,
    ):
        settings = get_settings()
        self.session = session
        self.repository = ZoneRepository(session)
        self.geo = GeoResolver(
            self.repository,
            settings.ALLOW_UNRESTRICTED_ZONES if allow_unrestricted is None else allow_unrestricted,
        )
        self.tiers = TierCostResolver()
        self.schedule = ScheduleResolver(tz or settings.delivery_tz)

    def bind(self, session: AsyncSession) -> "ShippingQuoteService":
        """Same configuration on another session."""
        return ShippingQuoteService(
            session,
            allow_unrestricted=self.geo.allow_unrestricted,
            tz=self.schedule.tz,
        )

    async def quote(
        self,
        lat: Any,
        lng: Any,
        district_id: Optional[int] = None,
        weight_kg: float = 0,
        order_amount: Any = 0,
        when: Optional[datetime.datetime] = None,
    ) -> ShippingQuote:
        """
        Compute a shipping quote.

        An uncovered point returns `in_coverage=False` rather than raising.

        Raises:
            InvalidCoordinateError: coordinate out of range
            InvalidQuoteRequestError: negative weight or order amount
        """
        coord = validate_coordinate(lat, lng)
        amount = to_decimal(order_amount) if order_amount is not None else ZERO
        weight = float(weight_kg or 0)
        if amount < 0:
            raise InvalidQuoteRequestError("order_amount must not be negative")
        if weight < 0:
            raise InvalidQuoteRequestError("weight_kg must not be negative")

        match = await self.geo.resolve(coord, district_id)
        if match is None:
            shipping_quotes_total.labels(outcome="uncovered").inc()
            return UNCOVERED

        quote = self.compose(match, coord, weight, amount, when)
        if quote.available is None:
            outcome = "unscheduled"
        else:
            outcome = "available" if quote.available else "unavailable"
        shipping_quotes_total.labels(outcome=outcome).inc()
        logger.info(
            "shipping_quote",
            zone_id=quote.zone_id,
            method=quote.match_method,
            distance_km=round(quote.distance_km, 3),
            cost=str(quote.final_cost),
            free_shipping=quote.free_shipping,
            available=quote.available,
        )
        return quote

    def compose(
        self,
        match: ZoneMatch,
        coord: Coordinate,
        weight_kg: float,
        order_amount: Decimal,
        when: Optional[datetime.datetime],
    ) -> ShippingQuote:
        zone = match.zone
        distance = haversine_km(zone.center, coord) if zone.center is not None else 0.0

        tier = self.tiers.additional_cost(zone, distance)

        # District override and extra time count only when the zone came from the assignment
        assignment = match.assignment if match.method == MATCH_DISTRICT else None
        district_override = assignment.cost_override if assignment else None

        addition = max(tier.amount, district_override if district_override is not None else ZERO)
        cost = zone.base_cost + addition

        meets_min_order = None
        if zone.min_order_amount is not None:
            meets_min_order = order_amount >= zone.min_order_amount

        free_shipping = False
        missing = None
        if zone.free_shipping_threshold is not None:
            if order_amount >= zone.free_shipping_threshold and meets_min_order is not False:
                free_shipping = True
                cost = ZERO
            else:
                missing = _money(max(zone.free_shipping_threshold - order_amount, ZERO))

        eta = zone.default_eta_minutes + tier.extra_minutes
        if assignment and assignment.extra_time_minutes:
            eta += assignment.extra_time_minutes

        available = None
        reason = None
        special_cost = None
        eta_window = None
        if when is not None:
            availability = self.schedule.is_available(zone, when)
            available = availability.available
            reason = availability.reason
            if availability.special_cost is not None:
                special_cost = availability.special_cost
                cost = special_cost
                free_shipping = False
            if availability.eta_window is not None:
                eta_window = availability.eta_window
                eta = eta_window[1]

        if zone.max_weight_kg is not None and weight_kg > zone.max_weight_kg:
            available = False
            reason = f"Parcel weight {weight_kg} kg exceeds the zone limit of {zone.max_weight_kg} kg"

        return ShippingQuote(
            in_coverage=True,
            zone_id=zone.id,
            zone_name=zone.name,
            match_method=match.method,
            distance_km=distance,
            cost=CostBreakdown(
                base=_money(zone.base_cost),
                tier_addition=_money(tier.amount),
                district_override=_money(district_override) if district_override is not None else None,
                special_cost=_money(special_cost) if special_cost is not None else None,
                final=_money(cost),
            ),
            free_shipping=free_shipping,
            meets_min_order=meets_min_order,
            amount_missing_for_free_shipping=missing,
            eta_minutes=eta,
            eta_window=eta_window,
            available=available,
            unavailable_reason=None if available else reason,
        )
