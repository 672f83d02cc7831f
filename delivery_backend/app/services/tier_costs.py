"""Distance-tier surcharges and the tier disjointness rule."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Protocol

from delivery_backend.app.core.constants import ZERO
from delivery_backend.app.core.exceptions import ConflictError
from delivery_backend.app.services.zone_repository import ZoneSnapshot


class OverlappingTierError(ConflictError):
    def __init__(self, distance_from_km: float, distance_to_km: float, conflicting_id: int):
        self.conflicting_id = conflicting_id
        super().__init__(
            f"Range [{distance_from_km}, {distance_to_km}) overlaps tier {conflicting_id}"
        )


class TierRange(Protocol):
    id: int
    distance_from_km: float
    distance_to_km: float


@dataclass(frozen=True)
class TierAddition:
    amount: Decimal = ZERO
    extra_minutes: int = 0
    tier_id: Optional[int] = None


def ranges_overlap(a_from: float, a_to: float, b_from: float, b_to: float) -> bool:
    """Half-open ranges [from, to) overlap iff each starts before the other ends."""
    return a_from < b_to and b_from < a_to


def find_overlap(
    distance_from_km: float,
    distance_to_km: float,
    tiers: Iterable[TierRange],
    exclude_id: Optional[int] = None,
) -> Optional[TierRange]:
    """First tier in `tiers` overlapping the candidate range, ignoring `exclude_id`."""
    for tier in tiers:
        if exclude_id is not None and tier.id == exclude_id:
            continue
        if ranges_overlap(
            float(distance_from_km), float(distance_to_km),
            float(tier.distance_from_km), float(tier.distance_to_km),
        ):
            return tier
    return None


class TierCostResolver:
    def additional_cost(self, zone: ZoneSnapshot, distance_km: float) -> TierAddition:
        """Surcharge of the active tier with from <= distance < to; zero when none applies."""
        for tier in zone.tiers:
            if tier.contains(distance_km):
                return TierAddition(
                    amount=tier.additional_cost,
                    extra_minutes=tier.extra_time_minutes,
                    tier_id=tier.id,
                )
        return TierAddition()
