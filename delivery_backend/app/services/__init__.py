"""
Services layer for business logic.
Keeps API endpoints thin and business logic testable and reusable.
"""

from delivery_backend.app.services.zone_repository import (
    ZoneRepository,
    ZoneSnapshot,
    TierRule,
    WeeklyWindow,
    DateExceptionRule,
    AssignmentRule,
)
from delivery_backend.app.services.geo_resolver import GeoResolver, ZoneMatch, pick_zone
from delivery_backend.app.services.tier_costs import (
    TierCostResolver,
    TierAddition,
    OverlappingTierError,
    ranges_overlap,
    find_overlap,
)
from delivery_backend.app.services.schedule_resolver import ScheduleResolver, Availability
from delivery_backend.app.services.shipping_quote import (
    ShippingQuoteService,
    ShippingQuote,
    CostBreakdown,
    InvalidQuoteRequestError,
)
from delivery_backend.app.services.validated_addresses import (
    ValidatedAddressStore,
    ValidatedAddressFilter,
    RevalidationFilter,
    RevalidationReport,
    ValidatedAddressNotFoundError,
)
from delivery_backend.app.services.zone_admin import (
    ZoneAdminService,
    ZoneNotFoundError,
    ZoneRuleNotFoundError,
    InvalidZoneConfigError,
    DuplicateScheduleEntryError,
    DuplicateExceptionEntryError,
    DuplicateDistrictAssignmentError,
)
from delivery_backend.app.services.cache import CacheService

__all__ = [
    # Zone data
    "ZoneRepository",
    "ZoneSnapshot",
    "TierRule",
    "WeeklyWindow",
    "DateExceptionRule",
    "AssignmentRule",
    # Resolution
    "GeoResolver",
    "ZoneMatch",
    "pick_zone",
    "TierCostResolver",
    "TierAddition",
    "OverlappingTierError",
    "ranges_overlap",
    "find_overlap",
    "ScheduleResolver",
    "Availability",
    # Quotes
    "ShippingQuoteService",
    "ShippingQuote",
    "CostBreakdown",
    "InvalidQuoteRequestError",
    # Validated addresses
    "ValidatedAddressStore",
    "ValidatedAddressFilter",
    "RevalidationFilter",
    "RevalidationReport",
    "ValidatedAddressNotFoundError",
    # Administration
    "ZoneAdminService",
    "ZoneNotFoundError",
    "ZoneRuleNotFoundError",
    "InvalidZoneConfigError",
    "DuplicateScheduleEntryError",
    "DuplicateExceptionEntryError",
    "DuplicateDistrictAssignmentError",
    # Cache service
    "CacheService",
]
