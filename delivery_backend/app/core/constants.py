"""
Shared constants for the delivery backend.
"""
from decimal import Decimal

# ---------------------------------------------------------------------------
# Decimal helpers
# ---------------------------------------------------------------------------
ZERO = Decimal("0")
ONE_CENT = Decimal("0.01")

# ---------------------------------------------------------------------------
# Geography
# ---------------------------------------------------------------------------
EARTH_RADIUS_KM = 6371.0
MAX_LATITUDE = 90.0
MAX_LONGITUDE = 180.0

# ---------------------------------------------------------------------------
# Zones
# ---------------------------------------------------------------------------
DEFAULT_ETA_MINUTES = 30
DISTRICT_PRIORITIES = (1, 2, 3)  # 1 = highest

# 0=Mon, 6=Sun (datetime.weekday())
WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# ---------------------------------------------------------------------------
# Date exception types
# ---------------------------------------------------------------------------
EXCEPTION_UNAVAILABLE = "unavailable"
EXCEPTION_SPECIAL_HOURS = "special_hours"
EXCEPTION_SPECIAL_COST = "special_cost"
EXCEPTION_SPECIAL_TIME_WINDOW = "special_time_window"

EXCEPTION_TYPES = (
    EXCEPTION_UNAVAILABLE,
    EXCEPTION_SPECIAL_HOURS,
    EXCEPTION_SPECIAL_COST,
    EXCEPTION_SPECIAL_TIME_WINDOW,
)

MAX_REASON_LENGTH = 500

# ---------------------------------------------------------------------------
# Zone resolution methods
# ---------------------------------------------------------------------------
MATCH_DISTRICT = "district"
MATCH_RADIUS = "radius"
MATCH_POLYGON = "polygon"
MATCH_UNRESTRICTED = "unrestricted"
