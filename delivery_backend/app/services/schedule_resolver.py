"""Whether a zone operates at a given moment: weekly hours merged with date exceptions."""

import datetime
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from delivery_backend.app.core.constants import (
    EXCEPTION_SPECIAL_COST,
    EXCEPTION_SPECIAL_HOURS,
    EXCEPTION_SPECIAL_TIME_WINDOW,
    EXCEPTION_UNAVAILABLE,
    WEEKDAY_NAMES,
)
from delivery_backend.app.services.zone_repository import ZoneSnapshot


@dataclass(frozen=True)
class Availability:
    available: bool
    reason: Optional[str] = None
    special_cost: Optional[Decimal] = None
    eta_window: Optional[Tuple[int, int]] = None
    window: Optional[Tuple[datetime.time, datetime.time]] = None


def _fmt(t: datetime.time) -> str:
    return t.strftime("%H:%M")


class ScheduleResolver:
    def __init__(self, tz: Optional[ZoneInfo] = None):
        self.tz = tz

    def local_moment(self, when: datetime.datetime) -> datetime.datetime:
        """Aware datetimes are converted to the delivery timezone; naive ones are already local."""
        if when.tzinfo is not None and self.tz is not None:
            return when.astimezone(self.tz)
        return when

    def is_available(self, zone: ZoneSnapshot, when: datetime.datetime) -> Availability:
        """
        Resolve availability of `zone` at `when`.

        Precedence:
            1. an `unavailable` exception on the date closes the zone, always-open or not
            2. always-open zones are open, with no cost or ETA override
            3. `special_hours` replaces the weekday window for that date
            4. the weekly row for the weekday; no row means closed

        For scheduled zones, `special_cost` and `special_time_window`
        exceptions on the date are reported alongside the result.
        """
        local = self.local_moment(when)
        day = local.date()
        moment = local.time().replace(tzinfo=None)

        by_type = {e.type: e for e in zone.exceptions_on(day)}

        special_cost = None
        eta_window = None
        if EXCEPTION_SPECIAL_COST in by_type:
            special_cost = by_type[EXCEPTION_SPECIAL_COST].special_cost
        if EXCEPTION_SPECIAL_TIME_WINDOW in by_type:
            rule = by_type[EXCEPTION_SPECIAL_TIME_WINDOW]
            if rule.eta_min_minutes is not None and rule.eta_max_minutes is not None:
                eta_window = (rule.eta_min_minutes, rule.eta_max_minutes)

        def result(available: bool, reason: Optional[str] = None, window=None) -> Availability:
            return Availability(
                available=available,
                reason=reason,
                special_cost=special_cost,
                eta_window=eta_window,
                window=window,
            )

        closure = by_type.get(EXCEPTION_UNAVAILABLE)
        if closure is not None:
            return result(False, closure.reason)

        if zone.always_open:
            return Availability(available=True)

        special_hours = by_type.get(EXCEPTION_SPECIAL_HOURS)
        if special_hours is not None:
            start, end = special_hours.start_time, special_hours.end_time
            if start is None or end is None:
                return result(False, special_hours.reason)
            if start <= moment < end:
                return result(True, window=(start, end))
            return result(
                False,
                f"Outside special hours {_fmt(start)}-{_fmt(end)}: {special_hours.reason}",
                window=(start, end),
            )

        weekly = zone.schedule_for(local.weekday())
        if weekly is None:
            return result(False, f"No delivery on {WEEKDAY_NAMES[local.weekday()]}")
        if weekly.full_day:
            return result(True)
        if weekly.start_time is None or weekly.end_time is None:
            return result(False, f"No delivery hours set for {WEEKDAY_NAMES[local.weekday()]}")

        window = (weekly.start_time, weekly.end_time)
        if weekly.start_time <= moment < weekly.end_time:
            return result(True, window=window)
        return result(
            False,
            f"Outside delivery hours {_fmt(weekly.start_time)}-{_fmt(weekly.end_time)}",
            window=window,
        )

    @staticmethod
    def weekly_overview(zone: ZoneSnapshot) -> list[dict]:
        """One entry per weekday for display; days without a row are reported closed."""
        overview = []
        for weekday, name in enumerate(WEEKDAY_NAMES):
            window = zone.schedule_for(weekday)
            if zone.always_open:
                overview.append({"weekday": weekday, "day": name, "open": True, "full_day": True, "start": None, "end": None})
            elif window is None:
                overview.append({"weekday": weekday, "day": name, "open": False, "full_day": False, "start": None, "end": None})
            else:
                overview.append({
                    "weekday": weekday,
                    "day": name,
                    "open": True,
                    "full_day": window.full_day,
                    "start": _fmt(window.start_time) if window.start_time and not window.full_day else None,
                    "end": _fmt(window.end_time) if window.end_time and not window.full_day else None,
                })
        return overview
