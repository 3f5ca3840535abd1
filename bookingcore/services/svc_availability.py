import re
from datetime import datetime
from typing import Optional
from bookingcore.models.mod_schedule import DaySchedule, ScheduleDecision, Weekday, WeeklySchedule

CLOSED_ON_DAY = "closed on requested day"
OUTSIDE_HOURS = "outside operating hours"
HOURS_UNAVAILABLE = "hours not available (treated as closed)"

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")

# 0 = Sunday .. 6 = Saturday
_WEEKDAYS = list(Weekday)


class AvailabilityMatcher:
    @staticmethod
    def parse_time_to_minutes(value: Optional[str]) -> Optional[int]:
        """Parse "HH:mm" or "HH:mm:ss" into minutes since midnight, or None if invalid"""
        if not isinstance(value, str):
            return None
        match = _TIME_PATTERN.match(value.strip())
        if not match:
            return None
        hours, minutes = int(match.group(1)), int(match.group(2))
        seconds = int(match.group(3)) if match.group(3) is not None else 0
        if hours > 23 or minutes > 59 or seconds > 59:
            return None
        return hours * 60 + minutes

    @staticmethod
    def weekday_key(instant: datetime) -> Weekday:
        """Weekday of the instant's own wall-clock date; no zone conversion"""
        return _WEEKDAYS[instant.isoweekday() % 7]

    @staticmethod
    def format_minutes(minutes: int) -> str:
        return f"{minutes // 60:02d}:{minutes % 60:02d}"

    @staticmethod
    def format_allowed_range(entry: Optional[DaySchedule]) -> str:
        """Readable allowed range for a day, "HH:mm-HH:mm" or "closed" """
        if entry is None or entry.closed:
            return "closed"
        start = AvailabilityMatcher.parse_time_to_minutes(entry.open)
        end = AvailabilityMatcher.parse_time_to_minutes(entry.close)
        if start is None or end is None:
            return "closed"
        return f"{AvailabilityMatcher.format_minutes(start)}-{AvailabilityMatcher.format_minutes(end)}"

    @staticmethod
    def is_within_window(minutes: int, start: int, end: int) -> bool:
        if end > start:
            # same-day window [start, end)
            return start <= minutes < end
        # overnight window, e.g. 22:00-02:00
        return minutes >= start or minutes < end

    @staticmethod
    def is_request_allowed(schedule: WeeklySchedule, instant: datetime) -> ScheduleDecision:
        """
        Decide whether a booking at the given instant falls inside the weekly hours.

        A day that is missing or flagged closed denies every time. Hours that
        cannot be parsed deny as well. When close is not after open the window
        wraps past midnight.
        """
        day = AvailabilityMatcher.weekday_key(instant)
        entry = schedule.for_day(day)
        allowed_range = AvailabilityMatcher.format_allowed_range(entry)

        if entry is None or entry.closed:
            return ScheduleDecision(allowed=False, day=day, reason=CLOSED_ON_DAY, allowed_range=allowed_range)

        start = AvailabilityMatcher.parse_time_to_minutes(entry.open)
        end = AvailabilityMatcher.parse_time_to_minutes(entry.close)
        if start is None or end is None:
            return ScheduleDecision(allowed=False, day=day, reason=HOURS_UNAVAILABLE, allowed_range=allowed_range)

        minutes = instant.hour * 60 + instant.minute
        if not AvailabilityMatcher.is_within_window(minutes, start, end):
            return ScheduleDecision(allowed=False, day=day, reason=OUTSIDE_HOURS, allowed_range=allowed_range)

        return ScheduleDecision(allowed=True, day=day, allowed_range=allowed_range)
