from pydantic import BaseModel
from typing import Dict, Optional
from enum import Enum

class Weekday(str, Enum):
    # Declared in Sunday-first order so list(Weekday)[0] is Sunday
    SUN = "Sun"
    MON = "Mon"
    TUE = "Tue"
    WED = "Wed"
    THU = "Thu"
    FRI = "Fri"
    SAT = "Sat"

class DaySchedule(BaseModel):
    open: Optional[str] = None    # "HH:mm" or "HH:mm:ss"
    close: Optional[str] = None
    closed: bool = False

def _as_time_string(value):
    # Non-string hours are kept as missing so the matcher treats the day as closed
    return value if isinstance(value, str) else None

class WeeklySchedule(BaseModel):
    """Operating hours of a business, keyed by weekday. Missing days are None."""
    days: Dict[Weekday, Optional[DaySchedule]]

    def for_day(self, day: Weekday) -> Optional[DaySchedule]:
        return self.days.get(day)

    @classmethod
    def from_document(cls, raw: dict) -> "WeeklySchedule":
        """
        Build a schedule from a stored operating_schedule map.
        Keys are matched case-insensitively against the seven weekday keys;
        anything else is rejected here instead of silently never matching.
        """
        if not isinstance(raw, dict):
            raise ValueError("operating schedule must be a mapping of weekday to hours")
        lookup = {day.value.lower(): day for day in Weekday}
        days = {day: None for day in Weekday}
        for key, entry in raw.items():
            day = lookup.get(str(key).strip().lower())
            if day is None:
                raise ValueError(f"unknown weekday key '{key}' in operating schedule")
            if entry is None:
                continue
            if not isinstance(entry, dict):
                raise ValueError(f"hours for '{key}' must be an object")
            days[day] = DaySchedule(
                open=_as_time_string(entry.get("open")),
                close=_as_time_string(entry.get("close")),
                closed=entry.get("closed") is True
            )
        return cls(days=days)

class ScheduleDecision(BaseModel):
    allowed: bool
    day: Weekday
    reason: Optional[str] = None
    allowed_range: str
