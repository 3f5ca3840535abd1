import pytest
from datetime import datetime, timedelta, timezone

from bookingcore.services.svc_availability import (
    AvailabilityMatcher, CLOSED_ON_DAY, HOURS_UNAVAILABLE, OUTSIDE_HOURS
)
from bookingcore.models.mod_schedule import DaySchedule, Weekday, WeeklySchedule

# 2026-10-18 is a Sunday
SUNDAY = datetime(2026, 10, 18)
MONDAY = datetime(2026, 10, 19)
TUESDAY = datetime(2026, 10, 20)


def at(day: datetime, hour: int, minute: int = 0) -> datetime:
    return day.replace(hour=hour, minute=minute)


class TestAvailabilityMatcher:
    @pytest.fixture
    def office_hours(self):
        return WeeklySchedule.from_document({
            day.value: {"open": "09:00", "close": "17:00", "closed": False} for day in Weekday
        })

    @pytest.fixture
    def night_hours(self):
        return WeeklySchedule.from_document({
            day.value: {"open": "22:00", "close": "02:00", "closed": False} for day in Weekday
        })

    @pytest.mark.parametrize("hour,minute", [(9, 0), (12, 30), (16, 59)])
    def test_same_day_window_allows_inside(self, office_hours, hour, minute):
        decision = AvailabilityMatcher.is_request_allowed(office_hours, at(MONDAY, hour, minute))

        assert decision.allowed is True
        assert decision.reason is None
        assert decision.day == Weekday.MON

    @pytest.mark.parametrize("hour,minute", [(8, 59), (17, 0), (23, 0)])
    def test_same_day_window_denies_outside(self, office_hours, hour, minute):
        decision = AvailabilityMatcher.is_request_allowed(office_hours, at(MONDAY, hour, minute))

        assert decision.allowed is False
        assert decision.reason == OUTSIDE_HOURS
        assert decision.allowed_range == "09:00-17:00"

    @pytest.mark.parametrize("hour,minute", [(23, 30), (1, 0), (22, 0)])
    def test_overnight_window_allows_across_midnight(self, night_hours, hour, minute):
        decision = AvailabilityMatcher.is_request_allowed(night_hours, at(TUESDAY, hour, minute))

        assert decision.allowed is True

    @pytest.mark.parametrize("hour,minute", [(2, 0), (12, 0), (21, 59)])
    def test_overnight_window_denies_daytime(self, night_hours, hour, minute):
        decision = AvailabilityMatcher.is_request_allowed(night_hours, at(TUESDAY, hour, minute))

        assert decision.allowed is False
        assert decision.reason == OUTSIDE_HOURS
        assert decision.allowed_range == "22:00-02:00"

    def test_closed_day_denies_regardless_of_hours(self):
        schedule = WeeklySchedule.from_document({
            "Mon": {"open": "00:00", "close": "23:59", "closed": True}
        })

        for hour in range(24):
            decision = AvailabilityMatcher.is_request_allowed(schedule, at(MONDAY, hour))
            assert decision.allowed is False
            assert decision.reason == CLOSED_ON_DAY
            assert decision.allowed_range == "closed"

    def test_missing_day_is_closed(self):
        schedule = WeeklySchedule.from_document({"Mon": {"open": "09:00", "close": "17:00"}})

        decision = AvailabilityMatcher.is_request_allowed(schedule, at(SUNDAY, 10))

        assert decision.allowed is False
        assert decision.day == Weekday.SUN
        assert decision.reason == CLOSED_ON_DAY

    @pytest.mark.parametrize("open_time,close_time", [
        ("9am", "17:00"),
        ("09:00", None),
        (None, None),
        ("24:00", "17:00"),
        ("09:60", "17:00"),
        ("", "17:00"),
    ])
    def test_unparseable_hours_treated_as_closed(self, open_time, close_time):
        schedule = WeeklySchedule.from_document({
            "Mon": {"open": open_time, "close": close_time, "closed": False}
        })

        decision = AvailabilityMatcher.is_request_allowed(schedule, at(MONDAY, 10))

        assert decision.allowed is False
        assert decision.reason == HOURS_UNAVAILABLE
        assert decision.allowed_range == "closed"

    def test_seconds_are_accepted(self):
        schedule = WeeklySchedule.from_document({"Mon": {"open": "09:00:00", "close": "17:00:30"}})

        assert AvailabilityMatcher.is_request_allowed(schedule, at(MONDAY, 9)).allowed is True
        assert AvailabilityMatcher.is_request_allowed(schedule, at(MONDAY, 17)).allowed is False

    def test_uses_wall_clock_without_zone_conversion(self, office_hours):
        # 10:00 at UTC-05:00 is 15:00 UTC; the matcher must look at 10:00
        instant = datetime(2026, 10, 19, 10, 0, tzinfo=timezone(timedelta(hours=-5)))
        assert AvailabilityMatcher.is_request_allowed(office_hours, instant).allowed is True

        late = datetime(2026, 10, 19, 18, 0, tzinfo=timezone(timedelta(hours=9)))
        assert AvailabilityMatcher.is_request_allowed(office_hours, late).allowed is False

    def test_weekday_key_is_sunday_first(self):
        assert AvailabilityMatcher.weekday_key(SUNDAY) == Weekday.SUN
        assert AvailabilityMatcher.weekday_key(MONDAY) == Weekday.MON
        assert AvailabilityMatcher.weekday_key(datetime(2026, 10, 17)) == Weekday.SAT

    def test_parse_time_to_minutes(self):
        assert AvailabilityMatcher.parse_time_to_minutes("00:00") == 0
        assert AvailabilityMatcher.parse_time_to_minutes("9:05") == 545
        assert AvailabilityMatcher.parse_time_to_minutes("23:59:59") == 1439
        assert AvailabilityMatcher.parse_time_to_minutes("23") is None
        assert AvailabilityMatcher.parse_time_to_minutes(None) is None

    def test_format_allowed_range_normalises_hours(self):
        assert AvailabilityMatcher.format_allowed_range(DaySchedule(open="9:00", close="17:00:00")) == "09:00-17:00"
        assert AvailabilityMatcher.format_allowed_range(None) == "closed"


class TestWeeklySchedule:
    def test_keys_are_case_insensitive(self):
        schedule = WeeklySchedule.from_document({"mon": {"open": "09:00", "close": "17:00"}, "SAT": None})

        assert schedule.for_day(Weekday.MON).open == "09:00"
        assert schedule.for_day(Weekday.SAT) is None
        assert set(schedule.days) == set(Weekday)

    def test_unknown_key_rejected_at_load(self):
        with pytest.raises(ValueError) as excinfo:
            WeeklySchedule.from_document({"Mnday": {"open": "09:00", "close": "17:00"}})

        assert "Mnday" in str(excinfo.value)

    def test_non_string_hours_become_missing(self):
        schedule = WeeklySchedule.from_document({"Mon": {"open": 9, "close": 17}})

        assert schedule.for_day(Weekday.MON).open is None
        assert schedule.for_day(Weekday.MON).closed is False

    def test_closed_flag_must_be_true(self):
        schedule = WeeklySchedule.from_document({"Mon": {"open": "09:00", "close": "17:00", "closed": "yes"}})

        assert schedule.for_day(Weekday.MON).closed is False
