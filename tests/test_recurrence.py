from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

import pytest

from medreminder.reminders.recurrence_models import (
    CommonPatterns,
    RecurrenceCalculator,
    RepeatType,
    Schedule,
    Weekday,
)


TODAY = date(2026, 10, 19)


def daily(times, start=TODAY, end=None):
    return Schedule(times=times, start_date=start, end_date=end, repeat_type=RepeatType.DAILY)


def test_daily_scenario_from_mid_morning():
    schedule = daily([time(9, 0), time(21, 0)])
    from_time = datetime(2026, 10, 19, 10, 0)

    result = RecurrenceCalculator.occurrences(schedule, from_time, horizon_days=7)

    assert result[0] == datetime(2026, 10, 19, 21, 0)
    rest = result[1:]
    assert len(rest) == 14
    for offset in range(1, 8):
        day = TODAY + timedelta(days=offset)
        assert datetime.combine(day, time(9, 0)) in rest
        assert datetime.combine(day, time(21, 0)) in rest


def test_weekly_scenario_from_tuesday_midnight():
    from_time = datetime(2026, 10, 20, 0, 0)
    assert from_time.weekday() == Weekday.TUESDAY.value
    schedule = Schedule(
        times=[time(8, 0)],
        start_date=date(2026, 10, 1),
        repeat_type=RepeatType.WEEKLY,
        weekdays={Weekday.MONDAY, Weekday.WEDNESDAY},
    )

    result = RecurrenceCalculator.occurrences(schedule, from_time)

    assert result[0] == datetime(2026, 10, 21, 8, 0)
    assert result[0].weekday() == Weekday.WEDNESDAY.value


def test_once_in_the_past_yields_nothing():
    schedule = Schedule(times=[time(7, 0)], start_date=TODAY, repeat_type=RepeatType.ONCE)
    assert RecurrenceCalculator.occurrences(schedule, datetime(2026, 10, 19, 12, 0)) == []

    earlier = Schedule(times=[time(7, 0)], start_date=date(2026, 9, 1), repeat_type=RepeatType.ONCE)
    assert RecurrenceCalculator.occurrences(earlier, datetime(2026, 10, 19, 12, 0)) == []


def test_once_returns_only_future_times_on_start_date():
    schedule = Schedule(times=[time(7, 0), time(18, 30)], start_date=TODAY, repeat_type=RepeatType.ONCE)
    result = RecurrenceCalculator.occurrences(schedule, datetime(2026, 10, 19, 12, 0))
    assert result == [datetime(2026, 10, 19, 18, 30)]


def test_monthly_end_of_month_does_not_skip_or_duplicate_months():
    schedule = Schedule(
        times=[time(9, 0)],
        start_date=date(2026, 1, 31),
        end_date=date(2026, 12, 31),
        repeat_type=RepeatType.MONTHLY,
    )

    result = RecurrenceCalculator.occurrences(schedule, datetime(2026, 1, 1, 0, 0))

    assert [d.month for d in result] == list(range(1, 13))
    assert [d.day for d in result] == [31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31]
    # Deterministic across calls
    assert result == RecurrenceCalculator.occurrences(schedule, datetime(2026, 1, 1, 0, 0))


def test_monthly_clamps_to_leap_day():
    schedule = Schedule(
        times=[time(9, 0)],
        start_date=date(2024, 1, 31),
        end_date=date(2024, 3, 31),
        repeat_type=RepeatType.MONTHLY,
    )
    result = RecurrenceCalculator.occurrences(schedule, datetime(2024, 1, 1))
    assert [d.date() for d in result] == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)]


def test_monthly_without_end_date_reaches_next_month():
    schedule = Schedule(times=[time(9, 0)], start_date=date(2026, 9, 5), repeat_type=RepeatType.MONTHLY)
    result = RecurrenceCalculator.occurrences(schedule, datetime(2026, 10, 19, 10, 0))
    assert result == [datetime(2026, 11, 5, 9, 0)]


@pytest.mark.parametrize("horizon", [0, 1, 3, 7, 14])
@pytest.mark.parametrize("start_offset", [-10, -1, 0, 2])
@pytest.mark.parametrize("hour", [0, 9, 23])
def test_daily_stays_within_horizon(horizon, start_offset, hour):
    schedule = daily([time(6, 0), time(12, 0), time(22, 45)], start=TODAY + timedelta(days=start_offset))
    from_time = datetime(2026, 10, 19, hour, 15)

    result = RecurrenceCalculator.occurrences(schedule, from_time, horizon_days=horizon)

    assert len({d.date() for d in result}) <= horizon + 1
    assert all(d > from_time for d in result)
    assert result == sorted(result)


@pytest.mark.parametrize("weekdays", [
    {Weekday.MONDAY},
    {Weekday.SATURDAY, Weekday.SUNDAY},
    {Weekday.TUESDAY, Weekday.THURSDAY, Weekday.FRIDAY},
])
def test_weekly_only_produces_configured_weekdays(weekdays):
    schedule = Schedule(
        times=[time(8, 0), time(20, 0)],
        start_date=date(2026, 10, 1),
        repeat_type=RepeatType.WEEKLY,
        weekdays=weekdays,
    )
    result = RecurrenceCalculator.occurrences(schedule, datetime(2026, 10, 19, 9, 0), horizon_days=14)

    allowed = {day.value for day in weekdays}
    assert result
    assert all(d.weekday() in allowed for d in result)
    assert result == sorted(result)


def test_custom_without_cron_matches_daily():
    from_time = datetime(2026, 10, 19, 10, 0)
    custom = Schedule(times=[time(9, 0), time(21, 0)], start_date=TODAY, repeat_type=RepeatType.CUSTOM)
    assert RecurrenceCalculator.occurrences(custom, from_time) == RecurrenceCalculator.occurrences(
        daily([time(9, 0), time(21, 0)]), from_time
    )


def test_custom_cron_rule_within_horizon():
    schedule = Schedule(
        times=[],
        start_date=TODAY,
        repeat_type=RepeatType.CUSTOM,
        cron_expression="0 8 * * *",
    )
    result = RecurrenceCalculator.occurrences(schedule, datetime(2026, 10, 19, 10, 0), horizon_days=3)
    assert result == [datetime(2026, 10, d, 8, 0) for d in (20, 21, 22)]


def test_custom_bad_cron_rule_yields_nothing():
    schedule = Schedule(times=[], start_date=TODAY, repeat_type=RepeatType.CUSTOM, cron_expression="not a cron")
    assert RecurrenceCalculator.occurrences(schedule, datetime(2026, 10, 19, 10, 0)) == []


def test_custom_cron_rule_ignores_times_list():
    with_times = Schedule(
        times=[time(13, 0)],
        start_date=TODAY,
        repeat_type=RepeatType.CUSTOM,
        cron_expression="0 8 * * *",
    )
    without_times = Schedule(times=[], start_date=TODAY, repeat_type=RepeatType.CUSTOM, cron_expression="0 8 * * *")
    from_time = datetime(2026, 10, 19, 10, 0)

    assert without_times.is_valid
    assert RecurrenceCalculator.occurrences(with_times, from_time) == RecurrenceCalculator.occurrences(
        without_times, from_time
    )


def test_custom_without_cron_needs_times():
    schedule = Schedule(times=[], start_date=TODAY, repeat_type=RepeatType.CUSTOM)
    assert not schedule.is_valid
    assert RecurrenceCalculator.occurrences(schedule, datetime(2026, 10, 19, 10, 0)) == []


@pytest.mark.parametrize("schedule", [
    Schedule(times=[], start_date=TODAY, repeat_type=RepeatType.DAILY),
    Schedule(times=[time(9, 0)], start_date=TODAY, end_date=TODAY - timedelta(days=1)),
    Schedule(times=[time(9, 0)], start_date=TODAY, repeat_type=RepeatType.WEEKLY, weekdays=set()),
    Schedule(times=[time(9, 0)], start_date=TODAY - timedelta(days=30), end_date=TODAY - timedelta(days=2)),
])
def test_invalid_or_expired_schedules_yield_nothing(schedule):
    assert RecurrenceCalculator.occurrences(schedule, datetime(2026, 10, 19, 10, 0)) == []


def test_end_date_cuts_daily_series():
    schedule = daily([time(9, 0)], end=TODAY + timedelta(days=2))
    result = RecurrenceCalculator.occurrences(schedule, datetime(2026, 10, 19, 8, 0))
    assert [d.date() for d in result] == [TODAY, TODAY + timedelta(days=1), TODAY + timedelta(days=2)]


def test_times_are_wall_clock_in_reminder_zone():
    berlin = ZoneInfo("Europe/Berlin")
    schedule = daily([time(9, 0)])
    from_time = datetime(2026, 10, 19, 5, 0, tzinfo=ZoneInfo("UTC"))

    result = RecurrenceCalculator.occurrences(schedule, from_time, horizon_days=1, tz=berlin)

    assert result[0].tzinfo == berlin
    assert result[0].hour == 9
    assert result[0] > from_time


def test_schedule_round_trips_through_dict():
    schedule = CommonPatterns.weekly([time(8, 30)], TODAY, [Weekday.MONDAY, Weekday.FRIDAY])
    assert Schedule.from_dict(schedule.to_dict()) == schedule


def test_weekday_parse_accepts_names_and_numbers():
    assert Weekday.parse("MON") is Weekday.MONDAY
    assert Weekday.parse("wednesday") is Weekday.WEDNESDAY
    assert Weekday.parse(6) is Weekday.SUNDAY
    with pytest.raises(ValueError):
        Weekday.parse("funday")


def test_repeat_type_is_case_insensitive():
    assert RepeatType("WEEKLY") is RepeatType.WEEKLY
