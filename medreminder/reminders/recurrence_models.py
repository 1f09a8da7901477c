"""
Recurrence rules for health reminders and the occurrence calculator
"""
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from croniter import croniter
from dateutil.relativedelta import relativedelta


logger = logging.getLogger(__name__)

DEFAULT_HORIZON_DAYS = 7
# Upper bound on cron-driven occurrences produced in a single pass
MAX_CRON_OCCURRENCES = 500


class RepeatType(Enum):
    """Types of recurrence patterns"""
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for member in cls:
                if member.value == value.strip().lower():
                    return member
        return None


class Weekday(Enum):
    """Days of the week (matches date.weekday())"""
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def parse(cls, value: Any) -> "Weekday":
        """Accepts 0-6, 'MON', 'monday', or a Weekday."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            return cls(value)
        name = str(value).strip().upper()
        for member in cls:
            if member.name == name or member.name[:3] == name:
                return member
        raise ValueError(f"Unknown weekday: {value!r}")


@dataclass
class Schedule:
    """When a reminder should fire.

    `times` are wall-clock times of day; they are combined with calendar dates
    in the reminder's timezone. `weekdays` only matters for WEEKLY rules and
    `cron_expression` only for CUSTOM rules.

    An empty `times` list makes the schedule invalid, except for a CUSTOM rule
    with a cron expression: the cron rule carries its own times of day and
    `times` is ignored.
    """
    times: List[time]
    start_date: date
    repeat_type: RepeatType = RepeatType.DAILY
    weekdays: Optional[Set[Weekday]] = None
    end_date: Optional[date] = None
    cron_expression: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        if self.end_date is not None and self.end_date < self.start_date:
            return False
        if self.repeat_type == RepeatType.CUSTOM and self.cron_expression:
            return True
        if not self.times:
            return False
        if self.repeat_type == RepeatType.WEEKLY and not self.weekdays:
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "times": [t.strftime("%H:%M") for t in self.times],
            "start_date": self.start_date.isoformat(),
            "repeat_type": self.repeat_type.value,
            "weekdays": sorted(day.value for day in self.weekdays) if self.weekdays else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "cron_expression": self.cron_expression,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Schedule":
        weekdays = data.get("weekdays")
        return cls(
            times=[time.fromisoformat(t) if isinstance(t, str) else t for t in data.get("times", [])],
            start_date=date.fromisoformat(data["start_date"]) if isinstance(data["start_date"], str) else data["start_date"],
            repeat_type=RepeatType(data.get("repeat_type", RepeatType.DAILY.value)),
            weekdays={Weekday.parse(day) for day in weekdays} if weekdays else None,
            end_date=date.fromisoformat(data["end_date"]) if isinstance(data.get("end_date"), str) else data.get("end_date"),
            cron_expression=data.get("cron_expression"),
        )


class RecurrenceCalculator:
    """Computes future occurrences of a Schedule within a bounded horizon"""

    @staticmethod
    def occurrences(
        schedule: Schedule,
        from_time: datetime,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
        tz: Optional[tzinfo] = None,
    ) -> List[datetime]:
        """Return the sorted occurrences strictly after `from_time`.

        Dates are walked in the wall clock of `tz` (or of `from_time` when no
        zone is given). An invalid schedule yields an empty list instead of
        raising.
        """
        if not schedule.is_valid:
            logger.debug(f"[Recurrence] Invalid schedule, no occurrences: {schedule}")
            return []

        horizon_days = max(0, int(horizon_days))
        if tz is not None:
            from_time = from_time.astimezone(tz) if from_time.tzinfo else from_time.replace(tzinfo=tz)
        zone = from_time.tzinfo

        if schedule.repeat_type == RepeatType.ONCE:
            found = RecurrenceCalculator._once(schedule, from_time, zone)
        elif schedule.repeat_type == RepeatType.WEEKLY:
            allowed = {day.value for day in schedule.weekdays or ()}
            found = RecurrenceCalculator._by_day(
                schedule, from_time, zone, horizon_days, lambda d: d.weekday() in allowed
            )
        elif schedule.repeat_type == RepeatType.MONTHLY:
            found = RecurrenceCalculator._monthly(schedule, from_time, zone, horizon_days)
        elif schedule.repeat_type == RepeatType.CUSTOM and schedule.cron_expression:
            found = RecurrenceCalculator._cron(schedule, from_time, horizon_days)
        else:
            # DAILY, and CUSTOM without a cron rule
            found = RecurrenceCalculator._by_day(schedule, from_time, zone, horizon_days, None)

        return sorted(found)

    @staticmethod
    def _combine(day: date, times: Iterable[time], zone: Optional[tzinfo], from_time: datetime) -> List[datetime]:
        result = []
        for t in times:
            candidate = datetime.combine(day, t.replace(tzinfo=None)).replace(tzinfo=zone)
            if candidate > from_time:
                result.append(candidate)
        return result

    @staticmethod
    def _once(schedule: Schedule, from_time: datetime, zone: Optional[tzinfo]) -> List[datetime]:
        return RecurrenceCalculator._combine(schedule.start_date, schedule.times, zone, from_time)

    @staticmethod
    def _by_day(schedule, from_time, zone, horizon_days, accept) -> List[datetime]:
        """Walk calendar days up to the end date, clipped to from + horizon."""
        last = from_time.date() + timedelta(days=horizon_days)
        if schedule.end_date is not None:
            last = min(last, schedule.end_date)
        current = max(schedule.start_date, from_time.date())

        result = []
        while current <= last:
            if accept is None or accept(current):
                result.extend(RecurrenceCalculator._combine(current, schedule.times, zone, from_time))
            current += timedelta(days=1)
        return result

    @staticmethod
    def _monthly(schedule, from_time, zone, horizon_days) -> List[datetime]:
        """Same day of month as the start date, clamped to the month's last day.

        Each date is derived from the start date (start + k months) rather than
        from the previous occurrence, so Jan 31 gives Feb 28/29, Mar 31, Apr 30.
        """
        if schedule.end_date is not None:
            last = schedule.end_date
        else:
            months_ahead = max(1, math.ceil(horizon_days / 30))
            last = max(schedule.start_date, from_time.date()) + relativedelta(months=months_ahead)

        result = []
        k = 0
        current = schedule.start_date
        while current <= last:
            if current >= from_time.date():
                result.extend(RecurrenceCalculator._combine(current, schedule.times, zone, from_time))
            k += 1
            current = schedule.start_date + relativedelta(months=k)
        return result

    @staticmethod
    def _cron(schedule, from_time, horizon_days) -> List[datetime]:
        last = from_time.date() + timedelta(days=horizon_days)
        if schedule.end_date is not None:
            last = min(last, schedule.end_date)
        start = datetime.combine(schedule.start_date, time.min).replace(tzinfo=from_time.tzinfo)
        base = max(from_time, start - timedelta(microseconds=1))

        try:
            itr = croniter(schedule.cron_expression, base)
        except (ValueError, KeyError) as e:
            logger.warning(f"[Recurrence] Bad cron expression {schedule.cron_expression!r}: {e}")
            return []

        result = []
        while len(result) < MAX_CRON_OCCURRENCES:
            nxt = itr.get_next(datetime)
            if nxt.date() > last:
                break
            if nxt > from_time:
                result.append(nxt)
        return result


class CommonPatterns:
    """Common schedules"""

    @staticmethod
    def daily(times: List[time], start_date: date) -> Schedule:
        return Schedule(times=times, start_date=start_date, repeat_type=RepeatType.DAILY)

    @staticmethod
    def weekdays(times: List[time], start_date: date) -> Schedule:
        return Schedule(
            times=times,
            start_date=start_date,
            repeat_type=RepeatType.WEEKLY,
            weekdays={Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY,
                      Weekday.THURSDAY, Weekday.FRIDAY},
        )

    @staticmethod
    def weekly(times: List[time], start_date: date, weekdays: Iterable[Weekday]) -> Schedule:
        return Schedule(
            times=times,
            start_date=start_date,
            repeat_type=RepeatType.WEEKLY,
            weekdays=set(weekdays),
        )

    @staticmethod
    def monthly(times: List[time], start_date: date) -> Schedule:
        return Schedule(times=times, start_date=start_date, repeat_type=RepeatType.MONTHLY)

    @staticmethod
    def once(at: datetime) -> Schedule:
        return Schedule(times=[at.time()], start_date=at.date(), repeat_type=RepeatType.ONCE)
