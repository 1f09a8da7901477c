import os
import sys
from datetime import date, datetime, time, timedelta, timezone

import pytest

# Settings are instantiated at import time; pin the values tests rely on
os.environ.setdefault("REMINDER_HORIZON_DAYS", "7")
os.environ.setdefault("REMINDER_MAX_CANCEL_INDEX", "100")
os.environ.setdefault("REMINDER_SNOOZE_MINUTES", "10")
os.environ.setdefault("REMINDER_DEFAULT_TIMEZONE", "UTC")
os.environ.setdefault("REMINDER_METRICS_ENABLED", "false")
os.environ.setdefault("REMINDER_REQUIRE_API_KEY", "false")

# Ensure project root is in pythonpath
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from medreminder.reminders.engine import ReminderEngine  # noqa: E402
from medreminder.reminders.models import Reminder, ReminderType  # noqa: E402
from medreminder.reminders.notifier import Notifier  # noqa: E402
from medreminder.reminders.recurrence_models import RepeatType, Schedule  # noqa: E402


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeNotifier(Notifier):
    """Collapses posts by token the way a device notification tray does"""

    def __init__(self):
        self.presented = []
        self.dismissed = []
        self.visible = {}

    def present(self, token, delivered, alert):
        self.presented.append((token, delivered, alert))
        self.visible[token] = delivered

    def dismiss(self, token, user_id=None):
        self.dismissed.append(token)
        self.visible.pop(token, None)


# Monday 19 October 2026, 10:00 UTC
NOW = datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def engine(clock, notifier):
    return ReminderEngine.in_memory(notifier, clock=clock)


def make_reminder(
    reminder_id="rem-1",
    times=(time(9, 0), time(21, 0)),
    repeat_type=RepeatType.DAILY,
    start_date=date(2026, 10, 19),
    reminder_type=ReminderType.MEDICINE,
    **kwargs,
) -> Reminder:
    schedule_kwargs = {
        key: kwargs.pop(key) for key in ("weekdays", "end_date", "cron_expression") if key in kwargs
    }
    return Reminder(
        id=reminder_id,
        user_id=kwargs.pop("user_id", "user-1"),
        type=reminder_type,
        title=kwargs.pop("title", "Metformin 500mg"),
        schedule=Schedule(
            times=list(times),
            start_date=start_date,
            repeat_type=repeat_type,
            **schedule_kwargs,
        ),
        **kwargs,
    )
