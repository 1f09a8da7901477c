import logging
from datetime import datetime
from functools import lru_cache
from typing import Any, Callable, Dict, Iterable, Optional, Union

from .actions import ActionHandler, ReminderLookup
from .channels import InMemoryDeferredChannel, InMemoryTimerChannel
from .delivery import DeliveryHandler, NotificationConfig
from .dispatcher import ScheduleDispatcher
from .models import ActionEvent, ActionOutcome, DeliveredReminder, Reminder, ReminderPayload
from .notifier import Notifier
from medreminder.utils.timezone import utc_now


logger = logging.getLogger(__name__)


class ReminderEngine:
    """Plain-call surface the host wires its triggers to.

    schedule/cancel come from reminder edits, on_fire from either delivery
    channel, on_action from the notification's action buttons, and refresh
    from boot or a periodic pass.
    """

    def __init__(self, dispatcher: ScheduleDispatcher, delivery: DeliveryHandler, actions: ActionHandler):
        self.dispatcher = dispatcher
        self.delivery = delivery
        self.actions = actions

    def schedule(self, reminder: Reminder, now: Optional[datetime] = None) -> int:
        return self.dispatcher.schedule(reminder, now=now)

    def cancel(self, reminder_id: str) -> None:
        self.dispatcher.cancel(reminder_id)

    def reschedule(self, reminder: Reminder, now: Optional[datetime] = None) -> int:
        """Apply an edited rule: tear down the old tokens, then schedule the new ones"""
        self.dispatcher.cancel(reminder.id)
        return self.dispatcher.schedule(reminder, now=now)

    def refresh(self, reminders: Iterable[Reminder], now: Optional[datetime] = None) -> int:
        total = 0
        count = 0
        for reminder in reminders:
            total += self.reschedule(reminder, now=now)
            count += 1
        logger.info(f"[Engine] Refresh pass rescheduled {count} reminders ({total} occurrences)")
        return total

    def on_fire(
        self,
        token: int,
        payload: Union[ReminderPayload, Dict[str, Any]],
        fired_at: Optional[datetime] = None,
    ) -> Optional[DeliveredReminder]:
        return self.delivery.on_fire(token, payload, fired_at=fired_at)

    def on_action(self, event: ActionEvent, now: Optional[datetime] = None) -> ActionOutcome:
        return self.actions.on_action(event, now=now)

    def test_alarm(self, user_id: str) -> DeliveredReminder:
        return self.delivery.test_alarm(user_id)

    @classmethod
    def build(
        cls,
        primary,
        backup,
        notifier: Notifier,
        config: Optional[NotificationConfig] = None,
        reminder_lookup: Optional[ReminderLookup] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> "ReminderEngine":
        dispatcher = ScheduleDispatcher(primary, backup, clock=clock)
        delivery = DeliveryHandler(notifier, config or NotificationConfig.from_settings(), clock=clock)
        actions = ActionHandler(dispatcher, notifier, reminder_lookup=reminder_lookup, clock=clock)
        return cls(dispatcher, delivery, actions)

    @classmethod
    def in_memory(
        cls,
        notifier: Notifier,
        config: Optional[NotificationConfig] = None,
        reminder_lookup: Optional[ReminderLookup] = None,
        exact_allowed: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> "ReminderEngine":
        """Engine for a single-process host; the caller polls the channels' due()"""
        return cls.build(
            InMemoryTimerChannel(exact_allowed=exact_allowed),
            InMemoryDeferredChannel(clock=clock),
            notifier,
            config=config,
            reminder_lookup=reminder_lookup,
            clock=clock,
        )


@lru_cache(maxsize=1)
def get_engine() -> ReminderEngine:
    """Engine backed by Celery channels and FCM, shared by the API and workers"""
    from .celery_channels import CeleryDeferredChannel, CeleryTimerChannel, get_registry
    from .notifier import FcmNotifier
    from .repository import RedisDeviceTokenStore
    from medreminder.core.redis_client import get_redis

    registry = get_registry()
    notifier = FcmNotifier(RedisDeviceTokenStore(get_redis()))
    return ReminderEngine.build(CeleryTimerChannel(registry), CeleryDeferredChannel(registry), notifier)
