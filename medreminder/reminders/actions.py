import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from .config import settings
from .dispatcher import ScheduleDispatcher
from .identifiers import SNOOZE_SUFFIX
from .metrics import reminder_actions_total
from .models import (
    ActionEvent,
    ActionOutcome,
    OutcomeKind,
    Reminder,
    ReminderAction,
    ReminderPayload,
    ReminderType,
)
from .notifier import Notifier
from medreminder.utils.timezone import to_utc_aware, utc_now


logger = logging.getLogger(__name__)

ReminderLookup = Callable[[str], Optional[Reminder]]


class ActionHandler:
    """Resolves a user's response to a delivered reminder.

    Taken and dismissed only clear the live notification. Snooze clears it
    and submits one new occurrence under the reminder's snooze token, so a
    second snooze replaces the first instead of stacking.
    """

    def __init__(
        self,
        dispatcher: ScheduleDispatcher,
        notifier: Notifier,
        reminder_lookup: Optional[ReminderLookup] = None,
        snooze_delay: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.dispatcher = dispatcher
        self.notifier = notifier
        self.reminder_lookup = reminder_lookup
        self.snooze_delay = snooze_delay or timedelta(minutes=settings.SNOOZE_MINUTES)
        self.clock = clock

    def on_action(self, event: ActionEvent, now: Optional[datetime] = None) -> ActionOutcome:
        action = ReminderAction.parse(event.action)
        logger.debug(f"[Action] Reminder action received: {action.value} for {event.reminder_id}")

        self._clear_notification(event)

        if action == ReminderAction.TAKEN:
            outcome = ActionOutcome(OutcomeKind.TAKEN, event.reminder_id, event.token)
            logger.info(f"[Action] Medicine marked as taken for reminder {event.reminder_id}")
        elif action == ReminderAction.SNOOZE:
            outcome = self._snooze(event, to_utc_aware(now or self.clock()))
        else:
            outcome = ActionOutcome(OutcomeKind.DISMISSED, event.reminder_id, event.token)
            logger.info(f"[Action] Dismissed reminder {event.reminder_id}")

        reminder_actions_total.labels(outcome=outcome.kind.value).inc()
        return outcome

    def _clear_notification(self, event: ActionEvent) -> None:
        try:
            self.notifier.dismiss(event.token, user_id=event.user_id)
        except Exception as e:
            logger.warning(f"[Action] Could not clear notification {event.token}: {e!r}")

    def _snooze(self, event: ActionEvent, now: datetime) -> ActionOutcome:
        new_instant = now + self.snooze_delay
        payload = self._payload_for(event)
        new_token = self.dispatcher.schedule_variant(
            event.reminder_id, SNOOZE_SUFFIX, new_instant, payload, now=now
        )
        if new_token is None:
            logger.error(f"[Action] Failed to snooze reminder {event.reminder_id}")
        else:
            logger.info(f"[Action] Snoozed reminder {event.reminder_id} until {new_instant.isoformat()}")
        return ActionOutcome(
            OutcomeKind.SNOOZED,
            event.reminder_id,
            event.token,
            new_instant=new_instant,
            new_token=new_token,
        )

    def _payload_for(self, event: ActionEvent) -> ReminderPayload:
        reminder = None
        if self.reminder_lookup is not None:
            try:
                reminder = self.reminder_lookup(event.reminder_id)
            except Exception as e:
                logger.warning(f"[Action] Reminder lookup failed for {event.reminder_id}: {e!r}")

        if reminder is not None:
            return ReminderPayload(
                reminder_id=reminder.id,
                reminder_type=reminder.type,
                title=reminder.title,
                message=reminder.message,
                user_id=reminder.user_id,
            )

        reminder_type = ReminderType.parse(event.reminder_type or ReminderType.MEDICINE.value)
        return ReminderPayload(
            reminder_id=event.reminder_id,
            reminder_type=reminder_type,
            title=event.title or "Snoozed Reminder",
            message=event.message or "Time to take your medicine",
            user_id=event.user_id,
        )
