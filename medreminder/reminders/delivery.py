import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .config import ReminderSettings, settings
from .metrics import reminders_delivered_total, reminders_delivery_failed_total
from .models import AlertPattern, DeliveredReminder, ReminderAction, ReminderPayload, ReminderType
from .notifier import Notifier
from medreminder.utils.timezone import to_utc_aware, utc_now


logger = logging.getLogger(__name__)

CHANNEL_ID_MEDICINE = "medicine_reminders"
CHANNEL_ID_VACCINATION = "vaccination_reminders"
CHANNEL_ID_APPOINTMENT = "appointment_reminders"
CHANNEL_ID_GENERAL = "general_health_reminders"

URGENT_VIBRATION = (0, 500, 200, 500, 200, 500)
LIGHT_VIBRATION = (0, 250, 250, 250)

_CATEGORIES = {
    ReminderType.MEDICINE: CHANNEL_ID_MEDICINE,
    ReminderType.VACCINATION: CHANNEL_ID_VACCINATION,
    ReminderType.APPOINTMENT: CHANNEL_ID_APPOINTMENT,
    ReminderType.CHECKUP: CHANNEL_ID_GENERAL,
    ReminderType.CUSTOM: CHANNEL_ID_GENERAL,
}


def category_for(reminder_type: ReminderType) -> str:
    return _CATEGORIES[reminder_type]


def actions_for(reminder_type: ReminderType) -> List[ReminderAction]:
    # Medicine can be marked taken or snoozed, everything else is just dismissed
    if reminder_type == ReminderType.MEDICINE:
        return [ReminderAction.TAKEN, ReminderAction.SNOOZE]
    return [ReminderAction.DISMISS]


@dataclass(frozen=True)
class NotificationConfig:
    """Alert feedback settings, fixed when the handler is constructed"""
    sound_uri: str = "default"
    sound_seconds: int = 10
    urgent_vibration: Tuple[int, ...] = URGENT_VIBRATION
    light_vibration: Tuple[int, ...] = LIGHT_VIBRATION

    @classmethod
    def from_settings(cls, cfg: ReminderSettings = settings) -> "NotificationConfig":
        return cls(sound_uri=cfg.ALERT_SOUND_URI, sound_seconds=cfg.ALERT_SOUND_SECONDS)


class DeliveryHandler:
    """Runs when either channel fires a token.

    Both channels call the same handler; a double firing posts under the same
    notification id, which the notifier collapses.
    """

    def __init__(
        self,
        notifier: Notifier,
        config: NotificationConfig,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.notifier = notifier
        self.config = config
        self.clock = clock

    def alert_for(self, reminder_type: ReminderType) -> AlertPattern:
        urgent = reminder_type.is_urgent
        return AlertPattern(
            sound_uri=self.config.sound_uri,
            vibration=self.config.urgent_vibration if urgent else self.config.light_vibration,
            sound_seconds=self.config.sound_seconds,
            urgent=urgent,
        )

    def on_fire(
        self,
        token: int,
        payload: Union[ReminderPayload, Dict[str, Any]],
        fired_at: Optional[datetime] = None,
    ) -> Optional[DeliveredReminder]:
        if isinstance(payload, dict):
            payload = ReminderPayload.from_dict(payload)
        if not payload.reminder_id:
            logger.warning(f"[Delivery] Token {token} fired without a reminder id, dropping")
            return None

        delivered = DeliveredReminder(
            reminder_id=payload.reminder_id,
            fired_at=to_utc_aware(fired_at or self.clock()),
            title=payload.title,
            message=payload.message,
            type=payload.reminder_type,
            user_id=payload.user_id,
            category=category_for(payload.reminder_type),
            actions=actions_for(payload.reminder_type),
        )
        logger.debug(f"[Delivery] Reminder received: id={delivered.reminder_id}, type={delivered.type.value}")
        self._present(token, delivered)
        return delivered

    def test_alarm(self, user_id: str) -> DeliveredReminder:
        """Send an immediate notification so the user can check sound and vibration"""
        now = to_utc_aware(self.clock())
        delivered = DeliveredReminder(
            reminder_id=f"test_{int(now.timestamp() * 1000)}",
            fired_at=now,
            title="Test Alarm",
            message="This is a test notification. Your reminders are working!",
            type=ReminderType.CUSTOM,
            user_id=user_id,
            category=CHANNEL_ID_GENERAL,
        )
        self._present(int(now.timestamp()) & 0x7FFFFFFF, delivered)
        return delivered

    def _present(self, token: int, delivered: DeliveredReminder) -> None:
        try:
            self.notifier.present(token, delivered, self.alert_for(delivered.type))
        except Exception as e:
            # The other channel may still deliver; never fail the firing task
            reminders_delivery_failed_total.inc()
            logger.error(f"[Delivery] Notifier failed for reminder {delivered.reminder_id}: {e!r}")
            return
        reminders_delivered_total.labels(reminder_type=delivered.type.value).inc()
        logger.info(f"[Delivery] Reminder notification sent for {delivered.reminder_id} (token {token})")
