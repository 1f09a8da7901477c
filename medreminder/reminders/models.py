"""
Reminder domain models shared by the scheduler, delivery and action handlers
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .recurrence_models import Schedule
from medreminder.utils.timezone import utc_now


class ReminderType(Enum):
    MEDICINE = "medicine"
    VACCINATION = "vaccination"
    APPOINTMENT = "appointment"
    CHECKUP = "checkup"
    CUSTOM = "custom"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for member in cls:
                if member.value == value.strip().lower():
                    return member
        return None

    @classmethod
    def parse(cls, value: Any) -> "ReminderType":
        """Lenient lookup used on fire/action payloads; unknown values become CUSTOM."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.CUSTOM

    @property
    def is_urgent(self) -> bool:
        return self in (ReminderType.MEDICINE, ReminderType.VACCINATION, ReminderType.APPOINTMENT)


_DEFAULT_MESSAGES = {
    ReminderType.MEDICINE: "Time to take your medicine: {title}",
    ReminderType.VACCINATION: "Vaccination reminder: {title}",
    ReminderType.APPOINTMENT: "Upcoming appointment: {title}",
    ReminderType.CHECKUP: "Health checkup reminder: {title}",
    ReminderType.CUSTOM: "{title}",
}


@dataclass
class Reminder:
    """A user's health reminder as handed over by the reminder repository"""
    id: str
    user_id: str
    type: ReminderType
    title: str
    schedule: Schedule
    description: Optional[str] = None
    enabled: bool = True
    created_at: datetime = field(default_factory=utc_now)
    last_triggered_at: Optional[datetime] = None
    timezone: Optional[str] = None

    @property
    def message(self) -> str:
        if self.description:
            return self.description
        return _DEFAULT_MESSAGES[self.type].format(title=self.title)


@dataclass(frozen=True)
class Occurrence:
    reminder_id: str
    index: int
    trigger_at: datetime


@dataclass
class ReminderPayload:
    """What a channel carries to the delivery handler; embedded at scheduling time."""
    reminder_id: str
    reminder_type: ReminderType
    title: str
    message: str
    user_id: Optional[str] = None
    token: Optional[int] = None
    scheduled_for: Optional[datetime] = None

    @classmethod
    def for_reminder(cls, reminder: Reminder, token: int, scheduled_for: datetime) -> "ReminderPayload":
        return cls(
            reminder_id=reminder.id,
            reminder_type=reminder.type,
            title=reminder.title,
            message=reminder.message,
            user_id=reminder.user_id,
            token=token,
            scheduled_for=scheduled_for,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reminder_id": self.reminder_id,
            "reminder_type": self.reminder_type.value,
            "title": self.title,
            "message": self.message,
            "user_id": self.user_id,
            "token": self.token,
            "scheduled_for": self.scheduled_for.isoformat() if self.scheduled_for else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReminderPayload":
        scheduled_for = data.get("scheduled_for")
        if isinstance(scheduled_for, str) and scheduled_for:
            scheduled_for = datetime.fromisoformat(scheduled_for.replace("Z", "+00:00"))
        return cls(
            reminder_id=str(data.get("reminder_id") or ""),
            reminder_type=ReminderType.parse(data.get("reminder_type")),
            title=data.get("title") or "Health Reminder",
            message=data.get("message") or "",
            user_id=data.get("user_id"),
            token=data.get("token"),
            scheduled_for=scheduled_for or None,
        )


@dataclass
class DeliveredReminder:
    """Handed to the notifier when a channel fires"""
    reminder_id: str
    fired_at: datetime
    title: str
    message: str
    type: ReminderType
    user_id: Optional[str] = None
    category: str = ""
    actions: List["ReminderAction"] = field(default_factory=list)


@dataclass(frozen=True)
class AlertPattern:
    sound_uri: str
    vibration: Tuple[int, ...]
    sound_seconds: int
    urgent: bool


class ReminderAction(Enum):
    TAKEN = "taken"
    SNOOZE = "snooze"
    DISMISS = "dismiss"

    @classmethod
    def parse(cls, value: Any) -> "ReminderAction":
        """Unknown or missing actions fall back to DISMISS."""
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower()
        aliases = {
            "taken": cls.TAKEN,
            "mark_taken": cls.TAKEN,
            "snooze": cls.SNOOZE,
            "snoozed": cls.SNOOZE,
            "dismiss": cls.DISMISS,
            "dismissed": cls.DISMISS,
        }
        return aliases.get(key, cls.DISMISS)


@dataclass
class ActionEvent:
    """A user response coming back from a presented notification.

    Only action, reminder_id and token are required; the remaining fields are
    echoed from the notification data and used when the reminder record is
    not available.
    """
    action: Any
    reminder_id: str
    token: int
    user_id: Optional[str] = None
    reminder_type: Optional[str] = None
    title: Optional[str] = None
    message: Optional[str] = None


class OutcomeKind(Enum):
    TAKEN = "taken"
    SNOOZED = "snoozed"
    DISMISSED = "dismissed"


@dataclass
class ActionOutcome:
    kind: OutcomeKind
    reminder_id: str
    token: int
    new_instant: Optional[datetime] = None
    new_token: Optional[int] = None
