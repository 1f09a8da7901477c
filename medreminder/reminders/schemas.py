"""
Request/response schemas for the reminder engine API
"""
from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .models import ActionEvent, ActionOutcome, Reminder, ReminderType
from .recurrence_models import RepeatType, Schedule, Weekday
from medreminder.utils.timezone import utc_now


class ScheduleIn(BaseModel):
    times: List[time] = Field(default_factory=list)
    weekdays: Optional[List[Weekday]] = None
    start_date: date
    end_date: Optional[date] = None
    repeat_type: RepeatType = RepeatType.DAILY
    cron_expression: Optional[str] = None

    @field_validator("weekdays", mode="before")
    @classmethod
    def parse_weekdays(cls, v):
        if v is None:
            return None
        return [Weekday.parse(day) for day in v]

    def to_domain(self) -> Schedule:
        return Schedule(
            times=list(self.times),
            start_date=self.start_date,
            repeat_type=self.repeat_type,
            weekdays=set(self.weekdays) if self.weekdays else None,
            end_date=self.end_date,
            cron_expression=self.cron_expression,
        )


class ReminderIn(BaseModel):
    """Reminder record as sent by the owning backend"""
    id: str
    user_id: str
    type: ReminderType
    title: str
    description: Optional[str] = None
    schedule: ScheduleIn
    enabled: bool = True
    timezone: Optional[str] = None
    created_at: Optional[datetime] = None
    last_triggered_at: Optional[datetime] = None

    def to_domain(self) -> Reminder:
        return Reminder(
            id=self.id,
            user_id=self.user_id,
            type=self.type,
            title=self.title,
            description=self.description,
            schedule=self.schedule.to_domain(),
            enabled=self.enabled,
            timezone=self.timezone,
            created_at=self.created_at or utc_now(),
            last_triggered_at=self.last_triggered_at,
        )


class ScheduleResult(BaseModel):
    reminder_id: str
    scheduled: int


class RefreshIn(BaseModel):
    reminders: List[ReminderIn]


class RefreshResult(BaseModel):
    reminders: int
    scheduled: int


class ActionIn(BaseModel):
    # Left as a plain string: unknown actions resolve to a dismiss
    action: str
    reminder_id: str
    token: int
    user_id: Optional[str] = None
    reminder_type: Optional[str] = None
    title: Optional[str] = None
    message: Optional[str] = None

    def to_domain(self) -> ActionEvent:
        return ActionEvent(**self.model_dump())


class ActionOutcomeRead(BaseModel):
    outcome: str
    reminder_id: str
    token: int
    new_instant: Optional[datetime] = None
    new_token: Optional[int] = None

    @classmethod
    def from_domain(cls, outcome: ActionOutcome) -> "ActionOutcomeRead":
        return cls(
            outcome=outcome.kind.value,
            reminder_id=outcome.reminder_id,
            token=outcome.token,
            new_instant=outcome.new_instant,
            new_token=outcome.new_token,
        )


class DeviceTokenCreate(BaseModel):
    """Schema for registering device tokens"""
    user_id: str
    platform: str = Field(..., pattern="^(ios|android|web)$")
    fcm_token: str


class AlarmTestIn(BaseModel):
    user_id: str


class AlarmTestRead(BaseModel):
    reminder_id: str
    fired_at: datetime
