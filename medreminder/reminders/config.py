from pydantic_settings import BaseSettings
from typing import List, Optional, Union


class ReminderSettings(BaseSettings):
    # Scheduling horizon
    HORIZON_DAYS: int = 7
    MAX_CANCEL_INDEX: int = 100
    SNOOZE_MINUTES: int = 10
    DEFAULT_TIMEZONE: str = "UTC"

    # Primary channel precision
    EXACT_TIMERS_ALLOWED: bool = True
    INEXACT_WINDOW_SECONDS: int = 900

    # Celery / Redis
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: Optional[str] = None
    REDIS_URL: str = "redis://localhost:6379/1"
    PRIMARY_QUEUE: str = "reminders.primary"
    BACKUP_QUEUE: str = "reminders.backup"

    # FCM
    FCM_PROJECT_ID: Optional[str] = None
    FCM_CREDENTIALS_JSON: Optional[str] = None  # path or inline JSON via env

    # Alert feedback
    ALERT_SOUND_URI: str = "default"
    ALERT_SOUND_SECONDS: int = 10

    # Metrics
    METRICS_ENABLED: bool = False

    # API access
    REQUIRE_API_KEY: bool = False
    VALID_API_KEYS: Union[List[str], str] = []

    class Config:
        env_prefix = "REMINDER_"


settings = ReminderSettings()
