import logging
from typing import Any, Dict, List

from celery import shared_task

from .celery_channels import get_registry
from .engine import get_engine
from .metrics import reminders_superseded_total
from .schemas import ReminderIn


logger = logging.getLogger(__name__)


def _fire(channel: str, token: int, submission_id: str, payload: Dict[str, Any]) -> bool:
    if not get_registry().consume(channel, token, submission_id):
        # Replaced by a newer submission, or cancelled
        reminders_superseded_total.labels(channel=channel).inc()
        logger.debug(f"[Reminders] {channel} token {token} superseded, not delivering")
        return False
    return get_engine().on_fire(token, payload) is not None


@shared_task(name="reminders.fire_primary")
def fire_primary_task(token: int, submission_id: str, payload: Dict[str, Any]) -> bool:
    """Primary (exact-time) channel firing."""
    return _fire("primary", token, submission_id, payload)


@shared_task(name="reminders.fire_backup")
def fire_backup_task(token: int, submission_id: str, payload: Dict[str, Any]) -> bool:
    """Backup (deferred) channel firing; re-sends the same embedded payload."""
    return _fire("backup", token, submission_id, payload)


@shared_task(name="reminders.refresh")
def refresh_task(reminders: List[Dict[str, Any]]) -> int:
    """Reschedule a batch of reminders (boot or periodic refresh). Returns occurrences scheduled."""
    parsed = [ReminderIn(**r).to_domain() for r in reminders]
    return get_engine().refresh(parsed)
