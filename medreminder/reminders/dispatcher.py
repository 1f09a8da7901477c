import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional

from .channels import BackupChannel, PrimaryChannel
from .config import settings
from .errors import CancelNotFound, PrecisionDegraded
from .identifiers import SNOOZE_SUFFIX, IdentifierAllocator
from .metrics import (
    channel_precision_degraded_total,
    channel_submission_failed_total,
    reminders_cancelled_total,
    reminders_scheduled_total,
)
from .models import Occurrence, Reminder, ReminderPayload
from .recurrence_models import RecurrenceCalculator
from medreminder.utils.timezone import get_zoneinfo, to_utc_aware, utc_now


logger = logging.getLogger(__name__)


class ScheduleDispatcher:
    """Submits reminder occurrences to the primary and backup channels.

    Every occurrence goes to both channels under the same token, so one
    cancel removes both and a resubmission replaces rather than appends.
    A failure in one channel is logged and counted; the other channel still
    carries the occurrence.
    """

    def __init__(
        self,
        primary: PrimaryChannel,
        backup: BackupChannel,
        horizon_days: Optional[int] = None,
        max_cancel_index: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.primary = primary
        self.backup = backup
        self.horizon_days = settings.HORIZON_DAYS if horizon_days is None else horizon_days
        self.max_cancel_index = settings.MAX_CANCEL_INDEX if max_cancel_index is None else max_cancel_index
        self.clock = clock

    def occurrences_for(self, reminder: Reminder, now: Optional[datetime] = None) -> List[Occurrence]:
        """Occurrences of an enabled reminder within the horizon, indexed for token derivation"""
        if not reminder.enabled:
            return []
        now = to_utc_aware(now or self.clock())
        tz = get_zoneinfo(reminder.timezone)
        instants = RecurrenceCalculator.occurrences(reminder.schedule, now, self.horizon_days, tz=tz)
        return [Occurrence(reminder.id, index, instant) for index, instant in enumerate(instants)]

    def schedule(self, reminder: Reminder, now: Optional[datetime] = None) -> int:
        """Submit every future occurrence of `reminder`. Returns how many were accepted."""
        if not reminder.enabled:
            logger.debug(f"[Scheduler] Reminder {reminder.id} is disabled, not scheduling")
            return 0

        now = to_utc_aware(now or self.clock())
        occurrences = self.occurrences_for(reminder, now)
        logger.debug(f"[Scheduler] {len(occurrences)} occurrences for reminder {reminder.id}")

        tag = IdentifierAllocator.tag(reminder.id)
        scheduled = 0
        for occurrence in occurrences:
            if occurrence.index > self.max_cancel_index:
                # Tokens past the cancel ceiling could never be torn down again
                logger.warning(
                    f"[Scheduler] Reminder {reminder.id} has more than {self.max_cancel_index + 1} "
                    f"occurrences in the horizon; deferring the rest to a later refresh"
                )
                break
            if occurrence.trigger_at <= now:
                logger.debug(f"[Scheduler] Skipping past occurrence {occurrence.trigger_at.isoformat()}")
                continue

            token = IdentifierAllocator.token(reminder.id, occurrence.index)
            payload = ReminderPayload.for_reminder(reminder, token, occurrence.trigger_at)
            if self._submit(token, occurrence.trigger_at, payload, tag, now):
                scheduled += 1

        reminders_scheduled_total.inc(scheduled)
        logger.info(f"[Scheduler] Total scheduled: {scheduled} for reminder {reminder.id}")
        return scheduled

    def schedule_variant(
        self,
        reminder_id: str,
        suffix: str,
        instant: datetime,
        payload: ReminderPayload,
        now: Optional[datetime] = None,
    ) -> Optional[int]:
        """Submit a one-off occurrence (e.g. a snooze) under a suffix-derived token.

        A second call with the same suffix replaces the first. Returns the
        token, or None if nothing was accepted.
        """
        now = to_utc_aware(now or self.clock())
        instant = to_utc_aware(instant)
        if instant <= now:
            logger.debug(f"[Scheduler] Variant {suffix} for {reminder_id} is in the past, skipping")
            return None

        token = IdentifierAllocator.token_for_variant(reminder_id, suffix)
        payload = replace(payload, token=token, scheduled_for=instant)
        if not self._submit(token, instant, payload, IdentifierAllocator.tag(reminder_id), now):
            return None
        reminders_scheduled_total.inc()
        return token

    def cancel(self, reminder_id: str) -> None:
        """Best-effort teardown of every token the reminder may have used.

        The historical occurrence count is not tracked, so indices are walked
        up to max_cancel_index. Nothing-to-cancel counts as success.
        """
        tokens = [IdentifierAllocator.token(reminder_id, index) for index in range(self.max_cancel_index + 1)]
        tokens.append(IdentifierAllocator.token_for_variant(reminder_id, SNOOZE_SUFFIX))

        cancelled = 0
        for token in tokens:
            try:
                self.primary.cancel(token)
                cancelled += 1
            except CancelNotFound:
                continue
            except Exception as e:
                logger.warning(f"[Scheduler] Primary cancel failed for token {token}: {e!r}")

        try:
            self.backup.cancel_by_tag(IdentifierAllocator.tag(reminder_id))
        except CancelNotFound:
            pass
        except Exception as e:
            logger.warning(f"[Scheduler] Backup cancel failed for reminder {reminder_id}: {e!r}")

        reminders_cancelled_total.inc()
        logger.info(f"[Scheduler] Cancelled reminder {reminder_id} ({cancelled} primary triggers live)")

    def _submit(self, token: int, instant: datetime, payload: ReminderPayload, tag: str, now: datetime) -> bool:
        accepted = 0

        try:
            try:
                self.primary.submit(token, instant, payload, exact=True)
            except PrecisionDegraded:
                channel_precision_degraded_total.inc()
                logger.debug(f"[Scheduler] Exact timer refused, inexact submit for token {token}")
                self.primary.submit(token, instant, payload, exact=False)
            accepted += 1
        except Exception as e:
            channel_submission_failed_total.labels(channel=self.primary.name).inc()
            logger.error(f"[Scheduler] Primary channel failed for token {token}: {e!r}")

        try:
            self.backup.submit_delayed(token, instant - now, payload, tag)
            accepted += 1
        except Exception as e:
            channel_submission_failed_total.labels(channel=self.backup.name).inc()
            logger.error(f"[Scheduler] Backup channel failed for token {token}: {e!r}")

        if not accepted:
            logger.error(
                f"[Scheduler] Both channels failed for reminder {payload.reminder_id} at {instant.isoformat()}"
            )
        return accepted > 0
