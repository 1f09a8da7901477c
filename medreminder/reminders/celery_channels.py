"""
Delivery channels on top of Celery.

Each submission becomes a Celery task with an ETA (primary) or countdown
(backup). Celery cannot overwrite a queued task, so a Redis registry keeps
the live submission id per channel and token; a firing task only delivers
if it still owns its token. Resubmitting moves ownership to the new task,
cancelling removes it.
"""
import logging
import math
import uuid
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Callable, List, Optional

import redis
from kombu.exceptions import KombuError

from .celery_app import celery_app
from .channels import BackupChannel, PrimaryChannel
from .config import settings
from .errors import CancelNotFound, ChannelSubmissionFailed, PrecisionDegraded
from .models import ReminderPayload
from medreminder.core.redis_client import get_redis
from medreminder.utils.timezone import to_utc_aware


logger = logging.getLogger(__name__)

# Registry entries outlive their trigger by this much before Redis drops them
REGISTRY_GRACE_SECONDS = 86400

_CONSUME_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    redis.call('DEL', KEYS[1])
    return 1
end
return 0
"""


class SubmissionRegistry:
    """Live submission id per (channel, token), plus token sets per tag"""

    def __init__(self, client: redis.Redis, prefix: str = "reminders"):
        self.client = client
        self.prefix = prefix
        self._consume = client.register_script(_CONSUME_LUA)

    def _key(self, channel: str, token: int) -> str:
        return f"{self.prefix}:{channel}:{token}"

    def _tag_key(self, tag: str) -> str:
        return f"{self.prefix}:tag:{tag}"

    def claim(self, channel: str, token: int, submission_id: str, ttl_seconds: int, tag: Optional[str] = None) -> Optional[str]:
        """Make `submission_id` the live one; returns the id it replaced."""
        pipe = self.client.pipeline(transaction=True)
        pipe.get(self._key(channel, token))
        pipe.set(self._key(channel, token), submission_id, ex=ttl_seconds)
        if tag:
            # A tag lives as long as its longest-lived token: set the TTL on a
            # fresh set, afterwards only ever extend it (EXPIRE NX, then GT)
            pipe.sadd(self._tag_key(tag), token)
            pipe.expire(self._tag_key(tag), ttl_seconds, nx=True)
            pipe.expire(self._tag_key(tag), ttl_seconds, gt=True)
        return pipe.execute()[0]

    def release(self, channel: str, token: int) -> Optional[str]:
        pipe = self.client.pipeline(transaction=True)
        pipe.get(self._key(channel, token))
        pipe.delete(self._key(channel, token))
        return pipe.execute()[0]

    def consume(self, channel: str, token: int, submission_id: str) -> bool:
        """Atomically take ownership away from a firing task. False if superseded."""
        return bool(self._consume(keys=[self._key(channel, token)], args=[submission_id]))

    def pop_tag(self, tag: str) -> List[int]:
        pipe = self.client.pipeline(transaction=True)
        pipe.smembers(self._tag_key(tag))
        pipe.delete(self._tag_key(tag))
        members = pipe.execute()[0] or set()
        return sorted(int(m) for m in members)


@lru_cache(maxsize=1)
def get_registry() -> SubmissionRegistry:
    return SubmissionRegistry(get_redis())


def _revoke(submission_id: Optional[str]) -> None:
    if not submission_id:
        return
    try:
        celery_app.control.revoke(submission_id)
    except (KombuError, OSError) as e:
        # The registry check at fire time still drops the stale task
        logger.debug(f"[Channels] Revoke of {submission_id} failed: {e!r}")


def _claim_and_send(
    registry: SubmissionRegistry,
    channel: str,
    token: int,
    ttl_seconds: int,
    send: Callable[[str], None],
    tag: Optional[str] = None,
) -> None:
    """Register a new submission id for the token, then publish its task.

    The claim lands before the task is published, so a worker that picks the
    task up immediately already finds itself the owner.
    """
    submission_id = uuid.uuid4().hex
    try:
        previous = registry.claim(channel, token, submission_id, ttl_seconds, tag=tag)
    except redis.RedisError as e:
        raise ChannelSubmissionFailed(channel, token, repr(e)) from e

    try:
        send(submission_id)
    except (KombuError, OSError) as e:
        # Nothing was queued under the new id; hand the token back to the old task
        try:
            if previous:
                registry.claim(channel, token, previous, ttl_seconds)
            else:
                registry.release(channel, token)
        except redis.RedisError as restore_error:
            logger.warning(f"[Channels] Could not restore {channel} token {token}: {restore_error!r}")
        raise ChannelSubmissionFailed(channel, token, repr(e)) from e

    _revoke(previous)


def _round_up(instant: datetime, window_seconds: int) -> datetime:
    if window_seconds <= 0:
        return instant
    ts = instant.timestamp()
    return datetime.fromtimestamp(math.ceil(ts / window_seconds) * window_seconds, tz=instant.tzinfo)


class CeleryTimerChannel(PrimaryChannel):
    """Primary channel: ETA task on the primary queue"""

    def __init__(
        self,
        registry: SubmissionRegistry,
        exact_allowed: Optional[bool] = None,
        inexact_window_seconds: Optional[int] = None,
        queue: Optional[str] = None,
    ):
        self.registry = registry
        self.exact_allowed = settings.EXACT_TIMERS_ALLOWED if exact_allowed is None else exact_allowed
        self.inexact_window_seconds = (
            settings.INEXACT_WINDOW_SECONDS if inexact_window_seconds is None else inexact_window_seconds
        )
        self.queue = queue or settings.PRIMARY_QUEUE

    def submit(self, token, instant, payload: ReminderPayload, exact=True):
        if exact and not self.exact_allowed:
            raise PrecisionDegraded(f"exact timers disabled for token {token}")

        instant = to_utc_aware(instant)
        eta = instant if exact else _round_up(instant, self.inexact_window_seconds)
        ttl = int((eta - datetime.now(eta.tzinfo)).total_seconds()) + REGISTRY_GRACE_SECONDS

        def send(submission_id: str) -> None:
            celery_app.send_task(
                "reminders.fire_primary",
                args=[token, submission_id, payload.to_dict()],
                eta=eta,
                queue=self.queue,
                routing_key=self.queue,
                task_id=submission_id,
            )

        _claim_and_send(self.registry, self.name, token, max(ttl, REGISTRY_GRACE_SECONDS), send)

    def cancel(self, token):
        previous = self.registry.release(self.name, token)
        if previous is None:
            raise CancelNotFound(token)
        _revoke(previous)


class CeleryDeferredChannel(BackupChannel):
    """Backup channel: countdown task on the backup queue"""

    def __init__(self, registry: SubmissionRegistry, queue: Optional[str] = None):
        self.registry = registry
        self.queue = queue or settings.BACKUP_QUEUE

    def submit_delayed(self, token, delay: timedelta, payload: ReminderPayload, tag):
        countdown = max(0, int(math.ceil(delay.total_seconds())))

        def send(submission_id: str) -> None:
            celery_app.send_task(
                "reminders.fire_backup",
                args=[token, submission_id, payload.to_dict()],
                countdown=countdown,
                queue=self.queue,
                routing_key=self.queue,
                task_id=submission_id,
            )

        _claim_and_send(self.registry, self.name, token, countdown + REGISTRY_GRACE_SECONDS, send, tag=tag)

    def cancel_by_tag(self, tag):
        tokens = self.registry.pop_tag(tag)
        if not tokens:
            raise CancelNotFound(tag)
        for token in tokens:
            _revoke(self.registry.release(self.name, token))
