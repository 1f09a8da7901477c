"""
Delivery channel interfaces and in-process implementations.

The primary channel aims for exact-time delivery; the backup channel is a
deferred-task queue that fires after a delay. Both are keyed by dispatch
token, and a new submission under a live token replaces it.
"""
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from .errors import CancelNotFound, PrecisionDegraded
from .models import ReminderPayload
from medreminder.utils.timezone import utc_now


class PrimaryChannel(ABC):
    name = "primary"

    @abstractmethod
    def submit(self, token: int, instant: datetime, payload: ReminderPayload, exact: bool = True) -> None:
        """Arm a trigger; raises PrecisionDegraded if exact delivery is refused."""

    @abstractmethod
    def cancel(self, token: int) -> None:
        """Disarm a trigger; raises CancelNotFound if nothing was armed."""


class BackupChannel(ABC):
    name = "backup"

    @abstractmethod
    def submit_delayed(self, token: int, delay: timedelta, payload: ReminderPayload, tag: str) -> None:
        ...

    @abstractmethod
    def cancel_by_tag(self, tag: str) -> None:
        ...


@dataclass
class Submission:
    token: int
    due_at: datetime
    payload: ReminderPayload
    exact: bool = True
    tag: Optional[str] = None


class InMemoryTimerChannel(PrimaryChannel):
    """Dictionary-backed primary channel for single-process hosts and tests"""

    def __init__(self, exact_allowed: bool = True):
        self.exact_allowed = exact_allowed
        self._live: Dict[int, Submission] = {}
        self._lock = threading.Lock()

    def submit(self, token, instant, payload, exact=True):
        if exact and not self.exact_allowed:
            raise PrecisionDegraded(f"exact timers not permitted for token {token}")
        with self._lock:
            self._live[token] = Submission(token=token, due_at=instant, payload=payload, exact=exact)

    def cancel(self, token):
        with self._lock:
            if self._live.pop(token, None) is None:
                raise CancelNotFound(token)

    def live(self) -> Dict[int, Submission]:
        with self._lock:
            return dict(self._live)

    def due(self, now: datetime) -> List[Submission]:
        """Remove and return every submission whose trigger time has passed."""
        with self._lock:
            ready = [s for s in self._live.values() if s.due_at <= now]
            for s in ready:
                del self._live[s.token]
        return sorted(ready, key=lambda s: s.due_at)


class InMemoryDeferredChannel(BackupChannel):
    """Dictionary-backed backup channel; due times are clock() + delay"""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock
        self._live: Dict[int, Submission] = {}
        self._lock = threading.Lock()

    def submit_delayed(self, token, delay, payload, tag):
        due_at = self.clock() + max(delay, timedelta(0))
        with self._lock:
            self._live[token] = Submission(token=token, due_at=due_at, payload=payload, tag=tag)

    def cancel_by_tag(self, tag):
        with self._lock:
            tokens = [t for t, s in self._live.items() if s.tag == tag]
            for t in tokens:
                del self._live[t]
        if not tokens:
            raise CancelNotFound(tag)

    def live(self) -> Dict[int, Submission]:
        with self._lock:
            return dict(self._live)

    def due(self, now: datetime) -> List[Submission]:
        with self._lock:
            ready = [s for s in self._live.values() if s.due_at <= now]
            for s in ready:
                del self._live[s.token]
        return sorted(ready, key=lambda s: s.due_at)
