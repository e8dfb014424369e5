"""
auth/activity.py -- In-memory idle tracking per identity.

Every request carrying a valid bearer token touches the tracker. Each
identity has at most one pending expiry timer; a new touch cancels and
replaces it rather than stacking another. When the timer fires the record
is dropped and the identity counts as idle.

State is process-local and not persisted: a restart forgets everyone, and
separate workers keep separate maps. The tracker is owned by the app
lifespan, which calls shutdown() to cancel all pending timers.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass

logger = logging.getLogger("staffauth.auth.activity")


@dataclass
class _ActivityRecord:
    last_activity_at: float
    timer: threading.Timer


class ActivityTracker:
    def __init__(self, timeout_seconds: float = 600) -> None:
        self.timeout_seconds = timeout_seconds
        self._records: dict[int, _ActivityRecord] = {}
        self._lock = threading.Lock()
        self._closed = False

    def touch(self, identity_id: int) -> None:
        """Record activity now and restart the identity's idle timer."""
        timer = threading.Timer(self.timeout_seconds, self._expire, args=(identity_id,))
        timer.daemon = True
        with self._lock:
            if self._closed:
                return
            previous = self._records.get(identity_id)
            if previous is not None:
                previous.timer.cancel()
            self._records[identity_id] = _ActivityRecord(time.time(), timer)
            timer.start()

    def _expire(self, identity_id: int) -> None:
        with self._lock:
            record = self._records.get(identity_id)
            # A touch may have replaced the timer between firing and locking.
            if record is not None and record.timer is threading.current_thread():
                del self._records[identity_id]
                logger.info("Identity %s idle for %ss", identity_id, self.timeout_seconds)

    def is_active(self, identity_id: int) -> bool:
        with self._lock:
            return identity_id in self._records

    def last_activity(self, identity_id: int) -> float | None:
        """Epoch seconds of the last touch, or None if idle."""
        with self._lock:
            record = self._records.get(identity_id)
            return record.last_activity_at if record else None

    def force_logout(self, identity_id: int) -> bool:
        """Drop the identity's record. Returns True if it was active."""
        with self._lock:
            record = self._records.pop(identity_id, None)
        if record is None:
            return False
        record.timer.cancel()
        logger.info("Forced logout of identity %s", identity_id)
        return True

    def active_count(self) -> int:
        with self._lock:
            return len(self._records)

    def shutdown(self) -> None:
        """Cancel every pending timer and refuse further touches."""
        with self._lock:
            self._closed = True
            records = list(self._records.values())
            self._records.clear()
        for record in records:
            record.timer.cancel()
