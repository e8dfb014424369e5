"""
Tests for auth/activity.py -- per-identity idle timers.
"""

import threading
import time

from auth.activity import ActivityTracker


def _wait_until(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestActivityTracker:
    def test_touch_marks_active(self):
        tracker = ActivityTracker(timeout_seconds=60)
        try:
            tracker.touch(1)
            assert tracker.is_active(1)
            assert tracker.last_activity(1) is not None
            assert not tracker.is_active(2)
            assert tracker.last_activity(2) is None
        finally:
            tracker.shutdown()

    def test_expires_after_timeout(self):
        tracker = ActivityTracker(timeout_seconds=0.05)
        try:
            tracker.touch(1)
            assert _wait_until(lambda: not tracker.is_active(1))
        finally:
            tracker.shutdown()

    def test_touch_replaces_timer_instead_of_stacking(self):
        tracker = ActivityTracker(timeout_seconds=60)
        try:
            before = threading.active_count()
            for _ in range(5):
                tracker.touch(1)
            assert tracker.active_count() == 1
            # Cancelled timers exit; at most one new one stays alive.
            assert _wait_until(lambda: threading.active_count() <= before + 1)
        finally:
            tracker.shutdown()

    def test_retouch_extends_activity(self):
        tracker = ActivityTracker(timeout_seconds=0.6)
        try:
            tracker.touch(1)
            time.sleep(0.4)
            tracker.touch(1)
            time.sleep(0.4)
            # 0.8s since the first touch, 0.4s since the second.
            assert tracker.is_active(1)
        finally:
            tracker.shutdown()

    def test_force_logout(self):
        tracker = ActivityTracker(timeout_seconds=60)
        try:
            tracker.touch(1)
            assert tracker.force_logout(1) is True
            assert not tracker.is_active(1)
            assert tracker.force_logout(1) is False
        finally:
            tracker.shutdown()

    def test_identities_are_independent(self):
        tracker = ActivityTracker(timeout_seconds=60)
        try:
            tracker.touch(1)
            tracker.touch(2)
            tracker.force_logout(1)
            assert tracker.is_active(2)
            assert tracker.active_count() == 1
        finally:
            tracker.shutdown()

    def test_shutdown_clears_and_ignores_later_touches(self):
        tracker = ActivityTracker(timeout_seconds=60)
        tracker.touch(1)
        tracker.shutdown()
        assert tracker.active_count() == 0
        tracker.touch(2)
        assert not tracker.is_active(2)
