from __future__ import annotations

from collections import defaultdict, deque
from datetime import datetime, timedelta
import threading

from attendance_ledger.core.time_provider import default_time_provider


LOCK_FAIL_OPEN = 'attendance_lock_fail_open'
FINALIZATION_CONFLICT = 'attendance_finalization_conflict'
STORAGE_FAULT = 'attendance_storage_fault'

_LOCK = threading.Lock()
_EVENTS: dict[str, deque[datetime]] = defaultdict(deque)


def record_observability_event(name: str, *, at: datetime | None = None) -> None:
    event = str(name or '').strip().lower()
    if not event:
        return
    now = at or default_time_provider.utc_now_naive()
    with _LOCK:
        bucket = _EVENTS[event]
        bucket.append(now)
        cutoff = now - timedelta(hours=25)
        while bucket and bucket[0] < cutoff:
            bucket.popleft()


def count_observability_events(name: str, *, window_hours: int = 24, now: datetime | None = None) -> int:
    event = str(name or '').strip().lower()
    if not event:
        return 0
    current = now or default_time_provider.utc_now_naive()
    cutoff = current - timedelta(hours=max(1, int(window_hours or 24)))
    with _LOCK:
        bucket = _EVENTS.get(event) or deque()
        # Retention is 25h at write time; narrower windows only filter.
        return sum(1 for stamp in bucket if stamp >= cutoff)


def observability_snapshot(*, window_hours: int = 24) -> dict[str, int]:
    return {
        name: count_observability_events(name, window_hours=window_hours)
        for name in (LOCK_FAIL_OPEN, FINALIZATION_CONFLICT, STORAGE_FAULT)
    }


def clear_observability_events() -> None:
    with _LOCK:
        _EVENTS.clear()
