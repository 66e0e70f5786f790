from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from attendance_ledger.config import settings


APP_TIMEZONE = settings.app_timezone or "UTC"
APP_ZONEINFO = ZoneInfo(APP_TIMEZONE)


class TimeProvider:
    def now(self) -> datetime:
        return datetime.now(APP_ZONEINFO)

    def today(self) -> date:
        return self.now().date()

    def utc_now_naive(self) -> datetime:
        # Storage columns hold naive UTC.
        return ensure_aware(self.now()).astimezone(timezone.utc).replace(tzinfo=None)


def ensure_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        raise ValueError("Naive datetime not allowed in business logic")
    return dt


default_time_provider = TimeProvider()
