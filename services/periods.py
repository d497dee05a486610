from datetime import datetime, timedelta, timezone
from typing import Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

PERIODS = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_known_period(period: Optional[str]) -> bool:
    return period == "all" or period in PERIODS


def period_start(period: Optional[str], now: Optional[datetime] = None, fallback: str = "all") -> datetime:
    """Resolves a relative period to the start of its window.

    ``all`` starts at the epoch; an unrecognized period resolves as ``fallback``.
    """
    now = now or utcnow()
    if not is_known_period(period):
        period = fallback if is_known_period(fallback) else "all"
    if period == "all":
        return EPOCH
    return now - PERIODS[period]
