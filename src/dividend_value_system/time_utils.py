"""Datetime normalization helpers."""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Callable

import pandas as pd

Clock = Callable[[], datetime]


def now_utc() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_utc_timestamp(value: object) -> pd.Timestamp:
    """Normalize datetime-like values to UTC pandas Timestamp."""
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


def to_exchange_time(value: datetime, exchange_timezone: str) -> pd.Timestamp:
    return to_utc_timestamp(value).tz_convert(exchange_timezone)


def trading_date(value: datetime, exchange_timezone: str) -> str:
    """Calendar date of `value` on the exchange, as ISO string."""
    return to_exchange_time(value, exchange_timezone).date().isoformat()


def in_close_window(
    value: datetime,
    session_close: str,
    window_minutes: int,
    exchange_timezone: str,
) -> bool:
    """True when `value` falls in the last `window_minutes` before session close."""
    local = to_exchange_time(value, exchange_timezone)
    close_time = time.fromisoformat(session_close)
    close_ts = local.normalize() + timedelta(hours=close_time.hour, minutes=close_time.minute)
    start_ts = close_ts - timedelta(minutes=window_minutes)
    return start_ts <= local < close_ts


def elapsed_days(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / 86_400.0
