from __future__ import annotations

import math
from datetime import datetime, timezone

from .models import StalenessInfo

UTC = timezone.utc

# Epoch values above this are treated as milliseconds.
_EPOCH_MS_CUTOFF = 1e11


def now_utc() -> datetime:
    return datetime.now(tz=UTC)


def to_utc(ts: datetime) -> datetime:
    if getattr(ts, "tzinfo", None) is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def parse_timestamp(value: object) -> datetime | None:
    """Parse an upstream timestamp into an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings (with or without a trailing ``Z``) and
    epoch numbers in seconds or milliseconds. Anything else yields None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, (int, float)):
        number = float(value)
        if not math.isfinite(number) or number <= 0:
            return None
        if number > _EPOCH_MS_CUTOFF:
            number /= 1000.0
        try:
            return datetime.fromtimestamp(number, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return None
        if cleaned.endswith("Z") or cleaned.endswith("z"):
            cleaned = cleaned[:-1] + "+00:00"
        try:
            return to_utc(datetime.fromisoformat(cleaned))
        except ValueError:
            pass
        try:
            return parse_timestamp(float(cleaned))
        except ValueError:
            return None
    return None


def seconds_between(earlier: datetime, later: datetime) -> float:
    return (to_utc(later) - to_utc(earlier)).total_seconds()


def staleness_info(
    last_updated_at: datetime | None,
    *,
    now: datetime,
    stale_after_sec: float,
    reported_stale: bool = False,
    reported_seconds: float | None = None,
) -> StalenessInfo:
    """Freshness of data last updated at `last_updated_at` as seen at `now`.

    Without a timestamp the backend's own stale flag and age are passed through.
    Ages are whole seconds so repeated evaluation within a second is identical.
    """
    if last_updated_at is None:
        seconds = int(reported_seconds) if reported_seconds is not None else None
        return StalenessInfo(last_updated_at=None, is_stale=bool(reported_stale), stale_seconds=seconds)
    age = max(0, int(seconds_between(last_updated_at, now)))
    return StalenessInfo(
        last_updated_at=to_utc(last_updated_at),
        is_stale=age > stale_after_sec,
        stale_seconds=age,
    )
