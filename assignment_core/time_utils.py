"""Shared time and distance helpers used by conflict and scoring logic."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

UTC = timezone.utc


def ensure_aware(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; aware values are returned unchanged."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def parse_datetime(value: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_aware(datetime.fromisoformat(text))


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return ensure_aware(value).isoformat()


def now_utc() -> datetime:
    return datetime.now(UTC)


def duration_hours(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600.0


def ranges_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval intersection: touching endpoints do not overlap."""
    return start_a < end_b and start_b < end_a


def overlap_seconds(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> float:
    lo = max(start_a, start_b)
    hi = min(end_a, end_b)
    if lo >= hi:
        return 0.0
    return (hi - lo).total_seconds()


def overlap_fraction(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> float:
    """Overlap duration relative to the shorter of the two ranges."""
    shortest = min((end_a - start_a).total_seconds(), (end_b - start_b).total_seconds())
    if shortest <= 0:
        return 0.0
    return overlap_seconds(start_a, end_a, start_b, end_b) / shortest


def merged_coverage_seconds(
    start: datetime,
    end: datetime,
    windows: list[tuple[datetime, datetime]],
) -> float:
    """Seconds of [start, end) covered by the union of windows."""
    clipped = sorted(
        (max(w0, start), min(w1, end))
        for w0, w1 in windows
        if ranges_overlap(w0, w1, start, end)
    )
    total = 0.0
    cur_start: datetime | None = None
    cur_end: datetime | None = None
    for w0, w1 in clipped:
        if cur_end is None or w0 > cur_end:
            if cur_start is not None and cur_end is not None:
                total += (cur_end - cur_start).total_seconds()
            cur_start, cur_end = w0, w1
        elif w1 > cur_end:
            cur_end = w1
    if cur_start is not None and cur_end is not None:
        total += (cur_end - cur_start).total_seconds()
    return total


def day_window(moment: datetime) -> tuple[datetime, datetime]:
    """Calendar day containing ``moment`` in its own timezone."""
    start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def week_window(moment: datetime) -> tuple[datetime, datetime]:
    """Sunday-aligned calendar week containing ``moment``."""
    day_start, _ = day_window(moment)
    # weekday(): Monday=0 .. Sunday=6
    days_since_sunday = (moment.weekday() + 1) % 7
    start = day_start - timedelta(days=days_since_sunday)
    return start, start + timedelta(days=7)


def is_weekend(moment: datetime) -> bool:
    return moment.weekday() >= 5


def euclidean_distance(lat_a: float, lng_a: float, lat_b: float, lng_b: float) -> float:
    """Planar distance in coordinate degrees, not a geodesic distance."""
    return math.sqrt((lat_b - lat_a) ** 2 + (lng_b - lng_a) ** 2)
