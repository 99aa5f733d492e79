"""Metric names and time-of-week helpers shared across the pipeline."""

from datetime import datetime, timezone

METRICS = ("latency", "jitter", "packet_loss", "dns", "bufferbloat")

# Live alert aggregation per metric. Packet loss spikes must not be averaged away.
METRIC_AGGREGATION = {
    "latency": "avg",
    "jitter": "avg",
    "packet_loss": "max",
    "dns": "avg",
    "bufferbloat": "avg",
}

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

HOURS_PER_WEEK = 168


def hour_of_week(ts: datetime) -> int:
    """Map a timestamp to 0..167: (ISO weekday - 1) * 24 + hour, Monday 00:00 = 0."""
    return (ts.isoweekday() - 1) * 24 + ts.hour


def split_hour_of_week(how: int) -> tuple[int, int]:
    """Return (day_of_week, hour_of_day) for an hour-of-week, Monday = 0."""
    if not 0 <= how < HOURS_PER_WEEK:
        raise ValueError(f"hour_of_week out of range: {how}")
    return how // 24, how % 24


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(ts: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps read back from the database."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)
