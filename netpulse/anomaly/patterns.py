"""Pattern Recognizer — finds weekly recurring degradation windows.

Closed anomalies from the trailing window are counted per
(probe, metric, weekday, hour). Hours seen often enough become patterns,
and consecutive hours on the same weekday merge into one range
("latency degrades every Tuesday 21:00-23:00").
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Iterable, Optional

from ..metrics import DAY_NAMES, utcnow
from ..store.contracts import AnomalyRecord, AnomalyStore
from ..utils.logging import get_logger

logger = get_logger("anomaly.patterns")


@dataclass(frozen=True)
class RecurringPattern:
    probe_id: str
    metric: str
    day_of_week: int
    hour_of_day: int
    end_hour: int  # exclusive, wraps at 24
    occurrences: int
    avg_expected: float
    avg_actual: float
    description: str

    def to_dict(self) -> dict:
        return {
            "probe_id": self.probe_id,
            "metric": self.metric,
            "day_of_week": self.day_of_week,
            "hour_of_day": self.hour_of_day,
            "end_hour": self.end_hour,
            "occurrences": self.occurrences,
            "avg_expected": self.avg_expected,
            "avg_actual": self.avg_actual,
            "description": self.description,
        }


def describe_pattern(metric: str, day_of_week: int, start_hour: int, end_hour: int) -> str:
    return f"{metric} degrades every {DAY_NAMES[day_of_week]} {start_hour}:00-{end_hour}:00"


def hourly_patterns(anomalies: Iterable[AnomalyRecord], min_occurrences: int = 3) -> list[RecurringPattern]:
    """One-hour patterns for every (probe, metric, weekday, hour) seen ``min_occurrences`` times."""
    groups: dict[tuple[str, str, int, int], list[AnomalyRecord]] = defaultdict(list)
    for anomaly in anomalies:
        if anomaly.is_open or anomaly.day_of_week is None or anomaly.hour_of_day is None:
            continue
        groups[(anomaly.probe_id, anomaly.metric, anomaly.day_of_week, anomaly.hour_of_day)].append(anomaly)

    patterns = []
    for (probe_id, metric, day, hour), rows in groups.items():
        if len(rows) < min_occurrences:
            continue
        end_hour = (hour + 1) % 24
        patterns.append(RecurringPattern(
            probe_id=probe_id,
            metric=metric,
            day_of_week=day,
            hour_of_day=hour,
            end_hour=end_hour,
            occurrences=len(rows),
            avg_expected=sum(r.expected_value for r in rows) / len(rows),
            avg_actual=sum(r.actual_value for r in rows) / len(rows),
            description=describe_pattern(metric, day, hour, end_hour),
        ))
    return patterns


def _merge_run(start: RecurringPattern, end: RecurringPattern) -> RecurringPattern:
    """Collapse a run of adjacent hours using its first and last members."""
    if start is end:
        return start
    end_hour = (end.hour_of_day + 1) % 24
    return replace(
        start,
        end_hour=end_hour,
        occurrences=max(start.occurrences, end.occurrences),
        avg_expected=(start.avg_expected + end.avg_expected) / 2,
        avg_actual=(start.avg_actual + end.avg_actual) / 2,
        description=describe_pattern(start.metric, start.day_of_week, start.hour_of_day, end_hour),
    )


def merge_adjacent_patterns(patterns: Iterable[RecurringPattern]) -> list[RecurringPattern]:
    """Merge consecutive hours within each (probe, metric, weekday) group."""
    groups: dict[tuple[str, str, int], list[RecurringPattern]] = defaultdict(list)
    for pattern in patterns:
        groups[(pattern.probe_id, pattern.metric, pattern.day_of_week)].append(pattern)

    merged = []
    for group in groups.values():
        group.sort(key=lambda p: p.hour_of_day)
        start = end = group[0]
        for pattern in group[1:]:
            if pattern.hour_of_day == end.hour_of_day + 1:
                end = pattern
            else:
                merged.append(_merge_run(start, end))
                start = end = pattern
        merged.append(_merge_run(start, end))

    merged.sort(key=lambda p: (-p.occurrences, p.probe_id, p.metric, p.day_of_week, p.hour_of_day))
    return merged


class PatternRecognizer:
    """Scans closed anomalies for weekly recurring patterns."""

    def __init__(self, store: AnomalyStore, window_weeks: int = 4, min_occurrences: int = 3):
        self._store = store
        self.window = timedelta(weeks=window_weeks)
        self.min_occurrences = min_occurrences

    async def recognize(self, now: Optional[datetime] = None) -> list[RecurringPattern]:
        now = now or utcnow()
        anomalies = await self._store.list_closed_anomalies(now - self.window)
        patterns = merge_adjacent_patterns(hourly_patterns(anomalies, self.min_occurrences))
        if patterns:
            logger.info("recurring_patterns_found", count=len(patterns), anomalies_scanned=len(anomalies))
            for pattern in patterns:
                logger.info(
                    "recurring_pattern",
                    description=pattern.description,
                    occurrences=pattern.occurrences,
                    probe_id=pattern.probe_id,
                )
        return patterns
