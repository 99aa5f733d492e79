"""Tests for the Pattern Recognizer — weekly recurrences and hour merging."""

import itertools
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from netpulse.anomaly.patterns import (
    PatternRecognizer,
    hourly_patterns,
    merge_adjacent_patterns,
)
from netpulse.metrics import utcnow
from netpulse.store.contracts import AnomalyRecord, NewAnomaly

TUESDAY_21 = datetime(2026, 3, 3, 21, 0, tzinfo=timezone.utc)
_ids = itertools.count()


def _closed(day, hour, expected=22.0, actual=60.0, metric="latency", probe_id="probe-a", ended=True):
    return AnomalyRecord(
        id=f"a-{next(_ids)}",
        probe_id=probe_id,
        metric=metric,
        started_at=TUESDAY_21,
        ended_at=TUESDAY_21 + timedelta(minutes=20) if ended else None,
        expected_value=expected,
        actual_value=actual,
        severity="severe",
        day_of_week=day,
        hour_of_day=hour,
    )


def _repeat(n, *args, **kwargs):
    return [_closed(*args, **kwargs) for _ in range(n)]


def _patterns(anomalies, min_occurrences=3):
    return merge_adjacent_patterns(hourly_patterns(anomalies, min_occurrences))


class TestPatternMerge:
    def test_adjacent_hours_merge_into_range(self):
        patterns = _patterns(_repeat(3, 1, 21) + _repeat(3, 1, 22))

        assert len(patterns) == 1
        pattern = patterns[0]
        assert pattern.description == "latency degrades every Tuesday 21:00-23:00"
        assert (pattern.hour_of_day, pattern.end_hour) == (21, 23)
        assert pattern.occurrences == 3

    def test_non_adjacent_hours_stay_separate(self):
        patterns = _patterns(_repeat(3, 1, 9) + _repeat(3, 1, 21))

        descriptions = sorted(p.description for p in patterns)
        assert descriptions == [
            "latency degrades every Tuesday 21:00-22:00",
            "latency degrades every Tuesday 9:00-10:00",
        ]

    def test_merged_stats_are_max_and_mean(self):
        anomalies = _repeat(4, 1, 21, expected=20.0, actual=60.0) + _repeat(3, 1, 22, expected=30.0, actual=80.0)
        [pattern] = _patterns(anomalies)

        assert pattern.occurrences == 4
        assert pattern.avg_expected == pytest.approx(25.0)
        assert pattern.avg_actual == pytest.approx(70.0)

    def test_run_of_three_hours_spans_first_to_last(self):
        [pattern] = _patterns(_repeat(3, 4, 20) + _repeat(3, 4, 21) + _repeat(3, 4, 22))
        assert pattern.description == "latency degrades every Friday 20:00-23:00"

    def test_end_hour_wraps_at_midnight(self):
        [pattern] = _patterns(_repeat(3, 6, 22) + _repeat(3, 6, 23))
        assert pattern.end_hour == 0
        assert pattern.description == "latency degrades every Sunday 22:00-0:00"

    def test_groups_do_not_merge_across_days_or_metrics(self):
        anomalies = _repeat(3, 1, 21) + _repeat(3, 2, 22) + _repeat(3, 1, 22, metric="dns")
        assert len(_patterns(anomalies)) == 3


class TestHourlyPatterns:
    def test_below_min_occurrences_dropped(self):
        assert hourly_patterns(_repeat(2, 1, 21), min_occurrences=3) == []

    def test_open_anomalies_ignored(self):
        anomalies = _repeat(2, 1, 21) + _repeat(1, 1, 21, ended=False)
        assert hourly_patterns(anomalies, min_occurrences=3) == []

    def test_sorted_by_occurrences_descending(self):
        patterns = _patterns(_repeat(3, 0, 8) + _repeat(5, 3, 18))
        assert [p.occurrences for p in patterns] == [5, 3]


class TestPatternRecognizer:
    @pytest.mark.asyncio
    async def test_window_passed_to_store(self):
        store = AsyncMock()
        store.list_closed_anomalies = AsyncMock(return_value=_repeat(3, 1, 21))
        recognizer = PatternRecognizer(store, window_weeks=4, min_occurrences=3)

        patterns = await recognizer.recognize(now=TUESDAY_21)

        store.list_closed_anomalies.assert_awaited_once_with(TUESDAY_21 - timedelta(weeks=4))
        assert patterns[0].to_dict()["description"] == "latency degrades every Tuesday 21:00-22:00"

    @pytest.mark.asyncio
    async def test_recognizes_closed_anomalies_from_store(self, store):
        for week in range(3):
            started = TUESDAY_21 - timedelta(weeks=week)
            for hour_offset in (0, 1):
                record = await store.create_anomaly(NewAnomaly(
                    probe_id="probe-a",
                    metric="latency",
                    started_at=started + timedelta(hours=hour_offset),
                    expected_value=22.0,
                    actual_value=70.0,
                    severity="severe",
                    day_of_week=1,
                    hour_of_day=21 + hour_offset,
                    description="",
                ))
                await store.close_anomaly(record.id, started + timedelta(hours=hour_offset, minutes=30))
        # an open anomaly never counts
        await store.create_anomaly(NewAnomaly(
            "probe-a", "latency", TUESDAY_21, 22.0, 70.0, "severe", 1, 23, ""
        ))

        patterns = await PatternRecognizer(store).recognize(now=utcnow())

        assert [p.description for p in patterns] == ["latency degrades every Tuesday 21:00-23:00"]
