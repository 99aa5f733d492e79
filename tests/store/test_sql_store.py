"""Tests for SqlStore — rollups, window queries, anomaly persistence."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from netpulse.exceptions import StoreError
from netpulse.store.contracts import NewAnomaly
from netpulse.store.sql import SqlStore, floor_to_bucket

TUESDAY_21 = datetime(2026, 3, 3, 21, 0, tzinfo=timezone.utc)


def _new_anomaly(**overrides):
    fields = dict(
        probe_id="probe-a",
        metric="latency",
        started_at=TUESDAY_21,
        expected_value=22.0,
        actual_value=55.0,
        severity="severe",
        day_of_week=1,
        hour_of_day=21,
        description="latency 2.5x higher than normal for Tuesday 21:00",
    )
    fields.update(overrides)
    return NewAnomaly(**fields)


class TestRollups:
    def test_floor_to_bucket(self):
        ts = datetime(2026, 3, 3, 21, 7, 42, 123, tzinfo=timezone.utc)
        assert floor_to_bucket(ts) == datetime(2026, 3, 3, 21, 5, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_refresh_averages_each_bucket(self, store):
        await store.record_measurement("probe-a", TUESDAY_21 + timedelta(seconds=30), "8.8.8.8",
                                       latency_avg=20.0, jitter=2.0)
        await store.record_measurement("probe-a", TUESDAY_21 + timedelta(minutes=2), "1.1.1.1",
                                       latency_avg=30.0, jitter=None)
        await store.record_measurement("probe-a", TUESDAY_21 + timedelta(minutes=6), "8.8.8.8",
                                       latency_avg=40.0)

        assert await store.refresh_rollups(TUESDAY_21) == 2
        rollups = await store.get_recent_rollups(TUESDAY_21 - timedelta(minutes=1))

        assert [r.bucket_time for r in rollups] == [TUESDAY_21, TUESDAY_21 + timedelta(minutes=5)]
        assert rollups[0].values["latency"] == pytest.approx(25.0)
        assert rollups[0].values["jitter"] == pytest.approx(2.0)
        assert rollups[0].values["dns"] is None
        assert rollups[0].hour_of_week == 45

    @pytest.mark.asyncio
    async def test_refresh_is_repeatable(self, store):
        await store.record_measurement("probe-a", TUESDAY_21, "8.8.8.8", latency_avg=20.0)
        await store.refresh_rollups(TUESDAY_21)
        await store.record_measurement("probe-a", TUESDAY_21 + timedelta(minutes=1), "8.8.8.8", latency_avg=40.0)
        await store.refresh_rollups(TUESDAY_21)

        [rollup] = await store.get_recent_rollups(TUESDAY_21 - timedelta(minutes=1))
        assert rollup.values["latency"] == pytest.approx(30.0)

    @pytest.mark.asyncio
    async def test_measurement_event_published(self, store, event_bus, collected_events):
        await store.record_measurement("probe-a", TUESDAY_21, "8.8.8.8", latency_avg=20.0)
        await event_bus.drain()

        [(event_type, data)] = collected_events
        assert event_type == "measurement"
        assert data["probe_id"] == "probe-a"
        assert data["latency_avg"] == 20.0


class TestWindowAverages:
    @pytest.mark.asyncio
    async def test_empty_window_returns_none(self, store):
        assert await store.get_window_averages("probe-a", TUESDAY_21, TUESDAY_21 + timedelta(hours=1)) is None

    @pytest.mark.asyncio
    async def test_unknown_metric_rejected(self, store):
        with pytest.raises(ValueError):
            await store.get_live_aggregate("throughput", 5)


class TestAnomalies:
    @pytest.mark.asyncio
    async def test_create_update_close(self, store):
        record = await store.create_anomaly(_new_anomaly())
        assert record.is_open
        assert record.started_at == TUESDAY_21

        await store.update_anomaly(record.id, actual_value=70.0, severity="severe")
        found = await store.find_open_anomaly("probe-a", "latency")
        assert found.actual_value == 70.0

        ended = TUESDAY_21 + timedelta(minutes=30)
        await store.close_anomaly(record.id, ended)
        # closing twice keeps the first end time
        await store.close_anomaly(record.id, ended + timedelta(hours=1))

        [closed] = await store.list_closed_anomalies(datetime(2000, 1, 1, tzinfo=timezone.utc))
        assert closed.ended_at == ended
        assert not closed.is_open

    @pytest.mark.asyncio
    async def test_closed_list_respects_since(self, store):
        record = await store.create_anomaly(_new_anomaly())
        await store.close_anomaly(record.id, TUESDAY_21 + timedelta(minutes=5))

        future = datetime.now(timezone.utc) + timedelta(days=1)
        assert await store.list_closed_anomalies(future) == []


class TestErrors:
    @pytest.mark.asyncio
    async def test_database_errors_wrapped(self):
        session_factory = MagicMock(side_effect=OperationalError("SELECT", {}, Exception("disk I/O error")))
        store = SqlStore(session_factory, timeout=1.0)

        with pytest.raises(StoreError):
            await store.list_open_anomalies()
