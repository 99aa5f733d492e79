"""SQLAlchemy implementation of the collaborator contracts.

Every public call runs in its own session under a timeout. Anomaly
transitions are one statement and one commit each.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..anomaly.baseline import summarize_rollups
from ..exceptions import OpenAnomalyConflictError, StoreError
from ..metrics import METRIC_AGGREGATION, METRICS, as_utc, hour_of_week, utcnow
from ..models.alert_config import AlertConfig
from ..models.anomaly import Anomaly
from ..models.measurement import Measurement, MeasurementRollup
from ..utils.event_bus import EventBus
from ..utils.logging import get_logger
from .contracts import (
    AlertConfigRecord,
    AlertConfigStore,
    AnomalyRecord,
    AnomalyStore,
    HourOfWeekAggregate,
    LiveAggregate,
    MetricsStore,
    NewAnomaly,
    RecentRollup,
)

logger = get_logger("store.sql")

ROLLUP_MINUTES = 5

# metric -> raw column
RAW_COLUMNS = {
    "latency": Measurement.latency_avg,
    "jitter": Measurement.jitter,
    "packet_loss": Measurement.packet_loss,
    "dns": Measurement.dns_time,
    "bufferbloat": Measurement.bufferbloat,
}

# metric -> rollup column attribute name
ROLLUP_COLUMNS = {
    "latency": "latency_avg",
    "jitter": "jitter_avg",
    "packet_loss": "packet_loss_avg",
    "dns": "dns_time_avg",
    "bufferbloat": "bufferbloat_avg",
}


def floor_to_bucket(ts: datetime, minutes: int = ROLLUP_MINUTES) -> datetime:
    return ts.replace(minute=ts.minute - ts.minute % minutes, second=0, microsecond=0)


def _to_anomaly_record(row: Anomaly) -> AnomalyRecord:
    return AnomalyRecord(
        id=row.id,
        probe_id=row.probe_id,
        metric=row.metric,
        started_at=as_utc(row.started_at),
        ended_at=as_utc(row.ended_at),
        expected_value=row.expected_value,
        actual_value=row.actual_value,
        severity=row.severity,
        day_of_week=row.day_of_week,
        hour_of_day=row.hour_of_day,
        description=row.description,
    )


def _to_recent_rollup(row: MeasurementRollup) -> RecentRollup:
    bucket = as_utc(row.bucket)
    return RecentRollup(
        probe_id=row.probe_id,
        bucket_time=bucket,
        hour_of_week=hour_of_week(bucket),
        values={metric: getattr(row, column) for metric, column in ROLLUP_COLUMNS.items()},
    )


class SqlStore(MetricsStore, AnomalyStore, AlertConfigStore):
    """Reference store backed by an async SQLAlchemy session factory."""

    def __init__(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
        timeout: float = 30.0,
        event_bus: Optional[EventBus] = None,
    ):
        self._session_factory = db_session_factory
        self._timeout = timeout
        self._event_bus = event_bus

    async def _bounded(self, operation: str, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise StoreError(f"{operation} timed out after {self._timeout}s") from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"{operation} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def record_measurement(
        self,
        probe_id: str,
        time: datetime,
        target: str,
        latency_avg: Optional[float] = None,
        latency_p95: Optional[float] = None,
        jitter: Optional[float] = None,
        packet_loss: Optional[float] = None,
        dns_time: Optional[float] = None,
        bufferbloat: Optional[float] = None,
    ) -> None:
        """Store one raw sample and announce it on the event bus."""
        async def _op():
            async with self._session_factory() as session:
                session.add(Measurement(
                    probe_id=probe_id,
                    time=time,
                    target=target,
                    latency_avg=latency_avg,
                    latency_p95=latency_p95,
                    jitter=jitter,
                    packet_loss=packet_loss,
                    dns_time=dns_time,
                    bufferbloat=bufferbloat,
                ))
                await session.commit()

        await self._bounded("record_measurement", _op())
        if self._event_bus is not None:
            self._event_bus.publish("measurement", {
                "probe_id": probe_id,
                "time": time.isoformat(),
                "target": target,
                "latency_avg": latency_avg,
                "jitter": jitter,
                "packet_loss": packet_loss,
                "dns_time": dns_time,
                "bufferbloat": bufferbloat,
            })

    async def refresh_rollups(self, since: datetime) -> int:
        """Rebuild 5-minute rollups for every bucket at or after ``since``.

        Returns the number of rollup rows written.
        """
        start = floor_to_bucket(since)

        async def _op():
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Measurement).where(Measurement.time >= start)
                )
                grouped: dict[tuple[str, datetime], list[Measurement]] = defaultdict(list)
                for row in result.scalars().all():
                    grouped[(row.probe_id, floor_to_bucket(as_utc(row.time)))].append(row)

                await session.execute(
                    delete(MeasurementRollup).where(MeasurementRollup.bucket >= start)
                )
                for (probe_id, bucket), rows in grouped.items():
                    values = {}
                    for metric, column in RAW_COLUMNS.items():
                        samples = [getattr(r, column.key) for r in rows if getattr(r, column.key) is not None]
                        values[ROLLUP_COLUMNS[metric]] = sum(samples) / len(samples) if samples else None
                    session.add(MeasurementRollup(
                        probe_id=probe_id,
                        bucket=bucket,
                        sample_count=len(rows),
                        **values,
                    ))
                await session.commit()
                return len(grouped)

        written = await self._bounded("refresh_rollups", _op())
        logger.debug("rollups_refreshed", buckets=written, since=start.isoformat())
        return written

    # ------------------------------------------------------------------
    # MetricsStore
    # ------------------------------------------------------------------

    async def _rollups_since(self, since: datetime) -> list[RecentRollup]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(MeasurementRollup)
                .where(MeasurementRollup.bucket > since)
                .order_by(MeasurementRollup.bucket.asc())
            )
            return [_to_recent_rollup(row) for row in result.scalars().all()]

    async def get_hour_of_week_aggregates(self, since: datetime) -> list[HourOfWeekAggregate]:
        rollups = await self._bounded("get_hour_of_week_aggregates", self._rollups_since(since))
        return summarize_rollups(rollups)

    async def get_recent_rollups(self, since: datetime) -> list[RecentRollup]:
        return await self._bounded("get_recent_rollups", self._rollups_since(since))

    async def get_live_aggregate(
        self,
        metric: str,
        duration_min: int,
        probe_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> LiveAggregate:
        if metric not in RAW_COLUMNS:
            raise ValueError(f"unknown metric: {metric}")
        column = RAW_COLUMNS[metric]
        agg = func.max(column) if METRIC_AGGREGATION[metric] == "max" else func.avg(column)
        cutoff = (now or utcnow()) - timedelta(minutes=duration_min)

        query = select(agg, func.count(column)).where(Measurement.time > cutoff, column.is_not(None))
        if probe_id is not None:
            query = query.where(Measurement.probe_id == probe_id)

        async def _op():
            async with self._session_factory() as session:
                value, count = (await session.execute(query)).one()
                return LiveAggregate(value=float(value) if value is not None else None, sample_count=int(count))

        return await self._bounded("get_live_aggregate", _op())

    async def get_window_averages(
        self, probe_id: str, start: datetime, end: datetime
    ) -> Optional[dict[str, Optional[float]]]:
        query = select(
            func.count(Measurement.id),
            *[func.avg(RAW_COLUMNS[m]) for m in METRICS],
        ).where(
            Measurement.probe_id == probe_id,
            Measurement.time >= start,
            Measurement.time <= end,
        )

        async def _op():
            async with self._session_factory() as session:
                row = (await session.execute(query)).one()
                if not row[0]:
                    return None
                return {
                    metric: float(value) if value is not None else None
                    for metric, value in zip(METRICS, row[1:])
                }

        return await self._bounded("get_window_averages", _op())

    # ------------------------------------------------------------------
    # AnomalyStore
    # ------------------------------------------------------------------

    async def find_open_anomaly(self, probe_id: str, metric: str) -> Optional[AnomalyRecord]:
        async def _op():
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Anomaly).where(
                        Anomaly.probe_id == probe_id,
                        Anomaly.metric == metric,
                        Anomaly.ended_at.is_(None),
                    )
                )
                return result.scalars().all()

        rows = await self._bounded("find_open_anomaly", _op())
        if len(rows) > 1:
            raise OpenAnomalyConflictError(probe_id, metric, [r.id for r in rows])
        return _to_anomaly_record(rows[0]) if rows else None

    async def list_open_anomalies(self) -> list[AnomalyRecord]:
        async def _op():
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Anomaly).where(Anomaly.ended_at.is_(None)).order_by(Anomaly.started_at)
                )
                return [_to_anomaly_record(row) for row in result.scalars().all()]

        return await self._bounded("list_open_anomalies", _op())

    async def create_anomaly(self, anomaly: NewAnomaly) -> AnomalyRecord:
        async def _op():
            async with self._session_factory() as session:
                row = Anomaly(
                    probe_id=anomaly.probe_id,
                    metric=anomaly.metric,
                    started_at=anomaly.started_at,
                    expected_value=anomaly.expected_value,
                    actual_value=anomaly.actual_value,
                    severity=anomaly.severity,
                    day_of_week=anomaly.day_of_week,
                    hour_of_day=anomaly.hour_of_day,
                    description=anomaly.description,
                )
                session.add(row)
                await session.commit()
                await session.refresh(row)
                return _to_anomaly_record(row)

        return await self._bounded("create_anomaly", _op())

    async def update_anomaly(self, anomaly_id: str, *, actual_value: float, severity: str) -> None:
        async def _op():
            async with self._session_factory() as session:
                await session.execute(
                    update(Anomaly)
                    .where(Anomaly.id == anomaly_id)
                    .values(actual_value=actual_value, severity=severity)
                )
                await session.commit()

        await self._bounded("update_anomaly", _op())

    async def close_anomaly(self, anomaly_id: str, ended_at: datetime) -> None:
        async def _op():
            async with self._session_factory() as session:
                await session.execute(
                    update(Anomaly)
                    .where(Anomaly.id == anomaly_id, Anomaly.ended_at.is_(None))
                    .values(ended_at=ended_at)
                )
                await session.commit()

        await self._bounded("close_anomaly", _op())

    async def list_closed_anomalies(self, since: datetime) -> list[AnomalyRecord]:
        async def _op():
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Anomaly).where(
                        Anomaly.created_at > since,
                        Anomaly.ended_at.is_not(None),
                        Anomaly.day_of_week.is_not(None),
                        Anomaly.hour_of_day.is_not(None),
                    )
                )
                return [_to_anomaly_record(row) for row in result.scalars().all()]

        return await self._bounded("list_closed_anomalies", _op())

    # ------------------------------------------------------------------
    # AlertConfigStore
    # ------------------------------------------------------------------

    async def list_active_alert_configs(self) -> list[AlertConfigRecord]:
        async def _op():
            async with self._session_factory() as session:
                result = await session.execute(
                    select(AlertConfig).where(AlertConfig.is_active == True)  # noqa: E712
                )
                return [
                    AlertConfigRecord(
                        id=row.id,
                        probe_id=row.probe_id,
                        metric=row.metric,
                        threshold=row.threshold,
                        comparison=row.comparison,
                        duration_min=row.duration_min,
                        channel=row.channel,
                        channel_config=dict(row.channel_config or {}),
                        is_active=row.is_active,
                    )
                    for row in result.scalars().all()
                ]

        return await self._bounded("list_active_alert_configs", _op())
