"""Raw probe measurements and their 5-minute rollups."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Measurement(Base):
    __tablename__ = "measurements"
    __table_args__ = (
        UniqueConstraint("probe_id", "time", "target", name="uq_measurement_probe_time_target"),
        Index("ix_measurements_probe_time", "probe_id", "time"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    probe_id: Mapped[str] = mapped_column(String(36), nullable=False)
    target: Mapped[str] = mapped_column(String(255), nullable=False)
    latency_avg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)  # ms
    latency_p95: Mapped[Optional[float]] = mapped_column(Float, nullable=True)  # ms
    jitter: Mapped[Optional[float]] = mapped_column(Float, nullable=True)  # ms
    packet_loss: Mapped[Optional[float]] = mapped_column(Float, nullable=True)  # percent
    dns_time: Mapped[Optional[float]] = mapped_column(Float, nullable=True)  # ms
    bufferbloat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)  # ms


class MeasurementRollup(Base):
    __tablename__ = "measurements_5min"
    __table_args__ = (
        UniqueConstraint("probe_id", "bucket", name="uq_rollup_probe_bucket"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    probe_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    bucket: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    latency_avg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    jitter_avg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    packet_loss_avg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    dns_time_avg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    bufferbloat_avg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sample_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
