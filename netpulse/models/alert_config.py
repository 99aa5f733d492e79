"""Alert configuration — user-defined threshold rules, read-only to the core."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class AlertConfig(Base):
    __tablename__ = "alert_configs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    probe_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)  # None = all probes
    metric: Mapped[str] = mapped_column(String(20), nullable=False)
    threshold: Mapped[float] = mapped_column(Float, nullable=False)
    comparison: Mapped[str] = mapped_column(String(3), nullable=False)  # gt, lt, gte, lte
    duration_min: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    channel: Mapped[str] = mapped_column(String(20), nullable=False)  # webhook, discord, email
    channel_config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
