"""NetPulse configuration system using Pydantic Settings."""

from __future__ import annotations

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class NetPulseConfig(BaseSettings):
    """Main configuration class. Loads from .env file and environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "NETPULSE"
    debug: bool = False

    # Logging
    log_dir: str = "logs"
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    # Database
    database_url: str = "sqlite+aiosqlite:///./netpulse.db"
    db_timeout_seconds: float = 30.0

    # Baseline / detection
    baseline_window_weeks: int = 4
    detection_window_minutes: int = 10
    pattern_window_weeks: int = 4
    pattern_min_occurrences: int = 3

    # Rollups
    rollup_lookback_minutes: int = 15

    # Job cadence (seconds)
    rollup_refresh_interval: int = 60
    baseline_interval: int = 3600
    anomaly_detect_interval: int = 300
    pattern_detect_interval: int = 604800  # weekly
    alert_evaluate_interval: int = 60

    # Alerting
    alert_cooldown_minutes: int = 30
    notification_timeout_seconds: float = 10.0

    # SMTP relay for the email channel
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    smtp_from: str = "netpulse@localhost"

    @field_validator(
        "rollup_refresh_interval",
        "baseline_interval",
        "anomaly_detect_interval",
        "pattern_detect_interval",
        "alert_evaluate_interval",
        "alert_cooldown_minutes",
        "rollup_lookback_minutes",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("intervals and cooldowns must be positive")
        return v

    @field_validator("pattern_min_occurrences")
    @classmethod
    def validate_min_occurrences(cls, v: int) -> int:
        if v < 1:
            raise ValueError("pattern_min_occurrences must be at least 1")
        return v

    @property
    def smtp_settings(self) -> dict:
        """SMTP relay settings in the shape SMTPSender expects."""
        return {
            "host": self.smtp_host,
            "port": self.smtp_port,
            "username": self.smtp_username or "",
            "password": self.smtp_password or "",
            "from_addr": self.smtp_from,
            "use_tls": self.smtp_use_tls,
        }


def get_config() -> NetPulseConfig:
    """Factory function to create config instance."""
    return NetPulseConfig()
