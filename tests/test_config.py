"""Tests for NetPulseConfig — defaults, environment overrides, validation."""

import pytest
from pydantic import ValidationError

from netpulse.config import NetPulseConfig


class TestConfig:
    def test_defaults(self):
        config = NetPulseConfig(_env_file=None)
        assert config.baseline_window_weeks == 4
        assert config.alert_cooldown_minutes == 30
        assert config.pattern_min_occurrences == 3
        assert config.anomaly_detect_interval == 300
        assert config.database_url.startswith("sqlite+aiosqlite")

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("ALERT_COOLDOWN_MINUTES", "45")
        monkeypatch.setenv("SMTP_HOST", "relay.example.com")
        config = NetPulseConfig(_env_file=None)

        assert config.alert_cooldown_minutes == 45
        assert config.smtp_settings["host"] == "relay.example.com"

    def test_non_positive_interval_rejected(self):
        with pytest.raises(ValidationError):
            NetPulseConfig(_env_file=None, alert_evaluate_interval=0)

    def test_min_occurrences_validated(self):
        with pytest.raises(ValidationError):
            NetPulseConfig(_env_file=None, pattern_min_occurrences=0)

    def test_smtp_settings_shape(self):
        settings = NetPulseConfig(_env_file=None, smtp_username=None).smtp_settings
        assert set(settings) == {"host", "port", "username", "password", "from_addr", "use_tls"}
        assert settings["username"] == ""
