"""SQLAlchemy models package."""

from .base import Base
from .measurement import Measurement, MeasurementRollup
from .anomaly import Anomaly
from .alert_config import AlertConfig
