"""NetPulse core — network quality baselining, anomaly detection, alerting and scoring."""

__version__ = "0.1.0"
