"""Per-metric penalty curve breakpoints."""

from dataclasses import dataclass


@dataclass(frozen=True)
class MetricThresholds:
    good: float
    fair: float
    poor: float
    critical: float
    max_penalty: float


THRESHOLDS: dict[str, MetricThresholds] = {
    "latency": MetricThresholds(good=30, fair=80, poor=200, critical=500, max_penalty=30),
    "jitter": MetricThresholds(good=5, fair=20, poor=50, critical=100, max_penalty=20),
    "packet_loss": MetricThresholds(good=0.5, fair=2, poor=5, critical=10, max_penalty=30),
    "dns": MetricThresholds(good=50, fair=150, poor=500, critical=1000, max_penalty=10),
    "bufferbloat": MetricThresholds(good=30, fair=100, poor=300, critical=600, max_penalty=10),
}
