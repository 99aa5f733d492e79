"""Exception hierarchy for the NetPulse core."""


class NetPulseError(Exception):
    """Base class for all NetPulse errors."""


class StoreError(NetPulseError):
    """A collaborator query or write failed or timed out."""


class OpenAnomalyConflictError(NetPulseError):
    """More than one open anomaly exists for a (probe, metric) key.

    This is a state violation and is surfaced, never reconciled.
    """

    def __init__(self, probe_id: str, metric: str, anomaly_ids: list[str]):
        self.probe_id = probe_id
        self.metric = metric
        self.anomaly_ids = anomaly_ids
        super().__init__(
            f"{len(anomaly_ids)} open anomalies for probe={probe_id} metric={metric}: {anomaly_ids}"
        )


class ChannelConfigError(NetPulseError):
    """An alert config's channel_config is missing or malformed."""

    def __init__(self, channel: str, reason: str):
        self.channel = channel
        self.reason = reason
        super().__init__(f"invalid {channel} channel config: {reason}")


class UnknownProfileError(NetPulseError, ValueError):
    """A quality score was requested for a profile that does not exist."""
