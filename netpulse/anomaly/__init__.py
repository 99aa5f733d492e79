"""Anomaly pipeline — baselining, detection, lifecycle and recurring patterns."""

from .baseline import BaselineBucket, BaselineEngine, BaselineSnapshot
from .detector import AnomalyCandidate, DetectionEngine
from .lifecycle import AnomalyLifecycleManager, LifecycleSummary, Transition, next_transition
from .patterns import PatternRecognizer, RecurringPattern
