"""Online metrics: stat helpers, the shared aggregator and the activity log."""

from .activity import ActivityEntry, ActivityLog, Severity
from .aggregator import Counter, MetricsAggregator, MetricsSnapshot
from .stats import mean, percentile

__all__ = [
    "ActivityEntry",
    "ActivityLog",
    "Counter",
    "MetricsAggregator",
    "MetricsSnapshot",
    "Severity",
    "mean",
    "percentile",
]
