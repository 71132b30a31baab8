"""Pull-side reporters for live snapshots: console table and Prometheus gauges."""

from .console import ConsoleReporter, build_metrics_table
from .prometheus import PrometheusReporter

__all__ = ["ConsoleReporter", "PrometheusReporter", "build_metrics_table"]
