"""Prometheus pull endpoint publishing the latest snapshot as gauges."""

from __future__ import annotations

import prometheus_client
import structlog

from chatload.metrics.activity import ActivityEntry
from chatload.metrics.aggregator import MetricsSnapshot

logger = structlog.get_logger()

METRIC_PREFIX = "chatload"

# snapshot attribute -> (metric suffix, help text)
GAUGES: dict[str, tuple[str, str]] = {
    "users_created": ("users_created", "Total users created (login/register) in load test"),
    "connected": ("users_connected", "Users that opened their Socket.IO channel"),
    "disconnected": ("users_disconnected", "Total disconnected users"),
    "messages_sent": ("messages_sent", "Total messages sent so far"),
    "messages_received": ("messages_received", "Total messages received so far"),
    "messages_read": ("messages_marked_read", "Total messages marked as read"),
    "read_acks_received": ("read_acks_received", "Total read ack events received"),
    "messages_per_sec": ("messages_per_second", "Messages sent per second of run time"),
    "avg_latency_ms": ("message_latency_avg_ms", "Average message latency in ms"),
    "p95_latency_ms": ("message_latency_p95_ms", "P95 message latency in ms"),
    "p99_latency_ms": ("message_latency_p99_ms", "P99 message latency in ms"),
    "avg_connection_time_ms": ("connection_time_avg_ms", "Average connection time in ms"),
    "errors_auth": ("auth_errors", "Total auth errors"),
    "errors_connection": ("connection_errors", "Total connection errors"),
    "errors_message": ("message_errors", "Total message errors"),
}


class PrometheusReporter:
    """Mirrors each snapshot into gauges on a private registry.

    ``start()`` serves the registry on ``/metrics``; without it the reporter
    only updates gauges, which is what the tests rely on.
    """

    def __init__(self, registry: prometheus_client.CollectorRegistry | None = None) -> None:
        if registry is None:
            registry = prometheus_client.CollectorRegistry()
            # process_* and python_info, as the default registry would expose
            prometheus_client.ProcessCollector(registry=registry)
            prometheus_client.PlatformCollector(registry=registry)
        self.registry = registry
        self._gauges = {
            attr: prometheus_client.Gauge(
                f"{METRIC_PREFIX}_{suffix}", help_text, registry=self.registry
            )
            for attr, (suffix, help_text) in GAUGES.items()
        }

    def start(self, port: int, addr: str = "0.0.0.0") -> None:
        prometheus_client.start_http_server(port, addr=addr, registry=self.registry)
        logger.info("prometheus_endpoint_started", url=f"http://{addr}:{port}/metrics")

    def report(self, snapshot: MetricsSnapshot, activity: list[ActivityEntry]) -> None:
        for attr, gauge in self._gauges.items():
            gauge.set(float(getattr(snapshot, attr)))

    def value(self, attr: str) -> float | None:
        suffix, _ = GAUGES[attr]
        return self.registry.get_sample_value(f"{METRIC_PREFIX}_{suffix}")
