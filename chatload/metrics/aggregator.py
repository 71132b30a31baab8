"""Run-wide counters and latency samples shared by every simulated session.

One ``MetricsAggregator`` is created per run and handed to each session at
construction time. All mutation goes through a lock, so increments from any
number of tasks (or the exporter thread) are never lost. ``snapshot()`` copies
the state under the lock and computes the derived statistics outside of it.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any

from .stats import mean, percentile


class Counter(StrEnum):
    USERS_CREATED = "users_created"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    MESSAGES_SENT = "messages_sent"
    MESSAGES_RECEIVED = "messages_received"
    MESSAGES_READ = "messages_read"
    READ_ACKS_RECEIVED = "read_acks_received"
    ERRORS_AUTH = "errors_auth"
    ERRORS_CONNECTION = "errors_connection"
    ERRORS_MESSAGE = "errors_message"


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time copy of every counter and derived statistic."""

    elapsed_seconds: float
    users_created: int
    connected: int
    disconnected: int
    messages_sent: int
    messages_received: int
    messages_read: int
    read_acks_received: int
    errors_auth: int
    errors_connection: int
    errors_message: int
    avg_latency_ms: float
    p95_latency_ms: float
    p99_latency_ms: float
    avg_connection_time_ms: float
    messages_per_sec: float
    latency_samples: int
    connection_samples: int

    @property
    def total_errors(self) -> int:
        return self.errors_auth + self.errors_connection + self.errors_message

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["total_errors"] = self.total_errors
        return data


class MetricsAggregator:
    """Lock-protected counters plus append-only latency/connection samples."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._counters: dict[Counter, int] = {c: 0 for c in Counter}
        self._latencies: list[float] = []
        self._connection_times: list[float] = []
        self.start_time = clock()

    def increment(self, counter: Counter, amount: int = 1) -> None:
        if amount < 0:
            raise ValueError(f"counters only move forward, got amount={amount}")
        with self._lock:
            self._counters[counter] += amount

    def record_latency(self, latency_ms: float) -> None:
        with self._lock:
            self._latencies.append(latency_ms)

    def record_connection_time(self, connection_ms: float) -> None:
        with self._lock:
            self._connection_times.append(connection_ms)

    def count(self, counter: Counter) -> int:
        with self._lock:
            return self._counters[counter]

    def latencies(self) -> list[float]:
        with self._lock:
            return list(self._latencies)

    def connection_times(self) -> list[float]:
        with self._lock:
            return list(self._connection_times)

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            counters = dict(self._counters)
            latencies = list(self._latencies)
            connection_times = list(self._connection_times)
        elapsed = max(0.0, self._clock() - self.start_time)

        sent = counters[Counter.MESSAGES_SENT]
        return MetricsSnapshot(
            elapsed_seconds=elapsed,
            users_created=counters[Counter.USERS_CREATED],
            connected=counters[Counter.CONNECTED],
            disconnected=counters[Counter.DISCONNECTED],
            messages_sent=sent,
            messages_received=counters[Counter.MESSAGES_RECEIVED],
            messages_read=counters[Counter.MESSAGES_READ],
            read_acks_received=counters[Counter.READ_ACKS_RECEIVED],
            errors_auth=counters[Counter.ERRORS_AUTH],
            errors_connection=counters[Counter.ERRORS_CONNECTION],
            errors_message=counters[Counter.ERRORS_MESSAGE],
            avg_latency_ms=mean(latencies),
            p95_latency_ms=percentile(latencies, 95),
            p99_latency_ms=percentile(latencies, 99),
            avg_connection_time_ms=mean(connection_times),
            messages_per_sec=sent / elapsed if elapsed > 0 else 0.0,
            latency_samples=len(latencies),
            connection_samples=len(connection_times),
        )
