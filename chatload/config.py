"""Run configuration: environment settings and the immutable per-run snapshot."""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml
from pydantic_settings import BaseSettings

DEFAULT_PASSWORD = "Test1234!"


class Settings(BaseSettings):
    app_name: str = "chatload"
    log_level: str = "INFO"
    log_json: bool = False

    api_url: str = "http://localhost:5000"
    socket_url: str = "ws://localhost:5000"

    # Prometheus pull endpoint; 0 disables it
    metrics_port: int = 9100
    report_interval_seconds: float = 2.0

    model_config = {"env_prefix": "CHATLOAD_", "env_file": ".env", "extra": "ignore"}


settings = Settings()


@dataclass(frozen=True)
class RunConfig:
    """All tunables for a single load-test run."""

    total_users: int = 100
    batch_size: int = 10
    batch_delay_ms: int = 1000
    # Informational only; pacing is governed by batch_size and batch_delay_ms.
    ramp_up_seconds: int = 30
    # 0 runs until every session completes naturally.
    duration_seconds: int = 0
    messages_per_user: int = 20
    api_url: str = settings.api_url
    socket_url: str = settings.socket_url
    room_id: str | None = None
    password: str = DEFAULT_PASSWORD
    # Session pacing
    think_time_min_ms: int = 1000
    think_time_max_ms: int = 3000
    drain_seconds: float = 5.0
    # Collaborator timeouts
    auth_timeout_seconds: float = 5.0
    room_timeout_seconds: float = 10.0
    # Channel reconnect policy
    reconnect_attempts: int = 3
    reconnect_delay_seconds: float = 1.0
    # Reporting
    report_interval_seconds: float = settings.report_interval_seconds
    metrics_port: int | None = None

    def __post_init__(self) -> None:
        if self.total_users < 0:
            raise ValueError(f"total_users must be >= 0, got {self.total_users}")
        if self.batch_size <= 0:
            raise ValueError(f"batch_size must be > 0, got {self.batch_size}")
        if self.batch_delay_ms < 0:
            raise ValueError(f"batch_delay_ms must be >= 0, got {self.batch_delay_ms}")
        if self.messages_per_user < 0:
            raise ValueError(
                f"messages_per_user must be >= 0, got {self.messages_per_user}"
            )
        if self.duration_seconds < 0:
            raise ValueError(f"duration_seconds must be >= 0, got {self.duration_seconds}")
        if self.think_time_min_ms > self.think_time_max_ms:
            raise ValueError(
                f"think time range is inverted: "
                f"{self.think_time_min_ms} > {self.think_time_max_ms}"
            )
        if self.reconnect_attempts < 0:
            raise ValueError(
                f"reconnect_attempts must be >= 0, got {self.reconnect_attempts}"
            )
        if self.report_interval_seconds <= 0:
            raise ValueError(
                f"report_interval_seconds must be > 0, got {self.report_interval_seconds}"
            )

    @property
    def total_batches(self) -> int:
        return -(-self.total_users // self.batch_size)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "RunConfig":
        """Build a config from a mapping, ignoring keys it does not know."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known and v is not None})


def load_profile(path: str | Path) -> dict[str, Any]:
    """Read a YAML run profile. Keys use RunConfig field names."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"profile {path} must contain a mapping, got {type(data).__name__}")
    return data
