"""Command-line entry point.

Usage:
    python -m chatload --users 100 --batch-size 10 --batch-delay 1000 --messages 20
    python -m chatload --api-url http://localhost:5000 --socket-url ws://localhost:5000
    python -m chatload --room-id 6650f0c2... --duration 120
    python -m chatload --profile profiles/smoke.yaml --no-console
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any

import structlog

from chatload.config import RunConfig, Settings, load_profile
from chatload.reporting.console import ConsoleReporter
from chatload.reporting.prometheus import PrometheusReporter
from chatload.shared.errors import ProvisioningError
from chatload.shared.logging import setup_logging
from chatload.simulation.runner import LoadTestRunner, Reporter

logger = structlog.get_logger()

# argparse dest -> RunConfig field
_FLAG_FIELDS: dict[str, str] = {
    "users": "total_users",
    "rampup": "ramp_up_seconds",
    "duration": "duration_seconds",
    "messages": "messages_per_user",
    "api_url": "api_url",
    "socket_url": "socket_url",
    "room_id": "room_id",
    "batch_size": "batch_size",
    "batch_delay": "batch_delay_ms",
    "metrics_port": "metrics_port",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chatload",
        description="Synthetic Socket.IO chat load generator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    # Defaults are None so that unset flags fall through to the profile/env.
    parser.add_argument(
        "-u", "--users", type=int, help="Total number of users to simulate (default: 100)."
    )
    parser.add_argument(
        "-r", "--rampup", type=int, help="Ramp-up time in seconds, informational (default: 30)."
    )
    parser.add_argument(
        "-d",
        "--duration",
        type=int,
        help="Test duration in seconds, 0 = until all messages sent (default: 0).",
    )
    parser.add_argument("-m", "--messages", type=int, help="Messages per user (default: 20).")
    parser.add_argument("--api-url", type=str, help="Backend REST API URL.")
    parser.add_argument("--socket-url", type=str, help="Socket.IO server URL.")
    parser.add_argument(
        "--room-id", type=str, help="Room to send messages to (auto-created if omitted)."
    )
    parser.add_argument(
        "-b", "--batch-size", type=int, help="Users spawned per batch (default: 10)."
    )
    parser.add_argument(
        "--batch-delay", type=int, help="Delay between batches in milliseconds (default: 1000)."
    )
    parser.add_argument(
        "--metrics-port", type=int, help="Serve Prometheus metrics on this port (0 disables)."
    )
    parser.add_argument("--profile", type=str, help="YAML file with RunConfig fields.")
    parser.add_argument(
        "--no-console", action="store_true", help="Disable the live console table."
    )
    parser.add_argument(
        "--log-level", type=str, help="Log level (default from CHATLOAD_LOG_LEVEL)."
    )
    return parser


def resolve_config(args: argparse.Namespace, env: Settings) -> RunConfig:
    """Merge defaults < environment < YAML profile < command-line flags."""
    values: dict[str, Any] = {
        "api_url": env.api_url,
        "socket_url": env.socket_url,
        "report_interval_seconds": env.report_interval_seconds,
        "metrics_port": env.metrics_port,
    }
    if args.profile:
        values.update(load_profile(args.profile))
    for dest, field_name in _FLAG_FIELDS.items():
        value = getattr(args, dest, None)
        if value is not None:
            values[field_name] = value
    return RunConfig.from_mapping(values)


def _print_configuration(cfg: RunConfig) -> None:
    lines = [
        "=== Chat Load Test ===",
        f"  Users:           {cfg.total_users}",
        f"  Ramp-up time:    {cfg.ramp_up_seconds}s",
        f"  Batch size:      {cfg.batch_size} users/batch",
        f"  Batch delay:     {cfg.batch_delay_ms}ms",
        f"  Total batches:   {cfg.total_batches}",
        f"  Messages/user:   {cfg.messages_per_user}",
        f"  Duration:        {cfg.duration_seconds or 'until complete'}",
        f"  API URL:         {cfg.api_url}",
        f"  Socket.IO URL:   {cfg.socket_url}",
        f"  Room ID:         {cfg.room_id or 'auto-create'}",
    ]
    print("\n".join(lines), file=sys.stderr)


async def async_main(cfg: RunConfig, *, console: bool = True) -> int:
    reporters: list[Reporter] = []
    if console:
        reporters.append(ConsoleReporter())
    if cfg.metrics_port:
        exporter = PrometheusReporter()
        exporter.start(cfg.metrics_port)
        reporters.append(exporter)

    runner = LoadTestRunner(cfg, reporters=reporters)
    try:
        result = await runner.run()
    except ProvisioningError as exc:
        logger.error("load_test_aborted", error=str(exc))
        return 1

    print("\nLoad test completed!", file=sys.stderr)
    logger.info("final_snapshot", **result.snapshot.to_dict())
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    env = Settings()
    setup_logging(args.log_level or env.log_level, json_output=env.log_json)

    try:
        cfg = resolve_config(args, env)
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    _print_configuration(cfg)
    try:
        return asyncio.run(async_main(cfg, console=not args.no_console))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
