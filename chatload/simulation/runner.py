"""Wires provisioner, scheduler, sessions and reporters for one load-test run."""

from __future__ import annotations

import asyncio
import contextlib
import random
from collections import Counter as Tally
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

import structlog

from chatload.clients.api import ChatApiClient
from chatload.clients.channel import Channel, ReconnectPolicy, SocketIOChannel
from chatload.config import RunConfig
from chatload.metrics.activity import ActivityEntry, ActivityLog
from chatload.metrics.aggregator import MetricsAggregator, MetricsSnapshot
from chatload.shared.errors import ProvisioningError

from .provisioner import RoomApi, RoomProvisioner
from .scheduler import BatchScheduler
from .session import SessionState, SimulatedSession

logger = structlog.get_logger()


class Reporter(Protocol):
    """Pull-side consumer of snapshots, polled on the report interval."""

    def report(self, snapshot: MetricsSnapshot, activity: list[ActivityEntry]) -> None: ...


@dataclass
class RunResult:
    room_id: str
    snapshot: MetricsSnapshot
    states: list[SessionState] = field(default_factory=list)

    @property
    def state_counts(self) -> dict[str, int]:
        return dict(Tally(state.value for state in self.states))


class LoadTestRunner:
    """Runs one load test end to end and returns the final snapshot."""

    def __init__(
        self,
        config: RunConfig,
        *,
        api: RoomApi | None = None,
        channel_factory: Callable[[], Channel] | None = None,
        metrics: MetricsAggregator | None = None,
        activity: ActivityLog | None = None,
        reporters: Sequence[Reporter] = (),
        rng: random.Random | None = None,
    ) -> None:
        self.config = config
        self.metrics = metrics or MetricsAggregator()
        self.activity = activity or ActivityLog()
        self.reporters = list(reporters)
        self.stop_event = asyncio.Event()
        self._rng = rng or random.Random()
        self._owns_api = api is None
        self._api = api
        self._channel_factory = channel_factory or self._socketio_channel

    def _socketio_channel(self) -> Channel:
        policy = ReconnectPolicy(
            attempts=self.config.reconnect_attempts,
            delay_seconds=self.config.reconnect_delay_seconds,
        )
        return SocketIOChannel(self.config.socket_url, policy)

    def build_session(self, user_id: int, room_id: str) -> SimulatedSession:
        assert self._api is not None
        return SimulatedSession(
            user_id,
            room_id,
            self.config,
            self._api,
            self._channel_factory(),
            self.metrics,
            self.activity,
            stop_event=self.stop_event,
            rng=random.Random(self._rng.random()),
        )

    def request_stop(self) -> None:
        """Tell in-flight sessions to skip to drain/close."""
        if not self.stop_event.is_set():
            self.activity.warn("Stop requested, sessions will drain and close")
            self.stop_event.set()

    def publish(self) -> MetricsSnapshot:
        snapshot = self.metrics.snapshot()
        entries = self.activity.entries()
        for reporter in self.reporters:
            try:
                reporter.report(snapshot, entries)
            except Exception:
                logger.exception("reporter_failed", reporter=type(reporter).__name__)
        return snapshot

    async def _report_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.report_interval_seconds)
            self.publish()

    async def _duration_timer(self) -> None:
        await asyncio.sleep(self.config.duration_seconds)
        self.activity.warn(f"Duration of {self.config.duration_seconds}s reached")
        self.request_stop()

    async def run(self) -> RunResult:
        cfg = self.config
        if self._api is None:
            self._api = ChatApiClient(
                cfg.api_url,
                auth_timeout_seconds=cfg.auth_timeout_seconds,
                room_timeout_seconds=cfg.room_timeout_seconds,
                max_connections=max(cfg.batch_size * 2, 20),
            )
        background: list[asyncio.Task[None]] = []
        try:
            try:
                room_id = await RoomProvisioner(
                    self._api, self.activity, password=cfg.password
                ).ensure_room(cfg.room_id)
            except ProvisioningError:
                self.activity.error("Failed to setup test room. Aborting test.")
                raise

            self.activity.info(
                f"Starting load test: {cfg.total_users} users in {cfg.total_batches} batches"
            )
            self.activity.info(
                f"Batch configuration: {cfg.batch_size} users every {cfg.batch_delay_ms}ms"
            )
            self.activity.info(f"Target room: {room_id}")
            logger.info(
                "load_test_starting",
                users=cfg.total_users,
                batches=cfg.total_batches,
                batch_size=cfg.batch_size,
                batch_delay_ms=cfg.batch_delay_ms,
                messages_per_user=cfg.messages_per_user,
                room_id=room_id,
            )
            self.publish()

            background.append(asyncio.create_task(self._report_loop(), name="reporter"))
            if cfg.duration_seconds > 0:
                background.append(asyncio.create_task(self._duration_timer(), name="duration"))

            scheduler = BatchScheduler(
                cfg.total_users,
                cfg.batch_size,
                cfg.batch_delay_ms,
                lambda user_id: self.build_session(user_id, room_id),
                self.activity,
            )
            states = await scheduler.run()
        finally:
            for task in background:
                task.cancel()
            for task in background:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            if self._owns_api and isinstance(self._api, ChatApiClient):
                await self._api.aclose()

        snapshot = self.publish()
        result = RunResult(room_id=room_id, snapshot=snapshot, states=states)
        logger.info(
            "load_test_completed",
            elapsed_seconds=round(snapshot.elapsed_seconds, 1),
            messages_sent=snapshot.messages_sent,
            messages_per_sec=round(snapshot.messages_per_sec, 2),
            total_errors=snapshot.total_errors,
            states=result.state_counts,
        )
        return result
