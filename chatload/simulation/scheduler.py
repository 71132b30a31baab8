"""Batch scheduler: releases sessions in fixed-size groups to avoid a connection storm."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Protocol

import structlog

from chatload.metrics.activity import ActivityLog

from .session import SessionState

logger = structlog.get_logger()


class RunnableSession(Protocol):
    async def run(self) -> SessionState: ...


def partition_batches(total_users: int, batch_size: int) -> list[range]:
    """Split ``[0, total_users)`` into ``ceil(total_users / batch_size)`` contiguous ranges.

    >>> partition_batches(25, 10)
    [range(0, 10), range(10, 20), range(20, 25)]
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be > 0, got {batch_size}")
    if total_users < 0:
        raise ValueError(f"total_users must be >= 0, got {total_users}")
    return [
        range(start, min(start + batch_size, total_users))
        for start in range(0, total_users, batch_size)
    ]


class BatchScheduler:
    """Launches one session task per user index, batch by batch.

    The scheduler sleeps ``batch_delay_ms`` between batches but never waits for
    a batch to finish before releasing the next. Once the last batch is out it
    waits for every launched session.
    """

    def __init__(
        self,
        total_users: int,
        batch_size: int,
        batch_delay_ms: int,
        session_factory: Callable[[int], RunnableSession],
        activity: ActivityLog,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.batches = partition_batches(total_users, batch_size)
        self.batch_delay_ms = batch_delay_ms
        self._session_factory = session_factory
        self._activity = activity
        self._sleep = sleep
        self.launched: list[asyncio.Task[SessionState]] = []

    async def _run_session(self, user_id: int) -> SessionState:
        session = self._session_factory(user_id)
        try:
            return await session.run()
        except asyncio.CancelledError:
            raise
        except Exception:
            # A bug in one session must not take the run down with it.
            logger.exception("session_crashed", user_id=user_id)
            return SessionState.FAILED

    async def run(self) -> list[SessionState]:
        """Release every batch, then wait for all sessions; returns their terminal states."""
        total_batches = len(self.batches)
        try:
            for number, batch in enumerate(self.batches, start=1):
                if len(batch) == 0:
                    continue
                self._activity.info(
                    f"Spawning batch {number}/{total_batches} "
                    f"(users {batch.start}-{batch.stop - 1})..."
                )
                for user_id in batch:
                    self.launched.append(
                        asyncio.create_task(self._run_session(user_id), name=f"session-{user_id}")
                    )
                if number < total_batches:
                    await self._sleep(self.batch_delay_ms / 1000.0)

            self._activity.info("All users spawned, waiting for completion...")
            return list(await asyncio.gather(*self.launched))
        except asyncio.CancelledError:
            for task in self.launched:
                task.cancel()
            await asyncio.gather(*self.launched, return_exceptions=True)
            raise
