"""Tests for batch partitioning and the batch scheduler."""

import asyncio

import pytest

from chatload.simulation.scheduler import BatchScheduler, partition_batches
from chatload.simulation.session import SessionState


class StubSession:
    def __init__(self, user_id, gate=None, crash=False):
        self.user_id = user_id
        self.gate = gate
        self.crash = crash
        self.started = False

    async def run(self):
        self.started = True
        if self.gate is not None:
            await self.gate.wait()
        if self.crash:
            raise RuntimeError("session bug")
        return SessionState.CLOSED


class TestPartitionBatches:
    def test_last_batch_is_short(self):
        assert partition_batches(25, 10) == [range(0, 10), range(10, 20), range(20, 25)]

    def test_exact_multiple(self):
        assert [len(b) for b in partition_batches(30, 10)] == [10, 10, 10]

    def test_zero_users(self):
        assert partition_batches(0, 10) == []

    def test_batch_larger_than_total(self):
        assert partition_batches(3, 10) == [range(0, 3)]

    @pytest.mark.parametrize("total,size", [(10, 0), (10, -1), (-1, 5)])
    def test_invalid_input(self, total, size):
        with pytest.raises(ValueError):
            partition_batches(total, size)


class TestBatchScheduler:
    @pytest.mark.asyncio
    async def test_sleeps_between_batches_only(self, activity):
        sleeps = []

        async def sleep(seconds):
            sleeps.append(seconds)
            await asyncio.sleep(0)

        scheduler = BatchScheduler(25, 10, 500, StubSession, activity, sleep=sleep)
        states = await scheduler.run()

        assert sleeps == [0.5, 0.5]
        assert states == [SessionState.CLOSED] * 25
        assert len(scheduler.launched) == 25

    @pytest.mark.asyncio
    async def test_does_not_wait_for_a_batch_to_finish(self, activity):
        gate = asyncio.Event()
        sessions = []

        def factory(user_id):
            session = StubSession(user_id, gate=gate)
            sessions.append(session)
            return session

        scheduler = BatchScheduler(6, 2, 0, factory, activity)
        task = asyncio.create_task(scheduler.run())
        for _ in range(50):
            await asyncio.sleep(0)
            if len(scheduler.launched) == 6:
                break

        assert len(scheduler.launched) == 6
        assert not task.done()
        gate.set()
        assert await task == [SessionState.CLOSED] * 6
        assert [s.user_id for s in sessions] == list(range(6))

    @pytest.mark.asyncio
    async def test_crash_is_contained(self, activity):
        def factory(user_id):
            return StubSession(user_id, crash=user_id == 1)

        scheduler = BatchScheduler(3, 3, 0, factory, activity)
        states = await scheduler.run()

        assert states == [SessionState.CLOSED, SessionState.FAILED, SessionState.CLOSED]

    @pytest.mark.asyncio
    async def test_spawn_lines_in_activity(self, activity):
        scheduler = BatchScheduler(25, 10, 0, StubSession, activity)
        await scheduler.run()

        messages = [e.message for e in activity.entries()]
        assert messages[0].endswith("Spawning batch 1/3 (users 0-9)...")
        assert messages[2].endswith("Spawning batch 3/3 (users 20-24)...")
        assert messages[-1].endswith("All users spawned, waiting for completion...")

    @pytest.mark.asyncio
    async def test_cancel_cancels_launched_sessions(self, activity):
        gate = asyncio.Event()
        scheduler = BatchScheduler(4, 4, 0, lambda uid: StubSession(uid, gate=gate), activity)
        task = asyncio.create_task(scheduler.run())
        for _ in range(20):
            await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert all(t.cancelled() for t in scheduler.launched)
