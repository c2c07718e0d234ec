"""Tests for the background expiry sweeper."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from filevault.core.exceptions import UpstreamError
from filevault.services.file_service import SweepResult
from filevault.tasks.cleanup import ExpirySweeper, SweeperState


def make_sweeper(file_service, interval=3600, tick_timeout=5):
    return ExpirySweeper(file_service, interval=interval, batch_size=10, tick_timeout=tick_timeout)


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class TestRunOnce:

    async def test_deletes_expired_files(self, file_service, upload, repository):
        expired = await upload(expires_in="-1h")
        live = await upload()
        sweeper = make_sweeper(file_service)

        assert await sweeper.run_once() == 1
        assert await repository.get_file(expired.id) is None
        assert await repository.get_file(live.id) is not None
        assert sweeper.total_deleted == 1

    async def test_upstream_failure_is_absorbed(self, file_service, repository):
        sweeper = make_sweeper(file_service)
        with patch.object(repository, "get_expired_files", side_effect=UpstreamError("db down")):
            assert await sweeper.run_once() == 0
        assert sweeper.state is SweeperState.IDLE

    async def test_unexpected_failure_is_absorbed(self, file_service):
        sweeper = make_sweeper(file_service)
        with patch.object(file_service, "cleanup_expired_files", side_effect=RuntimeError("boom")):
            assert await sweeper.run_once() == 0

    async def test_tick_timeout(self, file_service):
        async def slow(batch_size):
            await asyncio.sleep(1)
            return SweepResult(deleted=5)

        sweeper = make_sweeper(file_service, tick_timeout=0.05)
        with patch.object(file_service, "cleanup_expired_files", side_effect=slow):
            assert await sweeper.run_once() == 0

    async def test_failed_blob_deletes_are_counted(self, file_service):
        sweeper = make_sweeper(file_service)
        result = SweepResult(candidates=3, deleted=2, failed=1)
        with patch.object(file_service, "cleanup_expired_files", AsyncMock(return_value=result)):
            assert await sweeper.run_once() == 2
        assert sweeper.total_failed == 1


class TestLifecycle:

    async def test_start_runs_a_sweep_immediately(self, file_service, upload, repository):
        record = await upload(expires_in="-1h")
        sweeper = make_sweeper(file_service)

        sweeper.start()
        try:
            await wait_until(lambda: sweeper.total_deleted == 1)
        finally:
            await sweeper.stop()
        assert await repository.get_file(record.id) is None

    async def test_sweeps_repeat_every_interval(self, file_service):
        calls = []

        async def count(batch_size):
            calls.append(batch_size)
            return SweepResult()

        sweeper = make_sweeper(file_service, interval=0.01)
        with patch.object(file_service, "cleanup_expired_files", side_effect=count):
            sweeper.start()
            await wait_until(lambda: len(calls) >= 3)
            await sweeper.stop()
        assert calls[0] == 10

    async def test_stop_is_prompt_while_idle(self, file_service):
        sweeper = make_sweeper(file_service, interval=3600)
        sweeper.start()
        await asyncio.sleep(0.05)
        await asyncio.wait_for(sweeper.stop(), timeout=1)
        assert sweeper.state is SweeperState.STOPPED
        assert not sweeper.is_running

    async def test_stop_waits_for_in_flight_sweep(self, file_service):
        started = asyncio.Event()
        finished = []

        async def slow(batch_size):
            started.set()
            await asyncio.sleep(0.1)
            finished.append(True)
            return SweepResult()

        sweeper = make_sweeper(file_service)
        with patch.object(file_service, "cleanup_expired_files", side_effect=slow):
            sweeper.start()
            await started.wait()
            await sweeper.stop()
        assert finished == [True]

    async def test_double_stop_is_noop(self, file_service):
        sweeper = make_sweeper(file_service)
        sweeper.start()
        await sweeper.stop()
        await sweeper.stop()
        assert sweeper.state is SweeperState.STOPPED

    async def test_stop_before_start_is_noop(self, file_service):
        sweeper = make_sweeper(file_service)
        await sweeper.stop()
        assert sweeper.state is SweeperState.IDLE

    async def test_start_after_stop_is_rejected(self, file_service):
        sweeper = make_sweeper(file_service)
        sweeper.start()
        await sweeper.stop()
        with pytest.raises(RuntimeError):
            sweeper.start()

    async def test_second_start_is_ignored(self, file_service):
        sweeper = make_sweeper(file_service)
        sweeper.start()
        task = sweeper._task
        sweeper.start()
        assert sweeper._task is task
        await sweeper.stop()
