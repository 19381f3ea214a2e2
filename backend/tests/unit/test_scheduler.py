"""Tests for the side-effect scheduler jobs"""
import asyncio
from unittest.mock import MagicMock

import pytest

from foundation_ops.config.settings import settings
from foundation_ops.scheduler import side_effect_scheduler
from foundation_ops.scheduler.side_effect_scheduler import SideEffectScheduler, scheduler_running


@pytest.fixture
def processor():
    processor = MagicMock()
    processor.server_id = "test-host-1"
    processor.process_pending.return_value = {"done": 2, "failed": 0, "skipped": 1}
    return processor


@pytest.fixture
def outbox():
    outbox = MagicMock()
    outbox.cleanup_stale_locks.return_value = 3
    return outbox


def test_drain_runs_one_processor_pass(processor, outbox):
    scheduler = SideEffectScheduler(processor=processor, outbox=outbox)

    assert asyncio.run(scheduler.drain()) == {"done": 2, "failed": 0, "skipped": 1}
    processor.process_pending.assert_called_once_with()


def test_drain_survives_processor_crash(processor, outbox):
    processor.process_pending.side_effect = RuntimeError("database went away")
    scheduler = SideEffectScheduler(processor=processor, outbox=outbox)

    assert asyncio.run(scheduler.drain()) is None


def test_stale_lock_sweep(processor, outbox):
    scheduler = SideEffectScheduler(processor=processor, outbox=outbox)

    assert asyncio.run(scheduler.clear_stale_locks()) == 3
    outbox.cleanup_stale_locks.assert_called_once_with(max_lock_age_minutes=settings.stale_lock_cleanup_minutes)


def test_start_and_stop(processor, outbox):
    scheduler = SideEffectScheduler(processor=processor, outbox=outbox)

    async def cycle():
        scheduler.start()
        started = scheduler.is_running
        scheduler.stop()
        return started, scheduler.is_running

    assert asyncio.run(cycle()) == (True, False)


def test_no_global_scheduler_until_started(monkeypatch):
    monkeypatch.setattr(side_effect_scheduler, "_scheduler", None)

    assert scheduler_running() is False
