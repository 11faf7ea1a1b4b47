"""Tests for src/core/scheduler.py — backoff policy and loop timers."""

import asyncio

import pytest

from src.core.scheduler import BackoffPolicy, LoopScheduler, cancel_task


class TestBackoffPolicy:
    def test_grows_then_caps(self):
        policy = BackoffPolicy(initial_delay=1.0, max_delay=4.0, multiplier=2.0, max_attempts=5)

        assert [policy.delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 4.0]

    def test_defaults(self):
        policy = BackoffPolicy()

        assert policy.delay(0) == 1.0
        assert policy.delay(1) == 1.5
        assert policy.delay(20) == 30.0

    def test_exhausted_at_max_attempts(self):
        policy = BackoffPolicy(max_attempts=3)

        assert not policy.exhausted(2)
        assert policy.exhausted(3)

    def test_negative_attempts_rejected(self):
        with pytest.raises(ValueError):
            BackoffPolicy().delay(-1)


class TestLoopScheduler:
    @pytest.mark.asyncio
    async def test_runs_callback_after_delay(self):
        fired = asyncio.Event()

        LoopScheduler().call_later(0.01, fired.set)

        await asyncio.wait_for(fired.wait(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_cancelled_callback_never_runs(self):
        calls = []
        task = LoopScheduler().call_later(0.01, lambda: calls.append(1))

        cancel_task(task)
        await asyncio.sleep(0.05)

        assert calls == []
        assert task.cancelled()

    def test_cancel_task_accepts_none(self):
        cancel_task(None)
