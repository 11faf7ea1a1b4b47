"""
Street Legacy - Scheduled Tasks and Backoff

Cancellable timers for heartbeat, reconnect and cleanup. Components take a
Scheduler so tests can drive time by hand.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Protocol


class ScheduledTask(Protocol):
    """Handle to a pending callback."""

    def cancel(self) -> None: ...

    def cancelled(self) -> bool: ...


class Scheduler(Protocol):
    """Runs a callback once after a delay in seconds."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask: ...


class LoopScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(max(delay, 0.0), callback)


def cancel_task(task: ScheduledTask | None) -> None:
    """Cancel a scheduled task if there is one."""
    if task is not None and not task.cancelled():
        task.cancel()


@dataclass(frozen=True)
class BackoffPolicy:
    """Capped exponential backoff.

    Attributes:
        initial_delay: Delay before the first retry, in seconds.
        max_delay: Upper bound on any delay.
        multiplier: Growth factor per attempt.
        max_attempts: Retries allowed before giving up.
    """
    initial_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 1.5
    max_attempts: int = 10

    def delay(self, attempts: int) -> float:
        """Delay before the retry that follows ``attempts`` failed retries."""
        if attempts < 0:
            raise ValueError(f"attempts must be >= 0, got {attempts}")
        return min(self.initial_delay * self.multiplier ** attempts, self.max_delay)

    def exhausted(self, attempts: int) -> bool:
        return attempts >= self.max_attempts
