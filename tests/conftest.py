"""
Street Legacy - Test Configuration and Fixtures

Fakes for the socket, the timer source, the clock and the action
submitter, shared by all test modules.
"""

import asyncio
import json
from typing import Any, Callable

import pytest
from websockets.exceptions import ConnectionClosed

from src.database.storage import MemoryStore
from src.offline.models import QueuedAction, SubmissionResult


async def settle(rounds: int = 20) -> None:
    """Let spawned tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# =============================================================================
# TIME
# =============================================================================

class FakeTimer:
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class FakeScheduler:
    """Scheduler whose clock only moves when a test calls advance()."""

    def __init__(self) -> None:
        self.now = 0.0
        self.delays: list[float] = []
        self._timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.now + delay, callback)
        self._timers.append(timer)
        self.delays.append(delay)
        return timer

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled() and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self._timers.remove(timer)
            self.now = timer.when
            timer.callback()
        self.now = target

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self._timers if not t.cancelled()]


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# SOCKET
# =============================================================================

_CLOSED = object()


class FakeSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self.closed_with: tuple[int, str] | None = None
        self.fail_writes = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str) -> None:
        if self.close_code is not None or self.fail_writes:
            raise ConnectionClosed(None, None)
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed_with = (code, reason)
        self._finish(code, reason)

    def feed(self, frame: dict[str, Any] | str) -> None:
        """Deliver a frame from the server."""
        self._inbox.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def server_close(self, code: int = 1006, reason: str = "") -> None:
        """Simulate the server (or the network) dropping the socket."""
        self._finish(code, reason)

    def _finish(self, code: int, reason: str) -> None:
        if self.close_code is None:
            self.close_code = code
            self.close_reason = reason
            self._inbox.put_nowait(_CLOSED)

    def __aiter__(self) -> "FakeSocket":
        return self

    async def __anext__(self) -> str:
        item = await self._inbox.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    @property
    def frames(self) -> list[dict[str, Any]]:
        return [json.loads(m) for m in self.sent]


class FakeConnector:
    """Connector that hands out FakeSockets, or raises queued failures."""

    def __init__(self) -> None:
        self.urls: list[str] = []
        self.sockets: list[FakeSocket] = []
        self.failures: list[Exception] = []

    async def __call__(self, url: str) -> FakeSocket:
        self.urls.append(url)
        if self.failures:
            raise self.failures.pop(0)
        sock = FakeSocket()
        self.sockets.append(sock)
        return sock

    @property
    def latest(self) -> FakeSocket:
        return self.sockets[-1]


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


# =============================================================================
# QUEUE
# =============================================================================

class FakeSubmitter:
    """Submitter returning scripted outcomes.

    Each queued outcome is a SubmissionResult, an exception to raise, or a
    callable taking the action. With a gate set, every submit waits on it.
    """

    def __init__(self) -> None:
        self.calls: list[QueuedAction] = []
        self.outcomes: list[Any] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def submit(self, action: QueuedAction) -> SubmissionResult:
        self.calls.append(action.model_copy(deep=True))
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if outcome is None:
            return SubmissionResult(server_result=dict(action.local_result))
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(action)
        return outcome

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def submitter() -> FakeSubmitter:
    return FakeSubmitter()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def crime_payload() -> dict[str, Any]:
    return {"crime_id": "pickpocket", "mini_game_result": {"score": 82, "perfect": False}}


@pytest.fixture(name="settle")
def settle_fixture() -> Callable[..., Any]:
    return settle
