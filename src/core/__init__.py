"""
Street Legacy Core Utilities.

Event bus, cancellable scheduling and the sync error taxonomy shared by the
connection manager and the offline queue.
"""

from src.core.errors import (
    AuthenticationError,
    FrameDecodeError,
    PersistenceError,
    ServerRejection,
    SyncError,
    TransientNetworkError,
)
from src.core.event_bus import WILDCARD, Disposer, EventBus
from src.core.scheduler import BackoffPolicy, LoopScheduler, ScheduledTask, Scheduler

__all__ = [
    "AuthenticationError",
    "BackoffPolicy",
    "Disposer",
    "EventBus",
    "FrameDecodeError",
    "LoopScheduler",
    "PersistenceError",
    "ScheduledTask",
    "Scheduler",
    "ServerRejection",
    "SyncError",
    "TransientNetworkError",
    "WILDCARD",
]
