"""
Street Legacy Offline Queue.

Durable, retryable queue of client-predicted actions reconciled against the
authoritative server.
"""

from src.offline.models import (
    ActionType,
    CrimePayload,
    HeistPayload,
    PropertyPayload,
    QueuedAction,
    QueueSnapshot,
    QueueSummary,
    ReconciliationEvent,
    SubmissionResult,
    SyncResult,
    SyncStatus,
)
from src.offline.queue import ActionQueue
from src.offline.submitter import ActionSubmitter

__all__ = [
    "ActionQueue",
    "ActionSubmitter",
    "ActionType",
    "CrimePayload",
    "HeistPayload",
    "PropertyPayload",
    "QueueSnapshot",
    "QueueSummary",
    "QueuedAction",
    "ReconciliationEvent",
    "SubmissionResult",
    "SyncResult",
    "SyncStatus",
]
