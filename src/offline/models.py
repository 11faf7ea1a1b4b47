"""
Street Legacy - Offline Queue Models

Pydantic models for queued actions and the events the queue emits.
Action payloads are a tagged union keyed by the action type.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator


class ActionType(str, Enum):
    """Gameplay actions that can be queued while offline."""
    CRIME = "crime"
    HEIST = "heist"
    PROPERTY = "property"


class SyncStatus(str, Enum):
    """Sync state of a queued action."""
    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    ADJUSTED = "adjusted"
    REJECTED = "rejected"


TERMINAL_STATUSES = frozenset({SyncStatus.SYNCED, SyncStatus.ADJUSTED, SyncStatus.REJECTED})

# Allowed status moves; SYNCING -> PENDING is the retry edge
_TRANSITIONS: dict[SyncStatus, frozenset[SyncStatus]] = {
    SyncStatus.PENDING: frozenset({SyncStatus.SYNCING}),
    SyncStatus.SYNCING: frozenset({
        SyncStatus.SYNCED,
        SyncStatus.ADJUSTED,
        SyncStatus.REJECTED,
        SyncStatus.PENDING,
    }),
    SyncStatus.SYNCED: frozenset(),
    SyncStatus.ADJUSTED: frozenset(),
    SyncStatus.REJECTED: frozenset(),
}


class CrimePayload(BaseModel):
    """A crime attempt, optionally with the mini-game outcome."""

    type: Literal["crime"] = "crime"
    crime_id: str | int
    mini_game_result: dict[str, Any] | None = None


class HeistPayload(BaseModel):
    """Execution of a planned heist."""

    type: Literal["heist"] = "heist"
    heist_id: str | int


class PropertyPayload(BaseModel):
    """A property operation such as buy, sell or upgrade."""

    type: Literal["property"] = "property"
    operation: str = Field(min_length=1)
    property_id: str | int


ActionPayload = Annotated[
    Union[CrimePayload, HeistPayload, PropertyPayload],
    Field(discriminator="type"),
]

_PAYLOAD_ADAPTER: TypeAdapter[ActionPayload] = TypeAdapter(ActionPayload)


def build_payload(action_type: ActionType | str, data: dict[str, Any] | BaseModel) -> ActionPayload:
    """Validate caller data into the payload model for ``action_type``."""
    action_type = ActionType(action_type)
    if isinstance(data, BaseModel):
        data = data.model_dump()
    return _PAYLOAD_ADAPTER.validate_python({**data, "type": action_type.value})


class QueuedAction(BaseModel):
    """One locally predicted action awaiting server confirmation."""

    id: str
    type: ActionType
    payload: ActionPayload
    local_result: dict[str, Any] = Field(default_factory=dict)
    enqueued_at: float
    status: SyncStatus = SyncStatus.PENDING
    attempts: int = Field(default=0, ge=0)
    server_result: dict[str, Any] | None = None
    reconciliation: dict[str, Any] | None = None
    error: str | None = None

    @model_validator(mode="after")
    def _payload_matches_type(self) -> "QueuedAction":
        if self.payload.type != self.type.value:
            raise ValueError(
                f"payload type {self.payload.type!r} does not match action type {self.type.value!r}"
            )
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def age(self, now: float) -> float:
        """Seconds since the action was enqueued."""
        return now - self.enqueued_at

    def advance(self, status: SyncStatus) -> None:
        """Move to ``status``, refusing moves the state machine does not allow."""
        if status not in _TRANSITIONS[self.status]:
            raise ValueError(f"Illegal status transition {self.status.value} -> {status.value}")
        self.status = status


QUEUE_ADAPTER: TypeAdapter[list[QueuedAction]] = TypeAdapter(list[QueuedAction])


@dataclass(frozen=True)
class SubmissionResult:
    """Classified server response for one submitted action.

    Attributes:
        server_result: Authoritative result body (unwrapped from ``data``).
        rejected: Server flagged the action as invalid or stale.
        differed: Server result differs from the local prediction.
        reconciliation: Raw reconciliation block, display-only.
        error: Rejection reason, when rejected.
    """
    server_result: dict[str, Any] = field(default_factory=dict)
    rejected: bool = False
    differed: bool = False
    reconciliation: dict[str, Any] | None = None
    error: str | None = None

    @property
    def adjustments(self) -> Any:
        if not self.reconciliation:
            return None
        return self.reconciliation.get("adjustments")


@dataclass(frozen=True)
class ReconciliationEvent:
    """Server outcome that corrected what the player saw optimistically."""
    action_id: str
    action_type: ActionType
    local_result: dict[str, Any]
    server_result: dict[str, Any]
    adjustments: Any = None
    enqueued_at: float | None = None


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one action within a sync pass."""
    action_id: str
    status: SyncStatus
    attempts: int
    error: str | None = None


@dataclass(frozen=True)
class QueueSnapshot:
    """State handed to queue-change listeners."""
    is_online: bool
    sync_in_progress: bool
    queue_length: int
    queue: list[QueuedAction]


@dataclass(frozen=True)
class QueueSummary:
    """Counts per status plus connectivity and last sync time."""
    is_online: bool
    sync_in_progress: bool
    pending: int
    synced: int
    adjusted: int
    rejected: int
    total: int
    last_sync: float | None
