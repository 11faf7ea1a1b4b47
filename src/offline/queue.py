"""
Street Legacy - Offline Action Queue

Durable, retryable log of client-predicted actions. Actions are enqueued
with the locally computed result, persisted immediately, and submitted to
the server by a single-flight sync pass. Every server answer is reconciled
against the prediction and surfaced to listeners.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Callable, Protocol

from pydantic import BaseModel, ValidationError

from src.core.errors import AuthenticationError, PersistenceError, TransientNetworkError
from src.core.event_bus import Disposer, EventBus
from src.core.scheduler import LoopScheduler, ScheduledTask, Scheduler
from src.database.storage import KeyValueStore
from src.offline.models import (
    QUEUE_ADAPTER,
    ActionType,
    QueuedAction,
    QueueSnapshot,
    QueueSummary,
    ReconciliationEvent,
    SubmissionResult,
    SyncResult,
    SyncStatus,
    build_payload,
)

logger = logging.getLogger(__name__)

STORAGE_KEY = "offlineQueue"
LAST_SYNC_KEY = "lastSyncTimestamp"

DEFAULT_MAX_AGE = 24 * 60 * 60
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_CLEANUP_DELAY = 5.0

# Event names on the queue's bus
QUEUE_CHANGED = "queue_changed"
RECONCILIATION = "reconciliation"
AUTH_ERROR = "auth_error"
PERSISTENCE_ERROR = "persistence_error"


class Submitter(Protocol):
    async def submit(self, action: QueuedAction) -> SubmissionResult: ...


class ActionQueue:
    """Offline queue with write-through persistence.

    Args:
        store: Durable key-value store for the queue and last sync time.
        submitter: Sends one action to the server.
        bus: Event bus for queue, reconciliation and auth events.
        scheduler: Timer source for the post-sync cleanup sweep.
        clock: Returns the current time in epoch seconds.
        is_online: Initial connectivity.
        max_age: Retention horizon in seconds, applied on load.
        max_attempts: Transient failures tolerated before rejecting.
        cleanup_delay: Grace window before terminal actions are purged.
    """

    def __init__(
        self,
        store: KeyValueStore,
        submitter: Submitter,
        *,
        bus: EventBus | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.time,
        is_online: bool = True,
        max_age: float = DEFAULT_MAX_AGE,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        cleanup_delay: float = DEFAULT_CLEANUP_DELAY,
    ) -> None:
        self._store = store
        self._submitter = submitter
        self._bus = bus or EventBus("offline-queue")
        self._scheduler = scheduler or LoopScheduler()
        self._clock = clock
        self._is_online = is_online
        self.max_age = max_age
        self.max_attempts = max_attempts
        self.cleanup_delay = cleanup_delay

        self._queue: list[QueuedAction] = []
        self._sync_in_progress = False
        self._cleanup_task: ScheduledTask | None = None
        self._background: set[asyncio.Task] = set()

        self.load()

    # -- Persistence ------------------------------------------------------

    def load(self) -> None:
        """Load the queue from the store, dropping stale entries."""
        raw = self._store.get(STORAGE_KEY)
        if not raw:
            self._queue = []
            return

        try:
            loaded = QUEUE_ADAPTER.validate_json(raw)
        except (ValidationError, ValueError):
            logger.exception("Failed to load offline queue, starting empty")
            self._queue = []
            return

        now = self._clock()
        kept: list[QueuedAction] = []
        changed = False
        for action in loaded:
            if action.age(now) >= self.max_age:
                logger.info("Dropping stale action %s (%s)", action.id, action.type.value)
                continue
            if action.status == SyncStatus.SYNCING:
                # Interrupted mid-submit; the server may or may not have it
                action.status = SyncStatus.PENDING
                changed = True
            kept.append(action)

        self._queue = kept
        if changed or len(kept) != len(loaded):
            try:
                self._persist()
            except PersistenceError:
                logger.exception("Failed to persist repaired offline queue")

    def _persist(self) -> None:
        try:
            self._store.set(STORAGE_KEY, QUEUE_ADAPTER.dump_json(self._queue).decode("utf-8"))
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(f"Failed to persist offline queue: {exc}") from exc

    # -- Queue management -------------------------------------------------

    def enqueue(
        self,
        action_type: ActionType | str,
        payload: dict[str, Any] | BaseModel,
        local_result: dict[str, Any] | None = None,
    ) -> str:
        """Queue an action with its locally predicted result.

        Returns:
            The new action's id.

        Raises:
            pydantic.ValidationError: Payload does not fit the action type.
            PersistenceError: The action could not be stored; it is not queued.
        """
        action_type = ActionType(action_type)
        action = QueuedAction(
            id=uuid.uuid4().hex,
            type=action_type,
            payload=build_payload(action_type, payload),
            local_result=dict(local_result or {}),
            enqueued_at=self._clock(),
        )

        self._queue.append(action)
        try:
            self._persist()
        except PersistenceError:
            self._queue.remove(action)
            raise
        self._notify()

        logger.info("Enqueued action %s %s", action.type.value, action.id)
        return action.id

    def cancel(self, action_id: str) -> bool:
        """Remove an action. Returns False if it was not queued."""
        for index, action in enumerate(self._queue):
            if action.id == action_id:
                break
        else:
            return False

        removed = self._queue.pop(index)
        try:
            self._persist()
        except PersistenceError:
            self._queue.insert(index, removed)
            raise
        self._notify()
        logger.info("Cancelled action %s", action_id)
        return True

    def clear(self) -> None:
        self._queue = []
        self._persist()
        self._notify()

    @property
    def length(self) -> int:
        """Number of actions still waiting to sync."""
        return sum(1 for a in self._queue if a.status == SyncStatus.PENDING)

    @property
    def actions(self) -> list[QueuedAction]:
        """Copies of every queued action, in enqueue order."""
        return [a.model_copy(deep=True) for a in self._queue]

    def get_action(self, action_id: str) -> QueuedAction | None:
        for action in self._queue:
            if action.id == action_id:
                return action.model_copy(deep=True)
        return None

    def get_actions_by_status(self, status: SyncStatus) -> list[QueuedAction]:
        return [a.model_copy(deep=True) for a in self._queue if a.status == status]

    def has_actions_needing_attention(self) -> bool:
        """True when an action was adjusted or rejected and not yet cleaned up."""
        return any(
            a.status in (SyncStatus.ADJUSTED, SyncStatus.REJECTED) for a in self._queue
        )

    @property
    def is_online(self) -> bool:
        return self._is_online

    @property
    def sync_in_progress(self) -> bool:
        return self._sync_in_progress

    @property
    def last_sync_time(self) -> float | None:
        """Epoch seconds of the last completed sync pass."""
        raw = self._store.get(LAST_SYNC_KEY)
        if not raw:
            return None
        try:
            return int(raw) / 1000
        except ValueError:
            logger.warning("Ignoring malformed last sync timestamp %r", raw)
            return None

    def summary(self) -> QueueSummary:
        counts = {status: 0 for status in SyncStatus}
        for action in self._queue:
            counts[action.status] += 1
        return QueueSummary(
            is_online=self._is_online,
            sync_in_progress=self._sync_in_progress,
            pending=counts[SyncStatus.PENDING],
            synced=counts[SyncStatus.SYNCED],
            adjusted=counts[SyncStatus.ADJUSTED],
            rejected=counts[SyncStatus.REJECTED],
            total=len(self._queue),
            last_sync=self.last_sync_time,
        )

    # -- Connectivity -----------------------------------------------------

    def set_online(self, online: bool) -> None:
        """Record the host's connectivity; going online starts a sync pass."""
        was_online = self._is_online
        self._is_online = online
        if was_online == online:
            return

        logger.info("Back online" if online else "Went offline")
        self._notify()

        if online and self._queue:
            self._spawn(self.sync_all())

    def handle_online(self) -> None:
        self.set_online(True)

    def handle_offline(self) -> None:
        self.set_online(False)

    def _spawn(self, coro) -> asyncio.Task | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, sync deferred until the next call")
            coro.close()
            return None
        task = loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _contains(self, action: QueuedAction) -> bool:
        return any(queued is action for queued in self._queue)

    # -- Sync -------------------------------------------------------------

    async def sync_all(self) -> list[SyncResult] | None:
        """Submit every pending action once, in enqueue order.

        Returns:
            Per-action results, or None when a pass is already running.
        """
        if self._sync_in_progress:
            logger.debug("Sync already in progress")
            return None

        if not self._is_online:
            logger.debug("Cannot sync while offline")
            return []

        pending = [a for a in self._queue if a.status == SyncStatus.PENDING]
        if not pending:
            logger.debug("No pending actions to sync")
            return []

        logger.info("Syncing %d actions", len(pending))
        self._sync_in_progress = True
        self._notify()

        results: list[SyncResult] = []
        try:
            for action in pending:
                if not self._contains(action):
                    # Cancelled while an earlier action was in flight
                    continue
                try:
                    result = await self._sync_one(action)
                except AuthenticationError as exc:
                    logger.warning("Sync stopped, not authenticated: %s", exc)
                    results.append(self._result_for(action))
                    self._bus.emit(AUTH_ERROR, str(exc))
                    break
                except PersistenceError as exc:
                    logger.exception("Sync stopped, offline queue could not be saved")
                    self._bus.emit(PERSISTENCE_ERROR, str(exc))
                    break
                results.append(result)
        finally:
            self._sync_in_progress = False
            self._store_last_sync()
            self._notify()

        self._schedule_cleanup()
        logger.info("Sync complete")
        return results

    async def _sync_one(self, action: QueuedAction) -> SyncResult:
        """Submit one action and record the outcome.

        Raises:
            AuthenticationError: The credential was refused; the action is
                rejected and the pass should stop.
            PersistenceError: The queue could not be saved; the pass should
                stop, since nothing after this point would be durable.
        """
        action.advance(SyncStatus.SYNCING)
        action.attempts += 1
        try:
            self._persist()
        except PersistenceError:
            # Never submit what could not be recorded as in flight
            action.attempts -= 1
            action.advance(SyncStatus.PENDING)
            raise
        self._notify()

        try:
            outcome = await self._submitter.submit(action)
        except AuthenticationError as exc:
            action.error = str(exc) or "Not authenticated"
            action.advance(SyncStatus.REJECTED)
            if self._contains(action):
                self._persist_quietly()
                self._notify()
            raise
        except TransientNetworkError as exc:
            self._record_failure(action, str(exc))
        except Exception as exc:
            logger.exception("Unexpected error syncing action %s", action.id)
            self._record_failure(action, str(exc))
        else:
            self._apply_outcome(action, outcome)

        if self._contains(action):
            self._persist()
            self._notify()

        return self._result_for(action)

    def _result_for(self, action: QueuedAction) -> SyncResult:
        return SyncResult(
            action_id=action.id,
            status=action.status,
            attempts=action.attempts,
            error=action.error,
        )

    def _record_failure(self, action: QueuedAction, reason: str) -> None:
        if action.attempts >= self.max_attempts:
            logger.warning(
                "Rejecting action %s after %d attempts: %s", action.id, action.attempts, reason
            )
            action.error = reason
            action.advance(SyncStatus.REJECTED)
        else:
            logger.info(
                "Action %s failed (attempt %d/%d), will retry: %s",
                action.id, action.attempts, self.max_attempts, reason,
            )
            action.advance(SyncStatus.PENDING)

    def _apply_outcome(self, action: QueuedAction, outcome: SubmissionResult) -> None:
        if outcome.rejected:
            action.error = outcome.error
            action.advance(SyncStatus.REJECTED)
            logger.info("Action %s rejected: %s", action.id, outcome.error)
            return

        action.server_result = outcome.server_result
        if outcome.differed:
            action.reconciliation = outcome.reconciliation
            action.advance(SyncStatus.ADJUSTED)
            self._notify_reconciliation(action, outcome)
        else:
            action.advance(SyncStatus.SYNCED)

    def _persist_quietly(self) -> None:
        try:
            self._persist()
        except PersistenceError as exc:
            logger.exception("Failed to persist offline queue")
            self._bus.emit(PERSISTENCE_ERROR, str(exc))

    def _store_last_sync(self) -> None:
        try:
            self._store.set(LAST_SYNC_KEY, str(int(self._clock() * 1000)))
        except Exception:
            logger.exception("Failed to store last sync time")

    # -- Cleanup ----------------------------------------------------------

    def _schedule_cleanup(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
        self._cleanup_task = self._scheduler.call_later(
            self.cleanup_delay, self.cleanup_completed_actions
        )

    def cleanup_completed_actions(self) -> int:
        """Purge actions in a terminal status. Returns how many were removed."""
        self._cleanup_task = None
        before = len(self._queue)
        self._queue = [a for a in self._queue if not a.is_terminal]
        removed = before - len(self._queue)
        if removed:
            logger.info("Cleaned up %d completed actions", removed)
            self._persist_quietly()
            self._notify()
        return removed

    def close(self) -> None:
        """Cancel the pending cleanup timer and background sync."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            self._cleanup_task = None
        for task in list(self._background):
            task.cancel()

    # -- Listeners --------------------------------------------------------

    def subscribe(self, listener: Callable[[QueueSnapshot], None]) -> Disposer:
        """Listen for queue changes."""
        return self._bus.on(QUEUE_CHANGED, listener)

    def on_reconciliation(self, listener: Callable[[ReconciliationEvent], None]) -> Disposer:
        """Listen for server results that differ from the local prediction."""
        return self._bus.on(RECONCILIATION, listener)

    def on_auth_error(self, listener: Callable[[str], None]) -> Disposer:
        return self._bus.on(AUTH_ERROR, listener)

    def on_persistence_error(self, listener: Callable[[str], None]) -> Disposer:
        """Listen for store writes that failed; queued state may not survive a restart."""
        return self._bus.on(PERSISTENCE_ERROR, listener)

    def _notify(self) -> None:
        self._bus.emit(
            QUEUE_CHANGED,
            QueueSnapshot(
                is_online=self._is_online,
                sync_in_progress=self._sync_in_progress,
                queue_length=self.length,
                queue=self.actions,
            ),
        )

    def _notify_reconciliation(self, action: QueuedAction, outcome: SubmissionResult) -> None:
        event = ReconciliationEvent(
            action_id=action.id,
            action_type=action.type,
            local_result=dict(action.local_result),
            server_result=dict(outcome.server_result),
            adjustments=outcome.adjustments,
            enqueued_at=action.enqueued_at,
        )
        logger.info("Reconciliation needed for action %s", action.id)
        self._bus.emit(RECONCILIATION, event)
