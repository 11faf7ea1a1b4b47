"""
Street Legacy - Client Session

Owns one connection manager and one offline queue for a logged-in player
and wires them to configuration, storage, credentials and the host's
online/offline signal. Instances are independent; nothing is global.
"""

from __future__ import annotations

import logging

from src.config.settings import Settings, get_settings
from src.core.event_bus import EventBus
from src.core.scheduler import BackoffPolicy, LoopScheduler, Scheduler
from src.database.credentials import CredentialProvider, StoredCredentials, SupabaseCredentials
from src.database.storage import FileStore, KeyValueStore, MemoryStore
from src.offline.queue import ActionQueue
from src.offline.submitter import ActionSubmitter
from src.realtime.connection import ConnectionManager, Connector

logger = logging.getLogger(__name__)


class ClientSession:
    """Application context for the client's consistency layer.

    The connection manager and the queue run independently; the session
    only forwards connectivity changes and owns their lifetimes.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        store: KeyValueStore | None = None,
        credentials: CredentialProvider | None = None,
        scheduler: Scheduler | None = None,
        connector: Connector | None = None,
        submitter: ActionSubmitter | None = None,
        is_online: bool = True,
    ) -> None:
        self.settings = settings
        self.store = store or _default_store(settings)
        self.credentials = credentials or StoredCredentials(self.store)
        scheduler = scheduler or LoopScheduler()

        self.connection_events = EventBus("realtime")
        self.queue_events = EventBus("offline-queue")

        self.connection = ConnectionManager(
            settings.ws_url,
            self.credentials,
            connector=connector,
            scheduler=scheduler,
            bus=self.connection_events,
            backoff=BackoffPolicy(
                initial_delay=settings.reconnect_initial_delay,
                max_delay=settings.reconnect_max_delay,
                multiplier=settings.reconnect_multiplier,
                max_attempts=settings.reconnect_max_attempts,
            ),
            heartbeat_interval=settings.heartbeat_interval,
            heartbeat_timeout=settings.heartbeat_timeout,
        )
        self.submitter = submitter or ActionSubmitter(
            settings.api_url, self.credentials, timeout=settings.request_timeout
        )
        self.queue = ActionQueue(
            self.store,
            self.submitter,
            bus=self.queue_events,
            scheduler=scheduler,
            is_online=is_online,
            max_age=settings.queue_max_age,
            max_attempts=settings.sync_max_attempts,
            cleanup_delay=settings.cleanup_delay,
        )

    async def start(self) -> bool:
        """Open the realtime connection and flush anything queued offline."""
        connected = await self.connection.connect()
        if self.queue.is_online:
            await self.queue.sync_all()
        return connected

    def set_online(self, online: bool) -> None:
        """Forward the host's connectivity signal."""
        self.queue.set_online(online)

    async def close(self) -> None:
        """Tear down the connection, timers and HTTP client."""
        await self.connection.close()
        self.queue.close()
        await self.submitter.aclose()
        logger.info("Client session closed")


def _default_store(settings: Settings) -> KeyValueStore:
    if settings.storage_path:
        return FileStore(settings.storage_path)
    return MemoryStore()


def create_session(
    settings: Settings | None = None,
    *,
    use_supabase_auth: bool = False,
    **kwargs,
) -> ClientSession:
    """Build a session from configuration.

    Args:
        settings: Explicit settings; loaded from the environment if omitted.
        use_supabase_auth: Take tokens from the Supabase auth session
            instead of the locally stored auth state.
        **kwargs: Passed through to ClientSession.
    """
    settings = settings or get_settings()
    if use_supabase_auth and "credentials" not in kwargs:
        from src.database.client import get_supabase_client

        kwargs["credentials"] = SupabaseCredentials(get_supabase_client())
    return ClientSession(settings, **kwargs)
