"""
Street Legacy - Realtime Connection Manager

Owns one logical WebSocket connection to the game server: connection state
machine, heartbeat liveness check, capped exponential-backoff reconnects,
channel subscription replay, outbound buffering while disconnected, and
inbound dispatch to per-type listeners.

Failures never raise out of send(); they surface as state changes and
events on the manager's bus.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from typing import Any, AsyncIterator, Awaitable, Callable, Coroutine, Protocol
from urllib.parse import quote

import websockets
from pydantic import BaseModel
from websockets.exceptions import ConnectionClosed

from src.core.errors import FrameDecodeError
from src.core.event_bus import WILDCARD, Disposer, EventBus
from src.core.scheduler import BackoffPolicy, LoopScheduler, ScheduledTask, Scheduler, cancel_task
from src.database.credentials import CredentialProvider
from src.realtime.events import (
    AUTH_ERROR,
    AUTH_FAILURE_CODES,
    CONNECTED,
    MAX_RECONNECTS,
    SOCKET_ERROR,
    STATE_CHANGE,
    CloseCode,
    ConnectionState,
    GameEvent,
)
from src.realtime.frames import (
    ConnectedFrame,
    OnlineCountFrame,
    PongFrame,
    SubscribedFrame,
    UnsubscribedFrame,
    decode_frame,
    encode_frame,
    ping_frame,
    subscribe_frame,
    unsubscribe_frame,
)
from src.realtime.subscriptions import ChannelSet

logger = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_INTERVAL = 25.0
DEFAULT_HEARTBEAT_TIMEOUT = 5.0

_AUTH_HTTP_STATUSES = frozenset({401, 403})


class Socket(Protocol):
    """The parts of a websockets client connection the manager uses."""

    @property
    def close_code(self) -> int | None: ...

    @property
    def close_reason(self) -> str | None: ...

    async def send(self, message: str) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


Connector = Callable[[str], Awaitable[Socket]]


async def websocket_connector(url: str) -> Socket:
    """Open a socket with the websockets library.

    Liveness is checked with application-level ping frames, so the
    library's own keepalive pings are disabled.
    """
    return await websockets.connect(url, ping_interval=None)


def _handshake_status(exc: Exception) -> int | None:
    """HTTP status of a rejected handshake, if the error carries one."""
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    if status is None:
        status = getattr(exc, "status_code", None)
    return status if isinstance(status, int) else None


class ConnectionManager:
    """Persistent realtime connection with reconnect and heartbeat.

    Args:
        url: WebSocket endpoint, without the token query parameter.
        credentials: Returns the bearer token, or None when logged out.
        connector: Opens a socket for a URL. Defaults to websockets.
        scheduler: Timer source for heartbeat and reconnect.
        bus: Event bus for state changes and inbound frames.
        backoff: Reconnect delay policy and attempt cap.
        heartbeat_interval: Seconds between pings while connected.
        heartbeat_timeout: Seconds to wait for the matching pong.
    """

    def __init__(
        self,
        url: str,
        credentials: CredentialProvider,
        *,
        connector: Connector | None = None,
        scheduler: Scheduler | None = None,
        bus: EventBus | None = None,
        backoff: BackoffPolicy | None = None,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        heartbeat_timeout: float = DEFAULT_HEARTBEAT_TIMEOUT,
    ) -> None:
        self.url = url
        self._credentials = credentials
        self._connector = connector or websocket_connector
        self._scheduler = scheduler or LoopScheduler()
        self._bus = bus or EventBus("realtime")
        self.backoff = backoff or BackoffPolicy()
        self.heartbeat_interval = heartbeat_interval
        self.heartbeat_timeout = heartbeat_timeout

        self._ws: Socket | None = None
        self._state = ConnectionState.DISCONNECTED
        self._reconnect_attempts = 0
        self._online_count = 0

        # Bumped whenever the current socket is abandoned; tasks and
        # callbacks from an older generation ignore their results.
        self._generation = 0

        self._reconnect_timer: ScheduledTask | None = None
        self._heartbeat_timer: ScheduledTask | None = None
        self._heartbeat_timeout_timer: ScheduledTask | None = None
        self._heartbeat_nonce: str | None = None

        self._channels = ChannelSet()
        # (payload, is_control); control frames are rebuilt from state on reconnect
        self._outbox: deque[tuple[str, bool]] = deque()
        self._outbox_ready = asyncio.Event()
        self._reader_task: asyncio.Task | None = None
        self._writer_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()

    # -- Inspection -------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED and self._ws is not None

    @property
    def online_count(self) -> int:
        return self._online_count

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def subscribed_channels(self) -> list[str]:
        """Channels the server has acknowledged."""
        return self._channels.subscribed

    @property
    def buffered_count(self) -> int:
        """Outbound messages not yet written to a socket."""
        return len(self._outbox)

    # -- Connection management --------------------------------------------

    async def connect(self) -> bool:
        """Open the connection if it is not already open.

        Returns:
            True if connected when the call returns, False otherwise.
        """
        if self.is_connected:
            logger.debug("Already connected")
            return True
        if self._state == ConnectionState.CONNECTING:
            logger.debug("Connection already in progress")
            return False

        reconnecting = self._state == ConnectionState.RECONNECTING
        cancel_task(self._reconnect_timer)
        self._reconnect_timer = None

        token = self._credentials()
        if not token:
            logger.warning("Cannot connect: no auth token")
            if reconnecting:
                self._fail_auth(CloseCode.AUTH_REQUIRED, "Missing credential")
            return False

        self._set_state(ConnectionState.CONNECTING)
        generation = self._generation

        try:
            ws = await self._connector(self._socket_url(token))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if generation != self._generation:
                return False
            status = _handshake_status(exc)
            if status in _AUTH_HTTP_STATUSES:
                self._fail_auth(CloseCode.AUTH_REQUIRED, f"Handshake rejected ({status})")
                return False
            logger.error("Failed to open connection: %s", exc)
            self._handle_close(CloseCode.ABNORMAL, str(exc))
            return False

        if generation != self._generation:
            # disconnect() ran while the handshake was in flight
            await self._close_socket(ws, CloseCode.NORMAL, "Client disconnect")
            return False

        await self._handle_open(ws)
        return self.is_connected

    async def disconnect(self) -> None:
        """Close the connection on purpose. Never schedules a reconnect."""
        ws = self._ws
        self._teardown()
        self._reconnect_attempts = 0
        self._channels.clear()
        self._set_state(ConnectionState.DISCONNECTED)

        if ws is not None:
            await self._close_socket(ws, CloseCode.NORMAL, "Client disconnect")
            logger.info("Disconnected by client")

    async def close(self) -> None:
        """Disconnect and cancel any background work."""
        await self.disconnect()
        tasks = [t for t in self._background if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _socket_url(self, token: str) -> str:
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}token={quote(token, safe='')}"

    async def _handle_open(self, ws: Socket) -> None:
        self._generation += 1
        generation = self._generation
        self._ws = ws
        self._reconnect_attempts = 0
        logger.info("Connected to %s", self.url)
        self._set_state(ConnectionState.CONNECTED)
        if generation != self._generation:
            # A state listener tore the connection down again
            return

        self._start_heartbeat()
        await self._resubscribe_channels(ws)
        if generation != self._generation:
            return

        self._reader_task = self._spawn(self._read_loop(ws, generation))
        self._writer_task = self._spawn(self._write_loop(ws, generation))

    def _handle_close(self, code: int, reason: str) -> None:
        logger.info("Disconnected: %s %s", code, reason)
        self._teardown()

        if code in AUTH_FAILURE_CODES:
            self._fail_auth(code, reason)
            return

        self._set_state(ConnectionState.RECONNECTING)
        self._schedule_reconnect()

    def _fail_auth(self, code: int, reason: str) -> None:
        logger.warning("Authentication failed (%s), not reconnecting", code)
        self._set_state(ConnectionState.DISCONNECTED)
        self._bus.emit(AUTH_ERROR, {"code": code, "reason": reason})

    def _teardown(self) -> None:
        """Abandon the current socket and cancel every timer."""
        self._generation += 1
        cancel_task(self._reconnect_timer)
        cancel_task(self._heartbeat_timer)
        cancel_task(self._heartbeat_timeout_timer)
        self._reconnect_timer = None
        self._heartbeat_timer = None
        self._heartbeat_timeout_timer = None
        self._heartbeat_nonce = None

        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        for task in (self._reader_task, self._writer_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._reader_task = None
        self._writer_task = None
        self._ws = None
        self._drop_control_frames()

    async def _close_socket(self, ws: Socket, code: int, reason: str) -> None:
        try:
            await ws.close(code, reason)
        except Exception as exc:
            logger.debug("Error closing socket: %s", exc)

    # -- Socket I/O -------------------------------------------------------

    async def _read_loop(self, ws: Socket, generation: int) -> None:
        try:
            async for raw in ws:
                self._handle_message(raw)
        except ConnectionClosed:
            pass
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Socket error")
            self._bus.emit(SOCKET_ERROR, {"error": exc})

        if generation != self._generation:
            return
        self._handle_close(ws.close_code or CloseCode.ABNORMAL, ws.close_reason or "")

    async def _write_loop(self, ws: Socket, generation: int) -> None:
        while generation == self._generation:
            if not self._outbox:
                self._outbox_ready.clear()
                await self._outbox_ready.wait()
                continue
            message, _ = self._outbox[0]
            try:
                await ws.send(message)
            except ConnectionClosed:
                # Message stays buffered for the next connection
                return
            except Exception:
                logger.exception("Failed to write to socket")
                return
            self._outbox.popleft()

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # -- Sending ----------------------------------------------------------

    def send(self, message: dict[str, Any] | BaseModel) -> bool:
        """Send a message, buffering it while disconnected.

        Returns:
            True if handed to the open connection, False if buffered or
            dropped as unserializable.
        """
        return self._enqueue(message, control=False)

    def _enqueue(self, message: dict[str, Any] | BaseModel, *, control: bool) -> bool:
        try:
            payload = encode_frame(message)
        except (TypeError, ValueError):
            logger.exception("Dropping unserializable message")
            return False

        self._outbox.append((payload, control))
        if self.is_connected:
            self._outbox_ready.set()
            return True
        logger.debug("Buffered message while %s (%d queued)", self._state.value, len(self._outbox))
        return False

    def _drop_control_frames(self) -> None:
        """Forget unsent pings and subscription frames from a dead connection.

        The channel set is replayed on the next open and a fresh heartbeat
        starts, so resending these would duplicate them.
        """
        if not any(control for _, control in self._outbox):
            return
        kept = [entry for entry in self._outbox if not entry[1]]
        logger.debug("Dropping %d unsent control frames", len(self._outbox) - len(kept))
        self._outbox.clear()
        self._outbox.extend(kept)

    def send_chat_message(self, channel: str, message: str) -> bool:
        return self.send({"type": "chat", "channel": channel, "message": message})

    def send_typing_indicator(self, channel: str) -> bool:
        return self.send({"type": "typing", "channel": channel})

    def request_presence(self, district_id: str | int | None = None) -> bool:
        return self.send({"type": "presence:request", "districtId": district_id})

    # -- Heartbeat --------------------------------------------------------

    def _start_heartbeat(self) -> None:
        cancel_task(self._heartbeat_timer)
        cancel_task(self._heartbeat_timeout_timer)
        self._heartbeat_timeout_timer = None
        self._heartbeat_timer = self._scheduler.call_later(
            self.heartbeat_interval, self._on_heartbeat_tick
        )

    def _on_heartbeat_tick(self) -> None:
        self._heartbeat_timer = None
        if not self.is_connected:
            return

        # An unanswered ping keeps its original deadline
        if self._heartbeat_timeout_timer is None:
            self._heartbeat_nonce = uuid.uuid4().hex[:8]
            self._enqueue(ping_frame(self._heartbeat_nonce), control=True)
            self._heartbeat_timeout_timer = self._scheduler.call_later(
                self.heartbeat_timeout, self._on_heartbeat_timeout
            )

        self._heartbeat_timer = self._scheduler.call_later(
            self.heartbeat_interval, self._on_heartbeat_tick
        )

    def _handle_pong(self, frame: PongFrame) -> None:
        if frame.id is not None and frame.id != self._heartbeat_nonce:
            logger.debug("Ignoring pong for stale ping %s", frame.id)
            return
        cancel_task(self._heartbeat_timeout_timer)
        self._heartbeat_timeout_timer = None

    def _on_heartbeat_timeout(self) -> None:
        self._heartbeat_timeout_timer = None
        ws = self._ws
        if ws is None or not self.is_connected:
            return

        logger.warning("Heartbeat timeout, reconnecting")
        self._handle_close(CloseCode.HEARTBEAT_TIMEOUT, "Heartbeat timeout")
        self._spawn(self._close_socket(ws, CloseCode.HEARTBEAT_TIMEOUT, "Heartbeat timeout"))

    # -- Reconnection -----------------------------------------------------

    def _schedule_reconnect(self) -> None:
        if self.backoff.exhausted(self._reconnect_attempts):
            logger.error("Max reconnection attempts reached (%d)", self._reconnect_attempts)
            self._set_state(ConnectionState.DISCONNECTED)
            self._bus.emit(MAX_RECONNECTS, {"attempts": self._reconnect_attempts})
            return

        delay = self.backoff.delay(self._reconnect_attempts)
        logger.info(
            "Reconnecting in %.1fs (attempt %d)", delay, self._reconnect_attempts + 1
        )
        self._reconnect_timer = self._scheduler.call_later(delay, self._on_reconnect_timer)

    def _on_reconnect_timer(self) -> None:
        self._reconnect_timer = None
        self._reconnect_attempts += 1
        self._spawn(self.connect())

    # -- Channels ---------------------------------------------------------

    def subscribe(self, channel: str) -> bool:
        """Subscribe to a broadcast channel.

        The channel counts as subscribed once the server acknowledges it.
        While disconnected the request is kept and sent on the next open.

        Returns:
            True if a subscribe frame was sent now.
        """
        if not self._channels.request(channel):
            logger.debug("Already subscribed to %s", channel)
            return False
        if not self.is_connected:
            logger.debug("Subscription to %s deferred until connected", channel)
            return False
        return self._enqueue(subscribe_frame(channel), control=True)

    def unsubscribe(self, channel: str) -> bool:
        """Leave a broadcast channel.

        Returns:
            True if an unsubscribe frame was sent now.
        """
        if not self.is_connected:
            self._channels.drop(channel)
            return False
        if not self._channels.request_removal(channel):
            return False
        return self._enqueue(unsubscribe_frame(channel), control=True)

    async def _resubscribe_channels(self, ws: Socket) -> None:
        channels = self._channels.replay()
        for channel in channels:
            try:
                await ws.send(encode_frame(subscribe_frame(channel)))
            except ConnectionClosed:
                logger.warning("Connection closed while resubscribing")
                return
        if channels:
            logger.info("Resubscribed to %d channels", len(channels))

    # -- Inbound dispatch -------------------------------------------------

    def _handle_message(self, raw: str | bytes) -> None:
        try:
            frame = decode_frame(raw)
        except FrameDecodeError as exc:
            logger.warning("Ignoring inbound frame: %s", exc)
            return

        if isinstance(frame, PongFrame):
            self._handle_pong(frame)
            return

        if isinstance(frame, ConnectedFrame):
            self._online_count = frame.online_count
            self._bus.emit(CONNECTED, frame.raw)
            return

        if isinstance(frame, SubscribedFrame):
            self._channels.confirm(frame.channel)
        elif isinstance(frame, UnsubscribedFrame):
            self._channels.confirm_removal(frame.channel)
        elif isinstance(frame, OnlineCountFrame):
            self._online_count = frame.count

        self._bus.emit(frame.type, frame.raw)
        self._bus.emit(WILDCARD, frame.raw)

    # -- Listeners --------------------------------------------------------

    def on(self, event_type: str, listener: Callable[[dict[str, Any]], None]) -> Disposer:
        """Listen for a frame type, a manager event, or ``*`` for every frame."""
        return self._bus.on(event_type, listener)

    def off(self, event_type: str, listener: Callable[[dict[str, Any]], None]) -> None:
        self._bus.off(event_type, listener)

    def once(self, event_type: str, listener: Callable[[dict[str, Any]], None]) -> Disposer:
        return self._bus.once(event_type, listener)

    def on_state_change(
        self, listener: Callable[[ConnectionState, ConnectionState], None]
    ) -> Disposer:
        """Listen for ``(new_state, old_state)`` transitions."""
        return self._bus.on(STATE_CHANGE, listener)

    def on_auth_error(self, listener: Callable[[dict[str, Any]], None]) -> Disposer:
        return self._bus.on(AUTH_ERROR, listener)

    def on_max_reconnects(self, listener: Callable[[dict[str, Any]], None]) -> Disposer:
        return self._bus.on(MAX_RECONNECTS, listener)

    def on_game_event(
        self, event: GameEvent | str, listener: Callable[[dict[str, Any]], None]
    ) -> Disposer:
        """Listen for a server push such as ``GameEvent.STAT_UPDATE``."""
        return self._bus.on(GameEvent(event).value, listener)

    def on_territory_war(self, listener: Callable[[dict[str, Any]], None]) -> Disposer:
        """Listen for both war start and war end."""
        disposers = [
            self.on_game_event(GameEvent.TERRITORY_WAR_STARTED, listener),
            self.on_game_event(GameEvent.TERRITORY_WAR_ENDED, listener),
        ]

        def dispose() -> None:
            for disposer in disposers:
                disposer()

        return dispose

    def _set_state(self, new_state: ConnectionState) -> None:
        old_state = self._state
        self._state = new_state
        if old_state != new_state:
            logger.debug("Connection state %s -> %s", old_state.value, new_state.value)
            self._bus.emit(STATE_CHANGE, new_state, old_state)
