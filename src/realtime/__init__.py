"""
Street Legacy Realtime Connection.

WebSocket connection management, heartbeat, reconnection and channel
subscriptions for server-pushed game events.
"""

from src.realtime.connection import ConnectionManager, websocket_connector
from src.realtime.events import CloseCode, ConnectionState, GameEvent
from src.realtime.frames import Frame, ServerEvent, decode_frame, encode_frame
from src.realtime.subscriptions import ChannelSet

__all__ = [
    "ChannelSet",
    "CloseCode",
    "ConnectionManager",
    "ConnectionState",
    "Frame",
    "GameEvent",
    "ServerEvent",
    "decode_frame",
    "encode_frame",
    "websocket_connector",
]
