"""
Street Legacy - Socket Frames

JSON frames exchanged over the realtime socket. Every frame carries a
``type`` discriminator; reserved control types decode into their own
models and everything else into a generic ServerEvent.
"""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, Field, PrivateAttr, ValidationError

from src.core.errors import FrameDecodeError


class Frame(BaseModel):
    """Base inbound frame. Unknown fields are kept."""

    type: str

    _raw: dict[str, Any] = PrivateAttr(default_factory=dict)

    model_config = {"extra": "allow", "populate_by_name": True}

    @property
    def raw(self) -> dict[str, Any]:
        """The frame exactly as the server sent it."""
        return self._raw


class PongFrame(Frame):
    """Heartbeat acknowledgment."""

    type: Literal["pong"]
    id: str | None = None


class ConnectedFrame(Frame):
    """Handshake sent once the server has authenticated the socket."""

    type: Literal["connected"]
    online_count: int = Field(default=0, alias="onlineCount")


class SubscribedFrame(Frame):
    type: Literal["chat:subscribed"]
    channel: str


class UnsubscribedFrame(Frame):
    type: Literal["chat:unsubscribed"]
    channel: str


class OnlineCountFrame(Frame):
    type: Literal["presence:online_count"]
    count: int


class ServerEvent(Frame):
    """Any non-control push: channel broadcasts, stat deltas, notifications."""


_RESERVED_FRAMES: dict[str, type[Frame]] = {
    "pong": PongFrame,
    "connected": ConnectedFrame,
    "chat:subscribed": SubscribedFrame,
    "chat:unsubscribed": UnsubscribedFrame,
    "presence:online_count": OnlineCountFrame,
}


def decode_frame(raw: str | bytes) -> Frame:
    """Decode one inbound frame.

    Raises:
        FrameDecodeError: Not JSON, no ``type``, or a reserved frame with
            the wrong shape.
    """
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise FrameDecodeError(f"Frame is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise FrameDecodeError("Frame is not a JSON object")
    frame_type = data.get("type")
    if not isinstance(frame_type, str) or not frame_type:
        raise FrameDecodeError("Frame has no type discriminator")

    model = _RESERVED_FRAMES.get(frame_type, ServerEvent)
    try:
        frame = model.model_validate(data)
    except ValidationError as exc:
        raise FrameDecodeError(f"Malformed {frame_type} frame: {exc}") from exc

    frame._raw = data
    return frame


def encode_frame(message: dict[str, Any] | BaseModel) -> str:
    """Serialize an outbound message."""
    if isinstance(message, BaseModel):
        message = message.model_dump(by_alias=True, exclude_none=True)
    return json.dumps(message, separators=(",", ":"))


# -- Outbound control frames ---------------------------------------------

def ping_frame(nonce: str) -> dict[str, Any]:
    return {"type": "ping", "id": nonce}


def subscribe_frame(channel: str) -> dict[str, Any]:
    return {"type": "subscribe", "channel": channel}


def unsubscribe_frame(channel: str) -> dict[str, Any]:
    return {"type": "unsubscribe", "channel": channel}
