"""
Street Legacy - Channel Subscription Tracking

Tracks which broadcast channels the client is subscribed to. The server's
acknowledgment is what confirms a subscription; requests only record
intent. After a reconnect the whole set is replayed.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class ChannelSet:
    """Subscribed channels plus requests awaiting acknowledgment.

    Insertion-ordered dicts keep replay order equal to the order channels
    were first requested.
    """

    def __init__(self) -> None:
        self._confirmed: dict[str, None] = {}
        self._requested: dict[str, None] = {}
        self._leaving: dict[str, None] = {}

    def wants(self, channel: str) -> bool:
        """True if the channel is subscribed or a subscribe is in flight."""
        return (
            channel in self._requested
            or (channel in self._confirmed and channel not in self._leaving)
        )

    def request(self, channel: str) -> bool:
        """Record a subscribe request. Returns False if already wanted."""
        if self.wants(channel):
            return False
        self._leaving.pop(channel, None)
        if channel not in self._confirmed:
            self._requested[channel] = None
        return True

    def confirm(self, channel: str) -> None:
        """Server acknowledged a subscribe."""
        self._requested.pop(channel, None)
        self._leaving.pop(channel, None)
        self._confirmed[channel] = None
        logger.debug("Subscribed to channel %s", channel)

    def request_removal(self, channel: str) -> bool:
        """Record an unsubscribe request. Returns False if nothing to leave."""
        if not self.wants(channel):
            return False
        # An unconfirmed subscribe may already be in flight, so leave either way
        self._requested.pop(channel, None)
        self._leaving[channel] = None
        return True

    def confirm_removal(self, channel: str) -> None:
        """Server acknowledged an unsubscribe."""
        self._confirmed.pop(channel, None)
        self._requested.pop(channel, None)
        self._leaving.pop(channel, None)
        logger.debug("Unsubscribed from channel %s", channel)

    def drop(self, channel: str) -> bool:
        """Forget a channel without telling the server (no live session)."""
        known = self.wants(channel)
        self._confirmed.pop(channel, None)
        self._requested.pop(channel, None)
        self._leaving.pop(channel, None)
        return known

    def replay(self) -> list[str]:
        """Channels to re-subscribe on a fresh connection.

        Every wanted channel moves back to the requested state until the
        new server session acknowledges it.
        """
        channels = [c for c in self._confirmed if c not in self._leaving]
        channels += [c for c in self._requested if c not in self._confirmed]
        self._confirmed.clear()
        self._leaving.clear()
        self._requested = dict.fromkeys(channels)
        return channels

    def clear(self) -> None:
        self._confirmed.clear()
        self._requested.clear()
        self._leaving.clear()

    @property
    def subscribed(self) -> list[str]:
        """Channels the server has confirmed."""
        return list(self._confirmed)

    @property
    def pending(self) -> list[str]:
        """Channels requested but not yet confirmed."""
        return list(self._requested)

    def __contains__(self, channel: str) -> bool:
        return channel in self._confirmed

    def __len__(self) -> int:
        return len(self._confirmed)
