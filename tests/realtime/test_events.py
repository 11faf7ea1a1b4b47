"""Tests for src/realtime/events.py — states, close codes, event names."""

from src.realtime.events import AUTH_FAILURE_CODES, CloseCode, ConnectionState, GameEvent


class TestConnectionState:
    def test_values(self):
        assert {s.value for s in ConnectionState} == {
            "disconnected",
            "connecting",
            "connected",
            "reconnecting",
        }


class TestCloseCodes:
    def test_only_auth_codes_are_terminal(self):
        assert AUTH_FAILURE_CODES == {4001, 4003}
        assert CloseCode.HEARTBEAT_TIMEOUT not in AUTH_FAILURE_CODES
        assert CloseCode.ABNORMAL not in AUTH_FAILURE_CODES


class TestGameEvent:
    def test_lookup_by_wire_name(self):
        assert GameEvent("game:stat_update") is GameEvent.STAT_UPDATE
        assert GameEvent("territory:war_started") is GameEvent.TERRITORY_WAR_STARTED

    def test_values_are_unique(self):
        values = [e.value for e in GameEvent]
        assert len(values) == len(set(values))
