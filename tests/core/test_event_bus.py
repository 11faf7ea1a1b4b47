"""Tests for src/core/event_bus.py — listener registry and delivery."""

from src.core.event_bus import EventBus


class TestEventBus:
    def test_delivers_in_registration_order(self):
        bus = EventBus()
        calls = []
        bus.on("tick", lambda n: calls.append(("a", n)))
        bus.on("tick", lambda n: calls.append(("b", n)))

        assert bus.emit("tick", 1) == 2
        assert calls == [("a", 1), ("b", 1)]

    def test_same_listener_registered_once(self):
        bus = EventBus()
        calls = []
        bus.on("tick", calls.append)
        bus.on("tick", calls.append)

        bus.emit("tick", "x")

        assert calls == ["x"]
        assert bus.listener_count("tick") == 1

    def test_disposer_removes_listener(self):
        bus = EventBus()
        calls = []
        dispose = bus.on("tick", calls.append)

        dispose()
        bus.emit("tick", 1)

        assert calls == []
        assert bus.listener_count("tick") == 0

    def test_off_unknown_listener_is_ignored(self):
        bus = EventBus()
        bus.on("tick", print)
        bus.off("tick", len)
        bus.off("other", len)

        assert bus.listener_count("tick") == 1

    def test_raising_listener_is_isolated(self):
        bus = EventBus("test")
        calls = []

        def broken(_):
            raise RuntimeError("boom")

        bus.on("tick", broken)
        bus.on("tick", calls.append)

        assert bus.emit("tick", 5) == 1
        assert calls == [5]

    def test_once_fires_a_single_time(self):
        bus = EventBus()
        calls = []
        bus.once("tick", calls.append)

        bus.emit("tick", 1)
        bus.emit("tick", 2)

        assert calls == [1]
        assert bus.listener_count("tick") == 0

    def test_listener_may_unsubscribe_during_emit(self):
        bus = EventBus()
        calls = []

        def first(_):
            calls.append("first")
            bus.off("tick", first)

        bus.on("tick", first)
        bus.on("tick", lambda _: calls.append("second"))

        bus.emit("tick", None)
        bus.emit("tick", None)

        assert calls == ["first", "second", "second"]

    def test_multiple_arguments(self):
        bus = EventBus()
        seen = []
        bus.on("change", lambda new, old: seen.append((new, old)))

        bus.emit("change", "connected", "connecting")

        assert seen == [("connected", "connecting")]

    def test_emit_without_listeners(self):
        assert EventBus().emit("nothing") == 0

    def test_clear(self):
        bus = EventBus()
        bus.on("a", print)
        bus.on("b", print)

        bus.clear()

        assert bus.listener_count("a") == 0
        assert bus.listener_count("b") == 0
