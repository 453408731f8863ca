"""
Unit tests for executor/events.py -- engine event fan-out.
"""

from executor.events import EventBus, EventKind

from conftest import T0


class TestEventBus:
    def test_subscribers_receive_events(self):
        bus = EventBus()
        seen = []
        bus.subscribe(seen.append)
        event = bus.emit(EventKind.ORDER_PLACED, T0, order_id="o1")
        assert seen == [event]
        assert event.payload == {"order_id": "o1"}
        assert event.kind.value == "order-placed"

    def test_broken_handler_does_not_block_others(self):
        bus = EventBus()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(broken)
        bus.subscribe(seen.append)
        bus.emit(EventKind.ORDER_FILLED, T0)
        assert len(seen) == 1

    def test_recent_filters_and_bounds(self):
        bus = EventBus(history=3)
        for i in range(5):
            bus.emit(EventKind.ORDER_PLACED, T0, n=i)
        bus.emit(EventKind.ORDER_EXPIRED, T0)
        assert len(bus.recent()) == 3
        assert [e.payload["n"] for e in bus.recent(EventKind.ORDER_PLACED)] == [3, 4]
