"""Event bus basic behaviour tests."""

from __future__ import annotations

import time

from rtsp_kvs.storage import EventBus, EventMessage, EventType


def test_event_bus_publish_and_consume() -> None:
    bus = EventBus()
    subscription = bus.subscribe()

    event = EventMessage(EventType.STATE_CHANGED, payload={"state": "READY"}, timestamp=time.time())
    bus.publish(event)

    assert subscription.get(timeout=0.1) == event

    subscription.close()
    bus.stop()


def test_full_subscriber_drops_oldest_event() -> None:
    bus = EventBus()
    subscription = bus.subscribe(maxsize=2)

    for index in range(3):
        bus.emit(EventType.FRAME, {"index": index})

    received = [subscription.get(timeout=0.1).payload["index"] for _ in range(2)]
    assert received == [1, 2]
    assert bus.dropped == 1
    bus.stop()


def test_stopped_bus_ignores_publish() -> None:
    bus = EventBus()
    subscription = bus.subscribe()
    bus.stop()

    bus.emit(EventType.STATE_CHANGED, {"state": "STOPPED"})

    assert subscription.get(timeout=0.05) is None
