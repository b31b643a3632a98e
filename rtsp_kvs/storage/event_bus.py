"""In-process publish/subscribe bus for bridge events."""

from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Optional


class EventType(Enum):
    STATE_CHANGED = auto()
    CODEC_PRIVATE_DATA = auto()
    FRAME = auto()
    SINK_ERROR = auto()
    PIPELINE_ERROR = auto()


@dataclass(frozen=True)
class EventMessage:
    """Lightweight container for events flowing through the bridge."""

    type: EventType
    payload: Any
    timestamp: float


class EventBus:
    """Thread-safe pub-sub queue; slow subscribers lose their oldest events."""

    def __init__(self, maxsize: int = 1024) -> None:
        self._maxsize = maxsize
        self._subscribers: list["queue.Queue[EventMessage]"] = []
        self._lock = threading.RLock()
        self._stopped = threading.Event()
        self._dropped = 0

    def publish(self, event: EventMessage) -> None:
        if self._stopped.is_set():
            return
        with self._lock:
            subscribers = list(self._subscribers)
        for q in subscribers:
            try:
                q.put_nowait(event)
            except queue.Full:
                try:
                    q.get_nowait()
                    self._dropped += 1
                except queue.Empty:
                    pass
                try:
                    q.put_nowait(event)
                except queue.Full:
                    self._dropped += 1

    def emit(self, event_type: EventType, payload: Any = None) -> None:
        """Publish ``payload`` stamped with the current wall-clock time."""

        self.publish(EventMessage(event_type, payload, timestamp=time.time()))

    @property
    def dropped(self) -> int:
        """Number of events discarded because a subscriber queue was full."""

        return self._dropped

    def subscribe(self, maxsize: Optional[int] = None) -> "EventSubscription":
        subscriber_queue: "queue.Queue[EventMessage]" = queue.Queue(maxsize=maxsize or self._maxsize)
        with self._lock:
            self._subscribers.append(subscriber_queue)
        return EventSubscription(self, subscriber_queue)

    def _unsubscribe(self, subscriber_queue: "queue.Queue[EventMessage]") -> None:
        with self._lock:
            if subscriber_queue in self._subscribers:
                self._subscribers.remove(subscriber_queue)

    def stop(self) -> None:
        self._stopped.set()
        with self._lock:
            self._subscribers.clear()


class EventSubscription:
    """Handle returned to components consuming events from the bus."""

    def __init__(self, bus: EventBus, queue_ref: "queue.Queue[EventMessage]") -> None:
        self._bus = bus
        self._queue = queue_ref
        self._stopped = False

    def get(self, timeout: float | None = 1.0) -> Optional[EventMessage]:
        if self._stopped:
            return None
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        if not self._stopped:
            self._bus._unsubscribe(self._queue)
            self._stopped = True


__all__ = ["EventBus", "EventMessage", "EventType", "EventSubscription"]
