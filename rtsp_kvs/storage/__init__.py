"""Storage package exposing the frame journal and event bus utilities."""

from .event_bus import EventBus, EventMessage, EventSubscription, EventType
from .journal import FrameJournal, FrameRecord, PipelineErrorRecord

__all__ = [
    "EventBus",
    "EventMessage",
    "EventSubscription",
    "EventType",
    "FrameJournal",
    "FrameRecord",
    "PipelineErrorRecord",
]
