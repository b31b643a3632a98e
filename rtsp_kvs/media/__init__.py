"""Framework-independent core of the RTSP media bridge."""

from .adapter import SampleAdapter
from .controller import BridgeState, RtspMediaSource
from .descriptor import StreamDescriptor
from .errors import (
    AlreadyInitialized,
    BridgeError,
    BusError,
    ConfigurationError,
    LinkFailed,
    NotInitialized,
    PipelineConstructionFailed,
    PipelineStartFailed,
    SinkError,
)
from .frame import FlowResult, Frame, FrameFlags, MediaSourceSink
from .uri import validate_rtsp_uri

__all__ = [
    "AlreadyInitialized",
    "BridgeError",
    "BridgeState",
    "BusError",
    "ConfigurationError",
    "FlowResult",
    "Frame",
    "FrameFlags",
    "LinkFailed",
    "MediaSourceSink",
    "NotInitialized",
    "PipelineConstructionFailed",
    "PipelineStartFailed",
    "RtspMediaSource",
    "SampleAdapter",
    "SinkError",
    "StreamDescriptor",
    "validate_rtsp_uri",
]
