"""Exception hierarchy shared by the media bridge components."""

from __future__ import annotations

from dataclasses import dataclass


class BridgeError(Exception):
    """Base class for every error raised by the bridge."""


class ConfigurationError(BridgeError):
    """The bridge was configured with an unusable value (e.g. a bad RTSP URI)."""


class PipelineConstructionFailed(BridgeError):
    """An element could not be created or linked while building the graph."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class LinkFailed(PipelineConstructionFailed):
    """A pad could not be linked, either statically or when exposed at runtime."""


class PipelineStartFailed(BridgeError):
    """The media framework refused the transition to PLAYING."""


class AlreadyInitialized(BridgeError):
    """``initialize`` was called while a runner is READY or RUNNING."""


class NotInitialized(BridgeError):
    """``start`` was called before ``initialize``."""


class SinkError(BridgeError):
    """Raised by a sink to reject codec private data or a frame."""


@dataclass(frozen=True)
class BusError:
    """Asynchronous error reported by the pipeline bus."""

    source: str
    code: int
    message: str
    debug: str | None = None


__all__ = [
    "AlreadyInitialized",
    "BridgeError",
    "BusError",
    "ConfigurationError",
    "LinkFailed",
    "NotInitialized",
    "PipelineConstructionFailed",
    "PipelineStartFailed",
    "SinkError",
]
