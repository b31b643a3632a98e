"""Frame records and the contracts between the sample adapter and its peers."""

from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum, IntFlag
from typing import Optional, Protocol

HUNDRED_NS_PER_SECOND = 10_000_000
NS_PER_HUNDRED_NS = 100
FRAME_INDEX_MODULUS = 1 << 32

# Fixed per-frame duration, independent of the negotiated framerate.
FRAME_DURATION = timedelta(milliseconds=20)


def ns_to_hundred_ns(value_ns: int) -> int:
    """Convert nanoseconds to the sink's native 100-ns time unit."""

    return value_ns // NS_PER_HUNDRED_NS


def duration_to_hundred_ns(value: timedelta) -> int:
    """Convert a ``timedelta`` to 100-ns units without going through floats."""

    return (
        value.days * 86_400 * HUNDRED_NS_PER_SECOND
        + value.seconds * HUNDRED_NS_PER_SECOND
        + value.microseconds * 10
    )


class FrameFlags(IntFlag):
    NONE = 0
    KEY_FRAME = 1


class FlowResult(Enum):
    """Outcome handed back to the media framework after each sample."""

    OK = "ok"
    ERROR = "error"


@dataclass(frozen=True)
class Frame:
    """One AVC access unit ready for the producer sink.

    ``payload`` is borrowed from the framework buffer and is only valid while
    ``MediaSourceSink.on_frame`` runs; sinks that keep it must copy it.
    """

    index: int
    flags: FrameFlags
    decode_ts: int
    presentation_ts: int
    duration: int
    payload: memoryview

    @property
    def is_key_frame(self) -> bool:
        return bool(self.flags & FrameFlags.KEY_FRAME)

    @property
    def size(self) -> int:
        return self.payload.nbytes


class MediaSourceSink(Protocol):
    """Receiver of codec private data and frames.

    Implementations signal rejection by raising ``SinkError``.
    """

    def on_codec_private_data(self, data: bytes) -> None:
        ...

    def on_frame(self, frame: Frame) -> None:
        ...


class Sample(Protocol):
    """One access unit drained from the pull-sink.

    Timestamps are nanoseconds, or ``None`` when the framework marks them
    invalid.
    """

    @property
    def pts(self) -> Optional[int]:
        ...

    @property
    def dts(self) -> Optional[int]:
        ...

    @property
    def is_delta_unit(self) -> bool:
        ...

    def codec_data(self) -> Optional[bytes]:
        """Return an owned copy of the first ``codec_data`` caps field, if any."""
        ...

    def map_payload(self) -> AbstractContextManager[memoryview]:
        """Map the buffer read-only; the mapping is released when the context exits."""
        ...

    def release(self) -> None:
        """Drop the reference to the underlying sample."""
        ...


__all__ = [
    "FRAME_DURATION",
    "FRAME_INDEX_MODULUS",
    "FlowResult",
    "Frame",
    "FrameFlags",
    "MediaSourceSink",
    "Sample",
    "duration_to_hundred_ns",
    "ns_to_hundred_ns",
]
