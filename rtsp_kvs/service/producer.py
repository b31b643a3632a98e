"""Local producer client that validates and journals what the bridge emits."""

from __future__ import annotations

import json
import logging
import threading
from typing import Optional, Protocol

from rtsp_kvs.media.descriptor import StreamDescriptor
from rtsp_kvs.media.errors import SinkError
from rtsp_kvs.media.frame import Frame, MediaSourceSink
from rtsp_kvs.storage import EventBus, EventType, FrameJournal, FrameRecord

LOGGER = logging.getLogger(__name__)


class MediaSource(Protocol):
    """Lifecycle a producer client drives; see ``RtspMediaSource``."""

    def describe(self, stream_name: str) -> StreamDescriptor:
        ...

    def initialize(self, sink: MediaSourceSink) -> None:
        ...

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...


class JournalProducer:
    """Producer-side sink enforcing the per-frame contract.

    Frames must arrive with strictly increasing ``index`` and non-decreasing
    ``decode_ts``; violations are rejected with ``SinkError`` so the bridge
    drops the sample. Accepted frames are written to the journal.
    """

    def __init__(
        self,
        journal: FrameJournal,
        event_bus: Optional[EventBus] = None,
        store_payloads: bool = False,
    ) -> None:
        self._journal = journal
        self._event_bus = event_bus
        self._store_payloads = store_payloads
        self._lock = threading.Lock()
        self._descriptor: Optional[StreamDescriptor] = None
        self._codec_private_data: Optional[bytes] = None
        self._last_index: Optional[int] = None
        self._last_decode_ts: Optional[int] = None
        self._closed = False

    @property
    def stream_name(self) -> Optional[str]:
        return self._descriptor.stream_name if self._descriptor else None

    @property
    def codec_private_data(self) -> Optional[bytes]:
        return self._codec_private_data

    def register_media_source(self, stream_name: str, media_source: MediaSource) -> StreamDescriptor:
        """Describe the stream, journal its descriptor and hand ourselves to the source as sink."""

        descriptor = media_source.describe(stream_name)
        info = descriptor.to_stream_info()
        self._journal.record_stream(descriptor.stream_name, json.dumps(info, default=str, sort_keys=True))
        with self._lock:
            self._descriptor = descriptor
            self._codec_private_data = None
            self._last_index = None
            self._last_decode_ts = None
            self._closed = False
        media_source.initialize(self)
        LOGGER.info(
            "Registered stream %s (retention=%ss, fragment=%ss)",
            descriptor.stream_name,
            descriptor.retention.total_seconds(),
            descriptor.fragment_duration.total_seconds(),
        )
        return descriptor

    def on_codec_private_data(self, data: bytes) -> None:
        with self._lock:
            descriptor = self._require_open()
            if self._codec_private_data == data:
                return
            if self._codec_private_data is not None:
                LOGGER.warning("Codec private data changed mid-session for %s", descriptor.stream_name)
            self._codec_private_data = bytes(data)
        try:
            self._journal.record_codec_private_data(descriptor.stream_name, bytes(data))
        except Exception as exc:
            raise SinkError(f"Failed to persist codec private data: {exc}") from exc
        if self._event_bus is not None:
            self._event_bus.emit(
                EventType.CODEC_PRIVATE_DATA,
                {"stream_name": descriptor.stream_name, "size": len(data), "hex": bytes(data).hex()},
            )

    def on_frame(self, frame: Frame) -> None:
        with self._lock:
            descriptor = self._require_open()
            self._check_monotonic(frame)
            record = FrameRecord(
                stream_name=descriptor.stream_name,
                frame_index=frame.index,
                key_frame=frame.is_key_frame,
                decode_ts=frame.decode_ts,
                presentation_ts=frame.presentation_ts,
                duration=frame.duration,
                size=frame.size,
                # The payload view dies when on_frame returns.
                payload=frame.payload.tobytes() if self._store_payloads else None,
            )
            try:
                self._journal.record_frame(record)
            except Exception as exc:
                self._reject(frame, f"journal write failed: {exc}")
            self._last_index = frame.index
            self._last_decode_ts = frame.decode_ts
        if self._event_bus is not None:
            self._event_bus.emit(
                EventType.FRAME,
                {
                    "stream_name": descriptor.stream_name,
                    "index": frame.index,
                    "key_frame": frame.is_key_frame,
                    "decode_ts": frame.decode_ts,
                    "presentation_ts": frame.presentation_ts,
                    "size": frame.size,
                },
            )

    def close(self) -> None:
        """Refuse any further data; a trailing frame after stop is rejected."""

        with self._lock:
            self._closed = True

    def _require_open(self) -> StreamDescriptor:
        if self._descriptor is None:
            raise SinkError("No stream registered with this producer")
        if self._closed:
            raise SinkError(f"Producer for {self._descriptor.stream_name} is closed")
        return self._descriptor

    def _check_monotonic(self, frame: Frame) -> None:
        if self._last_index is not None and frame.index <= self._last_index:
            # Only an index wrap from 2**32 - 1 back to 0 is allowed to decrease.
            if not (frame.index == 0 and self._last_index == 0xFFFFFFFF):
                self._reject(frame, f"index {frame.index} not after {self._last_index}")
        if self._last_decode_ts is not None and frame.decode_ts < self._last_decode_ts:
            self._reject(frame, f"decode_ts {frame.decode_ts} before {self._last_decode_ts}")

    def _reject(self, frame: Frame, reason: str) -> None:
        if self._event_bus is not None:
            self._event_bus.emit(
                EventType.SINK_ERROR,
                {"stream_name": self.stream_name, "index": frame.index, "reason": reason},
            )
        raise SinkError(f"Frame {frame.index} rejected: {reason}")


__all__ = ["JournalProducer", "MediaSource"]
