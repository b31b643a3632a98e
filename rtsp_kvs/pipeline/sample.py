"""``Sample`` implementation backed by a ``Gst.Sample`` pulled from the appsink."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import gi

gi.require_version("Gst", "1.0")

from gi.repository import Gst  # type: ignore

from rtsp_kvs.media.errors import BridgeError

LOGGER = logging.getLogger(__name__)

CODEC_DATA_FIELD = "codec_data"


def _valid_time(value: int) -> Optional[int]:
    if value == Gst.CLOCK_TIME_NONE:
        return None
    return value


def _copy_buffer(buffer: Gst.Buffer) -> bytes:
    success, map_info = buffer.map(Gst.MapFlags.READ)
    if not success:
        raise BridgeError("Failed to map codec_data buffer")
    try:
        return bytes(map_info.data)
    finally:
        buffer.unmap(map_info)


class GstSample:
    """Borrowed view of one appsink sample.

    The wrapper holds the only Python reference to the ``Gst.Sample``;
    :meth:`release` drops it so the framework can recycle the buffer.
    """

    def __init__(self, sample: Gst.Sample) -> None:
        buffer = sample.get_buffer()
        if buffer is None:
            raise BridgeError("Sample carries no buffer")
        self._sample: Optional[Gst.Sample] = sample
        self._buffer: Optional[Gst.Buffer] = buffer

    @property
    def pts(self) -> Optional[int]:
        return _valid_time(self._require_buffer().pts)

    @property
    def dts(self) -> Optional[int]:
        return _valid_time(self._require_buffer().dts)

    @property
    def is_delta_unit(self) -> bool:
        return self._require_buffer().has_flags(Gst.BufferFlags.DELTA_UNIT)

    def codec_data(self) -> Optional[bytes]:
        if self._sample is None:
            return None
        caps = self._sample.get_caps()
        if caps is None:
            return None
        for idx in range(caps.get_size()):
            structure = caps.get_structure(idx)
            if not structure.has_field(CODEC_DATA_FIELD):
                continue
            value = structure.get_value(CODEC_DATA_FIELD)
            if isinstance(value, Gst.Buffer):
                return _copy_buffer(value)
            LOGGER.debug("Ignoring codec_data of unexpected type %s", type(value).__name__)
        return None

    @contextmanager
    def map_payload(self) -> Iterator[memoryview]:
        buffer = self._require_buffer()
        success, map_info = buffer.map(Gst.MapFlags.READ)
        if not success:
            raise BridgeError("Failed to map sample buffer for reading")
        view = memoryview(map_info.data).toreadonly()
        try:
            yield view
        finally:
            view.release()
            buffer.unmap(map_info)

    def release(self) -> None:
        self._buffer = None
        self._sample = None

    def _require_buffer(self) -> Gst.Buffer:
        if self._buffer is None:
            raise BridgeError("Sample already released")
        return self._buffer


__all__ = ["GstSample"]
