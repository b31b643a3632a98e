"""Turn pull-sink samples into frames for the producer sink."""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from rtsp_kvs.media.errors import SinkError
from rtsp_kvs.media.frame import (
    FRAME_DURATION,
    FRAME_INDEX_MODULUS,
    FlowResult,
    Frame,
    FrameFlags,
    MediaSourceSink,
    Sample,
    duration_to_hundred_ns,
    ns_to_hundred_ns,
)

LOGGER = logging.getLogger(__name__)

FRAME_DURATION_HNS = duration_to_hundred_ns(FRAME_DURATION)


def normalise_timestamps(pts: Optional[int], dts: Optional[int]) -> Tuple[int, int]:
    """Return ``(dts, pts)`` in nanoseconds with the missing side filled in.

    A valid PTS always wins and overrides the DTS. When both are missing the
    frame is stamped with zero.
    """

    if pts is not None:
        return pts, pts
    if dts is not None:
        return dts, dts
    return 0, 0


def classify(sample: Sample) -> FrameFlags:
    return FrameFlags.NONE if sample.is_delta_unit else FrameFlags.KEY_FRAME


class SampleAdapter:
    """Per-session state for converting access units into ``Frame`` records.

    Only the streaming thread calls :meth:`handle`, so the counters are not
    locked.
    """

    def __init__(self, sink: MediaSourceSink) -> None:
        self._sink = sink
        self._cpd_delivered = False
        self._frame_index = 0
        self._frames_delivered = 0
        self._frames_rejected = 0

    @property
    def cpd_delivered(self) -> bool:
        return self._cpd_delivered

    @property
    def frame_index(self) -> int:
        """Index the next frame will carry."""

        return self._frame_index

    @property
    def frames_delivered(self) -> int:
        return self._frames_delivered

    @property
    def frames_rejected(self) -> int:
        return self._frames_rejected

    def handle(self, sample: Sample) -> FlowResult:
        try:
            if not self._cpd_delivered and not self._deliver_codec_private_data(sample):
                return FlowResult.ERROR
            return self._deliver_frame(sample)
        finally:
            sample.release()

    def _deliver_codec_private_data(self, sample: Sample) -> bool:
        codec_data = sample.codec_data()
        if codec_data is None:
            return True
        try:
            self._sink.on_codec_private_data(codec_data)
        except SinkError as exc:
            LOGGER.error("Sink rejected codec private data (%d bytes): %s", len(codec_data), exc)
            return False
        self._cpd_delivered = True
        if self._frame_index > 0:
            LOGGER.warning(
                "Codec private data arrived after %d frame(s); earlier fragments may be unusable",
                self._frame_index,
            )
        else:
            LOGGER.info("Delivered codec private data (%d bytes)", len(codec_data))
        return True

    def _next_index(self) -> int:
        index = self._frame_index
        self._frame_index = (index + 1) % FRAME_INDEX_MODULUS
        return index

    def _deliver_frame(self, sample: Sample) -> FlowResult:
        decode_ns, presentation_ns = normalise_timestamps(sample.pts, sample.dts)
        flags = classify(sample)
        with sample.map_payload() as payload:
            frame = Frame(
                index=self._next_index(),
                flags=flags,
                decode_ts=ns_to_hundred_ns(decode_ns),
                presentation_ts=ns_to_hundred_ns(presentation_ns),
                duration=FRAME_DURATION_HNS,
                payload=payload,
            )
            try:
                self._sink.on_frame(frame)
            except SinkError as exc:
                self._frames_rejected += 1
                LOGGER.error("Sink rejected frame %d: %s", frame.index, exc)
                return FlowResult.ERROR
        self._frames_delivered += 1
        return FlowResult.OK


__all__ = ["SampleAdapter", "classify", "normalise_timestamps"]
