"""Immutable description of the stream handed to the producer client."""

from __future__ import annotations

from datetime import timedelta
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rtsp_kvs.media.frame import duration_to_hundred_ns

Tag = Tuple[str, str]

CONTENT_TYPE = "video/h264"
CODEC_ID = "V_MPEG4/ISO/AVC"
TRACK_NAME = "kinesis_video"


class StreamingType(Enum):
    REALTIME = 0
    NEAR_REALTIME = 1
    OFFLINE = 2


class NalAdaptation(Enum):
    # The caps filter already guarantees AVC/au, so no adaptation is requested.
    NONE = 0
    ANNEXB_NALS = 1 << 3
    ANNEXB_CPD_NALS = 1 << 4


class StreamDescriptor(BaseModel):
    """Configuration of a single H.264 stream as seen by the producer sink."""

    model_config = ConfigDict(frozen=True)

    stream_name: str
    retention: timedelta
    tags: Tuple[Tag, ...] = ()
    content_type: str = CONTENT_TYPE
    codec_id: str = CODEC_ID
    track_name: str = TRACK_NAME
    version: int = 0
    streaming_type: StreamingType = StreamingType.REALTIME
    kms_key_id: str = ""
    fragment_duration: timedelta = timedelta(seconds=2)
    buffer_duration: timedelta = timedelta(seconds=120)
    replay_duration: timedelta = timedelta(seconds=40)
    staleness_timeout: timedelta = timedelta(seconds=30)
    timecode_scale: timedelta = timedelta(milliseconds=1)
    max_latency: timedelta = timedelta(0)
    avg_bandwidth_bps: int = Field(default=4 * 1024 * 1024, gt=0)
    frame_rate: int = Field(default=30, gt=0)
    key_frame_fragmentation: bool = True
    frame_timecodes: bool = True
    absolute_fragment_times: bool = False
    fragment_acks: bool = True
    recover_on_error: bool = True
    adaptive: bool = False
    recalculate_metrics: bool = True
    codec_private_data: Optional[bytes] = None
    nal_adaptation: NalAdaptation = NalAdaptation.NONE

    @field_validator("stream_name")
    @classmethod
    def _validate_stream_name(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("stream name must not be empty")
        return value

    @field_validator("retention")
    @classmethod
    def _validate_retention(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("retention must be a positive duration")
        return value

    @field_validator("content_type")
    @classmethod
    def _validate_content_type(cls, value: str) -> str:
        if value != CONTENT_TYPE:
            raise ValueError(f"only {CONTENT_TYPE} is supported")
        return value

    @field_validator("codec_id")
    @classmethod
    def _validate_codec_id(cls, value: str) -> str:
        if value != CODEC_ID:
            raise ValueError(f"only {CODEC_ID} is supported")
        return value

    def to_stream_info(self) -> Dict[str, Any]:
        """Return the descriptor in the sink's wire form (durations in 100-ns units)."""

        return {
            "version": self.version,
            "name": self.stream_name,
            "streaming_type": self.streaming_type.name,
            "content_type": self.content_type,
            "kms_key_id": self.kms_key_id,
            "retention_period": duration_to_hundred_ns(self.retention),
            "adaptive": self.adaptive,
            "max_latency": duration_to_hundred_ns(self.max_latency),
            "fragment_duration": duration_to_hundred_ns(self.fragment_duration),
            "key_frame_fragmentation": self.key_frame_fragmentation,
            "frame_timecodes": self.frame_timecodes,
            "absolute_fragment_times": self.absolute_fragment_times,
            "fragment_acks": self.fragment_acks,
            "recover_on_error": self.recover_on_error,
            "codec_id": self.codec_id,
            "track_name": self.track_name,
            "avg_bandwidth_bps": self.avg_bandwidth_bps,
            "frame_rate": self.frame_rate,
            "buffer_duration": duration_to_hundred_ns(self.buffer_duration),
            "replay_duration": duration_to_hundred_ns(self.replay_duration),
            "connection_staleness": duration_to_hundred_ns(self.staleness_timeout),
            "timecode_scale": duration_to_hundred_ns(self.timecode_scale),
            "recalculate_metrics": self.recalculate_metrics,
            "codec_private_data": self.codec_private_data,
            "tags": [{"name": key, "value": value} for key, value in self.tags],
            "nal_adaptation_flags": self.nal_adaptation.value,
        }


__all__ = [
    "CODEC_ID",
    "CONTENT_TYPE",
    "NalAdaptation",
    "StreamDescriptor",
    "StreamingType",
    "TRACK_NAME",
    "Tag",
]
