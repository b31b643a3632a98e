"""Bridge a live H.264 RTSP stream into a Kinesis Video style producer sink."""

__version__ = "0.1.0"
