"""GStreamer bindings for the media bridge."""

from .builder import AVC_CAPS, PIPELINE_NAME, PipelineHandle, PipelineListeners, build_pipeline
from .bus import BusErrorReporter
from .runner import GstRunner
from .sample import GstSample

__all__ = [
    "AVC_CAPS",
    "BusErrorReporter",
    "GstRunner",
    "GstSample",
    "PIPELINE_NAME",
    "PipelineHandle",
    "PipelineListeners",
    "build_pipeline",
]
