"""Runner owning one pipeline graph, its media loop and its session counters."""

from __future__ import annotations

import logging
import threading
from typing import Optional

import gi

gi.require_version("Gst", "1.0")
gi.require_version("GLib", "2.0")

from gi.repository import GLib, Gst  # type: ignore

from rtsp_kvs.media.adapter import SampleAdapter
from rtsp_kvs.media.errors import BusError, PipelineStartFailed
from rtsp_kvs.media.frame import FlowResult, MediaSourceSink
from rtsp_kvs.pipeline.builder import PipelineHandle, build_pipeline
from rtsp_kvs.pipeline.sample import GstSample
from rtsp_kvs.storage import EventBus

LOGGER = logging.getLogger(__name__)

_FLOW_RETURNS = {
    FlowResult.OK: Gst.FlowReturn.OK,
    FlowResult.ERROR: Gst.FlowReturn.ERROR,
}


class GstRunner:
    """Drive one RTSP session through GStreamer.

    A runner is single use: once :meth:`stop` has run the graph is gone and a
    new runner must be built.
    """

    def __init__(
        self,
        rtsp_uri: str,
        sink: MediaSourceSink,
        event_bus: Optional[EventBus] = None,
        stop_timeout: float = 5.0,
    ) -> None:
        self.adapter = SampleAdapter(sink)
        self._stop_timeout = stop_timeout
        self._faulted = threading.Event()
        self._streaming = threading.local()
        self._loop_exited = threading.Event()
        self._started = False
        self._stopped = False
        self._main_loop: Optional[GLib.MainLoop] = None
        self._loop_thread: Optional[threading.Thread] = None
        self._handle: Optional[PipelineHandle] = build_pipeline(
            rtsp_uri, self._on_new_sample, self._on_bus_error, event_bus=event_bus
        )

    @property
    def has_started(self) -> bool:
        return self._started

    @property
    def faulted(self) -> bool:
        return self._faulted.is_set()

    def start(self) -> None:
        """Set the pipeline PLAYING and run the media loop until :meth:`stop`."""

        handle = self._handle
        if handle is None or self._stopped:
            raise PipelineStartFailed("Runner has already been stopped")
        if self._started:
            raise PipelineStartFailed("Runner already started")

        self._main_loop = GLib.MainLoop()
        handle.attach_bus()
        ret = handle.set_state(Gst.State.PLAYING)
        if ret == Gst.StateChangeReturn.FAILURE:
            handle.dispose()
            self._handle = None
            self._stopped = True
            raise PipelineStartFailed("Unable to set pipeline to PLAYING")
        LOGGER.info("Pipeline transition to PLAYING returned %s", ret.value_nick)

        self._loop_thread = threading.current_thread()
        self._started = True
        try:
            self._main_loop.run()
        finally:
            self._loop_exited.set()
            LOGGER.info("Media loop exited")

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        handle = self._handle
        self._handle = None
        main_loop = self._main_loop

        def _shutdown() -> bool:
            if handle is not None:
                try:
                    handle.dispose()
                except Exception:
                    LOGGER.exception("Failed to dispose pipeline")
            if main_loop is not None and main_loop.is_running():
                main_loop.quit()
            return False

        # The idle callback also covers a loop that is about to start running.
        loop_pending = self._started and not self._loop_exited.is_set()
        if loop_pending and self._in_sample_callback():
            # Teardown waits for this callback to return, so it cannot be awaited here.
            GLib.idle_add(_shutdown, priority=GLib.PRIORITY_HIGH)
        elif loop_pending and threading.current_thread() is not self._loop_thread:
            GLib.idle_add(_shutdown, priority=GLib.PRIORITY_HIGH)
            if not self._loop_exited.wait(timeout=self._stop_timeout):
                LOGGER.warning("Media loop did not exit within %.1fs", self._stop_timeout)
        else:
            _shutdown()

    def is_running(self) -> bool:
        handle = self._handle
        if handle is None or self._faulted.is_set():
            return False
        return handle.is_playing()

    def _in_sample_callback(self) -> bool:
        return getattr(self._streaming, "active", False)

    def _on_bus_error(self, error: BusError) -> None:
        if not self._faulted.is_set():
            LOGGER.warning("Marking session faulted after error from %s", error.source)
        self._faulted.set()

    def _on_new_sample(self, appsink: Gst.Element) -> Gst.FlowReturn:
        sample = appsink.emit("pull-sample")
        if sample is None:
            LOGGER.debug("No sample available; appsink is flushing or at EOS")
            return Gst.FlowReturn.FLUSHING
        self._streaming.active = True
        try:
            result = self.adapter.handle(GstSample(sample))
        except Exception:
            LOGGER.exception("Unexpected failure while handling sample")
            return Gst.FlowReturn.ERROR
        finally:
            self._streaming.active = False
        return _FLOW_RETURNS[result]


__all__ = ["GstRunner"]
