"""Media source lifecycle exposed to the producer client."""

from __future__ import annotations

import logging
import threading
import time
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

from rtsp_kvs.media.adapter import SampleAdapter
from rtsp_kvs.media.descriptor import StreamDescriptor, Tag
from rtsp_kvs.media.errors import AlreadyInitialized, NotInitialized, PipelineStartFailed
from rtsp_kvs.media.frame import MediaSourceSink
from rtsp_kvs.storage.event_bus import EventBus, EventType

LOGGER = logging.getLogger(__name__)


class BridgeState(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    RUNNING = "running"
    STOPPED = "stopped"


class BridgeRunner(Protocol):
    """Owner of one pipeline graph and its per-session counters."""

    adapter: SampleAdapter

    @property
    def has_started(self) -> bool:
        ...

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...

    def is_running(self) -> bool:
        ...


RunnerFactory = Callable[[str, MediaSourceSink, Optional[EventBus]], BridgeRunner]


def _default_runner_factory(
    rtsp_uri: str, sink: MediaSourceSink, event_bus: Optional[EventBus]
) -> BridgeRunner:
    from rtsp_kvs.pipeline.runner import GstRunner

    return GstRunner(rtsp_uri, sink, event_bus=event_bus)


class RtspMediaSource:
    """Media source reading H.264 from an RTSP endpoint.

    Not thread-safe: the producer client must serialise calls. The only
    exception is :meth:`stop`, which may be called from another thread while
    :meth:`start` blocks in the media loop.
    """

    def __init__(
        self,
        rtsp_uri: str,
        retention: timedelta,
        tags: Sequence[Tag] = (),
        *,
        fragment_duration: timedelta = timedelta(seconds=2),
        frame_rate: int = 30,
        avg_bandwidth_bps: int = 4 * 1024 * 1024,
        event_bus: Optional[EventBus] = None,
        runner_factory: Optional[RunnerFactory] = None,
    ) -> None:
        if retention <= timedelta(0):
            raise ValueError("retention must be a positive duration")
        self._rtsp_uri = rtsp_uri
        self._retention = retention
        self._tags = tuple((str(key), str(value)) for key, value in tags)
        self._fragment_duration = fragment_duration
        self._frame_rate = frame_rate
        self._avg_bandwidth_bps = avg_bandwidth_bps
        self._event_bus = event_bus
        self._runner_factory = runner_factory or _default_runner_factory
        self._runner: Optional[BridgeRunner] = None
        self._initialised_once = False

    @property
    def rtsp_uri(self) -> str:
        return self._rtsp_uri

    def state(self) -> BridgeState:
        runner = self._runner
        if runner is None:
            return BridgeState.STOPPED if self._initialised_once else BridgeState.UNINITIALIZED
        if runner.is_running():
            return BridgeState.RUNNING
        if runner.has_started:
            return BridgeState.STOPPED
        return BridgeState.READY

    def describe(self, stream_name: str) -> StreamDescriptor:
        return StreamDescriptor(
            stream_name=stream_name,
            retention=self._retention,
            tags=self._tags,
            fragment_duration=self._fragment_duration,
            frame_rate=self._frame_rate,
            avg_bandwidth_bps=self._avg_bandwidth_bps,
        )

    def initialize(self, sink: MediaSourceSink) -> None:
        state = self.state()
        if state in (BridgeState.READY, BridgeState.RUNNING):
            raise AlreadyInitialized(f"Media source already initialised (state={state.name})")
        if self._runner is not None:
            LOGGER.info("Releasing stopped runner before re-initialising")
            self._runner.stop()
            self._runner = None
        LOGGER.info("Initialising media source for %s", self._rtsp_uri)
        self._runner = self._runner_factory(self._rtsp_uri, sink, self._event_bus)
        self._initialised_once = True
        self._publish_state()

    def start(self) -> None:
        """Start streaming and block in the media loop until :meth:`stop`."""

        runner = self._runner
        if runner is None:
            raise NotInitialized("Media source started before it was initialised")
        if runner.has_started:
            raise PipelineStartFailed("Media source already started; stop and re-initialise it first")
        LOGGER.info("Starting media source for %s", self._rtsp_uri)
        runner.start()

    def start_in_background(self) -> threading.Thread:
        """Run :meth:`start` on a daemon thread and return it once the pipeline plays."""

        runner = self._runner
        if runner is None:
            raise NotInitialized("Media source started before it was initialised")
        errors: list[Exception] = []

        def _run() -> None:
            try:
                self.start()
            except Exception as exc:  # re-raised in the caller below
                errors.append(exc)
                LOGGER.error("Media source failed to start: %s", exc)

        thread = threading.Thread(target=_run, name="rtsp-media-loop", daemon=True)
        thread.start()
        while thread.is_alive() and not runner.has_started:
            time.sleep(0.01)
        if errors:
            thread.join(timeout=1.0)
            raise errors[0]
        self._publish_state()
        return thread

    def stop(self) -> None:
        runner = self._runner
        if runner is None:
            return
        LOGGER.info("Stopping media source for %s", self._rtsp_uri)
        self._runner = None
        runner.stop()
        self._publish_state()

    def is_stopped(self) -> bool:
        return self.state() == BridgeState.STOPPED

    def free(self) -> None:
        self.stop()

    def statistics(self) -> Dict[str, Any]:
        """Snapshot of the current session's counters for diagnostics."""

        runner = self._runner
        payload: Dict[str, Any] = {"state": self.state().name, "rtsp_uri": self._rtsp_uri}
        if runner is not None:
            adapter = runner.adapter
            payload.update(
                cpd_delivered=adapter.cpd_delivered,
                next_frame_index=adapter.frame_index,
                frames_delivered=adapter.frames_delivered,
                frames_rejected=adapter.frames_rejected,
            )
        return payload

    def _publish_state(self) -> None:
        if self._event_bus is None:
            return
        self._event_bus.emit(EventType.STATE_CHANGED, {"state": self.state().name})


__all__ = ["BridgeRunner", "BridgeState", "RtspMediaSource", "RunnerFactory"]
